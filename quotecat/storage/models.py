"""SQLAlchemy ORM models for the QuoteCat tables."""

import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Single declarative base for all tables."""

    pass


# =============================================================================
# CATALOG
# =============================================================================


class CategoryRow(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    products: Mapped[list["ProductRow"]] = relationship(back_populates="category")


class ProductRow(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    category_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("categories.id"))
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    unit: Mapped[str] = mapped_column(String(30), nullable=False, default="ea")
    unit_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    category: Mapped[CategoryRow | None] = relationship(back_populates="products")


# =============================================================================
# QUOTES
# =============================================================================


class QuoteRow(Base):
    __tablename__ = "quotes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    user_id: Mapped[str | None] = mapped_column(String(100))
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    client_name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    labor: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    markup_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())

    items: Mapped[list["QuoteItemRow"]] = relationship(
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="QuoteItemRow.position",
    )


class QuoteItemRow(Base):
    __tablename__ = "quote_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quote_id: Mapped[str] = mapped_column(String(64), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_id: Mapped[str | None] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(Text, nullable=False)
    qty: Mapped[float] = mapped_column(Float, nullable=False)
    unit_price: Mapped[float] = mapped_column(Float, nullable=False)

    quote: Mapped[QuoteRow] = relationship(back_populates="items")


# =============================================================================
# USERS
# =============================================================================


class UserProfileRow(Base):
    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    tier: Mapped[str] = mapped_column(String(20), nullable=False, default="free")
    default_markup_percent: Mapped[float | None] = mapped_column(Float)
    default_labor_rate: Mapped[float | None] = mapped_column(Float)
