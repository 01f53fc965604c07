"""Catalog loader: reads categories and products into a snapshot."""

from __future__ import annotations

from sqlalchemy import select

from quotecat.catalog.schemas import CatalogSnapshot, Category, Product
from quotecat.storage.database import Database
from quotecat.storage.models import CategoryRow, ProductRow


def catalog_loader(db: Database):
    """Return an async loader suitable for CatalogService.load()."""

    async def load() -> CatalogSnapshot:
        async with db.session() as session:
            categories = (await session.execute(select(CategoryRow).order_by(CategoryRow.name))).scalars().all()
            products = (await session.execute(select(ProductRow).order_by(ProductRow.name))).scalars().all()
        return CatalogSnapshot(
            categories=tuple(Category(id=c.id, name=c.name) for c in categories),
            products=tuple(
                Product(
                    id=p.id,
                    name=p.name,
                    category_id=p.category_id,
                    unit=p.unit,
                    unit_price=p.unit_price,
                )
                for p in products
            ),
        )

    return load
