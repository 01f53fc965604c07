"""Pydantic models for the product catalog snapshot."""

from pydantic import BaseModel, ConfigDict, Field


class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str


class Product(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category_id: str | None = None
    unit: str = "ea"
    unit_price: float = Field(0.0, ge=0)


class CatalogSnapshot(BaseModel):
    """Read-only view of the loaded catalog."""

    model_config = ConfigDict(frozen=True)

    products: tuple[Product, ...] = ()
    categories: tuple[Category, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.products

    def category_name(self, category_id: str | None) -> str:
        if category_id is None:
            return "Other"
        for c in self.categories:
            if c.id == category_id:
                return c.name
        return "Other"
