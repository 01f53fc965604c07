"""SQL-backed quote store used by the draft builder."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import delete, select

from quotecat.storage.database import Database
from quotecat.storage.models import QuoteItemRow, QuoteRow
from quotecat.wizard.schemas import DraftItem

logger = logging.getLogger(__name__)


class SqlQuoteStore:
    def __init__(self, db: Database, user_id: str | None = None) -> None:
        self._db = db
        self._user_id = user_id

    async def create(self, name: str, client_name: str) -> str:
        async with self._db.session() as session:
            row = QuoteRow(id=str(uuid.uuid4()), name=name, client_name=client_name, user_id=self._user_id)
            session.add(row)
            await session.commit()
            logger.debug("Created quote %s", row.id)
            return row.id

    async def update(
        self,
        quote_id: str,
        items: list[DraftItem],
        labor: float,
        markup_percent: float,
    ) -> None:
        """Replace the quote's line items and pricing fields."""
        async with self._db.session() as session:
            row = await session.get(QuoteRow, quote_id)
            if row is None:
                raise KeyError(f"Quote {quote_id} not found")

            await session.execute(delete(QuoteItemRow).where(QuoteItemRow.quote_id == quote_id))
            for position, item in enumerate(items):
                session.add(QuoteItemRow(
                    quote_id=quote_id,
                    position=position,
                    product_id=item.product_id,
                    name=item.name,
                    qty=item.qty,
                    unit_price=item.unit_price,
                ))
            row.labor = labor
            row.markup_percent = markup_percent
            await session.commit()

    async def get(self, quote_id: str) -> dict | None:
        async with self._db.session() as session:
            row = await session.get(QuoteRow, quote_id)
            if row is None:
                return None
            result = await session.execute(
                select(QuoteItemRow).where(QuoteItemRow.quote_id == quote_id).order_by(QuoteItemRow.position)
            )
            items = result.scalars().all()
            return {
                "id": row.id,
                "name": row.name,
                "client_name": row.client_name,
                "labor": row.labor,
                "markup_percent": row.markup_percent,
                "status": row.status,
                "items": [
                    {
                        "product_id": i.product_id,
                        "name": i.name,
                        "qty": i.qty,
                        "unit_price": i.unit_price,
                    }
                    for i in items
                ],
            }
