"""Draft quote builder: user edits and the commit to persistent storage."""

from __future__ import annotations

import logging
from typing import Protocol

from quotecat.wizard.errors import CommitError, EmptyDraftError
from quotecat.wizard.schemas import DraftItem, DraftQuote

logger = logging.getLogger(__name__)

UNTITLED_QUOTE_NAME = "Untitled Quote"


class QuoteStore(Protocol):
    async def create(self, name: str, client_name: str) -> str: ...

    async def update(
        self,
        quote_id: str,
        items: list[DraftItem],
        labor: float,
        markup_percent: float,
    ) -> None: ...


def remove_item(draft: DraftQuote, item_id: str) -> DraftQuote:
    """Return a draft without item_id. Unknown ids leave the draft unchanged."""
    items = tuple(i for i in draft.items if i.id != item_id)
    if len(items) == len(draft.items):
        return draft
    return draft.model_copy(update={"items": items})


def change_quantity(draft: DraftQuote, item_id: str, qty: float) -> DraftQuote:
    """Set an item's quantity. qty <= 0 removes the item."""
    if qty <= 0:
        return remove_item(draft, item_id)
    items = tuple(i.model_copy(update={"qty": qty}) if i.id == item_id else i for i in draft.items)
    return draft.model_copy(update={"items": items})


class QuoteDraftBuilder:
    def __init__(self, quotes: QuoteStore) -> None:
        self._quotes = quotes
        # Quote created by a commit whose update failed; retries reuse it
        self._pending_id: str | None = None

    def reset(self) -> None:
        """Forget a half-finished commit so the next one creates a new quote."""
        self._pending_id = None

    async def commit(self, draft: DraftQuote) -> str:
        """Persist the draft as a new quote and return its id.

        Raises EmptyDraftError before touching storage when the draft has
        no name and no items. Storage failures raise CommitError; the
        caller keeps its draft so the commit can be retried. When create
        succeeded but update failed, the retry updates that same quote
        instead of creating another one.
        """
        if draft.is_empty:
            raise EmptyDraftError()

        name = draft.name.strip() or UNTITLED_QUOTE_NAME
        quote_id = self._pending_id
        try:
            if quote_id is None:
                quote_id = await self._quotes.create(name, draft.client_name)
                self._pending_id = quote_id
            else:
                logger.info("Retrying commit against quote %s", quote_id)
            await self._quotes.update(
                quote_id,
                items=list(draft.items),
                labor=draft.labor,
                markup_percent=draft.markup_percent,
            )
        except Exception as e:
            logger.error("Quote commit failed: %s", e)
            raise CommitError(f"Couldn't save the quote: {e}") from e

        self._pending_id = None
        logger.info("Committed quote %s (%d items)", quote_id, len(draft.items))
        return quote_id
