"""User profiles: quoting defaults and plan tier."""

from __future__ import annotations

import logging

from quotecat.storage.database import Database
from quotecat.storage.models import UserProfileRow
from quotecat.wizard.schemas import UserDefaults

logger = logging.getLogger(__name__)

WIZARD_TIERS = frozenset({"premium"})


class SqlProfileStore:
    """ProfileStore and Entitlements over the user_profiles table.

    fallback_labor_rate fills in the labor rate for users who never saved one.
    """

    def __init__(self, db: Database, fallback_labor_rate: float | None = None) -> None:
        self._db = db
        self._fallback_labor_rate = fallback_labor_rate

    async def defaults(self, user_id: str) -> UserDefaults:
        """Saved defaults, with the fallback labor rate where none is saved."""
        async with self._db.session() as session:
            row = await session.get(UserProfileRow, user_id)
        markup = row.default_markup_percent if row is not None else None
        rate = row.default_labor_rate if row is not None else None
        return UserDefaults(
            default_markup_percent=markup,
            default_labor_rate=rate if rate is not None else self._fallback_labor_rate,
        )

    async def tier(self, user_id: str) -> str:
        async with self._db.session() as session:
            row = await session.get(UserProfileRow, user_id)
            return row.tier if row is not None else "free"

    async def can_access_wizard(self, user_id: str) -> bool:
        tier = await self.tier(user_id)
        allowed = tier in WIZARD_TIERS
        if not allowed:
            logger.debug("User %s on tier %s has no wizard access", user_id, tier)
        return allowed

    async def upsert(
        self,
        user_id: str,
        tier: str = "free",
        default_markup_percent: float | None = None,
        default_labor_rate: float | None = None,
    ) -> None:
        async with self._db.session() as session:
            row = await session.get(UserProfileRow, user_id)
            if row is None:
                row = UserProfileRow(user_id=user_id)
                session.add(row)
            row.tier = tier
            row.default_markup_percent = default_markup_percent
            row.default_labor_rate = default_labor_rate
            await session.commit()
