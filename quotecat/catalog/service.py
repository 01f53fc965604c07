"""Catalog query service.

Searches run synchronously over an in-memory snapshot. The snapshot is
populated by load() from an externally owned loader (usually the SQL
catalog in quotecat.storage.catalog) and is replaced wholesale, never
mutated in place.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable

from quotecat.catalog.schemas import CatalogSnapshot, Product
from quotecat.config import Settings

logger = logging.getLogger(__name__)

CatalogLoader = Callable[[], Awaitable[CatalogSnapshot]]

NOT_LOADED_MESSAGE = "Product catalog not loaded yet. Ask the user to describe the items instead."

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def _tokens(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _fmt_price(value: float) -> str:
    return f"${value:,.2f}"


class CatalogService:
    def __init__(self, settings: Settings, snapshot: CatalogSnapshot | None = None) -> None:
        self._settings = settings
        self._snapshot = snapshot or CatalogSnapshot()

    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    async def load(self, loader: CatalogLoader) -> CatalogSnapshot:
        """Replace the snapshot with whatever the loader produces."""
        snapshot = await loader()
        self._snapshot = snapshot
        logger.info(
            "Catalog loaded: %d products in %d categories",
            len(snapshot.products),
            len(snapshot.categories),
        )
        return snapshot

    def _clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self._settings.catalog_search_limit
        return max(1, min(limit, self._settings.catalog_search_max))

    def find(self, query: str, category: str | None = None, limit: int | None = None) -> list[Product]:
        """Ranked product matches for query.

        A product matches when at least one query token appears in its name
        or category name. Ranked by matched-token count, then name.
        """
        snap = self._snapshot
        query_tokens = set(_tokens(query))
        if not query_tokens:
            return []

        wanted_category = category.strip().lower() if category else None
        scored: list[tuple[int, str, Product]] = []
        for product in snap.products:
            cat_name = snap.category_name(product.category_id)
            if wanted_category and cat_name.lower() != wanted_category:
                continue
            haystack = set(_tokens(product.name)) | set(_tokens(cat_name))
            hits = sum(1 for t in query_tokens if t in haystack or any(h.startswith(t) for h in haystack))
            if hits:
                scored.append((hits, product.name.lower(), product))

        scored.sort(key=lambda s: (-s[0], s[1]))
        return [p for _, _, p in scored[: self._clamp_limit(limit)]]

    def search(self, query: str, category: str | None = None, limit: int | None = None) -> str:
        """Search and format results as text for the reasoning service."""
        if self._snapshot.is_empty:
            return NOT_LOADED_MESSAGE

        products = self.find(query, category=category, limit=limit)
        if not products:
            return f'No products found for "{query}".'

        lines = [f'Found {len(products)} products for "{query}":']
        for p in products:
            cat_name = self._snapshot.category_name(p.category_id)
            lines.append(f"- {p.name} (id: {p.id}) {_fmt_price(p.unit_price)}/{p.unit} [{cat_name}]")
        return "\n".join(lines)

    def build_context(self) -> str:
        """Condensed catalog listing, one line per category.

        Format: "Tile: Subway Tile ($2.50/sq ft), Grout ($12.00/bag)"
        """
        snap = self._snapshot
        if snap.is_empty:
            return NOT_LOADED_MESSAGE

        grouped: dict[str, list[Product]] = {}
        for p in snap.products:
            grouped.setdefault(snap.category_name(p.category_id), []).append(p)

        lines: list[str] = []
        for cat_name in sorted(grouped):
            entries = [
                f"{p.name} ({_fmt_price(p.unit_price)}/{p.unit})"
                for p in sorted(grouped[cat_name], key=lambda x: x.name.lower())
            ]
            lines.append(f"{cat_name}: {', '.join(entries)}")
        return "\n".join(lines)
