"""Shared fixtures: settings, catalog, scripted reasoning client, SQLite db."""

from __future__ import annotations

import pytest
import pytest_asyncio

from quotecat.catalog.schemas import CatalogSnapshot, Category, Product
from quotecat.catalog.service import CatalogService
from quotecat.config import Settings
from quotecat.storage.database import Database
from quotecat.wizard.controller import ConversationLoopController
from quotecat.wizard.errors import ReasoningError
from quotecat.wizard.schemas import (
    ReasoningReply,
    SessionState,
    Turn,
    UserDefaults,
    parse_tool_call,
)

# ---------------------------------------------------------------------------
# Scripted reasoning client
# ---------------------------------------------------------------------------


def reply(message: str = "", *tool_calls: dict, quick_replies=None, state=None, display=None) -> ReasoningReply:
    """Build a ReasoningReply from wire-format tool call dicts."""
    return ReasoningReply(
        message=message,
        tool_calls=[parse_tool_call(tc) for tc in tool_calls],
        quick_replies=quick_replies,
        state=SessionState(raw=state) if state is not None else None,
        display=display,
    )


class ScriptedClient:
    """Returns queued replies in order; raises queued exceptions.

    Records a copy of every transcript it was sent.
    """

    def __init__(self, *replies: ReasoningReply | Exception) -> None:
        self.replies: list[ReasoningReply | Exception] = list(replies)
        self.calls: list[tuple[list[Turn], SessionState | None, UserDefaults | None]] = []
        self.before_reply = None  # optional async hook run before each reply

    async def send(self, transcript, session_state=None, user_defaults=None) -> ReasoningReply:
        self.calls.append((list(transcript), session_state, user_defaults))
        if self.before_reply is not None:
            await self.before_reply()
        if not self.replies:
            raise ReasoningError("ScriptedClient ran out of replies")
        nxt = self.replies.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


# ---------------------------------------------------------------------------
# Settings / catalog
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the developer's .env file."""
    return Settings(_env_file=None, reasoning_mode="stateless")


@pytest.fixture
def snapshot() -> CatalogSnapshot:
    return CatalogSnapshot(
        categories=(
            Category(id="cat-tile", name="Tile"),
            Category(id="cat-plumb", name="Plumbing"),
            Category(id="cat-paint", name="Paint"),
        ),
        products=(
            Product(id="p-subway", name="Subway Tile 3x6", category_id="cat-tile", unit="sq ft", unit_price=2.5),
            Product(id="p-porc", name="Porcelain Floor Tile 12x24", category_id="cat-tile", unit="sq ft", unit_price=4.25),
            Product(id="p-grout", name="Sanded Grout", category_id="cat-tile", unit="bag", unit_price=12.0),
            Product(id="p-faucet", name="Bathroom Faucet Chrome", category_id="cat-plumb", unit="ea", unit_price=89.0),
            Product(id="p-toilet", name="Elongated Toilet", category_id="cat-plumb", unit="ea", unit_price=219.0),
            Product(id="p-paint", name="Interior Paint Eggshell", category_id="cat-paint", unit="gal", unit_price=38.0),
        ),
    )


@pytest.fixture
def catalog(settings, snapshot) -> CatalogService:
    return CatalogService(settings, snapshot)


@pytest.fixture
def make_controller(settings, catalog):
    """Factory: controller wired to a ScriptedClient."""

    def _make(*replies, **overrides) -> tuple[ConversationLoopController, ScriptedClient]:
        client = ScriptedClient(*replies)
        s = settings.model_copy(update=overrides) if overrides else settings
        return ConversationLoopController(client, catalog, s), client

    return _make


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db(tmp_path):
    """Fresh SQLite database per test."""
    settings = Settings(_env_file=None, db_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    database = Database(settings)
    await database.create_all()
    yield database
    await database.disconnect()
