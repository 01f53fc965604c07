"""QuoteCat wizard service entry point.

Initializes all components and starts the server:
  Settings -> Database -> Catalog -> ReasoningClient -> Controller -> Registry -> App -> Uvicorn

Uses Starlette lifespan to manage component lifecycle on the same
event loop as uvicorn.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette

from quotecat.catalog.service import CatalogService
from quotecat.config import Settings
from quotecat.events import EventBus
from quotecat.storage.catalog import catalog_loader
from quotecat.storage.database import Database
from quotecat.storage.profiles import SqlProfileStore
from quotecat.storage.quotes import SqlQuoteStore
from quotecat.wizard.client import create_reasoning_client
from quotecat.wizard.controller import ConversationLoopController
from quotecat.wizard.registry import SessionRegistry

logger = logging.getLogger(__name__)


async def create_components(settings: Settings) -> dict:
    """Initialize all components in dependency order.

    1. Database - engine + tables
    2. CatalogService - snapshot loaded from the products table
    3. Reasoning client - stateless or stateful transport
    4. ConversationLoopController
    5. EventBus + SessionRegistry
    """
    database = Database(settings)
    await database.connect()
    await database.create_all()

    catalog = CatalogService(settings)
    try:
        await catalog.load(catalog_loader(database))
    except Exception:
        # Searches report "not loaded yet" until a later load succeeds
        logger.exception("Catalog load failed")

    client = create_reasoning_client(settings, catalog=catalog)
    await client.start()

    controller = ConversationLoopController(client, catalog, settings)

    bus = EventBus()
    await bus.start()

    profiles = SqlProfileStore(database, fallback_labor_rate=settings.default_labor_rate)
    registry = SessionRegistry(
        controller,
        quote_store_for=lambda user_id: SqlQuoteStore(database, user_id=user_id),
        profiles=profiles,
        entitlements=profiles,
        stateful=settings.reasoning_mode == "stateful",
        max_sessions=settings.max_sessions,
        bus=bus,
    )

    return {
        "database": database,
        "catalog": catalog,
        "client": client,
        "controller": controller,
        "bus": bus,
        "registry": registry,
    }


async def shutdown_components(components: dict) -> None:
    """Graceful shutdown in reverse order."""
    logger.info("Shutting down QuoteCat...")

    bus = components.get("bus")
    if bus:
        await bus.stop()

    client = components.get("client")
    if client:
        await client.close()

    database = components.get("database")
    if database:
        await database.disconnect()

    logger.info("QuoteCat shutdown complete.")


def build_app(settings: Settings) -> Starlette:
    """Build the Starlette app; components are created in the lifespan."""
    components: dict = {}

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        nonlocal components
        components.update(await create_components(settings))

        # Store on app.state for access in tests
        app.state.components = components

        logger.info(
            "QuoteCat started: mode=%s, max_iterations=%d",
            settings.reasoning_mode,
            settings.max_iterations,
        )
        yield

        await shutdown_components(components)

    from quotecat.api.rest import create_app

    return create_app(
        registry=_lazy_component(components, "registry"),
        catalog=_lazy_component(components, "catalog"),
        database=_lazy_component(components, "database"),
        bus=_lazy_component(components, "bus"),
        lifespan=lifespan,
    )


class _LazyProxy:
    """Defers attribute access to a component created later in lifespan.

    create_app() receives these before startup; every attribute access is
    forwarded to the real component once it exists.
    """

    def __init__(self, components: dict, key: str) -> None:
        object.__setattr__(self, "_components", components)
        object.__setattr__(self, "_key", key)

    def _resolve(self):
        components = object.__getattribute__(self, "_components")
        key = object.__getattribute__(self, "_key")
        obj = components.get(key)
        if obj is None:
            raise RuntimeError(f"Component '{key}' not yet initialized -- lifespan hasn't started")
        return obj

    def __getattr__(self, name):
        return getattr(self._resolve(), name)

    def __len__(self):
        return len(self._resolve())


def _lazy_component(components: dict, key: str) -> _LazyProxy:
    return _LazyProxy(components, key)


def main() -> None:
    """Entry point: parse settings, build app, run server."""
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    logger.info("Starting QuoteCat wizard (%s mode)", settings.reasoning_mode)
    logger.info("Model: %s", settings.model)
    logger.info("Database: %s", settings.db_url)

    if settings.reasoning_mode == "stateless" and not (
        settings.anthropic_api_key or settings.anthropic_auth_token
    ):
        logger.warning(
            "Neither ANTHROPIC_API_KEY nor ANTHROPIC_AUTH_TOKEN is set -- "
            "wizard turns will fail"
        )

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
