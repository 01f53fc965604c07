"""REST API for the QuoteCat wizard.

Endpoints:
  POST   /wizard/sessions                    - Mount a session (upgrade | intro)
  GET    /wizard/sessions/{id}               - Session snapshot
  DELETE /wizard/sessions/{id}               - Close a session
  POST   /wizard/sessions/{id}/start         - intro -> chat
  POST   /wizard/sessions/{id}/messages      - Run one user turn
  POST   /wizard/sessions/{id}/speech        - Deliver a speech transcript
  POST   /wizard/sessions/{id}/selection     - Send selected products as one turn
  POST   /wizard/sessions/{id}/cancel        - Cancel the in-flight turn
  DELETE /wizard/sessions/{id}/items/{item}  - Remove a draft item
  PATCH  /wizard/sessions/{id}/items/{item}  - Change a draft item's quantity
  POST   /wizard/sessions/{id}/commit        - Save the draft as a quote
  POST   /wizard/sessions/{id}/reset         - Start over
  GET    /catalog/search                     - Catalog search (text result)
  GET    /health                             - Health check (DB connectivity)
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from quotecat.catalog.service import CatalogService
from quotecat.events import SPEECH_TRANSCRIPT, Event, EventBus
from quotecat.storage.database import Database
from quotecat.wizard.errors import (
    CommitError,
    EmptyDraftError,
    InvalidTransitionError,
    ReasoningError,
    WizardAccessError,
    WizardBusyError,
    WizardError,
)
from quotecat.wizard.registry import SessionRegistry
from quotecat.wizard.schemas import DisplayProduct, TurnOutcome
from quotecat.wizard.session import WizardSession

logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[WizardError], int] = {
    EmptyDraftError: 400,
    WizardAccessError: 403,
    WizardBusyError: 409,
    InvalidTransitionError: 409,
    CommitError: 502,
    ReasoningError: 502,
}


def _error_response(e: WizardError) -> JSONResponse:
    status = next((code for cls, code in _ERROR_STATUS.items() if isinstance(e, cls)), 500)
    return JSONResponse({"error": str(e), "type": type(e).__name__}, status_code=status)


def _outcome_payload(outcome: TurnOutcome, session: WizardSession) -> dict[str, Any]:
    return {
        "reply": outcome.final_reply,
        "quick_replies": outcome.quick_replies,
        "applied": outcome.summaries,
        "ui_mode": outcome.ui_mode.value,
        "display": outcome.display.model_dump(by_alias=True) if outcome.display else None,
        "iterations": outcome.iterations,
        "exhausted": outcome.exhausted,
        "failed": outcome.failed,
        "cancelled": outcome.cancelled,
        "session": session.summary(),
    }


async def _json_body(request: Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except Exception:
        return None
    return body if isinstance(body, dict) else None


def create_app(
    registry: SessionRegistry,
    catalog: CatalogService,
    database: Database | None = None,
    bus: EventBus | None = None,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""

    def _session_or_404(request: Request) -> WizardSession | JSONResponse:
        session = registry.get(request.path_params["session_id"])
        if session is None:
            return JSONResponse({"error": "Session not found"}, status_code=404)
        return session

    async def open_session(request: Request) -> JSONResponse:
        """POST /wizard/sessions - mount a session for a user."""
        body = await _json_body(request)
        if body is None:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        user_id = body.get("user_id")
        if not user_id:
            return JSONResponse({"error": "Missing required field: user_id"}, status_code=400)

        try:
            session = await registry.open(str(user_id))
        except WizardError as e:
            return _error_response(e)
        except Exception as e:
            logger.exception("Failed to open wizard session")
            return JSONResponse({"error": str(e)}, status_code=500)
        return JSONResponse(session.summary(), status_code=201)

    async def get_session(request: Request) -> JSONResponse:
        """GET /wizard/sessions/{id}"""
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        return JSONResponse(session.summary())

    async def close_session(request: Request) -> JSONResponse:
        """DELETE /wizard/sessions/{id}"""
        if not registry.close(request.path_params["session_id"]):
            return JSONResponse({"error": "Session not found"}, status_code=404)
        return JSONResponse({"status": "closed"})

    async def start_session(request: Request) -> JSONResponse:
        """POST /wizard/sessions/{id}/start"""
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        try:
            session.start()
        except WizardError as e:
            return _error_response(e)
        return JSONResponse(session.summary())

    async def send_message(request: Request) -> JSONResponse:
        """POST /wizard/sessions/{id}/messages - run one turn.

        With no "text" field the composed input buffer is sent instead.
        """
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        body = await _json_body(request)
        if body is None:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        # The buffer is only drained once the turn can actually start
        if session.busy:
            return _error_response(WizardBusyError("Still working on the last message."))
        text = body.get("text")
        from_buffer = text is None
        if from_buffer:
            text = session.input_buffer.take()
        if not isinstance(text, str) or not text.strip():
            return JSONResponse({"error": "Missing required field: text"}, status_code=400)
        api_text = body.get("api_text")

        try:
            outcome = await session.send_message(text.strip(), api_text=api_text)
        except WizardError as e:
            if from_buffer:
                session.input_buffer.deliver(text)
            return _error_response(e)
        return JSONResponse(_outcome_payload(outcome, session))

    async def deliver_speech(request: Request) -> JSONResponse:
        """POST /wizard/sessions/{id}/speech - queue a transcript event."""
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        body = await _json_body(request)
        if body is None or not isinstance(body.get("text"), str):
            return JSONResponse({"error": "Missing required field: text"}, status_code=400)
        if bus is None:
            session.input_buffer.deliver(body["text"])
        else:
            await bus.emit(Event(
                type=SPEECH_TRANSCRIPT,
                session_id=session.session_id,
                data={"text": body["text"]},
                user_id=session.user_id,
            ))
        return JSONResponse({"status": "accepted"}, status_code=202)

    async def send_selection(request: Request) -> JSONResponse:
        """POST /wizard/sessions/{id}/selection

        Body: {"items": [{"id", "name", "price", "unit", "qty"}, ...]}.
        Replaces the selection set, then flushes it as one turn.
        """
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        body = await _json_body(request)
        if body is None:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        items = body.get("items")
        if items is not None:
            if not isinstance(items, list):
                return JSONResponse({"error": "items must be a list"}, status_code=400)
            if session.busy:
                return _error_response(WizardBusyError("Still working on the last message."))
            parsed = []
            try:
                for i in items:
                    product = DisplayProduct.model_validate(i)
                    qty = i.get("qty")
                    parsed.append((product, float(qty) if qty is not None else product.suggested_qty))
            except (ValidationError, AttributeError, TypeError, ValueError) as e:
                return JSONResponse({"error": f"Invalid item: {e}"}, status_code=400)
            session.selection.clear()
            for product, qty in parsed:
                session.selection.set(product, qty)

        try:
            outcome = await session.send_selection()
        except WizardError as e:
            return _error_response(e)
        if outcome is None:
            return JSONResponse({"error": "Nothing selected"}, status_code=400)
        return JSONResponse(_outcome_payload(outcome, session))

    async def cancel_turn(request: Request) -> JSONResponse:
        """POST /wizard/sessions/{id}/cancel"""
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        return JSONResponse({"cancelled": session.cancel()})

    async def remove_item(request: Request) -> JSONResponse:
        """DELETE /wizard/sessions/{id}/items/{item_id}"""
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        try:
            draft = session.remove_item(request.path_params["item_id"])
        except WizardError as e:
            return _error_response(e)
        return JSONResponse(draft.summary())

    async def change_quantity(request: Request) -> JSONResponse:
        """PATCH /wizard/sessions/{id}/items/{item_id} with {"qty": n}"""
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        body = await _json_body(request)
        if body is None:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        try:
            qty = float(body["qty"])
        except (KeyError, TypeError, ValueError):
            return JSONResponse({"error": "qty must be a number"}, status_code=400)
        try:
            draft = session.change_quantity(request.path_params["item_id"], qty)
        except WizardError as e:
            return _error_response(e)
        return JSONResponse(draft.summary())

    async def commit(request: Request) -> JSONResponse:
        """POST /wizard/sessions/{id}/commit"""
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        try:
            quote_id = await session.commit()
        except WizardError as e:
            return _error_response(e)
        return JSONResponse({"quote_id": quote_id}, status_code=201)

    async def reset(request: Request) -> JSONResponse:
        """POST /wizard/sessions/{id}/reset"""
        session = _session_or_404(request)
        if isinstance(session, JSONResponse):
            return session
        try:
            await session.start_over()
        except WizardError as e:
            return _error_response(e)
        return JSONResponse(session.summary())

    async def catalog_search(request: Request) -> JSONResponse:
        """GET /catalog/search?q=...&category=...&limit=..."""
        query = request.query_params.get("q")
        if not query:
            return JSONResponse({"error": "Missing required query parameter: q"}, status_code=400)
        try:
            limit = int(request.query_params["limit"]) if "limit" in request.query_params else None
        except ValueError:
            return JSONResponse({"error": "limit must be an integer"}, status_code=400)
        category = request.query_params.get("category")
        return JSONResponse({
            "query": query,
            "result": catalog.search(query, category=category, limit=limit),
        })

    async def health(request: Request) -> JSONResponse:
        """GET /health"""
        if database is not None:
            try:
                await database.connect()
            except Exception as e:
                return JSONResponse({"status": "unhealthy", "error": str(e)}, status_code=503)
        return JSONResponse({
            "status": "healthy",
            "sessions": len(registry),
            "catalog_products": len(catalog.snapshot().products),
        })

    routes = [
        Route("/wizard/sessions", open_session, methods=["POST"]),
        Route("/wizard/sessions/{session_id}", get_session, methods=["GET"]),
        Route("/wizard/sessions/{session_id}", close_session, methods=["DELETE"]),
        Route("/wizard/sessions/{session_id}/start", start_session, methods=["POST"]),
        Route("/wizard/sessions/{session_id}/messages", send_message, methods=["POST"]),
        Route("/wizard/sessions/{session_id}/speech", deliver_speech, methods=["POST"]),
        Route("/wizard/sessions/{session_id}/selection", send_selection, methods=["POST"]),
        Route("/wizard/sessions/{session_id}/cancel", cancel_turn, methods=["POST"]),
        Route("/wizard/sessions/{session_id}/items/{item_id}", remove_item, methods=["DELETE"]),
        Route("/wizard/sessions/{session_id}/items/{item_id}", change_quantity, methods=["PATCH"]),
        Route("/wizard/sessions/{session_id}/commit", commit, methods=["POST"]),
        Route("/wizard/sessions/{session_id}/reset", reset, methods=["POST"]),
        Route("/catalog/search", catalog_search),
        Route("/health", health),
    ]

    kwargs: dict[str, Any] = {"routes": routes}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
