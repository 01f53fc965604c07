"""Remote reasoning clients.

Two transports share one contract (RemoteReasoningClient.send):

- AnthropicReasoningClient: stateless. Replays the outbound transcript to
  the Anthropic Messages API with the wizard tools attached.
- StatefulReasoningClient: server-authoritative. Posts only the newest
  user message plus the opaque session state to the wizard service.

Both use a long-lived httpx.AsyncClient created in start() and retry once
on 429/500/529 and timeouts. Every transport or decode failure surfaces as
ReasoningError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from quotecat.catalog.service import CatalogService
from quotecat.config import Settings
from quotecat.wizard.errors import ReasoningError
from quotecat.wizard.prompts import build_system_prompt
from quotecat.wizard.quick_replies import parse_quick_replies
from quotecat.wizard.schemas import (
    DisplayPayload,
    ReasoningReply,
    Role,
    SessionState,
    ToolCall,
    Turn,
    UserDefaults,
    outbound_view,
    parse_tool_call,
)
from quotecat.wizard.tools import tool_definitions

logger = logging.getLogger(__name__)

_API_VERSION = "2023-06-01"
_RETRY_STATUSES = (429, 500, 529)


class RemoteReasoningClient(Protocol):
    async def send(
        self,
        transcript: list[Turn],
        session_state: SessionState | None = None,
        user_defaults: UserDefaults | None = None,
    ) -> ReasoningReply: ...


def merge_consecutive_roles(messages: list[dict[str, str]]) -> list[dict[str, str]]:
    """Join adjacent same-role messages and drop leading assistant turns.

    The Messages API requires strictly alternating roles starting with user
    and rejects empty content, so blank messages are dropped first.
    """
    merged: list[dict[str, str]] = []
    for msg in messages:
        if not msg["content"].strip():
            continue
        if not merged and msg["role"] != Role.USER.value:
            continue
        if merged and merged[-1]["role"] == msg["role"]:
            merged[-1] = {"role": msg["role"], "content": f"{merged[-1]['content']}\n\n{msg['content']}"}
        else:
            merged.append(dict(msg))
    return merged


class _HttpReasoningClient:
    """Shared httpx lifecycle and retry policy."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    def _base_url(self) -> str:
        raise NotImplementedError

    def _headers(self) -> dict[str, str]:
        return {"content-type": "application/json"}

    async def start(self) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        settings = self._settings
        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        limits = httpx.Limits(max_connections=10, max_keepalive_connections=5)
        self._http = httpx.AsyncClient(
            base_url=self._base_url(),
            headers=self._headers(),
            timeout=timeout,
            limits=limits,
            transport=self._transport,
        )
        logger.info("%s started (base_url=%s)", type(self).__name__, self._base_url())

    async def close(self) -> None:
        """Clean up httpx client."""
        if self._http:
            await self._http.aclose()
            self._http = None

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST with one retry on 429/500/529 and timeouts."""
        if not self._http:
            raise ReasoningError("httpx client not initialized -- call start() first")

        last_error: ReasoningError | None = None
        for attempt in range(2):  # initial + 1 retry
            try:
                response = await self._http.post(path, json=payload)

                if response.status_code == 200:
                    try:
                        data = response.json()
                    except ValueError as e:
                        raise ReasoningError(f"Reasoning service returned invalid JSON: {e}") from e
                    if not isinstance(data, dict):
                        raise ReasoningError("Reasoning service returned a non-object body")
                    return data

                error_msg = _error_message(response)
                if response.status_code in _RETRY_STATUSES and attempt == 0:
                    retry_after = min(_retry_after(response), 30.0)
                    logger.warning(
                        "Reasoning service error %d, retrying in %.1fs: %s",
                        response.status_code,
                        retry_after,
                        error_msg,
                    )
                    await asyncio.sleep(retry_after)
                    continue

                last_error = ReasoningError(
                    f"Reasoning service error ({response.status_code}): {error_msg}"
                )
                break

            except httpx.TimeoutException as e:
                last_error = ReasoningError(f"Reasoning request timed out: {e}")
                if attempt == 0:
                    logger.warning("Reasoning request timeout, retrying: %s", e)
                    await asyncio.sleep(1)
                    continue
            except httpx.HTTPError as e:
                last_error = ReasoningError(f"HTTP error: {e}")
                break  # connection errors are not retried

        raise last_error or ReasoningError("Reasoning call failed with unknown error")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            return str(err.get("message") or err.get("type") or "unknown error")
        if err:
            return str(err)
    return response.text[:500]


def _retry_after(response: httpx.Response) -> float:
    try:
        return float(response.headers.get("retry-after", "1"))
    except ValueError:
        return 1.0


def _parse_tool_calls(raw_calls: Any) -> list[ToolCall]:
    if raw_calls is None:
        return []
    if not isinstance(raw_calls, list):
        raise ReasoningError(f"toolCalls must be a list, got {type(raw_calls).__name__}")
    return [parse_tool_call(raw) for raw in raw_calls]


# ---------------------------------------------------------------------------
# Stateless transport (Anthropic Messages API)
# ---------------------------------------------------------------------------


class AnthropicReasoningClient(_HttpReasoningClient):
    def __init__(
        self,
        settings: Settings,
        catalog: CatalogService | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(settings, transport)
        self._catalog = catalog

    def _base_url(self) -> str:
        return self._settings.api_base_url

    def _headers(self) -> dict[str, str]:
        settings = self._settings
        headers = {
            "anthropic-version": _API_VERSION,
            "content-type": "application/json",
        }
        # auth_token (Bearer) takes precedence over api_key (x-api-key)
        if settings.anthropic_auth_token:
            headers["authorization"] = f"Bearer {settings.anthropic_auth_token}"
        elif settings.anthropic_api_key:
            headers["x-api-key"] = settings.anthropic_api_key
        else:
            logger.warning(
                "Neither ANTHROPIC_API_KEY nor ANTHROPIC_AUTH_TOKEN is set -- API calls will fail"
            )
        return headers

    def build_payload(
        self,
        transcript: list[Turn],
        user_defaults: UserDefaults | None = None,
    ) -> dict[str, Any]:
        window = transcript[-self._settings.history_window:]
        messages = merge_consecutive_roles(outbound_view(window))
        if not messages:
            raise ReasoningError("Nothing to send: transcript has no user turn")

        catalog_context = self._catalog.build_context() if self._catalog else ""
        return {
            "model": self._settings.model,
            "max_tokens": self._settings.max_tokens,
            "system": build_system_prompt(catalog_context, user_defaults),
            "messages": messages,
            "tools": tool_definitions(),
        }

    async def send(
        self,
        transcript: list[Turn],
        session_state: SessionState | None = None,
        user_defaults: UserDefaults | None = None,
    ) -> ReasoningReply:
        payload = self.build_payload(transcript, user_defaults)
        data = await self._post("/v1/messages", payload)

        content = data.get("content")
        if not isinstance(content, list):
            raise ReasoningError("Messages API response has no content list")

        text_parts: list[str] = []
        raw_calls: list[dict[str, Any]] = []
        for block in content:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "text":
                text_parts.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                raw_calls.append({"name": block.get("name"), "input": block.get("input") or {}})

        message, quick_replies = parse_quick_replies("\n".join(text_parts).strip())
        return ReasoningReply(
            message=message,
            tool_calls=_parse_tool_calls(raw_calls),
            quick_replies=quick_replies,
        )


# ---------------------------------------------------------------------------
# Server-authoritative transport
# ---------------------------------------------------------------------------


class StatefulReasoningClient(_HttpReasoningClient):
    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(settings, transport)

    def _base_url(self) -> str:
        # Posted to the full service URL; a base_url would add a trailing slash
        return ""

    def _headers(self) -> dict[str, str]:
        headers = {"content-type": "application/json"}
        token = self._settings.wizard_service_token
        if token:
            headers["authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def build_payload(
        transcript: list[Turn],
        session_state: SessionState | None = None,
        user_defaults: UserDefaults | None = None,
    ) -> dict[str, Any]:
        user_message = ""
        for turn in reversed(transcript):
            if turn.role == Role.USER:
                user_message = turn.outbound_text
                break
        return {
            "userMessage": user_message,
            # Echoed verbatim; None asks the service to start a new conversation
            "state": session_state.raw if session_state is not None else None,
            "userSettings": user_defaults.to_wire() if user_defaults is not None else {},
        }

    async def send(
        self,
        transcript: list[Turn],
        session_state: SessionState | None = None,
        user_defaults: UserDefaults | None = None,
    ) -> ReasoningReply:
        data = await self._post(self._settings.wizard_service_url, self.build_payload(transcript, session_state, user_defaults))

        if data.get("error"):
            raise ReasoningError(f"Wizard service error: {data['error']}")

        quick_replies = data.get("quickReplies")
        if quick_replies is not None and not isinstance(quick_replies, list):
            raise ReasoningError("quickReplies must be a list")

        raw_display = data.get("display")
        try:
            display = DisplayPayload.model_validate(raw_display) if raw_display else None
        except ValidationError as e:
            raise ReasoningError(f"Invalid display payload: {e.errors(include_url=False)}") from e

        raw_state = data.get("state")
        if raw_state is not None and not isinstance(raw_state, dict):
            raise ReasoningError("state must be an object")

        return ReasoningReply(
            message=str(data.get("message") or ""),
            tool_calls=_parse_tool_calls(data.get("toolCalls")),
            quick_replies=[str(q) for q in quick_replies] if quick_replies else None,
            display=display,
            state=SessionState(raw=raw_state) if raw_state is not None else None,
        )


def create_reasoning_client(
    settings: Settings,
    catalog: CatalogService | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AnthropicReasoningClient | StatefulReasoningClient:
    if settings.reasoning_mode == "stateful":
        return StatefulReasoningClient(settings, transport=transport)
    return AnthropicReasoningClient(settings, catalog=catalog, transport=transport)
