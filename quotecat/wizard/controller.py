"""Conversation loop controller.

Drives one user turn to completion against the reasoning service:

1. Append the user utterance
2. Call the service (bounded by max_iterations)
3. If it asked for catalog searches, run them locally, append one hidden
   result turn and call again
4. Otherwise append the reply, apply the remaining tool calls to the draft
   and pick quick replies

The transcript is committed all-or-nothing: a failed turn keeps only the
user utterance plus an apology, never the intermediate search turns.
"""

from __future__ import annotations

import logging

from quotecat.catalog.service import CatalogService
from quotecat.config import Settings
from quotecat.wizard import quick_replies
from quotecat.wizard.client import RemoteReasoningClient
from quotecat.wizard.errors import ReasoningError
from quotecat.wizard.schemas import (
    DraftQuote,
    Role,
    SearchCatalog,
    SessionState,
    Turn,
    TurnOutcome,
    UiMode,
    UserDefaults,
)
from quotecat.wizard.tools import apply_tool_calls, partition

logger = logging.getLogger(__name__)

CATALOG_RESULTS_PREFIX = "CATALOG_RESULTS:"
SEARCHING_DISPLAY_TEXT = "Searching the catalog..."
STILL_LOOKING_REPLY = (
    "I'm still digging through the catalog for that. "
    "Could you tell me a bit more about what you need?"
)
APOLOGIES = (
    "Sorry, I hit a snag on my end. Mind trying that again?",
    "Hmm, something went wrong there. Can you say that one more time?",
    "My apologies, I couldn't process that. Please try again.",
)


class CancelToken:
    """Cooperative cancellation flag checked between reasoning calls."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def reset(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def format_catalog_results(catalog: CatalogService, searches: list[SearchCatalog]) -> str:
    """Run each search and join the results into one machine-readable block."""
    sections = [CATALOG_RESULTS_PREFIX]
    for call in searches:
        header = f'Query: "{call.query}"'
        if call.category:
            header += f" (category: {call.category})"
        sections.append(f"{header}\n{catalog.search(call.query, category=call.category, limit=call.limit)}")
    return "\n\n".join(sections)


class ConversationLoopController:
    def __init__(
        self,
        client: RemoteReasoningClient,
        catalog: CatalogService,
        settings: Settings,
    ) -> None:
        self._client = client
        self._catalog = catalog
        self._max_iterations = settings.max_iterations
        self._apology_index = 0

    def _next_apology(self) -> str:
        apology = APOLOGIES[self._apology_index % len(APOLOGIES)]
        self._apology_index += 1
        return apology

    async def run_turn(
        self,
        prior_transcript: list[Turn],
        utterance: str,
        *,
        draft: DraftQuote | None = None,
        api_text: str | None = None,
        session_state: SessionState | None = None,
        user_defaults: UserDefaults | None = None,
        ui_mode: UiMode = UiMode.NORMAL,
        cancel: CancelToken | None = None,
    ) -> TurnOutcome:
        """Run one user turn through the bounded reasoning loop.

        Never raises for reasoning failures: those come back as an outcome
        with failed=True and the draft untouched.
        """
        draft = draft if draft is not None else DraftQuote()
        user_turn = Turn(role=Role.USER, display_text=utterance, api_text=api_text)
        committed = [*prior_transcript, user_turn]
        working = list(committed)
        state = session_state
        last_partial = ""

        for iteration in range(1, self._max_iterations + 1):
            if cancel is not None and cancel.cancelled:
                logger.info("Turn cancelled before reasoning call %d", iteration)
                return TurnOutcome(
                    final_reply="",
                    updated_transcript=committed,
                    draft=draft,
                    session_state=session_state,
                    ui_mode=ui_mode,
                    iterations=iteration - 1,
                    cancelled=True,
                )

            try:
                reply = await self._client.send(working, state, user_defaults)
            except ReasoningError as e:
                logger.warning("Reasoning call failed on iteration %d: %s", iteration, e)
                return self._failed(committed, draft, session_state, ui_mode, iteration, str(e))
            except Exception as e:
                logger.exception("Unexpected error during reasoning call")
                return self._failed(committed, draft, session_state, ui_mode, iteration, str(e))

            if reply.state is not None:
                state = reply.state

            searches, others = partition(reply.tool_calls)
            if searches:
                # Interim text precedes the results it asked for
                if reply.message.strip():
                    working.append(Turn(role=Role.ASSISTANT, display_text=reply.message))
                    last_partial = reply.message
                try:
                    results = format_catalog_results(self._catalog, searches)
                except Exception as e:
                    logger.exception("Catalog search failed")
                    return self._failed(committed, draft, session_state, ui_mode, iteration, str(e))
                working.append(Turn(
                    role=Role.USER,
                    display_text=SEARCHING_DISPLAY_TEXT,
                    api_text=results,
                    hidden=True,
                ))
                logger.debug("Resolved %d catalog searches on iteration %d", len(searches), iteration)
                continue

            final = reply.message
            applied = apply_tool_calls(draft, others, ui_mode)
            # A tool-only reply is replayed as a summary of what it did
            api_text = None if final.strip() else "\n".join(applied.summaries) or None
            working.append(Turn(role=Role.ASSISTANT, display_text=final, api_text=api_text))
            replies = reply.quick_replies if reply.quick_replies else quick_replies.suggest(final)
            return TurnOutcome(
                final_reply=final,
                applied_tool_calls=applied.applied,
                summaries=applied.summaries,
                quick_replies=replies,
                updated_transcript=working,
                draft=applied.draft,
                display=reply.display,
                session_state=state,
                ui_mode=applied.ui_mode,
                iterations=iteration,
            )

        logger.warning("Wizard turn hit max_iterations=%d without a final reply", self._max_iterations)
        if last_partial:
            final = last_partial
        else:
            final = STILL_LOOKING_REPLY
            working.append(Turn(role=Role.ASSISTANT, display_text=final))
        return TurnOutcome(
            final_reply=final,
            quick_replies=quick_replies.suggest(final),
            updated_transcript=working,
            draft=draft,
            session_state=state,
            ui_mode=ui_mode,
            iterations=self._max_iterations,
            exhausted=True,
        )

    def _failed(
        self,
        committed: list[Turn],
        draft: DraftQuote,
        session_state: SessionState | None,
        ui_mode: UiMode,
        iteration: int,
        error: str,
    ) -> TurnOutcome:
        apology = self._next_apology()
        return TurnOutcome(
            final_reply=apology,
            updated_transcript=[*committed, Turn(role=Role.ASSISTANT, display_text=apology)],
            draft=draft,
            session_state=session_state,
            ui_mode=ui_mode,
            iterations=iteration,
            failed=True,
            error=error,
        )
