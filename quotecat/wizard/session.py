"""Wizard session: one user's conversation, draft and screen state.

Screen states:
- upgrade: the user's tier lacks the wizard (terminal, decided once at mount)
- intro: mounted, conversation not started
- chat: conversation in progress
- done: the service reported phase "done" (stateful mode only)

One turn at a time per session; a second turn while one is in flight
raises WizardBusyError. start_over() bumps a generation counter so a turn
still in flight when the session is reset cannot write back into it.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from quotecat.events import (
    QUOTE_COMMITTED,
    WIZARD_SESSION_RESET,
    WIZARD_TURN_COMPLETED,
    Event,
    EventBus,
)
from quotecat.wizard.controller import CancelToken, ConversationLoopController
from quotecat.wizard.draft import QuoteDraftBuilder, change_quantity, remove_item
from quotecat.wizard.errors import (
    InvalidTransitionError,
    WizardAccessError,
    WizardBusyError,
)
from quotecat.wizard.input_buffer import InputBuffer
from quotecat.wizard.schemas import (
    DisplayPayload,
    DraftQuote,
    Role,
    ScreenState,
    SessionState,
    Turn,
    TurnOutcome,
    UiMode,
    UserDefaults,
    display_view,
)
from quotecat.wizard.selection import SelectionSet

logger = logging.getLogger(__name__)

GREETING = "Hey! I'm Drew. What are we quoting today?"
GREETING_QUICK_REPLIES = ["Bathroom", "Kitchen", "Deck", "Other"]
DONE_PHASE = "done"


class ProfileStore(Protocol):
    async def defaults(self, user_id: str) -> UserDefaults: ...


class Entitlements(Protocol):
    async def can_access_wizard(self, user_id: str) -> bool: ...


class WizardSession:
    def __init__(
        self,
        session_id: str,
        user_id: str,
        controller: ConversationLoopController,
        builder: QuoteDraftBuilder,
        *,
        stateful: bool = False,
        bus: EventBus | None = None,
    ) -> None:
        self.session_id = session_id
        self.user_id = user_id
        self.stateful = stateful
        self._controller = controller
        self._builder = builder
        self._bus = bus

        self.screen: ScreenState | None = None
        self.transcript: list[Turn] = []
        self.draft = DraftQuote()
        self.session_state: SessionState | None = None
        self.user_defaults: UserDefaults | None = None
        self.ui_mode = UiMode.NORMAL
        self.quick_replies: list[str] = []
        self.display: DisplayPayload | None = None
        self.last_outcome: TurnOutcome | None = None
        self.selection = SelectionSet()
        self.input_buffer = InputBuffer()

        self._busy = False
        self._cancel = CancelToken()
        self._generation = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def has_draft_content(self) -> bool:
        """True once the draft has a name or at least one item."""
        return not self.draft.is_empty

    async def mount(self, entitlements: Entitlements, profiles: ProfileStore) -> ScreenState:
        """Check entitlements once and load the user's defaults."""
        if self.screen is not None:
            raise InvalidTransitionError(f"Session already mounted ({self.screen})")

        if not await entitlements.can_access_wizard(self.user_id):
            self.screen = ScreenState.UPGRADE
            logger.info("Session %s: user %s needs an upgrade", self.session_id, self.user_id)
            return self.screen

        self.user_defaults = await profiles.defaults(self.user_id)
        self.screen = ScreenState.INTRO
        logger.info("Session %s mounted for user %s", self.session_id, self.user_id)
        return self.screen

    def _require(self, *allowed: ScreenState) -> None:
        if self.screen == ScreenState.UPGRADE:
            raise WizardAccessError("The quote wizard needs a Premium plan.")
        if self.screen not in allowed:
            raise InvalidTransitionError(
                f"Not allowed in screen state {self.screen}; expected one of "
                f"{[s.value for s in allowed]}"
            )

    def start(self) -> None:
        """intro -> chat, with the local greeting as the first turn."""
        self._require(ScreenState.INTRO)
        self.transcript = [Turn(role=Role.ASSISTANT, display_text=GREETING)]
        self.quick_replies = list(GREETING_QUICK_REPLIES)
        self.screen = ScreenState.CHAT

    async def start_over(self) -> None:
        """Discard the conversation and draft and return to intro."""
        self._require(ScreenState.INTRO, ScreenState.CHAT, ScreenState.DONE)
        self._cancel.cancel()
        self._generation += 1
        self._busy = False
        self._cancel = CancelToken()

        self.transcript = []
        self.draft = DraftQuote()
        self.session_state = None
        self.ui_mode = UiMode.NORMAL
        self.quick_replies = []
        self.display = None
        self.last_outcome = None
        self.selection.clear()
        self._builder.reset()
        self.input_buffer.clear()
        self.screen = ScreenState.INTRO
        logger.info("Session %s reset", self.session_id)
        await self._emit(WIZARD_SESSION_RESET, {})

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def send_message(self, text: str, api_text: str | None = None) -> TurnOutcome:
        """Run one user turn. Raises WizardBusyError if one is in flight."""
        self._require(ScreenState.CHAT, ScreenState.DONE)
        if self._busy:
            raise WizardBusyError("Still working on the last message.")
        return await self._run(text, api_text)

    async def send_selection(self) -> TurnOutcome | None:
        """Flush the selection set as one ADD_SELECTED turn.

        Returns None when nothing is selected.
        """
        self._require(ScreenState.CHAT, ScreenState.DONE)
        if self._busy:
            raise WizardBusyError("Still working on the last message.")
        flushed = self.selection.flush()
        if flushed is None:
            return None
        display_text, api_text = flushed
        return await self._run(display_text, api_text)

    def cancel(self) -> bool:
        """Request cancellation of the in-flight turn. False when idle."""
        if not self._busy:
            return False
        self._cancel.cancel()
        return True

    async def _run(self, text: str, api_text: str | None) -> TurnOutcome:
        generation = self._generation
        self._busy = True
        self._cancel.reset()
        self.input_buffer.hold()
        try:
            outcome = await self._controller.run_turn(
                self.transcript,
                text,
                draft=self.draft,
                api_text=api_text,
                session_state=self.session_state,
                user_defaults=self.user_defaults,
                ui_mode=self.ui_mode,
                cancel=self._cancel,
            )
        finally:
            if generation == self._generation:
                self._busy = False
                self.input_buffer.release()

        if generation != self._generation:
            logger.info("Session %s: dropping outcome of a turn from before reset", self.session_id)
            return outcome

        self._adopt(outcome)
        await self._emit(WIZARD_TURN_COMPLETED, {
            "iterations": outcome.iterations,
            "exhausted": outcome.exhausted,
            "failed": outcome.failed,
            "cancelled": outcome.cancelled,
            "applied": [c.kind for c in outcome.applied_tool_calls],
        })
        return outcome

    def _adopt(self, outcome: TurnOutcome) -> None:
        self.last_outcome = outcome
        self.transcript = outcome.updated_transcript
        self.draft = outcome.draft
        self.session_state = outcome.session_state
        self.ui_mode = outcome.ui_mode
        self.quick_replies = outcome.quick_replies
        self.display = outcome.display

        if self.stateful and self.session_state is not None:
            phase = self.session_state.phase
            self.screen = ScreenState.DONE if phase == DONE_PHASE else ScreenState.CHAT

    # ------------------------------------------------------------------
    # Draft edits and commit
    # ------------------------------------------------------------------

    def remove_item(self, item_id: str) -> DraftQuote:
        self._require(ScreenState.CHAT, ScreenState.DONE)
        self.draft = remove_item(self.draft, item_id)
        self.ui_mode = UiMode.NORMAL
        return self.draft

    def change_quantity(self, item_id: str, qty: float) -> DraftQuote:
        self._require(ScreenState.CHAT, ScreenState.DONE)
        self.draft = change_quantity(self.draft, item_id, qty)
        self.ui_mode = UiMode.NORMAL
        return self.draft

    async def commit(self) -> str:
        """Save the draft as a quote. The draft stays in place on failure."""
        self._require(ScreenState.CHAT, ScreenState.DONE)
        if self._busy:
            raise WizardBusyError("Wait for the current reply before saving.")
        quote_id = await self._builder.commit(self.draft)
        await self._emit(QUOTE_COMMITTED, {"quote_id": quote_id, "total": round(self.draft.total, 2)})
        return quote_id

    # ------------------------------------------------------------------

    async def _emit(self, event_type: str, data: dict[str, Any]) -> None:
        if self._bus is None:
            return
        await self._bus.emit(Event(type=event_type, session_id=self.session_id, data=data, user_id=self.user_id))

    def summary(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "screen": self.screen.value if self.screen else None,
            "busy": self._busy,
            "ui_mode": self.ui_mode.value,
            "has_draft_content": self.has_draft_content,
            "messages": [
                {"id": t.id, "role": t.role.value, "text": t.display_text}
                for t in display_view(self.transcript)
            ],
            "quick_replies": self.quick_replies,
            "display": self.display.model_dump(by_alias=True) if self.display else None,
            "draft": self.draft.summary(),
            "selection": [
                {"product_id": line.product.id, "name": line.product.name, "qty": line.qty}
                for line in self.selection.lines()
            ],
            "phase": self.session_state.phase if self.session_state else None,
            "input": self.input_buffer.text,
        }
