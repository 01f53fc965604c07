"""In-memory registry of live wizard sessions with LRU eviction."""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Callable
from uuid import uuid4

from quotecat.events import SPEECH_TRANSCRIPT, Event, EventBus
from quotecat.wizard.controller import ConversationLoopController
from quotecat.wizard.draft import QuoteDraftBuilder, QuoteStore
from quotecat.wizard.session import Entitlements, ProfileStore, WizardSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(
        self,
        controller: ConversationLoopController,
        quote_store_for: Callable[[str], QuoteStore],
        profiles: ProfileStore,
        entitlements: Entitlements,
        *,
        stateful: bool = False,
        max_sessions: int = 100,
        bus: EventBus | None = None,
    ) -> None:
        self._controller = controller
        self._quote_store_for = quote_store_for
        self._profiles = profiles
        self._entitlements = entitlements
        self._stateful = stateful
        self._max_sessions = max_sessions
        self._bus = bus
        self._sessions: OrderedDict[str, WizardSession] = OrderedDict()
        if bus is not None:
            bus.on(SPEECH_TRANSCRIPT, self.on_speech_transcript)

    def __len__(self) -> int:
        return len(self._sessions)

    async def open(self, user_id: str) -> WizardSession:
        """Create and mount a new session for user_id."""
        # Evict oldest if at capacity
        while len(self._sessions) >= self._max_sessions:
            evicted_id, _ = self._sessions.popitem(last=False)
            logger.info("Evicted wizard session %s (capacity %d)", evicted_id, self._max_sessions)

        session = WizardSession(
            session_id=uuid4().hex,
            user_id=user_id,
            controller=self._controller,
            builder=QuoteDraftBuilder(self._quote_store_for(user_id)),
            stateful=self._stateful,
            bus=self._bus,
        )
        await session.mount(self._entitlements, self._profiles)
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> WizardSession | None:
        session = self._sessions.get(session_id)
        if session is not None:
            self._sessions.move_to_end(session_id)
        return session

    def close(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    async def on_speech_transcript(self, event: Event) -> None:
        """Route a speech transcript to its session's input buffer."""
        session = self._sessions.get(event.session_id)
        if session is None:
            logger.debug("Speech transcript for unknown session %s", event.session_id)
            return
        session.input_buffer.deliver(str(event.data.get("text", "")))
