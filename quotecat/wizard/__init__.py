"""Wizard module: AI-assisted quote drafting conversation.

Public API: WizardSession, the loop controller, reasoning clients,
draft builder and all schema types from schemas.py.
"""

from quotecat.wizard.client import (
    AnthropicReasoningClient,
    RemoteReasoningClient,
    StatefulReasoningClient,
    create_reasoning_client,
)
from quotecat.wizard.controller import CancelToken, ConversationLoopController
from quotecat.wizard.draft import QuoteDraftBuilder, QuoteStore
from quotecat.wizard.errors import (
    CommitError,
    EmptyDraftError,
    InvalidTransitionError,
    ReasoningError,
    WizardAccessError,
    WizardBusyError,
    WizardError,
)
from quotecat.wizard.schemas import (
    DisplayPayload,
    DraftItem,
    DraftQuote,
    ReasoningReply,
    Role,
    ScreenState,
    SessionState,
    ToolCall,
    Turn,
    TurnOutcome,
    UiMode,
    UserDefaults,
)
from quotecat.wizard.session import Entitlements, ProfileStore, WizardSession

__all__ = [
    "WizardSession",
    "ConversationLoopController",
    "CancelToken",
    "QuoteDraftBuilder",
    # Protocols
    "Entitlements",
    "ProfileStore",
    "QuoteStore",
    "RemoteReasoningClient",
    # Clients
    "AnthropicReasoningClient",
    "StatefulReasoningClient",
    "create_reasoning_client",
    # Errors
    "CommitError",
    "EmptyDraftError",
    "InvalidTransitionError",
    "ReasoningError",
    "WizardAccessError",
    "WizardBusyError",
    "WizardError",
    # Schemas
    "DisplayPayload",
    "DraftItem",
    "DraftQuote",
    "ReasoningReply",
    "Role",
    "ScreenState",
    "SessionState",
    "ToolCall",
    "Turn",
    "TurnOutcome",
    "UiMode",
    "UserDefaults",
]
