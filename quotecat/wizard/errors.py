"""Wizard exception hierarchy.

Recoverable failures (reasoning transport, empty commits) are converted
to user-visible messages at the session boundary; the REST layer maps the
rest to HTTP status codes.
"""

from __future__ import annotations


class WizardError(Exception):
    """Base class for all wizard errors."""


class WizardBusyError(WizardError):
    """A turn is already in flight for this session."""


class ReasoningError(WizardError):
    """The reasoning service failed or returned unparseable content."""


class EmptyDraftError(WizardError):
    """Commit attempted on a draft with no name and no items."""

    def __init__(self, message: str = "Add some items before saving.") -> None:
        super().__init__(message)


class CommitError(WizardError):
    """The quote store rejected the commit. The draft is preserved."""


class WizardAccessError(WizardError):
    """The acting user's tier does not include the quote wizard."""


class InvalidTransitionError(WizardError):
    """Screen-level transition not allowed from the current state."""
