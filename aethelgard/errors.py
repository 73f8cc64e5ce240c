"""Session-level exceptions raised by the engine and mapped to HTTP by the API."""


class AethelgardError(Exception):
    """Base class for session orchestration errors."""


class BudgetExhausted(AethelgardError):
    """No requests left in the current window; the player should rest."""

    def __init__(self, message: str = "Your strength is spent. You must rest.") -> None:
        super().__init__(message)


class TurnFailed(AethelgardError):
    """A mandatory backend call failed. State is as it was before the call.

    `pending_choice` holds the choice text the player submitted so it can be
    resubmitted unchanged.
    """

    def __init__(self, message: str, pending_choice: str | None = None) -> None:
        super().__init__(message)
        self.pending_choice = pending_choice


class SetupError(AethelgardError):
    """Backend credentials are missing; nothing can be generated."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Missing configuration: {', '.join(missing)}")
        self.missing = missing


class InvalidTransition(AethelgardError):
    """The requested action is not available in the current view."""
