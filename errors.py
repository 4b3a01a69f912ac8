from typing import Optional


class FieldValidationError(ValueError):
    """Bad user input, reported against the offending field."""

    def __init__(self, field: Optional[str], message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class NotConfigured(Exception):
    """No budget categories exist yet; callers route this to onboarding."""

    def __init__(self, message: str = "Budget settings are not configured") -> None:
        super().__init__(message)


class UpstreamFailure(RuntimeError):
    """A collaborator (parser, storage) failed; the message is user-facing."""


class EmptySelection(ValueError):
    def __init__(self, message: str = "No transactions selected") -> None:
        super().__init__(message)
