"""Exception hierarchy for dealbus."""

from typing import List, Optional


class DealbusError(Exception):
    """Base class for all dealbus errors."""


class LogSubmissionError(DealbusError):
    """The ordered log rejected a submission."""

    def __init__(self, message: str, status: Optional[str] = None):
        super().__init__(message)
        self.status = status


class InvalidEnvelopeError(DealbusError):
    """Raw data could not be turned into an envelope."""

    def __init__(self, errors: List[str]):
        super().__init__(f"Invalid message: {', '.join(errors)}")
        self.errors = errors


class ConfigurationError(DealbusError):
    """Required configuration is missing or inconsistent."""
