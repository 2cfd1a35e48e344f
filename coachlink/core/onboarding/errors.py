"""
Error taxonomy for onboarding operations.

Infrastructure translates SDK and driver exceptions into these, so the
service and the API layer only ever deal with one set of failures.
"""

from typing import Optional


class OnboardingError(Exception):
    """Base class for all onboarding failures."""
    pass


class ValidationError(OnboardingError):
    """A required field was missing or blank."""
    pass


class OnboardingIncomplete(OnboardingError):
    """The requested action needs onboarding to be finished first."""
    pass


class RemoteServiceError(OnboardingError):
    """A call to the payment provider failed."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class StorageUnavailable(OnboardingError):
    """The persistence layer could not be reached or failed a query."""
    pass


class InvalidSignature(OnboardingError):
    """A webhook payload failed signature verification."""
    pass


class WebhookProcessingError(OnboardingError):
    """A verified webhook payload could not be decoded into an event."""
    pass
