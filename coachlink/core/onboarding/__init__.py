"""
Coach payout onboarding.

Contains the reconciliation service, the webhook handler, domain models
and the error taxonomy.
"""

from .errors import (
    InvalidSignature,
    OnboardingError,
    OnboardingIncomplete,
    RemoteServiceError,
    StorageUnavailable,
    ValidationError,
    WebhookProcessingError,
)
from .models import (
    AccountStatus,
    Coach,
    LookupResult,
    OnboardingStatus,
    OnboardingUrls,
    RegistrationResult,
)
from .service import CoachOnboardingService, CoachStore, RemoteAccountGateway
from .webhooks import WebhookHandler, WebhookReceipt

__all__ = [
    "AccountStatus",
    "Coach",
    "LookupResult",
    "OnboardingStatus",
    "OnboardingUrls",
    "RegistrationResult",
    "CoachOnboardingService",
    "CoachStore",
    "RemoteAccountGateway",
    "WebhookHandler",
    "WebhookReceipt",
    "InvalidSignature",
    "OnboardingError",
    "OnboardingIncomplete",
    "RemoteServiceError",
    "StorageUnavailable",
    "ValidationError",
    "WebhookProcessingError",
]
