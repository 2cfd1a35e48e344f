"""
Stripe Connect integration.

Implements the RemoteAccountGateway protocol from core.onboarding.service.
"""

from .client import (
    MockStripeGateway,
    StripeAccountGateway,
    StripeConfig,
    create_stripe_gateway,
    sign_payload,
    verify_event,
)

__all__ = [
    "MockStripeGateway",
    "StripeAccountGateway",
    "StripeConfig",
    "create_stripe_gateway",
    "sign_payload",
    "verify_event",
]
