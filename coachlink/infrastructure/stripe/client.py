"""
Stripe Connect client wrapper.

This module provides a thin wrapper around the Stripe SDK that:
1. Implements our RemoteAccountGateway protocol
2. Handles Stripe-specific details (express accounts, account links, login links)
3. Translates SDK exceptions into our error taxonomy
4. Includes a mock gateway for local development without Stripe credentials

The wrapper owns its own StripeClient instead of setting the module-global
`stripe.api_key`, so two gateways with different keys can coexist.
"""

import asyncio
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Optional
from uuid import uuid4

import stripe

from coachlink.core.onboarding.errors import (
    InvalidSignature,
    RemoteServiceError,
    WebhookProcessingError,
)
from coachlink.core.onboarding.models import AccountStatus
from coachlink.core.onboarding.service import RemoteAccountGateway


logger = logging.getLogger(__name__)

WEBHOOK_TOLERANCE_SECONDS = 300


@dataclass
class StripeConfig:
    """
    Configuration for the Stripe client.

    Using a dataclass instead of raw values means:
    - Configuration is explicit and documented
    - We can validate at construction time
    - Easy to create test configurations
    """
    secret_key: str
    country: str = "US"  # Express accounts are created in a single country for now

    def __post_init__(self) -> None:
        if not self.secret_key:
            raise ValueError("Stripe secret key is required")
        if len(self.country) != 2:
            raise ValueError("country must be a two-letter ISO code")


# ---------------------------------------------------------------------------
# Webhook verification
# ---------------------------------------------------------------------------

def verify_event(
    payload: bytes,
    signature_header: str,
    secret: str,
    tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
) -> dict:
    """
    Verify a Stripe-Signature header and decode the event envelope.

    Verification is an offline HMAC check, so the mock gateway uses it too.
    """
    if not secret:
        raise InvalidSignature("Webhook secret is not configured")

    if isinstance(payload, bytes):
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidSignature("Payload is not valid UTF-8")
    else:
        text = payload

    try:
        stripe.WebhookSignature.verify_header(text, signature_header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning("Invalid webhook signature", extra={"error": str(e)})
        raise InvalidSignature(str(e))

    try:
        envelope = json.loads(text)
    except json.JSONDecodeError as e:
        raise WebhookProcessingError(f"Invalid payload: {e}")

    if not isinstance(envelope, dict):
        raise WebhookProcessingError("Invalid payload: expected a JSON object")

    return envelope


def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """
    Build a Stripe-Signature header for a payload.

    Used by the mock gateway's local tooling and by tests to produce
    deliveries that pass verify_event.
    """
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload.decode('utf-8')}"
    signature = hmac.new(secret.encode("utf-8"), signed.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={timestamp},{stripe.WebhookSignature.EXPECTED_SCHEME}={signature}"


# ---------------------------------------------------------------------------
# Stripe Gateway
# ---------------------------------------------------------------------------

class StripeAccountGateway(RemoteAccountGateway):
    """
    Implementation of RemoteAccountGateway using Stripe Connect.

    This class knows about Stripe's API but doesn't know about coaches or
    the store. The SDK is synchronous, so each call runs in a worker
    thread to keep the event loop free.
    """

    def __init__(self, config: StripeConfig) -> None:
        self._config = config
        self._client = stripe.StripeClient(config.secret_key)

    async def create_account(self, email: str, country: Optional[str] = None) -> str:
        try:
            account = await asyncio.to_thread(
                self._client.accounts.create,
                params={
                    "type": "express",
                    "email": email,
                    "country": country or self._config.country,
                    "capabilities": {"transfers": {"requested": True}},
                }
            )
        except stripe.StripeError as e:
            raise self._translate("create account", e)

        logger.info("Created Stripe account", extra={"account_id": account.id})
        return account.id

    async def create_onboarding_link(
        self,
        external_account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> str:
        try:
            link = await asyncio.to_thread(
                self._client.account_links.create,
                params={
                    "account": external_account_id,
                    "refresh_url": refresh_url,
                    "return_url": return_url,
                    "type": "account_onboarding",
                }
            )
        except stripe.StripeError as e:
            raise self._translate("create onboarding link", e)

        return link.url

    async def create_login_link(self, external_account_id: str) -> str:
        try:
            link = await asyncio.to_thread(
                self._client.accounts.login_links.create,
                external_account_id,
            )
        except stripe.StripeError as e:
            raise self._translate("create dashboard link", e)

        return link.url

    async def get_account_status(self, external_account_id: str) -> AccountStatus:
        try:
            account = await asyncio.to_thread(
                self._client.accounts.retrieve,
                external_account_id,
            )
        except stripe.StripeError as e:
            raise self._translate("retrieve account", e)

        return AccountStatus(
            details_submitted=bool(account.details_submitted),
            payouts_enabled=bool(account.payouts_enabled),
        )

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature_header: str,
        secret: str,
    ) -> dict:
        return verify_event(payload, signature_header, secret)

    def _translate(self, action: str, error: stripe.StripeError) -> RemoteServiceError:
        message = error.user_message or str(error)
        logger.error(
            "Stripe API error",
            extra={
                "action": action,
                "code": error.code,
                "status": error.http_status,
                "error": message,
            },
        )
        return RemoteServiceError(f"Failed to {action}: {message}", code=error.code)


# ---------------------------------------------------------------------------
# Mock Gateway for Local Development
# ---------------------------------------------------------------------------

@dataclass
class MockAccount:
    account_id: str
    email: str
    country: str
    details_submitted: bool = False
    payouts_enabled: bool = False


@dataclass
class MockStripeGateway:
    """
    In-memory stand-in for Stripe Connect.

    Accounts live in a dict keyed by id. Links point at fake
    connect.stripe.com URLs. Perfect for:
    - Local development
    - Frontend work without a Stripe test account
    - CI/CD environments
    """
    accounts: dict[str, MockAccount] = field(default_factory=dict)

    async def create_account(self, email: str, country: str = "US") -> str:
        account_id = f"acct_mock_{uuid4().hex[:16]}"
        self.accounts[account_id] = MockAccount(
            account_id=account_id,
            email=email,
            country=country,
        )
        logger.info("Created mock Stripe account", extra={"account_id": account_id})
        return account_id

    async def create_onboarding_link(
        self,
        external_account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> str:
        self._get(external_account_id)
        return f"https://connect.stripe.com/setup/mock/{external_account_id}"

    async def create_login_link(self, external_account_id: str) -> str:
        self._get(external_account_id)
        return f"https://connect.stripe.com/express/mock/{external_account_id}"

    async def get_account_status(self, external_account_id: str) -> AccountStatus:
        account = self._get(external_account_id)
        return AccountStatus(
            details_submitted=account.details_submitted,
            payouts_enabled=account.payouts_enabled,
        )

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature_header: str,
        secret: str,
    ) -> dict:
        return verify_event(payload, signature_header, secret)

    def complete_onboarding(self, external_account_id: str, payouts_enabled: bool = True) -> None:
        """Simulate the coach finishing the hosted flow."""
        account = self._get(external_account_id)
        account.details_submitted = True
        account.payouts_enabled = payouts_enabled

    def _get(self, external_account_id: str) -> MockAccount:
        account = self.accounts.get(external_account_id)
        if account is None:
            raise RemoteServiceError(
                f"No such account: '{external_account_id}'",
                code="resource_missing",
            )
        return account


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_stripe_gateway(
    config: Optional[StripeConfig] = None,
    mock_mode: bool = False,
) -> RemoteAccountGateway:
    """
    Create a gateway based on configuration.

    Args:
        config: Stripe configuration (required if not mock_mode)
        mock_mode: If True, return an in-memory gateway
    """
    if mock_mode:
        return MockStripeGateway()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return StripeAccountGateway(config)
