"""
Shared fixtures.

Tests use the real CoachRepository over the in-memory Snowflake mock, and
a recording fake in place of Stripe so we can assert exactly which remote
calls were made.
"""

import json
from typing import Callable, Optional

import pytest

from coachlink.core.onboarding.errors import RemoteServiceError
from coachlink.core.onboarding.models import AccountStatus, OnboardingUrls
from coachlink.core.onboarding.service import CoachOnboardingService
from coachlink.core.onboarding.webhooks import WebhookHandler
from coachlink.infrastructure.snowflake.client import MockSnowflakeConnection
from coachlink.infrastructure.snowflake.repositories.coaches import CoachRepository
from coachlink.infrastructure.stripe.client import sign_payload, verify_event


WEBHOOK_SECRET = "whsec_test_secret"


class FakeStripeGateway:
    """
    Stand-in for Stripe that hands out acct_1, acct_2, ... and records calls.

    Statuses can be set per account; `fail_status_checks` makes every
    status read raise RemoteServiceError.
    """

    def __init__(self) -> None:
        self.statuses: dict[str, AccountStatus] = {}
        self.create_calls: list[tuple[str, str]] = []
        self.status_calls: list[str] = []
        self.onboarding_link_calls: list[tuple[str, str, str]] = []
        self.login_link_calls: list[str] = []
        self.fail_status_checks = False
        self.fail_create = False

    async def create_account(self, email: str, country: str = "US") -> str:
        if self.fail_create:
            raise RemoteServiceError("Failed to create account: card_declined", code="card_declined")
        self.create_calls.append((email, country))
        account_id = f"acct_{len(self.create_calls)}"
        self.statuses[account_id] = AccountStatus(details_submitted=False, payouts_enabled=False)
        return account_id

    async def create_onboarding_link(self, external_account_id: str, refresh_url: str, return_url: str) -> str:
        self.onboarding_link_calls.append((external_account_id, refresh_url, return_url))
        return f"https://connect.stripe.com/setup/e/{external_account_id}"

    async def create_login_link(self, external_account_id: str) -> str:
        self.login_link_calls.append(external_account_id)
        return f"https://connect.stripe.com/express/{external_account_id}"

    async def get_account_status(self, external_account_id: str) -> AccountStatus:
        self.status_calls.append(external_account_id)
        if self.fail_status_checks:
            raise RemoteServiceError("Failed to retrieve account: api_connection_error")
        if external_account_id not in self.statuses:
            raise RemoteServiceError(
                f"Failed to retrieve account: No such account: '{external_account_id}'",
                code="resource_missing",
            )
        return self.statuses[external_account_id]

    def verify_webhook_signature(self, payload: bytes, signature_header: str, secret: str) -> dict:
        return verify_event(payload, signature_header, secret)

    def set_status(self, external_account_id: str, details_submitted: bool, payouts_enabled: bool) -> None:
        self.statuses[external_account_id] = AccountStatus(
            details_submitted=details_submitted,
            payouts_enabled=payouts_enabled,
        )


@pytest.fixture
def connection() -> MockSnowflakeConnection:
    return MockSnowflakeConnection()


@pytest.fixture
def repository(connection) -> CoachRepository:
    return CoachRepository(connection)


@pytest.fixture
def gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest.fixture
def urls() -> OnboardingUrls:
    return OnboardingUrls(
        refresh_url="http://localhost:3000/onboarding/refresh",
        return_url="http://localhost:3000/onboarding/complete",
    )


@pytest.fixture
def service(repository, gateway, urls) -> CoachOnboardingService:
    return CoachOnboardingService(store=repository, gateway=gateway, urls=urls)


@pytest.fixture
def webhook_handler(gateway, service) -> WebhookHandler:
    return WebhookHandler(gateway=gateway, service=service, webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def make_event() -> Callable[..., bytes]:
    """Build a raw Stripe event payload."""

    def _make(
        event_type: str,
        data_object: dict,
        account: Optional[str] = None,
        event_id: str = "evt_test_1",
    ) -> bytes:
        envelope = {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {"object": data_object},
        }
        if account is not None:
            envelope["account"] = account
        return json.dumps(envelope).encode("utf-8")

    return _make


@pytest.fixture
def sign() -> Callable[[bytes], str]:
    """Stripe-Signature header for a payload, signed with the test secret."""

    def _sign(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
        return sign_payload(payload, secret)

    return _sign
