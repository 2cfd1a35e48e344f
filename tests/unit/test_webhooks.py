"""
Tests for webhook verification, parsing and dispatch.

Deliveries are signed with the same HMAC scheme Stripe uses, so these
exercise the real verification path.
"""

import json
import time

import pytest

from coachlink.core.onboarding.errors import InvalidSignature, StorageUnavailable
from coachlink.core.onboarding.service import CoachOnboardingService
from coachlink.core.onboarding.webhooks import (
    ACCOUNT_APPLICATION_AUTHORIZED,
    ACCOUNT_UPDATED,
    AccountApplicationAuthorized,
    AccountUpdated,
    UnhandledEvent,
    WebhookHandler,
    parse_event,
)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class TestParseEvent:
    def test_account_updated(self):
        event = parse_event({
            "id": "evt_1",
            "type": ACCOUNT_UPDATED,
            "data": {"object": {"id": "acct_1", "details_submitted": True, "payouts_enabled": False}},
        })

        assert isinstance(event, AccountUpdated)
        assert event.account_id == "acct_1"
        assert event.status.details_submitted is True
        assert event.status.payouts_enabled is False

    def test_account_updated_missing_flags_default_false(self):
        event = parse_event({
            "id": "evt_1",
            "type": ACCOUNT_UPDATED,
            "data": {"object": {"id": "acct_1"}},
        })
        assert event.details_submitted is False
        assert event.payouts_enabled is False

    def test_application_authorized_prefers_top_level_account(self):
        event = parse_event({
            "id": "evt_2",
            "type": ACCOUNT_APPLICATION_AUTHORIZED,
            "account": "acct_1",
            "data": {"object": {"id": "ca_platform"}},
        })

        assert isinstance(event, AccountApplicationAuthorized)
        assert event.account_id == "acct_1"

    def test_unknown_type_is_unhandled(self):
        event = parse_event({"id": "evt_3", "type": "payout.paid", "data": {"object": {}}})

        assert isinstance(event, UnhandledEvent)
        assert event.event_type == "payout.paid"

    def test_account_updated_without_object_raises(self):
        with pytest.raises(KeyError):
            parse_event({"id": "evt_4", "type": ACCOUNT_UPDATED, "data": {}})


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------

class TestWebhookHandler:
    """Verification, then persist-on-match."""

    @pytest.mark.asyncio
    async def test_account_updated_caches_flags(self, service, webhook_handler, connection, make_event, sign):
        await service.register_or_reuse("a@x.com", "Alex")
        payload = make_event(
            ACCOUNT_UPDATED,
            {"id": "acct_1", "details_submitted": True, "payouts_enabled": True},
        )

        receipt = webhook_handler.handle(payload, sign(payload))

        assert receipt.processed is True
        assert receipt.event_type == ACCOUNT_UPDATED
        assert receipt.event_id == "evt_test_1"
        row = connection._get_coach("a@x.com")
        assert row["onboarding_complete"] is True
        assert row["payouts_enabled"] is True

    @pytest.mark.asyncio
    async def test_account_updated_is_idempotent(self, service, webhook_handler, connection, make_event, sign):
        """Redelivery of the same event leaves the same flags."""
        await service.register_or_reuse("a@x.com", "Alex")
        payload = make_event(
            ACCOUNT_UPDATED,
            {"id": "acct_1", "details_submitted": True, "payouts_enabled": False},
        )

        webhook_handler.handle(payload, sign(payload))
        first = connection._get_coach("a@x.com")
        webhook_handler.handle(payload, sign(payload))
        second = connection._get_coach("a@x.com")

        assert len(connection._snapshot()) == 1
        for column in ("coach_id", "external_account_id", "onboarding_complete", "payouts_enabled"):
            assert first[column] == second[column]

    def test_account_updated_for_unknown_account(self, webhook_handler, connection, make_event, sign):
        """No coach owns the account: acknowledged, nothing written."""
        payload = make_event(
            ACCOUNT_UPDATED,
            {"id": "acct_stranger", "details_submitted": True, "payouts_enabled": True},
        )

        receipt = webhook_handler.handle(payload, sign(payload))

        assert receipt.processed is False
        assert connection._snapshot() == {}

    @pytest.mark.asyncio
    async def test_invalid_signature_changes_nothing(self, service, webhook_handler, connection, make_event, sign):
        await service.register_or_reuse("a@x.com", "Alex")
        before = connection._snapshot()
        payload = make_event(
            ACCOUNT_UPDATED,
            {"id": "acct_1", "details_submitted": True, "payouts_enabled": True},
        )

        with pytest.raises(InvalidSignature):
            webhook_handler.handle(payload, sign(payload, secret="whsec_wrong"))

        assert connection._snapshot() == before

    def test_tampered_payload_is_rejected(self, webhook_handler, make_event, sign):
        payload = make_event(ACCOUNT_UPDATED, {"id": "acct_1", "details_submitted": False})
        header = sign(payload)
        tampered = payload.replace(b"false", b"true ")

        with pytest.raises(InvalidSignature):
            webhook_handler.handle(tampered, header)

    def test_missing_signature_header(self, webhook_handler, make_event):
        payload = make_event(ACCOUNT_UPDATED, {"id": "acct_1"})

        with pytest.raises(InvalidSignature):
            webhook_handler.handle(payload, "")

    def test_unsigned_garbage_is_invalid_signature(self, webhook_handler):
        with pytest.raises(InvalidSignature):
            webhook_handler.handle(b"not json", "t=1,v1=deadbeef")

    def test_signed_non_json_is_acknowledged_unprocessed(self, webhook_handler, connection, sign):
        """A correctly signed body that isn't an event is logged, not rejected."""
        payload = b"not json"

        receipt = webhook_handler.handle(payload, sign(payload))

        assert receipt.processed is False
        assert connection._snapshot() == {}

    @pytest.mark.asyncio
    async def test_application_authorized_touches_only_updated_at(
        self, service, webhook_handler, connection, make_event, sign
    ):
        await service.register_or_reuse("a@x.com", "Alex")
        before = connection._get_coach("a@x.com")
        payload = make_event(
            ACCOUNT_APPLICATION_AUTHORIZED,
            {"id": "ca_platform", "object": "application"},
            account="acct_1",
        )

        time.sleep(0.01)
        receipt = webhook_handler.handle(payload, sign(payload))

        assert receipt.processed is True
        after = connection._get_coach("a@x.com")
        assert after["updated_at"] > before["updated_at"]
        for column in ("coach_id", "external_account_id", "onboarding_complete", "payouts_enabled", "created_at"):
            assert after[column] == before[column]

    def test_unhandled_event_is_acknowledged(self, webhook_handler, connection, make_event, sign):
        payload = make_event("payout.paid", {"id": "po_1"})

        receipt = webhook_handler.handle(payload, sign(payload))

        assert receipt.processed is False
        assert receipt.event_type == "payout.paid"
        assert connection._snapshot() == {}

    def test_malformed_event_is_absorbed(self, webhook_handler, sign):
        """A signed account.updated with no account object is logged, not raised."""
        payload = json.dumps({"id": "evt_bad", "type": ACCOUNT_UPDATED, "data": {}}).encode()

        receipt = webhook_handler.handle(payload, sign(payload))

        assert receipt.processed is False
        assert receipt.event_id == "evt_bad"

    def test_storage_failure_is_absorbed(self, gateway, urls, make_event, sign):
        """Once a delivery is verified, processing errors never reach the sender."""
        class BrokenStore:
            def find_by_external_id(self, external_account_id):
                raise StorageUnavailable("warehouse suspended")

        service = CoachOnboardingService(store=BrokenStore(), gateway=gateway, urls=urls)
        handler = WebhookHandler(gateway=gateway, service=service, webhook_secret="whsec_test_secret")
        payload = make_event(
            ACCOUNT_UPDATED,
            {"id": "acct_1", "details_submitted": True, "payouts_enabled": True},
        )

        receipt = handler.handle(payload, sign(payload))

        assert receipt.processed is False
