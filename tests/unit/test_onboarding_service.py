"""
Tests for CoachOnboardingService.

The service runs against the real CoachRepository over the in-memory
Snowflake mock, with the recording FakeStripeGateway from conftest in
place of Stripe.
"""

import time

import pytest

from coachlink.core.onboarding.errors import (
    OnboardingIncomplete,
    RemoteServiceError,
    StorageUnavailable,
    ValidationError,
)
from coachlink.core.onboarding.models import AccountStatus, Coach, OnboardingStatus
from coachlink.core.onboarding.service import (
    MESSAGE_CREATED,
    MESSAGE_EXISTS_COMPLETE,
    MESSAGE_EXISTS_INCOMPLETE,
    CoachOnboardingService,
    normalize_email,
)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

class TestRegisterOrReuse:
    """Creating a Stripe account for an email, or reusing the existing one."""

    @pytest.mark.asyncio
    async def test_new_email_creates_account(self, service, gateway, connection):
        """A first registration creates exactly one account and one row."""
        result = await service.register_or_reuse("a@x.com", "Alex")

        assert result.created is True
        assert result.status == OnboardingStatus.INCOMPLETE
        assert result.message == MESSAGE_CREATED
        assert result.external_account_id == "acct_1"
        assert gateway.create_calls == [("a@x.com", "US")]

        row = connection._get_coach("a@x.com")
        assert row["external_account_id"] == "acct_1"
        assert row["name"] == "Alex"
        assert row["onboarding_complete"] is False
        assert row["payouts_enabled"] is False
        assert row["coach_id"] is not None

    @pytest.mark.asyncio
    async def test_second_registration_reuses_account(self, service, gateway, connection):
        """Registering the same email twice never creates a second account."""
        await service.register_or_reuse("a@x.com", "Alex")

        result = await service.register_or_reuse("a@x.com", "Alex")

        assert result.created is False
        assert result.external_account_id == "acct_1"
        assert result.message == MESSAGE_EXISTS_INCOMPLETE
        assert len(gateway.create_calls) == 1
        assert gateway.status_calls == ["acct_1"]
        assert len(connection._snapshot()) == 1

    @pytest.mark.asyncio
    async def test_email_is_normalized(self, service, gateway):
        """Case and surrounding whitespace don't make a new coach."""
        await service.register_or_reuse("  A@X.com ", "Alex")
        result = await service.register_or_reuse("a@x.com")

        assert result.coach.email == "a@x.com"
        assert len(gateway.create_calls) == 1

    @pytest.mark.asyncio
    async def test_stored_coach_without_account_takes_new_name(self, service, repository, connection):
        """A coach row with no account yet is bound, and the supplied name replaces the stored one."""
        repository.upsert(Coach(email="a@x.com", name="Old"))

        result = await service.register_or_reuse("a@x.com", "Alex")

        assert result.created is True
        row = connection._get_coach("a@x.com")
        assert row["external_account_id"] == "acct_1"
        assert row["name"] == "Alex"

    @pytest.mark.asyncio
    async def test_blank_name_keeps_stored_name(self, service, repository, connection):
        repository.upsert(Coach(email="a@x.com", name="Old"))

        await service.register_or_reuse("a@x.com", "   ")

        assert connection._get_coach("a@x.com")["name"] == "Old"

    @pytest.mark.asyncio
    async def test_reuse_reports_complete_onboarding(self, service, gateway, connection):
        await service.register_or_reuse("a@x.com", "Alex")
        gateway.set_status("acct_1", details_submitted=True, payouts_enabled=True)

        result = await service.register_or_reuse("a@x.com", "Alex")

        assert result.status == OnboardingStatus.COMPLETE
        assert result.message == MESSAGE_EXISTS_COMPLETE
        row = connection._get_coach("a@x.com")
        assert row["onboarding_complete"] is True
        assert row["payouts_enabled"] is True

    @pytest.mark.asyncio
    async def test_reuse_fails_open_when_status_check_fails(self, service, gateway, connection):
        """
        If Stripe can't tell us the status, the coach is told to carry on
        onboarding and the stored record is left alone.
        """
        await service.register_or_reuse("a@x.com", "Alex")
        gateway.set_status("acct_1", details_submitted=True, payouts_enabled=True)
        await service.register_or_reuse("a@x.com", "Alex")
        before = connection._snapshot()

        gateway.fail_status_checks = True
        result = await service.register_or_reuse("a@x.com", "Alex")

        assert result.status == OnboardingStatus.INCOMPLETE
        assert result.message == MESSAGE_EXISTS_INCOMPLETE
        assert result.external_account_id == "acct_1"
        assert connection._snapshot() == before

    @pytest.mark.asyncio
    async def test_missing_email_is_rejected(self, service, gateway, connection):
        for email in (None, "", "   "):
            with pytest.raises(ValidationError, match="Email is required"):
                await service.register_or_reuse(email, "Alex")

        assert gateway.create_calls == []
        assert connection._snapshot() == {}

    @pytest.mark.asyncio
    async def test_create_failure_writes_nothing(self, service, gateway, connection):
        gateway.fail_create = True

        with pytest.raises(RemoteServiceError) as exc_info:
            await service.register_or_reuse("a@x.com", "Alex")

        assert exc_info.value.code == "card_declined"
        assert connection._snapshot() == {}

    @pytest.mark.asyncio
    async def test_distinct_emails_get_distinct_accounts(self, service, gateway):
        first = await service.register_or_reuse("a@x.com", "Alex")
        second = await service.register_or_reuse("b@x.com", "Blair")

        assert first.external_account_id == "acct_1"
        assert second.external_account_id == "acct_2"
        assert first.coach.id != second.coach.id


# ---------------------------------------------------------------------------
# Status refresh
# ---------------------------------------------------------------------------

class TestRefreshStatus:
    """Synchronous reconciliation against Stripe."""

    @pytest.mark.asyncio
    async def test_refresh_caches_flags_on_coach(self, service, gateway, connection):
        await service.register_or_reuse("a@x.com", "Alex")
        gateway.set_status("acct_1", details_submitted=True, payouts_enabled=False)

        status = await service.refresh_status("acct_1")

        assert status == AccountStatus(details_submitted=True, payouts_enabled=False)
        assert status.onboarding_complete is False
        row = connection._get_coach("a@x.com")
        assert row["onboarding_complete"] is True
        assert row["payouts_enabled"] is False

    @pytest.mark.asyncio
    async def test_refresh_advances_updated_at(self, service, connection):
        await service.register_or_reuse("a@x.com", "Alex")
        before = connection._get_coach("a@x.com")["updated_at"]

        time.sleep(0.01)
        await service.refresh_status("acct_1")

        after = connection._get_coach("a@x.com")["updated_at"]
        assert after > before

    @pytest.mark.asyncio
    async def test_refresh_unknown_account_writes_nothing(self, service, gateway, connection):
        """Status for an account nobody owns is returned but never stored."""
        await service.register_or_reuse("a@x.com", "Alex")
        gateway.set_status("acct_orphan", details_submitted=True, payouts_enabled=True)
        before = connection._snapshot()

        status = await service.refresh_status("acct_orphan")

        assert status.onboarding_complete is True
        assert connection._snapshot() == before

    @pytest.mark.asyncio
    async def test_refresh_requires_account_id(self, service, gateway):
        with pytest.raises(ValidationError, match="Account ID is required"):
            await service.refresh_status("")
        assert gateway.status_calls == []

    @pytest.mark.asyncio
    async def test_refresh_propagates_remote_errors(self, service, gateway):
        gateway.fail_status_checks = True
        with pytest.raises(RemoteServiceError):
            await service.refresh_status("acct_1")


class TestApplyRemoteStatus:
    @pytest.mark.asyncio
    async def test_apply_is_idempotent(self, service, connection):
        await service.register_or_reuse("a@x.com", "Alex")
        status = AccountStatus(details_submitted=True, payouts_enabled=True)

        service.apply_remote_status("acct_1", status)
        first = connection._get_coach("a@x.com")
        service.apply_remote_status("acct_1", status)
        second = connection._get_coach("a@x.com")

        for column in ("coach_id", "email", "external_account_id", "onboarding_complete", "payouts_enabled"):
            assert first[column] == second[column]

    def test_apply_for_unknown_account_returns_none(self, service, connection):
        status = AccountStatus(details_submitted=True, payouts_enabled=True)
        assert service.apply_remote_status("acct_missing", status) is None
        assert connection._snapshot() == {}

    @pytest.mark.asyncio
    async def test_touch_changes_only_updated_at(self, service, connection):
        await service.register_or_reuse("a@x.com", "Alex")
        before = connection._get_coach("a@x.com")

        time.sleep(0.01)
        coach = service.touch("acct_1")

        after = connection._get_coach("a@x.com")
        assert coach is not None
        assert after["updated_at"] > before["updated_at"]
        for column in ("coach_id", "email", "name", "external_account_id", "onboarding_complete", "payouts_enabled", "created_at"):
            assert after[column] == before[column]


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

class TestLookup:
    @pytest.mark.asyncio
    async def test_unknown_email_is_not_registered(self, service, gateway):
        result = await service.lookup("nobody@x.com")

        assert result.status == OnboardingStatus.NOT_REGISTERED
        assert not result.is_registered
        assert gateway.status_calls == []

    @pytest.mark.asyncio
    async def test_registered_email_is_refreshed(self, service, gateway):
        await service.register_or_reuse("a@x.com", "Alex")
        gateway.set_status("acct_1", details_submitted=True, payouts_enabled=True)

        result = await service.lookup("A@X.COM")

        assert result.is_registered
        assert result.status == OnboardingStatus.COMPLETE
        assert result.coach.onboarding_complete is True
        assert result.coach.payouts_enabled is True

    @pytest.mark.asyncio
    async def test_remote_failure_is_unknown(self, service, gateway):
        await service.register_or_reuse("a@x.com", "Alex")
        gateway.fail_status_checks = True

        result = await service.lookup("a@x.com")

        assert result.status == OnboardingStatus.UNKNOWN
        assert result.is_registered

    @pytest.mark.asyncio
    async def test_lookup_requires_email(self, service):
        with pytest.raises(ValidationError):
            await service.lookup(None)


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------

class TestLinks:
    @pytest.mark.asyncio
    async def test_onboarding_link_uses_configured_urls(self, service, gateway):
        url = await service.create_onboarding_link("acct_1")

        assert url == "https://connect.stripe.com/setup/e/acct_1"
        assert gateway.onboarding_link_calls == [(
            "acct_1",
            "http://localhost:3000/onboarding/refresh",
            "http://localhost:3000/onboarding/complete?accountId=acct_1",
        )]

    @pytest.mark.asyncio
    async def test_onboarding_link_requires_account_id(self, service, gateway):
        with pytest.raises(ValidationError, match="Account ID is required"):
            await service.create_onboarding_link(None)
        assert gateway.onboarding_link_calls == []

    @pytest.mark.asyncio
    async def test_dashboard_link_after_details_submitted(self, service, gateway):
        await service.register_or_reuse("a@x.com", "Alex")
        gateway.set_status("acct_1", details_submitted=True, payouts_enabled=False)

        url = await service.create_dashboard_link("acct_1")

        assert url == "https://connect.stripe.com/express/acct_1"
        assert gateway.login_link_calls == ["acct_1"]

    @pytest.mark.asyncio
    async def test_dashboard_link_refused_before_details(self, service, gateway):
        await service.register_or_reuse("a@x.com", "Alex")

        with pytest.raises(OnboardingIncomplete, match="not complete"):
            await service.create_dashboard_link("acct_1")

        assert gateway.login_link_calls == []


# ---------------------------------------------------------------------------
# Listing and helpers
# ---------------------------------------------------------------------------

class TestListCoaches:
    @pytest.mark.asyncio
    async def test_lists_every_coach(self, service):
        await service.register_or_reuse("a@x.com", "Alex")
        time.sleep(0.01)
        await service.register_or_reuse("b@x.com", "Blair")

        coaches = service.list_coaches()

        # Newest first
        assert [c.email for c in coaches] == ["b@x.com", "a@x.com"]

    def test_storage_failure_surfaces(self, urls, gateway):
        class BrokenStore:
            def list_all(self):
                raise StorageUnavailable("warehouse suspended")

        service = CoachOnboardingService(store=BrokenStore(), gateway=gateway, urls=urls)
        with pytest.raises(StorageUnavailable):
            service.list_coaches()


def test_normalize_email():
    assert normalize_email("  Coach@Example.COM ") == "coach@example.com"
