"""
Coach onboarding and account-state reconciliation.

This module is the "source of truth" logic for how local coach records
relate to the payment provider's connected accounts. The store only ever
caches remote state; every entry point (registration, status checks,
webhooks) goes through the same persist-on-match path defined here.

It's framework-agnostic: no FastAPI, no Stripe SDK, no Snowflake.
"""

import logging
from typing import Optional, Protocol

from .errors import OnboardingIncomplete, RemoteServiceError, ValidationError
from .models import (
    AccountStatus,
    Coach,
    LookupResult,
    OnboardingStatus,
    OnboardingUrls,
    RegistrationResult,
)


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class CoachStore(Protocol):
    """
    Persistence for coach records.

    `upsert` is the only mutation. Implementations raise StorageUnavailable
    when the backing database fails.
    """

    def find_by_email(self, email: str) -> Optional[Coach]: ...

    def find_by_external_id(self, external_account_id: str) -> Optional[Coach]: ...

    def upsert(self, coach: Coach) -> Coach: ...

    def list_all(self) -> list[Coach]: ...


class RemoteAccountGateway(Protocol):
    """
    The payment provider's connected-account capability.

    Every remote call may raise RemoteServiceError. Signature verification
    is local and raises InvalidSignature.
    """

    async def create_account(self, email: str, country: str = "US") -> str:
        """Create an express account with transfers requested. Returns its id."""
        ...

    async def create_onboarding_link(
        self,
        external_account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> str:
        """Single-use hosted onboarding URL."""
        ...

    async def create_login_link(self, external_account_id: str) -> str:
        """Express dashboard URL."""
        ...

    async def get_account_status(self, external_account_id: str) -> AccountStatus:
        ...

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature_header: str,
        secret: str,
    ) -> dict:
        """Verify and decode a webhook delivery into its event envelope."""
        ...


def _require(value: Optional[str], field_name: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value.strip()


def normalize_email(email: Optional[str]) -> str:
    return _require(email, "Email").lower()


# ---------------------------------------------------------------------------
# Onboarding Service
# ---------------------------------------------------------------------------

MESSAGE_CREATED = "Stripe account created successfully"
MESSAGE_EXISTS_COMPLETE = "Account already exists and onboarding is complete"
MESSAGE_EXISTS_INCOMPLETE = "Account already exists. Please complete onboarding"


class CoachOnboardingService:
    """
    Orchestrates registration, status refresh and link generation.

    Stateless beyond its collaborators; each call reads the store, maybe
    calls the gateway, and writes the store.
    """

    def __init__(
        self,
        store: CoachStore,
        gateway: RemoteAccountGateway,
        urls: OnboardingUrls,
        country: str = "US",
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._urls = urls
        self._country = country

    async def register_or_reuse(
        self,
        email: Optional[str],
        name: Optional[str] = None,
    ) -> RegistrationResult:
        """
        Create a connected account for an email, or reuse the one it has.

        An email already bound to an external account never gets a second
        one. If the status check on the existing account fails we report
        it as incomplete and let the coach carry on with onboarding.
        """
        email = normalize_email(email)
        coach = self._store.find_by_email(email)

        if coach is not None and coach.has_external_account:
            return await self._reuse(coach)

        external_account_id = await self._gateway.create_account(email, country=self._country)

        if coach is None:
            coach = Coach(email=email, name=(name or "").strip())
        elif name and name.strip():
            coach.name = name.strip()
        coach.bind_external_account(external_account_id)
        coach = self._store.upsert(coach)

        logger.info(
            "Created external account for coach",
            extra={"email": email, "external_account_id": external_account_id},
        )

        return RegistrationResult(
            coach=coach,
            status=OnboardingStatus.INCOMPLETE,
            message=MESSAGE_CREATED,
            created=True,
        )

    async def _reuse(self, coach: Coach) -> RegistrationResult:
        try:
            status = await self._gateway.get_account_status(coach.external_account_id)
        except RemoteServiceError as e:
            # Fail open: a provider outage looks like unfinished onboarding
            logger.warning(
                "Status check failed for existing account, treating as incomplete",
                extra={
                    "external_account_id": coach.external_account_id,
                    "code": e.code,
                    "error": e.message,
                },
            )
            return RegistrationResult(
                coach=coach,
                status=OnboardingStatus.INCOMPLETE,
                message=MESSAGE_EXISTS_INCOMPLETE,
            )

        coach.apply_status(status)
        coach = self._store.upsert(coach)

        message = (
            MESSAGE_EXISTS_COMPLETE
            if status.details_submitted
            else MESSAGE_EXISTS_INCOMPLETE
        )
        return RegistrationResult(
            coach=coach,
            status=status.onboarding_status,
            message=message,
        )

    async def refresh_status(self, external_account_id: Optional[str]) -> AccountStatus:
        """
        Read the remote status and cache it on the matching coach.

        Always returns the fresh remote values, whether or not a coach
        matched. An unknown account id never creates a record.
        """
        external_account_id = _require(external_account_id, "Account ID")
        status = await self._gateway.get_account_status(external_account_id)
        self.apply_remote_status(external_account_id, status)
        return status

    def apply_remote_status(
        self,
        external_account_id: str,
        status: AccountStatus,
    ) -> Optional[Coach]:
        """Persist both flags on the coach bound to this account, if any."""
        coach = self._store.find_by_external_id(external_account_id)
        if coach is None:
            logger.debug(
                "No coach bound to external account, status not cached",
                extra={"external_account_id": external_account_id},
            )
            return None

        coach.apply_status(status)
        coach = self._store.upsert(coach)

        logger.debug(
            "Cached remote account status",
            extra={
                "email": coach.email,
                "details_submitted": status.details_submitted,
                "payouts_enabled": status.payouts_enabled,
            },
        )
        return coach

    def touch(self, external_account_id: str) -> Optional[Coach]:
        """Record activity on the coach bound to this account without changing flags."""
        coach = self._store.find_by_external_id(external_account_id)
        if coach is None:
            return None
        coach.touch()
        return self._store.upsert(coach)

    async def lookup(self, email: Optional[str]) -> LookupResult:
        """
        Report whether an email is registered and how far onboarding got.

        A remote failure yields UNKNOWN instead of an error so the
        frontend can still route the coach.
        """
        email = normalize_email(email)
        coach = self._store.find_by_email(email)

        if coach is None or not coach.has_external_account:
            return LookupResult(email=email, status=OnboardingStatus.NOT_REGISTERED, coach=coach)

        try:
            status = await self.refresh_status(coach.external_account_id)
        except RemoteServiceError as e:
            logger.error(
                "Failed to check account status for existing coach",
                extra={"email": email, "error": e.message},
            )
            return LookupResult(email=email, status=OnboardingStatus.UNKNOWN, coach=coach)

        refreshed = self._store.find_by_email(email) or coach
        return LookupResult(email=email, status=status.onboarding_status, coach=refreshed)

    async def create_onboarding_link(self, external_account_id: Optional[str]) -> str:
        external_account_id = _require(external_account_id, "Account ID")
        url = await self._gateway.create_onboarding_link(
            external_account_id,
            refresh_url=self._urls.refresh_url,
            return_url=self._urls.return_url_for(external_account_id),
        )
        logger.info(
            "Generated onboarding link",
            extra={"external_account_id": external_account_id},
        )
        return url

    async def create_dashboard_link(self, external_account_id: Optional[str]) -> str:
        """Express dashboard link, only once onboarding details are in."""
        external_account_id = _require(external_account_id, "Account ID")
        status = await self.refresh_status(external_account_id)
        if not status.details_submitted:
            raise OnboardingIncomplete("Account onboarding not complete")

        url = await self._gateway.create_login_link(external_account_id)
        logger.info(
            "Generated dashboard link",
            extra={"external_account_id": external_account_id},
        )
        return url

    def list_coaches(self) -> list[Coach]:
        return self._store.list_all()
