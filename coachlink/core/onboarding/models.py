"""
Domain models for coach payout onboarding.

These models represent the core business concepts. They have no dependencies
on Stripe, Snowflake or FastAPI. The store is a cache of the remote account
state; these objects only describe what we know locally.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OnboardingStatus(Enum):
    """How far a coach has got with hosted onboarding, as reported to clients."""
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"
    UNKNOWN = "unknown"  # Remote check failed, we could not tell
    NOT_REGISTERED = "not_registered"


@dataclass(frozen=True)
class AccountStatus:
    """
    The remote account state we mirror locally.

    Frozen because a status is a snapshot read from the payment provider,
    never edited in place.
    """
    details_submitted: bool
    payouts_enabled: bool

    @property
    def onboarding_complete(self) -> bool:
        """Both details submitted and payouts switched on."""
        return self.details_submitted and self.payouts_enabled

    @property
    def onboarding_status(self) -> OnboardingStatus:
        if self.details_submitted:
            return OnboardingStatus.COMPLETE
        return OnboardingStatus.INCOMPLETE


@dataclass
class Coach:
    """
    A platform user who receives payouts.

    The only entity in the system. `id` and `created_at` are assigned by
    the store on first persistence; `external_account_id` is bound once
    and never changes after that.
    """
    email: str
    name: str = ""
    id: Optional[str] = None
    external_account_id: Optional[str] = None
    onboarding_complete: bool = False
    payouts_enabled: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.email or not self.email.strip():
            raise ValueError("Coach email cannot be empty")

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    @property
    def has_external_account(self) -> bool:
        return self.external_account_id is not None

    @property
    def onboarding_status(self) -> OnboardingStatus:
        """Status as last cached locally. Callers wanting truth should refresh."""
        if not self.has_external_account:
            return OnboardingStatus.NOT_REGISTERED
        if self.onboarding_complete:
            return OnboardingStatus.COMPLETE
        return OnboardingStatus.INCOMPLETE

    def bind_external_account(self, external_account_id: str) -> None:
        """
        Attach the remote account created for this coach.

        Rebinding to the same id is a no-op; rebinding to a different id
        is refused.
        """
        if not external_account_id:
            raise ValueError("External account id cannot be empty")
        if self.external_account_id is not None:
            if self.external_account_id != external_account_id:
                raise ValueError(
                    f"Coach already bound to external account {self.external_account_id}"
                )
            return
        self.external_account_id = external_account_id
        self.onboarding_complete = False
        self.payouts_enabled = False
        self.touch()

    def apply_status(self, status: AccountStatus) -> None:
        """Overwrite both cached flags from a fresh remote read."""
        self.onboarding_complete = status.details_submitted
        self.payouts_enabled = status.payouts_enabled
        self.touch()

    def touch(self) -> None:
        self.updated_at = utc_now()


@dataclass
class RegistrationResult:
    """Outcome of a register-or-reuse request."""
    coach: Coach
    status: OnboardingStatus
    message: str
    created: bool = False  # True when a new remote account was created

    @property
    def external_account_id(self) -> Optional[str]:
        return self.coach.external_account_id


@dataclass
class LookupResult:
    """What we know about an email address, refreshed where possible."""
    email: str
    status: OnboardingStatus
    coach: Optional[Coach] = None

    @property
    def is_registered(self) -> bool:
        return self.coach is not None and self.coach.has_external_account


@dataclass(frozen=True)
class OnboardingUrls:
    """Where the hosted onboarding flow sends the coach back to."""
    refresh_url: str
    return_url: str

    def return_url_for(self, external_account_id: str) -> str:
        """Return URL carrying the account id so the frontend can check status."""
        separator = "&" if "?" in self.return_url else "?"
        return f"{self.return_url}{separator}accountId={external_account_id}"
