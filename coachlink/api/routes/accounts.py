"""
Coach account API endpoints.

Registration, hosted onboarding links, status checks and dashboard links
for coaches' Stripe Express accounts. The routes only validate and shape;
every decision about creating or reusing accounts lives in
CoachOnboardingService.

Failures raised by the service (validation, Stripe, storage) are turned
into envelope responses by the exception handlers in main.py.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from ...core.onboarding.models import Coach, OnboardingStatus
from ..dependencies import OnboardingServiceDep
from ..responses import ApiResponse

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class CreateAccountRequest(BaseModel):
    """Request to register a coach and create their Stripe account."""
    email: Optional[str] = Field(None, description="Coach's email address", max_length=320)
    name: Optional[str] = Field(None, description="Display name", max_length=200)


class OnboardingLinkRequest(BaseModel):
    """Request for a hosted onboarding link."""
    external_account_id: Optional[str] = Field(None, description="Stripe account ID (acct_...)")


class CoachResponse(BaseModel):
    """A coach and their onboarding state."""
    id: Optional[str] = Field(None, description="Coach identifier")
    email: str = Field(description="Coach's email address")
    name: Optional[str] = Field(None, description="Display name")
    external_account_id: Optional[str] = Field(None, description="Stripe account ID")
    status: str = Field(description="complete, incomplete, unknown or not_registered")
    is_registered: bool = Field(description="Whether a Stripe account exists for this coach")

    @classmethod
    def from_coach(cls, coach: Coach, onboarding_status: OnboardingStatus) -> "CoachResponse":
        return cls(
            id=coach.id,
            email=coach.email,
            name=coach.name or None,
            external_account_id=coach.external_account_id,
            status=onboarding_status.value,
            is_registered=coach.has_external_account,
        )


class OnboardingLinkResponse(BaseModel):
    onboarding_url: str = Field(description="Single-use Stripe onboarding URL")


class AccountStatusResponse(BaseModel):
    """Fresh account state as reported by Stripe."""
    external_account_id: str
    details_submitted: bool
    payouts_enabled: bool
    onboarding_complete: bool = Field(description="Details submitted and payouts enabled")


class DashboardLinkResponse(BaseModel):
    dashboard_url: str = Field(description="Stripe Express dashboard URL")


class CoachSummary(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    external_account_id: Optional[str] = None
    onboarding_complete: bool
    payouts_enabled: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CoachListResponse(BaseModel):
    coaches: list[CoachSummary]
    total: int


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=ApiResponse[CoachResponse],
    status_code=status.HTTP_200_OK,
    summary="Register coach",
    description="Create a Stripe Express account for an email, or reuse the one it already has",
)
async def create_account(
    request: CreateAccountRequest,
    service: OnboardingServiceDep,
) -> ApiResponse[CoachResponse]:
    """
    Register a coach.

    Calling this twice for the same email never creates a second Stripe
    account: the second call refreshes and reports the existing one.
    """
    logger.info("Processing account registration", extra={"email": request.email})

    result = await service.register_or_reuse(request.email, request.name)

    return ApiResponse[CoachResponse].ok(
        CoachResponse.from_coach(result.coach, result.status),
        message=result.message,
    )


@router.post(
    "/onboarding-link",
    response_model=ApiResponse[OnboardingLinkResponse],
    status_code=status.HTTP_200_OK,
    summary="Create onboarding link",
)
async def create_onboarding_link(
    request: OnboardingLinkRequest,
    service: OnboardingServiceDep,
) -> ApiResponse[OnboardingLinkResponse]:
    url = await service.create_onboarding_link(request.external_account_id)
    return ApiResponse[OnboardingLinkResponse].ok(OnboardingLinkResponse(onboarding_url=url))


@router.get(
    "/status",
    response_model=ApiResponse[AccountStatusResponse],
    status_code=status.HTTP_200_OK,
    summary="Check account status",
    description="Read onboarding and payout status from Stripe and cache it locally",
)
async def check_status(
    service: OnboardingServiceDep,
    external_account_id: Optional[str] = Query(None, description="Stripe account ID"),
) -> ApiResponse[AccountStatusResponse]:
    account_status = await service.refresh_status(external_account_id)

    return ApiResponse[AccountStatusResponse].ok(AccountStatusResponse(
        external_account_id=external_account_id.strip(),
        details_submitted=account_status.details_submitted,
        payouts_enabled=account_status.payouts_enabled,
        onboarding_complete=account_status.onboarding_complete,
    ))


@router.get(
    "/dashboard-link",
    response_model=ApiResponse[DashboardLinkResponse],
    status_code=status.HTTP_200_OK,
    summary="Create dashboard link",
    description="Express dashboard link. Fails with 400 until onboarding details are submitted.",
)
async def get_dashboard_link(
    service: OnboardingServiceDep,
    external_account_id: Optional[str] = Query(None, description="Stripe account ID"),
) -> ApiResponse[DashboardLinkResponse]:
    url = await service.create_dashboard_link(external_account_id)
    return ApiResponse[DashboardLinkResponse].ok(DashboardLinkResponse(dashboard_url=url))


@router.get(
    "/lookup",
    response_model=ApiResponse[CoachResponse],
    status_code=status.HTTP_200_OK,
    summary="Look up coach by email",
    description="Whether an email is registered and how far onboarding got",
)
async def lookup_email(
    service: OnboardingServiceDep,
    email: Optional[str] = Query(None, description="Coach's email address"),
) -> ApiResponse[CoachResponse]:
    result = await service.lookup(email)

    if result.coach is None:
        data = CoachResponse(
            email=result.email,
            status=result.status.value,
            is_registered=False,
        )
    else:
        data = CoachResponse.from_coach(result.coach, result.status)

    return ApiResponse[CoachResponse].ok(data)


@router.get(
    "",
    response_model=ApiResponse[CoachListResponse],
    status_code=status.HTTP_200_OK,
    summary="List coaches",
)
async def list_coaches(service: OnboardingServiceDep) -> ApiResponse[CoachListResponse]:
    coaches = service.list_coaches()

    summaries = [
        CoachSummary(
            id=coach.id,
            email=coach.email,
            name=coach.name or None,
            external_account_id=coach.external_account_id,
            onboarding_complete=coach.onboarding_complete,
            payouts_enabled=coach.payouts_enabled,
            created_at=coach.created_at.isoformat() if coach.created_at else None,
            updated_at=coach.updated_at.isoformat() if coach.updated_at else None,
        )
        for coach in coaches
    ]

    return ApiResponse[CoachListResponse].ok(
        CoachListResponse(coaches=summaries, total=len(summaries))
    )
