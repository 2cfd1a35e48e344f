"""
FastAPI dependency injection.

Dependencies provide instances of services, clients, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden in tests
- Configuration is read once and passed into constructors explicitly
- Resource lifecycle (connections) is managed properly

Each dependency is a function that FastAPI calls when needed.
"""

import logging
from typing import Annotated, Generator

from fastapi import Depends

from ..config.settings import Settings, get_settings
from ..core.onboarding.models import OnboardingUrls
from ..core.onboarding.service import CoachOnboardingService, RemoteAccountGateway
from ..core.onboarding.webhooks import WebhookHandler
from ..infrastructure.snowflake.client import (
    MockSnowflakeConnection,
    create_snowflake_connection,
)
from ..infrastructure.snowflake.repositories.coaches import (
    CoachRepository,
    SnowflakeConfig,
)
from ..infrastructure.stripe.client import StripeConfig, create_stripe_gateway

logger = logging.getLogger(__name__)

# Global mock instances (shared across requests so local data persists)
_mock_snowflake_connection = None
_mock_stripe_gateway = None


# ---------------------------------------------------------------------------
# Infrastructure Dependencies
# ---------------------------------------------------------------------------

def get_coach_repository(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Generator[CoachRepository, None, None]:
    """
    Provide CoachRepository with database connection.

    This is a generator function because we need to manage the
    connection lifecycle: open, yield the repository, close after the
    request.

    In mock mode, we reuse the same connection across requests
    so that data persists during the development session.
    """
    global _mock_snowflake_connection

    if settings.snowflake_mock_mode:
        if _mock_snowflake_connection is None:
            _mock_snowflake_connection = MockSnowflakeConnection()
            logger.info("Created shared mock Snowflake connection")

        yield CoachRepository(_mock_snowflake_connection)
    else:
        config = SnowflakeConfig(
            account=settings.snowflake_account,
            user=settings.snowflake_user,
            password=settings.snowflake_password or None,
            private_key_path=settings.snowflake_private_key_path,
            private_key_base64=settings.snowflake_private_key_base64,
            database=settings.snowflake_database,
            schema=settings.snowflake_schema,
            warehouse=settings.snowflake_warehouse,
            role=settings.snowflake_role,
        )

        with create_snowflake_connection(config=config) as conn:
            logger.debug("Created CoachRepository with Snowflake connection")
            yield CoachRepository(conn)


def get_account_gateway(
    settings: Annotated[Settings, Depends(get_settings)],
) -> RemoteAccountGateway:
    """
    Provide the Stripe gateway.

    In mock mode, one in-memory gateway is shared across requests so
    accounts created earlier can still be looked up.
    """
    global _mock_stripe_gateway

    if settings.stripe_mock_mode:
        if _mock_stripe_gateway is None:
            _mock_stripe_gateway = create_stripe_gateway(mock_mode=True)
            logger.info("Created shared mock Stripe gateway")
        return _mock_stripe_gateway

    config = StripeConfig(
        secret_key=settings.stripe_secret_key,
        country=settings.stripe_account_country,
    )
    return create_stripe_gateway(config=config)


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_onboarding_service(
    settings: Annotated[Settings, Depends(get_settings)],
    repository: Annotated[CoachRepository, Depends(get_coach_repository)],
    gateway: Annotated[RemoteAccountGateway, Depends(get_account_gateway)],
) -> CoachOnboardingService:
    """The service is stateless, so we create a new instance per request."""
    return CoachOnboardingService(
        store=repository,
        gateway=gateway,
        urls=OnboardingUrls(
            refresh_url=settings.onboarding_refresh_url,
            return_url=settings.onboarding_return_url,
        ),
        country=settings.stripe_account_country,
    )


def get_webhook_handler(
    settings: Annotated[Settings, Depends(get_settings)],
    service: Annotated[CoachOnboardingService, Depends(get_onboarding_service)],
    gateway: Annotated[RemoteAccountGateway, Depends(get_account_gateway)],
) -> WebhookHandler:
    return WebhookHandler(
        gateway=gateway,
        service=service,
        webhook_secret=settings.stripe_webhook_secret,
    )


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
SettingsDep = Annotated[Settings, Depends(get_settings)]
CoachRepositoryDep = Annotated[CoachRepository, Depends(get_coach_repository)]
OnboardingServiceDep = Annotated[CoachOnboardingService, Depends(get_onboarding_service)]
WebhookHandlerDep = Annotated[WebhookHandler, Depends(get_webhook_handler)]
