"""
Inbound payment-provider webhooks.

Deliveries are verified first; nothing in an unverified payload is ever
trusted. Once verified, the envelope is parsed into one of a small closed
set of event types and applied through the same persist-on-match path the
synchronous status check uses.

Processing failures after verification are logged and absorbed. The sender
only needs to know we received the event; a non-2xx would just trigger
redelivery of something we already failed to apply.
"""

import logging
from dataclasses import dataclass
from typing import Union

from .errors import InvalidSignature, WebhookProcessingError
from .models import AccountStatus
from .service import CoachOnboardingService, RemoteAccountGateway


logger = logging.getLogger(__name__)


ACCOUNT_UPDATED = "account.updated"
ACCOUNT_APPLICATION_AUTHORIZED = "account.application.authorized"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AccountUpdated:
    event_id: str
    account_id: str
    details_submitted: bool
    payouts_enabled: bool

    @property
    def status(self) -> AccountStatus:
        return AccountStatus(
            details_submitted=self.details_submitted,
            payouts_enabled=self.payouts_enabled,
        )


@dataclass(frozen=True)
class AccountApplicationAuthorized:
    event_id: str
    account_id: str


@dataclass(frozen=True)
class UnhandledEvent:
    event_id: str
    event_type: str


WebhookEvent = Union[AccountUpdated, AccountApplicationAuthorized, UnhandledEvent]


def parse_event(envelope: dict) -> WebhookEvent:
    """
    Turn a decoded event envelope into a typed event.

    Raises KeyError, TypeError or ValueError when a handled event type is
    missing the fields we need.
    """
    event_type = envelope.get("type") or ""
    event_id = envelope.get("id") or ""

    if event_type == ACCOUNT_UPDATED:
        account = envelope["data"]["object"]
        account_id = account["id"]
        if not account_id:
            raise ValueError("account.updated event has no account id")
        return AccountUpdated(
            event_id=event_id,
            account_id=account_id,
            details_submitted=bool(account.get("details_submitted")),
            payouts_enabled=bool(account.get("payouts_enabled")),
        )

    if event_type == ACCOUNT_APPLICATION_AUTHORIZED:
        # Connect events carry the connected account at the top level;
        # data.object is the application, not the account.
        account_id = envelope.get("account") or envelope["data"]["object"]["id"]
        if not account_id:
            raise ValueError("account.application.authorized event has no account id")
        return AccountApplicationAuthorized(event_id=event_id, account_id=account_id)

    return UnhandledEvent(event_id=event_id, event_type=event_type)


@dataclass(frozen=True)
class WebhookReceipt:
    """What we did with a verified delivery."""
    event_id: str
    event_type: str
    processed: bool


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------

class WebhookHandler:
    """Verifies deliveries and applies them to the coach store."""

    def __init__(
        self,
        gateway: RemoteAccountGateway,
        service: CoachOnboardingService,
        webhook_secret: str,
    ) -> None:
        self._gateway = gateway
        self._service = service
        self._secret = webhook_secret

    def handle(self, payload: bytes, signature_header: str) -> WebhookReceipt:
        """
        Verify and apply one delivery.

        Raises InvalidSignature if the delivery can't be authenticated.
        Any failure after that is logged and reflected in the receipt only.
        """
        if not signature_header:
            raise InvalidSignature("Missing signature header")

        try:
            envelope = self._gateway.verify_webhook_signature(
                payload, signature_header, self._secret
            )
        except WebhookProcessingError as e:
            # Signed, but not a JSON object
            logger.error("Undecodable webhook payload", extra={"error": str(e)})
            return WebhookReceipt(event_id="", event_type="", processed=False)

        event_type = str(envelope.get("type") or "")
        event_id = str(envelope.get("id") or "")
        logger.info(
            "Received webhook event",
            extra={"event_type": event_type, "event_id": event_id},
        )

        try:
            event = parse_event(envelope)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(
                "Malformed webhook event",
                extra={"event_type": event_type, "event_id": event_id, "error": str(e)},
            )
            return WebhookReceipt(event_id=event_id, event_type=event_type, processed=False)

        if isinstance(event, AccountUpdated):
            processed = self._on_account_updated(event)
        elif isinstance(event, AccountApplicationAuthorized):
            processed = self._on_application_authorized(event)
        else:
            logger.info("Unhandled event type", extra={"event_type": event.event_type})
            processed = False

        return WebhookReceipt(event_id=event_id, event_type=event_type, processed=processed)

    def _on_account_updated(self, event: AccountUpdated) -> bool:
        try:
            coach = self._service.apply_remote_status(event.account_id, event.status)
        except Exception as e:
            logger.error(
                "Error handling account.updated event",
                extra={"account_id": event.account_id, "error": str(e)},
                exc_info=e,
            )
            return False

        if coach is None:
            logger.warning(
                "No coach found for external account",
                extra={"account_id": event.account_id},
            )
            return False

        logger.info(
            "Updated coach from webhook",
            extra={
                "email": coach.email,
                "onboarding_complete": coach.onboarding_complete,
                "payouts_enabled": coach.payouts_enabled,
            },
        )
        return True

    def _on_application_authorized(self, event: AccountApplicationAuthorized) -> bool:
        try:
            coach = self._service.touch(event.account_id)
        except Exception as e:
            logger.error(
                "Error handling account.application.authorized event",
                extra={"account_id": event.account_id, "error": str(e)},
                exc_info=e,
            )
            return False

        if coach is None:
            logger.warning(
                "No coach found for external account",
                extra={"account_id": event.account_id},
            )
            return False

        logger.info("Account application authorized", extra={"email": coach.email})
        return True
