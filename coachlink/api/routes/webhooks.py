"""
Stripe webhook receiver.

Stripe retries any delivery that doesn't get a 2xx, so once a delivery is
authenticated we always acknowledge it, whether or not we could apply it.
Only a bad signature (or an undecodable signed payload) gets a 400.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Header, Request, status
from pydantic import BaseModel

from ..dependencies import WebhookHandlerDep
from ..responses import ApiResponse

logger = logging.getLogger(__name__)

router = APIRouter()


class WebhookAck(BaseModel):
    event_id: str
    event_type: str
    processed: bool


@router.post(
    "/stripe",
    response_model=ApiResponse[WebhookAck],
    status_code=status.HTTP_200_OK,
    summary="Receive Stripe Connect events",
    responses={400: {"description": "Invalid signature"}},
)
async def receive_stripe_event(
    request: Request,
    handler: WebhookHandlerDep,
    stripe_signature: Annotated[Optional[str], Header(alias="Stripe-Signature")] = None,
) -> ApiResponse[WebhookAck]:
    # Signature covers the exact bytes, so read the raw body
    payload = await request.body()

    receipt = handler.handle(payload, stripe_signature or "")

    return ApiResponse[WebhookAck].ok(
        WebhookAck(
            event_id=receipt.event_id,
            event_type=receipt.event_type,
            processed=receipt.processed,
        ),
        message="Webhook handled successfully",
    )
