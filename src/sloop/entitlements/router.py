"""Purchase webhook endpoint."""

from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, status

from sloop.config import Settings, get_settings
from sloop.dependencies import RedisDep, StoreDep
from sloop.entitlements.schemas import GRANT_EVENTS, REVOKE_EVENTS, PurchaseWebhook, WebhookAck
from sloop.entitlements.service import grant_entitlements

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["Webhooks"])


def verify_webhook_secret(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    expected = settings.purchase_webhook_secret
    if not expected or not authorization or not secrets.compare_digest(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.post("/purchases", response_model=WebhookAck, dependencies=[Depends(verify_webhook_secret)])
async def purchase_webhook(body: PurchaseWebhook, store: StoreDep, redis: RedisDep):
    """Grant entitlements for purchase events.

    Terminal failures (unknown user or product) are acknowledged with 200 so
    the provider stops redelivering; only transient failures return 503.
    """
    event = body.event

    if event.type in REVOKE_EVENTS:
        logger.info("Purchase %s for user %s product %s", event.type, event.app_user_id, event.product_id)
        return WebhookAck()
    if event.type not in GRANT_EVENTS:
        logger.info("Unhandled purchase event type: %s", event.type)
        return WebhookAck()

    if not event.app_user_id or not event.product_id or not event.transaction_id:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="app_user_id, product_id and transaction_id are required",
        )

    result = await grant_entitlements(
        store,
        event.app_user_id,
        event.product_id,
        event.transaction_id,
        redis=redis,
    )
    if result.is_transient_failure:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result.message)
    if not result.success:
        logger.warning(
            "Purchase %s not granted (%s): %s", event.transaction_id, result.reason, result.message
        )
        return WebhookAck(reason=result.reason)

    return WebhookAck(
        granted=not result.already_processed,
        already_processed=result.already_processed,
        entitlements=result.data.get("entitlements", []),
    )
