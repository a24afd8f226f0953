"""Purchase webhook payload.

Only the fields needed to grant entitlements are modelled; everything else
the payment provider sends is ignored.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

GRANT_EVENTS = frozenset({"INITIAL_PURCHASE", "RENEWAL", "NON_RENEWING_PURCHASE"})
REVOKE_EVENTS = frozenset({"CANCELLATION", "EXPIRATION"})


class PurchaseEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    app_user_id: str | None = None
    product_id: str | None = None
    transaction_id: str | None = None


class PurchaseWebhook(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: PurchaseEvent


class WebhookAck(BaseModel):
    received: bool = True
    granted: bool = False
    already_processed: bool = False
    reason: str | None = None
    entitlements: list[str] = Field(default_factory=list)
