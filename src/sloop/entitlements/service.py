"""Grant store purchases to users, once per payment transaction."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sloop.entitlements.catalog import PRODUCTS
from sloop.errors import InvalidArgumentError
from sloop.events import ENTITLEMENT_CHANNEL, publish
from sloop.progression.service import lock_user
from sloop.results import OperationResult, operation
from sloop.storage.base import GameStore, PurchaseRecord, StoreTransaction, run_transaction

logger = logging.getLogger(__name__)


@operation
async def grant_entitlements(
    store: GameStore,
    user_id: str,
    product_id: str,
    transaction_id: str,
    *,
    now: datetime | None = None,
    redis: object = None,
) -> OperationResult:
    """Apply ``product_id``'s catalog entry to ``user_id``.

    The purchase row (unique ``transaction_id``) is written in the same
    transaction as the gem/grace-pass credit, so a redelivered webhook never
    credits twice.
    """
    product = PRODUCTS.get(product_id)
    if product is None:
        raise InvalidArgumentError(f"Unknown product: {product_id}")
    if not transaction_id or not transaction_id.strip():
        raise InvalidArgumentError("transaction_id is required")
    now = now or datetime.now(timezone.utc)

    async def work(tx: StoreTransaction) -> OperationResult:
        await lock_user(tx, user_id)

        existing = await tx.get_purchase(transaction_id)
        if existing is not None:
            return OperationResult.ok(
                already_processed=True,
                message="Already processed",
                product_id=existing.product_id,
                entitlements=existing.entitlements,
                gems_granted=0,
                grace_passes_granted=0,
            )

        await tx.insert_purchase(PurchaseRecord(
            transaction_id=transaction_id,
            user_id=user_id,
            product_id=product_id,
            entitlements=list(product.entitlements),
            gems_granted=product.gems,
            grace_passes_granted=product.grace_passes,
            created_at=now,
        ))
        deltas = {}
        if product.gems:
            deltas["gems"] = product.gems
        if product.grace_passes:
            deltas["grace_passes_available"] = product.grace_passes
        if deltas:
            await tx.increment_user(user_id, **deltas)
        await tx.update_user(user_id, updated_at=now)

        return OperationResult.ok(
            product_id=product_id,
            entitlements=list(product.entitlements),
            gems_granted=product.gems,
            grace_passes_granted=product.grace_passes,
        )

    result = await run_transaction(store, work)
    if not result.already_processed:
        logger.info("Granted %s to user %s (txn %s)", product_id, user_id, transaction_id)
        await publish(redis, ENTITLEMENT_CHANNEL, {
            "user_id": user_id,
            "product_id": product_id,
            "entitlements": result.data["entitlements"],
        })
    return result
