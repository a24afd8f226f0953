"""Booster API endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from sloop.boosters.schemas import BoosterRequest, BoosterShopItem, BoosterShopResponse
from sloop.boosters.service import get_booster_shop, purchase_or_gift_booster
from sloop.dependencies import RedisDep, StoreDep, UserIdDep
from sloop.responses import unwrap
from sloop.results import OperationResult

router = APIRouter(prefix="/api/v1/boosters", tags=["Boosters"])


@router.get("/shop", response_model=BoosterShopResponse)
async def booster_shop():
    return BoosterShopResponse(items=[BoosterShopItem(**item) for item in get_booster_shop()])


@router.post("", response_model=OperationResult)
async def buy_booster(body: BoosterRequest, store: StoreDep, redis: RedisDep, user_id: UserIdDep):
    """Buy a booster for yourself, or gift one with ``target_user_id``."""
    target = body.target_user_id or user_id
    result = await purchase_or_gift_booster(
        store,
        target,
        body.booster_type,
        body.action_id,
        giver_id=user_id if target != user_id else None,
        redis=redis,
    )
    return unwrap(result)
