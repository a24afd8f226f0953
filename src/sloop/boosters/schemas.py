"""Request/response models for booster endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class BoosterRequest(BaseModel):
    booster_type: str
    action_id: str = Field(min_length=1, max_length=256)
    # Gift to another user; the caller pays
    target_user_id: str | None = Field(default=None, max_length=64)


class BoosterShopItem(BaseModel):
    id: str
    type: str
    name: str
    gem_cost: int
    duration_hours: int


class BoosterShopResponse(BaseModel):
    items: list[BoosterShopItem]
