"""Request models for XP endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from sloop.progression.levels import MAX_XP_AWARD


class AwardXPRequest(BaseModel):
    amount: int = Field(ge=0, le=MAX_XP_AWARD)
    source: str = Field(min_length=1, max_length=128)
    action_id: str = Field(min_length=1, max_length=256)
    metadata: dict[str, Any] = Field(default_factory=dict)
