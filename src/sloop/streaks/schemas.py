"""Request models for streak endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class GracePassRequest(BaseModel):
    action_id: str = Field(min_length=1, max_length=256)
