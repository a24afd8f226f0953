"""Typed offline action payloads.

Queued actions are stored as ``(action_type, payload)``. They are parsed back
into one of the models below before dispatch, so an unknown type or a
malformed payload is a validation failure rather than a dispatcher branch.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, ValidationError

from sloop.errors import InvalidArgumentError
from sloop.progression.levels import MAX_XP_AWARD


class AwardXpAction(BaseModel):
    action_type: Literal["award_xp"] = "award_xp"
    amount: int = Field(ge=0, le=MAX_XP_AWARD)
    source: str = Field(min_length=1, max_length=128)
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("metadata", "meta"),
    )


class RedeemGracePassAction(BaseModel):
    action_type: Literal["redeem_grace_pass"] = "redeem_grace_pass"


class RecordDailyActivityAction(BaseModel):
    action_type: Literal["record_daily_activity"] = "record_daily_activity"
    # Defaults to the day the action was queued
    day: date | None = None


class GiftBoosterAction(BaseModel):
    action_type: Literal["gift_booster"] = "gift_booster"
    target_user_id: str = Field(min_length=1, max_length=64)
    booster_type: str


OfflineAction = Annotated[
    AwardXpAction | RedeemGracePassAction | RecordDailyActivityAction | GiftBoosterAction,
    Field(discriminator="action_type"),
]

OFFLINE_ACTION_ADAPTER: TypeAdapter[OfflineAction] = TypeAdapter(OfflineAction)


class QueuedActionIn(BaseModel):
    """Client envelope for one queued action."""

    action_id: str = Field(min_length=1, max_length=256)
    created_at: datetime | None = None
    action: OfflineAction


def payload_of(action: OfflineAction) -> dict[str, Any]:
    return action.model_dump(mode="json", exclude={"action_type"})


def parse_action(action_type: str, payload: dict[str, Any]) -> OfflineAction:
    """Rebuild a typed action from its stored form."""
    try:
        return OFFLINE_ACTION_ADAPTER.validate_python({**payload, "action_type": action_type})
    except ValidationError as exc:
        raise InvalidArgumentError(f"Malformed {action_type} action: {exc.error_count()} error(s)") from exc
