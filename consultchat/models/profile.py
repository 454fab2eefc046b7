"""
consultchat/models/profile.py

UserProfile: local mirror of a user's subscription at the payment provider.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator

from consultchat.models.plan import (
    ACTIVE_SUBSCRIPTION_STATUSES,
    PLAN_KEYS,
    SUBSCRIPTION_STATUSES,
    PlanKey,
    SubscriptionStatus,
    as_utc,
)


class UserProfile(BaseModel):
    """
    One row per identity-provider user.

    cancel_at may be set while status is still billable: the cancellation
    is scheduled, not yet effective.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    plan: Optional[PlanKey] = None
    status: Optional[SubscriptionStatus] = None
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    current_period_end: Optional[datetime] = None
    cancel_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("current_period_end", "cancel_at", "updated_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @field_validator("plan", "status", mode="before")
    @classmethod
    def _drop_unknown(cls, value, info: ValidationInfo):
        # Rows written by older code may carry values outside the vocabulary.
        allowed = PLAN_KEYS if info.field_name == "plan" else SUBSCRIPTION_STATUSES
        return value if value in allowed else None

    @property
    def has_active_plan(self) -> bool:
        return self.status in ACTIVE_SUBSCRIPTION_STATUSES
