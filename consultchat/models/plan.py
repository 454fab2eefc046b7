"""
consultchat/models/plan.py

Closed vocabularies for plans and billing states.
"""

from datetime import datetime, timezone
from typing import Literal, Optional

PlanKey = Literal["blue", "green", "gold"]
SubscriptionStatus = Literal["active", "incomplete", "past_due", "canceled"]
CheckoutStatus = Literal["open", "complete", "expired"]

PLAN_KEYS: tuple[str, ...] = ("blue", "green", "gold")
SUBSCRIPTION_STATUSES: tuple[str, ...] = ("active", "incomplete", "past_due", "canceled")

# Statuses that keep the paid service available. "canceled" is the only
# terminal, non-billable state.
ACTIVE_SUBSCRIPTION_STATUSES: tuple[str, ...] = ("active", "incomplete", "past_due")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_or_none(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat().replace("+00:00", "Z") if value else None
