"""
Normalization of provider plan and status strings.

Pure functions: no I/O, no failure mode.
"""
import logging
from typing import Any, Optional

from consultchat.models.plan import PLAN_KEYS, PlanKey, SubscriptionStatus

logger = logging.getLogger("consultchat")

_CANCELED_STATUSES = {"canceled", "unpaid", "incomplete_expired"}
_KNOWN_ACTIVE_STATUSES = {"active", "trialing"}


def normalize_plan(value: Any) -> Optional[PlanKey]:
    """Lower-case ``value`` and return it if it names a plan, else None."""
    if not isinstance(value, str):
        return None
    normalized = value.lower()
    if normalized in PLAN_KEYS:
        return normalized  # type: ignore[return-value]
    return None


def normalize_status(value: Optional[str]) -> SubscriptionStatus:
    """
    Map a provider subscription status onto the closed status vocabulary.

    Any status not explicitly recognized maps to "active". This is a
    fail-open policy: an unknown future provider state grants billing
    access. A warning is logged whenever it applies so the case is visible.
    """
    if value == "incomplete":
        return "incomplete"
    if value == "past_due":
        return "past_due"
    if value in _CANCELED_STATUSES:
        return "canceled"
    if value not in _KNOWN_ACTIVE_STATUSES:
        logger.warning(f"billing.status.unrecognized: {value!r} treated as active")
    return "active"
