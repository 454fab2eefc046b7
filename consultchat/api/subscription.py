"""
Subscription API routes.

- POST /api/subscription/cancel: cancel at the end of the current period
- POST /api/subscription/change: switch plan with proration
- GET  /api/subscription/summary: mirrored subscription state
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from consultchat.api.deps import get_current_user, get_lifecycle, get_profiles
from consultchat.core.auth import CurrentUser
from consultchat.core.errors import NotFoundError
from consultchat.features.billing.lifecycle import SubscriptionLifecycleManager
from consultchat.features.profiles.mirror import ProfileMirror
from consultchat.models.plan import iso_or_none

router = APIRouter(prefix="/subscription", tags=["subscription"])


class ChangePlanRequest(BaseModel):
    plan: Optional[str] = None


@router.post("/cancel")
def cancel(
    user: CurrentUser = Depends(get_current_user),
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle),
):
    """
    Schedule cancellation at period end. Repeated calls succeed without
    touching the provider again.
    """
    return lifecycle.cancel_at_period_end(user.id).to_response()


@router.post("/change")
def change(
    body: ChangePlanRequest,
    user: CurrentUser = Depends(get_current_user),
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle),
):
    return lifecycle.change_plan(user.id, body.plan).to_response()


@router.get("/summary")
def summary(
    user: CurrentUser = Depends(get_current_user),
    profiles: ProfileMirror = Depends(get_profiles),
):
    profile = profiles.read_profile(user.id)
    if profile is None:
        raise NotFoundError("No subscription information was found.")
    return {
        "ok": True,
        "plan": profile.plan,
        "status": profile.status,
        "currentPeriodEnd": iso_or_none(profile.current_period_end),
        "cancelAt": iso_or_none(profile.cancel_at),
        "subscriptionId": profile.subscription_id,
        "customerId": profile.customer_id,
    }
