"""
Checkout API routes.

- POST /api/checkout/session: start a subscription checkout
- POST /api/checkout/confirm: verify a returned session and activate the plan
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from consultchat.api.deps import get_checkout, get_current_user, request_origin
from consultchat.core.auth import CurrentUser
from consultchat.features.billing.checkout import CheckoutOrchestrator

router = APIRouter(prefix="/checkout", tags=["checkout"])


class CheckoutSessionRequest(BaseModel):
    plan: Optional[str] = None


class CheckoutSessionResponse(BaseModel):
    url: str


class ConfirmRequest(BaseModel):
    sessionId: Optional[str] = None


@router.post("/session", response_model=CheckoutSessionResponse)
def create_session(
    body: CheckoutSessionRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    checkout: CheckoutOrchestrator = Depends(get_checkout),
):
    """
    Create a provider-hosted checkout session for the chosen plan.

    Errors:
        400: plan missing or unknown
        401: not signed in
        500: price not configured or provider failure
    """
    url = checkout.create_checkout_session(user.id, user.email, body.plan, request_origin(request))
    return {"url": url}


@router.post("/confirm")
def confirm(
    body: ConfirmRequest,
    user: CurrentUser = Depends(get_current_user),
    checkout: CheckoutOrchestrator = Depends(get_checkout),
):
    """
    Confirm a completed checkout. Safe to call repeatedly.

    Errors:
        400: missing session id, payment not complete, plan unresolvable
        401: not signed in
        403: session belongs to another user
        500: provider failure
    """
    return checkout.confirm_checkout(user.id, body.sessionId).to_response()
