"""
Checkout orchestration.

Per checkout attempt:
    created -> (user pays at the provider) -> confirmed | payment_incomplete | expired

confirm_checkout is idempotent: confirming the same paid session again
re-applies the same profile state and never resets usage counters.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from consultchat.core.errors import (
    ConfigurationError,
    ForbiddenError,
    PaymentIncompleteError,
    ReconciliationError,
    UpstreamError,
    ValidationError,
)
from consultchat.core.logging import log_event
from consultchat.features.billing.provider import (
    BillingProvider,
    BillingProviderError,
    BillingRejectedError,
    CheckoutSessionInfo,
)
from consultchat.features.billing.records import CheckoutRecords
from consultchat.features.billing.status import normalize_plan, normalize_status
from consultchat.features.profiles.mirror import ProfileMirror
from consultchat.features.usage.ledger import UsageLedger
from consultchat.models.checkout import CheckoutRecord
from consultchat.models.plan import PlanKey, SubscriptionStatus, iso_or_none

CONFIRMED_MESSAGE = "Your payment has been applied. You can continue your consultation."


@dataclass(frozen=True)
class CheckoutConfirmation:
    plan: PlanKey
    status: SubscriptionStatus
    current_period_end: Optional[datetime]
    customer_id: Optional[str]
    subscription_id: Optional[str]

    def to_response(self) -> dict:
        return {
            "ok": True,
            "plan": self.plan,
            "status": self.status,
            "currentPeriodEnd": iso_or_none(self.current_period_end),
            "customerId": self.customer_id,
            "subscriptionId": self.subscription_id,
            "message": CONFIRMED_MESSAGE,
        }


def _checkout_status(session: CheckoutSessionInfo) -> str:
    if session.status in ("open", "expired"):
        return session.status
    return "complete"


class CheckoutOrchestrator:
    def __init__(
        self,
        provider: BillingProvider,
        profiles: ProfileMirror,
        ledger: UsageLedger,
        records: CheckoutRecords,
        prices: Dict[str, Optional[str]],
    ):
        self.provider = provider
        self.profiles = profiles
        self.ledger = ledger
        self.records = records
        self.prices = prices

    def create_checkout_session(
        self,
        user_id: str,
        user_email: Optional[str],
        plan_input: Optional[str],
        origin: str,
    ) -> str:
        """
        Start a subscription checkout for ``plan_input``.

        Returns:
            Provider-hosted checkout URL

        Raises:
            ValidationError: plan missing or not a known plan
            ConfigurationError: no price configured for the plan
            UpstreamError: provider failure
        """
        plan = normalize_plan(plan_input)
        if not plan:
            raise ValidationError("Please choose a plan: 'plan' must be one of blue, green or gold.")

        price_id = self.prices.get(plan)
        if not price_id:
            raise ConfigurationError(f"No price is configured for plan '{plan}'. Please contact support.")

        metadata = {"user_id": user_id, "plan": plan}
        base = origin.rstrip("/")
        try:
            session = self.provider.create_checkout_session(
                price_id=price_id,
                success_url=f"{base}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base}/checkout/cancel?plan={plan}",
                client_reference_id=user_id,
                customer_email=user_email,
                metadata=metadata,
                subscription_metadata=dict(metadata),
            )
        except BillingProviderError as exc:
            raise UpstreamError(
                "Could not start checkout. Please try again later.", detail=str(exc)
            ) from exc

        if not session.url:
            raise UpstreamError(
                "Could not start checkout. Please try again later.",
                detail=f"checkout session {session.id} has no url",
            )

        log_event(
            "info",
            "checkout.created",
            user_id=user_id,
            event_type="checkout.created",
            extra={"plan": plan, "session_id": session.id},
        )
        return session.url

    def confirm_checkout(self, user_id: str, session_id: Optional[str]) -> CheckoutConfirmation:
        """
        Verify a returned checkout session and reconcile the local mirror.

        The audit record, profile and counter row are separate writes. If one
        fails, confirming the same session again completes the rest.

        Raises:
            ValidationError: missing or unknown session id
            ForbiddenError: the session belongs to another user
            PaymentIncompleteError: payment not settled yet (retryable)
            ReconciliationError: no plan could be resolved
            UpstreamError: provider failure
        """
        if not session_id:
            raise ValidationError("'sessionId' is required.")

        try:
            session = self.provider.retrieve_checkout_session(session_id, expand_subscription=True)
        except BillingRejectedError as exc:
            raise ValidationError(
                "The checkout session could not be verified. Please try again."
            ) from exc
        except BillingProviderError as exc:
            raise UpstreamError(
                "The checkout session could not be verified. Please try again later.",
                detail=str(exc),
            ) from exc

        owner = session.metadata.get("user_id") or session.client_reference_id
        if owner != user_id:
            raise ForbiddenError(
                "This payment was made from a different account. Please sign in with the correct account."
            )

        if session.payment_status != "paid":
            raise PaymentIncompleteError(
                "Your payment is not complete yet. Please wait a moment and try again.",
                extra={"paymentStatus": session.payment_status},
            )

        subscription = session.subscription
        plan = normalize_plan(session.metadata.get("plan")) or (
            normalize_plan(subscription.metadata.get("plan")) if subscription else None
        )
        if not plan:
            raise ReconciliationError("We could not determine your plan. Please contact support.")

        status = normalize_status(subscription.status if subscription else None)
        period_end = subscription.period_end if subscription else None
        cancel_at = subscription.cancel_at if subscription else None
        subscription_id = session.subscription_id

        self.records.upsert_record(
            CheckoutRecord(
                session_id=session.id,
                user_id=user_id,
                plan=plan,
                status=_checkout_status(session),
                created_at=session.created,
            )
        )
        self.profiles.write_profile(
            user_id,
            plan=plan,
            status=status,
            customer_id=session.customer_id,
            subscription_id=subscription_id,
            current_period_end=period_end,
            cancel_at=cancel_at,
        )
        self.ledger.touch(user_id)

        log_event(
            "info",
            "checkout.confirmed",
            user_id=user_id,
            event_type="checkout.confirmed",
            extra={"plan": plan, "status": status, "session_id": session.id},
        )
        return CheckoutConfirmation(
            plan=plan,
            status=status,
            current_period_end=period_end,
            customer_id=session.customer_id,
            subscription_id=subscription_id,
        )
