"""
Subscription lifecycle: plan changes and cancellation at period end.

The provider is the source of truth; every successful path ends by
mirroring the provider's resulting state into the local profile.

Plan changes use "create_prorations": upgrades bill the prorated
difference immediately, downgrades become a credit applied on the next
invoice. That asymmetry is provider policy and is not recomputed here.
The billing anchor date is never changed.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional
from zoneinfo import ZoneInfo

from consultchat.core.errors import (
    ConfigurationError,
    NoOpError,
    NotFoundError,
    ProviderRejectedError,
    ReconciliationError,
    UpstreamError,
    ValidationError,
)
from consultchat.core.logging import log_event
from consultchat.features.billing.provider import (
    BillingProvider,
    BillingProviderError,
    BillingRejectedError,
    SubscriptionInfo,
)
from consultchat.features.billing.status import normalize_plan, normalize_status
from consultchat.features.profiles.mirror import ProfileMirror
from consultchat.models.plan import PlanKey, SubscriptionStatus, iso_or_none
from consultchat.models.profile import UserProfile

PRORATION_BEHAVIOR = "create_prorations"
PLAN_CHANGED_MESSAGE = (
    "Your plan has been changed. The difference is prorated and your renewal date stays the same. "
    "Check the status for the payment result."
)


@dataclass(frozen=True)
class CancellationResult:
    status: SubscriptionStatus
    plan: Optional[PlanKey]
    cancel_at: Optional[datetime]
    current_period_end: Optional[datetime]
    message: str
    already_canceled: bool = False
    already_requested: bool = False

    def to_response(self) -> dict:
        body = {
            "ok": True,
            "status": self.status,
            "plan": self.plan,
            "cancelAt": iso_or_none(self.cancel_at),
            "currentPeriodEnd": iso_or_none(self.current_period_end),
            "message": self.message,
        }
        if self.already_canceled:
            body["alreadyCanceled"] = True
        if self.already_requested:
            body["alreadyRequested"] = True
        return body


@dataclass(frozen=True)
class PlanChangeResult:
    plan: PlanKey
    status: SubscriptionStatus
    current_period_end: Optional[datetime]
    cancel_at: Optional[datetime]
    subscription_id: str
    customer_id: Optional[str]

    def to_response(self) -> dict:
        return {
            "ok": True,
            "plan": self.plan,
            "status": self.status,
            "currentPeriodEnd": iso_or_none(self.current_period_end),
            "cancelAt": iso_or_none(self.cancel_at),
            "subscriptionId": self.subscription_id,
            "customerId": self.customer_id,
            "message": PLAN_CHANGED_MESSAGE,
        }


def format_cutoff(value: Optional[datetime], tz_name: str) -> Optional[str]:
    """Render a cutoff instant for users, e.g. '2026-11-30 09:00 JST'."""
    if value is None:
        return None
    local = value.astimezone(ZoneInfo(tz_name))
    return local.strftime("%Y-%m-%d %H:%M %Z")


def cancellation_message(cutoff: Optional[datetime], tz_name: str, *, already_canceled: bool = False, already_requested: bool = False) -> str:
    when = format_cutoff(cutoff, tz_name)
    if already_canceled:
        prefix = "Your subscription is already canceled."
        suffix = f" Access ended on {when}." if when else ""
        return f"{prefix}{suffix} To resume, choose a plan again."
    prefix = "Your cancellation was already received." if already_requested else "Your cancellation has been received."
    if when:
        return f"{prefix} You can keep using the service until {when}."
    return f"{prefix} You can keep using the service until the end of the current billing period."


class SubscriptionLifecycleManager:
    def __init__(
        self,
        provider: BillingProvider,
        profiles: ProfileMirror,
        prices: Dict[str, Optional[str]],
        display_timezone: str = "Asia/Tokyo",
    ):
        self.provider = provider
        self.profiles = profiles
        self.prices = prices
        self.display_timezone = display_timezone

    def _require_subscription(self, user_id: str) -> UserProfile:
        profile = self.profiles.read_profile(user_id)
        if profile is None or not profile.subscription_id:
            raise NotFoundError("No subscription was found. Please complete checkout first.")
        return profile

    def _retrieve(self, subscription_id: str, *, expand_prices: bool = False) -> SubscriptionInfo:
        try:
            return self.provider.retrieve_subscription(subscription_id, expand_prices=expand_prices)
        except BillingProviderError as exc:
            raise UpstreamError(
                "Could not load your subscription from the payment provider. Please try again later.",
                detail=str(exc),
            ) from exc

    def cancel_at_period_end(self, user_id: str) -> CancellationResult:
        """
        Schedule cancellation at the end of the current period.

        Already-canceled and already-scheduled subscriptions are mirrored and
        reported as success without another provider mutation.
        """
        profile = self._require_subscription(user_id)
        subscription = self._retrieve(profile.subscription_id)

        plan = normalize_plan(subscription.metadata.get("plan")) or profile.plan
        period_end = subscription.period_end
        live_cancel_at = subscription.cancel_at or period_end
        customer_id = subscription.customer_id or profile.customer_id

        if subscription.status == "canceled":
            self.profiles.write_profile(
                user_id,
                plan=plan,
                status="canceled",
                subscription_id=subscription.id,
                customer_id=customer_id,
                current_period_end=period_end,
                cancel_at=live_cancel_at,
            )
            return CancellationResult(
                status="canceled",
                plan=plan,
                cancel_at=live_cancel_at,
                current_period_end=period_end,
                message=cancellation_message(live_cancel_at, self.display_timezone, already_canceled=True),
                already_canceled=True,
            )

        if subscription.cancel_at_period_end:
            status = normalize_status(subscription.status)
            self.profiles.write_profile(
                user_id,
                plan=plan,
                status=status,
                subscription_id=subscription.id,
                customer_id=customer_id,
                current_period_end=period_end,
                cancel_at=live_cancel_at,
            )
            return CancellationResult(
                status=status,
                plan=plan,
                cancel_at=live_cancel_at,
                current_period_end=period_end,
                message=cancellation_message(live_cancel_at, self.display_timezone, already_requested=True),
                already_requested=True,
            )

        try:
            updated = self.provider.update_subscription(subscription.id, cancel_at_period_end=True)
        except BillingRejectedError as exc:
            raise ProviderRejectedError(
                exc.user_message or "The cancellation was refused by the payment provider. Please contact support.",
            ) from exc
        except BillingProviderError as exc:
            raise UpstreamError(
                "Could not cancel your subscription. Please try again later.", detail=str(exc)
            ) from exc

        status = normalize_status(updated.status)
        new_period_end = updated.period_end or period_end
        cancel_at = updated.cancel_at or live_cancel_at or new_period_end
        self.profiles.write_profile(
            user_id,
            plan=plan,
            status=status,
            subscription_id=updated.id,
            customer_id=updated.customer_id or customer_id,
            current_period_end=new_period_end,
            cancel_at=cancel_at,
        )
        log_event(
            "info",
            "subscription.cancel_requested",
            user_id=user_id,
            event_type="subscription.cancel_requested",
            extra={"subscription_id": updated.id, "cancel_at": iso_or_none(cancel_at)},
        )
        return CancellationResult(
            status=status,
            plan=plan,
            cancel_at=cancel_at,
            current_period_end=new_period_end,
            message=cancellation_message(cancel_at, self.display_timezone),
        )

    def change_plan(self, user_id: str, plan_input: Optional[str]) -> PlanChangeResult:
        """
        Swap the subscription's price to the one for ``plan_input``.

        Raises:
            ValidationError: plan missing or unknown
            ConfigurationError: no price configured for the plan
            NotFoundError: no subscription on file
            ReconciliationError: subscription has no line items
            NoOpError: subscription already bills the target price
            ProviderRejectedError: provider refused the change (e.g. card declined)
            UpstreamError: any other provider failure
        """
        plan = normalize_plan(plan_input)
        if not plan:
            raise ValidationError("Please choose the plan to switch to: 'plan' must be one of blue, green or gold.")

        price_id = self.prices.get(plan)
        if not price_id:
            raise ConfigurationError(f"No price is configured for plan '{plan}'. Please contact support.")

        profile = self._require_subscription(user_id)
        subscription = self._retrieve(profile.subscription_id, expand_prices=True)

        if not subscription.items:
            raise ReconciliationError("Your subscription has no billable items. Please contact support.")
        current_item = subscription.items[0]

        # Compare provider price ids, not plan labels.
        if current_item.price_id == price_id:
            raise NoOpError("You are already on this plan. Please choose a different one.")

        metadata = dict(subscription.metadata)
        metadata["user_id"] = metadata.get("user_id") or user_id
        metadata["plan"] = plan

        try:
            updated = self.provider.update_subscription(
                subscription.id,
                items=[{"id": current_item.id, "price": price_id}],
                proration_behavior=PRORATION_BEHAVIOR,
                metadata=metadata,
            )
        except BillingRejectedError as exc:
            raise ProviderRejectedError(
                exc.user_message
                or "The plan change was refused. Please check your card details and payment status.",
            ) from exc
        except BillingProviderError as exc:
            raise UpstreamError(
                "Could not change your plan. Please try again later.", detail=str(exc)
            ) from exc

        status = normalize_status(updated.status)
        customer_id = updated.customer_id or profile.customer_id
        self.profiles.write_profile(
            user_id,
            plan=plan,
            status=status,
            subscription_id=updated.id,
            customer_id=customer_id,
            current_period_end=updated.period_end,
            cancel_at=updated.cancel_at,
        )
        log_event(
            "info",
            "subscription.plan_changed",
            user_id=user_id,
            event_type="subscription.plan_changed",
            extra={"from_price": current_item.price_id, "to_plan": plan, "subscription_id": updated.id},
        )
        return PlanChangeResult(
            plan=plan,
            status=status,
            current_period_end=updated.period_end,
            cancel_at=updated.cancel_at,
            subscription_id=updated.id,
            customer_id=customer_id,
        )
