"""
Stripe billing provider implementation.

Implements the BillingProvider protocol using the Stripe API. Each provider
owns a StripeClient with its own key and network timeout, so nothing
mutates the SDK's global configuration.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import stripe

from consultchat.features.billing.provider import (
    BillingProviderError,
    BillingRejectedError,
    CheckoutSessionInfo,
    SubscriptionInfo,
    SubscriptionItemInfo,
)

DEFAULT_TIMEOUT_SECONDS = 20.0


def _ts(value: Any) -> Optional[datetime]:
    """Convert a Stripe epoch-seconds field to an aware datetime."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _ref_id(value: Any) -> Optional[str]:
    """Stripe references are either an id string or an expanded object."""
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return value.get("id")
    return None


def _as_dict(stripe_object: Any) -> Mapping[str, Any]:
    if isinstance(stripe_object, Mapping):
        return stripe_object
    return stripe_object.to_dict()


def _metadata(value: Any) -> Dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


def parse_subscription(data: Mapping[str, Any]) -> SubscriptionInfo:
    """Parse a Stripe subscription object into SubscriptionInfo."""
    items: List[SubscriptionItemInfo] = []
    raw_items = data.get("items") or {}
    for item in raw_items.get("data") or []:
        items.append(
            SubscriptionItemInfo(
                id=item.get("id"),
                price_id=_ref_id(item.get("price")),
                current_period_end=_ts(item.get("current_period_end")),
            )
        )
    return SubscriptionInfo(
        id=data.get("id"),
        status=data.get("status"),
        customer_id=_ref_id(data.get("customer")),
        cancel_at_period_end=bool(data.get("cancel_at_period_end")),
        cancel_at=_ts(data.get("cancel_at")),
        current_period_end=_ts(data.get("current_period_end")),
        items=items,
        metadata=_metadata(data.get("metadata")),
    )


def parse_checkout_session(data: Mapping[str, Any]) -> CheckoutSessionInfo:
    """Parse a Stripe checkout session (subscription may be expanded)."""
    raw_subscription = data.get("subscription")
    subscription = None
    if isinstance(raw_subscription, Mapping):
        subscription = parse_subscription(raw_subscription)
    return CheckoutSessionInfo(
        id=data.get("id"),
        url=data.get("url"),
        status=data.get("status"),
        payment_status=data.get("payment_status"),
        customer_id=_ref_id(data.get("customer")),
        client_reference_id=data.get("client_reference_id"),
        created=_ts(data.get("created")),
        metadata=_metadata(data.get("metadata")),
        subscription_id=_ref_id(raw_subscription),
        subscription=subscription,
    )


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(
        self,
        secret_key: Optional[str],
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[stripe.StripeClient] = None,
    ):
        self.secret_key = secret_key
        self.timeout = timeout
        self._client = client

    def _stripe(self) -> stripe.StripeClient:
        if self._client is None:
            if not self.secret_key:
                raise BillingProviderError("STRIPE_SECRET_KEY not configured")
            self._client = stripe.StripeClient(
                self.secret_key,
                http_client=stripe.RequestsClient(timeout=self.timeout),
            )
        return self._client

    def create_checkout_session(
        self,
        *,
        price_id: str,
        success_url: str,
        cancel_url: str,
        client_reference_id: str,
        customer_email: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        subscription_metadata: Optional[Dict[str, str]] = None,
    ) -> CheckoutSessionInfo:
        """Create Stripe checkout session."""
        params: Dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": client_reference_id,
            "metadata": metadata or {},
            "subscription_data": {"metadata": subscription_metadata or {}},
        }
        if customer_email:
            params["customer_email"] = customer_email
        try:
            session = self._stripe().v1.checkout.sessions.create(params=params)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session creation failed: {e}")
        return parse_checkout_session(_as_dict(session))

    def retrieve_checkout_session(self, session_id: str, *, expand_subscription: bool = True) -> CheckoutSessionInfo:
        """Retrieve Stripe checkout session."""
        expand = ["subscription"] if expand_subscription else []
        try:
            session = self._stripe().v1.checkout.sessions.retrieve(session_id, params={"expand": expand})
        except stripe.InvalidRequestError as e:
            raise BillingRejectedError(f"Stripe checkout session lookup rejected: {e}", user_message=e.user_message)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session retrieve failed: {e}")
        return parse_checkout_session(_as_dict(session))

    def retrieve_subscription(self, subscription_id: str, *, expand_prices: bool = False) -> SubscriptionInfo:
        """Retrieve Stripe subscription."""
        expand = ["items.data.price"] if expand_prices else []
        try:
            subscription = self._stripe().v1.subscriptions.retrieve(subscription_id, params={"expand": expand})
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription retrieve failed: {e}")
        return parse_subscription(_as_dict(subscription))

    def update_subscription(
        self,
        subscription_id: str,
        *,
        items: Optional[List[Dict[str, str]]] = None,
        proration_behavior: Optional[str] = None,
        cancel_at_period_end: Optional[bool] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> SubscriptionInfo:
        """Update Stripe subscription (price swap or scheduled cancellation)."""
        params: Dict[str, Any] = {}
        if items is not None:
            params["items"] = items
        if proration_behavior is not None:
            params["proration_behavior"] = proration_behavior
        if cancel_at_period_end is not None:
            params["cancel_at_period_end"] = cancel_at_period_end
        if metadata is not None:
            params["metadata"] = metadata
        try:
            subscription = self._stripe().v1.subscriptions.update(subscription_id, params=params)
        except (stripe.CardError, stripe.InvalidRequestError) as e:
            raise BillingRejectedError(f"Stripe subscription update rejected: {e}", user_message=e.user_message)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription update failed: {e}")
        return parse_subscription(_as_dict(subscription))
