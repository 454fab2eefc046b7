"""
Billing provider protocol.

Defines the interface for billing providers (Stripe, etc.) and the
normalized payload shapes parsed at the provider boundary, so business
logic never touches raw provider objects.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol


@dataclass(frozen=True)
class SubscriptionItemInfo:
    """One line item of a subscription."""
    id: str
    price_id: Optional[str]
    current_period_end: Optional[datetime] = None


@dataclass(frozen=True)
class SubscriptionInfo:
    """Normalized provider subscription."""
    id: str
    status: Optional[str]
    customer_id: Optional[str]
    cancel_at_period_end: bool = False
    cancel_at: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    items: List[SubscriptionItemInfo] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def period_end(self) -> Optional[datetime]:
        """Period end from the subscription, falling back to its first item."""
        if self.current_period_end is not None:
            return self.current_period_end
        if self.items:
            return self.items[0].current_period_end
        return None


@dataclass(frozen=True)
class CheckoutSessionInfo:
    """Normalized provider checkout session."""
    id: str
    url: Optional[str] = None
    status: Optional[str] = None  # open, complete, expired
    payment_status: Optional[str] = None  # paid, unpaid, no_payment_required
    customer_id: Optional[str] = None
    client_reference_id: Optional[str] = None
    created: Optional[datetime] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    subscription_id: Optional[str] = None
    subscription: Optional[SubscriptionInfo] = None


class BillingProvider(Protocol):
    """
    Protocol for billing providers.

    Implementations must handle:
    - Checkout session creation and retrieval
    - Subscription retrieval and updates
    """

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
        """
        Create a subscription-mode checkout session for a single price.

        Raises:
            BillingProviderError: If session creation fails
        """
        ...

    def retrieve_checkout_session(self, session_id: str, *, expand_subscription: bool = True) -> CheckoutSessionInfo:
        """
        Retrieve a checkout session, optionally with its subscription expanded.

        Raises:
            BillingRejectedError: If the session does not exist
            BillingProviderError: On any other provider failure
        """
        ...

    def retrieve_subscription(self, subscription_id: str, *, expand_prices: bool = False) -> SubscriptionInfo:
        """
        Retrieve a subscription (source of truth for plan/status).

        Raises:
            BillingProviderError: If retrieval fails
        """
        ...

    def update_subscription(
        self,
        subscription_id: str,
        *,
        items: Optional[List[Dict[str, str]]] = None,
        proration_behavior: Optional[str] = None,
        cancel_at_period_end: Optional[bool] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> SubscriptionInfo:
        """
        Update a subscription and return its new state.

        Raises:
            BillingRejectedError: If the provider refuses the change (card declined, etc.)
            BillingProviderError: On any other provider failure
        """
        ...


class BillingProviderError(Exception):
    """Base exception for billing provider errors."""

    def __init__(self, message: str, *, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message


class BillingRejectedError(BillingProviderError):
    """The provider understood the request and refused it."""
    pass
