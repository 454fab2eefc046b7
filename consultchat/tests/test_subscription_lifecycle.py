"""Tests for cancellation at period end and plan changes."""
from datetime import datetime, timezone

import pytest

from consultchat.core.errors import (
    ConfigurationError,
    NoOpError,
    NotFoundError,
    ProviderRejectedError,
    ReconciliationError,
    UpstreamError,
    ValidationError,
)
from consultchat.features.billing.lifecycle import (
    PRORATION_BEHAVIOR,
    SubscriptionLifecycleManager,
    format_cutoff,
)
from consultchat.features.billing.provider import BillingProviderError, BillingRejectedError
from consultchat.tests.mocks import PERIOD_END, make_subscription

PRICES = {"blue": "price_blue", "green": "price_green", "gold": "price_gold"}


@pytest.fixture
def lifecycle(billing, profiles):
    return SubscriptionLifecycleManager(billing, profiles, PRICES, "Asia/Tokyo")


@pytest.fixture
def subscribed(billing, profiles):
    billing.add_subscription(make_subscription(price_id="price_blue", plan="blue"))
    profiles.write_profile(
        "user_alice", plan="blue", status="active", subscription_id="sub_123", customer_id="cus_123"
    )


def test_format_cutoff_uses_display_timezone():
    assert format_cutoff(PERIOD_END, "Asia/Tokyo") == "2026-11-30 09:00 JST"
    assert format_cutoff(None, "Asia/Tokyo") is None


def test_cancel_schedules_at_period_end(lifecycle, billing, profiles, subscribed):
    result = lifecycle.cancel_at_period_end("user_alice")

    assert billing.updates == [
        {
            "subscription_id": "sub_123",
            "items": None,
            "proration_behavior": None,
            "cancel_at_period_end": True,
            "metadata": None,
        }
    ]
    assert result.status == "active"
    assert result.cancel_at == PERIOD_END
    assert "2026-11-30 09:00 JST" in result.message

    profile = profiles.read_profile("user_alice")
    assert profile.status == "active"
    assert profile.cancel_at == PERIOD_END
    assert profile.has_active_plan


def test_cancel_twice_mutates_provider_once(lifecycle, billing, subscribed):
    lifecycle.cancel_at_period_end("user_alice")
    second = lifecycle.cancel_at_period_end("user_alice")

    assert len(billing.updates) == 1
    assert second.already_requested
    assert second.to_response()["alreadyRequested"] is True
    assert second.cancel_at == PERIOD_END


def test_cancel_already_canceled_subscription(lifecycle, billing, profiles, subscribed):
    billing.add_subscription(make_subscription(status="canceled"))
    result = lifecycle.cancel_at_period_end("user_alice")

    assert billing.updates == []
    assert result.already_canceled
    assert result.status == "canceled"
    assert profiles.read_profile("user_alice").status == "canceled"


def test_cancel_without_subscription_is_not_found(lifecycle, profiles):
    with pytest.raises(NotFoundError):
        lifecycle.cancel_at_period_end("user_alice")
    profiles.write_profile("user_alice", plan="blue")
    with pytest.raises(NotFoundError):
        lifecycle.cancel_at_period_end("user_alice")


def test_cancel_provider_failure_leaves_profile(lifecycle, billing, profiles, subscribed):
    billing.fail_with = BillingProviderError("stripe down")
    with pytest.raises(UpstreamError):
        lifecycle.cancel_at_period_end("user_alice")
    assert profiles.read_profile("user_alice").cancel_at is None


def test_change_plan_swaps_price_with_proration(lifecycle, billing, profiles, subscribed):
    result = lifecycle.change_plan("user_alice", "GOLD")

    update = billing.updates[0]
    assert update["items"] == [{"id": "si_1", "price": "price_gold"}]
    assert update["proration_behavior"] == PRORATION_BEHAVIOR
    assert update["metadata"] == {"user_id": "user_alice", "plan": "gold"}

    assert result.plan == "gold"
    assert result.subscription_id == "sub_123"
    assert result.current_period_end == PERIOD_END
    profile = profiles.read_profile("user_alice")
    assert profile.plan == "gold"
    assert profile.status == "active"


def test_change_to_current_price_is_noop(lifecycle, billing, profiles, subscribed):
    with pytest.raises(NoOpError):
        lifecycle.change_plan("user_alice", "blue")
    assert billing.updates == []


def test_noop_compares_prices_not_plan_labels(lifecycle, billing, profiles, subscribed):
    # Stored plan label says blue but the provider already bills gold.
    billing.add_subscription(make_subscription(price_id="price_gold", plan="blue"))
    with pytest.raises(NoOpError):
        lifecycle.change_plan("user_alice", "gold")


@pytest.mark.parametrize("plan", [None, "platinum"])
def test_change_plan_validates_input(lifecycle, subscribed, plan):
    with pytest.raises(ValidationError):
        lifecycle.change_plan("user_alice", plan)


def test_change_plan_requires_configured_price(billing, profiles, subscribed):
    lifecycle = SubscriptionLifecycleManager(billing, profiles, {"blue": "price_blue"})
    with pytest.raises(ConfigurationError):
        lifecycle.change_plan("user_alice", "green")


def test_change_plan_without_items(lifecycle, billing, subscribed):
    billing.add_subscription(make_subscription(items=[]))
    with pytest.raises(ReconciliationError):
        lifecycle.change_plan("user_alice", "green")


def test_change_plan_card_declined(lifecycle, billing, profiles, subscribed):
    billing.fail_with = BillingRejectedError("card_declined", user_message="Your card was declined.")
    with pytest.raises(ProviderRejectedError) as exc_info:
        lifecycle.change_plan("user_alice", "green")
    assert exc_info.value.message == "Your card was declined."
    assert profiles.read_profile("user_alice").plan == "blue"


def test_change_plan_keeps_billing_anchor(lifecycle, billing, subscribed):
    before = billing.subscriptions["sub_123"].period_end
    result = lifecycle.change_plan("user_alice", "green")
    assert result.current_period_end == before == datetime(2026, 11, 30, tzinfo=timezone.utc)
