"""Tests for the profile mirror."""
from datetime import datetime, timezone

import pytest

from consultchat.core.database import session_scope, user_profiles
from consultchat.core.errors import StoreError

PERIOD_END = datetime(2026, 11, 30, tzinfo=timezone.utc)


def test_read_missing_profile_returns_none(profiles):
    assert profiles.read_profile("nobody") is None


def test_write_creates_profile(profiles):
    profile = profiles.write_profile(
        "user_alice",
        plan="blue",
        status="active",
        subscription_id="sub_1",
        current_period_end=PERIOD_END,
    )
    assert profile.plan == "blue"
    assert profile.has_active_plan
    assert profile.current_period_end == PERIOD_END
    assert profile.updated_at is not None


def test_partial_write_keeps_other_columns(profiles):
    profiles.write_profile("user_alice", plan="blue", status="active", customer_id="cus_1", subscription_id="sub_1")
    profile = profiles.write_profile("user_alice", status="past_due")
    assert profile.plan == "blue"
    assert profile.customer_id == "cus_1"
    assert profile.subscription_id == "sub_1"
    assert profile.status == "past_due"
    assert profile.has_active_plan


def test_explicit_none_clears_column(profiles):
    profiles.write_profile("user_alice", cancel_at=PERIOD_END)
    profile = profiles.write_profile("user_alice", cancel_at=None)
    assert profile.cancel_at is None


def test_unknown_field_rejected(profiles):
    with pytest.raises(ValueError):
        profiles.write_profile("user_alice", free_answers_used=0)


def test_out_of_vocabulary_values_read_as_none(profiles, session_factory):
    with session_scope(session_factory) as session:
        session.execute(user_profiles.insert().values(user_id="legacy", plan="platinum", status="trialing"))
    profile = profiles.read_profile("legacy")
    assert profile.plan is None
    assert profile.status is None
    assert not profile.has_active_plan


def test_store_failure_is_store_error(profiles, engine):
    user_profiles.drop(engine)
    with pytest.raises(StoreError):
        profiles.read_profile("user_alice")
