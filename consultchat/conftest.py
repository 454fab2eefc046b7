# consultchat/conftest.py
import json

import pytest
from fastapi.testclient import TestClient

from consultchat.core.config import Settings
from consultchat.core.database import create_all_tables, init_engine, make_session_factory
from consultchat.features.billing.records import CheckoutRecords
from consultchat.features.profiles.mirror import ProfileMirror
from consultchat.features.usage.gate import QuotaGate
from consultchat.features.usage.ledger import UsageLedger
from consultchat.tests.mocks import JWT_SECRET, FakeBillingProvider, FakeLLM

PRICES = {"blue": "price_blue", "green": "price_green", "gold": "price_gold"}
PROMPTS = {
    "blue": {"systemPrompt": "You are the Blue construction consultant."},
    "green": {"systemPrompt": "You are the Green construction consultant."},
    "gold": {"systemPrompt": "You are the Gold construction consultant."},
}


@pytest.fixture
def db_url(tmp_path):
    """File-backed SQLite database, one per test."""
    return f"sqlite:///{tmp_path / 'consultchat.db'}"


@pytest.fixture
def engine(db_url):
    engine = init_engine(db_url)
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def profiles(session_factory):
    return ProfileMirror(session_factory)


@pytest.fixture
def ledger(session_factory):
    return UsageLedger(session_factory)


@pytest.fixture
def records(session_factory):
    return CheckoutRecords(session_factory)


@pytest.fixture
def gate(profiles, ledger):
    return QuotaGate(profiles, ledger, free_limit=3)


@pytest.fixture
def billing():
    return FakeBillingProvider()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def test_settings(db_url):
    return Settings(
        _env_file=None,
        ENV="test",
        DATABASE_URL=db_url,
        SUPABASE_JWT_SECRET=JWT_SECRET,
        GEMINI_API_KEY="test-gemini-key",
        PROMPTS_JSON=json.dumps(PROMPTS),
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_PRICE_BLUE=PRICES["blue"],
        STRIPE_PRICE_GREEN=PRICES["green"],
        STRIPE_PRICE_GOLD=PRICES["gold"],
        PUBLIC_BASE_URL="https://app.example.test",
    )


@pytest.fixture
def app(test_settings, engine, billing, llm):
    from consultchat.main import create_app

    return create_app(test_settings, billing=billing, llm=llm, engine=engine)


@pytest.fixture
def client(app):
    return TestClient(app)
