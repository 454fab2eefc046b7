"""
Application factory.

Run with:
    uvicorn consultchat.main:create_app --factory
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

from consultchat import __version__
from consultchat.api import chat, checkout, health, subscription, usage
from consultchat.core.auth import IdentityProvider, SupabaseIdentity
from consultchat.core.config import Settings, settings as default_settings, validate_config
from consultchat.core.database import create_all_tables, init_engine, make_session_factory
from consultchat.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from consultchat.core.logging import configure_logging
from consultchat.core.middleware.request_id import RequestIdMiddleware
from consultchat.core.validation import validate_env
from consultchat.features.billing.checkout import CheckoutOrchestrator
from consultchat.features.billing.lifecycle import SubscriptionLifecycleManager
from consultchat.features.billing.provider import BillingProvider
from consultchat.features.billing.records import CheckoutRecords
from consultchat.features.billing.stripe_provider import StripeProvider
from consultchat.features.chat.gemini_client import GeminiClient
from consultchat.features.chat.prompts import PromptBook
from consultchat.features.chat.provider import GenerationConfig, LLMProvider
from consultchat.features.chat.service import ChatProxy
from consultchat.features.profiles.mirror import ProfileMirror
from consultchat.features.usage.gate import QuotaGate
from consultchat.features.usage.ledger import UsageLedger

logger = logging.getLogger("consultchat")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting consultchat backend...")
    app.state.startup_time = time.time()
    try:
        yield
    finally:
        aclose = getattr(app.state.llm, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.info("Stopping consultchat backend...")


def create_app(
    settings: Optional[Settings] = None,
    *,
    billing: Optional[BillingProvider] = None,
    llm: Optional[LLMProvider] = None,
    identity: Optional[IdentityProvider] = None,
    engine: Optional[Engine] = None,
) -> FastAPI:
    """
    Build the FastAPI app and its collaborators.

    Any of billing/llm/identity/engine may be passed in (tests inject fakes);
    the rest are built from settings.
    """
    cfg = settings or default_settings
    configure_logging(cfg.ENV)
    validate_env(settings_obj=cfg)
    validate_config(settings_obj=cfg)

    engine = engine or init_engine(cfg.DATABASE_URL)
    create_all_tables(engine)
    session_factory = make_session_factory(engine)

    billing = billing or StripeProvider(cfg.STRIPE_SECRET_KEY, timeout=cfg.STRIPE_TIMEOUT_SECONDS)
    llm = llm or GeminiClient(
        cfg.GEMINI_API_KEY,
        cfg.GEMINI_MODEL,
        base_url=cfg.GEMINI_BASE_URL,
        timeout=cfg.LLM_TIMEOUT_SECONDS,
    )
    identity = identity or SupabaseIdentity(cfg.SUPABASE_JWT_SECRET, cfg.SUPABASE_JWT_AUDIENCE)

    profiles = ProfileMirror(session_factory)
    ledger = UsageLedger(session_factory)
    prices = cfg.price_map()
    gate = QuotaGate(profiles, ledger, free_limit=cfg.FREE_USAGE_LIMIT)

    app = FastAPI(title="consultchat", version=__version__, lifespan=lifespan)
    app.state.settings = cfg
    app.state.engine = engine
    app.state.llm = llm
    app.state.identity = identity
    app.state.profiles = profiles
    app.state.quota_gate = gate
    app.state.checkout = CheckoutOrchestrator(billing, profiles, ledger, CheckoutRecords(session_factory), prices)
    app.state.lifecycle = SubscriptionLifecycleManager(billing, profiles, prices, cfg.DISPLAY_TIMEZONE)
    app.state.chat = ChatProxy(
        gate,
        llm,
        PromptBook(cfg.PROMPTS_JSON),
        GenerationConfig(temperature=cfg.LLM_TEMPERATURE, max_output_tokens=cfg.LLM_MAX_OUTPUT_TOKENS),
        max_attachment_bytes=cfg.MAX_ATTACHMENT_BYTES,
    )

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(chat.router, prefix="/api")
    app.include_router(checkout.router, prefix="/api")
    app.include_router(subscription.router, prefix="/api")
    app.include_router(usage.router, prefix="/api")
    app.include_router(health.router)

    return app
