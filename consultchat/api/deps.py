"""
FastAPI dependencies.

Collaborators are built once by create_app and stored on app.state; the
helpers below hand them to route handlers.
"""
from fastapi import Request

from consultchat.core.auth import CurrentUser
from consultchat.features.billing.checkout import CheckoutOrchestrator
from consultchat.features.billing.lifecycle import SubscriptionLifecycleManager
from consultchat.features.chat.service import ChatProxy
from consultchat.features.profiles.mirror import ProfileMirror
from consultchat.features.usage.gate import QuotaGate


def get_current_user(request: Request) -> CurrentUser:
    user = request.app.state.identity.authenticate(request)
    request.state.user_id = user.id
    return user


def get_profiles(request: Request) -> ProfileMirror:
    return request.app.state.profiles


def get_quota_gate(request: Request) -> QuotaGate:
    return request.app.state.quota_gate


def get_checkout(request: Request) -> CheckoutOrchestrator:
    return request.app.state.checkout


def get_lifecycle(request: Request) -> SubscriptionLifecycleManager:
    return request.app.state.lifecycle


def get_chat(request: Request) -> ChatProxy:
    return request.app.state.chat


def request_origin(request: Request) -> str:
    """Base URL for checkout redirects: PUBLIC_BASE_URL, else the caller's origin."""
    configured = request.app.state.settings.PUBLIC_BASE_URL
    if configured:
        return configured.rstrip("/")
    origin = request.headers.get("origin")
    if origin:
        return origin.rstrip("/")
    return str(request.base_url).rstrip("/")
