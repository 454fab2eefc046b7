"""
Usage API routes.

- GET /api/usage/summary: answer counters and remaining free answers
"""
from fastapi import APIRouter, Depends

from consultchat.api.deps import get_current_user, get_quota_gate
from consultchat.core.auth import CurrentUser
from consultchat.features.usage.gate import QuotaGate

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("/summary")
async def summary(
    user: CurrentUser = Depends(get_current_user),
    gate: QuotaGate = Depends(get_quota_gate),
):
    decision = await gate.check(user.id)
    return {"ok": True, **decision.usage_payload()}
