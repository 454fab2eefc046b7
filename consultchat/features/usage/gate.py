"""
Quota gate: admission control run at the start of every chat turn.

Order within one request is strictly gate -> generate -> increment, so a
failed generation never consumes quota. Admission is not serialized across
concurrent requests from the same user; the increment itself is atomic.
"""
import asyncio
from dataclasses import dataclass
from typing import Optional

from starlette.concurrency import run_in_threadpool

from consultchat.features.profiles.mirror import ProfileMirror
from consultchat.features.usage.ledger import UsageLedger
from consultchat.models.plan import PlanKey, SubscriptionStatus
from consultchat.models.usage import UsageCounters


@dataclass(frozen=True)
class QuotaDecision:
    allow: bool
    plan: Optional[PlanKey]
    status: Optional[SubscriptionStatus]
    has_active_plan: bool
    remaining_free: int
    free_answers_used: int
    total_answers: int
    limit: int

    def usage_payload(self) -> dict:
        return {
            "totalAnswers": self.total_answers,
            "freeAnswersUsed": self.free_answers_used,
            "remainingFree": self.remaining_free,
            "limit": self.limit,
            "hasActivePlan": self.has_active_plan,
            "plan": self.plan,
            "status": self.status,
        }


class QuotaGate:
    def __init__(self, profiles: ProfileMirror, ledger: UsageLedger, free_limit: int = 3):
        self.profiles = profiles
        self.ledger = ledger
        self.free_limit = free_limit

    async def check(self, user_id: str) -> QuotaDecision:
        """Decide whether ``user_id`` may consume one answer now."""
        profile, counters = await asyncio.gather(
            run_in_threadpool(self.profiles.read_profile, user_id),
            run_in_threadpool(self.ledger.read_counters, user_id),
        )
        has_active_plan = bool(profile and profile.has_active_plan)
        if has_active_plan:
            allow = True
        else:
            allow = counters.free_answers_used < self.free_limit
        return self._decision(
            allow,
            counters,
            has_active_plan,
            plan=profile.plan if profile else None,
            status=profile.status if profile else None,
        )

    async def record_success(self, user_id: str, decision: QuotaDecision) -> QuotaDecision:
        """Increment counters after a successful answer and return the new view."""
        counters = await run_in_threadpool(
            self.ledger.increment_after_success, user_id, decision.has_active_plan
        )
        return self._decision(
            True,
            counters,
            decision.has_active_plan,
            plan=decision.plan,
            status=decision.status,
        )

    def _decision(
        self,
        allow: bool,
        counters: UsageCounters,
        has_active_plan: bool,
        *,
        plan: Optional[PlanKey],
        status: Optional[SubscriptionStatus],
    ) -> QuotaDecision:
        return QuotaDecision(
            allow=allow,
            plan=plan,
            status=status,
            has_active_plan=has_active_plan,
            remaining_free=counters.remaining_free(self.free_limit),
            free_answers_used=counters.free_answers_used,
            total_answers=counters.total_answers,
            limit=self.free_limit,
        )
