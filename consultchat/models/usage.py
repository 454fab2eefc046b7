"""
consultchat/models/usage.py

UsageCounters: per-user answer counters backing the free tier.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from consultchat.models.plan import as_utc


class UsageCounters(BaseModel):
    """
    total_answers grows by one per successful chat turn.
    free_answers_used grows only while the user has no active paid plan.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    total_answers: int = 0
    free_answers_used: int = 0
    last_answer_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("last_answer_at", "updated_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def remaining_free(self, limit: int) -> int:
        return max(limit - self.free_answers_used, 0)
