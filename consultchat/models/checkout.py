"""
consultchat/models/checkout.py

CheckoutRecord: audit trail entry for a provider checkout session.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from consultchat.models.plan import CheckoutStatus, PlanKey


class CheckoutRecord(BaseModel):
    """Written once per checkout attempt; never read back for gating."""
    model_config = ConfigDict(frozen=True)

    session_id: str
    user_id: str
    plan: PlanKey
    status: CheckoutStatus
    created_at: Optional[datetime] = None
