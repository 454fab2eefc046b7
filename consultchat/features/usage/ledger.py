"""
Usage ledger: per-user answer counters.

Handles:
- Reading counters (absence reads as zero)
- Relative increments after a successful answer
- Timestamp touches on checkout (counters are never reset)
"""
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from consultchat.core.database import session_scope, upsert, usage_counts
from consultchat.core.errors import StoreError
from consultchat.models.usage import UsageCounters


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UsageLedger:
    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utc_now):
        self._session_factory = session_factory
        self._clock = clock

    def read_counters(self, user_id: str) -> UsageCounters:
        """Current counters for ``user_id``; zero-valued when no row exists."""
        try:
            with session_scope(self._session_factory) as session:
                row = session.execute(
                    select(usage_counts).where(usage_counts.c.user_id == user_id)
                ).mappings().first()
        except SQLAlchemyError as exc:
            raise StoreError("Could not load usage. Please try again.") from exc

        if row is None:
            return UsageCounters(user_id=user_id)
        return UsageCounters(**dict(row))

    def increment_after_success(self, user_id: str, is_paid: bool) -> UsageCounters:
        """
        Record one successful answer.

        total_answers always grows by one; free_answers_used grows only when
        ``is_paid`` is False. The update is relative (col = col + 1) so
        concurrent requests never lose an increment. The first call creates
        the row.

        Returns:
            Counters as stored after the increment.
        """
        now = self._clock()
        free_step = 0 if is_paid else 1
        try:
            with session_scope(self._session_factory) as session:
                stmt = upsert(session, usage_counts).values(
                    user_id=user_id,
                    total_answers=1,
                    free_answers_used=free_step,
                    last_answer_at=now,
                    updated_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[usage_counts.c.user_id],
                    set_={
                        "total_answers": usage_counts.c.total_answers + 1,
                        "free_answers_used": usage_counts.c.free_answers_used + free_step,
                        "last_answer_at": now,
                        "updated_at": now,
                    },
                )
                session.execute(stmt)
                row = session.execute(
                    select(usage_counts).where(usage_counts.c.user_id == user_id)
                ).mappings().one()
        except SQLAlchemyError as exc:
            raise StoreError("Could not record usage. Please try again.") from exc

        return UsageCounters(**dict(row))

    def touch(self, user_id: str) -> None:
        """Create the row if missing and stamp updated_at; counters are kept."""
        now = self._clock()
        try:
            with session_scope(self._session_factory) as session:
                stmt = upsert(session, usage_counts).values(user_id=user_id, updated_at=now)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[usage_counts.c.user_id],
                    set_={"updated_at": now},
                )
                session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError("Could not update usage. Please try again.") from exc
