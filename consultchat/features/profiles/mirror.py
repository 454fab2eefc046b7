"""
Profile mirror: the local copy of each user's subscription state.

Only this module writes user_profiles. Writes are partial upserts: columns
not supplied by the caller keep their stored value.
"""
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from consultchat.core.database import session_scope, upsert, user_profiles
from consultchat.core.errors import StoreError
from consultchat.models.profile import UserProfile

WRITABLE_FIELDS = frozenset(
    {
        "plan",
        "status",
        "customer_id",
        "subscription_id",
        "current_period_end",
        "cancel_at",
    }
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProfileMirror:
    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utc_now):
        self._session_factory = session_factory
        self._clock = clock

    def read_profile(self, user_id: str) -> Optional[UserProfile]:
        """
        Return the stored profile, or None when the user has none yet.

        Raises:
            StoreError: on any data-store failure
        """
        try:
            with session_scope(self._session_factory) as session:
                row = session.execute(
                    select(user_profiles).where(user_profiles.c.user_id == user_id)
                ).mappings().first()
        except SQLAlchemyError as exc:
            raise StoreError("Could not load subscription details. Please try again.") from exc

        if row is None:
            return None
        return UserProfile(**dict(row))

    def write_profile(self, user_id: str, **fields: Any) -> UserProfile:
        """
        Upsert the supplied fields for ``user_id`` and stamp updated_at.

        Fields omitted from the call are left untouched on an existing row.
        An explicit None clears the column.

        Returns:
            The profile as stored after the write.

        Raises:
            ValueError: if a field is not a profile column
            StoreError: on any data-store failure
        """
        unknown = set(fields) - WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")

        values = dict(fields, user_id=user_id, updated_at=self._clock())
        try:
            with session_scope(self._session_factory) as session:
                stmt = upsert(session, user_profiles).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[user_profiles.c.user_id],
                    set_={key: stmt.excluded[key] for key in values if key != "user_id"},
                )
                session.execute(stmt)
                row = session.execute(
                    select(user_profiles).where(user_profiles.c.user_id == user_id)
                ).mappings().one()
        except SQLAlchemyError as exc:
            raise StoreError("Could not save subscription details. Please try again.") from exc

        return UserProfile(**dict(row))
