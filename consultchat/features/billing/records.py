"""Checkout audit trail (checkout_sessions table)."""
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from consultchat.core.database import checkout_sessions, session_scope, upsert
from consultchat.core.errors import StoreError
from consultchat.models.checkout import CheckoutRecord


class CheckoutRecords:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def upsert_record(self, record: CheckoutRecord) -> None:
        """Insert or refresh the record for ``record.session_id`` (idempotent)."""
        values = record.model_dump(exclude_none=True)
        try:
            with session_scope(self._session_factory) as session:
                stmt = upsert(session, checkout_sessions).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[checkout_sessions.c.session_id],
                    set_={key: stmt.excluded[key] for key in values if key != "session_id"},
                )
                session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError("Could not record the checkout. Please try again.") from exc
