"""Fire-and-forget buyer/admin notifications via the outbox table."""

from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ticketgate.core.logging_config import get_logger
from ticketgate.models.notification import Notification

logger = get_logger(__name__)


class OutboxNotifier:
    """Queue messages in their own session, after the business commit.

    A failure here is logged and dropped; it never undoes the order that
    triggered it.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def notify(self, recipients: Iterable[str], kind: str, message: str) -> int:
        emails = sorted({r.strip().lower() for r in recipients if r and r.strip()})
        if not emails:
            return 0
        db = self._session_factory()
        try:
            for email in emails:
                db.add(Notification(recipient_email=email, type=kind, message=message[:1024]))
            db.commit()
            return len(emails)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Notification enqueue failed", extra={"kind": kind})
            return 0
        finally:
            db.close()
