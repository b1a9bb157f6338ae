from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rating_service.errors import StoreUnavailable
from rating_service.models import Notification

logger = logging.getLogger(__name__)


@contextmanager
def _notification_call(db: Session, action: str):
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Notification store failed during {action}: {e}")
        raise StoreUnavailable(f"{action} failed: {e}") from e


class Notifier:
    """Writes in-app notifications for users and tracks their read state."""

    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        user_id: str,
        message: str,
        type: str = "system",
        title: str = "Notification",
        link: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id, type=type, title=title, message=message, link=link, meta=metadata or {}
        )
        with _notification_call(self.db, "notify"):
            self.db.add(notification)
            self.db.commit()
        logger.info(f"Notified user {user_id} ({type})")
        return notification

    def for_user(self, user_id: str) -> List[Notification]:
        with _notification_call(self.db, "list notifications"):
            return list(
                self.db.execute(
                    select(Notification).where(Notification.user_id == user_id).order_by(Notification.created_at.desc())
                ).scalars().all()
            )

    def mark_read(self, user_id: str, notification_id: str) -> Optional[Notification]:
        """Mark one of the user's notifications read. Returns None if the user has no such notification."""
        with _notification_call(self.db, "mark notification read"):
            notification = self.db.get(Notification, notification_id)
            if notification is None or notification.user_id != user_id:
                return None
            if not notification.read:
                notification.read = True
                notification.read_at = datetime.utcnow()
                self.db.commit()
        return notification

    def mark_all_read(self, user_id: str) -> int:
        with _notification_call(self.db, "mark all notifications read"):
            result = self.db.execute(
                update(Notification)
                .where(Notification.user_id == user_id, Notification.read.is_(False))
                .values(read=True, read_at=datetime.utcnow())
            )
            self.db.commit()
        logger.info(f"Marked {result.rowcount} notification(s) read for user {user_id}")
        return result.rowcount
