import logging
from typing import Optional

from sqlalchemy.orm import Session

from loan_manager.core.errors import NotFound, Forbidden
from loan_manager.core.security import is_admin
from loan_manager.models.notification_model import Notification
from loan_manager.models.user_model import User
from loan_manager.schemas.notification_schema import NotificationCreate

logger = logging.getLogger(__name__)


def notify(
        db: Session,
        user_id: Optional[int],
        type_: str,
        message: str,
        reference_id: Optional[int] = None,
        reference_model: Optional[str] = None,
) -> Optional[Notification]:
    """Queue a notification on the caller's session; committed with the caller's unit of work."""
    if user_id is None:
        return None

    note = Notification(
        user_id=user_id,
        type=type_,
        message=message,
        reference_id=reference_id,
        reference_model=reference_model,
        is_read=False,
    )
    db.add(note)
    return note


def list_notifications(db: Session, user: User, unread_only: bool = False):
    q = db.query(Notification).filter(Notification.user_id == user.user_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.notification_id.desc()).all()


def get_notification(db: Session, user: User, notification_id: int) -> Notification:
    note = db.query(Notification).filter(Notification.notification_id == notification_id).first()
    if not note:
        raise NotFound("Notification not found")
    if note.user_id != user.user_id and not is_admin(user):
        raise Forbidden("Not authorized to access this notification")
    return note


def create_notification(db: Session, payload: NotificationCreate) -> Notification:
    target = db.query(User).filter(User.user_id == payload.user_id).first()
    if not target:
        raise NotFound("User not found")

    note = notify(
        db,
        target.user_id,
        payload.type,
        payload.message.strip(),
        reference_id=payload.reference_id,
        reference_model=payload.reference_model,
    )
    db.commit()
    db.refresh(note)
    logger.info("Notification %s created for user %s", note.notification_id, target.user_id)
    return note


def mark_as_read(db: Session, user: User, notification_id: int) -> Notification:
    note = get_notification(db, user, notification_id)
    if note.user_id != user.user_id:
        raise Forbidden("Only the recipient can mark a notification as read")

    note.is_read = True
    db.commit()
    db.refresh(note)
    return note


def delete_notification(db: Session, user: User, notification_id: int) -> None:
    note = get_notification(db, user, notification_id)
    db.delete(note)
    db.commit()
