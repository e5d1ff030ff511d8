from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette import status

from loan_manager.core.security import get_current_user, require_admin
from loan_manager.models.user_model import User
from loan_manager.schemas.notification_schema import NotificationCreate, NotificationOut
from loan_manager.services import notifications
from loan_manager.utils.database import get_db

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationOut])
def list_notifications(
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    return notifications.list_notifications(db, user)


@router.get("/unread", response_model=List[NotificationOut])
def unread_notifications(
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    return notifications.list_notifications(db, user, unread_only=True)


@router.post("", response_model=NotificationOut, status_code=status.HTTP_201_CREATED)
def create_notification(
        payload: NotificationCreate,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    return notifications.create_notification(db, payload)


@router.put("/read/{notification_id}", response_model=NotificationOut, status_code=status.HTTP_201_CREATED)
def mark_as_read(
        notification_id: int,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    return notifications.mark_as_read(db, user, notification_id)


@router.get("/{notification_id}", response_model=NotificationOut)
def get_notification(
        notification_id: int,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    return notifications.get_notification(db, user, notification_id)


@router.delete("/{notification_id}")
def delete_notification(
        notification_id: int,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    notifications.delete_notification(db, user, notification_id)
    return {"message": "Notification deleted successfully"}
