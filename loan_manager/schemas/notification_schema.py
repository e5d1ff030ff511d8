from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Literal

NotificationType = Literal["loan", "repayment", "warning", "offer", "system"]


class NotificationCreate(BaseModel):
    user_id: int
    type: NotificationType
    message: str = Field(min_length=1, max_length=1000)
    reference_id: Optional[int] = None
    reference_model: Optional[Literal["Loan", "Repayment"]] = None


class NotificationOut(BaseModel):
    notification_id: int
    user_id: int
    type: str
    message: str
    reference_id: Optional[int] = None
    reference_model: Optional[str] = None
    is_read: bool
    created_on: Optional[datetime] = None

    class Config:
        from_attributes = True
