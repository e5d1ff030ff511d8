from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from loan_manager.utils.database import Base


class Notification(Base):
    __tablename__ = "notifications"

    notification_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)

    # loan / repayment / warning / offer / system
    type = Column(String(20), nullable=False)
    message = Column(Text, nullable=False)

    # optional pointer at the Loan or Repayment this is about
    reference_id = Column(Integer, nullable=True)
    reference_model = Column(String(20), nullable=True)

    is_read = Column(Boolean, nullable=False, default=False, server_default="false")
    created_on = Column(DateTime, server_default=func.now())
