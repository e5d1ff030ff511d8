from sqlalchemy import (
    Column, Integer, String, DateTime, Numeric, ForeignKey
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from loan_manager.utils.database import Base


class Transaction(Base):
    __tablename__ = "transactions"

    transaction_id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)
    loan_id = Column(Integer, ForeignKey("loans.loan_id", ondelete="CASCADE"), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    type = Column(String(20), nullable=False)  # payment / disbursement / refund
    status = Column(String(20), nullable=False, default="pending")  # pending / completed / failed
    method = Column(String(20), nullable=False)  # bank / card / mobile_money / cash

    transaction_date = Column(DateTime, server_default=func.now(), nullable=False)
    reference_id = Column(String(50), unique=True, nullable=False)

    loan = relationship("Loan", back_populates="transactions")
    user = relationship("User")
