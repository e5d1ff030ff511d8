from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Numeric, Boolean, Text, ForeignKey, Index
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from loan_manager.utils.database import Base


class Repayment(Base):
    __tablename__ = "repayments"

    __table_args__ = (
        Index("ix_repayments_loan_deleted", "loan_id", "is_deleted"),
    )

    repayment_id = Column(Integer, primary_key=True, index=True)

    loan_id = Column(Integer, ForeignKey("loans.loan_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)

    amount_paid = Column(Numeric(12, 2), nullable=False)

    # bank / card / mobile_money / cash / bank transfer
    payment_method = Column(String(20), nullable=False, default="bank")

    due_date = Column(Date, nullable=False)
    payment_date = Column(DateTime, server_default=func.now(), nullable=False)

    # paid / late / upcoming / rejected
    status = Column(String(20), nullable=False, default="paid")

    reference_id = Column(String(50), unique=True, nullable=False)
    evidence = Column(Text, nullable=True)

    # never physically removed; see repayment_ledger.delete_repayment
    is_deleted = Column(Boolean, nullable=False, default=False, server_default="false")

    loan = relationship("Loan", back_populates="repayments")
    user = relationship("User")
