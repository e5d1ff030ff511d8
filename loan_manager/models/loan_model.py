# loan_manager/models/loan_model.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Numeric,
    Boolean,
    ForeignKey,
    Index,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from loan_manager.utils.database import Base


class Loan(Base):
    __tablename__ = "loans"

    __table_args__ = (
        Index("ix_loans_status", "status"),
        Index("ix_loans_user_status", "user_id", "status"),
        Index("ix_loans_offer_type", "is_offer", "loan_type"),
    )

    loan_id = Column(Integer, primary_key=True, index=True)
    loan_ref = Column(String(50), unique=True, nullable=False)

    # NULL for offers (admin templates not yet assigned to a borrower)
    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=True, index=True)
    created_by = Column(Integer, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)

    # personal / business / student / mortgage / car loan / quickie loan
    loan_type = Column(String(30), nullable=False)

    amount = Column(Numeric(12, 2), nullable=False)
    interest_rate = Column(Numeric(6, 2), nullable=False)
    term_months = Column(Integer, nullable=False)

    # derived from amount / interest_rate / term_months
    monthly_payment = Column(Numeric(12, 2), nullable=False)
    total_repayable = Column(Numeric(12, 2), nullable=False)

    # outstanding amount, decremented by repayments
    repayment_balance = Column(Numeric(12, 2), nullable=False, server_default="0")

    # PENDING -> APPROVED/REJECTED -> ACTIVE -> COMPLETED/DEFAULTED (lower-case on disk)
    status = Column(String(20), nullable=False, server_default="pending")

    is_offer = Column(Boolean, nullable=False, server_default="false")
    reason = Column(Text, nullable=True)

    # disbursement details, required for applications only
    bank_name = Column(String(120), nullable=True)
    account_name = Column(String(120), nullable=True)
    account_number = Column(String(30), nullable=True)
    bvn = Column(String(20), nullable=True)
    phone = Column(String(30), nullable=True)
    email = Column(String(180), nullable=True)

    # opaque path/url from the upload layer
    documents = Column(String(500), nullable=True)

    application_date = Column(DateTime, nullable=True)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    defaulted_at = Column(DateTime, nullable=True)
    last_repayment_date = Column(DateTime, nullable=True)

    created_on = Column(DateTime, server_default=func.now(), nullable=True)

    user = relationship("User", foreign_keys=[user_id], lazy="joined")

    repayments = relationship(
        "Repayment",
        back_populates="loan",
        cascade="all, delete-orphan",
    )
    transactions = relationship(
        "Transaction",
        back_populates="loan",
        cascade="all, delete-orphan",
    )
