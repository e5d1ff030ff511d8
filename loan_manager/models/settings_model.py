from sqlalchemy import Column, Integer, String, DateTime, Numeric, JSON
from sqlalchemy.sql import func
from loan_manager.utils.database import Base

SETTINGS_ROW_ID = 1


class LoanSettings(Base):
    """Process-wide lending policy. Exactly one row, pinned to SETTINGS_ROW_ID."""

    __tablename__ = "loan_settings"

    settings_id = Column(Integer, primary_key=True, default=SETTINGS_ROW_ID)

    interest_rate = Column(Numeric(6, 2), nullable=False)  # % annual
    loan_term_options = Column(JSON, nullable=False)  # months, e.g. [6, 12, 24]
    max_loan_amount = Column(Numeric(14, 2), nullable=False)
    min_loan_amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(10), nullable=False)
    grace_period_days = Column(Integer, nullable=False)
    late_payment_penalty = Column(Numeric(6, 2), nullable=False)  # % of amount due

    updated_on = Column(DateTime, server_default=func.now(), onupdate=func.now())
