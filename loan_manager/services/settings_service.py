import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List

from fastapi import Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from loan_manager.core import config
from loan_manager.core.errors import NotFound, StateConflict, ValidationFailed
from loan_manager.models.settings_model import LoanSettings, SETTINGS_ROW_ID
from loan_manager.schemas.settings_schema import SettingsCreate, SettingsPatch
from loan_manager.utils.database import get_db
from loan_manager.utils.loan_calculations import money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoanPolicy:
    """Lending limits in force for a request; built from the settings row or config defaults."""

    interest_rate: Decimal = config.DEFAULT_INTEREST_RATE
    loan_term_options: List[int] = field(default_factory=lambda: list(config.DEFAULT_LOAN_TERM_OPTIONS))
    min_loan_amount: Decimal = config.DEFAULT_MIN_LOAN_AMOUNT
    max_loan_amount: Decimal = config.DEFAULT_MAX_LOAN_AMOUNT
    currency: str = config.DEFAULT_CURRENCY
    grace_period_days: int = config.DEFAULT_GRACE_PERIOD_DAYS
    late_payment_penalty: Decimal = config.DEFAULT_LATE_PAYMENT_PENALTY

    @classmethod
    def from_row(cls, row: LoanSettings) -> "LoanPolicy":
        return cls(
            interest_rate=money(row.interest_rate),
            loan_term_options=[int(t) for t in (row.loan_term_options or [])],
            min_loan_amount=money(row.min_loan_amount),
            max_loan_amount=money(row.max_loan_amount),
            currency=row.currency,
            grace_period_days=int(row.grace_period_days),
            late_payment_penalty=money(row.late_payment_penalty),
        )

    def check_application(self, amount: Decimal, term_months: int) -> None:
        amount = money(amount)
        if amount < self.min_loan_amount or amount > self.max_loan_amount:
            raise ValidationFailed(
                f"Loan amount must be between {self.min_loan_amount} and "
                f"{self.max_loan_amount} {self.currency}"
            )
        if self.loan_term_options and int(term_months) not in self.loan_term_options:
            options = ", ".join(str(t) for t in self.loan_term_options)
            raise ValidationFailed(f"term_months must be one of: {options}")


def current_settings(db: Session):
    return db.query(LoanSettings).filter(LoanSettings.settings_id == SETTINGS_ROW_ID).first()


def get_loan_policy(db: Session) -> LoanPolicy:
    row = current_settings(db)
    return LoanPolicy.from_row(row) if row else LoanPolicy()


def loan_policy(db: Session = Depends(get_db)) -> LoanPolicy:
    return get_loan_policy(db)


def get_settings(db: Session) -> LoanSettings:
    row = current_settings(db)
    if not row:
        raise NotFound("Settings not found. Please initialize system settings.")
    return row


def create_settings(db: Session, payload: SettingsCreate) -> LoanSettings:
    # 1) singleton: refuse a second row
    if current_settings(db):
        raise StateConflict("Settings already exist. You can update them instead.")

    row = LoanSettings(
        settings_id=SETTINGS_ROW_ID,
        interest_rate=money(payload.interest_rate),
        loan_term_options=list(payload.loan_term_options),
        max_loan_amount=money(payload.max_loan_amount),
        min_loan_amount=money(payload.min_loan_amount),
        currency=payload.currency.strip().upper(),
        grace_period_days=payload.grace_period_days,
        late_payment_penalty=money(payload.late_payment_penalty),
    )

    try:
        db.add(row)
        db.commit()
    except IntegrityError:
        # lost the race against a concurrent create
        db.rollback()
        raise StateConflict("Settings already exist. You can update them instead.")

    db.refresh(row)
    logger.info("Loan settings created")
    return row


def update_settings(db: Session, payload: SettingsPatch) -> LoanSettings:
    row = current_settings(db)
    if not row:
        raise NotFound("Settings not found")

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationFailed("No settings fields supplied")

    new_min = money(changes.get("min_loan_amount", row.min_loan_amount))
    new_max = money(changes.get("max_loan_amount", row.max_loan_amount))
    if new_min > new_max:
        raise ValidationFailed("min_loan_amount cannot exceed max_loan_amount")

    for key, value in changes.items():
        if key in ("interest_rate", "min_loan_amount", "max_loan_amount", "late_payment_penalty"):
            value = money(value)
        elif key == "currency":
            value = value.strip().upper()
        setattr(row, key, value)

    db.commit()
    db.refresh(row)
    logger.info("Loan settings updated: %s", ", ".join(sorted(changes)))
    return row
