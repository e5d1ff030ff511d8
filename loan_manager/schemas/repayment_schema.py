from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime
from typing import Optional, List, Literal

PaymentMethod = Literal["bank", "card", "mobile_money", "cash", "bank transfer"]
RepaymentStatusName = Literal["paid", "late", "upcoming", "rejected"]


class RepaymentCreate(BaseModel):
    loan_id: int
    # rounded to whole units and checked > 0 by the ledger
    amount_paid: float = Field(allow_inf_nan=False)
    payment_method: PaymentMethod
    due_date: date
    evidence: Optional[str] = None

    @field_validator("evidence", mode="before")
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class RepaymentUpdate(BaseModel):
    status: Optional[RepaymentStatusName] = None
    amount_paid: Optional[float] = Field(default=None, gt=0)
    payment_method: Optional[PaymentMethod] = None
    due_date: Optional[date] = None
    evidence: Optional[str] = None


class RepaymentOut(BaseModel):
    repayment_id: int
    loan_id: int
    user_id: int
    amount_paid: float
    payment_method: str
    due_date: date
    payment_date: datetime
    status: str
    reference_id: str
    evidence: Optional[str] = None

    # derived on every read, never stored
    total_paid: float = 0
    repayment_balance: float = 0
    loan_status: Optional[str] = None


class RepaymentListOut(BaseModel):
    count: int
    repayments: List[RepaymentOut]


class RepaymentResult(BaseModel):
    message: str
    repayment: RepaymentOut
    loan_status: str
    remaining_balance: float
