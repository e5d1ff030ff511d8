from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List, Literal

LoanType = Literal["personal", "business", "student", "mortgage", "car loan", "quickie loan"]
LoanStatusName = Literal["pending", "approved", "rejected", "active", "completed", "defaulted"]


def _strip_or_none(v):
    if v is None:
        return None
    v = str(v).strip()
    return v or None


class LoanOfferCreate(BaseModel):
    """Admin-created template; no borrower, no disbursement details."""
    loan_type: LoanType
    amount: float = Field(gt=0)
    interest_rate: float = Field(ge=0)
    term_months: int = Field(gt=0)
    documents: Optional[str] = None


class LoanApply(BaseModel):
    amount: float = Field(gt=0)
    term_months: int = Field(gt=0)
    loan_type: LoanType
    interest_rate: float = Field(ge=0)
    reason: Optional[str] = None

    bank_name: str = Field(min_length=1)
    account_name: str = Field(min_length=1)
    account_number: str = Field(min_length=1)
    bvn: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: str = Field(min_length=3)

    documents: Optional[str] = None

    @field_validator("bank_name", "account_name", "account_number", "bvn", "phone", "email", mode="before")
    def strip_required(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator("reason", "documents", mode="before")
    def empty_to_none(cls, v):
        return _strip_or_none(v)


class LoanUpdate(BaseModel):
    amount: Optional[float] = Field(default=None, gt=0)
    interest_rate: Optional[float] = Field(default=None, ge=0)
    term_months: Optional[int] = Field(default=None, gt=0)
    loan_type: Optional[LoanType] = None
    documents: Optional[str] = None


class LoanStatusUpdate(BaseModel):
    status: LoanStatusName


class UserMiniOut(BaseModel):
    user_id: int
    name: str
    email: Optional[str] = None

    class Config:
        from_attributes = True


class LoanOut(BaseModel):
    loan_id: int
    loan_ref: str
    user_id: Optional[int] = None
    user: Optional[UserMiniOut] = None

    loan_type: str
    amount: float
    interest_rate: float
    term_months: int
    monthly_payment: float
    total_repayable: float
    repayment_balance: float

    status: str
    is_offer: bool
    reason: Optional[str] = None

    bank_name: Optional[str] = None
    account_name: Optional[str] = None
    account_number: Optional[str] = None
    bvn: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    documents: Optional[str] = None

    application_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    defaulted_at: Optional[datetime] = None
    last_repayment_date: Optional[datetime] = None
    created_on: Optional[datetime] = None

    class Config:
        from_attributes = True


class LoanOfferOut(BaseModel):
    loan_id: int
    loan_ref: str
    loan_type: str
    amount: float
    interest_rate: float
    term_months: int
    monthly_payment: float
    total_repayable: float
    documents: Optional[str] = None

    class Config:
        from_attributes = True


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class LoanPage(BaseModel):
    data: List[LoanOut]
    meta: PageMeta


class LoanOfferPage(BaseModel):
    data: List[LoanOfferOut]
    meta: PageMeta


class LoanMessageOut(BaseModel):
    message: str
    loan: LoanOut


class RecentLoanOut(BaseModel):
    loan_id: int
    loan_ref: str
    user_id: Optional[int] = None
    amount: float
    loan_type: str
    status: str
    created_on: Optional[datetime] = None

    class Config:
        from_attributes = True


class LoanStatsOut(BaseModel):
    total_loans: int = 0
    pending_loans: int = 0
    approved_loans: int = 0
    active_loans: int = 0
    completed_loans: int = 0
    rejected_loans: int = 0
    defaulted_loans: int = 0


class AdminDashboardOut(BaseModel):
    statistics: LoanStatsOut
    loan_distribution: dict[str, int]
    loan_type_levels: dict[str, int]
    recent_loans: List[RecentLoanOut]


class UserDashboardOut(BaseModel):
    statistics: LoanStatsOut
    loan_types: dict[str, int]
    recent_loans: List[RecentLoanOut]
