from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Literal

from loan_manager.schemas.loan_schema import UserMiniOut, PageMeta

TransactionType = Literal["payment", "disbursement", "refund"]
TransactionStatus = Literal["pending", "completed", "failed"]
TransactionMethod = Literal["bank", "card", "mobile_money", "cash"]


class TransactionCreate(BaseModel):
    user_id: int
    loan_id: int
    amount: float = Field(gt=0)
    type: TransactionType
    method: TransactionMethod


class TransactionUpdate(BaseModel):
    amount: Optional[float] = Field(default=None, gt=0)
    type: Optional[TransactionType] = None
    status: Optional[TransactionStatus] = None
    method: Optional[TransactionMethod] = None


class LoanMiniOut(BaseModel):
    loan_id: int
    loan_ref: str
    amount: float
    status: str

    class Config:
        from_attributes = True


class TransactionOut(BaseModel):
    transaction_id: int
    user_id: int
    loan_id: int
    amount: float
    type: str
    status: str
    method: str
    transaction_date: datetime
    reference_id: str

    user: Optional[UserMiniOut] = None
    loan: Optional[LoanMiniOut] = None

    class Config:
        from_attributes = True


class TransactionPage(BaseModel):
    data: List[TransactionOut]
    meta: PageMeta


class TransactionResult(BaseModel):
    message: str
    transaction: TransactionOut
    loan_status: str
