from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime
from typing import Optional, List


def _check_terms(v):
    if v is None:
        return v
    if not v or any(int(t) <= 0 for t in v):
        raise ValueError("loan_term_options must be a non-empty list of positive months")
    return sorted({int(t) for t in v})


class SettingsCreate(BaseModel):
    interest_rate: float = Field(5.0, ge=0)
    loan_term_options: List[int] = Field(default_factory=lambda: [6, 12, 24, 36])
    max_loan_amount: float = Field(10000000, gt=0)
    min_loan_amount: float = Field(10000, gt=0)
    currency: str = Field("NGN", min_length=1, max_length=10)
    grace_period_days: int = Field(7, ge=0)
    late_payment_penalty: float = Field(2.5, ge=0)

    @field_validator("loan_term_options")
    def terms_positive(cls, v):
        return _check_terms(v)

    @model_validator(mode="after")
    def min_not_above_max(self):
        if self.min_loan_amount > self.max_loan_amount:
            raise ValueError("min_loan_amount cannot exceed max_loan_amount")
        return self


class SettingsPatch(BaseModel):
    interest_rate: Optional[float] = Field(default=None, ge=0)
    loan_term_options: Optional[List[int]] = None
    max_loan_amount: Optional[float] = Field(default=None, gt=0)
    min_loan_amount: Optional[float] = Field(default=None, gt=0)
    currency: Optional[str] = Field(default=None, min_length=1, max_length=10)
    grace_period_days: Optional[int] = Field(default=None, ge=0)
    late_payment_penalty: Optional[float] = Field(default=None, ge=0)

    @field_validator("loan_term_options")
    def terms_positive(cls, v):
        return _check_terms(v)


class SettingsOut(BaseModel):
    interest_rate: float
    loan_term_options: List[int]
    max_loan_amount: float
    min_loan_amount: float
    currency: str
    grace_period_days: int
    late_payment_penalty: float
    updated_on: Optional[datetime] = None

    class Config:
        from_attributes = True


class SettingsResult(BaseModel):
    message: str
    settings: SettingsOut
