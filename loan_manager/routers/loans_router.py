from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette import status

from loan_manager.core.security import get_current_user, require_admin
from loan_manager.models.user_model import User
from loan_manager.schemas.loan_schema import (
    LoanOfferCreate,
    LoanApply,
    LoanUpdate,
    LoanStatusUpdate,
    LoanOut,
    LoanPage,
    LoanOfferPage,
    LoanMessageOut,
    AdminDashboardOut,
    UserDashboardOut,
    LoanStatusName,
    LoanType,
)
from loan_manager.services import loan_lifecycle
from loan_manager.services.settings_service import LoanPolicy, loan_policy
from loan_manager.utils.database import get_db

router = APIRouter(prefix="/loans", tags=["Loans"])


# =================================================
# 🔹 STATIC ROUTES (ALWAYS FIRST)
# =================================================
@router.get("/dashboard-data", response_model=AdminDashboardOut)
def admin_dashboard(
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    return loan_lifecycle.admin_dashboard(db)


@router.get("/user-dashboard-data", response_model=UserDashboardOut)
def user_dashboard(
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    return loan_lifecycle.user_dashboard(db, user)


@router.get("/offers", response_model=LoanOfferPage)
def list_offers(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        loan_type: Optional[LoanType] = None,
        db: Session = Depends(get_db),
):
    rows, meta = loan_lifecycle.list_offers(db, page, limit, loan_type)
    return {"data": rows, "meta": meta}


@router.post("/apply", response_model=LoanMessageOut, status_code=status.HTTP_201_CREATED)
def apply_for_loan(
        payload: LoanApply,
        user: User = Depends(get_current_user),
        policy: LoanPolicy = Depends(loan_policy),
        db: Session = Depends(get_db),
):
    loan = loan_lifecycle.apply_for_loan(db, user, payload, policy)
    return {"message": "Loan application submitted successfully", "loan": loan}


# =================================================
# 🔹 ADMIN LIST / OFFER CREATION
# =================================================
@router.get("", response_model=LoanPage)
def list_loans(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        status: Optional[LoanStatusName] = None,
        is_offer: Optional[bool] = None,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    rows, meta = loan_lifecycle.list_loans(db, page, limit, status, is_offer)
    return {"data": rows, "meta": meta}


@router.post("", response_model=LoanMessageOut, status_code=status.HTTP_201_CREATED)
def create_offer(
        payload: LoanOfferCreate,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    loan = loan_lifecycle.create_offer(db, admin, payload)
    return {"message": "Loan offer created successfully", "loan": loan}


# =================================================
# 🔹 DYNAMIC ROUTES (LAST)
# =================================================
@router.get("/{loan_id}", response_model=LoanOut)
def get_loan(
        loan_id: int,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    return loan_lifecycle.get_loan(db, loan_id, user)


@router.put("/{loan_id}", response_model=LoanOut, status_code=status.HTTP_201_CREATED)
def update_loan(
        loan_id: int,
        payload: LoanUpdate,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    return loan_lifecycle.update_loan(db, user, loan_id, payload)


@router.put("/{loan_id}/status", response_model=LoanOut, status_code=status.HTTP_201_CREATED)
def update_loan_status(
        loan_id: int,
        payload: LoanStatusUpdate,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    return loan_lifecycle.update_status(db, loan_id, payload.status)


@router.patch("/{loan_id}/reject", response_model=LoanMessageOut, status_code=status.HTTP_201_CREATED)
def reject_loan(
        loan_id: int,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    loan = loan_lifecycle.reject_loan(db, loan_id)
    return {"message": "Loan rejected successfully", "loan": loan}


@router.delete("/{loan_id}")
def delete_loan(
        loan_id: int,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    loan_lifecycle.delete_loan(db, loan_id)
    return {"message": f"Loan deleted successfully: {loan_id}"}
