from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette import status

from loan_manager.core.security import get_current_user, require_admin
from loan_manager.models.user_model import User
from loan_manager.schemas.repayment_schema import (
    RepaymentCreate,
    RepaymentUpdate,
    RepaymentOut,
    RepaymentListOut,
    RepaymentResult,
)
from loan_manager.services import repayment_ledger
from loan_manager.utils.database import get_db

router = APIRouter(prefix="/repayments", tags=["Repayments"])


def _listing(db: Session, reps) -> dict:
    rows = repayment_ledger.present_many(db, reps)
    return {"count": len(rows), "repayments": rows}


def _single(db: Session, rep) -> dict:
    return repayment_ledger.present_many(db, [rep])[0]


# =================================================
# ✅ MAKE A PAYMENT (borrower)
# =================================================
@router.post("", response_model=RepaymentResult, status_code=status.HTTP_201_CREATED)
def create_repayment(
        payload: RepaymentCreate,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    rep, loan = repayment_ledger.create_repayment(db, user, payload)
    return {
        "message": "Repayment recorded successfully",
        "repayment": _single(db, rep),
        "loan_status": loan.status,
        "remaining_balance": float(loan.repayment_balance),
    }


# =================================================
# 🔹 READS
# =================================================
@router.get("", response_model=RepaymentListOut)
def list_repayments(
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    return _listing(db, repayment_ledger.list_repayments(db))


@router.get("/user/{user_id}", response_model=RepaymentListOut)
def repayments_by_user(
        user_id: int,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    return _listing(db, repayment_ledger.repayments_by_user(db, user, user_id))


@router.get("/loan/{loan_id}", response_model=RepaymentListOut)
def repayments_by_loan(
        loan_id: int,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    return _listing(db, repayment_ledger.repayments_by_loan(db, user, loan_id))


@router.get("/{repayment_id}", response_model=RepaymentOut)
def get_repayment(
        repayment_id: int,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    return _single(db, repayment_ledger.get_repayment(db, user, repayment_id))


# =================================================
# 🔹 ADMIN VERIFICATION / REVERSAL
# =================================================
@router.put("/{repayment_id}", response_model=RepaymentOut, status_code=status.HTTP_201_CREATED)
def update_repayment(
        repayment_id: int,
        payload: RepaymentUpdate,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    rep = repayment_ledger.update_repayment(db, repayment_id, payload)
    return _single(db, rep)


@router.delete("/{repayment_id}")
def delete_repayment(
        repayment_id: int,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    rep = repayment_ledger.delete_repayment(db, repayment_id)
    return {
        "message": "Repayment deleted successfully",
        "repayment_id": rep.repayment_id,
        "status": rep.status,
        "loan_status": rep.loan.status,
        "repayment_balance": float(rep.loan.repayment_balance),
    }
