from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette import status

from loan_manager.core.security import get_current_user, require_admin
from loan_manager.models.user_model import User
from loan_manager.schemas.transaction_schema import (
    TransactionCreate,
    TransactionUpdate,
    TransactionOut,
    TransactionPage,
    TransactionResult,
    TransactionType,
    TransactionStatus,
)
from loan_manager.services import transaction_recorder
from loan_manager.utils.database import get_db

router = APIRouter(prefix="/transactions", tags=["Transactions"])


# CREATE
@router.post("", response_model=TransactionResult, status_code=status.HTTP_201_CREATED)
def create_transaction(
        payload: TransactionCreate,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    txn, loan = transaction_recorder.create_transaction(db, payload)
    return {
        "message": "Transaction recorded successfully",
        "transaction": txn,
        "loan_status": loan.status,
    }


# READ ALL
@router.get("", response_model=TransactionPage)
def list_transactions(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        type: Optional[TransactionType] = None,
        status: Optional[TransactionStatus] = None,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    rows, meta = transaction_recorder.list_transactions(db, page, limit, type, status)
    return {"data": rows, "meta": meta}


@router.get("/user/{user_id}", response_model=List[TransactionOut])
def transactions_by_user(
        user_id: int,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    return transaction_recorder.transactions_by_user(db, user_id)


@router.get("/loan/{loan_id}", response_model=List[TransactionOut])
def transactions_by_loan(
        loan_id: int,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
):
    return transaction_recorder.transactions_by_loan(db, user, loan_id)


# READ ONE
@router.get("/{transaction_id}", response_model=TransactionOut)
def get_transaction(
        transaction_id: int,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    return transaction_recorder.get_transaction(db, transaction_id)


# UPDATE
@router.put("/{transaction_id}", response_model=TransactionOut, status_code=status.HTTP_201_CREATED)
def update_transaction(
        transaction_id: int,
        payload: TransactionUpdate,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    return transaction_recorder.update_transaction(db, transaction_id, payload)


# DELETE
@router.delete("/{transaction_id}")
def delete_transaction(
        transaction_id: int,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    transaction_recorder.delete_transaction(db, transaction_id)
    return {"message": "Transaction deleted successfully"}
