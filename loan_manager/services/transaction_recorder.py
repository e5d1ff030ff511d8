import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from loan_manager.core.errors import Forbidden, NotFound, StateConflict, ValidationFailed
from loan_manager.core.security import is_admin
from loan_manager.models.transaction_model import Transaction
from loan_manager.models.user_model import User
from loan_manager.schemas.transaction_schema import TransactionCreate, TransactionUpdate
from loan_manager.services.loan_lifecycle import LoanEvent, LoanStatus, apply_event, find_loan, transition
from loan_manager.utils.loan_calculations import money, make_reference, utcnow
from loan_manager.utils.pagination import paginate

logger = logging.getLogger(__name__)

DISBURSEMENT = "disbursement"

# initial status of the transaction record itself
INITIAL_STATUS = {
    "disbursement": "completed",
    "payment": "pending",
    "refund": "pending",
}


def _check_disbursed_amount(raw, loan) -> None:
    # exact match on the amount as sent; no rounding before comparing
    if Decimal(str(raw)) != money(loan.amount):
        raise ValidationFailed(
            f"Disbursement amount must equal the loan amount of {money(loan.amount)}"
        )


def create_transaction(db: Session, payload: TransactionCreate, now: Optional[datetime] = None):
    now = now or utcnow()
    amount = money(payload.amount)

    try:
        loan = find_loan(db, payload.loan_id, for_update=True)

        if loan.is_offer:
            raise StateConflict("Loan offers cannot take transactions")
        if loan.user_id != payload.user_id:
            raise ValidationFailed("Transaction user does not own this loan")

        if payload.type == DISBURSEMENT:
            # double-disbursement guard
            if loan.status in (LoanStatus.APPROVED.value, LoanStatus.ACTIVE.value):
                raise StateConflict(f"Loan is already {loan.status}")
            transition(loan.status, LoanEvent.DISBURSE)
            _check_disbursed_amount(payload.amount, loan)

        txn = Transaction(
            user_id=payload.user_id,
            loan_id=loan.loan_id,
            amount=amount,
            type=payload.type,
            status=INITIAL_STATUS[payload.type],
            method=payload.method,
            transaction_date=now,
            reference_id=make_reference("TXN"),
        )
        db.add(txn)

        if payload.type == DISBURSEMENT:
            apply_event(db, loan, LoanEvent.DISBURSE, now)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(txn)
    db.refresh(loan)
    logger.info("Transaction %s (%s %s) recorded for loan %s", txn.reference_id, txn.type, amount, loan.loan_id)
    return txn, loan


def list_transactions(
        db: Session,
        page: int,
        limit: int,
        type_: Optional[str] = None,
        status: Optional[str] = None,
):
    q = db.query(Transaction)
    if type_:
        q = q.filter(Transaction.type == type_)
    if status:
        q = q.filter(Transaction.status == status)
    return paginate(q.order_by(Transaction.transaction_id.desc()), page, limit)


def get_transaction(db: Session, transaction_id: int) -> Transaction:
    txn = db.query(Transaction).filter(Transaction.transaction_id == transaction_id).first()
    if not txn:
        raise NotFound("Transaction not found")
    return txn


def transactions_by_user(db: Session, user_id: int):
    return (
        db.query(Transaction)
        .filter(Transaction.user_id == user_id)
        .order_by(Transaction.transaction_id.desc())
        .all()
    )


def transactions_by_loan(db: Session, viewer: User, loan_id: int):
    loan = find_loan(db, loan_id)
    if not is_admin(viewer) and loan.user_id != viewer.user_id:
        raise Forbidden("Not authorized to view transactions for this loan")
    return (
        db.query(Transaction)
        .filter(Transaction.loan_id == loan_id)
        .order_by(Transaction.transaction_id.desc())
        .all()
    )


def update_transaction(db: Session, transaction_id: int, payload: TransactionUpdate) -> Transaction:
    """Administrative correction; only amount/type/status/method are patchable."""
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationFailed("No updatable fields supplied (amount, type, status, method)")

    txn = get_transaction(db, transaction_id)

    # a disbursement is what moved its loan out of pending
    new_type = changes.get("type", txn.type)
    if new_type != txn.type and DISBURSEMENT in (new_type, txn.type):
        raise StateConflict("Transactions cannot be changed to or from a disbursement")
    if new_type == DISBURSEMENT and "amount" in changes:
        _check_disbursed_amount(changes["amount"], txn.loan)

    for key, value in changes.items():
        if key == "amount":
            value = money(value)
        setattr(txn, key, value)

    db.commit()
    db.refresh(txn)
    logger.info("Transaction %s corrected: %s", txn.reference_id, ", ".join(sorted(changes)))
    return txn


def delete_transaction(db: Session, transaction_id: int) -> None:
    txn = get_transaction(db, transaction_id)
    db.delete(txn)
    db.commit()
    logger.info("Transaction %s deleted", transaction_id)
