"""
Repayment ledger.

Every read of repayments goes through ``active_repayments`` so soft-deleted rows
never leak into listings or balance figures. Writes that touch both a
repayment and its loan lock the loan row and commit once.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from loan_manager.core.config import OVERPAYMENT_TOLERANCE
from loan_manager.core.errors import Forbidden, IntegrityFault, NotFound, StateConflict, ValidationFailed
from loan_manager.core.security import is_admin
from loan_manager.models.loan_model import Loan
from loan_manager.models.repayment_model import Repayment
from loan_manager.models.user_model import User
from loan_manager.schemas.repayment_schema import RepaymentCreate, RepaymentUpdate
from loan_manager.services.loan_lifecycle import LoanEvent, LoanStatus, apply_event, find_loan
from loan_manager.services.notifications import notify
from loan_manager.utils.loan_calculations import money, whole_units, make_reference, utcnow

logger = logging.getLogger(__name__)

PAID = "paid"
LATE = "late"
REJECTED = "rejected"


def active_repayments(db: Session):
    """Base query for repayments that still count."""
    return db.query(Repayment).filter(Repayment.is_deleted.is_(False))


def paid_totals(db: Session, loan_ids: Iterable[int]) -> dict:
    """loan_id -> sum of non-deleted repayments."""
    loan_ids = set(loan_ids)
    if not loan_ids:
        return {}

    rows = (
        db.query(Repayment.loan_id, func.coalesce(func.sum(Repayment.amount_paid), 0))
        .filter(Repayment.is_deleted.is_(False), Repayment.loan_id.in_(loan_ids))
        .group_by(Repayment.loan_id)
        .all()
    )
    return {loan_id: money(total) for loan_id, total in rows}


def _checked_balance(loan: Loan) -> Decimal:
    raw = loan.repayment_balance
    balance = None
    if raw is not None:
        try:
            balance = money(raw)
        except (InvalidOperation, TypeError, ValueError):
            balance = None

    if balance is None or not balance.is_finite() or balance < 0:
        logger.error("Loan %s has corrupt repayment balance %r", loan.loan_id, loan.repayment_balance)
        raise IntegrityFault(f"Loan {loan.loan_id} has an invalid repayment balance")
    return balance


def present(rep: Repayment, totals: dict) -> dict:
    loan = rep.loan
    live = loan is not None and loan.status == LoanStatus.ACTIVE.value
    return {
        "repayment_id": rep.repayment_id,
        "loan_id": rep.loan_id,
        "user_id": rep.user_id,
        "amount_paid": rep.amount_paid,
        "payment_method": rep.payment_method,
        "due_date": rep.due_date,
        "payment_date": rep.payment_date,
        "status": rep.status,
        "reference_id": rep.reference_id,
        "evidence": rep.evidence,
        "total_paid": totals.get(rep.loan_id, Decimal("0.00")),
        # only meaningful while the loan is still being repaid
        "repayment_balance": loan.repayment_balance if live else Decimal("0.00"),
        "loan_status": loan.status if loan is not None else None,
    }


def present_many(db: Session, reps) -> list:
    totals = paid_totals(db, (r.loan_id for r in reps))
    return [present(r, totals) for r in reps]


# -------------------------------------------------
# Create
# -------------------------------------------------
def create_repayment(
        db: Session,
        user: User,
        payload: RepaymentCreate,
        now: Optional[datetime] = None,
):
    now = now or utcnow()

    # 2) whole currency units, strictly positive
    amount = whole_units(payload.amount_paid)
    if amount <= 0:
        raise ValidationFailed("amount_paid must be a positive number")

    try:
        # 3) loan exists (row locked until commit)
        loan = find_loan(db, payload.loan_id, for_update=True)

        # 4) only the borrower repays
        if loan.user_id != user.user_id:
            logger.warning("User %s tried to repay loan %s they do not own", user.user_id, loan.loan_id)
            raise Forbidden("Not authorized to make repayments on this loan")

        # 5) active loans only
        if loan.status != LoanStatus.ACTIVE.value:
            raise StateConflict(f"Repayments are only accepted on active loans (loan is {loan.status})")

        # 6) stored balance must be sane
        balance = _checked_balance(loan)
        if balance == 0:
            raise StateConflict("Loan has no outstanding balance")

        # 7) overpayment within tolerance is clamped to the balance
        if amount - balance > OVERPAYMENT_TOLERANCE:
            raise StateConflict(f"Amount exceeds remaining balance of {balance}")
        recorded = min(amount, balance)

        rep = Repayment(
            loan_id=loan.loan_id,
            user_id=user.user_id,
            amount_paid=recorded,
            payment_method=payload.payment_method,
            due_date=payload.due_date,
            payment_date=now,
            status=LATE if now.date() > payload.due_date else PAID,
            reference_id=make_reference("REP"),
            evidence=payload.evidence,
            is_deleted=False,
        )
        db.add(rep)
        db.flush()

        loan.repayment_balance = money(balance - recorded)
        loan.last_repayment_date = now
        notify(
            db, user.user_id, "repayment",
            f"Repayment of {recorded} received for loan {loan.loan_ref}.",
            rep.repayment_id, "Repayment",
        )
        if loan.repayment_balance <= 0:
            apply_event(db, loan, LoanEvent.SETTLE, now)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(rep)
    db.refresh(loan)
    logger.info(
        "Repayment %s of %s on loan %s; balance now %s",
        rep.reference_id, recorded, loan.loan_id, loan.repayment_balance,
    )
    return rep, loan


# -------------------------------------------------
# Reads
# -------------------------------------------------
def list_repayments(db: Session):
    return active_repayments(db).order_by(Repayment.repayment_id.desc()).all()


def repayments_by_user(db: Session, viewer: User, user_id: int):
    if not is_admin(viewer) and viewer.user_id != user_id:
        raise Forbidden("Not authorized to view these repayments")
    return (
        active_repayments(db)
        .filter(Repayment.user_id == user_id)
        .order_by(Repayment.repayment_id.desc())
        .all()
    )


def repayments_by_loan(db: Session, viewer: User, loan_id: int):
    loan = find_loan(db, loan_id)
    if not is_admin(viewer) and loan.user_id != viewer.user_id:
        raise Forbidden("Not authorized to view repayments for this loan")
    return (
        active_repayments(db)
        .filter(Repayment.loan_id == loan_id)
        .order_by(Repayment.repayment_id.desc())
        .all()
    )


def get_repayment(db: Session, viewer: User, repayment_id: int) -> Repayment:
    rep = active_repayments(db).filter(Repayment.repayment_id == repayment_id).first()
    if not rep:
        raise NotFound("Repayment not found")
    if not is_admin(viewer) and rep.user_id != viewer.user_id:
        raise Forbidden("Not authorized to view this repayment")
    return rep


# -------------------------------------------------
# Admin corrections
# -------------------------------------------------
def update_repayment(
        db: Session,
        repayment_id: int,
        payload: RepaymentUpdate,
        now: Optional[datetime] = None,
) -> Repayment:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationFailed("No updatable fields supplied")
    if changes.get("status") == REJECTED:
        raise ValidationFailed("Delete the repayment to void it; status 'rejected' cannot be set directly")

    rep = active_repayments(db).filter(Repayment.repayment_id == repayment_id).first()
    if not rep:
        raise NotFound("Repayment not found")

    try:
        if "amount_paid" in changes:
            _reprice(db, rep, whole_units(changes.pop("amount_paid")), now)

        for key, value in changes.items():
            setattr(rep, key, value)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(rep)
    logger.info("Repayment %s updated", rep.reference_id)
    return rep


def _reprice(db: Session, rep: Repayment, new_amount: Decimal, now: Optional[datetime]) -> None:
    """Apply a corrected amount to the loan balance as a delta."""
    if new_amount <= 0:
        raise ValidationFailed("amount_paid must be a positive number")

    loan = find_loan(db, rep.loan_id, for_update=True)
    if loan.status not in (LoanStatus.ACTIVE.value, LoanStatus.COMPLETED.value):
        raise StateConflict(f"Cannot change repayment amounts on a {loan.status} loan")

    balance = _checked_balance(loan)
    old_amount = money(rep.amount_paid)
    new_balance = balance - (new_amount - old_amount)

    if new_balance < -OVERPAYMENT_TOLERANCE:
        raise StateConflict(f"Amount exceeds remaining balance of {money(balance + old_amount)}")
    if new_balance < 0:
        # within tolerance: clamp the correction like a fresh repayment
        new_amount = money(old_amount + balance)
        new_balance = Decimal("0.00")

    rep.amount_paid = money(new_amount)
    loan.repayment_balance = money(new_balance)

    if loan.repayment_balance <= 0 and loan.status == LoanStatus.ACTIVE.value:
        apply_event(db, loan, LoanEvent.SETTLE, now)
    elif loan.repayment_balance > 0 and loan.status == LoanStatus.COMPLETED.value:
        apply_event(db, loan, LoanEvent.REOPEN, now)


def delete_repayment(db: Session, repayment_id: int, now: Optional[datetime] = None) -> Repayment:
    """Soft-delete a repayment and undo its effect on the loan."""
    rep = db.query(Repayment).filter(Repayment.repayment_id == repayment_id).first()
    if not rep:
        raise NotFound("Repayment not found")
    if rep.is_deleted:
        raise StateConflict("Repayment is already deleted")

    try:
        loan = find_loan(db, rep.loan_id, for_update=True)
        balance = _checked_balance(loan)

        loan.repayment_balance = money(balance + money(rep.amount_paid))
        if loan.status == LoanStatus.COMPLETED.value:
            apply_event(db, loan, LoanEvent.REOPEN, now)

        if rep.status == PAID:
            rep.status = REJECTED
        rep.is_deleted = True

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(rep)
    logger.info(
        "Repayment %s reversed; loan %s balance back to %s",
        rep.reference_id, loan.loan_id, loan.repayment_balance,
    )
    return rep
