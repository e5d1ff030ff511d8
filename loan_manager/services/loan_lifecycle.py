"""
Loan lifecycle: the status transition table and every operation that creates a
loan or moves it between statuses.

All status changes go through ``apply_event`` so the table below is the only
place the allowed transitions are written down.
"""
import enum
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from loan_manager.core.config import DEFAULT_LOCKOUT_DAYS
from loan_manager.core.errors import Forbidden, NotFound, StateConflict, ValidationFailed
from loan_manager.core.security import is_admin
from loan_manager.models.loan_model import Loan
from loan_manager.models.repayment_model import Repayment
from loan_manager.models.user_model import User
from loan_manager.schemas.loan_schema import LoanOfferCreate, LoanApply, LoanUpdate
from loan_manager.services.notifications import notify
from loan_manager.services.settings_service import LoanPolicy
from loan_manager.utils.loan_calculations import compute_amortization, money, make_reference, utcnow
from loan_manager.utils.pagination import paginate

logger = logging.getLogger(__name__)

LOAN_TYPES = ["personal", "business", "student", "mortgage", "car loan", "quickie loan"]


class LoanStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"


class LoanEvent(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    ACTIVATE = "activate"  # admin forces the loan live
    DISBURSE = "disburse"  # disbursement transaction recorded
    COMPLETE = "complete"  # admin closes the loan
    SETTLE = "settle"  # a repayment cleared the balance
    REOPEN = "reopen"  # a repayment was reversed on a completed loan
    DEFAULT = "default"


# event -> (statuses it may fire from, resulting status)
TRANSITIONS = {
    LoanEvent.APPROVE: ({LoanStatus.PENDING}, LoanStatus.APPROVED),
    LoanEvent.REJECT: ({LoanStatus.PENDING, LoanStatus.APPROVED}, LoanStatus.REJECTED),
    LoanEvent.ACTIVATE: ({LoanStatus.PENDING, LoanStatus.APPROVED}, LoanStatus.ACTIVE),
    LoanEvent.DISBURSE: ({LoanStatus.PENDING}, LoanStatus.ACTIVE),
    LoanEvent.COMPLETE: ({LoanStatus.ACTIVE}, LoanStatus.COMPLETED),
    LoanEvent.SETTLE: ({LoanStatus.ACTIVE}, LoanStatus.COMPLETED),
    LoanEvent.REOPEN: ({LoanStatus.COMPLETED}, LoanStatus.ACTIVE),
    LoanEvent.DEFAULT: ({LoanStatus.ACTIVE}, LoanStatus.DEFAULTED),
}

# admin status endpoint: requested status -> event
STATUS_EVENTS = {
    LoanStatus.APPROVED: LoanEvent.APPROVE,
    LoanStatus.REJECTED: LoanEvent.REJECT,
    LoanStatus.ACTIVE: LoanEvent.ACTIVATE,
    LoanStatus.COMPLETED: LoanEvent.COMPLETE,
    LoanStatus.DEFAULTED: LoanEvent.DEFAULT,
}

_NOTICES = {
    LoanEvent.APPROVE: ("loan", "Your loan {ref} has been approved."),
    LoanEvent.REJECT: ("loan", "Your loan {ref} has been rejected."),
    LoanEvent.ACTIVATE: ("loan", "Your loan {ref} is now active."),
    LoanEvent.DISBURSE: ("loan", "Your loan {ref} has been disbursed and is now active."),
    LoanEvent.COMPLETE: ("loan", "Your loan {ref} has been marked as completed."),
    LoanEvent.SETTLE: ("repayment", "Your loan {ref} has been fully repaid."),
    LoanEvent.REOPEN: ("repayment", "A repayment on loan {ref} was reversed; the loan is active again."),
    LoanEvent.DEFAULT: ("warning", "Your loan {ref} has been marked as defaulted."),
}


def transition(current, event: LoanEvent) -> LoanStatus:
    """Return the status ``event`` leads to from ``current`` or raise StateConflict."""
    try:
        current = LoanStatus(current)
    except ValueError:
        raise StateConflict(f"Loan has unknown status: {current}")

    allowed_from, target = TRANSITIONS[event]
    if current in allowed_from:
        return target

    if event is LoanEvent.REJECT and current in (LoanStatus.REJECTED, LoanStatus.COMPLETED):
        raise StateConflict(f"Loan is already {current.value}")
    if current is target:
        raise StateConflict(f"Loan is already {current.value}")
    raise StateConflict(f"Cannot {event.value} a loan that is {current.value}")


def apply_event(db: Session, loan: Loan, event: LoanEvent, now: Optional[datetime] = None) -> LoanStatus:
    """Move ``loan`` along the table and stamp the dates the move implies. Does not commit."""
    if loan.is_offer:
        raise StateConflict("Loan offers have no lifecycle; apply for a loan instead")

    now = now or utcnow()
    previous = loan.status
    target = transition(loan.status, event)

    loan.status = target.value
    if event in (LoanEvent.ACTIVATE, LoanEvent.DISBURSE):
        loan.start_date = now
    elif event in (LoanEvent.COMPLETE, LoanEvent.SETTLE):
        loan.end_date = now
    elif event is LoanEvent.REOPEN:
        loan.end_date = None
    elif event is LoanEvent.DEFAULT:
        loan.defaulted_at = now

    kind, text = _NOTICES[event]
    notify(db, loan.user_id, kind, text.format(ref=loan.loan_ref), loan.loan_id, "Loan")

    logger.info("Loan %s: %s -> %s (%s)", loan.loan_id, previous, target.value, event.value)
    return target


# -------------------------------------------------
# Lookups
# -------------------------------------------------
def find_loan(db: Session, loan_id: int, for_update: bool = False) -> Loan:
    q = db.query(Loan).filter(Loan.loan_id == loan_id)
    if for_update:
        # serialises concurrent balance/status writers on this row
        q = q.with_for_update(of=Loan)
    loan = q.first()
    if not loan:
        raise NotFound("Loan not found")
    return loan


def ensure_can_view(loan: Loan, user: Optional[User]) -> None:
    if loan.is_offer:
        return
    if user is None:
        raise Forbidden("Not authorized to view this loan")
    if not is_admin(user) and loan.user_id != user.user_id:
        raise Forbidden("Not authorized to view this loan")


def get_loan(db: Session, loan_id: int, user: Optional[User]) -> Loan:
    loan = find_loan(db, loan_id)
    ensure_can_view(loan, user)
    return loan


def paid_to_date(db: Session, loan_id: int) -> Decimal:
    total = (
        db.query(func.coalesce(func.sum(Repayment.amount_paid), 0))
        .filter(Repayment.loan_id == loan_id, Repayment.is_deleted.is_(False))
        .scalar()
    )
    return money(total)


def has_recent_default(db: Session, user_id: int, now: Optional[datetime] = None) -> bool:
    cutoff = (now or utcnow()) - timedelta(days=DEFAULT_LOCKOUT_DAYS)
    hit = (
        db.query(Loan.loan_id)
        .filter(
            Loan.user_id == user_id,
            Loan.status == LoanStatus.DEFAULTED.value,
            Loan.defaulted_at.isnot(None),
            Loan.defaulted_at >= cutoff,
        )
        .first()
    )
    return hit is not None


# -------------------------------------------------
# Creation
# -------------------------------------------------
def _terms(amount, interest_rate, term_months):
    amount = money(amount)
    rate = money(interest_rate)
    try:
        monthly, total = compute_amortization(amount, rate, term_months)
    except ValueError as e:
        raise ValidationFailed(str(e))
    return amount, rate, monthly, total


def create_offer(db: Session, admin: User, payload: LoanOfferCreate) -> Loan:
    amount, rate, monthly, total = _terms(payload.amount, payload.interest_rate, payload.term_months)

    loan = Loan(
        loan_ref=make_reference("LOAN"),
        user_id=None,
        created_by=admin.user_id,
        loan_type=payload.loan_type,
        amount=amount,
        interest_rate=rate,
        term_months=payload.term_months,
        monthly_payment=monthly,
        total_repayable=total,
        repayment_balance=total,
        status=LoanStatus.PENDING.value,
        is_offer=True,
        documents=payload.documents,
    )
    db.add(loan)
    db.commit()
    db.refresh(loan)

    logger.info("Admin %s created loan offer %s", admin.user_id, loan.loan_ref)
    return loan


def apply_for_loan(
        db: Session,
        user: User,
        payload: LoanApply,
        policy: LoanPolicy,
        now: Optional[datetime] = None,
) -> Loan:
    now = now or utcnow()

    # 1) recent default locks the borrower out
    if has_recent_default(db, user.user_id, now):
        logger.warning("User %s blocked from applying: recent default", user.user_id)
        raise Forbidden(
            f"You cannot apply for a new loan within {DEFAULT_LOCKOUT_DAYS} days of defaulting."
        )

    # 2) lending policy
    policy.check_application(money(payload.amount), payload.term_months)

    amount, rate, monthly, total = _terms(payload.amount, payload.interest_rate, payload.term_months)

    loan = Loan(
        loan_ref=make_reference("LOAN"),
        user_id=user.user_id,
        created_by=user.user_id,
        loan_type=payload.loan_type,
        amount=amount,
        interest_rate=rate,
        term_months=payload.term_months,
        monthly_payment=monthly,
        total_repayable=total,
        repayment_balance=total,
        status=LoanStatus.PENDING.value,
        is_offer=False,
        reason=payload.reason,
        bank_name=payload.bank_name,
        account_name=payload.account_name,
        account_number=payload.account_number,
        bvn=payload.bvn,
        phone=payload.phone,
        email=payload.email,
        documents=payload.documents,
        application_date=now,
    )
    db.add(loan)
    db.flush()
    notify(db, user.user_id, "loan", f"Your loan application {loan.loan_ref} was received.", loan.loan_id, "Loan")
    db.commit()
    db.refresh(loan)

    logger.info("User %s applied for loan %s (%s)", user.user_id, loan.loan_ref, amount)
    return loan


# -------------------------------------------------
# Mutation
# -------------------------------------------------
def update_loan(db: Session, user: User, loan_id: int, payload: LoanUpdate) -> Loan:
    loan = find_loan(db, loan_id, for_update=True)

    if not is_admin(user) and (loan.user_id is None or loan.user_id != user.user_id):
        logger.warning("User %s denied update of loan %s", user.user_id, loan_id)
        raise Forbidden("Not authorized to update this loan")

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationFailed("No updatable fields supplied")

    if "loan_type" in changes:
        loan.loan_type = changes["loan_type"]
    if "documents" in changes:
        loan.documents = changes["documents"]

    if {"amount", "interest_rate", "term_months"} & set(changes):
        amount, rate, monthly, total = _terms(
            changes.get("amount", loan.amount),
            changes.get("interest_rate", loan.interest_rate),
            changes.get("term_months", loan.term_months),
        )

        # keep balance == total_repayable - repaid
        paid = paid_to_date(db, loan.loan_id)
        new_balance = money(total - paid)
        if new_balance < 0:
            raise StateConflict(
                f"New terms give a total repayable of {total}, below the {paid} already repaid"
            )

        loan.amount = amount
        loan.interest_rate = rate
        loan.term_months = int(changes.get("term_months", loan.term_months))
        loan.monthly_payment = monthly
        loan.total_repayable = total
        loan.repayment_balance = new_balance

        # status follows the rebased balance the same way repayments move it
        if new_balance == 0 and loan.status == LoanStatus.ACTIVE.value:
            apply_event(db, loan, LoanEvent.SETTLE)
        elif new_balance > 0 and loan.status == LoanStatus.COMPLETED.value:
            apply_event(db, loan, LoanEvent.REOPEN)

    db.commit()
    db.refresh(loan)
    logger.info("Loan %s updated by user %s: %s", loan_id, user.user_id, ", ".join(sorted(changes)))
    return loan


def update_status(db: Session, loan_id: int, status: str, now: Optional[datetime] = None) -> Loan:
    requested = LoanStatus(status)
    event = STATUS_EVENTS.get(requested)
    if event is None:
        raise StateConflict(f"Loans cannot be moved back to {requested.value}")

    loan = find_loan(db, loan_id, for_update=True)
    apply_event(db, loan, event, now)
    db.commit()
    db.refresh(loan)
    return loan


def reject_loan(db: Session, loan_id: int, now: Optional[datetime] = None) -> Loan:
    loan = find_loan(db, loan_id, for_update=True)
    apply_event(db, loan, LoanEvent.REJECT, now)
    db.commit()
    db.refresh(loan)
    return loan


def delete_loan(db: Session, loan_id: int) -> None:
    loan = find_loan(db, loan_id)
    db.delete(loan)
    db.commit()
    logger.info("Loan %s deleted", loan_id)


# -------------------------------------------------
# Listing / dashboards
# -------------------------------------------------
def list_loans(db: Session, page: int, limit: int, status: Optional[str] = None, is_offer: Optional[bool] = None):
    q = db.query(Loan)
    if status:
        q = q.filter(Loan.status == status)
    if is_offer is not None:
        q = q.filter(Loan.is_offer.is_(is_offer))
    return paginate(q.order_by(Loan.loan_id.desc()), page, limit)


def list_offers(db: Session, page: int, limit: int, loan_type: Optional[str] = None):
    q = db.query(Loan).filter(Loan.is_offer.is_(True))
    if loan_type:
        q = q.filter(Loan.loan_type == loan_type)
    return paginate(q.order_by(Loan.loan_id.desc()), page, limit)


def _status_counts(db: Session, *filters) -> dict:
    rows = (
        db.query(Loan.status, func.count(Loan.loan_id))
        .filter(*filters)
        .group_by(Loan.status)
        .all()
    )
    counts = {s.value: 0 for s in LoanStatus}
    for status, c in rows:
        counts[status] = counts.get(status, 0) + c
    return counts


def _type_counts(db: Session, *filters) -> dict:
    rows = (
        db.query(Loan.loan_type, func.count(Loan.loan_id))
        .filter(*filters)
        .group_by(Loan.loan_type)
        .all()
    )
    counts = {t: 0 for t in LOAN_TYPES}
    for loan_type, c in rows:
        counts[loan_type] = counts.get(loan_type, 0) + c
    return counts


def _stats(counts: dict) -> dict:
    return {
        "total_loans": sum(counts.values()),
        "pending_loans": counts["pending"],
        "approved_loans": counts["approved"],
        "active_loans": counts["active"],
        "completed_loans": counts["completed"],
        "rejected_loans": counts["rejected"],
        "defaulted_loans": counts["defaulted"],
    }


def admin_dashboard(db: Session) -> dict:
    applications = Loan.is_offer.is_(False)
    counts = _status_counts(db, applications)

    distribution = dict(counts)
    distribution["all"] = sum(counts.values())

    recent = (
        db.query(Loan)
        .filter(applications)
        .order_by(Loan.loan_id.desc())
        .limit(10)
        .all()
    )
    return {
        "statistics": _stats(counts),
        "loan_distribution": distribution,
        "loan_type_levels": _type_counts(db, applications),
        "recent_loans": recent,
    }


def user_dashboard(db: Session, user: User) -> dict:
    mine = Loan.user_id == user.user_id
    recent = (
        db.query(Loan)
        .filter(mine)
        .order_by(Loan.loan_id.desc())
        .limit(5)
        .all()
    )
    return {
        "statistics": _stats(_status_counts(db, mine)),
        "loan_types": _type_counts(db, mine),
        "recent_loans": recent,
    }
