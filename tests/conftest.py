"""
Shared fixtures: an in-memory SQLite database wired into the app in place of
PostgreSQL, three users (one admin) and bearer tokens for each.
"""
import os
from datetime import timedelta

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALGO"] = "HS256"

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from loan_manager.models import Loan, User
from loan_manager.utils.database import Base, get_db
from loan_manager.utils.loan_calculations import compute_amortization, money, make_reference, utcnow


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _user(db, name, email, role="user"):
    user = User(name=name, email=email, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin(db):
    return _user(db, "Ada Admin", "admin@example.com", role="admin")


@pytest.fixture
def alice(db):
    return _user(db, "Alice Borrower", "alice@example.com")


@pytest.fixture
def bob(db):
    return _user(db, "Bob Borrower", "bob@example.com")


def token_for(user, expires_in=timedelta(hours=1)):
    payload = {"sub": str(user.user_id), "exp": utcnow() + expires_in}
    return jwt.encode(payload, "test-secret", algorithm="HS256")


def headers_for(user):
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture
def alice_headers(alice):
    return headers_for(alice)


@pytest.fixture
def bob_headers(bob):
    return headers_for(bob)


@pytest.fixture
def make_loan(db):
    """Insert a borrower loan directly, bypassing the API."""

    def _make(user, status="active", amount=100000, interest_rate=12, term_months=12, **extra):
        monthly, total = compute_amortization(money(amount), money(interest_rate), term_months)
        loan = Loan(
            loan_ref=make_reference("LOAN"),
            user_id=user.user_id,
            created_by=user.user_id,
            loan_type=extra.pop("loan_type", "personal"),
            amount=money(amount),
            interest_rate=money(interest_rate),
            term_months=term_months,
            monthly_payment=monthly,
            total_repayable=total,
            repayment_balance=extra.pop("repayment_balance", total),
            status=status,
            is_offer=False,
            bank_name="First Bank",
            account_name=user.name,
            account_number="0123456789",
            bvn="22222222222",
            phone="08030000000",
            email=user.email,
            application_date=utcnow(),
            **extra,
        )
        db.add(loan)
        db.commit()
        db.refresh(loan)
        return loan

    return _make


@pytest.fixture
def application():
    def _payload(**overrides):
        body = {
            "amount": 50000,
            "term_months": 12,
            "loan_type": "personal",
            "interest_rate": 12,
            "reason": "School fees",
            "bank_name": "First Bank",
            "account_name": "Alice Borrower",
            "account_number": "0123456789",
            "bvn": "22222222222",
            "phone": "08030000000",
            "email": "alice@example.com",
        }
        body.update(overrides)
        return body

    return _payload
