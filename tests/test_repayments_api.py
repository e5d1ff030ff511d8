"""Repayment ledger endpoints: balance bookkeeping, tolerance, reversal."""
from datetime import timedelta

import pytest

from loan_manager.models import Loan, Notification, Repayment
from loan_manager.services.repayment_ledger import active_repayments
from loan_manager.utils.loan_calculations import money, utcnow


@pytest.fixture
def small_loan(alice, make_loan):
    """Interest-free active loan owing exactly its 1000 total."""
    return make_loan(alice, status="active", amount=1000, interest_rate=0, term_months=10)


def pay(client, headers, loan_id, amount, due_date=None, method="bank"):
    return client.post(
        "/api/repayments",
        json={
            "loan_id": loan_id,
            "amount_paid": amount,
            "payment_method": method,
            "due_date": (due_date or utcnow().date()).isoformat(),
        },
        headers=headers,
    )


class TestCreateRepayment:

    def test_decrements_balance(self, client, db, small_loan, alice_headers):
        res = pay(client, alice_headers, small_loan.loan_id, 400)

        assert res.status_code == 201
        body = res.json()
        assert body["remaining_balance"] == 600.0
        assert body["loan_status"] == "active"
        assert body["repayment"]["status"] == "paid"
        assert body["repayment"]["total_paid"] == 400.0
        assert body["repayment"]["repayment_balance"] == 600.0

        db.expire_all()
        loan = db.get(Loan, small_loan.loan_id)
        assert money(loan.repayment_balance) == money(600)
        assert loan.last_repayment_date is not None

    def test_amount_rounded_to_whole_units(self, client, small_loan, alice_headers):
        res = pay(client, alice_headers, small_loan.loan_id, 99.6)
        assert res.json()["repayment"]["amount_paid"] == 100.0

    def test_overpayment_within_tolerance_clamped_and_settles(self, client, db, small_loan, alice_headers):
        res = pay(client, alice_headers, small_loan.loan_id, 1000.5)

        assert res.status_code == 201
        body = res.json()
        assert body["repayment"]["amount_paid"] == 1000.0
        assert body["remaining_balance"] == 0.0
        assert body["loan_status"] == "completed"
        assert body["repayment"]["repayment_balance"] == 0.0

        db.expire_all()
        assert db.get(Loan, small_loan.loan_id).end_date is not None

    def test_overpayment_beyond_tolerance_refused(self, client, db, small_loan, alice_headers):
        res = pay(client, alice_headers, small_loan.loan_id, 1002)

        assert res.status_code == 400
        assert "exceeds" in res.json()["message"]
        db.expire_all()
        assert db.query(Repayment).count() == 0
        assert money(db.get(Loan, small_loan.loan_id).repayment_balance) == money(1000)

    @pytest.mark.parametrize("amount", [0, -50, 0.4])
    def test_non_positive_amount(self, client, small_loan, alice_headers, amount):
        res = pay(client, alice_headers, small_loan.loan_id, amount)
        assert res.status_code == 400

    def test_other_borrower_forbidden(self, client, db, small_loan, bob_headers):
        res = pay(client, bob_headers, small_loan.loan_id, 100)
        assert res.status_code == 403
        assert db.query(Repayment).count() == 0

    @pytest.mark.parametrize("status", ["pending", "approved", "completed", "defaulted"])
    def test_only_active_loans(self, client, alice, alice_headers, make_loan, status):
        loan = make_loan(alice, status=status)
        res = pay(client, alice_headers, loan.loan_id, 100)
        assert res.status_code == 400

    def test_unknown_loan(self, client, alice_headers):
        assert pay(client, alice_headers, 4242, 100).status_code == 404

    def test_missing_due_date(self, client, small_loan, alice_headers):
        res = client.post(
            "/api/repayments",
            json={"loan_id": small_loan.loan_id, "amount_paid": 100, "payment_method": "bank"},
            headers=alice_headers,
        )
        assert res.status_code == 400
        assert "due_date" in res.json()["message"]

    def test_past_due_date_marks_late(self, client, small_loan, alice_headers):
        res = pay(client, alice_headers, small_loan.loan_id, 100, due_date=utcnow().date() - timedelta(days=3))
        assert res.json()["repayment"]["status"] == "late"

    def test_future_due_date_is_paid(self, client, small_loan, alice_headers):
        res = pay(client, alice_headers, small_loan.loan_id, 100, due_date=utcnow().date() + timedelta(days=3))
        assert res.json()["repayment"]["status"] == "paid"

    def test_corrupt_balance_is_server_error(self, client, db, alice, alice_headers, make_loan):
        loan = make_loan(alice, status="active", repayment_balance=money(-5))

        res = pay(client, alice_headers, loan.loan_id, 100)

        assert res.status_code == 500
        assert res.json()["message"] == "Server Error"
        assert db.query(Repayment).count() == 0

    def test_zero_balance_refused(self, client, alice, alice_headers, make_loan):
        loan = make_loan(alice, status="active", repayment_balance=money(0))
        res = pay(client, alice_headers, loan.loan_id, 100)
        assert res.status_code == 400

    def test_borrower_notified(self, client, db, alice, small_loan, alice_headers):
        pay(client, alice_headers, small_loan.loan_id, 100)
        kinds = [n.type for n in db.query(Notification).filter(Notification.user_id == alice.user_id)]
        assert "repayment" in kinds


class TestReadRepayments:

    def test_listings_skip_deleted(self, client, small_loan, alice, alice_headers, admin_headers):
        first = pay(client, alice_headers, small_loan.loan_id, 100).json()["repayment"]
        pay(client, alice_headers, small_loan.loan_id, 200)
        client.delete(f"/api/repayments/{first['repayment_id']}", headers=admin_headers)

        by_loan = client.get(f"/api/repayments/loan/{small_loan.loan_id}", headers=alice_headers).json()
        by_user = client.get(f"/api/repayments/user/{alice.user_id}", headers=alice_headers).json()
        everything = client.get("/api/repayments", headers=admin_headers).json()

        for listing in (by_loan, by_user, everything):
            assert listing["count"] == 1
            assert listing["repayments"][0]["amount_paid"] == 200.0
            assert listing["repayments"][0]["total_paid"] == 200.0
            assert listing["repayments"][0]["repayment_balance"] == 800.0

        missing = client.get(f"/api/repayments/{first['repayment_id']}", headers=admin_headers)
        assert missing.status_code == 404

    def test_balance_hidden_once_completed(self, client, small_loan, alice_headers):
        pay(client, alice_headers, small_loan.loan_id, 1000)
        listing = client.get(f"/api/repayments/loan/{small_loan.loan_id}", headers=alice_headers).json()
        assert listing["repayments"][0]["repayment_balance"] == 0.0
        assert listing["repayments"][0]["loan_status"] == "completed"

    def test_other_users_repayments_forbidden(self, client, small_loan, alice, bob_headers):
        assert client.get(f"/api/repayments/user/{alice.user_id}", headers=bob_headers).status_code == 403
        assert client.get(f"/api/repayments/loan/{small_loan.loan_id}", headers=bob_headers).status_code == 403

    def test_full_listing_is_admin_only(self, client, alice_headers):
        assert client.get("/api/repayments", headers=alice_headers).status_code == 403


class TestDeleteRepayment:

    def test_delete_restores_balance(self, client, db, small_loan, alice_headers, admin_headers):
        rep = pay(client, alice_headers, small_loan.loan_id, 400).json()["repayment"]

        res = client.delete(f"/api/repayments/{rep['repayment_id']}", headers=admin_headers)

        assert res.status_code == 200
        body = res.json()
        assert body["status"] == "rejected"
        assert body["repayment_balance"] == 1000.0
        assert body["loan_status"] == "active"

        db.expire_all()
        row = db.get(Repayment, rep["repayment_id"])
        assert row.is_deleted is True

    def test_delete_reopens_completed_loan(self, client, db, small_loan, alice_headers, admin_headers):
        rep = pay(client, alice_headers, small_loan.loan_id, 1000).json()["repayment"]

        res = client.delete(f"/api/repayments/{rep['repayment_id']}", headers=admin_headers)

        assert res.json()["loan_status"] == "active"
        db.expire_all()
        loan = db.get(Loan, small_loan.loan_id)
        assert loan.status == "active"
        assert loan.end_date is None
        assert money(loan.repayment_balance) == money(1000)

    def test_late_repayment_keeps_status(self, client, small_loan, alice_headers, admin_headers):
        rep = pay(
            client, alice_headers, small_loan.loan_id, 100, due_date=utcnow().date() - timedelta(days=1)
        ).json()["repayment"]
        res = client.delete(f"/api/repayments/{rep['repayment_id']}", headers=admin_headers)
        assert res.json()["status"] == "late"

    def test_second_delete_refused(self, client, db, small_loan, alice_headers, admin_headers):
        rep = pay(client, alice_headers, small_loan.loan_id, 400).json()["repayment"]
        client.delete(f"/api/repayments/{rep['repayment_id']}", headers=admin_headers)

        res = client.delete(f"/api/repayments/{rep['repayment_id']}", headers=admin_headers)

        assert res.status_code == 400
        assert res.json() == {"message": "Repayment is already deleted"}
        db.expire_all()
        assert money(db.get(Loan, small_loan.loan_id).repayment_balance) == money(1000)

    def test_borrower_cannot_delete(self, client, small_loan, alice_headers):
        rep = pay(client, alice_headers, small_loan.loan_id, 400).json()["repayment"]
        res = client.delete(f"/api/repayments/{rep['repayment_id']}", headers=alice_headers)
        assert res.status_code == 403


class TestUpdateRepayment:

    def test_amount_change_applied_as_delta(self, client, db, small_loan, alice_headers, admin_headers):
        rep = pay(client, alice_headers, small_loan.loan_id, 400).json()["repayment"]

        res = client.put(f"/api/repayments/{rep['repayment_id']}", json={"amount_paid": 300}, headers=admin_headers)

        assert res.status_code == 201
        assert res.json()["amount_paid"] == 300.0
        assert res.json()["repayment_balance"] == 700.0

    def test_raising_amount_to_balance_completes_loan(self, client, db, small_loan, alice_headers, admin_headers):
        rep = pay(client, alice_headers, small_loan.loan_id, 400).json()["repayment"]

        res = client.put(f"/api/repayments/{rep['repayment_id']}", json={"amount_paid": 1000}, headers=admin_headers)

        assert res.status_code == 201
        assert res.json()["loan_status"] == "completed"

    def test_amount_beyond_balance_refused(self, client, small_loan, alice_headers, admin_headers):
        rep = pay(client, alice_headers, small_loan.loan_id, 400).json()["repayment"]
        res = client.put(f"/api/repayments/{rep['repayment_id']}", json={"amount_paid": 1500}, headers=admin_headers)
        assert res.status_code == 400

    def test_rejected_status_refused(self, client, small_loan, alice_headers, admin_headers):
        rep = pay(client, alice_headers, small_loan.loan_id, 400).json()["repayment"]
        res = client.put(f"/api/repayments/{rep['repayment_id']}", json={"status": "rejected"}, headers=admin_headers)
        assert res.status_code == 400

    def test_status_and_evidence_patch(self, client, small_loan, alice_headers, admin_headers):
        rep = pay(client, alice_headers, small_loan.loan_id, 400).json()["repayment"]
        res = client.put(
            f"/api/repayments/{rep['repayment_id']}",
            json={"status": "late", "evidence": "receipt-7.png"},
            headers=admin_headers,
        )
        assert res.status_code == 201
        assert res.json()["status"] == "late"
        assert res.json()["evidence"] == "receipt-7.png"
        assert res.json()["repayment_balance"] == 600.0


class TestBalanceInvariant:

    def assert_balanced(self, db, loan_id, status):
        db.expire_all()
        loan = db.get(Loan, loan_id)
        paid = sum(
            (money(r.amount_paid) for r in active_repayments(db).filter(Repayment.loan_id == loan_id)),
            money(0),
        )
        assert money(loan.total_repayable) - paid == money(loan.repayment_balance)
        assert loan.status == status

    def test_holds_through_create_correct_and_delete(self, client, db, alice, alice_headers, admin_headers, make_loan):
        loan = make_loan(alice, status="active", amount=12000, interest_rate=0, term_months=12)
        loan_id = loan.loan_id
        self.assert_balanced(db, loan_id, "active")

        first = pay(client, alice_headers, loan_id, 3000).json()["repayment"]
        self.assert_balanced(db, loan_id, "active")

        second = pay(client, alice_headers, loan_id, 4000).json()["repayment"]
        self.assert_balanced(db, loan_id, "active")

        client.put(f"/api/repayments/{first['repayment_id']}", json={"amount_paid": 2500}, headers=admin_headers)
        self.assert_balanced(db, loan_id, "active")

        client.delete(f"/api/repayments/{second['repayment_id']}", headers=admin_headers)
        self.assert_balanced(db, loan_id, "active")

        last = pay(client, alice_headers, loan_id, 9500).json()["repayment"]
        self.assert_balanced(db, loan_id, "completed")

        client.put(f"/api/repayments/{first['repayment_id']}", json={"amount_paid": 2000}, headers=admin_headers)
        self.assert_balanced(db, loan_id, "active")

        client.delete(f"/api/repayments/{last['repayment_id']}", headers=admin_headers)
        self.assert_balanced(db, loan_id, "active")
        assert money(db.get(Loan, loan_id).repayment_balance) == money(10000)

    def test_holds_with_amortized_total(self, client, db, alice, alice_headers, admin_headers, make_loan):
        loan = make_loan(alice, status="active", amount=100000, interest_rate=12, term_months=12)
        loan_id = loan.loan_id

        rep = pay(client, alice_headers, loan_id, 8885).json()["repayment"]
        self.assert_balanced(db, loan_id, "active")

        client.delete(f"/api/repayments/{rep['repayment_id']}", headers=admin_headers)
        self.assert_balanced(db, loan_id, "active")
