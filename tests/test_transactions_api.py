"""Transaction recording, including the disbursement that activates a loan."""
import pytest

from loan_manager.models import Loan, Transaction


def record(client, headers, loan, user, amount, type_="disbursement", method="bank"):
    return client.post(
        "/api/transactions",
        json={"user_id": user.user_id, "loan_id": loan.loan_id, "amount": amount, "type": type_, "method": method},
        headers=headers,
    )


class TestDisbursement:

    def test_exact_disbursement_activates_loan(self, client, db, alice, admin_headers, make_loan):
        loan = make_loan(alice, status="pending", amount=100000)

        res = record(client, admin_headers, loan, alice, 100000)

        assert res.status_code == 201
        body = res.json()
        assert body["loan_status"] == "active"
        assert body["transaction"]["status"] == "completed"
        assert body["transaction"]["type"] == "disbursement"
        assert body["transaction"]["reference_id"].startswith("TXN-")

        db.expire_all()
        assert db.get(Loan, loan.loan_id).start_date is not None

    def test_amount_must_match_exactly(self, client, db, alice, admin_headers, make_loan):
        loan = make_loan(alice, status="pending", amount=100000)

        res = record(client, admin_headers, loan, alice, 99999.99)

        assert res.status_code == 400
        db.expire_all()
        assert db.get(Loan, loan.loan_id).status == "pending"
        assert db.query(Transaction).count() == 0

    def test_sub_cent_difference_refused(self, client, db, alice, admin_headers, make_loan):
        loan = make_loan(alice, status="pending", amount=100000)

        res = record(client, admin_headers, loan, alice, 100000.004)

        assert res.status_code == 400
        db.expire_all()
        assert db.get(Loan, loan.loan_id).status == "pending"

    @pytest.mark.parametrize("status", ["approved", "active"])
    def test_double_disbursement_refused(self, client, db, alice, admin_headers, make_loan, status):
        loan = make_loan(alice, status=status, amount=100000)

        res = record(client, admin_headers, loan, alice, 100000)

        assert res.status_code == 400
        assert res.json() == {"message": f"Loan is already {status}"}
        assert db.query(Transaction).count() == 0

    @pytest.mark.parametrize("status", ["rejected", "completed", "defaulted"])
    def test_closed_loans_cannot_be_disbursed(self, client, alice, admin_headers, make_loan, status):
        loan = make_loan(alice, status=status, amount=100000)
        res = record(client, admin_headers, loan, alice, 100000)
        assert res.status_code == 400

    def test_user_must_own_loan(self, client, alice, bob, admin_headers, make_loan):
        loan = make_loan(alice, status="pending", amount=100000)
        res = record(client, admin_headers, loan, bob, 100000)
        assert res.status_code == 400

    def test_admin_only(self, client, alice, alice_headers, make_loan):
        loan = make_loan(alice, status="pending", amount=100000)
        assert record(client, alice_headers, loan, alice, 100000).status_code == 403


class TestOtherTransactions:

    def test_payment_is_pending_and_leaves_loan_alone(self, client, db, alice, admin_headers, make_loan):
        loan = make_loan(alice, status="active")

        res = record(client, admin_headers, loan, alice, 2500, type_="payment", method="card")

        assert res.status_code == 201
        assert res.json()["transaction"]["status"] == "pending"
        assert res.json()["loan_status"] == "active"

    def test_invalid_type(self, client, alice, admin_headers, make_loan):
        loan = make_loan(alice, status="active")
        res = record(client, admin_headers, loan, alice, 100, type_="gift")
        assert res.status_code == 400
        assert "type" in res.json()["message"]

    def test_listing_and_lookups(self, client, alice, alice_headers, bob_headers, admin_headers, make_loan):
        loan = make_loan(alice, status="active")
        record(client, admin_headers, loan, alice, 100, type_="payment")
        record(client, admin_headers, loan, alice, 50, type_="refund")

        page = client.get("/api/transactions", params={"type": "refund"}, headers=admin_headers).json()
        assert page["meta"]["total"] == 1
        assert page["data"][0]["loan"]["loan_ref"] == loan.loan_ref

        by_user = client.get(f"/api/transactions/user/{alice.user_id}", headers=admin_headers).json()
        assert len(by_user) == 2

        assert len(client.get(f"/api/transactions/loan/{loan.loan_id}", headers=alice_headers).json()) == 2
        assert client.get(f"/api/transactions/loan/{loan.loan_id}", headers=bob_headers).status_code == 403

    def test_update_and_delete(self, client, db, alice, admin_headers, make_loan):
        loan = make_loan(alice, status="active")
        txn = record(client, admin_headers, loan, alice, 100, type_="payment").json()["transaction"]

        empty = client.put(f"/api/transactions/{txn['transaction_id']}", json={}, headers=admin_headers)
        bad = client.put(f"/api/transactions/{txn['transaction_id']}", json={"status": "lost"}, headers=admin_headers)
        ok = client.put(f"/api/transactions/{txn['transaction_id']}", json={"status": "completed"}, headers=admin_headers)

        assert empty.status_code == 400
        assert bad.status_code == 400
        assert ok.status_code == 201
        assert ok.json()["status"] == "completed"

        assert client.delete(f"/api/transactions/{txn['transaction_id']}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/transactions/{txn['transaction_id']}", headers=admin_headers).status_code == 404


class TestDisbursementCorrections:

    @pytest.fixture
    def disbursed(self, client, alice, admin_headers, make_loan):
        loan = make_loan(alice, status="pending", amount=100000)
        txn = record(client, admin_headers, loan, alice, 100000).json()["transaction"]
        return loan, txn

    def test_amount_must_still_match_loan(self, client, db, disbursed, admin_headers):
        loan, txn = disbursed

        res = client.put(f"/api/transactions/{txn['transaction_id']}", json={"amount": 5}, headers=admin_headers)

        assert res.status_code == 400
        db.expire_all()
        assert float(db.get(Transaction, txn["transaction_id"]).amount) == 100000.0

    def test_matching_amount_accepted(self, client, disbursed, admin_headers):
        loan, txn = disbursed
        res = client.put(
            f"/api/transactions/{txn['transaction_id']}",
            json={"amount": 100000, "method": "card"},
            headers=admin_headers,
        )
        assert res.status_code == 201
        assert res.json()["method"] == "card"

    def test_type_cannot_leave_disbursement(self, client, disbursed, admin_headers):
        loan, txn = disbursed
        res = client.put(f"/api/transactions/{txn['transaction_id']}", json={"type": "payment"}, headers=admin_headers)
        assert res.status_code == 400

    def test_type_cannot_become_disbursement(self, client, alice, admin_headers, make_loan):
        loan = make_loan(alice, status="pending", amount=100000)
        txn = record(client, admin_headers, loan, alice, 100000, type_="payment").json()["transaction"]

        res = client.put(
            f"/api/transactions/{txn['transaction_id']}", json={"type": "disbursement"}, headers=admin_headers
        )

        assert res.status_code == 400
