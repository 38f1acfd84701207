"""
Client credit ledger.

Verifies:
- Payments reduce debt and are clamped at zero
- Each payment leaves an immutable record with old and new debt
- The walk-in client never carries debt
- Debt reporting skips the walk-in client and settled clients
"""

from decimal import Decimal

import pytest

from bodega.models.records import CLIENT_PAYMENTS, CLIENTS, WALK_IN_CLIENT_ID
from bodega.services.ledger_service import LedgerError, debt_summary, list_payments, register_payment
from bodega.services.notification_service import SUCCESS

from conftest import seed_client


class TestRegisterPayment:
    def test_partial_payment(self, ctx):
        cid = seed_client(ctx.store, debt="35.50")
        payment = register_payment(ctx, cid, "10.25")

        assert Decimal(ctx.store.get(CLIENTS, cid)["debt"]) == Decimal("25.25")
        assert payment.old_debt == Decimal("35.50")
        assert payment.new_debt == Decimal("25.25")
        stored = ctx.store.get(CLIENT_PAYMENTS, payment.id)
        assert stored["client_id"] == cid
        assert stored["amount"] == "10.25"

    def test_overpayment_clamps_to_zero(self, ctx):
        cid = seed_client(ctx.store, debt="20")
        payment = register_payment(ctx, cid, 50)
        assert Decimal(ctx.store.get(CLIENTS, cid)["debt"]) == Decimal("0")
        assert payment.new_debt == Decimal("0")
        assert payment.amount == Decimal("50")

    def test_float_amount_is_exact(self, ctx):
        cid = seed_client(ctx.store, debt="0.3")
        register_payment(ctx, cid, 0.1)
        assert Decimal(ctx.store.get(CLIENTS, cid)["debt"]) == Decimal("0.2")

    def test_success_notification(self, ctx):
        cid = seed_client(ctx.store, name="Maria", debt="5")
        register_payment(ctx, cid, "5")
        assert ("Payment of 5.00 registered for Maria", SUCCESS) in [
            (n.message, n.severity) for n in ctx.notifier.recent()
        ]

    @pytest.mark.parametrize("amount", [0, -1, "abc", True, None])
    def test_amount_must_be_positive_number(self, ctx, amount):
        cid = seed_client(ctx.store, debt="5")
        with pytest.raises(LedgerError) as exc:
            register_payment(ctx, cid, amount)
        assert exc.value.reason == "validation"
        assert Decimal(ctx.store.get(CLIENTS, cid)["debt"]) == Decimal("5")

    def test_unknown_client(self, ctx):
        with pytest.raises(LedgerError) as exc:
            register_payment(ctx, "nobody", "1")
        assert exc.value.reason == "not_found"
        assert ctx.store.list(CLIENT_PAYMENTS) == []

    def test_walk_in_client_refused(self, ctx):
        with pytest.raises(LedgerError) as exc:
            register_payment(ctx, WALK_IN_CLIENT_ID, "1")
        assert exc.value.reason == "policy"


class TestPaymentHistory:
    def test_newest_first_and_filtered(self, ctx):
        ana = seed_client(ctx.store, name="Ana", debt="30")
        luis = seed_client(ctx.store, name="Luis", debt="30")
        ctx.store.set(CLIENT_PAYMENTS, "old", {"client_id": ana, "amount": "1", "date": "2026-01-01T10:00:00Z"})
        ctx.store.set(CLIENT_PAYMENTS, "new", {"client_id": ana, "amount": "2", "date": "2026-01-05T10:00:00Z"})
        ctx.store.set(CLIENT_PAYMENTS, "other", {"client_id": luis, "amount": "3", "date": "2026-01-03T10:00:00Z"})

        assert [p.id for p in list_payments(ctx, ana)] == ["new", "old"]
        assert [p.id for p in list_payments(ctx)] == ["new", "other", "old"]


class TestDebtSummary:
    def test_excludes_walk_in_and_settled(self):
        clients = [
            {"id": WALK_IN_CLIENT_ID, "name": "Cliente General", "debt": "99"},
            {"id": "a", "name": "Ana", "debt": "0", "credit_limit": "50"},
            {"id": "b", "name": "Luis", "debt": "12.50", "credit_limit": "50"},
            {"id": "c", "name": "Rosa", "debt": "60", "credit_limit": "50"},
        ]
        summary = debt_summary(clients)
        assert Decimal(summary["total_debt"]) == Decimal("72.50")
        assert [c["id"] for c in summary["clients"]] == ["c", "b"]
        assert summary["clients"][0]["over_limit"] is True
        assert summary["clients"][1]["over_limit"] is False
