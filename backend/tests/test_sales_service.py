"""
Sale transaction processing.

Verifies:
- A sale decrements stock, records the sale and advances the counter together
- Any failing line aborts the whole sale with no partial writes
- Stock checks only apply when negative stock is disabled
- Credit sales raise the client's debt with exact decimals
- Concurrent changes are retried against fresh stock
"""

from decimal import Decimal

import pytest

from bodega.models.records import CLIENTS, COUNTERS, PRODUCTS, SALES, WALK_IN_CLIENT_ID, AppConfig, LineItem
from bodega.services.notification_service import SUCCESS, WARNING
from bodega.services.sales_service import (
    SaleDraft,
    SaleError,
    change_due,
    compute_totals,
    format_sale_number,
    record_sale,
    sale_view,
)
from bodega.stores import StoreUnavailableError

from conftest import make_ctx, seed_client, seed_product, strict_stock_config


def _draft(*lines, payment_method="cash_usd", client_id=None) -> SaleDraft:
    return SaleDraft.from_payload({
        "items": [{"product_id": pid, "quantity": qty} for pid, qty in lines],
        "payment_method": payment_method,
        "client_id": client_id,
    })


class TestDraftParsing:
    def test_defaults(self):
        draft = SaleDraft.from_payload({"items": []})
        assert draft.payment_method == "cash_usd"
        assert draft.client_id is None

    @pytest.mark.parametrize("quantity", ["2", 1.5, True, None])
    def test_quantity_must_be_integer(self, quantity):
        with pytest.raises(SaleError) as exc:
            SaleDraft.from_payload({"items": [{"product_id": "p1", "quantity": quantity}]})
        assert exc.value.reason == SaleError.VALIDATION

    def test_items_must_be_list(self):
        with pytest.raises(SaleError):
            SaleDraft.from_payload({"items": "p1"})


class TestTotals:
    def test_tax_applied_on_subtotal(self):
        config = AppConfig(tax_rate=Decimal("16"))
        items = [LineItem(product_id="p1", quantity=1, sale_price=Decimal("10.00"))]
        totals = compute_totals(items, config)
        assert totals.subtotal == Decimal("10.00")
        assert totals.tax_amount == Decimal("1.6000")
        assert totals.total == Decimal("11.6000")
        assert totals.total_local == Decimal("11.6") * Decimal("45.00")

    def test_no_tax_when_rate_is_zero(self):
        items = [LineItem(product_id="p1", quantity=3, sale_price=Decimal("0.10"))]
        totals = compute_totals(items, AppConfig())
        assert totals.tax_amount is None
        assert totals.total == Decimal("0.30")

    def test_change_due(self):
        assert change_due(Decimal("11.60"), "20") == Decimal("8.40")
        assert change_due(Decimal("2"), "100", exchange_rate="45") == Decimal("10")

    def test_sale_number_format(self):
        assert format_sale_number(1) == "V-000001"
        assert format_sale_number(1234567) == "V-1234567"


class TestRecordSale:
    def test_successful_sale(self, ctx):
        pid = seed_product(ctx.store, stock=10, sale_price="1.20", cost_price="0.80")
        sale = record_sale(ctx, _draft((pid, 3)))

        assert sale.number == "V-000001"
        assert sale.total == Decimal("3.60")
        assert sale.total_local == Decimal("3.60") * Decimal("45.00")
        assert sale.exchange_rate == Decimal("45.00")
        assert sale.items[0].cost_price == Decimal("0.80")
        assert ctx.store.get(PRODUCTS, pid)["stock"] == 7
        assert ctx.store.get(SALES, sale.id)["number"] == "V-000001"
        assert ctx.store.get(COUNTERS, "sales")["value"] == 1
        assert (f"Sale {sale.number} recorded", SUCCESS) in [
            (n.message, n.severity) for n in ctx.notifier.recent()
        ]

    def test_numbers_are_sequential(self, ctx):
        pid = seed_product(ctx.store)
        numbers = [record_sale(ctx, _draft((pid, 1))).number for _ in range(3)]
        assert numbers == ["V-000001", "V-000002", "V-000003"]

    def test_stored_sale_has_no_null_fields(self, ctx):
        pid = seed_product(ctx.store)
        sale = record_sale(ctx, _draft((pid, 1)))
        stored = ctx.store.get(SALES, sale.id)
        assert "client_id" not in stored
        assert "tax_amount" not in stored
        assert None not in stored.values()

    def test_repeated_product_lines_are_aggregated(self, ctx):
        pid = seed_product(ctx.store, stock=10)
        sale = record_sale(ctx, _draft((pid, 2), (pid, 3)))
        assert len(sale.items) == 2
        assert ctx.store.get(PRODUCTS, pid)["stock"] == 5

    def test_line_items_are_snapshots(self, ctx):
        pid = seed_product(ctx.store, sale_price="1.20")
        sale = record_sale(ctx, _draft((pid, 1)))
        ctx.store.update(PRODUCTS, pid, {"sale_price": "9.99", "name": "Renamed"})
        stored = ctx.store.get(SALES, sale.id)
        assert stored["items"][0]["sale_price"] == "1.20"
        assert stored["items"][0]["name"] == "Arroz"

    def test_negative_stock_allowed_by_default(self, ctx):
        pid = seed_product(ctx.store, stock=2)
        record_sale(ctx, _draft((pid, 5)))
        assert ctx.store.get(PRODUCTS, pid)["stock"] == -3


class TestAtomicity:
    def test_failing_third_line_writes_nothing(self, ctx):
        first = seed_product(ctx.store, code="A", stock=10)
        second = seed_product(ctx.store, code="B", stock=10)

        with pytest.raises(SaleError) as exc:
            record_sale(ctx, _draft((first, 1), (second, 2), ("missing", 1)))

        assert exc.value.reason == SaleError.NOT_FOUND
        assert exc.value.details == {"product_id": "missing"}
        assert ctx.store.get(PRODUCTS, first)["stock"] == 10
        assert ctx.store.get(PRODUCTS, second)["stock"] == 10
        assert ctx.store.list(SALES) == []
        assert ctx.store.get(COUNTERS, "sales") is None

    def test_stock_runs_out_with_negative_stock_disabled(self, stores):
        for demo in (False, True):
            store = stores.for_mode(demo)
            ctx = make_ctx(store, demo=demo, config=strict_stock_config())
            pid = seed_product(store, stock=10)

            record_sale(ctx, _draft((pid, 10)))
            assert store.get(PRODUCTS, pid)["stock"] == 0

            with pytest.raises(SaleError) as exc:
                record_sale(ctx, _draft((pid, 1)))
            assert exc.value.reason == SaleError.INSUFFICIENT_STOCK
            assert exc.value.details["requested_quantity"] == 1
            assert exc.value.details["on_hand"] == 0
            assert store.get(PRODUCTS, pid)["stock"] == 0
            assert len(store.list(SALES)) == 1

    def test_invalid_quantity_rejected_before_any_read(self, ctx):
        pid = seed_product(ctx.store)
        with pytest.raises(SaleError) as exc:
            record_sale(ctx, _draft((pid, 0)))
        assert exc.value.reason == SaleError.VALIDATION

    def test_empty_cart_rejected(self, ctx):
        with pytest.raises(SaleError):
            record_sale(ctx, SaleDraft())

    def test_unknown_payment_method(self, ctx):
        pid = seed_product(ctx.store)
        with pytest.raises(SaleError) as exc:
            record_sale(ctx, _draft((pid, 1), payment_method="barter"))
        assert exc.value.reason == SaleError.VALIDATION


class TestCreditSales:
    def test_debt_is_raised_exactly(self, ctx):
        pid = seed_product(ctx.store, sale_price="25.50")
        cid = seed_client(ctx.store, debt="10.00", credit_limit="100")

        sale = record_sale(ctx, _draft((pid, 1), payment_method="credit", client_id=cid))

        assert sale.client_id == cid
        assert Decimal(ctx.store.get(CLIENTS, cid)["debt"]) == Decimal("35.50")

    def test_missing_client_aborts(self, ctx):
        pid = seed_product(ctx.store, stock=4)
        with pytest.raises(SaleError) as exc:
            record_sale(ctx, _draft((pid, 1), payment_method="credit", client_id="nobody"))
        assert exc.value.reason == SaleError.NOT_FOUND
        assert ctx.store.get(PRODUCTS, pid)["stock"] == 4

    def test_walk_in_client_cannot_buy_on_credit(self, ctx):
        pid = seed_product(ctx.store)
        with pytest.raises(SaleError) as exc:
            record_sale(ctx, _draft((pid, 1), payment_method="credit", client_id=WALK_IN_CLIENT_ID))
        assert exc.value.reason == SaleError.POLICY

    def test_over_limit_is_allowed_with_warning(self, ctx):
        pid = seed_product(ctx.store, sale_price="30")
        cid = seed_client(ctx.store, name="Pedro", debt="25", credit_limit="50")

        record_sale(ctx, _draft((pid, 1), payment_method="credit", client_id=cid))

        assert Decimal(ctx.store.get(CLIENTS, cid)["debt"]) == Decimal("55")
        warnings = [n.message for n in ctx.notifier.recent() if n.severity == WARNING]
        assert any("Pedro" in message for message in warnings)

    def test_cash_sale_leaves_debt_alone(self, ctx):
        pid = seed_product(ctx.store)
        cid = seed_client(ctx.store, debt="5")
        record_sale(ctx, _draft((pid, 1), client_id=cid))
        assert Decimal(ctx.store.get(CLIENTS, cid)["debt"]) == Decimal("5")


class TestConcurrency:
    @staticmethod
    def _race(monkeypatch, store, *, every_attempt=False, drop=4):
        """Make another sale land between this transaction's read and its commit."""
        original_begin = store._begin
        raced = []

        def _begin():
            txn = original_begin()
            original_get = txn.get

            def _get(collection, doc_id):
                record = original_get(collection, doc_id)
                if collection == PRODUCTS and (every_attempt or not raced):
                    raced.append(doc_id)
                    store.update(PRODUCTS, doc_id, {"stock": record["stock"] - drop})
                return record

            txn.get = _get
            return txn

        monkeypatch.setattr(store, "_begin", _begin)
        return raced

    def test_retry_sees_concurrent_decrement(self, cloud_ctx, monkeypatch):
        pid = seed_product(cloud_ctx.store, stock=10)
        self._race(monkeypatch, cloud_ctx.store)

        record_sale(cloud_ctx, _draft((pid, 3)))

        assert cloud_ctx.store.get(PRODUCTS, pid)["stock"] == 3

    def test_only_one_of_two_racing_sales_fits(self, stores, monkeypatch):
        ctx = make_ctx(stores.remote, config=strict_stock_config())
        pid = seed_product(ctx.store, stock=5)
        self._race(monkeypatch, ctx.store)

        with pytest.raises(SaleError) as exc:
            record_sale(ctx, _draft((pid, 3)))

        assert exc.value.reason == SaleError.INSUFFICIENT_STOCK
        assert ctx.store.get(PRODUCTS, pid)["stock"] == 1
        assert ctx.store.list(SALES) == []

    def test_persistent_conflict_reports_conflict(self, cloud_ctx, monkeypatch):
        pid = seed_product(cloud_ctx.store, stock=100)
        self._race(monkeypatch, cloud_ctx.store, every_attempt=True, drop=1)

        with pytest.raises(SaleError) as exc:
            record_sale(cloud_ctx, _draft((pid, 1)))

        assert exc.value.reason == SaleError.CONFLICT
        assert cloud_ctx.store.list(SALES) == []

    def test_unavailable_store(self, cloud_ctx, monkeypatch):
        pid = seed_product(cloud_ctx.store)

        def _down():
            raise StoreUnavailableError("offline")

        monkeypatch.setattr(cloud_ctx.store, "_begin", _down)
        with pytest.raises(SaleError) as exc:
            record_sale(cloud_ctx, _draft((pid, 1)))
        assert exc.value.reason == SaleError.UNAVAILABLE


class TestSaleView:
    def test_costs_stripped(self, ctx):
        pid = seed_product(ctx.store)
        sale = record_sale(ctx, _draft((pid, 1)))
        record = ctx.store.get(SALES, sale.id)
        assert "cost_price" not in sale_view(record, include_costs=False)["items"][0]
        assert sale_view(record, include_costs=True)["items"][0]["cost_price"] == "0.80"
