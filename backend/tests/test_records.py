from decimal import Decimal

from bodega.models.records import AppConfig, LineItem, Product, Sale
from bodega.services.settings_service import config_from_records, parse_config
from bodega.validation import ValidationError

import pytest


class TestRecordDefaults:
    def test_missing_fields_take_defaults(self):
        product = Product.from_dict({"name": "Arroz", "sale_price": "1.20"})
        assert product.min_stock == 5
        assert product.unit == "und"
        assert product.status == "active"
        assert product.sale_price == Decimal("1.20")

    def test_unknown_keys_ignored(self):
        product = Product.from_dict({"name": "Arroz", "legacy_flag": True})
        assert product.name == "Arroz"

    def test_money_serialized_as_string(self):
        product = Product(name="Arroz", sale_price=Decimal("1.20"))
        assert product.to_dict()["sale_price"] == "1.20"

    def test_low_stock_needs_active(self):
        assert Product(stock=5, min_stock=5).is_low_stock
        assert not Product(stock=5, min_stock=5, status="inactive").is_low_stock
        assert not Product(stock=6, min_stock=5).is_low_stock


class TestSaleRecord:
    def test_null_optional_fields_are_dropped(self):
        sale = Sale(id="s1", number="V-000001", client_id=None, tax_amount=None)
        data = sale.to_dict()
        assert "client_id" not in data
        assert "tax_amount" not in data

    def test_items_round_trip_as_line_items(self):
        sale = Sale.from_dict({
            "items": [{"product_id": "p1", "name": "Arroz", "quantity": 2, "sale_price": "1.20"}],
        })
        assert isinstance(sale.items[0], LineItem)
        assert sale.items[0].quantity == 2
        assert sale.items[0].sale_price == Decimal("1.20")


class TestAppConfigMerge:
    def test_partial_config_merges_over_defaults(self):
        config = config_from_records([{"id": "main", "business_name": "Bodega Ana", "exchange_rate": "36.5"}])
        assert config.business_name == "Bodega Ana"
        assert config.exchange_rate == Decimal("36.5")
        assert config.currency_symbol == "Bs."
        assert config.enable_negative_stock is True

    def test_nested_permissions_merge_per_key(self):
        config = AppConfig.from_dict({"permissions": {"can_view_costs": True}})
        assert config.permissions.can_view_costs is True
        assert config.permissions.can_manage_clients is True
        assert config.receipt.paper_size == "58mm"

    def test_missing_document_is_all_defaults(self):
        assert config_from_records([]) == AppConfig()

    def test_parse_rejects_non_positive_rate(self):
        with pytest.raises(ValidationError):
            parse_config({"exchange_rate": "0"})

    def test_parse_rejects_tax_over_100(self):
        with pytest.raises(ValidationError):
            parse_config({"tax_rate": "120"})
