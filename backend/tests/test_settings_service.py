import unittest
from decimal import Decimal

from bodega import create_app
from bodega.extensions import db
from bodega.models.records import CLIENTS, CONFIG, WALK_IN_CLIENT_ID
from bodega.services import settings_service
from bodega.services.notification_service import Notifier
from bodega.services.session_service import OWNER, Identity, SessionContext
from bodega.stores import get_stores
from bodega.validation import ValidationError


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SQLALCHEMY_BINDS": {"local": "sqlite:///:memory:"},
            "BODEGA_TRANSACTION_BACKOFF": 0.0,
            "LOG_LEVEL": "WARNING",
        })
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        self.store = get_stores().remote
        for collection in (CONFIG, CLIENTS):
            for record in self.store.list(collection):
                self.store.delete(collection, record["id"])

    def _ctx(self):
        return SessionContext(
            identity=Identity(uid="owner-1", role=OWNER),
            store=self.store,
            config=settings_service.load_config(self.store),
            notifier=Notifier(),
        )

    def test_ensure_defaults_is_idempotent(self):
        self.assertTrue(settings_service.ensure_defaults(self.store))
        self.assertFalse(settings_service.ensure_defaults(self.store))

        walk_in = self.store.get(CLIENTS, WALK_IN_CLIENT_ID)
        self.assertEqual(walk_in["name"], settings_service.WALK_IN_CLIENT_NAME)
        self.assertEqual(len(self.store.list(CONFIG)), 1)

    def test_ensure_defaults_keeps_existing_config(self):
        self.store.set(CONFIG, "main", {"business_name": "Bodega Luis"})
        settings_service.ensure_defaults(self.store)
        self.assertEqual(settings_service.load_config(self.store).business_name, "Bodega Luis")

    def test_save_replaces_whole_document(self):
        settings_service.ensure_defaults(self.store)
        ctx = self._ctx()
        settings_service.save_config(ctx, {"business_name": "Bodega Ana", "tax_rate": "16"})
        settings_service.save_config(ctx, {"exchange_rate": "50"})

        config = settings_service.load_config(self.store)
        self.assertEqual(config.business_name, "Mi Negocio")
        self.assertEqual(config.tax_rate, Decimal("0"))
        self.assertEqual(config.exchange_rate, Decimal("50"))
        self.assertEqual(ctx.config.exchange_rate, Decimal("50"))

    def test_save_rejects_invalid_payload(self):
        ctx = self._ctx()
        with self.assertRaises(ValidationError):
            settings_service.save_config(ctx, ["not", "a", "dict"])
        with self.assertRaises(ValidationError):
            settings_service.save_config(ctx, {"exchange_rate": "abc"})
        self.assertIsNone(self.store.get(CONFIG, "main"))

    def test_string_booleans_are_rejected(self):
        for payload in (
            {"enable_negative_stock": "false"},
            {"permissions": {"can_view_costs": "false"}},
            {"receipt": {"show_tax": 1}},
            {"permissions": "all"},
            {"low_stock_threshold": "5.5"},
        ):
            with self.subTest(payload=payload):
                with self.assertRaises(ValidationError):
                    settings_service.parse_config(payload)

    def test_real_booleans_are_kept(self):
        config = settings_service.parse_config({
            "enable_negative_stock": False,
            "permissions": {"can_view_costs": False, "can_edit_products": True},
        })
        self.assertFalse(config.enable_negative_stock)
        self.assertFalse(config.permissions.can_view_costs)
        self.assertTrue(config.permissions.can_edit_products)

    def test_utc_offset_range(self):
        self.assertEqual(settings_service.parse_config({"utc_offset_minutes": -240}).utc_offset_minutes, -240)
        with self.assertRaises(ValidationError):
            settings_service.parse_config({"utc_offset_minutes": 900})

    def test_save_notifies(self):
        ctx = self._ctx()
        settings_service.save_config(ctx, {})
        self.assertEqual([n.message for n in ctx.notifier.recent()], ["Configuration saved"])


if __name__ == "__main__":
    unittest.main()
