import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock

from sqlalchemy.exc import SQLAlchemyError

from app.db.session import SessionLocal
from app.models.pricing import Pricing
from app.services.pricing_service import (
    add_rate,
    calculate_total_delivery_fee,
    delete_rate,
    fetch_base_delivery_fee_for_address,
    find_pricing_match,
    normalize,
    quote_from_entries,
    update_rate,
)
from support import reset_db

ADDRESS = "123 Rizal St, Quezon City, Metro Manila"


class NormalizeTests(unittest.TestCase):
    def test_examples(self):
        self.assertEqual(normalize("Quezon City"), "quezon")
        self.assertEqual(normalize("  Parañaque  City "), "paranaque")
        self.assertEqual(normalize("Pasig ,Metro   Manila"), "pasig, metro manila")
        self.assertEqual(normalize("Kalakhang Maynila"), "metro manila")
        self.assertEqual(normalize("Kalakhang City Maynila"), "metro manila")
        self.assertEqual(normalize(None), "")

    def test_idempotent(self):
        for s in (ADDRESS, "Las Piñas City", "CITY OF MANILA", " a ,b,  c ", "Kalakhang Maynila",
                  "Kalakhang City Maynila", "Kalakhang  Maynila , City"):
            with self.subTest(s=s):
                once = normalize(s)
                self.assertEqual(normalize(once), once)


class MatchTests(unittest.TestCase):
    def test_quezon_address_matches(self):
        q = quote_from_entries([SimpleNamespace(city="Quezon", price=150)], ADDRESS)
        self.assertEqual((q.fee, q.status, q.city), (150, "ok", "Quezon"))

    def test_first_entry_wins(self):
        entries = [SimpleNamespace(city="Quezon City", price=150), SimpleNamespace(city="Manila", price=500)]
        self.assertEqual(find_pricing_match(entries, ADDRESS).price, 150)

    def test_blank_city_never_matches(self):
        self.assertIsNone(find_pricing_match([SimpleNamespace(city=" City ", price=1)], ADDRESS))

    def test_empty_table_is_no_pricing(self):
        q = quote_from_entries([], ADDRESS)
        self.assertEqual((q.fee, q.status), (0, "no_pricing"))

    def test_no_match(self):
        q = quote_from_entries([SimpleNamespace(city="Cebu", price=90)], ADDRESS)
        self.assertEqual((q.fee, q.status), (0, "no_match"))


class FeeTests(unittest.TestCase):
    def test_fee_per_started_set_of_three(self):
        self.assertEqual(calculate_total_delivery_fee([1], 100), 100)
        self.assertEqual(calculate_total_delivery_fee([3], 100), 100)
        self.assertEqual(calculate_total_delivery_fee([4], 100), 200)
        self.assertEqual(calculate_total_delivery_fee([1, 3, 4, 7], 100), 700)
        self.assertEqual(calculate_total_delivery_fee([0], 100), 0)


class PricingTableTests(unittest.TestCase):
    def setUp(self):
        reset_db()
        self.db = SessionLocal()

    def tearDown(self):
        self.db.close()

    def test_lookup_from_table(self):
        self.db.add_all([Pricing(city="Pasay", price=350), Pricing(city="Quezon", price=150)])
        self.db.commit()
        q = fetch_base_delivery_fee_for_address(self.db, ADDRESS)
        self.assertEqual((q.fee, q.status, q.city), (150.0, "ok", "Quezon"))

    def test_empty_table(self):
        self.assertEqual(fetch_base_delivery_fee_for_address(self.db, ADDRESS).status, "no_pricing")

    def test_unreachable_table_is_no_pricing(self):
        db = MagicMock()
        db.query.side_effect = SQLAlchemyError("connection refused")
        with self.assertLogs("app.services.pricing_service", "ERROR"):
            q = fetch_base_delivery_fee_for_address(db, ADDRESS)
        self.assertEqual((q.fee, q.status), (0, "no_pricing"))
        db.rollback.assert_called_once()

    def test_rate_management(self):
        row = add_rate(self.db, " Quezon ", 150)
        self.assertEqual(row.city, "Quezon")
        with self.assertRaises(ValueError):
            add_rate(self.db, "Quezon City", 200)
        with self.assertRaises(ValueError):
            add_rate(self.db, "Pasay", -1)
        with self.assertRaises(ValueError):
            add_rate(self.db, "", 100)

        updated = update_rate(self.db, row.id, "Quezon City", 175)
        self.assertEqual(float(updated.price), 175.0)
        self.assertIsNotNone(updated.updated_at)

        delete_rate(self.db, row.id)
        self.assertIsNone(self.db.get(Pricing, row.id))
        with self.assertRaises(LookupError):
            update_rate(self.db, row.id, "Quezon", 1)


if __name__ == "__main__":
    unittest.main()
