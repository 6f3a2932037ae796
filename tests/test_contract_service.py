import unittest
from datetime import datetime
from unittest.mock import patch

from app.core.errors import ActorNotPermitted, BookingValidationError, RecordParseError
from app.db.session import SessionLocal
from app.models.pricing import Pricing
from app.schemas.contract import BookingCreate, ContractIn, parse_contract_row
from app.services.audit_service import list_audit_logs
from app.services.contract_lifecycle import ContractStatus
from app.services.contract_service import (
    TERMINALS,
    adjust_amounts,
    amount_due,
    create_booking,
    find_duplicate_names,
    format_contact_number,
    get_visible_contract,
    list_contracts,
    make_tracking_id,
    to_contract_out,
    transaction_summary,
    validate_contract,
)
from support import make_contract, make_profile, reset_db


def passenger(**kw) -> ContractIn:
    data = dict(firstName="Juan", lastName="Dela Cruz", contact="9171234567", flightNumber="PR102",
                quantity=2, itemDescriptions=["Black suitcase", "Blue duffel"])
    data.update(kw)
    return ContractIn(**data)


def booking(*passengers, **kw) -> BookingCreate:
    data = dict(
        contracts=list(passengers) or [passenger()],
        terminal="Terminal 3",
        province="Metro Manila",
        cityMunicipality="Quezon City",
        barangay="Diliman",
        postalCode="1101",
        street="123 Rizal St",
        dropOff={"location": "123 Rizal St, Quezon City", "lat": 14.676, "lng": 121.0437},
    )
    data.update(kw)
    return BookingCreate(**data)


class HelperTests(unittest.TestCase):
    def test_tracking_id(self):
        ref = make_tracking_id(datetime(2026, 3, 14))
        self.assertRegex(ref, r"^20260314MKTP[A-Z0-9]{4}$")

    def test_contact_number(self):
        self.assertEqual(format_contact_number("9171234567"), "+63 917 123 4567")
        self.assertEqual(format_contact_number("+63 917 123 4567"), "+63 917 123 4567")
        self.assertEqual(format_contact_number(""), "")

    def test_validate_contract(self):
        self.assertEqual(validate_contract(passenger()), [])
        bad = passenger(firstName="J", contact="0917123456", flightNumber="P!", quantity=16)
        self.assertEqual(validate_contract(bad), ["firstName", "contact", "flightNumber", "quantity", "itemDescription"])
        self.assertEqual(validate_contract(passenger(quantity=2, itemDescriptions=["Black suitcase"])),
                         ["itemDescription"])

    def test_duplicate_names(self):
        dupes = find_duplicate_names([passenger(), passenger(firstName="Maria"), passenger(firstName=" juan ")])
        self.assertEqual(dupes, [2])

    def test_row_parse_errors(self):
        with self.assertRaises(RecordParseError):
            parse_contract_row({"contract_status_id": "not a number"})
        rec = parse_contract_row({"id": "X", "contract_status_id": 4, "airline_id": "a"})
        self.assertEqual(rec.contract_status_id, 4)


class BookingTests(unittest.TestCase):
    def setUp(self):
        reset_db()
        self.db = SessionLocal()
        self.airline = make_profile(self.db, "airline")
        self.db.add(Pricing(city="Quezon", price=150))
        self.db.commit()

    def tearDown(self):
        self.db.close()

    @patch("app.services.contract_service.dispatch_admin_notification")
    def test_create_booking(self, notify):
        contracts, fee, status = create_booking(
            self.db, self.airline, booking(passenger(), passenger(firstName="Maria", quantity=4,
                                                                  itemDescriptions=["a bag", "b bag", "c bag", "d bag"])))
        self.assertEqual((fee, status), (150.0, "ok"))
        self.assertEqual(len(contracts), 2)
        self.assertEqual(len({c.id for c in contracts}), 2)
        first, second = contracts
        self.assertEqual(first.contract_status_id, ContractStatus.PENDING)
        self.assertIsNone(first.delivery_id)
        self.assertEqual(first.airline_id, self.airline.id)
        self.assertEqual(float(first.delivery_charge), 150.0)
        self.assertEqual(float(second.delivery_charge), 300.0)
        self.assertEqual(first.pickup_location_geo, TERMINALS["Terminal 3"].to_point())
        self.assertEqual(first.drop_off_location_geo, "POINT(121.0437 14.676)")
        self.assertEqual(first.owner_contact, "+63 917 123 4567")
        self.assertEqual(first.delivery_address, "Metro Manila, Quezon City, Diliman, 1101")
        self.assertEqual(notify.call_count, 2)
        self.assertEqual(notify.call_args.args[2]["contractId"], second.id)

    @patch("app.services.contract_service.dispatch_admin_notification")
    def test_rejections(self, notify):
        cases = [
            booking(passenger(contact="123")),
            booking(passenger(), passenger()),
            booking(terminal="Terminal 9"),
            booking(*[passenger(firstName=f"Name{chr(65 + i)}") for i in range(16)]),
            booking(cityMunicipality="Cebu City", dropOff={"location": "Lahug, Cebu City"}),
        ]
        for body in cases:
            with self.subTest(body=body.terminal):
                with self.assertRaises(BookingValidationError):
                    create_booking(self.db, self.airline, body)
        self.assertEqual(list_contracts(self.db), [])
        notify.assert_not_called()

    def test_invalid_fields_are_reported_per_passenger(self):
        with self.assertRaises(BookingValidationError) as ctx:
            create_booking(self.db, self.airline, booking(passenger(), passenger(firstName="Ana", flightNumber="")))
        self.assertEqual(ctx.exception.errors, {1: ["flightNumber"]})


class VisibilityTests(unittest.TestCase):
    def setUp(self):
        reset_db()
        self.db = SessionLocal()
        self.airline = make_profile(self.db, "airline")
        self.driver = make_profile(self.db, "delivery")

    def tearDown(self):
        self.db.close()

    def test_who_sees_what(self):
        pending = make_contract(self.db, self.airline.id)
        taken = make_contract(self.db, self.airline.id, ContractStatus.ACCEPTED_AWAITING_PICKUP,
                              make_profile(self.db, "delivery").id)
        admin = make_profile(self.db, "admin")
        other_airline = make_profile(self.db, "airline")

        self.assertEqual(get_visible_contract(self.db, pending.id, self.driver).id, pending.id)
        self.assertEqual(get_visible_contract(self.db, taken.id, admin).id, taken.id)
        with self.assertRaises(ActorNotPermitted):
            get_visible_contract(self.db, taken.id, self.driver)
        with self.assertRaises(ActorNotPermitted):
            get_visible_contract(self.db, pending.id, other_airline)

    def test_delivery_board(self):
        pending = make_contract(self.db, self.airline.id)
        mine = make_contract(self.db, self.airline.id, ContractStatus.IN_TRANSIT, self.driver.id)
        make_contract(self.db, self.airline.id, ContractStatus.IN_TRANSIT, make_profile(self.db, "delivery").id)
        ids = {c.id for c in list_contracts(self.db, delivery_id=self.driver.id, include_available=True)}
        self.assertEqual(ids, {pending.id, mine.id})
        only_mine = list_contracts(self.db, delivery_id=self.driver.id, statuses=[4])
        self.assertEqual([c.id for c in only_mine], [mine.id])

    def test_output_carries_signed_proof_urls(self):
        c = make_contract(self.db, self.airline.id, ContractStatus.IN_TRANSIT, self.driver.id,
                          pickup_proof="contracts/x/pickup_proof_1.jpg")
        out = to_contract_out(c)
        self.assertEqual(out.status_name, "In Transit")
        self.assertTrue(out.pickup_proof_url.startswith("/api/v1/files/"))
        self.assertIsNone(out.delivery_proof_url)


class BillingTests(unittest.TestCase):
    def setUp(self):
        reset_db()
        self.db = SessionLocal()
        self.admin = make_profile(self.db, "admin")
        self.airline = make_profile(self.db, "airline")
        self.driver = make_profile(self.db, "delivery")

    def tearDown(self):
        self.db.close()

    def test_amount_due(self):
        c = make_contract(self.db, self.airline.id, delivery_surcharge=50, delivery_discount=10)
        self.assertEqual(amount_due(c), 180.0)
        self.assertEqual(to_contract_out(c).amount_due, 180.0)
        self.assertEqual(amount_due(make_contract(self.db, self.airline.id)), 150.0)

    def test_adjust_amounts_is_audited(self):
        c = make_contract(self.db, self.airline.id, ContractStatus.DELIVERED, self.driver.id)
        out = adjust_amounts(self.db, self.admin, c.id, surcharge=30)
        self.assertEqual(amount_due(out), 180.0)
        out = adjust_amounts(self.db, self.admin, c.id, discount=50)
        self.assertEqual(amount_due(out), 90.0)
        logs = list_audit_logs(self.db, entity_type="contract", entity_id=c.id)
        self.assertEqual([log["action"] for log in logs], ["contract.adjust", "contract.adjust"])
        details = [log["details"] for log in logs]
        self.assertIn({"before": {"surcharge": 30.0, "discount": 0.0}, "after": {"surcharge": None, "discount": 50}},
                      details)

    def test_adjust_validation(self):
        c = make_contract(self.db, self.airline.id)
        for kw in ({}, {"surcharge": -1}, {"discount": 101}, {"discount": -5}):
            with self.subTest(kw=kw):
                with self.assertRaises(ValueError):
                    adjust_amounts(self.db, self.admin, c.id, **kw)
        with self.assertRaises(LookupError):
            adjust_amounts(self.db, self.admin, "missing", surcharge=10)
        self.assertEqual(list_audit_logs(self.db, entity_type="contract"), [])

    def test_transaction_summary(self):
        other = make_profile(self.db, "airline")
        make_contract(self.db, self.airline.id, ContractStatus.DELIVERED, self.driver.id, delivery_surcharge=50)
        make_contract(self.db, self.airline.id, ContractStatus.FAILED, self.driver.id, delivery_discount=20)
        make_contract(self.db, other.id, ContractStatus.DELIVERED, self.driver.id)
        make_contract(self.db, self.airline.id, ContractStatus.IN_TRANSIT, self.driver.id)
        make_contract(self.db, self.airline.id)

        summary = transaction_summary(self.db)
        self.assertEqual(summary["totalTransactions"], 3)
        self.assertEqual(summary["totalAmount"], 200.0 + 120.0 + 150.0)
        self.assertEqual(summary["statusCounts"], {"Delivered": 2, "Delivery Failed": 1})

        mine = transaction_summary(self.db, airline_id=self.airline.id)
        self.assertEqual(mine["totalTransactions"], 2)
        self.assertEqual((mine["totalSurcharge"], mine["totalDiscount"]), (50.0, 20.0))
        self.assertEqual({item.airline_id for item in mine["items"]}, {self.airline.id})


if __name__ == "__main__":
    unittest.main()
