import threading
import time
import unittest

from app.db.session import SessionLocal
from app.models.contract import Contract
from app.services.contract_lifecycle import ContractStatus
from app.services.location_forwarder import (
    ContractLocationWriter,
    LocationForwarder,
    PollingPositionSource,
    Position,
    TransitTracker,
    count_in_transit,
    format_geocoded_address,
    run_with_timeout,
)
from app.services.realtime import ChangeEvent, ChangeFeed
from support import make_contract, make_profile, reset_db


class FakeSubscription:
    def __init__(self):
        self.removed = False

    def remove(self):
        self.removed = True


class FakeSource:
    def __init__(self, allowed=True):
        self.allowed = allowed
        self.watches = []
        self.callback = None

    def request_permission(self):
        return self.allowed

    def watch_position(self, callback, interval_seconds, min_distance_m):
        self.callback = callback
        sub = FakeSubscription()
        self.watches.append((sub, interval_seconds, min_distance_m))
        return sub

    """Fails to open the watch until ``broken`` is cleared."""
class FlakyWatchSource(FakeSource):
    """Fails to open the watch until \`broken\` is cleared."""

    def __init__(self):
        super().__init__()
        self.broken = True
        self.attempts = 0

    def watch_position(self, callback, interval_seconds, min_distance_m):
        self.attempts += 1
        if self.broken:
            raise RuntimeError("location services unavailable")
        return super().watch_position(callback, interval_seconds, min_distance_m)


class LocationForwarderTests(unittest.TestCase):
    def test_watch_is_created_once(self):
        source = FakeSource()
        fwd = LocationForwarder(source, lambda p: None, interval_seconds=5, min_distance_m=10)
        self.assertTrue(fwd.start())
        self.assertTrue(fwd.start())
        self.assertEqual(len(source.watches), 1)
        self.assertEqual(source.watches[0][1:], (5, 10))
        self.assertEqual(fwd.ref_count, 2)

        fwd.stop()
        self.assertTrue(fwd.is_active())
        fwd.stop()
        self.assertFalse(fwd.is_active())
        self.assertTrue(source.watches[0][0].removed)

    def test_force_stop(self):
        source = FakeSource()
        fwd = LocationForwarder(source, lambda p: None)
        fwd.start()
        fwd.start()
        fwd.stop(force=True)
        self.assertFalse(fwd.is_active())
        self.assertEqual(fwd.ref_count, 0)

    def test_permission_denied(self):
        fwd = LocationForwarder(FakeSource(allowed=False), lambda p: None)
        with self.assertLogs("app.services.location_forwarder", "WARNING"):
            self.assertFalse(fwd.start())
        self.assertFalse(fwd.is_active())
        self.assertEqual(fwd.ref_count, 0)

    def test_failed_watch_releases_the_reference(self):
        source = FlakyWatchSource()
        fwd = LocationForwarder(source, lambda p: None)
        with self.assertLogs("app.services.location_forwarder", "ERROR"):
            self.assertFalse(fwd.start())
        self.assertFalse(fwd.is_active())
        self.assertEqual(fwd.ref_count, 0)

        source.broken = False
        self.assertTrue(fwd.start())
        self.assertEqual(source.attempts, 2)
        fwd.stop()
        self.assertFalse(fwd.is_active())
        self.assertTrue(source.watches[0][0].removed)

    def test_forward_errors_do_not_stop_the_watch(self):
        received = []

        def forward(position):
            received.append(position)
            if len(received) == 1:
                raise RuntimeError("backend down")

        source = FakeSource()
        fwd = LocationForwarder(source, forward)
        fwd.start()
        with self.assertLogs("app.services.location_forwarder", "ERROR"):
            source.callback(Position(14.5, 121.0))
        source.callback(Position(14.6, 121.0))
        self.assertEqual(len(received), 2)
        self.assertTrue(fwd.is_active())


class PollingPositionSourceTests(unittest.TestCase):
    def test_small_moves_are_filtered(self):
        here = Position(14.5, 121.0)
        samples = [here, Position(14.50001, 121.0), Position(14.51, 121.0)]
        got, done = [], threading.Event()

        def get_position():
            return samples.pop(0) if samples else None

        def on_position(p):
            got.append(p)
            if len(got) == 2:
                done.set()

        sub = PollingPositionSource(get_position).watch_position(on_position, 0.01, 10)
        try:
            self.assertTrue(done.wait(2))
        finally:
            sub.remove()
        self.assertEqual(got, [here, Position(14.51, 121.0)])

    def test_permission_callable(self):
        self.assertFalse(PollingPositionSource(lambda: None, permission=lambda: False).request_permission())


class HelperTests(unittest.TestCase):
    def test_run_with_timeout(self):
        self.assertEqual(run_with_timeout(lambda x: x * 2, 1, 21), 42)
        with self.assertRaises(TimeoutError):
            run_with_timeout(time.sleep, 0.05, 0.5)

    def test_geocoded_address(self):
        parts = {"streetNumber": "123", "street": "Rizal St", "city": "Quezon City", "region": "Metro Manila",
                 "postalCode": "1101", "country": "Philippines"}
        self.assertEqual(format_geocoded_address(parts),
                         "123 Rizal St, Quezon City, Metro Manila, 1101, Philippines")
        self.assertEqual(format_geocoded_address({}), "")


class ContractLocationWriterTests(unittest.TestCase):
    def setUp(self):
        reset_db()
        self.db = SessionLocal()
        self.airline = make_profile(self.db, "airline")
        self.driver = make_profile(self.db, "delivery")
        self.other = make_profile(self.db, "delivery")

    def tearDown(self):
        self.db.close()

    def test_only_in_transit_contracts_of_the_user_are_updated(self):
        moving = make_contract(self.db, self.airline.id, ContractStatus.IN_TRANSIT, self.driver.id)
        waiting = make_contract(self.db, self.airline.id, ContractStatus.ACCEPTED_AWAITING_PICKUP, self.driver.id)
        someone_else = make_contract(self.db, self.airline.id, ContractStatus.IN_TRANSIT, self.other.id)
        feed = ChangeFeed()
        events = []
        feed.subscribe("contracts", events.append)

        writer = ContractLocationWriter(SessionLocal, self.driver.id, feed=feed)
        self.assertEqual(writer.write(Position(14.55, 121.02), "EDSA, Pasay"), 1)

        self.db.expire_all()
        row = self.db.get(Contract, moving.id)
        self.assertEqual(row.current_location, "EDSA, Pasay")
        self.assertEqual(row.current_location_geo, "SRID=4326;POINT(121.02 14.55)")
        self.assertIsNone(self.db.get(Contract, waiting.id).current_location_geo)
        self.assertIsNone(self.db.get(Contract, someone_else.id).current_location_geo)
        self.assertEqual(len(events), 1)
        self.assertNotIn("contract_status_id", events[0].old)

    def test_address_falls_back_to_coordinates(self):
        make_contract(self.db, self.airline.id, ContractStatus.IN_TRANSIT, self.driver.id)

        def broken_geocoder(lat, lon):
            raise OSError("no network")

        writer = ContractLocationWriter(SessionLocal, self.driver.id, geocoder=broken_geocoder, feed=ChangeFeed())
        self.assertEqual(writer.describe(Position(14.55, 121.02)), "14.55, 121.02")
        self.assertEqual(writer(Position(14.55, 121.02)), 1)

    def test_nothing_in_transit(self):
        writer = ContractLocationWriter(SessionLocal, self.driver.id, feed=ChangeFeed())
        self.assertEqual(writer.write(Position(14.55, 121.02), "x"), 0)
        self.assertEqual(count_in_transit(self.db, self.driver.id), 0)


class TransitTrackerTests(unittest.TestCase):
    def setUp(self):
        reset_db()
        self.db = SessionLocal()
        self.airline = make_profile(self.db, "airline")
        self.driver = make_profile(self.db, "delivery")
        self.driver_id = self.driver.id
        self.feed = ChangeFeed()
        self.source = FakeSource()
        self.forwarder = LocationForwarder(self.source, lambda p: None)
        self.tracker = TransitTracker(SessionLocal, lambda: self.driver_id, self.forwarder, feed=self.feed,
                                      check_interval_seconds=3600, session_timeout_seconds=1)

    def tearDown(self):
        self.tracker.shutdown()
        self.db.close()

    def _set_status(self, contract_id, status):
        row = self.db.get(Contract, contract_id)
        old = row.contract_status_id
        row.contract_status_id = int(status)
        self.db.commit()
        self.feed.publish(ChangeEvent(
            table="contracts", event_type="UPDATE",
            new={"id": contract_id, "airline_id": self.airline.id, "delivery_id": self.driver_id,
                 "contract_status_id": int(status)},
            old={"id": contract_id, "contract_status_id": old},
        ))

    def test_forwarding_follows_in_transit_count(self):
        c = make_contract(self.db, self.airline.id, ContractStatus.ACCEPTED_AWAITING_PICKUP, self.driver_id)
        self.assertTrue(self.tracker.start())
        self.assertFalse(self.forwarder.is_active())

        self._set_status(c.id, ContractStatus.IN_TRANSIT)
        self.assertTrue(self.tracker.tracking)
        self.assertTrue(self.forwarder.is_active())

        # repeated checks keep a single reference
        self.tracker.check()
        self.tracker.check()
        self.assertEqual(self.forwarder.ref_count, 1)

        self._set_status(c.id, ContractStatus.DELIVERED)
        self.assertFalse(self.forwarder.is_active())
        self.assertEqual(len(self.source.watches), 1)

    def test_tracker_retries_after_a_failed_watch(self):
        make_contract(self.db, self.airline.id, ContractStatus.IN_TRANSIT, self.driver_id)
        source = FlakyWatchSource()
        forwarder = LocationForwarder(source, lambda p: None)
        tracker = TransitTracker(SessionLocal, lambda: self.driver_id, forwarder, feed=self.feed,
                                 check_interval_seconds=3600, session_timeout_seconds=1)
        try:
            with self.assertLogs("app.services.location_forwarder", "ERROR"):
                self.assertTrue(tracker.start())
            self.assertFalse(tracker.tracking)
            self.assertEqual(forwarder.ref_count, 0)

            source.broken = False
            self.assertEqual(tracker.check(), 1)
            self.assertTrue(tracker.tracking)
            self.assertEqual(forwarder.ref_count, 1)
            self.assertEqual(source.attempts, 2)
        finally:
            tracker.shutdown()
        self.assertFalse(forwarder.is_active())

    def test_timer_survives_a_failing_check(self):
        self.tracker.check_interval_seconds = 0.01
        calls = []

        def failing_check():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        self.tracker.check = failing_check
        self.tracker.user_id = self.driver_id
        timer = threading.Thread(target=self.tracker._run_timer, daemon=True)
        with self.assertLogs("app.services.location_forwarder", "ERROR"):
            timer.start()
            deadline = time.time() + 2
            while len(calls) < 3 and time.time() < deadline:
                time.sleep(0.01)
        self.tracker._stop.set()
        timer.join(timeout=2)
        self.assertGreaterEqual(len(calls), 3)

    def test_location_only_events_do_not_trigger_a_check(self):
        self.tracker.start()
        calls = []
        self.tracker.check = lambda: calls.append(1)
        self.feed.publish(ChangeEvent(table="contracts", event_type="UPDATE",
                                      new={"id": "x", "delivery_id": self.driver_id}))
        self.assertEqual(calls, [])

    def test_unparseable_status_event_is_ignored(self):
        self.tracker.start()
        calls = []
        self.tracker.check = lambda: calls.append(1)
        with self.assertLogs("app.services.location_forwarder", "WARNING"):
            self.feed.publish(ChangeEvent(table="contracts", event_type="UPDATE",
                                          new={"id": "x", "delivery_id": self.driver_id, "contract_status_id": "??"},
                                          old={"contract_status_id": 4}))
        self.assertEqual(calls, [])

    def test_shutdown_releases_everything(self):
        make_contract(self.db, self.airline.id, ContractStatus.IN_TRANSIT, self.driver_id)
        self.tracker.start()
        self.assertTrue(self.forwarder.is_active())
        self.tracker.shutdown()
        self.assertFalse(self.forwarder.is_active())
        self.assertEqual(self.feed.subscriber_count(), 0)

    def test_no_session_means_no_tracking(self):
        self.tracker.user_id_provider = lambda: time.sleep(0.5) or "late"
        self.tracker.session_timeout_seconds = 0.05
        with self.assertLogs("app.services.location_forwarder", "WARNING"):
            self.assertFalse(self.tracker.start())
        self.assertEqual(self.feed.subscriber_count(), 0)


if __name__ == "__main__":
    unittest.main()
