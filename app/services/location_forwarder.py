"""Forwarding of a delivery person's position into in-transit contracts.

Three pieces:

* ``LocationForwarder`` owns the position watch. ``start()``/``stop()`` are
  reference counted and the watch itself is created at most once.
* ``ContractLocationWriter`` is the forward function: it writes the sample
  into every IN_TRANSIT contract assigned to the user.
* ``TransitTracker`` decides whether forwarding should run, from a count of
  the user's IN_TRANSIT contracts, re-checked on a timer and whenever a
  contract of that user changes status.

Forwarding is best effort: a failed write is logged and the next sample is
tried; nothing is retried.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import RecordParseError
from app.models.contract import Contract
from app.schemas.contract import parse_contract_row
from app.services.contract_lifecycle import ContractStatus
from app.services.realtime import ChangeEvent, ChangeFeed, change_feed, eq_filter
from app.services.vicinity_service import Coordinates, distance_between

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(latitude=self.latitude, longitude=self.longitude)


class LocationSubscription(Protocol):
    def remove(self) -> None:
        ...


class PositionSource(Protocol):
    def request_permission(self) -> bool:
        ...

    def watch_position(self, callback: Callable[[Position], None], interval_seconds: float,
                       min_distance_m: float) -> LocationSubscription:
        ...


def run_with_timeout(fn: Callable, timeout_seconds: float, *args, **kwargs):
    """Run ``fn`` and give up waiting after ``timeout_seconds``.

    Raises ``TimeoutError``; the call itself is left to finish in the
    background since a blocking backend call cannot be interrupted.
    """
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    try:
        future = pool.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=timeout_seconds)
        except concurrent.futures.TimeoutError:
            raise TimeoutError(f"{getattr(fn, '__name__', 'call')} timed out after {timeout_seconds}s")
    finally:
        pool.shutdown(wait=False)


class _PollingSubscription:
    def __init__(self, stop_event: threading.Event, thread: threading.Thread):
        self._stop = stop_event
        self._thread = thread

    def remove(self) -> None:
        self._stop.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=5)


class PollingPositionSource:
    """Position watch built on a ``get_position()`` callable.

    Samples on a fixed cadence in a daemon thread and only reports a sample
    once it is at least ``min_distance_m`` away from the last reported one.
    """

    def __init__(self, get_position: Callable[[], Optional[Position]],
                 permission: Callable[[], bool] = lambda: True):
        self._get_position = get_position
        self._permission = permission

    def request_permission(self) -> bool:
        return bool(self._permission())

    def watch_position(self, callback, interval_seconds, min_distance_m):
        stop = threading.Event()

        def run():
            last: Optional[Position] = None
            while not stop.is_set():
                try:
                    pos = self._get_position()
                except Exception:
                    logger.exception("position sample failed")
                    pos = None
                if pos is not None and (
                    last is None or distance_between(last.coordinates, pos.coordinates) * 1000 >= min_distance_m
                ):
                    last = pos
                    callback(pos)
                stop.wait(interval_seconds)

        t = threading.Thread(target=run, name="position-watch", daemon=True)
        t.start()
        return _PollingSubscription(stop, t)


class LocationForwarder:
    def __init__(self, source: PositionSource, forward_fn: Callable[[Position], object],
                 interval_seconds: float | None = None, min_distance_m: float | None = None):
        self.source = source
        self.forward_fn = forward_fn
        self.interval_seconds = interval_seconds if interval_seconds is not None else settings.LOCATION_INTERVAL_SECONDS
        self.min_distance_m = min_distance_m if min_distance_m is not None else settings.LOCATION_MIN_DISTANCE_METERS
        self._lock = threading.Lock()
        self._subscription: Optional[LocationSubscription] = None
        self._refs = 0

    @property
    def ref_count(self) -> int:
        return self._refs

    def is_active(self) -> bool:
        return self._subscription is not None

    def start(self) -> bool:
        """Take a reference; opens the watch on the first one. Returns whether forwarding is active."""
        with self._lock:
            self._refs += 1
            if self._subscription is not None:
                return True
            try:
                if not self.source.request_permission():
                    logger.warning("Location permission not granted; forwarding not started")
                    self._refs = 0
                    return False
                self._subscription = self.source.watch_position(
                    self._on_position, self.interval_seconds, self.min_distance_m,
                )
            except Exception:
                logger.exception("Error starting location forwarding")
                self._refs = 0
                return False
            logger.info("Location forwarding started")
            return True

    def stop(self, force: bool = False) -> None:
        with self._lock:
            self._refs = 0 if force else max(self._refs - 1, 0)
            if self._refs > 0 or self._subscription is None:
                return
            sub, self._subscription = self._subscription, None
        sub.remove()
        logger.info("Location forwarding stopped")

    def _on_position(self, position: Position) -> None:
        try:
            self.forward_fn(position)
        except Exception:
            logger.exception("Error forwarding location (%s, %s)", position.latitude, position.longitude)


def format_geocoded_address(parts: dict) -> str:
    """Reverse-geocode result -> "street, city, region, postal, country, district, subregion"."""
    components = []
    if parts.get("street"):
        components.append(" ".join(p for p in (parts.get("streetNumber"), parts["street"]) if p))
    city_region = [p for p in (parts.get("city"), parts.get("region")) if p]
    if city_region:
        components.append(", ".join(city_region))
    postal_country = [p for p in (parts.get("postalCode"), parts.get("country")) if p]
    if postal_country:
        components.append(", ".join(postal_country))
    for key in ("district", "subregion"):
        if parts.get(key):
            components.append(parts[key])
    return ", ".join(components)


class ContractLocationWriter:
    def __init__(self, session_factory: Callable[[], Session], user_id: str,
                 geocoder: Optional[Callable[[float, float], Optional[str]]] = None,
                 feed: ChangeFeed = change_feed):
        self.session_factory = session_factory
        self.user_id = user_id
        self.geocoder = geocoder
        self.feed = feed

    def describe(self, position: Position) -> str:
        address = None
        if self.geocoder is not None:
            try:
                address = self.geocoder(position.latitude, position.longitude)
            except Exception:
                logger.warning("reverse geocoding failed for %s, %s", position.latitude, position.longitude)
        return address or f"{position.latitude}, {position.longitude}"

    def __call__(self, position: Position, address: Optional[str] = None) -> int:
        return self.write(position, address)

    def write(self, position: Position, address: Optional[str] = None) -> int:
        text = address or self.describe(position)
        geo = position.coordinates.to_point(srid=True)
        db = self.session_factory()
        try:
            ids = [cid for (cid,) in db.query(Contract.id).filter(
                Contract.delivery_id == self.user_id,
                Contract.contract_status_id == int(ContractStatus.IN_TRANSIT),
            ).all()]
            if not ids:
                return 0
            db.execute(
                update(Contract)
                .where(Contract.id.in_(ids), Contract.contract_status_id == int(ContractStatus.IN_TRANSIT))
                .values(current_location=text, current_location_geo=geo, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()
        for cid in ids:
            self.feed.publish(ChangeEvent(
                table="contracts",
                event_type="UPDATE",
                new={"id": cid, "delivery_id": self.user_id, "contract_status_id": int(ContractStatus.IN_TRANSIT),
                     "current_location": text, "current_location_geo": geo},
            ))
        logger.debug("location %s written to %d contract(s)", geo, len(ids))
        return len(ids)


def count_in_transit(db: Session, user_id: str) -> int:
    return db.query(func.count(Contract.id)).filter(
        Contract.delivery_id == user_id,
        Contract.contract_status_id == int(ContractStatus.IN_TRANSIT),
    ).scalar() or 0


class TransitTracker:
    """Keeps a ``LocationForwarder`` running exactly while the user has contracts in transit."""

    def __init__(self, session_factory: Callable[[], Session], user_id_provider: Callable[[], Optional[str]],
                 forwarder: LocationForwarder, feed: ChangeFeed = change_feed,
                 check_interval_seconds: float | None = None, session_timeout_seconds: float | None = None):
        self.session_factory = session_factory
        self.user_id_provider = user_id_provider
        self.forwarder = forwarder
        self.feed = feed
        self.check_interval_seconds = (check_interval_seconds if check_interval_seconds is not None
                                       else settings.TRACKING_CHECK_INTERVAL_SECONDS)
        self.session_timeout_seconds = (session_timeout_seconds if session_timeout_seconds is not None
                                        else settings.SESSION_CHECK_TIMEOUT_SECONDS)
        self.user_id: Optional[str] = None
        self._holding = False
        self._check_lock = threading.Lock()
        self._feed_sub = None
        self._stop = threading.Event()
        self._timer: Optional[threading.Thread] = None

    @property
    def tracking(self) -> bool:
        return self._holding

    def resolve_user_id(self) -> Optional[str]:
        try:
            return run_with_timeout(self.user_id_provider, self.session_timeout_seconds)
        except TimeoutError:
            logger.warning("session check timed out after %ss", self.session_timeout_seconds)
            return None

    def check(self) -> Optional[int]:
        """Count in-transit contracts and start or stop forwarding to match."""
        if not self.user_id:
            return None
        with self._check_lock:
            db = self.session_factory()
            try:
                count = count_in_transit(db, self.user_id)
            except SQLAlchemyError:
                logger.exception("in-transit count failed for %s", self.user_id)
                return None
            finally:
                db.close()
            if count > 0 and not self._holding:
                self._holding = self.forwarder.start()
            elif count == 0 and self._holding:
                self.forwarder.stop()
                self._holding = False
                logger.info("No contracts in transit. Location tracking inactive.")
            return count

    def _on_change(self, event: ChangeEvent) -> None:
        # location writes carry no previous status; only status changes matter here
        if event.event_type != "INSERT" and "contract_status_id" not in event.old:
            return
        try:
            record = parse_contract_row(dict(event.new))
        except RecordParseError:
            logger.warning("ignoring unparseable contracts event %s", event.event_type)
            return
        logger.debug("contract %s now in status %s", record.id, record.contract_status_id)
        self.check()

    def _run_timer(self) -> None:
        while not self._stop.wait(self.check_interval_seconds):
            try:
                self.check()
            except Exception:
                logger.exception("transit check failed for %s", self.user_id)

    def start(self) -> bool:
        if self._timer is not None:
            return True
        self.user_id = self.resolve_user_id()
        if not self.user_id:
            logger.warning("no authenticated user; transit tracking not started")
            return False
        self._stop.clear()
        self._feed_sub = self.feed.subscribe("contracts", self._on_change, [eq_filter("delivery_id", self.user_id)])
        self.check()
        self._timer = threading.Thread(target=self._run_timer, name="transit-tracker", daemon=True)
        self._timer.start()
        return True

    def shutdown(self) -> None:
        self._stop.set()
        if self._feed_sub is not None:
            self._feed_sub.remove()
            self._feed_sub = None
        if self._timer is not None and self._timer is not threading.current_thread():
            self._timer.join(timeout=5)
        self._timer = None
        if self._holding:
            self.forwarder.stop(force=True)
            self._holding = False
