import logging
import math
import re
import unicodedata
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.models.pricing import Pricing

logger = logging.getLogger(__name__)

LUGGAGE_PER_FEE_UNIT = 3

_KALAKHANG_MAYNILA_RE = re.compile(r"\bkalakhang maynila\b")
_CITY_RE = re.compile(r"\bcity\b")
_COMMA_RE = re.compile(r"\s*,\s*")
_SPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class FeeQuote:
    fee: float
    status: str  # ok | no_pricing | no_match
    city: Optional[str] = None


def normalize(value) -> str:
    """Case, accent and spacing-insensitive form of a city name or address."""
    s = str(value or "").lower().strip()
    s = unicodedata.normalize("NFD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    # "city" goes first so removing it cannot bring a "kalakhang maynila" together
    s = _CITY_RE.sub("", s)
    s = _SPACE_RE.sub(" ", s)
    s = _KALAKHANG_MAYNILA_RE.sub("metro manila", s)
    s = _COMMA_RE.sub(", ", s)
    s = _SPACE_RE.sub(" ", s)
    return s.strip()


def find_pricing_match(entries: Iterable, address: str):
    norm_address = normalize(address)
    for entry in entries:
        norm_city = normalize(entry.city)
        # an entry whose city normalizes to nothing would match every address
        if norm_city and norm_city in norm_address:
            return entry
    return None


def load_pricing(db: Session) -> list[Pricing]:
    return db.query(Pricing).order_by(Pricing.id.asc()).all()


def quote_from_entries(entries: Sequence, address: str) -> FeeQuote:
    if not entries:
        return FeeQuote(fee=0, status="no_pricing")
    matched = find_pricing_match(entries, address)
    if matched is None:
        return FeeQuote(fee=0, status="no_match")
    city = re.sub("kalakhang maynila", "Metro Manila", matched.city, flags=re.IGNORECASE)
    return FeeQuote(fee=float(matched.price or 0), status="ok", city=city)


def fetch_base_delivery_fee_for_address(db: Session, address: str) -> FeeQuote:
    """Base delivery fee for a free-form address.

    An unreachable pricing table reports ``no_pricing`` so callers can tell a
    missing price apart from a legitimate zero fee.
    """
    try:
        entries = load_pricing(db)
    except SQLAlchemyError:
        logger.exception("pricing lookup failed")
        db.rollback()
        return FeeQuote(fee=0, status="no_pricing")
    return quote_from_entries(entries, address)


def calculate_total_delivery_fee(quantities: Iterable[int], base_fee: float) -> float:
    """Each contract pays the base fee once per started set of three bags."""
    total = 0.0
    for qty in quantities:
        sets = math.ceil(max(int(qty or 0), 0) / LUGGAGE_PER_FEE_UNIT)
        total += base_fee * sets
    return total


# -------------------------
# admin rate management
# -------------------------
def _check_rate(db: Session, city: str, price, exclude_id: int | None = None) -> tuple[str, float]:
    city = (city or "").strip()
    if not city:
        raise ValueError("City is required.")
    try:
        price = float(price)
    except (TypeError, ValueError):
        raise ValueError("Enter a valid price.")
    if price < 0 or not math.isfinite(price):
        raise ValueError("Enter a valid price.")
    wanted = normalize(city)
    for other in load_pricing(db):
        if other.id != exclude_id and normalize(other.city) == wanted:
            raise ValueError("This city already has a delivery rate.")
    return city, price


def add_rate(db: Session, city: str, price) -> Pricing:
    city, price = _check_rate(db, city, price)
    row = Pricing(city=city, price=price, updated_at=datetime.now(timezone.utc))
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("pricing: added %s at %s", city, price)
    return row


def update_rate(db: Session, rate_id: int, city: str, price) -> Pricing:
    row = db.get(Pricing, rate_id)
    if not row:
        raise LookupError("delivery rate not found")
    row.city, row.price = _check_rate(db, city, price, exclude_id=rate_id)
    row.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(row)
    return row


def delete_rate(db: Session, rate_id: int) -> None:
    row = db.get(Pricing, rate_id)
    if not row:
        raise LookupError("delivery rate not found")
    db.delete(row)
    db.commit()
    logger.info("pricing: removed %s", row.city)
