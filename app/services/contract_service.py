import logging
import random
import re
import string
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import BookingValidationError, ContractNotFound, ActorNotPermitted
from app.models.contract import Contract
from app.models.corporation import Corporation
from app.models.profile import Profile
from app.schemas.contract import BookingCreate, ContractIn, ContractOut
from app.services.audit_service import log_audit
from app.services.contract_lifecycle import ContractStatus, status_name
from app.services.notification_service import dispatch_admin_notification
from app.services.pricing_service import calculate_total_delivery_fee, fetch_base_delivery_fee_for_address
from app.services.realtime import ChangeEvent, change_feed, row_to_dict
from app.services.storage_service import create_signed_url
from app.services.vicinity_service import Coordinates

logger = logging.getLogger(__name__)

TRACKING_ID_ATTEMPTS = 10

TERMINALS = {
    "Terminal 1": Coordinates(latitude=14.508963226090515, longitude=121.00417400814496),
    "Terminal 2": Coordinates(latitude=14.511166725278645, longitude=121.01288969053523),
    "Terminal 3": Coordinates(latitude=14.5201168528943, longitude=121.01377520505147),
}

NAME_LIMITS = (2, 50)
DESCRIPTION_LIMITS = (6, 500)
CONTACT_RE = re.compile(r"^9\d{9}$")
FLIGHT_RE = re.compile(r"^[A-Za-z0-9]{3,8}$")

PROOF_FIELDS = ("pickup_proof", "passenger_id_proof", "passenger_form_proof", "delivery_proof", "failure_proof")
SETTLED_STATUSES = (int(ContractStatus.DELIVERED), int(ContractStatus.FAILED))
MAX_DISCOUNT_PERCENT = 100


def make_tracking_id(today: datetime | None = None) -> str:
    today = today or datetime.now(timezone.utc)
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"{today:%Y%m%d}MKTP{suffix}"


def allocate_tracking_id(db: Session, taken: set[str] | None = None) -> str:
    taken = taken or set()
    for _ in range(TRACKING_ID_ATTEMPTS):
        ref = make_tracking_id()
        if ref in taken:
            continue
        if not db.get(Contract, ref):
            return ref
    raise ValueError("could not allocate tracking ID")


def format_contact_number(contact: str) -> str:
    c = re.sub(r"[^0-9]", "", contact or "")
    if len(c) == 12 and c.startswith("63"):
        c = c[2:]
    if len(c) == 10 and c.startswith("9"):
        return f"+63 {c[:3]} {c[3:6]} {c[6:]}"
    return f"+63 {c}" if c else ""


def _join_descriptions(c: ContractIn) -> str:
    descs = [d.strip() for d in c.itemDescriptions[: c.quantity]]
    return "".join(f"{i + 1}. {d}\n" for i, d in enumerate(descs))


def validate_contract(c: ContractIn) -> list[str]:
    """Names of invalid fields of one passenger contract."""
    bad = []
    for name, value in (("firstName", c.firstName), ("lastName", c.lastName)):
        v = (value or "").strip()
        if not (NAME_LIMITS[0] <= len(v) <= NAME_LIMITS[1]):
            bad.append(name)
    if not CONTACT_RE.match((c.contact or "").strip()):
        bad.append("contact")
    if not FLIGHT_RE.match((c.flightNumber or "").strip()):
        bad.append("flightNumber")
    if not (1 <= c.quantity <= settings.MAX_LUGGAGE_PER_CONTRACT):
        bad.append("quantity")
    descs = c.itemDescriptions[: max(c.quantity, 0)]
    joined = _join_descriptions(c)
    if (len(descs) < c.quantity or any(not d.strip() for d in descs)
            or not (DESCRIPTION_LIMITS[0] <= len(joined) <= DESCRIPTION_LIMITS[1])):
        bad.append("itemDescription")
    return bad


def find_duplicate_names(contracts: list[ContractIn]) -> list[int]:
    seen, dupes = set(), []
    for i, c in enumerate(contracts):
        full = f"{c.firstName.strip()} {c.lastName.strip()}".lower().strip()
        if not full:
            continue
        if full in seen:
            dupes.append(i)
        seen.add(full)
    return dupes


def validate_booking(body: BookingCreate) -> None:
    if not body.contracts:
        raise BookingValidationError("at least one contract is required")
    if len(body.contracts) > settings.MAX_CONTRACTS_PER_BOOKING:
        raise BookingValidationError(f"at most {settings.MAX_CONTRACTS_PER_BOOKING} contracts per booking")
    if body.terminal not in TERMINALS:
        raise BookingValidationError(f"unknown terminal: {body.terminal}")
    if not body.dropOff.location.strip():
        raise BookingValidationError("drop-off location is required")
    errors = {}
    for i, c in enumerate(body.contracts):
        bad = validate_contract(c)
        if bad:
            errors[i] = bad
    if errors:
        raise BookingValidationError("invalid contract fields", errors)
    dupes = find_duplicate_names(body.contracts)
    if dupes:
        raise BookingValidationError("passengers cannot have the same name", {i: ["name"] for i in dupes})


def _address_parts(body: BookingCreate) -> tuple[str, str, str]:
    delivery_address = ", ".join(p for p in (body.province, body.cityMunicipality, body.barangay, body.postalCode) if p.strip())
    line1 = ", ".join(p for p in (body.street, body.villageBuilding) if p.strip())
    line2 = ", ".join(p for p in (body.roomUnitNo, body.landmarkEntrance) if p.strip())
    return delivery_address, line1, line2


def create_booking(db: Session, airline: Profile, body: BookingCreate) -> tuple[list[Contract], float, str]:
    """Create one PENDING contract per passenger; returns (contracts, base fee, pricing status)."""
    validate_booking(body)
    delivery_address, line1, line2 = _address_parts(body)
    quote = fetch_base_delivery_fee_for_address(db, f"{body.dropOff.location}, {delivery_address}")
    if quote.status != "ok":
        raise BookingValidationError(
            "no delivery rate for this address" if quote.status == "no_match" else "delivery pricing unavailable"
        )

    terminal = TERMINALS[body.terminal]
    drop_geo = None
    if body.dropOff.lat is not None and body.dropOff.lng is not None:
        drop_geo = Coordinates(latitude=body.dropOff.lat, longitude=body.dropOff.lng).to_point()

    created, taken = [], set()
    for c in body.contracts:
        ref = allocate_tracking_id(db, taken)
        taken.add(ref)
        contract = Contract(
            id=ref,
            contract_status_id=int(ContractStatus.PENDING),
            airline_id=airline.id,
            owner_first_name=c.firstName.strip(),
            owner_middle_initial=(c.middleInitial or "").strip()[:1],
            owner_last_name=c.lastName.strip(),
            owner_contact=format_contact_number(c.contact),
            flight_number=c.flightNumber.strip().upper(),
            luggage_quantity=c.quantity,
            luggage_description="\n".join(d.strip() for d in c.itemDescriptions[: c.quantity] if d.strip()),
            delivery_address=delivery_address,
            address_line_1=line1,
            address_line_2=line2,
            pickup_location=body.pickupLocation or body.terminal,
            pickup_location_geo=terminal.to_point(),
            drop_off_location=body.dropOff.location.strip(),
            drop_off_location_geo=drop_geo,
            delivery_charge=calculate_total_delivery_fee([c.quantity], quote.fee),
        )
        db.add(contract)
        created.append(contract)
    db.commit()
    for contract in created:
        db.refresh(contract)
        change_feed.publish(ChangeEvent(table="contracts", event_type="INSERT", new=row_to_dict(contract)))

    total = calculate_total_delivery_fee([c.quantity for c in body.contracts], quote.fee)
    logger.info("airline %s created %d contract(s), total fee %s", airline.id, len(created), total)
    _notify_admins_of_booking(db, airline, created)
    return created, quote.fee, quote.status


def _notify_admins_of_booking(db: Session, airline: Profile, contracts: list[Contract]) -> None:
    corporation_name = "Unknown Corporation"
    if airline.corporation_id:
        corp = db.get(Corporation, airline.corporation_id)
        if corp:
            corporation_name = corp.corporation_name
    name = airline.full_name or airline.email
    for c in contracts:
        dispatch_admin_notification(
            f"New Booking Created - {c.id}",
            f"Booking created by {name} from {corporation_name}. Delivery to: {c.delivery_address}",
            {
                "contractId": c.id,
                "userId": airline.id,
                "corporationName": corporation_name,
                "deliveryAddress": c.delivery_address,
                "ownerName": c.owner_full_name,
                "flightNumber": c.flight_number,
                "luggageQuantity": c.luggage_quantity,
                "deliveryCharge": float(c.delivery_charge or 0),
            },
        )


# -------------------------
# queries
# -------------------------
def get_contract(db: Session, contract_id: str) -> Contract:
    c = db.get(Contract, contract_id)
    if not c:
        raise ContractNotFound(contract_id)
    return c


def get_visible_contract(db: Session, contract_id: str, viewer: Profile) -> Contract:
    c = get_contract(db, contract_id)
    if viewer.role == "admin":
        return c
    if viewer.role == "airline" and c.airline_id == viewer.id:
        return c
    if viewer.role == "delivery" and (c.delivery_id == viewer.id or c.contract_status_id == ContractStatus.PENDING):
        return c
    raise ActorNotPermitted("not your contract")


def list_contracts(db: Session, *, airline_id: str = "", delivery_id: str = "", statuses: list[int] | None = None,
                   q: str = "", include_available: bool = False, limit: int = 200) -> list[Contract]:
    query = db.query(Contract)
    if airline_id:
        query = query.filter(Contract.airline_id == airline_id)
    if delivery_id:
        mine = Contract.delivery_id == delivery_id
        if include_available:
            # delivery board: unassigned pending contracts plus the user's own
            mine = or_(mine, Contract.contract_status_id == int(ContractStatus.PENDING))
        query = query.filter(mine)
    if statuses:
        query = query.filter(Contract.contract_status_id.in_(statuses))
    if q:
        ql = f"%{q}%"
        query = query.filter(or_(
            Contract.id.ilike(ql),
            Contract.owner_first_name.ilike(ql),
            Contract.owner_last_name.ilike(ql),
            Contract.flight_number.ilike(ql),
        ))
    return query.order_by(Contract.created_at.desc()).limit(min(max(limit, 1), 1000)).all()


def to_contract_out(c: Contract) -> ContractOut:
    out = ContractOut.model_validate(c, from_attributes=True)
    out.status_name = status_name(c.contract_status_id)
    out.amount_due = amount_due(c)
    for f in PROOF_FIELDS:
        setattr(out, f"{f}_url", create_signed_url(getattr(c, f)))
    return out


# -------------------------
# billing
# -------------------------
def amount_due(c: Contract) -> float:
    """(charge + surcharge) less the discount, which is a percentage."""
    base = float(c.delivery_charge or 0) + float(c.delivery_surcharge or 0)
    return round(base * (1 - float(c.delivery_discount or 0) / 100), 2)


def adjust_amounts(db: Session, admin: Profile, contract_id: str, surcharge: float | None = None,
                   discount: float | None = None) -> Contract:
    if surcharge is None and discount is None:
        raise ValueError("nothing to adjust")
    if surcharge is not None and surcharge < 0:
        raise ValueError("surcharge cannot be negative")
    if discount is not None and not (0 <= discount <= MAX_DISCOUNT_PERCENT):
        raise ValueError(f"discount must be between 0 and {MAX_DISCOUNT_PERCENT} percent")
    c = get_contract(db, contract_id)
    before = {"surcharge": float(c.delivery_surcharge or 0), "discount": float(c.delivery_discount or 0)}
    if surcharge is not None:
        c.delivery_surcharge = surcharge
    if discount is not None:
        c.delivery_discount = discount
    c.updated_at = datetime.now(timezone.utc)
    log_audit(db, admin.id, "contract.adjust", "contract", c.id,
              {"before": before, "after": {"surcharge": surcharge, "discount": discount}}, commit=False)
    db.commit()
    db.refresh(c)
    change_feed.publish(ChangeEvent(table="contracts", event_type="UPDATE", new=row_to_dict(c)))
    return c


def transaction_summary(db: Session, *, airline_id: str = "", since: datetime | None = None,
                        until: datetime | None = None) -> dict:
    """Totals over settled (delivered or failed) contracts."""
    query = db.query(Contract).filter(Contract.contract_status_id.in_(SETTLED_STATUSES))
    if airline_id:
        query = query.filter(Contract.airline_id == airline_id)
    if since:
        query = query.filter(Contract.created_at >= since)
    if until:
        query = query.filter(Contract.created_at < until)
    rows = query.order_by(Contract.created_at.desc()).all()
    status_counts: dict[str, int] = {}
    for c in rows:
        name = status_name(c.contract_status_id)
        status_counts[name] = status_counts.get(name, 0) + 1
    return {
        "totalTransactions": len(rows),
        "totalAmount": round(sum(amount_due(c) for c in rows), 2),
        "totalSurcharge": round(sum(float(c.delivery_surcharge or 0) for c in rows), 2),
        "totalDiscount": round(sum(float(c.delivery_discount or 0) for c in rows), 2),
        "statusCounts": status_counts,
        "items": [to_contract_out(c) for c in rows],
    }
