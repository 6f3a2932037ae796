import base64
import uuid

from app.core.security import create_access_token, hash_password
from app.db.session import Base, engine
from app.models.audit_log import AuditLog  # noqa: F401
from app.models.contract import Contract
from app.models.corporation import Corporation  # noqa: F401
from app.models.pricing import Pricing  # noqa: F401
from app.models.profile import Profile
from app.models.push_token import PushToken  # noqa: F401
from app.services.contract_lifecycle import ContractStatus
from app.services.contract_service import TERMINALS, make_tracking_id

PASSWORD = "secret123"
IMAGE_BYTES = b"\x89PNG\r\n\x1a\nnot really a png"
IMAGE_B64 = base64.b64encode(IMAGE_BYTES).decode()

PICKUP_POINT = TERMINALS["Terminal 3"]
DROP_OFF_GEO = "POINT(121.0437 14.676)"


def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def make_profile(db, role="delivery", status="active", email=None, **kw) -> Profile:
    p = Profile(
        id=str(uuid.uuid4()),
        email=email or f"{role}-{uuid.uuid4().hex[:6]}@example.com",
        password_hash=hash_password(kw.pop("password", PASSWORD)),
        role=role,
        status=status,
        verify_status="verified",
        first_name=kw.pop("first_name", role.title()),
        last_name=kw.pop("last_name", "Tester"),
        **kw,
    )
    db.add(p)
    db.commit()
    return p


def make_contract(db, airline_id, status=ContractStatus.PENDING, delivery_id=None, **kw) -> Contract:
    c = Contract(
        id=kw.pop("id", None) or make_tracking_id(),
        contract_status_id=int(status),
        airline_id=airline_id,
        delivery_id=delivery_id,
        owner_first_name="Juan",
        owner_last_name="Dela Cruz",
        owner_contact="+63 917 123 4567",
        flight_number="PR102",
        luggage_quantity=2,
        luggage_description="Black suitcase\nBlue duffel",
        delivery_address="Metro Manila, Quezon City, Diliman, 1101",
        pickup_location="Terminal 3",
        pickup_location_geo=kw.pop("pickup_location_geo", PICKUP_POINT.to_point()),
        drop_off_location="123 Rizal St, Quezon City",
        drop_off_location_geo=kw.pop("drop_off_location_geo", DROP_OFF_GEO),
        delivery_charge=150,
        **kw,
    )
    db.add(c)
    db.commit()
    return c


def auth_headers(profile: Profile) -> dict:
    return {"Authorization": f"Bearer {create_access_token(profile.id, role=profile.role)}"}


class RecordingNotify:
    """Stands in for the push dispatcher; remembers every call."""

    def __init__(self):
        self.calls = []

    def __call__(self, user_id, title, body, data=None):
        self.calls.append({"user_id": user_id, "title": title, "body": body, "data": data or {}})
