import logging
import re
import secrets
import uuid
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.errors import AccountInactive
from app.core.security import hash_password, verify_password
from app.models.corporation import Corporation
from app.models.profile import Profile
from app.schemas.profile import AdminProfileCreate, AdminProfilePatch, ProfileOut, ProfilePatch, SignUpIn
from app.services.audit_service import log_audit
from app.services.contract_service import format_contact_number
from app.services.notification_service import register_push_token
from app.services.storage_service import create_signed_url

logger = logging.getLogger(__name__)

ROLES = ("admin", "airline", "delivery")
STATUSES = ("active", "offline", "pending", "deactivated")
VERIFY_STATUSES = ("verified", "unverified", "pending")
BLOCKED_STATUSES = ("pending", "deactivated")
SIGNUP_ROLES = ("airline", "delivery")
MIN_PASSWORD_LENGTH = 8

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def authenticate(db: Session, email: str, password: str) -> Profile | None:
    p = db.query(Profile).filter(Profile.email == (email or "").strip().lower()).first()
    if not p or not verify_password(password, p.password_hash):
        return None
    return p


def login(db: Session, email: str, password: str, push_token: str | None = None,
          device_id: str | None = None) -> Profile:
    """Credentials check plus the sign-in bookkeeping.

    Pending and deactivated accounts are refused. Everyone else is marked
    active with a fresh ``last_sign_in_at``; a push token, if given, is
    upserted for the device.
    """
    if not email or not password:
        raise ValueError("Email and password are required.")
    p = authenticate(db, email, password)
    if not p:
        raise ValueError("Invalid credentials")
    if p.status in BLOCKED_STATUSES:
        raise AccountInactive("Your account is not active. Please contact support.")
    if p.role not in ROLES:
        raise AccountInactive("Unauthorized role or unknown user.")
    p.last_sign_in_at = datetime.now(timezone.utc)
    p.status = "active"
    db.commit()
    if push_token:
        register_push_token(db, p.id, push_token, device_id or "unknown-device")
    logger.info("profile %s signed in (%s)", p.id, p.role)
    return p


def logout(db: Session, profile: Profile) -> None:
    if profile.status == "active":
        profile.status = "offline"
        profile.updated_at = datetime.now(timezone.utc)
        db.commit()


def update_own_profile(db: Session, profile: Profile, patch: ProfilePatch) -> Profile:
    changes = patch.model_dump(exclude_unset=True)
    if "middle_initial" in changes and changes["middle_initial"]:
        changes["middle_initial"] = changes["middle_initial"].strip()[:1].upper()
    for field, value in changes.items():
        setattr(profile, field, value if value is not None else "")
    profile.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(profile)
    return profile


def admin_update_profile(db: Session, admin: Profile, profile_id: str, patch: AdminProfilePatch) -> Profile:
    p = db.get(Profile, profile_id)
    if not p:
        raise LookupError("profile not found")
    changes = patch.model_dump(exclude_unset=True, exclude_none=True)
    if "role" in changes and changes["role"] not in ROLES:
        raise ValueError("invalid role")
    if "status" in changes and changes["status"] not in STATUSES:
        raise ValueError("invalid status")
    if "verify_status" in changes and changes["verify_status"] not in VERIFY_STATUSES:
        raise ValueError("invalid verification status")
    before = {k: getattr(p, k) for k in changes}
    for field, value in changes.items():
        setattr(p, field, value)
    p.updated_at = datetime.now(timezone.utc)
    log_audit(db, admin.id, "profile.update", "profile", p.id, {"before": before, "after": changes}, commit=False)
    db.commit()
    db.refresh(p)
    return p


def list_profiles(db: Session, role: str = "", status: str = "", q: str = "", limit: int = 50, offset: int = 0):
    query = db.query(Profile)
    if role:
        query = query.filter(Profile.role == role)
    if status:
        query = query.filter(Profile.status == status)
    if q:
        ql = f"%{q.lower()}%"
        query = query.filter(
            func.lower(Profile.email).like(ql)
            | func.lower(Profile.first_name).like(ql)
            | func.lower(Profile.last_name).like(ql)
        )
    total = query.count()
    rows = query.order_by(Profile.created_at.desc()).limit(min(limit, 200)).offset(max(offset, 0)).all()
    return total, rows


def to_profile_out(p: Profile) -> ProfileOut:
    out = ProfileOut.model_validate(p, from_attributes=True)
    out.pfp_url = create_signed_url(p.pfp_id)
    return out


def _new_email(db: Session, email: str) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValueError("invalid email address")
    if db.query(Profile.id).filter(Profile.email == email).first():
        raise ValueError("an account with this email already exists")
    return email


def register(db: Session, body: SignUpIn) -> Profile:
    """Self sign-up. The account stays ``pending`` until an admin activates it."""
    email = _new_email(db, body.email)
    if body.role not in SIGNUP_ROLES:
        raise ValueError(f"role must be one of: {', '.join(SIGNUP_ROLES)}")
    if len(body.password or "") < MIN_PASSWORD_LENGTH:
        raise ValueError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    if not body.first_name.strip() or not body.last_name.strip():
        raise ValueError("first and last name are required")
    p = Profile(
        id=str(uuid.uuid4()),
        email=email,
        password_hash=hash_password(body.password),
        role=body.role,
        status="pending",
        verify_status="unverified",
        first_name=body.first_name.strip(),
        middle_initial=body.middle_initial.strip()[:1].upper(),
        last_name=body.last_name.strip(),
        contact_number=format_contact_number(body.contact_number),
    )
    db.add(p)
    db.commit()
    db.refresh(p)
    logger.info("profile %s signed up as %s (pending)", p.id, p.role)
    return p


def admin_create_profile(db: Session, admin: Profile, body: AdminProfileCreate) -> tuple[Profile, str]:
    """Active account created by an admin; returns it with a one-time temporary password."""
    email = _new_email(db, body.email)
    if body.role not in ROLES:
        raise ValueError("invalid role")
    if body.role == "airline":
        if not body.corporation_id:
            raise ValueError("airline accounts need a corporation")
        if not db.get(Corporation, body.corporation_id):
            raise LookupError("corporation not found")
    temporary_password = secrets.token_urlsafe(9)
    p = Profile(
        id=str(uuid.uuid4()),
        email=email,
        password_hash=hash_password(temporary_password),
        role=body.role,
        status="active",
        verify_status="unverified",
        corporation_id=body.corporation_id if body.role == "airline" else None,
        first_name=body.first_name.strip(),
        last_name=body.last_name.strip(),
    )
    db.add(p)
    log_audit(db, admin.id, "profile.create", "profile", p.id,
              {"email": email, "role": p.role, "corporation_id": p.corporation_id}, commit=False)
    db.commit()
    db.refresh(p)
    return p, temporary_password
