from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    role: str
    status: str
    verify_status: str
    first_name: str = ""
    middle_initial: str = ""
    last_name: str = ""
    suffix: str = ""
    contact_number: str = ""
    emergency_contact_name: str = ""
    emergency_contact_number: str = ""
    corporation_id: Optional[str] = None
    pfp_url: Optional[str] = None
    last_sign_in_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ProfilePatch(BaseModel):
    """Self-service edit. Role, status and verification are admin-only; the
    picture is only set by uploading it through ``POST /files``."""
    model_config = ConfigDict(extra="forbid")

    first_name: Optional[str] = None
    middle_initial: Optional[str] = None
    last_name: Optional[str] = None
    suffix: Optional[str] = None
    contact_number: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_number: Optional[str] = None


class AdminProfilePatch(BaseModel):
    role: Optional[str] = None
    status: Optional[str] = None
    verify_status: Optional[str] = None
    corporation_id: Optional[str] = None


class SignUpIn(BaseModel):
    email: str
    password: str
    role: str
    first_name: str
    middle_initial: str = ""
    last_name: str
    contact_number: str = ""


class AdminProfileCreate(BaseModel):
    email: str
    role: str
    corporation_id: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
