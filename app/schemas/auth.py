from typing import Optional

from pydantic import BaseModel


class LoginRequest(BaseModel):
    email: str
    password: str
    # optional: register the device for push in the same round trip
    pushToken: Optional[str] = None
    deviceId: Optional[str] = None


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    role: str = ""


class PushTokenIn(BaseModel):
    token: str
    deviceId: str = "unknown-device"
