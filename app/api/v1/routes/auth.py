from fastapi import APIRouter, Depends, HTTPException
from jose import JWTError
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.core.errors import AccountInactive
from app.core.security import create_access_token, create_refresh_token, decode_token
from app.db.session import get_db
from app.models.profile import Profile
from app.schemas.auth import LoginRequest, PushTokenIn, TokenPair
from app.schemas.profile import ProfileOut, SignUpIn
from app.services import profile_service
from app.services.notification_service import register_push_token

router = APIRouter(tags=["auth"])

def _tokens(p: Profile) -> TokenPair:
    return TokenPair(
        access_token=create_access_token(p.id, role=p.role),
        refresh_token=create_refresh_token(p.id),
        role=p.role,
    )

@router.post("/auth/login", response_model=TokenPair)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    try:
        p = profile_service.login(db, body.email, body.password, body.pushToken, body.deviceId)
    except AccountInactive as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return _tokens(p)


@router.post("/auth/signup", response_model=ProfileOut, status_code=201)
def signup(body: SignUpIn, db: Session = Depends(get_db)):
    """New accounts start out pending; an admin has to activate them before login works."""
    try:
        p = profile_service.register(db, body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return profile_service.to_profile_out(p)


@router.post("/auth/refresh", response_model=TokenPair)
def refresh(refresh_token: str, db: Session = Depends(get_db)):
    try:
        payload = decode_token(refresh_token, expected_type="refresh")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    p = db.get(Profile, payload.get("sub"))
    if not p or p.status in profile_service.BLOCKED_STATUSES:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return _tokens(p)

@router.post("/auth/logout")
def logout(db: Session = Depends(get_db), me: Profile = Depends(get_current_user)):
    profile_service.logout(db, me)
    return {"ok": True}

@router.get("/auth/me")
def me(me: Profile = Depends(get_current_user)):
    """Return current user info including role."""
    return {
        "id": me.id,
        "email": me.email,
        "fullName": me.full_name,
        "role": me.role,
        "status": me.status,
        "verifyStatus": me.verify_status,
    }

@router.post("/auth/push-token")
def save_push_token(body: PushTokenIn, db: Session = Depends(get_db), me: Profile = Depends(get_current_user)):
    if not body.token.strip():
        raise HTTPException(status_code=400, detail="token required")
    row = register_push_token(db, me.id, body.token.strip(), body.deviceId)
    return {"ok": True, "deviceId": row.device_id}

