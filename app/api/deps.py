from functools import lru_cache

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.security import decode_token
from app.db.session import get_db
from app.models.profile import Profile
from app.services.contract_lifecycle import ContractLifecycle
from app.services.profile_service import BLOCKED_STATUSES
from app.services.storage_service import get_storage_client
from app.services.vicinity_service import VicinityGate

bearer = HTTPBearer(auto_error=False)


def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> Profile:
    """Profile behind the bearer token. Pending and deactivated accounts are locked out."""
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        profile_id = decode_token(creds.credentials, expected_type="access").get("sub")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    profile = db.get(Profile, profile_id) if profile_id else None
    if profile is None or profile.status in BLOCKED_STATUSES:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return profile


def require_roles(*roles: str):
    def _guard(profile: Profile = Depends(get_current_user)) -> Profile:
        if profile.role not in roles:
            raise HTTPException(status_code=403, detail=f"requires role: {' or '.join(roles)}")
        return profile
    return _guard


@lru_cache(maxsize=1)
def get_lifecycle() -> ContractLifecycle:
    """Process-wide lifecycle over the configured storage and vicinity gate."""
    return ContractLifecycle(storage=get_storage_client(), gate=VicinityGate.from_settings())
