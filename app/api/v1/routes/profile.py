from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.session import get_db
from app.models.profile import Profile
from app.schemas.profile import ProfileOut, ProfilePatch
from app.services import profile_service

router = APIRouter(tags=["profile"])

@router.get("/profile", response_model=ProfileOut)
def get_profile(me: Profile = Depends(get_current_user)):
    return profile_service.to_profile_out(me)

@router.patch("/profile", response_model=ProfileOut)
def edit_profile(body: ProfilePatch, db: Session = Depends(get_db), me: Profile = Depends(get_current_user)):
    return profile_service.to_profile_out(profile_service.update_own_profile(db, me, body))
