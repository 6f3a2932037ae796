from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_lifecycle
from app.api.errors import SERVICE_ERRORS, to_http
from app.db.session import get_db
from app.models.profile import Profile
from app.schemas.contract import ContractOut, TransitionIn
from app.services.contract_service import get_visible_contract, to_contract_out
from app.services.storage_service import decode_base64_image

router = APIRouter(tags=["contracts"])


def apply_transition(db: Session, contract_id: str, action: str, body: TransitionIn, me: Profile) -> ContractOut:
    """Shared by the airline and delivery action endpoints."""
    try:
        images = {kind: decode_base64_image(data, kind) for kind, data in body.images.items() if data}
        c = get_lifecycle().apply(
            db, contract_id, action, me,
            remarks=body.remarks, images=images, device_location=body.location,
        )
    except SERVICE_ERRORS as e:
        raise to_http(e)
    return to_contract_out(c)


@router.get("/contracts/{contract_id}", response_model=ContractOut)
def get_contract(contract_id: str, db: Session = Depends(get_db), me: Profile = Depends(get_current_user)):
    try:
        return to_contract_out(get_visible_contract(db, contract_id, me))
    except SERVICE_ERRORS as e:
        raise to_http(e)
