from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import get_lifecycle, require_roles
from app.api.errors import SERVICE_ERRORS, to_http
from app.api.v1.routes.contracts import apply_transition
from app.db.session import SessionLocal, get_db
from app.models.profile import Profile
from app.schemas.contract import ContractOut, LocationSampleIn, TransitionIn, VicinityOut
from app.services.contract_lifecycle import TRANSITIONS
from app.services.contract_service import get_visible_contract, list_contracts, to_contract_out
from app.services.location_forwarder import ContractLocationWriter, Position, count_in_transit

router = APIRouter(tags=["delivery"])

DELIVERY_ACTIONS = ("accept", "pickup", "deliver", "fail", "cancel")


@router.get("/delivery/contracts", response_model=list[ContractOut])
def delivery_contracts(status: list[int] | None = Query(default=None), q: str = "", limit: int = 200,
                       db: Session = Depends(get_db),
                       me: Profile = Depends(require_roles("delivery"))):
    """Contracts assigned to the caller plus the pending ones still open for acceptance."""
    rows = list_contracts(db, delivery_id=me.id, statuses=status, q=q, include_available=True, limit=limit)
    return [to_contract_out(c) for c in rows]


@router.post("/delivery/contracts/{contract_id}/{action}", response_model=ContractOut)
def contract_action(contract_id: str, action: str, body: TransitionIn,
                    db: Session = Depends(get_db),
                    me: Profile = Depends(require_roles("delivery"))):
    if action not in DELIVERY_ACTIONS:
        raise HTTPException(status_code=404, detail=f"unknown action: {action}")
    return apply_transition(db, contract_id, action, body, me)


@router.get("/delivery/contracts/{contract_id}/vicinity", response_model=VicinityOut)
def vicinity(contract_id: str, action: str, location: str | None = None,
             db: Session = Depends(get_db),
             me: Profile = Depends(require_roles("delivery"))):
    if action not in TRANSITIONS:
        raise HTTPException(status_code=400, detail=f"unknown action: {action}")
    try:
        c = get_visible_contract(db, contract_id, me)
    except SERVICE_ERRORS as e:
        raise to_http(e)
    decision = get_lifecycle().check_vicinity(c, action, location)
    if decision is None:
        return VicinityOut(action=action, enabled=False, permitted=True, distanceDisplay="", thresholdMeters=0)
    return VicinityOut(
        action=action,
        enabled=decision.enabled,
        permitted=decision.permitted,
        distanceKm=decision.distance_km,
        distanceDisplay=decision.distance_display,
        thresholdMeters=decision.threshold_m,
    )


@router.post("/delivery/location")
def push_location(body: LocationSampleIn, me: Profile = Depends(require_roles("delivery"))):
    writer = ContractLocationWriter(SessionLocal, me.id)
    try:
        updated = writer.write(Position(latitude=body.latitude, longitude=body.longitude), body.address)
    except SQLAlchemyError:
        raise HTTPException(status_code=503, detail="could not save location")
    return {"ok": True, "updated": updated}


@router.get("/delivery/tracking")
def tracking_state(db: Session = Depends(get_db), me: Profile = Depends(require_roles("delivery"))):
    n = count_in_transit(db, me.id)
    return {"tracking": n > 0, "inTransit": n}
