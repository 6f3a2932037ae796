from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import require_roles
from app.api.errors import SERVICE_ERRORS, to_http
from app.api.v1.routes.contracts import apply_transition
from app.db.session import get_db
from app.models.profile import Profile
from app.schemas.contract import BookingCreate, BookingOut, ContractOut, TransitionIn
from app.services.contract_service import create_booking, list_contracts, to_contract_out
from app.services.pricing_service import calculate_total_delivery_fee

router = APIRouter(tags=["airline"])


@router.post("/airline/contracts", response_model=BookingOut)
def create_contracts(body: BookingCreate, db: Session = Depends(get_db),
                     me: Profile = Depends(require_roles("airline"))):
    try:
        contracts, base_fee, status = create_booking(db, me, body)
    except SERVICE_ERRORS as e:
        raise to_http(e)
    return BookingOut(
        contracts=[to_contract_out(c) for c in contracts],
        baseFee=base_fee,
        pricingStatus=status,
        totalFee=calculate_total_delivery_fee([c.luggage_quantity for c in contracts], base_fee),
    )


@router.get("/airline/contracts", response_model=list[ContractOut])
def my_contracts(status: list[int] | None = Query(default=None), q: str = "", limit: int = 200,
                 db: Session = Depends(get_db),
                 me: Profile = Depends(require_roles("airline"))):
    return [to_contract_out(c) for c in list_contracts(db, airline_id=me.id, statuses=status, q=q, limit=limit)]


@router.post("/airline/contracts/{contract_id}/cancel", response_model=ContractOut)
def cancel_contract(contract_id: str, body: TransitionIn, db: Session = Depends(get_db),
                    me: Profile = Depends(require_roles("airline"))):
    return apply_transition(db, contract_id, "cancel", body, me)
