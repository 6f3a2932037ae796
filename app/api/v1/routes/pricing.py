from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.session import get_db
from app.models.profile import Profile
from app.schemas.pricing import FeeQuoteOut, PricingOut
from app.services.pricing_service import fetch_base_delivery_fee_for_address, load_pricing

router = APIRouter(tags=["pricing"])

@router.get("/pricing", response_model=list[PricingOut])
def list_pricing(db: Session = Depends(get_db), me: Profile = Depends(get_current_user)):
    return [PricingOut(id=p.id, city=p.city, price=float(p.price or 0), updated_at=p.updated_at) for p in load_pricing(db)]

@router.get("/pricing/quote", response_model=FeeQuoteOut)
def quote(address: str, db: Session = Depends(get_db), me: Profile = Depends(get_current_user)):
    q = fetch_base_delivery_fee_for_address(db, address)
    return FeeQuoteOut(fee=q.fee, status=q.status, city=q.city)
