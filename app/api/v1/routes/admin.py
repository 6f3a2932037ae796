from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import require_roles
from app.api.errors import SERVICE_ERRORS, to_http
from app.db.session import get_db
from app.models.profile import Profile
from app.schemas.contract import AmountAdjustIn, ContractOut
from app.schemas.pricing import PricingIn, PricingOut
from app.schemas.profile import AdminProfileCreate, AdminProfilePatch, ProfileOut
from app.services import pricing_service, profile_service
from app.services.audit_service import list_audit_logs, log_audit
from app.services.contract_service import adjust_amounts, list_contracts, to_contract_out, transaction_summary

router = APIRouter(tags=["admin"])

@router.get("/admin/profiles")
def list_profiles(role: str = "", status: str = "", q: str = "", limit: int = 50, offset: int = 0,
                  db: Session = Depends(get_db),
                  me: Profile = Depends(require_roles("admin"))):
    total, rows = profile_service.list_profiles(db, role=role, status=status, q=q, limit=limit, offset=offset)
    return {"total": total, "items": [profile_service.to_profile_out(p) for p in rows]}

@router.post("/admin/profiles", status_code=201)
def create_profile(body: AdminProfileCreate, db: Session = Depends(get_db),
                   me: Profile = Depends(require_roles("admin"))):
    try:
        p, temporary_password = profile_service.admin_create_profile(db, me, body)
    except SERVICE_ERRORS as e:
        raise to_http(e)
    return {"profile": profile_service.to_profile_out(p), "temporaryPassword": temporary_password}

@router.patch("/admin/profiles/{profile_id}", response_model=ProfileOut)
def update_profile(profile_id: str, body: AdminProfilePatch, db: Session = Depends(get_db),
                   me: Profile = Depends(require_roles("admin"))):
    if profile_id == me.id and body.role not in (None, "admin"):
        raise HTTPException(status_code=400, detail="cannot change your own role")
    try:
        p = profile_service.admin_update_profile(db, me, profile_id, body)
    except SERVICE_ERRORS as e:
        raise to_http(e)
    return profile_service.to_profile_out(p)

@router.get("/admin/contracts", response_model=list[ContractOut])
def all_contracts(status: list[int] | None = Query(default=None), q: str = "",
                  airlineId: str = "", deliveryId: str = "", limit: int = 200,
                  db: Session = Depends(get_db),
                  me: Profile = Depends(require_roles("admin"))):
    rows = list_contracts(db, airline_id=airlineId, delivery_id=deliveryId, statuses=status, q=q, limit=limit)
    return [to_contract_out(c) for c in rows]

@router.patch("/admin/contracts/{contract_id}/amounts", response_model=ContractOut)
def adjust_contract_amounts(contract_id: str, body: AmountAdjustIn, db: Session = Depends(get_db),
                            me: Profile = Depends(require_roles("admin"))):
    try:
        c = adjust_amounts(db, me, contract_id, surcharge=body.surcharge, discount=body.discount)
    except SERVICE_ERRORS as e:
        raise to_http(e)
    return to_contract_out(c)

@router.get("/admin/transactions/summary")
def transactions_summary(airlineId: str = "", since: datetime | None = None, until: datetime | None = None,
                         db: Session = Depends(get_db),
                         me: Profile = Depends(require_roles("admin"))):
    """Delivered and failed contracts with their billing totals."""
    return transaction_summary(db, airline_id=airlineId, since=since, until=until)

@router.get("/admin/audit-logs")
def audit_logs(entityType: str = "", entityId: str = "", limit: int = 500,
               db: Session = Depends(get_db),
               me: Profile = Depends(require_roles("admin"))):
    return {"items": list_audit_logs(db, entity_type=entityType, entity_id=entityId, limit=limit)}

def _rate_out(p) -> PricingOut:
    return PricingOut(id=p.id, city=p.city, price=float(p.price or 0), updated_at=p.updated_at)

@router.post("/admin/pricing", response_model=PricingOut)
def add_rate(body: PricingIn, db: Session = Depends(get_db), me: Profile = Depends(require_roles("admin"))):
    try:
        row = pricing_service.add_rate(db, body.city, body.price)
    except SERVICE_ERRORS as e:
        raise to_http(e)
    log_audit(db, me.id, "pricing.create", "pricing", str(row.id), {"city": row.city, "price": float(row.price)})
    return _rate_out(row)

@router.patch("/admin/pricing/{rate_id}", response_model=PricingOut)
def update_rate(rate_id: int, body: PricingIn, db: Session = Depends(get_db),
                me: Profile = Depends(require_roles("admin"))):
    try:
        row = pricing_service.update_rate(db, rate_id, body.city, body.price)
    except SERVICE_ERRORS as e:
        raise to_http(e)
    log_audit(db, me.id, "pricing.update", "pricing", str(row.id), {"city": row.city, "price": float(row.price)})
    return _rate_out(row)

@router.delete("/admin/pricing/{rate_id}")
def delete_rate(rate_id: int, db: Session = Depends(get_db), me: Profile = Depends(require_roles("admin"))):
    try:
        pricing_service.delete_rate(db, rate_id)
    except SERVICE_ERRORS as e:
        raise to_http(e)
    log_audit(db, me.id, "pricing.delete", "pricing", str(rate_id))
    return {"ok": True}
