from fastapi import HTTPException

from app.core.errors import (
    AccountInactive,
    ActorNotPermitted,
    BookingValidationError,
    ContractNotFound,
    IllegalTransition,
    TransitionConflict,
    TransitionPersistenceError,
    TransitionValidationError,
    VicinityError,
)


def to_http(e: Exception) -> HTTPException:
    """Map a service-layer exception onto the response the client sees."""
    if isinstance(e, ContractNotFound):
        return HTTPException(status_code=404, detail="contract not found")
    if isinstance(e, LookupError):
        return HTTPException(status_code=404, detail=str(e) or "not found")
    if isinstance(e, (ActorNotPermitted, AccountInactive)):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, (IllegalTransition, TransitionConflict)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, VicinityError):
        return HTTPException(status_code=422, detail={
            "message": str(e),
            "distanceKm": e.distance_km,
            "thresholdMeters": e.threshold_m,
        })
    if isinstance(e, TransitionValidationError):
        return HTTPException(status_code=422, detail={"message": str(e), "fields": e.fields})
    if isinstance(e, BookingValidationError):
        return HTTPException(status_code=422, detail={"message": str(e), "errors": e.errors})
    if isinstance(e, TransitionPersistenceError):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


# everything the service layer raises on purpose
SERVICE_ERRORS = (ValueError, LookupError, PermissionError, TransitionPersistenceError)
