"""Service-layer exceptions.

Routes translate these into HTTP responses; nothing here is fatal to the
process. Most subclass ValueError so callers that only know about
``ValueError`` (the usual service contract) keep working.
"""


class ContractNotFound(LookupError):
    pass


class ActorNotPermitted(PermissionError):
    pass


class AccountInactive(PermissionError):
    pass


class IllegalTransition(ValueError):
    """The contract is not in a state the requested action starts from."""

    def __init__(self, action: str, current_status: int):
        self.action = action
        self.current_status = current_status
        super().__init__(f"cannot {action} a contract in status {current_status}")


class TransitionValidationError(ValueError):
    """Required input (remarks, proof images) missing or malformed."""

    def __init__(self, message: str, fields: list[str] | None = None):
        self.fields = fields or []
        super().__init__(message)


class VicinityError(ValueError):
    def __init__(self, action: str, distance_km: float | None, threshold_m: float):
        self.action = action
        self.distance_km = distance_km
        self.threshold_m = threshold_m
        if distance_km is None:
            msg = f"{action}: location unavailable"
        else:
            msg = f"{action}: {round(distance_km * 1000)} m away, must be within {threshold_m:g} m"
        super().__init__(msg)


class TransitionConflict(ValueError):
    """The row changed status between read and conditional update."""


class TransitionPersistenceError(RuntimeError):
    pass


class RecordParseError(ValueError):
    """A backend row could not be mapped onto its record type."""


class BookingValidationError(ValueError):
    """Contract creation input rejected before anything is written."""

    def __init__(self, message: str, errors: dict[int, list[str]] | None = None):
        self.errors = errors or {}
        super().__init__(message)
