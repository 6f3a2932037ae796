from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.core.errors import RecordParseError


class ContractRecord(BaseModel):
    """Typed view of a ``contracts`` row (ORM object or raw change-feed dict)."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    contract_status_id: int
    airline_id: str
    delivery_id: Optional[str] = None
    owner_first_name: str = ""
    owner_middle_initial: str = ""
    owner_last_name: str = ""
    owner_contact: str = ""
    flight_number: str = ""
    luggage_quantity: int = 1
    luggage_description: str = ""
    delivery_address: str = ""
    address_line_1: str = ""
    address_line_2: str = ""
    pickup_location: str = ""
    pickup_location_geo: Optional[str] = None
    current_location: Optional[str] = None
    current_location_geo: Optional[str] = None
    drop_off_location: str = ""
    drop_off_location_geo: Optional[str] = None
    delivery_charge: float = 0
    delivery_surcharge: float = 0
    delivery_discount: float = 0
    remarks: Optional[str] = None
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    pickup_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


def parse_contract_row(row) -> ContractRecord:
    try:
        if isinstance(row, dict):
            return ContractRecord.model_validate(row)
        return ContractRecord.model_validate(row, from_attributes=True)
    except ValidationError as e:
        raise RecordParseError(f"contract row could not be parsed: {e.error_count()} error(s)") from e


class ContractOut(ContractRecord):
    status_name: str = ""
    amount_due: float = 0
    pickup_proof_url: Optional[str] = None
    passenger_id_proof_url: Optional[str] = None
    passenger_form_proof_url: Optional[str] = None
    delivery_proof_url: Optional[str] = None
    failure_proof_url: Optional[str] = None


class ContractIn(BaseModel):
    firstName: str
    middleInitial: str = ""
    lastName: str
    contact: str
    flightNumber: str
    quantity: int = 1
    itemDescriptions: List[str] = []


class DropOffIn(BaseModel):
    location: str
    lat: Optional[float] = None
    lng: Optional[float] = None


class BookingCreate(BaseModel):
    """One airline booking submission: up to MAX_CONTRACTS_PER_BOOKING passengers sharing one drop-off."""
    contracts: List[ContractIn]
    terminal: str
    pickupLocation: str = ""
    province: str = ""
    cityMunicipality: str = ""
    barangay: str = ""
    postalCode: str = ""
    street: str = ""
    villageBuilding: str = ""
    roomUnitNo: str = ""
    landmarkEntrance: str = ""
    dropOff: DropOffIn


class BookingOut(BaseModel):
    contracts: List[ContractOut]
    baseFee: float
    pricingStatus: str
    totalFee: float


class TransitionIn(BaseModel):
    remarks: Optional[str] = None
    # base64 image payloads keyed by proof kind (pickup_proof, passenger_id_proof, ...)
    images: Dict[str, str] = Field(default_factory=dict)
    # device position as "POINT(lon lat)"; required when vicinity gating is on
    location: Optional[str] = None


class VicinityOut(BaseModel):
    action: str
    enabled: bool
    permitted: bool
    distanceKm: Optional[float] = None
    distanceDisplay: str
    thresholdMeters: float


class LocationSampleIn(BaseModel):
    latitude: float
    longitude: float
    address: Optional[str] = None


class AmountAdjustIn(BaseModel):
    surcharge: Optional[float] = None  # pesos added to the delivery charge
    discount: Optional[float] = None  # percent taken off charge + surcharge
