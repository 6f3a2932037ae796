from sqlalchemy import String, Integer, DateTime, Text, Numeric
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from decimal import Decimal
from app.db.session import Base

class Contract(Base):
    __tablename__ = "contracts"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)  # tracking code, e.g. 20260314MKTPA1B2
    contract_status_id: Mapped[int] = mapped_column(Integer, index=True, default=1)  # see ContractStatus

    airline_id: Mapped[str] = mapped_column(String(36), index=True)
    delivery_id: Mapped[str | None] = mapped_column(String(36), index=True, nullable=True)

    owner_first_name: Mapped[str] = mapped_column(String(50), default="")
    owner_middle_initial: Mapped[str] = mapped_column(String(1), default="")
    owner_last_name: Mapped[str] = mapped_column(String(50), default="")
    owner_contact: Mapped[str] = mapped_column(String(20), default="")

    flight_number: Mapped[str] = mapped_column(String(8), default="")
    luggage_quantity: Mapped[int] = mapped_column(Integer, default=1)
    luggage_description: Mapped[str] = mapped_column(Text, default="")  # one line per item

    delivery_address: Mapped[str] = mapped_column(String(300), default="")
    address_line_1: Mapped[str] = mapped_column(String(200), default="")
    address_line_2: Mapped[str] = mapped_column(String(200), default="")

    # geo columns hold "POINT(lon lat)" text, optionally prefixed "SRID=4326;"
    pickup_location: Mapped[str] = mapped_column(String(300), default="")
    pickup_location_geo: Mapped[str | None] = mapped_column(String(120), nullable=True)
    current_location: Mapped[str | None] = mapped_column(String(300), nullable=True)
    current_location_geo: Mapped[str | None] = mapped_column(String(120), nullable=True)
    drop_off_location: Mapped[str] = mapped_column(String(300), default="")
    drop_off_location_geo: Mapped[str | None] = mapped_column(String(120), nullable=True)

    delivery_charge: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    delivery_surcharge: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    delivery_discount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)

    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    # storage object keys of proof images
    pickup_proof: Mapped[str | None] = mapped_column(String(512), nullable=True)
    passenger_id_proof: Mapped[str | None] = mapped_column(String(512), nullable=True)
    passenger_form_proof: Mapped[str | None] = mapped_column(String(512), nullable=True)
    delivery_proof: Mapped[str | None] = mapped_column(String(512), nullable=True)
    failure_proof: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    pickup_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)  # also set on failure
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def owner_full_name(self) -> str:
        parts = [self.owner_first_name, self.owner_middle_initial, self.owner_last_name]
        return " ".join(p for p in parts if p)
