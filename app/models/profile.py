from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(20), index=True)  # admin, airline, delivery
    status: Mapped[str] = mapped_column(String(20), index=True, default="pending")  # active, offline, pending, deactivated
    verify_status: Mapped[str] = mapped_column(String(20), default="unverified")  # verified, unverified, pending

    first_name: Mapped[str] = mapped_column(String(50), default="")
    middle_initial: Mapped[str] = mapped_column(String(1), default="")
    last_name: Mapped[str] = mapped_column(String(50), default="")
    suffix: Mapped[str] = mapped_column(String(10), default="")
    contact_number: Mapped[str] = mapped_column(String(20), default="")
    emergency_contact_name: Mapped[str] = mapped_column(String(120), default="")
    emergency_contact_number: Mapped[str] = mapped_column(String(20), default="")

    corporation_id: Mapped[str | None] = mapped_column(String(36), index=True, nullable=True)  # airline staff only
    pfp_id: Mapped[str | None] = mapped_column(String(512), nullable=True)  # storage key of profile picture

    last_sign_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_initial, self.last_name, self.suffix]
        return " ".join(p for p in parts if p)
