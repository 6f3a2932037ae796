from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column
from app.db.session import Base

class Corporation(Base):
    __tablename__ = "corporations"
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    corporation_name: Mapped[str] = mapped_column(String(120), nullable=False)
