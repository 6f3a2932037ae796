from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class PricingOut(BaseModel):
    id: int
    city: str
    price: float
    updated_at: Optional[datetime] = None


class PricingIn(BaseModel):
    city: str
    price: float


class FeeQuoteOut(BaseModel):
    fee: float
    status: str
    city: Optional[str] = None
