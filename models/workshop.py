"""Workshop model (one per deployment)."""

from typing import Optional

from pydantic import BaseModel, Field


class Workshop(BaseModel):
    """Workshop profile holding the pickup/dropoff rate."""

    id: Optional[str] = None
    owner_name: str = "Admin"
    workshop_name: str = "FixHub Nepal"
    email: str = "admin@fixhub.com"
    phone: str = ""
    address: str = ""
    offer_pickup_dropoff: bool = True
    pickup_dropoff_charge_per_km: float = Field(default=50, ge=0)
