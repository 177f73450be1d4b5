"""Booking models for vehicle service appointments."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class BookingStatus(str, Enum):
    """Where the vehicle is in the workshop."""

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class PaymentStatus(str, Enum):
    """Payment status."""

    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"


class PaymentMethod(str, Enum):
    """How the customer pays."""

    NOT_SELECTED = "Not Selected"
    COD = "COD"
    KHALTI = "Khalti"
    ESEWA = "eSewa"


class Coordinates(BaseModel):
    """A latitude/longitude pair in degrees."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class Booking(BaseModel):
    """
    Booking model.

    ``service_type``, ``bike_model`` and ``total_cost`` are snapshots taken at
    creation and are never re-synced from the service record.
    """

    id: Optional[str] = None
    customer_id: str = Field(..., description="User ID of the booking owner")
    customer_name: str = ""
    service_id: Optional[str] = None
    service_type: str
    bike_model: str
    date: datetime
    notes: str = ""

    # Pricing
    total_cost: float = Field(..., ge=0)
    requested_pickup_dropoff: bool = False
    pickup_address: str = ""
    dropoff_address: str = ""
    pickup_coordinates: Optional[Coordinates] = None
    dropoff_coordinates: Optional[Coordinates] = None
    pickup_dropoff_distance: float = Field(default=0, ge=0)
    pickup_dropoff_cost: float = Field(default=0, ge=0)
    discount_applied: bool = False
    discount_amount: float = Field(default=0, ge=0)
    final_amount: float = Field(..., ge=0)

    # Status
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: PaymentMethod = PaymentMethod.NOT_SELECTED
    is_paid: bool = False
    points_awarded: int = Field(default=0, ge=0)
    payment_reference: Optional[str] = None  # latest eSewa transaction_uuid

    review_submitted: bool = False
    archived_by_admin: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "customer_id": "uuid-here",
                "service_id": "uuid-here",
                "service_type": "Full Servicing",
                "bike_model": "Honda Shine 125",
                "date": "2026-03-05T10:00:00+00:00",
                "total_cost": 1000,
                "final_amount": 1000,
                "status": "Pending",
                "payment_status": "Pending",
            }
        }


class BookingCreate(BaseModel):
    """Booking creation request from a customer."""

    service_id: str = Field(..., min_length=1)
    bike_model: str = Field(..., min_length=1)
    date: datetime
    notes: Optional[str] = None
    requested_pickup_dropoff: bool = False
    pickup_address: Optional[str] = None
    dropoff_address: Optional[str] = None
    pickup_coordinates: Optional[Coordinates] = None
    dropoff_coordinates: Optional[Coordinates] = None

    @model_validator(mode="after")
    def check_pickup_details(self) -> "BookingCreate":
        if self.requested_pickup_dropoff and not all(
            [
                self.pickup_address,
                self.dropoff_address,
                self.pickup_coordinates,
                self.dropoff_coordinates,
            ]
        ):
            raise ValueError("Pickup/Dropoff details are incomplete.")
        return self


class BookingUpdate(BaseModel):
    """
    Partial booking update.

    Priced fields are only accepted while the booking is editable;
    status and payment fields are handled separately by the state machine.
    """

    service_id: Optional[str] = None
    bike_model: Optional[str] = None
    date: Optional[datetime] = None
    notes: Optional[str] = None
    requested_pickup_dropoff: Optional[bool] = None
    pickup_address: Optional[str] = None
    dropoff_address: Optional[str] = None
    pickup_coordinates: Optional[Coordinates] = None
    dropoff_coordinates: Optional[Coordinates] = None
    status: Optional[BookingStatus] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None

    def priced_fields(self) -> dict:
        """Fields that affect pricing or the booking content."""
        return self.model_dump(
            exclude_unset=True,
            exclude={"status", "payment_method", "payment_status"},
        )

    def has_state_fields(self) -> bool:
        return any(
            value is not None
            for value in (self.status, self.payment_method, self.payment_status)
        )


class AdminBookingUpdate(BaseModel):
    """Administrator update: status transition and/or cost override."""

    status: Optional[BookingStatus] = None
    total_cost: Optional[float] = Field(default=None, ge=0)
