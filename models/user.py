"""User models for customers and administrators."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class UserRole(str, Enum):
    """User roles."""

    NORMAL = "normal"
    ADMIN = "admin"


class User(BaseModel):
    """User model."""

    id: str
    full_name: str = ""
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    role: UserRole = UserRole.NORMAL
    loyalty_points: int = Field(default=0, ge=0)

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "id": "uuid-here",
                "full_name": "Sita Sharma",
                "email": "sita@example.com",
                "role": "normal",
                "loyalty_points": 120,
            }
        }

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value
