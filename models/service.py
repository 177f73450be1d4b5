"""Service models for the workshop's service catalogue."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from utils.constants import MAX_RATING, MAX_REVIEW_COMMENT_LENGTH, MIN_RATING


class ServiceReview(BaseModel):
    """A customer's review of a service, left after a completed booking."""

    user_id: str
    name: str = ""
    rating: int = Field(..., ge=MIN_RATING, le=MAX_RATING)
    comment: str = Field(default="", max_length=MAX_REVIEW_COMMENT_LENGTH)
    booking_id: Optional[str] = None
    created_at: Optional[datetime] = None


class Service(BaseModel):
    """Service model."""

    id: Optional[str] = None
    name: str
    description: str = ""
    price: float = Field(..., ge=0, description="Price in NPR")
    duration: Optional[str] = None
    image: Optional[str] = None
    reviews: List[ServiceReview] = Field(default_factory=list)
    rating: float = Field(default=0, ge=0, le=MAX_RATING)
    num_reviews: int = Field(default=0, ge=0)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Full Servicing",
                "description": "Engine oil, filters, chain and brake check",
                "price": 1000,
                "duration": "3 hours",
            }
        }

    def with_review(self, review: ServiceReview) -> "Service":
        """Return a copy with ``review`` appended and the rating recomputed."""
        reviews = [*self.reviews, review]
        rating = sum(r.rating for r in reviews) / len(reviews)
        return self.model_copy(
            update={
                "reviews": reviews,
                "num_reviews": len(reviews),
                "rating": round(rating, 2),
            }
        )
