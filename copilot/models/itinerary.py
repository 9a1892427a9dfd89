"""Itinerary data model"""

from datetime import date
from pydantic import BaseModel, ConfigDict, Field, model_validator


class Itinerary(BaseModel):
    """User-declared travel window (at most one per user)"""

    model_config = ConfigDict(frozen=True)

    location: str = Field(..., min_length=1, description="Free-text place, e.g. 'Osaka, JP'")
    start_date: date = Field(..., description="First day of travel (inclusive)")
    end_date: date = Field(..., description="Last day of travel (inclusive)")

    @model_validator(mode="after")
    def check_window(self) -> "Itinerary":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self
