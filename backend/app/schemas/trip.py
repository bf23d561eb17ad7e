from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GenerationRequest(BaseModel):
    """A validated itinerary request. Build through ``validate_generation_request``."""

    budget: int | float
    days: int
    interests: str
    subject_id: str

    model_config = ConfigDict(frozen=True)


class GenerationResult(BaseModel):
    budget: int | float
    days: int
    interests: str
    itinerary: str
    created_at: datetime = Field(alias="createdAt")
    uid: str

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_request(cls, request: GenerationRequest, itinerary: str, created_at: datetime) -> "GenerationResult":
        return cls(
            budget=request.budget,
            days=request.days,
            interests=request.interests,
            itinerary=itinerary,
            created_at=created_at,
            uid=request.subject_id,
        )


class Trip(BaseModel):
    """A persisted itinerary, stored under ``users/{uid}/trips/{id}``."""

    id: str | None = None
    budget: int | float
    days: int
    interests: str
    itinerary: str
    created_at: datetime = Field(alias="createdAt")
    uid: str

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are UTC, as the document store writes them.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
