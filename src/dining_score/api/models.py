"""Pydantic models for API request payloads."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CreateSessionRequest(BaseModel):
    """Payload for starting a voting session."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    number_of_guests: Any = Field(alias="numberOfGuests")
    place_id: str | None = Field(default=None, alias="placeId")


class AddGuestRequest(BaseModel):
    """Payload for one guest's questionnaire answers."""

    model_config = ConfigDict(populate_by_name=True)

    meal: str = ""
    votes: dict[str, Any]
    name: str | None = None
    note: str | None = None
    photo_url: str | None = Field(default=None, alias="photoURL")
