"""Charging location models (read-only directory records)."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from chargelog._normalize import coerce_id, safe_float, safe_str
from chargelog.models._base import TrackerBaseModel


class Address(TrackerBaseModel):
    """Postal address of a charging location."""

    street: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None

    @field_validator("street", "city", "state", "country", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        return safe_str(value)


class Coordinates(TrackerBaseModel):
    """Latitude/longitude pair; either side may be missing in directory data."""

    latitude: float | None = Field(default=None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float | None = Field(default=None, validation_alias=AliasChoices("longitude", "lng", "lon"))

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_float(cls, value: Any) -> float | None:
        return safe_float(value)

    @property
    def is_complete(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class ChargingLocation(TrackerBaseModel):
    """A known charging location.

    Mapped from the ``allSites`` directory payload.  A visit keeps a
    denormalized copy of this record (its *location snapshot*) taken at
    the time the location was selected.
    """

    id: str | None = None
    """Directory identifier, when the directory provides one."""
    name: str
    address: Address = Field(default_factory=Address)
    coordinates: Coordinates | None = Field(
        default=None,
        validation_alias=AliasChoices("coordinates", "gps"),
        serialization_alias="coordinates",
    )
    """Position; the directory calls this ``gps``."""
    stall_count: int | None = None
    power_kilowatt: float | None = None
    status: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str | None:
        return coerce_id(value) or None

    @field_validator("address", mode="before")
    @classmethod
    def _none_address(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("stall_count", mode="before")
    @classmethod
    def _coerce_stalls(cls, value: Any) -> int | None:
        parsed = safe_float(value)
        return None if parsed is None else int(parsed)

    @field_validator("power_kilowatt", mode="before")
    @classmethod
    def _coerce_power(cls, value: Any) -> float | None:
        return safe_float(value)

    @property
    def latitude(self) -> float | None:
        return self.coordinates.latitude if self.coordinates is not None else None

    @property
    def longitude(self) -> float | None:
        return self.coordinates.longitude if self.coordinates is not None else None

    @property
    def has_coordinates(self) -> bool:
        return self.coordinates is not None and self.coordinates.is_complete

    @property
    def country(self) -> str | None:
        return self.address.country

    @property
    def display_name(self) -> str:
        """Label used as the default ``location_label`` of a visit."""
        label = self.name
        if self.address.city:
            label += f", {self.address.city}"
        if self.address.state:
            label += f", {self.address.state}"
        if self.address.country:
            label += f" ({self.address.country})"
        return label

    def to_document(self, *, exclude: set[str] | None = None) -> dict[str, Any]:
        # The directory id is part of the snapshot, unlike store record ids.
        return self.model_dump(mode="json", by_alias=True, exclude_none=True, exclude=exclude)
