"""Visit models."""

from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from chargelog._normalize import coerce_id, parse_calendar_date, safe_float, safe_str
from chargelog.models._base import Timestamp, TrackerBaseModel
from chargelog.models.location import ChargingLocation

# Older exports (local-storage era) used different key names; accept both.
_LOCATION_LABEL_KEYS = AliasChoices("locationLabel", "location_label", "location")
_ENERGY_KEYS = AliasChoices("energyAddedKwh", "energy_added_kwh", "kwhAdded")
_SNAPSHOT_KEYS = AliasChoices("locationSnapshot", "location_snapshot", "supercharger")
_CREATED_KEYS = AliasChoices("createdAt", "created_at", "addedAt")


class Visit(TrackerBaseModel):
    """A recorded visit to a charging location.

    ``created_at`` is set once by the store; ``updated_at`` is stamped on
    every update and is absent on never-edited visits.
    """

    id: str = ""
    vehicle_id: str | None = None
    location_label: str = Field(validation_alias=_LOCATION_LABEL_KEYS, serialization_alias="locationLabel")
    visit_date: date
    energy_added_kwh: float | None = Field(
        default=None,
        ge=0,
        validation_alias=_ENERGY_KEYS,
        serialization_alias="energyAddedKwh",
    )
    notes: str | None = None
    location_snapshot: ChargingLocation | None = Field(
        default=None,
        validation_alias=_SNAPSHOT_KEYS,
        serialization_alias="locationSnapshot",
    )
    created_at: Timestamp = Field(default=None, validation_alias=_CREATED_KEYS, serialization_alias="createdAt")
    updated_at: Timestamp = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return coerce_id(value)

    @field_validator("vehicle_id", mode="before")
    @classmethod
    def _coerce_vehicle_id(cls, value: Any) -> str | None:
        return coerce_id(value) or None

    @field_validator("visit_date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> date | None:
        return parse_calendar_date(value)

    @field_validator("energy_added_kwh", mode="before")
    @classmethod
    def _coerce_energy(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("notes", mode="before")
    @classmethod
    def _coerce_notes(cls, value: Any) -> str | None:
        return safe_str(value)

    @property
    def country(self) -> str | None:
        if self.location_snapshot is None:
            return None
        return self.location_snapshot.country

    @property
    def has_coordinates(self) -> bool:
        return self.location_snapshot is not None and self.location_snapshot.has_coordinates


class VisitInput(TrackerBaseModel):
    """Fields accepted by add/update visit operations.

    All fields are optional: ``add_visit`` enforces the mandatory ones,
    ``update_visit`` treats absent fields as "unchanged".  Blank strings
    become ``None`` so they fail the mandatory-field check.
    """

    vehicle_id: str | None = None
    location_label: str | None = Field(
        default=None,
        validation_alias=_LOCATION_LABEL_KEYS,
        serialization_alias="locationLabel",
    )
    visit_date: date | None = None
    energy_added_kwh: float | None = Field(
        default=None,
        ge=0,
        validation_alias=_ENERGY_KEYS,
        serialization_alias="energyAddedKwh",
    )
    notes: str | None = None
    location_snapshot: ChargingLocation | None = Field(
        default=None,
        validation_alias=_SNAPSHOT_KEYS,
        serialization_alias="locationSnapshot",
    )

    @field_validator("vehicle_id", mode="before")
    @classmethod
    def _coerce_vehicle_id(cls, value: Any) -> str | None:
        return coerce_id(value) or None

    @field_validator("location_label", "notes", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("visit_date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> date | None:
        return parse_calendar_date(value)

    @field_validator("energy_added_kwh", mode="before")
    @classmethod
    def _coerce_energy(cls, value: Any) -> float | None:
        if isinstance(value, str) and value.strip() and safe_float(value) is None:
            raise ValueError(f"not a number: {value!r}")
        return safe_float(value)

    def to_patch(self) -> dict[str, Any]:
        """Camel-case document fragment containing only the fields the caller set.

        Explicitly cleared optionals (``notes=None``) are kept as ``null`` so
        an update can erase them.
        """
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)
