"""Vehicle models."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from chargelog._normalize import coerce_id, safe_str
from chargelog.models._base import Timestamp, TrackerBaseModel


class Vehicle(TrackerBaseModel):
    """A vehicle owned by the signed-in user.

    Visits reference vehicles by :attr:`id`; deleting a vehicle leaves
    those references dangling.
    """

    id: str = ""
    """Store-assigned identifier."""
    name: str = ""
    """User-defined name (e.g. ``"Daily driver"``)."""
    model: str = ""
    """Model description (e.g. ``"Model 3 Long Range"``)."""
    year: str | None = None
    color: str | None = None
    vin: str | None = None
    is_active: bool = True
    created_at: Timestamp = None
    updated_at: Timestamp = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return coerce_id(value)

    @field_validator("year", "color", "vin", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        return safe_str(value)

    @property
    def label(self) -> str:
        parts = [self.name or self.model or self.id]
        if self.name and self.model:
            parts.append(f"({self.model})")
        return " ".join(parts)


class VehicleInput(TrackerBaseModel):
    """Fields accepted by add/update vehicle operations.

    Every field is optional so the same model serves full and partial
    writes; required-field checks happen in the tracker.
    """

    name: str | None = None
    model: str | None = None
    year: str | None = None
    color: str | None = None
    vin: str | None = None
    is_active: bool | None = Field(default=None)

    @field_validator("name", "model", "year", "color", "vin", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str | None:
        if value is None:
            return None
        return str(value).strip()
