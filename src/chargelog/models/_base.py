"""Base model for chargelog records.

Every stored record inherits from :class:`TrackerBaseModel` which provides:

* ``alias_generator=to_camel`` so camelCase document keys map
  automatically to snake_case fields.
* ``to_document()`` which dumps the camelCase JSON form written to the
  document store (without the store-owned ``id``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

from chargelog._normalize import parse_timestamp

Timestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces ISO strings and epoch numbers to UTC datetimes."""


class TrackerBaseModel(BaseModel):
    """Base for records exchanged with the document store."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )

    def to_document(self, *, exclude: set[str] | None = None) -> dict[str, Any]:
        """Return the JSON-ready camelCase document for this record.

        ``id`` is never part of the document body; the store keys records by path.
        """
        excluded = {"id"} | (exclude or set())
        return self.model_dump(mode="json", by_alias=True, exclude_none=True, exclude=excluded)
