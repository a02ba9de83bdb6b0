"""Export/import snapshot model."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from chargelog.models._base import Timestamp, TrackerBaseModel


class ExportSnapshot(TrackerBaseModel):
    """The full dataset of one user as written to an export file.

    ``vehicles`` and ``visits`` stay raw dicts here: an import validates
    each record individually so one malformed entry cannot reject the
    whole file.
    """

    version: str = ""
    export_date: Timestamp = None
    user: dict[str, Any] = Field(default_factory=dict)
    vehicles: list[dict[str, Any]] = Field(default_factory=list)
    visits: list[dict[str, Any]] = Field(default_factory=list)

    def to_document(self, *, exclude: set[str] | None = None) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)
