"""Typed CRUD adapter over the per-user document store.

Records live under ``users/<uid>``: the profile is the document itself,
vehicles and visits are sub-collections.  Each operation is atomic for
the single record it targets; there are no multi-record transactions and
concurrent writers follow last-write-wins.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from urllib.parse import quote

from chargelog._transport import Transport
from chargelog.exceptions import RecordNotFoundError, StoreUnavailableError

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RecordKind(StrEnum):
    PROFILE = "profile"
    VEHICLE = "vehicles"
    VISIT = "visits"


@dataclass(frozen=True)
class ListResult:
    """Outcome of a list operation.

    ``ok`` is ``False`` when the store could not be reached: the empty
    ``records`` then mean "unknown", not "no data exists".
    """

    records: list[dict[str, Any]] = field(default_factory=list)
    ok: bool = True

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def is_unknown(self) -> bool:
        return not self.ok


def _segment(value: str) -> str:
    if not value:
        raise ValueError("path segments must be non-empty")
    return quote(value, safe="")


def collection_path(user_id: str, kind: RecordKind) -> str:
    if kind is RecordKind.PROFILE:
        raise ValueError("profile is a single document, not a collection")
    return f"/users/{_segment(user_id)}/{kind.value}"


def document_path(user_id: str, kind: RecordKind, record_id: str) -> str:
    if kind is RecordKind.PROFILE:
        return f"/users/{_segment(user_id)}"
    return f"{collection_path(user_id, kind)}/{_segment(record_id)}"


class RemoteStore:
    """CRUD for profile, vehicle and visit records scoped by user id."""

    def __init__(
        self,
        transport: Transport,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._transport = transport
        self._clock = clock

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    async def create(
        self,
        user_id: str,
        kind: RecordKind,
        data: Mapping[str, Any],
        *,
        record_id: str | None = None,
    ) -> str:
        """Create a record and return its id.

        The store assigns the id unless *record_id* is given (imports keep
        their ids; the profile always lives at the user id).  ``createdAt``
        is stamped unless the payload already carries one.
        """
        document = {k: v for k, v in data.items() if k != "id"}
        if not document.get("createdAt"):
            document["createdAt"] = self._now_iso()

        if kind is RecordKind.PROFILE:
            record_id = user_id
        if record_id:
            await self._transport.request("PUT", document_path(user_id, kind, record_id), payload=document)
            return record_id

        response = await self._transport.request("POST", collection_path(user_id, kind), payload=document)
        new_id = response.get("id") if isinstance(response, dict) else None
        if not isinstance(new_id, str) or not new_id:
            raise StoreUnavailableError(
                f"Store did not return an id for new {kind.value} record",
                path=collection_path(user_id, kind),
            )
        _logger.debug("Created %s record %s", kind.value, new_id)
        return new_id

    async def read(self, user_id: str, kind: RecordKind, record_id: str) -> dict[str, Any]:
        """Return one record; raises :class:`RecordNotFoundError` when absent."""
        path = document_path(user_id, kind, record_id)
        response = await self._transport.request("GET", path)
        if not isinstance(response, dict):
            raise RecordNotFoundError(f"No document at {path}", path=path)
        return {**response, "id": response.get("id") or record_id}

    async def list(
        self,
        user_id: str,
        kind: RecordKind,
        order_by: str | None = None,
        *,
        descending: bool = True,
    ) -> ListResult:
        """Return all records of *kind*, ordered by *order_by*.

        Fails open: a transport failure yields ``ListResult(ok=False)``.
        """
        path = collection_path(user_id, kind)
        params: dict[str, str] = {}
        if order_by:
            params["orderBy"] = order_by
            params["direction"] = "desc" if descending else "asc"
        try:
            response = await self._transport.request("GET", path, params=params or None)
        except (StoreUnavailableError, RecordNotFoundError) as exc:
            _logger.warning("Listing %s failed: %s", kind.value, exc)
            return ListResult(ok=False)

        items: Any = response.get("documents") if isinstance(response, dict) else response
        if items is None:
            return ListResult()
        if not isinstance(items, list):
            _logger.warning("Listing %s returned %s, expected a list", kind.value, type(items).__name__)
            return ListResult(ok=False)
        return ListResult(records=[dict(item) for item in items if isinstance(item, dict)])

    async def update(
        self,
        user_id: str,
        kind: RecordKind,
        record_id: str,
        partial: Mapping[str, Any],
    ) -> None:
        """Merge *partial* into an existing record and stamp ``updatedAt``."""
        document = {k: v for k, v in partial.items() if k not in ("id", "createdAt")}
        document["updatedAt"] = self._now_iso()
        await self._transport.request("PATCH", document_path(user_id, kind, record_id), payload=document)

    async def delete(self, user_id: str, kind: RecordKind, record_id: str) -> None:
        """Delete a record; deleting an absent record succeeds."""
        try:
            await self._transport.request("DELETE", document_path(user_id, kind, record_id))
        except RecordNotFoundError:
            _logger.debug("Delete of absent %s record %s ignored", kind.value, record_id)
