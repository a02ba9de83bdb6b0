"""Export and import of a user's complete visit history."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from chargelog._constants import (
    EXPORT_FILENAME_PREFIX,
    EXPORT_FORMAT_VERSION,
    VEHICLE_ORDER_FIELD,
    VISIT_ORDER_FIELD,
)
from chargelog._normalize import coerce_id
from chargelog.exceptions import ChargelogError, InvalidFormatError, NotAuthenticatedError, StoreUnavailableError
from chargelog.models.profile import Identity
from chargelog.models.snapshot import ExportSnapshot
from chargelog.models.vehicle import Vehicle
from chargelog.models.visit import Visit
from chargelog.store import RecordKind, RemoteStore
from chargelog.tracker import TrackerState

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ImportStrategy(StrEnum):
    MERGE = "merge"
    REPLACE = "replace"


@dataclass
class ImportReport:
    """Counters for one import run."""

    strategy: ImportStrategy
    received: int = 0
    imported: int = 0
    skipped_duplicates: int = 0
    invalid: int = 0
    failed: int = 0
    removed: int = 0
    vehicles_imported: int = 0

    @property
    def ok(self) -> bool:
        return self.failed == 0


def parse_snapshot(payload: Any) -> ExportSnapshot:
    """Validate the outer structure of an import payload.

    Raises
    ------
    InvalidFormatError
        If *payload* is not an object, ``visits`` is missing or not a list,
        or ``vehicles`` is present but not a list.
    """
    if not isinstance(payload, dict):
        raise InvalidFormatError("Invalid file format: expected a JSON object")
    if not isinstance(payload.get("visits"), list):
        raise InvalidFormatError("Invalid file format: 'visits' must be a list")
    vehicles = payload.get("vehicles")
    if vehicles is not None and not isinstance(vehicles, list):
        raise InvalidFormatError("Invalid file format: 'vehicles' must be a list")

    user = payload.get("user")
    try:
        return ExportSnapshot.model_validate(
            {
                "version": str(payload.get("version") or ""),
                "exportDate": payload.get("exportDate"),
                "user": user if isinstance(user, dict) else {},
                "vehicles": vehicles or [],
                "visits": payload["visits"],
            }
        )
    except ValidationError as exc:
        raise InvalidFormatError(f"Invalid file format: {exc.error_count()} malformed entries") from exc


def load_snapshot_file(path: str | Path) -> ExportSnapshot:
    """Read and validate an export file; nothing is written on failure."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise InvalidFormatError(f"Could not read {path}: {exc}") from exc
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidFormatError(f"Invalid file format: {exc}") from exc
    return parse_snapshot(payload)


def _document_with_id(model: Vehicle | Visit) -> dict[str, Any]:
    return {"id": model.id, **model.to_document()}


async def _stored_ids(store: RemoteStore, identity: Identity, kind: RecordKind, order_by: str) -> set[str]:
    result = await store.list(identity.uid, kind, order_by)
    if result.is_unknown:
        raise StoreUnavailableError(f"Could not read stored {kind.value} before import")
    return {record_id for record_id in (coerce_id(record.get("id")) for record in result) if record_id}


class ImportExportEngine:
    """Moves the signed-in user's data between the store and export files."""

    def __init__(
        self,
        tracker: TrackerState,
        *,
        version: str = EXPORT_FORMAT_VERSION,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._tracker = tracker
        self._version = version
        self._clock = clock

    def _identity(self) -> Identity:
        identity = self._tracker.identity
        if identity is None:
            raise NotAuthenticatedError("Sign in to export or import visits")
        return identity

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def export_snapshot(self) -> ExportSnapshot:
        """Build a snapshot from fresh, unfiltered store lists.

        Raises :class:`StoreUnavailableError` instead of exporting an empty
        list when either load fails.
        """
        identity = self._identity()
        store = self._tracker.store
        vehicles = await store.list(identity.uid, RecordKind.VEHICLE, VEHICLE_ORDER_FIELD)
        visits = await store.list(identity.uid, RecordKind.VISIT, VISIT_ORDER_FIELD)
        if vehicles.is_unknown or visits.is_unknown:
            raise StoreUnavailableError("Could not load data for export")

        exported_vehicles = []
        for record in vehicles:
            try:
                exported_vehicles.append(_document_with_id(Vehicle.model_validate(record)))
            except ValidationError as exc:
                _logger.warning("Leaving malformed vehicle id=%s out of export: %s", record.get("id"), exc)
        exported_visits = []
        for record in visits:
            try:
                exported_visits.append(_document_with_id(Visit.model_validate(record)))
            except ValidationError as exc:
                _logger.warning("Leaving malformed visit id=%s out of export: %s", record.get("id"), exc)

        return ExportSnapshot(
            version=self._version,
            export_date=self._clock(),
            user=identity.public_attributes(),
            vehicles=exported_vehicles,
            visits=exported_visits,
        )

    async def export_json(self) -> str:
        snapshot = await self.export_snapshot()
        return json.dumps(snapshot.to_document(), indent=2, ensure_ascii=False)

    def export_filename(self) -> str:
        return f"{EXPORT_FILENAME_PREFIX}-{self._clock().date().isoformat()}.json"

    async def write_export(self, directory: str | Path = ".") -> Path:
        """Write ``charging-visits-YYYY-MM-DD.json`` into *directory*."""
        text = await self.export_json()
        target = Path(directory) / self.export_filename()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
        _logger.info("Exported visits to %s", target)
        return target

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def import_file(self, path: str | Path, strategy: ImportStrategy) -> ImportReport:
        snapshot = load_snapshot_file(path)
        return await self.import_snapshot(snapshot, strategy)

    async def import_snapshot(self, snapshot: ExportSnapshot, strategy: ImportStrategy) -> ImportReport:
        """Write *snapshot* into the store.

        MERGE inserts only visits whose id is not already stored.  REPLACE
        upserts every incoming visit and then deletes the stored visits the
        file does not contain.  Vehicles not yet stored are created with
        their ids under both strategies.  Each write is independent:
        failures are counted and the import carries on.

        Existing ids come from fresh store lists, never from the loaded
        view; :class:`StoreUnavailableError` is raised before any write
        when either list cannot be read.
        """
        identity = self._identity()
        store = self._tracker.store
        stored_vehicle_ids = await _stored_ids(store, identity, RecordKind.VEHICLE, VEHICLE_ORDER_FIELD)
        local_ids = await _stored_ids(store, identity, RecordKind.VISIT, VISIT_ORDER_FIELD)
        report = ImportReport(strategy=strategy, received=len(snapshot.visits))

        await self._import_vehicles(identity, snapshot, report, stored_vehicle_ids)

        incoming_ids: set[str] = set()
        for record in snapshot.visits:
            try:
                visit = Visit.model_validate(record)
            except ValidationError as exc:
                report.invalid += 1
                _logger.warning("Skipping invalid visit id=%s in import: %s", record.get("id"), exc)
                continue

            if visit.id:
                if visit.id in incoming_ids:
                    report.skipped_duplicates += 1
                    continue
                incoming_ids.add(visit.id)
            if strategy is ImportStrategy.MERGE and visit.id in local_ids:
                report.skipped_duplicates += 1
                continue

            try:
                await self._tracker.store.create(
                    identity.uid,
                    RecordKind.VISIT,
                    visit.to_document(),
                    record_id=visit.id or None,
                )
            except ChargelogError as exc:
                report.failed += 1
                _logger.warning("Importing visit id=%s failed: %s", visit.id, exc)
                continue
            report.imported += 1

        if strategy is ImportStrategy.REPLACE:
            for visit_id in sorted(local_ids - incoming_ids):
                try:
                    await self._tracker.store.delete(identity.uid, RecordKind.VISIT, visit_id)
                except ChargelogError as exc:
                    report.failed += 1
                    _logger.warning("Removing visit %s during replace failed: %s", visit_id, exc)
                    continue
                report.removed += 1

        _logger.info(
            "Import (%s) finished: imported=%d skipped=%d invalid=%d failed=%d removed=%d",
            strategy.value,
            report.imported,
            report.skipped_duplicates,
            report.invalid,
            report.failed,
            report.removed,
        )
        await self._tracker.refresh()
        return report

    async def _import_vehicles(
        self,
        identity: Identity,
        snapshot: ExportSnapshot,
        report: ImportReport,
        local_ids: set[str],
    ) -> None:
        for record in snapshot.vehicles:
            try:
                vehicle = Vehicle.model_validate(record)
            except ValidationError as exc:
                _logger.warning("Skipping invalid vehicle id=%s in import: %s", record.get("id"), exc)
                continue
            if vehicle.id and vehicle.id in local_ids:
                continue
            try:
                await self._tracker.store.create(
                    identity.uid,
                    RecordKind.VEHICLE,
                    vehicle.to_document(),
                    record_id=vehicle.id or None,
                )
            except ChargelogError as exc:
                report.failed += 1
                _logger.warning("Importing vehicle id=%s failed: %s", vehicle.id, exc)
                continue
            if vehicle.id:
                local_ids.add(vehicle.id)
            report.vehicles_imported += 1
