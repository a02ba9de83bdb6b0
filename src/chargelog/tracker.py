"""Reconciled view of the signed-in user's vehicles and visits.

Every mutation is written through :class:`~chargelog.store.RemoteStore`
and followed by a reload of the affected list; local state is never
patched optimistically.  Loads are tagged with the identity epoch and the
vehicle filter they were issued for, so a slow, superseded load can never
overwrite a newer view or leak into another identity's view.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from chargelog._cache import DatasetCache
from chargelog._constants import UNASSIGNED_VEHICLE_LABEL, VEHICLE_ORDER_FIELD, VISIT_ORDER_FIELD
from chargelog.exceptions import NotAuthenticatedError, RecordNotFoundError, TrackerValidationError
from chargelog.models.profile import Identity
from chargelog.models.vehicle import Vehicle, VehicleInput
from chargelog.models.visit import Visit, VisitInput
from chargelog.projections.route import RouteProjection, project_route
from chargelog.projections.stats import VisitStats, compute_stats
from chargelog.session import SessionChange
from chargelog.store import RecordKind, RemoteStore

_logger = logging.getLogger(__name__)

TInput = TypeVar("TInput", bound=BaseModel)
TRecord = TypeVar("TRecord", bound=BaseModel)


class LoadStatus(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    CACHED = "cached"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class _LoadTicket:
    epoch: int
    generation: int
    vehicle_filter: str | None = None


def _validate_input(model: type[TInput], data: Mapping[str, Any] | TInput) -> TInput:
    """Parse user input, turning pydantic errors into :class:`TrackerValidationError`."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(dict(data))
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise TrackerValidationError(f"Invalid {field or 'input'}: {first.get('msg', '')}", field=field) from exc


def _parse_records(model: type[TRecord], records: Iterable[dict[str, Any]]) -> list[TRecord]:
    parsed: list[TRecord] = []
    for record in records:
        try:
            parsed.append(model.model_validate(record))
        except ValidationError as exc:
            _logger.warning("Skipping malformed %s record id=%s: %s", model.__name__, record.get("id"), exc)
    return parsed


class TrackerState:
    """The signed-in user's vehicles, visits, vehicle filter and edit markers.

    Usage::

        tracker = TrackerState(store)
        await tracker.activate(identity)
        await tracker.add_visit({"location_label": "Paris", "visit_date": "2024-05-01"})
        tracker.stats()
    """

    def __init__(self, store: RemoteStore, *, cache: DatasetCache | None = None) -> None:
        self._store = store
        self._cache = cache if cache is not None else DatasetCache()
        self._identity: Identity | None = None
        self._epoch = 0
        self._vehicles: list[Vehicle] = []
        self._all_visits: list[Visit] = []
        self._vehicle_filter: str | None = None
        self._editing_visit_id: str | None = None
        self._editing_vehicle_id: str | None = None
        self.vehicles_status = LoadStatus.IDLE
        self.visits_status = LoadStatus.IDLE
        self._vehicle_generation = 0
        self._visit_generation = 0
        self._applied_vehicle_generation = 0
        self._applied_visit_generation = 0
        self._listeners: list[Callable[[TrackerState], None]] = []

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    @property
    def store(self) -> RemoteStore:
        return self._store

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def vehicles(self) -> list[Vehicle]:
        return list(self._vehicles)

    @property
    def all_visits(self) -> list[Visit]:
        """Every loaded visit, regardless of the vehicle filter."""
        return list(self._all_visits)

    @property
    def visits(self) -> list[Visit]:
        """Visits shown for the active vehicle filter."""
        if self._vehicle_filter is None:
            return list(self._all_visits)
        return [visit for visit in self._all_visits if visit.vehicle_id == self._vehicle_filter]

    @property
    def vehicle_filter(self) -> str | None:
        return self._vehicle_filter

    @property
    def editing_visit_id(self) -> str | None:
        return self._editing_visit_id

    @property
    def editing_vehicle_id(self) -> str | None:
        return self._editing_vehicle_id

    def get_visit(self, visit_id: str) -> Visit | None:
        return next((visit for visit in self._all_visits if visit.id == visit_id), None)

    def get_vehicle(self, vehicle_id: str) -> Vehicle | None:
        return next((vehicle for vehicle in self._vehicles if vehicle.id == vehicle_id), None)

    def vehicle_for(self, visit: Visit) -> Vehicle | None:
        """The vehicle a visit references, or ``None`` when unassigned or deleted."""
        if visit.vehicle_id is None:
            return None
        return self.get_vehicle(visit.vehicle_id)

    def vehicle_label(self, visit: Visit) -> str:
        vehicle = self.vehicle_for(visit)
        return vehicle.label if vehicle is not None else UNASSIGNED_VEHICLE_LABEL

    def stats(self) -> VisitStats:
        return compute_stats(self.visits)

    def route(self) -> RouteProjection:
        return project_route(self.visits)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, callback: Callable[[TrackerState], None]) -> Callable[[], None]:
        """Call *callback* after every view change; returns an unsubscribe callable."""
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception:
                _logger.debug("Tracker listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Identity lifecycle
    # ------------------------------------------------------------------

    def _require_identity(self) -> Identity:
        if self._identity is None:
            raise NotAuthenticatedError("Sign in to manage vehicles and visits")
        return self._identity

    async def handle_session_change(self, change: SessionChange) -> None:
        if change.identity is None:
            self.deactivate()
        else:
            await self.activate(change.identity)

    async def activate(self, identity: Identity) -> None:
        """Switch the view to *identity* and load its data."""
        same_user = self._identity is not None and self._identity.uid == identity.uid
        self._identity = identity
        if not same_user:
            self._epoch += 1
            self._reset_view()
            cached = self._cache.get(identity.uid)
            if cached is not None:
                self._vehicles = _parse_records(Vehicle, cached.vehicles)
                self._all_visits = _parse_records(Visit, cached.visits)
                self.vehicles_status = LoadStatus.CACHED
                self.visits_status = LoadStatus.CACHED
            self._notify()
        await self.refresh()

    def deactivate(self) -> None:
        """Forget the current identity; in-flight loads for it are dropped."""
        if self._identity is None:
            return
        _logger.debug("Deactivating tracker for uid=%s", self._identity.uid)
        self._identity = None
        self._epoch += 1
        self._reset_view()
        self._notify()

    def _reset_view(self) -> None:
        self._vehicles = []
        self._all_visits = []
        self._vehicle_filter = None
        self._editing_visit_id = None
        self._editing_vehicle_id = None
        self.vehicles_status = LoadStatus.IDLE
        self.visits_status = LoadStatus.IDLE

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """Reload vehicles and visits concurrently."""
        await asyncio.gather(self.load_vehicles(), self.load_visits())

    async def load_vehicles(self) -> bool:
        """Reload the vehicle list; returns ``False`` if the result was dropped or failed."""
        identity = self._require_identity()
        self._vehicle_generation += 1
        ticket = _LoadTicket(epoch=self._epoch, generation=self._vehicle_generation)
        self.vehicles_status = LoadStatus.LOADING

        result = await self._store.list(identity.uid, RecordKind.VEHICLE, VEHICLE_ORDER_FIELD)

        if ticket.epoch != self._epoch or ticket.generation <= self._applied_vehicle_generation:
            _logger.debug("Dropping stale vehicle load generation=%d", ticket.generation)
            return False
        self._applied_vehicle_generation = ticket.generation
        if not result.ok:
            self.vehicles_status = LoadStatus.FAILED
            self._notify()
            return False

        self._vehicles = _parse_records(Vehicle, result.records)
        self._cache.put_vehicles(identity.uid, result.records)
        self.vehicles_status = LoadStatus.LOADED
        self._notify()
        return True

    async def load_visits(self) -> bool:
        """Reload visits for the active filter; returns ``False`` if dropped or failed."""
        identity = self._require_identity()
        self._visit_generation += 1
        ticket = _LoadTicket(
            epoch=self._epoch,
            generation=self._visit_generation,
            vehicle_filter=self._vehicle_filter,
        )
        self.visits_status = LoadStatus.LOADING

        result = await self._store.list(identity.uid, RecordKind.VISIT, VISIT_ORDER_FIELD)

        if (
            ticket.epoch != self._epoch
            or ticket.vehicle_filter != self._vehicle_filter
            or ticket.generation <= self._applied_visit_generation
        ):
            _logger.debug(
                "Dropping stale visit load generation=%d filter=%s",
                ticket.generation,
                ticket.vehicle_filter,
            )
            return False
        self._applied_visit_generation = ticket.generation
        if not result.ok:
            self.visits_status = LoadStatus.FAILED
            self._notify()
            return False

        self._all_visits = _parse_records(Visit, result.records)
        self._cache.put_visits(identity.uid, result.records)
        self.visits_status = LoadStatus.LOADED
        self._notify()
        return True

    async def select_vehicle(self, vehicle_id: str | None) -> None:
        """Filter the visit view to one vehicle (``None`` shows all)."""
        self._require_identity()
        self._vehicle_filter = vehicle_id or None
        self._notify()
        await self.load_visits()

    # ------------------------------------------------------------------
    # Vehicles
    # ------------------------------------------------------------------

    async def add_vehicle(self, data: Mapping[str, Any] | VehicleInput) -> str:
        identity = self._require_identity()
        fields = _validate_input(VehicleInput, data)
        if not fields.name:
            raise TrackerValidationError("Vehicle name is required", field="name")
        document = {k: v for k, v in fields.model_dump(mode="json", by_alias=True).items() if v is not None}
        document.setdefault("isActive", True)

        vehicle_id = await self._store.create(identity.uid, RecordKind.VEHICLE, document)
        _logger.info("Added vehicle %s", vehicle_id)
        await self.load_vehicles()
        return vehicle_id

    async def update_vehicle(self, vehicle_id: str, data: Mapping[str, Any] | VehicleInput) -> None:
        identity = self._require_identity()
        fields = _validate_input(VehicleInput, data)
        patch = fields.model_dump(mode="json", by_alias=True, exclude_unset=True)
        if "name" in patch and not patch["name"]:
            raise TrackerValidationError("Vehicle name is required", field="name")

        try:
            await self._store.update(identity.uid, RecordKind.VEHICLE, vehicle_id, patch)
        except RecordNotFoundError:
            await self.load_vehicles()
            raise
        if self._editing_vehicle_id == vehicle_id:
            self._editing_vehicle_id = None
        await self.load_vehicles()

    async def delete_vehicle(self, vehicle_id: str) -> None:
        """Delete a vehicle; its visits keep their (now dangling) reference."""
        identity = self._require_identity()
        await self._store.delete(identity.uid, RecordKind.VEHICLE, vehicle_id)
        _logger.info("Deleted vehicle %s", vehicle_id)

        if self._editing_vehicle_id == vehicle_id:
            self._editing_vehicle_id = None
        if self._vehicle_filter == vehicle_id:
            self._vehicle_filter = None
            await asyncio.gather(self.load_vehicles(), self.load_visits())
            return
        await self.load_vehicles()

    def begin_edit_vehicle(self, vehicle_id: str) -> Vehicle:
        vehicle = self.get_vehicle(vehicle_id)
        if vehicle is None:
            raise RecordNotFoundError(f"Vehicle {vehicle_id} is not loaded", path=vehicle_id)
        self._editing_vehicle_id = vehicle_id
        self._notify()
        return vehicle

    def cancel_vehicle_edit(self) -> None:
        self._editing_vehicle_id = None
        self._notify()

    # ------------------------------------------------------------------
    # Visits
    # ------------------------------------------------------------------

    async def add_visit(self, data: Mapping[str, Any] | VisitInput) -> str:
        identity = self._require_identity()
        fields = _validate_input(VisitInput, data)
        if not fields.location_label:
            raise TrackerValidationError("Location is required", field="location_label")
        if fields.visit_date is None:
            raise TrackerValidationError("Visit date is required", field="visit_date")
        document = {k: v for k, v in fields.to_patch().items() if v is not None}

        visit_id = await self._store.create(identity.uid, RecordKind.VISIT, document)
        _logger.info("Added visit %s", visit_id)
        await self.load_visits()
        return visit_id

    async def update_visit(self, visit_id: str, data: Mapping[str, Any] | VisitInput) -> None:
        """Apply a partial update; absent fields stay unchanged."""
        identity = self._require_identity()
        if self.get_visit(visit_id) is None:
            raise RecordNotFoundError(f"Visit {visit_id} is not loaded", path=visit_id)
        fields = _validate_input(VisitInput, data)
        patch = fields.to_patch()
        if "locationLabel" in patch and not patch["locationLabel"]:
            raise TrackerValidationError("Location is required", field="location_label")
        if "visitDate" in patch and patch["visitDate"] is None:
            raise TrackerValidationError("Visit date is required", field="visit_date")

        try:
            await self._store.update(identity.uid, RecordKind.VISIT, visit_id, patch)
        except RecordNotFoundError:
            await self.load_visits()
            raise
        _logger.info("Updated visit %s", visit_id)
        await self.load_visits()

    async def delete_visit(self, visit_id: str) -> None:
        """Delete unconditionally; confirmation is the caller's responsibility."""
        identity = self._require_identity()
        await self._store.delete(identity.uid, RecordKind.VISIT, visit_id)
        _logger.info("Deleted visit %s", visit_id)
        if self._editing_visit_id == visit_id:
            self._editing_visit_id = None
        await self.load_visits()

    def begin_edit_visit(self, visit_id: str) -> Visit:
        """Mark *visit_id* as being edited, replacing any edit in progress."""
        visit = self.get_visit(visit_id)
        if visit is None:
            raise RecordNotFoundError(f"Visit {visit_id} is not loaded", path=visit_id)
        self._editing_visit_id = visit_id
        self._notify()
        return visit

    def cancel_edit(self) -> None:
        self._editing_visit_id = None
        self._notify()

    async def save_visit(self, data: Mapping[str, Any] | VisitInput) -> str:
        """Add a visit, or update the one being edited.

        On failure the edit marker is kept so the caller can retry.
        """
        editing = self._editing_visit_id
        if editing is None:
            return await self.add_visit(data)
        await self.update_visit(editing, data)
        if self._editing_visit_id == editing:
            self._editing_visit_id = None
            self._notify()
        return editing
