"""UI-facing controller: form submission, confirmations and user messages.

Nothing raised by the core escapes :class:`TrackerController`; every
operation returns a :class:`Notice` that a front end can show as-is.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from chargelog.directory import LocationDirectory
from chargelog.exceptions import (
    AuthProviderError,
    ChargelogError,
    InvalidFormatError,
    NotAuthenticatedError,
    RecordNotFoundError,
    TrackerValidationError,
)
from chargelog.models.location import ChargingLocation
from chargelog.models.snapshot import ExportSnapshot
from chargelog.models.vehicle import Vehicle
from chargelog.models.visit import Visit
from chargelog.session import SessionManager
from chargelog.tracker import TrackerState
from chargelog.transfer import ImportExportEngine, ImportStrategy, load_snapshot_file

_logger = logging.getLogger(__name__)

SIGN_IN_REQUIRED = "Please sign in first."
DIRECTORY_UNAVAILABLE = "Failed to load supercharger data. Autocomplete may not work."


class NoticeLevel(StrEnum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    text: str

    @property
    def ok(self) -> bool:
        return self.level in (NoticeLevel.SUCCESS, NoticeLevel.INFO)


async def _resolve(decision: Callable[..., Any], *args: Any) -> Any:
    result = decision(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class TrackerController:
    """Glue between a form-based front end and :class:`TrackerState`.

    Holds the location picked from the autocomplete list until the visit
    form is submitted.  Confirmation prompts are callbacks (sync or async)
    so the core never blocks on user interaction.
    """

    def __init__(
        self,
        tracker: TrackerState,
        directory: LocationDirectory,
        engine: ImportExportEngine,
        session: SessionManager | None = None,
    ) -> None:
        self._tracker = tracker
        self._directory = directory
        self._engine = engine
        self._session = session
        self._pending_selection: ChargingLocation | None = None

    @property
    def tracker(self) -> TrackerState:
        return self._tracker

    @property
    def pending_selection(self) -> ChargingLocation | None:
        return self._pending_selection

    @property
    def form_title(self) -> str:
        return "Edit Visit" if self._tracker.editing_visit_id else "Add New Visit"

    def directory_notice(self) -> Notice | None:
        """Warning to show when the location directory could not be loaded."""
        if self._directory.load_failed:
            return Notice(NoticeLevel.ERROR, DIRECTORY_UNAVAILABLE)
        return None

    # ------------------------------------------------------------------
    # Location picking
    # ------------------------------------------------------------------

    def suggest(self, query: str) -> list[ChargingLocation]:
        return self._directory.search(query)

    def select_location(self, location: ChargingLocation) -> str:
        """Remember *location* for the next submit; returns the label to show."""
        self._pending_selection = location
        return location.display_name

    def clear_selection(self) -> None:
        self._pending_selection = None

    # ------------------------------------------------------------------
    # Visits
    # ------------------------------------------------------------------

    def begin_edit(self, visit_id: str) -> Visit | None:
        """Enter edit mode for *visit_id*; returns the visit to pre-fill the form."""
        try:
            visit = self._tracker.begin_edit_visit(visit_id)
        except RecordNotFoundError:
            _logger.debug("Edit requested for unknown visit %s", visit_id)
            return None
        self._pending_selection = visit.location_snapshot
        return visit

    def cancel_edit(self) -> None:
        self._tracker.cancel_edit()
        self._pending_selection = None

    async def submit_visit(self, form: Mapping[str, Any]) -> Notice:
        """Add a visit, or update the one being edited, from raw form values."""
        data = dict(form)
        if self._pending_selection is not None:
            data["location_snapshot"] = self._pending_selection
            if not str(data.get("location_label") or data.get("location") or "").strip():
                data["location_label"] = self._pending_selection.display_name
        editing = self._tracker.editing_visit_id

        try:
            await self._tracker.save_visit(data)
        except TrackerValidationError as exc:
            _logger.debug("Visit form rejected: %s", exc)
            return Notice(NoticeLevel.ERROR, "Please fill in all required fields")
        except NotAuthenticatedError:
            return Notice(NoticeLevel.ERROR, SIGN_IN_REQUIRED)
        except RecordNotFoundError:
            self.cancel_edit()
            return Notice(NoticeLevel.ERROR, "This visit no longer exists.")
        except ChargelogError as exc:
            _logger.warning("Saving visit failed: %s", exc)
            return Notice(NoticeLevel.ERROR, "Could not save the visit. Please try again.")

        self._pending_selection = None
        if editing:
            return Notice(NoticeLevel.SUCCESS, "Visit updated successfully!")
        return Notice(NoticeLevel.SUCCESS, "Visit added successfully!")

    async def delete_visit(self, visit_id: str, confirm: Callable[[Visit | None], Any]) -> Notice | None:
        """Delete after *confirm* returns true; ``None`` means the user declined."""
        if not await _resolve(confirm, self._tracker.get_visit(visit_id)):
            return None
        was_editing = self._tracker.editing_visit_id == visit_id
        try:
            await self._tracker.delete_visit(visit_id)
        except NotAuthenticatedError:
            return Notice(NoticeLevel.ERROR, SIGN_IN_REQUIRED)
        except ChargelogError as exc:
            _logger.warning("Deleting visit %s failed: %s", visit_id, exc)
            return Notice(NoticeLevel.ERROR, "Could not delete the visit. Please try again.")
        if was_editing:
            self._pending_selection = None
        return Notice(NoticeLevel.INFO, "Visit deleted")

    # ------------------------------------------------------------------
    # Vehicles
    # ------------------------------------------------------------------

    async def select_vehicle(self, vehicle_id: str | None) -> Notice | None:
        try:
            await self._tracker.select_vehicle(vehicle_id)
        except NotAuthenticatedError:
            return Notice(NoticeLevel.ERROR, SIGN_IN_REQUIRED)
        return None

    async def submit_vehicle(self, form: Mapping[str, Any]) -> Notice:
        editing = self._tracker.editing_vehicle_id
        try:
            if editing:
                await self._tracker.update_vehicle(editing, form)
            else:
                await self._tracker.add_vehicle(form)
        except TrackerValidationError as exc:
            return Notice(NoticeLevel.ERROR, str(exc))
        except NotAuthenticatedError:
            return Notice(NoticeLevel.ERROR, SIGN_IN_REQUIRED)
        except RecordNotFoundError:
            self._tracker.cancel_vehicle_edit()
            return Notice(NoticeLevel.ERROR, "This vehicle no longer exists.")
        except ChargelogError as exc:
            _logger.warning("Saving vehicle failed: %s", exc)
            return Notice(NoticeLevel.ERROR, "Could not save the vehicle. Please try again.")
        if editing:
            return Notice(NoticeLevel.SUCCESS, "Vehicle updated successfully!")
        return Notice(NoticeLevel.SUCCESS, "Vehicle added successfully!")

    async def delete_vehicle(self, vehicle_id: str, confirm: Callable[[Vehicle | None], Any]) -> Notice | None:
        if not await _resolve(confirm, self._tracker.get_vehicle(vehicle_id)):
            return None
        try:
            await self._tracker.delete_vehicle(vehicle_id)
        except NotAuthenticatedError:
            return Notice(NoticeLevel.ERROR, SIGN_IN_REQUIRED)
        except ChargelogError as exc:
            _logger.warning("Deleting vehicle %s failed: %s", vehicle_id, exc)
            return Notice(NoticeLevel.ERROR, "Could not delete the vehicle. Please try again.")
        return Notice(NoticeLevel.INFO, "Vehicle deleted")

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    async def export_file(self, directory: str | Path = ".") -> Notice:
        try:
            path = await self._engine.write_export(directory)
        except NotAuthenticatedError:
            return Notice(NoticeLevel.ERROR, SIGN_IN_REQUIRED)
        except (ChargelogError, OSError) as exc:
            _logger.warning("Export failed: %s", exc)
            return Notice(NoticeLevel.ERROR, "Export failed. Please try again.")
        _logger.debug("Export written to %s", path)
        return Notice(NoticeLevel.SUCCESS, "Data exported successfully!")

    async def import_file(
        self,
        path: str | Path,
        choose_strategy: Callable[[ExportSnapshot], Any],
    ) -> Notice | None:
        """Import *path* after *choose_strategy* picks MERGE or REPLACE.

        *choose_strategy* receives the parsed snapshot (so it can show the
        visit count) and returns an :class:`ImportStrategy`, or ``None`` to
        cancel.  Nothing is written when the file is invalid.
        """
        try:
            snapshot = load_snapshot_file(path)
        except InvalidFormatError as exc:
            _logger.warning("Rejected import file %s: %s", path, exc)
            return Notice(NoticeLevel.ERROR, "Failed to import file. Please check the file format.")

        strategy = await _resolve(choose_strategy, snapshot)
        if strategy is None:
            return None

        try:
            report = await self._engine.import_snapshot(snapshot, ImportStrategy(strategy))
        except NotAuthenticatedError:
            return Notice(NoticeLevel.ERROR, SIGN_IN_REQUIRED)
        except ChargelogError as exc:
            _logger.warning("Import failed: %s", exc)
            return Notice(NoticeLevel.ERROR, "Failed to import file. Please try again.")

        if report.strategy is ImportStrategy.MERGE:
            text = f"Merged {report.imported} new visits!"
        else:
            text = f"Imported {report.imported} visits!"
        if report.failed or report.invalid:
            return Notice(NoticeLevel.WARNING, f"{text} ({report.failed + report.invalid} could not be imported)")
        return Notice(NoticeLevel.SUCCESS, text)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def _require_session(self) -> SessionManager:
        if self._session is None:
            raise RuntimeError("TrackerController was created without a SessionManager")
        return self._session

    async def sign_in(self, email: str, password: str) -> Notice:
        try:
            await self._require_session().sign_in_with_password(email, password)
        except AuthProviderError as exc:
            return Notice(NoticeLevel.ERROR, exc.user_message)
        return Notice(NoticeLevel.SUCCESS, "Signed in")

    async def sign_in_with_idp(self, provider_id: str, id_token: str) -> Notice:
        try:
            await self._require_session().sign_in_with_idp(provider_id, id_token)
        except AuthProviderError as exc:
            return Notice(NoticeLevel.ERROR, exc.user_message)
        return Notice(NoticeLevel.SUCCESS, "Signed in")

    async def sign_up(self, email: str, password: str, display_name: str | None = None) -> Notice:
        try:
            await self._require_session().sign_up(email, password, display_name)
        except AuthProviderError as exc:
            return Notice(NoticeLevel.ERROR, exc.user_message)
        return Notice(NoticeLevel.SUCCESS, "Account created")

    async def sign_out(self) -> Notice:
        try:
            await self._require_session().sign_out()
        except AuthProviderError as exc:
            return Notice(NoticeLevel.ERROR, exc.user_message)
        self._pending_selection = None
        return Notice(NoticeLevel.INFO, "Signed out")
