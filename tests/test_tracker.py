from __future__ import annotations

import asyncio
from datetime import date

import pytest
from conftest import FIXED_NOW, FakeDocumentBackend

from chargelog._cache import DatasetCache
from chargelog.exceptions import NotAuthenticatedError, RecordNotFoundError, TrackerValidationError
from chargelog.models.profile import Identity
from chargelog.session import SessionChange
from chargelog.store import RemoteStore
from chargelog.tracker import LoadStatus, TrackerState


def _seed_visit(backend: FakeDocumentBackend, visit_id: str, label: str, visit_date: str, **extra: object) -> None:
    backend.seed("user-1", "visits", visit_id, {"locationLabel": label, "visitDate": visit_date, **extra})


async def _wait_paused(backend: FakeDocumentBackend, count: int) -> None:
    for _ in range(100):
        if len(backend.paused) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"expected {count} paused list calls, got {len(backend.paused)}")


# ------------------------------------------------------------------
# Identity lifecycle and loading
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_activate_loads_vehicles_and_visits_newest_first(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    backend.seed("user-1", "vehicles", "car-1", {"name": "Daily", "model": "Model 3", "createdAt": "2024-01-01"})
    _seed_visit(backend, "v1", "Paris", "2024-01-05")
    _seed_visit(backend, "v2", "Lyon", "2024-02-10")

    await tracker.activate(identity)

    assert [v.id for v in tracker.vehicles] == ["car-1"]
    assert [v.id for v in tracker.visits] == ["v2", "v1"]
    assert tracker.vehicles_status is LoadStatus.LOADED
    assert tracker.visits_status is LoadStatus.LOADED


@pytest.mark.asyncio
async def test_operations_without_identity_raise(tracker: TrackerState, backend: FakeDocumentBackend) -> None:
    with pytest.raises(NotAuthenticatedError):
        await tracker.add_vehicle({"name": "Car"})
    with pytest.raises(NotAuthenticatedError):
        await tracker.add_visit({"location_label": "Paris", "visit_date": "2024-01-01"})
    with pytest.raises(NotAuthenticatedError):
        await tracker.delete_visit("v1")
    assert backend.calls == []


@pytest.mark.asyncio
async def test_malformed_records_are_skipped(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "good", "Paris", "2024-01-05")
    backend.seed("user-1", "visits", "bad", {"locationLabel": "Nowhere", "visitDate": "not-a-date"})

    await tracker.activate(identity)

    assert [v.id for v in tracker.all_visits] == ["good"]


@pytest.mark.asyncio
async def test_failed_reload_keeps_previous_data_and_marks_failure(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "v1", "Paris", "2024-01-05")
    await tracker.activate(identity)

    backend.fail_methods.add("GET")
    assert await tracker.load_visits() is False

    assert [v.id for v in tracker.all_visits] == ["v1"]
    assert tracker.visits_status is LoadStatus.FAILED


@pytest.mark.asyncio
async def test_activation_seeds_view_from_cache_when_store_is_down(
    backend: FakeDocumentBackend, store: RemoteStore, identity: Identity
) -> None:
    cache = DatasetCache()
    cache.put_visits("user-1", [{"id": "cached", "locationLabel": "Oslo", "visitDate": "2023-12-24"}])
    tracker = TrackerState(store, cache=cache)
    backend.fail_methods.add("GET")

    await tracker.activate(identity)

    assert [v.id for v in tracker.all_visits] == ["cached"]
    assert tracker.visits_status is LoadStatus.FAILED


@pytest.mark.asyncio
async def test_session_change_to_signed_out_clears_view(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "v1", "Paris", "2024-01-05")
    await tracker.handle_session_change(SessionChange(identity=identity))
    tracker.begin_edit_visit("v1")

    await tracker.handle_session_change(SessionChange(identity=None))

    assert tracker.identity is None
    assert tracker.all_visits == []
    assert tracker.editing_visit_id is None
    assert tracker.vehicle_filter is None


@pytest.mark.asyncio
async def test_switching_identity_never_shows_previous_users_records(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "v1", "Paris", "2024-01-05")
    backend.seed("user-2", "visits", "w1", {"locationLabel": "Rome", "visitDate": "2024-03-01"})
    await tracker.activate(identity)
    seen: list[set[str]] = []
    tracker.add_listener(lambda state: seen.append({v.id for v in state.all_visits}))

    await tracker.activate(Identity(uid="user-2", email="other@example.com"))

    assert [v.id for v in tracker.all_visits] == ["w1"]
    assert all("v1" not in ids for ids in seen)


# ------------------------------------------------------------------
# Stale load protection
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_older_visit_load_finishing_last_is_dropped(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "v1", "Paris", "2024-01-05")
    await tracker.activate(identity)

    backend.pause_lists = True
    older = asyncio.create_task(tracker.load_visits())
    await _wait_paused(backend, 1)
    _seed_visit(backend, "v2", "Lyon", "2024-02-10")
    newer = asyncio.create_task(tracker.load_visits())
    await _wait_paused(backend, 2)

    backend.paused[1].release.set()
    assert await newer is True
    backend.paused[0].release.set()
    assert await older is False

    assert {v.id for v in tracker.all_visits} == {"v1", "v2"}
    assert tracker.visits_status is LoadStatus.LOADED


@pytest.mark.asyncio
async def test_load_completing_after_sign_out_is_discarded(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    await tracker.activate(identity)
    _seed_visit(backend, "v1", "Paris", "2024-01-05")

    backend.pause_lists = True
    pending = asyncio.create_task(tracker.load_visits())
    await _wait_paused(backend, 1)
    tracker.deactivate()
    backend.paused[0].release.set()

    assert await pending is False
    assert tracker.all_visits == []
    assert tracker.identity is None


@pytest.mark.asyncio
async def test_load_issued_for_previous_filter_is_discarded(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "v1", "Paris", "2024-01-05", vehicleId="car-1")
    await tracker.activate(identity)

    backend.pause_lists = True
    stale = asyncio.create_task(tracker.load_visits())
    await _wait_paused(backend, 1)
    _seed_visit(backend, "v2", "Lyon", "2024-02-10", vehicleId="car-2")
    selecting = asyncio.create_task(tracker.select_vehicle("car-2"))
    await _wait_paused(backend, 2)

    backend.paused[0].release.set()
    assert await stale is False
    backend.paused[1].release.set()
    await selecting

    assert tracker.vehicle_filter == "car-2"
    assert [v.id for v in tracker.visits] == ["v2"]


# ------------------------------------------------------------------
# Vehicle filter
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_select_vehicle_filters_without_touching_stored_references(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "v1", "Paris", "2024-01-05", vehicleId="car-1")
    _seed_visit(backend, "v2", "Lyon", "2024-02-10", vehicleId="car-2")
    _seed_visit(backend, "v3", "Nice", "2024-03-01")
    await tracker.activate(identity)
    writes_before = len(backend.writes())

    await tracker.select_vehicle("car-1")
    assert [v.id for v in tracker.visits] == ["v1"]
    assert len(tracker.all_visits) == 3
    assert tracker.stats().total_visits == 1

    await tracker.select_vehicle(None)
    assert [v.id for v in tracker.visits] == ["v3", "v2", "v1"]
    assert len(backend.writes()) == writes_before


# ------------------------------------------------------------------
# Vehicles
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_add_vehicle_requires_name(tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity) -> None:
    await tracker.activate(identity)

    with pytest.raises(TrackerValidationError) as excinfo:
        await tracker.add_vehicle({"name": "  ", "model": "Model Y"})

    assert excinfo.value.field == "name"
    assert backend.writes() == []


@pytest.mark.asyncio
async def test_add_vehicle_defaults_to_active_and_reloads(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    await tracker.activate(identity)

    vehicle_id = await tracker.add_vehicle({"name": "Weekend", "model": "Model S", "year": 2021})

    stored = backend.records("user-1", "vehicles")[vehicle_id]
    assert stored["isActive"] is True
    assert stored["year"] == "2021"
    assert stored["createdAt"] == FIXED_NOW.isoformat()
    assert [v.name for v in tracker.vehicles] == ["Weekend"]


@pytest.mark.asyncio
async def test_deleting_vehicle_leaves_visits_unassigned_and_resets_filter(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    backend.seed("user-1", "vehicles", "car-1", {"name": "Daily", "model": "Model 3"})
    _seed_visit(backend, "v1", "Paris", "2024-01-05", vehicleId="car-1")
    await tracker.activate(identity)
    await tracker.select_vehicle("car-1")
    tracker.begin_edit_vehicle("car-1")
    assert tracker.vehicle_label(tracker.visits[0]) == "Daily (Model 3)"

    await tracker.delete_vehicle("car-1")

    assert tracker.vehicle_filter is None
    assert tracker.editing_vehicle_id is None
    visit = tracker.get_visit("v1")
    assert visit is not None
    assert visit.vehicle_id == "car-1"
    assert tracker.vehicle_for(visit) is None
    assert tracker.vehicle_label(visit) == "Unassigned"


# ------------------------------------------------------------------
# Visits
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_add_visit_persists_input_and_stamps_created_at(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    await tracker.activate(identity)

    visit_id = await tracker.add_visit(
        {
            "location_label": " Gilroy, CA ",
            "visit_date": "2024-04-01",
            "energy_added_kwh": "42.5",
            "notes": "",
            "vehicle_id": "",
        }
    )

    visit = tracker.get_visit(visit_id)
    assert visit is not None
    assert visit.location_label == "Gilroy, CA"
    assert visit.visit_date == date(2024, 4, 1)
    assert visit.energy_added_kwh == pytest.approx(42.5)
    assert visit.notes is None
    assert visit.vehicle_id is None
    assert visit.created_at == FIXED_NOW
    assert visit.updated_at is None
    assert len(tracker.all_visits) == 1


@pytest.mark.parametrize(
    ("data", "field"),
    [
        ({"location_label": "", "visit_date": "2024-01-01"}, "location_label"),
        ({"location_label": "Paris"}, "visit_date"),
        ({"location_label": "Paris", "visit_date": "yesterday"}, "visit_date"),
        ({"location_label": "Paris", "visit_date": "2024-01-01", "energy_added_kwh": -3}, "energy_added_kwh"),
        ({"location_label": "Paris", "visit_date": "2024-01-01", "energy_added_kwh": "lots"}, "energy_added_kwh"),
    ],
)
@pytest.mark.asyncio
async def test_add_visit_rejects_invalid_input_before_any_write(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity, data: dict[str, object], field: str
) -> None:
    await tracker.activate(identity)

    with pytest.raises(TrackerValidationError) as excinfo:
        await tracker.add_visit(data)

    assert excinfo.value.field.replace("_", "").lower() == field.replace("_", "").lower()
    assert backend.writes() == []


@pytest.mark.asyncio
async def test_update_visit_changes_only_given_fields(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "v1", "Paris", "2024-01-05", energyAddedKwh=30, notes="busy", createdAt="2024-01-05T10:00:00Z")
    await tracker.activate(identity)

    await tracker.update_visit("v1", {"notes": "quiet"})

    stored = backend.records("user-1", "visits")["v1"]
    assert stored["notes"] == "quiet"
    assert stored["energyAddedKwh"] == 30
    assert stored["locationLabel"] == "Paris"
    assert stored["createdAt"] == "2024-01-05T10:00:00Z"
    assert stored["updatedAt"] == FIXED_NOW.isoformat()
    patch = [call for call in backend.calls if call[0] == "PATCH"][0][2]
    assert "id" not in patch
    assert "createdAt" not in patch


@pytest.mark.asyncio
async def test_update_visit_rejects_clearing_mandatory_fields(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "v1", "Paris", "2024-01-05")
    await tracker.activate(identity)

    with pytest.raises(TrackerValidationError):
        await tracker.update_visit("v1", {"location_label": "   "})
    assert backend.count("PATCH") == 0


@pytest.mark.asyncio
async def test_update_unknown_visit_raises_without_store_call(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    await tracker.activate(identity)

    with pytest.raises(RecordNotFoundError):
        await tracker.update_visit("missing", {"notes": "x"})
    assert backend.count("PATCH") == 0


@pytest.mark.asyncio
async def test_update_of_remotely_deleted_visit_refreshes_and_reraises(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "v1", "Paris", "2024-01-05")
    await tracker.activate(identity)
    del backend.records("user-1", "visits")["v1"]

    with pytest.raises(RecordNotFoundError):
        await tracker.update_visit("v1", {"notes": "x"})

    assert tracker.all_visits == []


@pytest.mark.asyncio
async def test_delete_visit_removes_it_and_clears_edit_marker(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "v1", "Paris", "2024-01-05")
    _seed_visit(backend, "v2", "Lyon", "2024-02-10")
    await tracker.activate(identity)
    tracker.begin_edit_visit("v1")

    await tracker.delete_visit("v1")

    assert [v.id for v in tracker.all_visits] == ["v2"]
    assert tracker.editing_visit_id is None


@pytest.mark.asyncio
async def test_deleting_a_visit_twice_does_not_error(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "v1", "Paris", "2024-01-05")
    await tracker.activate(identity)

    await tracker.delete_visit("v1")
    await tracker.delete_visit("v1")

    assert tracker.all_visits == []
    assert backend.count("DELETE") == 2


# ------------------------------------------------------------------
# Edit state machine
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_save_visit_updates_edited_visit_then_returns_to_idle(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "v1", "Paris", "2024-01-05")
    await tracker.activate(identity)
    tracker.begin_edit_visit("v1")

    saved_id = await tracker.save_visit({"location_label": "Paris Nord", "visit_date": "2024-01-06"})

    assert saved_id == "v1"
    assert tracker.editing_visit_id is None
    assert len(tracker.all_visits) == 1
    assert tracker.all_visits[0].location_label == "Paris Nord"


@pytest.mark.asyncio
async def test_failed_save_stays_in_edit_mode(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "v1", "Paris", "2024-01-05")
    await tracker.activate(identity)
    tracker.begin_edit_visit("v1")

    with pytest.raises(TrackerValidationError):
        await tracker.save_visit({"location_label": ""})

    assert tracker.editing_visit_id == "v1"


@pytest.mark.asyncio
async def test_new_edit_replaces_previous_one(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    _seed_visit(backend, "v1", "Paris", "2024-01-05")
    _seed_visit(backend, "v2", "Lyon", "2024-02-10")
    await tracker.activate(identity)

    tracker.begin_edit_visit("v1")
    tracker.begin_edit_visit("v2")
    assert tracker.editing_visit_id == "v2"

    tracker.cancel_edit()
    assert tracker.editing_visit_id is None
    saved = await tracker.save_visit({"location_label": "Dijon", "visit_date": "2024-03-03"})
    assert saved not in ("v1", "v2")
    assert len(tracker.all_visits) == 3


@pytest.mark.asyncio
async def test_listener_errors_do_not_break_mutations(
    tracker: TrackerState, backend: FakeDocumentBackend, identity: Identity
) -> None:
    await tracker.activate(identity)

    def _boom(_state: TrackerState) -> None:
        raise RuntimeError("listener failure")

    unsubscribe = tracker.add_listener(_boom)
    await tracker.add_visit({"location_label": "Paris", "visit_date": "2024-01-01"})
    unsubscribe()

    assert len(tracker.all_visits) == 1
