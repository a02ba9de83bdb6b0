"""Map markers and the chronological route line."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Protocol

from chargelog.models.visit import Visit

LatLng = tuple[float, float]


@dataclass(frozen=True)
class MapMarker:
    visit_id: str
    latitude: float
    longitude: float
    title: str
    visit_date: date
    stall_count: int | None = None
    power_kilowatt: float | None = None
    notes: str | None = None

    @property
    def position(self) -> LatLng:
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class RouteProjection:
    markers: list[MapMarker] = field(default_factory=list)
    polyline: list[LatLng] = field(default_factory=list)
    """Points in ascending visit-date order; empty with fewer than two markers."""

    @property
    def is_empty(self) -> bool:
        return not self.markers

    @property
    def bounds(self) -> tuple[LatLng, LatLng] | None:
        """South-west and north-east corners enclosing every marker."""
        if not self.markers:
            return None
        lats = [m.latitude for m in self.markers]
        lngs = [m.longitude for m in self.markers]
        return (min(lats), min(lngs)), (max(lats), max(lngs))


class MapSurface(Protocol):
    """Drawing surface of the map widget."""

    def clear(self) -> None:
        ...

    def add_marker(self, marker: MapMarker) -> None:
        ...

    def add_polyline(self, points: Sequence[LatLng]) -> None:
        ...

    def fit_bounds(self, south_west: LatLng, north_east: LatLng) -> None:
        ...


def project_route(visits: Sequence[Visit]) -> RouteProjection:
    """Project visits with complete coordinates onto markers and a route.

    Visits without both latitude and longitude are left out.  Route order
    is ascending ``visit_date``; equal dates keep their input order.
    """
    located = [visit for visit in visits if visit.has_coordinates]
    markers: list[MapMarker] = []
    for visit in located:
        snapshot = visit.location_snapshot
        assert snapshot is not None and snapshot.coordinates is not None  # noqa: S101
        markers.append(
            MapMarker(
                visit_id=visit.id,
                latitude=snapshot.coordinates.latitude,  # type: ignore[arg-type]
                longitude=snapshot.coordinates.longitude,  # type: ignore[arg-type]
                title=snapshot.name,
                visit_date=visit.visit_date,
                stall_count=snapshot.stall_count,
                power_kilowatt=snapshot.power_kilowatt,
                notes=visit.notes,
            )
        )

    polyline: list[LatLng] = []
    if len(markers) > 1:
        # sorted() is stable, so same-day visits keep input order.
        polyline = [marker.position for marker in sorted(markers, key=lambda m: m.visit_date)]
    return RouteProjection(markers=markers, polyline=polyline)


def render_route(surface: MapSurface, projection: RouteProjection) -> None:
    """Redraw *surface* from scratch with *projection*."""
    surface.clear()
    for marker in projection.markers:
        surface.add_marker(marker)
    if projection.polyline:
        surface.add_polyline(projection.polyline)
    bounds = projection.bounds
    if bounds is not None:
        surface.fit_bounds(*bounds)
