"""Read-only views derived from a visit list.

Both projections are pure functions of the visits they are given; the
tracker passes its currently filtered list.
"""

from chargelog.projections.route import MapMarker, MapSurface, RouteProjection, project_route, render_route
from chargelog.projections.stats import VisitStats, compute_stats

__all__ = [
    "MapMarker",
    "MapSurface",
    "RouteProjection",
    "VisitStats",
    "compute_stats",
    "project_route",
    "render_route",
]
