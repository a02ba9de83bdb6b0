"""Aggregate counters over a visit list."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from chargelog.models.visit import Visit


@dataclass(frozen=True)
class VisitStats:
    total_visits: int = 0
    unique_locations: int = 0
    countries: int = 0
    total_energy_kwh: float = 0.0
    """Sum of recorded energy, rounded to one decimal."""

    def summary(self) -> str:
        """One-line summary; zero countries and zero energy are omitted."""
        parts = [f"Total visits: {self.total_visits}", f"Unique locations: {self.unique_locations}"]
        if self.countries > 0:
            parts.append(f"Countries: {self.countries}")
        if self.total_energy_kwh > 0:
            parts.append(f"Total energy: {self.total_energy_kwh:.1f} kWh")
        return " • ".join(parts)


def compute_stats(visits: Iterable[Visit]) -> VisitStats:
    total = 0
    labels: set[str] = set()
    countries: set[str] = set()
    energy = 0.0
    for visit in visits:
        total += 1
        labels.add(visit.location_label)
        if visit.country:
            countries.add(visit.country)
        if visit.energy_added_kwh is not None:
            energy += visit.energy_added_kwh
    return VisitStats(
        total_visits=total,
        unique_locations=len(labels),
        countries=len(countries),
        total_energy_kwh=round(energy, 1),
    )
