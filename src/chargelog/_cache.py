"""Per-identity cache of the last successfully loaded vehicles and visits."""

from __future__ import annotations

import copy
import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_logger = logging.getLogger(__name__)


@dataclass
class CachedDataset:
    """Last known records for a single identity (store document form)."""

    vehicles: list[dict[str, Any]] = field(default_factory=list)
    visits: list[dict[str, Any]] = field(default_factory=list)


class DatasetCache:
    """Keep the last confirmed lists per identity.

    Used to seed the view right after sign-in and to keep showing data when
    a reload fails.  With *directory* set, entries are also written to one
    JSON file per identity so they survive restarts.
    """

    def __init__(self, directory: str | Path | None = None) -> None:
        self._entries: dict[str, CachedDataset] = {}
        self._directory = Path(directory) if directory is not None else None

    def _file(self, uid: str) -> Path | None:
        if self._directory is None:
            return None
        digest = hashlib.sha256(uid.encode("utf-8")).hexdigest()[:32]
        return self._directory / f"{digest}.json"

    def _entry(self, uid: str) -> CachedDataset:
        entry = self._entries.get(uid)
        if entry is None:
            entry = self._read_file(uid) or CachedDataset()
            self._entries[uid] = entry
        return entry

    def _read_file(self, uid: str) -> CachedDataset | None:
        path = self._file(uid)
        if path is None or not path.is_file():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            _logger.warning("Ignoring unreadable cache file %s: %s", path, exc)
            return None
        if not isinstance(raw, dict):
            return None
        vehicles = raw.get("vehicles")
        visits = raw.get("visits")
        return CachedDataset(
            vehicles=[v for v in vehicles if isinstance(v, dict)] if isinstance(vehicles, list) else [],
            visits=[v for v in visits if isinstance(v, dict)] if isinstance(visits, list) else [],
        )

    def _write_file(self, uid: str, entry: CachedDataset) -> None:
        path = self._file(uid)
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps({"vehicles": entry.vehicles, "visits": entry.visits}, default=str),
                encoding="utf-8",
            )
        except OSError as exc:
            _logger.warning("Could not write cache file %s: %s", path, exc)

    def get(self, uid: str) -> CachedDataset | None:
        if uid not in self._entries and self._read_file(uid) is None:
            return None
        return copy.deepcopy(self._entry(uid))

    def put_vehicles(self, uid: str, records: list[dict[str, Any]]) -> None:
        entry = self._entry(uid)
        entry.vehicles = copy.deepcopy(records)
        self._write_file(uid, entry)

    def put_visits(self, uid: str, records: list[dict[str, Any]]) -> None:
        entry = self._entry(uid)
        entry.visits = copy.deepcopy(records)
        self._write_file(uid, entry)
