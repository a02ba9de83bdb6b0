"""Charging location directory: bulk load once, search many times."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import aiohttp
from pydantic import ValidationError

from chargelog._constants import DIRECTORY_URL, MIN_QUERY_LENGTH, SEARCH_LIMIT, USER_AGENT
from chargelog.models.location import ChargingLocation

_logger = logging.getLogger(__name__)


def _parse_locations(records: Iterable[Any]) -> list[ChargingLocation]:
    locations: list[ChargingLocation] = []
    skipped = 0
    for item in records:
        if not isinstance(item, Mapping):
            skipped += 1
            continue
        try:
            locations.append(ChargingLocation.model_validate(dict(item)))
        except ValidationError:
            skipped += 1
    if skipped:
        _logger.debug("Skipped %d malformed directory records", skipped)
    return locations


def _match_position(location: ChargingLocation, needle: str) -> int | None:
    """Lowest index at which *needle* occurs in any searchable field."""
    city = (location.address.city or "").lower()
    state = (location.address.state or "").lower()
    fields = (
        location.name.lower(),
        city,
        state,
        (location.address.country or "").lower(),
        f"{city} {state}",
    )
    positions = [pos for pos in (text.find(needle) for text in fields) if pos >= 0]
    return min(positions) if positions else None


class LocationDirectory:
    """Read-only lookup table of known charging locations.

    The directory is fetched once per session.  A failed fetch leaves it
    empty (``load_failed`` is set) so manual entry keeps working.
    """

    def __init__(
        self,
        http_session: aiohttp.ClientSession | None = None,
        *,
        url: str = DIRECTORY_URL,
        limit: int = SEARCH_LIMIT,
        min_query_length: int = MIN_QUERY_LENGTH,
    ) -> None:
        self._http = http_session
        self._url = url
        self._limit = limit
        self._min_query_length = min_query_length
        self._locations: list[ChargingLocation] = []
        self.load_failed = False

    @classmethod
    def from_records(cls, records: Iterable[Any], **kwargs: Any) -> LocationDirectory:
        """Build a directory from already-fetched records (no network)."""
        directory = cls(**kwargs)
        directory._locations = _parse_locations(records)
        return directory

    @property
    def locations(self) -> Sequence[ChargingLocation]:
        return tuple(self._locations)

    def __len__(self) -> int:
        return len(self._locations)

    async def load(self) -> Sequence[ChargingLocation]:
        """Fetch the full directory; never raises."""
        if self._http is None:
            _logger.warning("No HTTP session; charging location directory left empty")
            self.load_failed = True
            return ()
        try:
            async with self._http.get(self._url, headers={"user-agent": USER_AGENT}) as resp:
                if resp.status != 200:
                    raise aiohttp.ClientResponseError(
                        resp.request_info,
                        resp.history,
                        status=resp.status,
                        message=f"HTTP {resp.status}",
                    )
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, TimeoutError, ValueError) as exc:
            _logger.warning("Failed to load charging locations from %s: %s", self._url, exc)
            self._locations = []
            self.load_failed = True
            return ()

        if not isinstance(payload, list):
            _logger.warning("Charging location directory returned %s, expected a list", type(payload).__name__)
            self._locations = []
            self.load_failed = True
            return ()

        self._locations = _parse_locations(payload)
        self.load_failed = False
        _logger.info("Loaded %d charging locations", len(self._locations))
        return self.locations

    def search(self, query: str) -> list[ChargingLocation]:
        """Case-insensitive substring search.

        Matches name, city, state, country and ``"city state"``; results
        are ranked by earliest match position, then by name.
        """
        needle = (query or "").strip().lower()
        if len(needle) < self._min_query_length:
            return []

        ranked: list[tuple[int, str, int, ChargingLocation]] = []
        for index, location in enumerate(self._locations):
            position = _match_position(location, needle)
            if position is not None:
                ranked.append((position, location.name.lower(), index, location))
        ranked.sort(key=lambda entry: entry[:3])
        return [entry[3] for entry in ranked[: self._limit]]
