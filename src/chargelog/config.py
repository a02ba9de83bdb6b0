"""Client configuration for chargelog."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from chargelog._constants import (
    AUTH_URL,
    DIRECTORY_URL,
    EXPORT_FORMAT_VERSION,
    MIN_QUERY_LENGTH,
    SEARCH_LIMIT,
)
from chargelog.exceptions import ChargelogConfigError


@dataclasses.dataclass(frozen=True)
class TrackerConfig:
    """Client configuration.

    Parameters
    ----------
    store_url : str
        Base URL of the per-user document store.
    api_key : str or None
        API key passed to the authentication provider.
    auth_url : str
        Base URL of the identity-toolkit style authentication API.
    directory_url : str
        URL returning the bulk list of charging locations.
    request_timeout : float
        Total timeout in seconds for every HTTP request.
    search_limit : int
        Maximum number of directory search results.
    min_query_length : int
        Shortest query (after stripping) that produces search results.
    cache_dir : str or None
        Directory for the per-identity dataset cache.  ``None`` keeps the
        cache in memory only.
    export_version : str
        Format version tag written into export files.
    """

    store_url: str
    api_key: str | None = None
    auth_url: str = AUTH_URL
    directory_url: str = DIRECTORY_URL
    request_timeout: float = 15.0
    search_limit: int = SEARCH_LIMIT
    min_query_length: int = MIN_QUERY_LENGTH
    cache_dir: str | None = None
    export_version: str = EXPORT_FORMAT_VERSION

    def __post_init__(self) -> None:
        if not self.store_url:
            raise ChargelogConfigError("store_url must be set")
        if self.search_limit <= 0:
            raise ChargelogConfigError(f"search_limit must be positive, got {self.search_limit}")
        if self.request_timeout <= 0:
            raise ChargelogConfigError(f"request_timeout must be positive, got {self.request_timeout}")

    @classmethod
    def from_env(cls, **overrides: Any) -> TrackerConfig:
        """Create configuration from ``CHARGELOG_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "CHARGELOG_STORE_URL": "store_url",
            "CHARGELOG_API_KEY": "api_key",
            "CHARGELOG_AUTH_URL": "auth_url",
            "CHARGELOG_DIRECTORY_URL": "directory_url",
            "CHARGELOG_CACHE_DIR": "cache_dir",
            "CHARGELOG_EXPORT_VERSION": "export_version",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        timeout_env = env.get("CHARGELOG_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout" not in overrides:
            config_kwargs["request_timeout"] = float(timeout_env)

        limit_env = env.get("CHARGELOG_SEARCH_LIMIT")
        if limit_env is not None and "search_limit" not in overrides:
            config_kwargs["search_limit"] = int(limit_env)

        config_kwargs.update(overrides)
        if "store_url" not in config_kwargs:
            raise ChargelogConfigError("CHARGELOG_STORE_URL is not set")

        return cls(**config_kwargs)
