"""High-level async client that wires the charging-visit logger together."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from chargelog._cache import DatasetCache
from chargelog._transport import HttpTransport, Transport
from chargelog.auth import RestAuthProvider
from chargelog.config import TrackerConfig
from chargelog.controller import TrackerController
from chargelog.directory import LocationDirectory
from chargelog.exceptions import ChargelogError
from chargelog.session import AuthProvider, SessionManager
from chargelog.store import RemoteStore
from chargelog.tracker import TrackerState
from chargelog.transfer import ImportExportEngine

_logger = logging.getLogger(__name__)


class ChargeLogClient:
    """Async entry point owning the HTTP session and every collaborator.

    Usage::

        async with ChargeLogClient(TrackerConfig.from_env()) as client:
            await client.session.sign_in_with_password(email, password)
            await client.session.wait_idle()
            print(client.tracker.stats().summary())

    *transport* and *auth_provider* replace the HTTP implementations,
    which is how tests run the full stack without a network.
    """

    def __init__(
        self,
        config: TrackerConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        auth_provider: AuthProvider | None = None,
        directory_records: list[dict[str, Any]] | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport_override = transport
        self._auth_override = auth_provider
        self._directory_records = directory_records
        self._session_manager: SessionManager | None = None
        self._tracker: TrackerState | None = None
        self._directory: LocationDirectory | None = None
        self._engine: ImportExportEngine | None = None
        self._controller: TrackerController | None = None
        self._unsubscribe_tracker: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ChargeLogClient:
        if self._http_session is None:
            timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)
            self._http_session = aiohttp.ClientSession(timeout=timeout)

        provider = self._auth_override or RestAuthProvider(self._config, self._http_session)
        transport = self._transport_override or HttpTransport(
            self._config,
            self._http_session,
            token_provider=lambda: provider.current_identity.id_token if provider.current_identity else None,
        )
        store = RemoteStore(transport)

        if self._directory_records is not None:
            self._directory = LocationDirectory.from_records(
                self._directory_records,
                limit=self._config.search_limit,
                min_query_length=self._config.min_query_length,
            )
        else:
            self._directory = LocationDirectory(
                self._http_session,
                url=self._config.directory_url,
                limit=self._config.search_limit,
                min_query_length=self._config.min_query_length,
            )
            await self._directory.load()

        self._tracker = TrackerState(store, cache=DatasetCache(self._config.cache_dir))
        self._engine = ImportExportEngine(self._tracker, version=self._config.export_version)
        self._session_manager = SessionManager(provider, store)
        self._controller = TrackerController(self._tracker, self._directory, self._engine, self._session_manager)
        self._unsubscribe_tracker = self._session_manager.on_session_change(self._tracker.handle_session_change)
        _logger.debug("ChargeLogClient ready (store=%s)", self._config.store_url)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._session_manager is not None:
            await self._session_manager.wait_idle()
            self._session_manager.close()
        if self._unsubscribe_tracker is not None:
            self._unsubscribe_tracker()
            self._unsubscribe_tracker = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._session_manager = None
        self._tracker = None
        self._directory = None
        self._engine = None
        self._controller = None

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @staticmethod
    def _require(component: Any) -> Any:
        if component is None:
            raise ChargelogError("Client not initialized. Use 'async with ChargeLogClient(...) as client:'")
        return component

    @property
    def session(self) -> SessionManager:
        return self._require(self._session_manager)

    @property
    def tracker(self) -> TrackerState:
        return self._require(self._tracker)

    @property
    def directory(self) -> LocationDirectory:
        return self._require(self._directory)

    @property
    def transfer(self) -> ImportExportEngine:
        return self._require(self._engine)

    @property
    def controller(self) -> TrackerController:
        return self._require(self._controller)
