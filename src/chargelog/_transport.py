"""HTTP transport for the per-user document store."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

import aiohttp

from chargelog._constants import USER_AGENT
from chargelog._redact import redact_for_log
from chargelog.config import TrackerConfig
from chargelog.exceptions import RecordNotFoundError, StoreUnavailableError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the store adapter.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    Implementations raise :class:`RecordNotFoundError` for a missing
    document and :class:`StoreUnavailableError` for any other failure.
    """

    async def request(
        self,
        method: str,
        path: str,
        *,
        payload: Mapping[str, Any] | None = None,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        ...


class HttpTransport:
    """JSON-over-HTTP transport with bearer-token authentication."""

    def __init__(
        self,
        config: TrackerConfig,
        http_session: aiohttp.ClientSession,
        *,
        token_provider: Callable[[], str | None] | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._token_provider = token_provider

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "accept": "application/json",
            "content-type": "application/json; charset=UTF-8",
            "user-agent": USER_AGENT,
        }
        token = self._token_provider() if self._token_provider is not None else None
        if token:
            headers["authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        payload: Mapping[str, Any] | None = None,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        """Send one request and return the decoded JSON body (``None`` when empty)."""
        url = f"{self._config.store_url.rstrip('/')}{path}"
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else None

        _logger.debug("%s %s params=%s payload=%s", method, path, params, redact_for_log(payload))

        try:
            async with self._http.request(
                method,
                url,
                data=body,
                params=dict(params) if params else None,
                headers=self._headers(),
            ) as resp:
                text = await resp.text()
                if resp.status == 404:
                    raise RecordNotFoundError(f"No document at {path}", path=path)
                if resp.status >= 300:
                    raise StoreUnavailableError(
                        f"HTTP {resp.status} from {method} {path}: {text[:200]}",
                        status_code=resp.status,
                        path=path,
                    )
        except (RecordNotFoundError, StoreUnavailableError):
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise StoreUnavailableError(f"{method} {path} failed: {exc!r}", path=path) from exc

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise StoreUnavailableError(
                f"Invalid JSON from {method} {path}: {text[:200]}",
                path=path,
            ) from exc
