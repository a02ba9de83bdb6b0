"""Identity-toolkit REST authentication provider.

Endpoints (relative to ``config.auth_url``):
  - accounts:signInWithPassword
  - accounts:signUp
  - accounts:update (display name after sign-up)
  - accounts:signInWithIdp (federated sign-in with an external id token)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import aiohttp
from pydantic import ValidationError

from chargelog._constants import REST_AUTH_ERROR_CODES, USER_AGENT
from chargelog._redact import redact_for_log
from chargelog.config import TrackerConfig
from chargelog.exceptions import AuthProviderError
from chargelog.models.profile import Identity

_logger = logging.getLogger(__name__)


def _error_code(body: Any) -> str:
    """Translate a REST error body into an ``auth/...`` code."""
    message = ""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = str(error.get("message", ""))
    # "WEAK_PASSWORD : Password should be at least 6 characters"
    reason = message.split(":", 1)[0].strip()
    return REST_AUTH_ERROR_CODES.get(reason, f"auth/{reason.lower().replace('_', '-')}" if reason else "auth/unknown")


class RestAuthProvider:
    """Password and federated sign-in against an identity-toolkit REST API.

    Listeners registered with :meth:`add_listener` are called synchronously
    with the new identity (or ``None``) whenever the signed-in user changes.
    """

    def __init__(self, config: TrackerConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._identity: Identity | None = None
        self._listeners: list[Callable[[Identity | None], None]] = []

    @property
    def current_identity(self) -> Identity | None:
        return self._identity

    def add_listener(self, callback: Callable[[Identity | None], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def _set_identity(self, identity: Identity | None) -> None:
        previous = self._identity
        self._identity = identity
        if previous == identity:
            return
        for callback in list(self._listeners):
            try:
                callback(identity)
            except Exception:
                _logger.debug("Auth listener failed", exc_info=True)

    async def _post(self, action: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._config.auth_url.rstrip('/')}/accounts:{action}"
        params = {"key": self._config.api_key} if self._config.api_key else None
        _logger.debug("POST accounts:%s payload=%s", action, redact_for_log(payload))
        try:
            async with self._http.post(
                url,
                json=payload,
                params=params,
                headers={"user-agent": USER_AGENT},
            ) as resp:
                body = await resp.json(content_type=None)
                status = resp.status
        except (aiohttp.ClientError, TimeoutError, ValueError) as exc:
            raise AuthProviderError(f"accounts:{action} failed: {exc!r}", code="auth/network-request-failed") from exc

        if status != 200:
            code = _error_code(body)
            raise AuthProviderError(f"accounts:{action} rejected with {code}", code=code)
        if not isinstance(body, dict):
            raise AuthProviderError(f"accounts:{action} returned no account data", code="auth/internal-error")
        return body

    @staticmethod
    def _identity_from(body: dict[str, Any]) -> Identity:
        try:
            return Identity.model_validate(body)
        except ValidationError as exc:
            raise AuthProviderError("Auth response missing account id", code="auth/internal-error") from exc

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        body = await self._post(
            "signInWithPassword",
            {"email": email.strip(), "password": password, "returnSecureToken": True},
        )
        identity = self._identity_from(body)
        self._set_identity(identity)
        return identity

    async def sign_up(self, email: str, password: str, display_name: str | None = None) -> Identity:
        body = await self._post(
            "signUp",
            {"email": email.strip(), "password": password, "returnSecureToken": True},
        )
        if display_name:
            update = await self._post(
                "update",
                {"idToken": body.get("idToken"), "displayName": display_name, "returnSecureToken": True},
            )
            body = {**body, **{k: v for k, v in update.items() if v}, "displayName": display_name}
        identity = self._identity_from(body)
        self._set_identity(identity)
        return identity

    async def sign_in_with_idp(self, provider_id: str, id_token: str) -> Identity:
        """Exchange an external provider token (e.g. ``google.com``) for a session.

        An empty token means the user dismissed the provider's consent flow.
        """
        if not id_token:
            raise AuthProviderError("Federated sign-in cancelled", code="auth/popup-closed-by-user")
        body = await self._post(
            "signInWithIdp",
            {
                "postBody": f"id_token={id_token}&providerId={provider_id}",
                "requestUri": "http://localhost",
                "returnIdpCredential": True,
                "returnSecureToken": True,
            },
        )
        identity = self._identity_from(body)
        self._set_identity(identity)
        return identity

    async def sign_out(self) -> None:
        self._set_identity(None)
