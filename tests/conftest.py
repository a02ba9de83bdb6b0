from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from urllib.parse import unquote

import pytest

from chargelog._cache import DatasetCache
from chargelog.exceptions import AuthProviderError, RecordNotFoundError, StoreUnavailableError
from chargelog.models.profile import Identity
from chargelog.store import RemoteStore
from chargelog.tracker import TrackerState

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@dataclass
class _PausedList:
    path: str
    release: asyncio.Event


@dataclass
class FakeDocumentBackend:
    """In-memory document store speaking the ``Transport`` protocol."""

    collections: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)
    documents: dict[str, dict[str, Any]] = field(default_factory=dict)
    calls: list[tuple[str, str, Any]] = field(default_factory=list)
    fail_methods: set[str] = field(default_factory=set)
    fail_paths: set[str] = field(default_factory=set)
    pause_lists: bool = False
    paused: list[_PausedList] = field(default_factory=list)
    _next_id: int = 0

    def seed(self, uid: str, kind: str, record_id: str, document: Mapping[str, Any]) -> None:
        self.collections.setdefault(f"/users/{uid}/{kind}", {})[record_id] = dict(document)

    def records(self, uid: str, kind: str) -> dict[str, dict[str, Any]]:
        return self.collections.get(f"/users/{uid}/{kind}", {})

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    def writes(self) -> list[tuple[str, str, Any]]:
        return [call for call in self.calls if call[0] != "GET"]

    async def request(
        self,
        method: str,
        path: str,
        *,
        payload: Mapping[str, Any] | None = None,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        self.calls.append((method, path, copy.deepcopy(dict(payload)) if payload is not None else None))
        if method in self.fail_methods or path in self.fail_paths:
            raise StoreUnavailableError(f"{method} {path} unavailable", status_code=503, path=path)

        parts = [unquote(part) for part in path.strip("/").split("/")]
        if len(parts) == 2:
            return self._document(method, path, payload)
        collection = "/" + "/".join(parts[:3])
        if len(parts) == 3:
            return await self._collection(method, collection, payload, params)
        return self._record(method, collection, parts[3], payload)

    def _document(self, method: str, path: str, payload: Mapping[str, Any] | None) -> Any:
        if method == "GET":
            if path not in self.documents:
                raise RecordNotFoundError(f"No document at {path}", path=path)
            return copy.deepcopy(self.documents[path])
        if method == "PUT":
            self.documents[path] = copy.deepcopy(dict(payload or {}))
            return None
        raise AssertionError(f"Unexpected {method} on {path}")

    async def _collection(
        self,
        method: str,
        path: str,
        payload: Mapping[str, Any] | None,
        params: Mapping[str, str] | None,
    ) -> Any:
        records = self.collections.setdefault(path, {})
        if method == "POST":
            self._next_id += 1
            new_id = f"gen-{self._next_id}"
            records[new_id] = copy.deepcopy(dict(payload or {}))
            return {"id": new_id}
        if method != "GET":
            raise AssertionError(f"Unexpected {method} on {path}")

        listed = [{**copy.deepcopy(doc), "id": record_id} for record_id, doc in records.items()]
        order_by = (params or {}).get("orderBy")
        if order_by:
            descending = (params or {}).get("direction") == "desc"
            listed.sort(key=lambda doc: str(doc.get(order_by) or ""), reverse=descending)
        if self.pause_lists:
            release = asyncio.Event()
            self.paused.append(_PausedList(path=path, release=release))
            await release.wait()
        return {"documents": listed}

    def _record(self, method: str, path: str, record_id: str, payload: Mapping[str, Any] | None) -> Any:
        records = self.collections.setdefault(path, {})
        if method == "GET":
            if record_id not in records:
                raise RecordNotFoundError(f"No document {record_id}", path=path)
            return {**copy.deepcopy(records[record_id]), "id": record_id}
        if method == "PUT":
            records[record_id] = copy.deepcopy(dict(payload or {}))
            return None
        if method == "PATCH":
            if record_id not in records:
                raise RecordNotFoundError(f"No document {record_id}", path=path)
            records[record_id].update(copy.deepcopy(dict(payload or {})))
            return None
        if method == "DELETE":
            if record_id not in records:
                raise RecordNotFoundError(f"No document {record_id}", path=path)
            del records[record_id]
            return None
        raise AssertionError(f"Unexpected {method} on {path}")


@dataclass
class FakeAuthProvider:
    """Auth collaborator with a fixed account table."""

    accounts: dict[str, tuple[str, Identity]] = field(default_factory=dict)
    current_identity: Identity | None = None
    _listeners: list[Callable[[Identity | None], None]] = field(default_factory=list)

    def add_account(self, email: str, password: str, uid: str, display_name: str | None = None) -> Identity:
        identity = Identity(uid=uid, email=email, display_name=display_name, id_token=f"token-{uid}")
        self.accounts[email] = (password, identity)
        return identity

    def add_listener(self, callback: Callable[[Identity | None], None]) -> Callable[[], None]:
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback)

    def _set(self, identity: Identity | None) -> None:
        self.current_identity = identity
        for callback in list(self._listeners):
            callback(identity)

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        if email not in self.accounts:
            raise AuthProviderError("unknown user", code="auth/user-not-found")
        expected, identity = self.accounts[email]
        if password != expected:
            raise AuthProviderError("bad password", code="auth/wrong-password")
        self._set(identity)
        return identity

    async def sign_in_with_idp(self, provider_id: str, id_token: str) -> Identity:
        if not id_token:
            raise AuthProviderError("cancelled", code="auth/popup-closed-by-user")
        identity = Identity(uid=f"{provider_id}:{id_token}", email=None, display_name="Federated")
        self._set(identity)
        return identity

    async def sign_up(self, email: str, password: str, display_name: str | None = None) -> Identity:
        if email in self.accounts:
            raise AuthProviderError("exists", code="auth/email-already-in-use")
        if len(password) < 6:
            raise AuthProviderError("weak", code="auth/weak-password")
        identity = self.add_account(email, password, f"uid-{len(self.accounts) + 1}", display_name)
        self._set(identity)
        return identity

    async def sign_out(self) -> None:
        self._set(None)


@pytest.fixture
def backend() -> FakeDocumentBackend:
    return FakeDocumentBackend()


@pytest.fixture
def store(backend: FakeDocumentBackend) -> RemoteStore:
    return RemoteStore(backend, clock=lambda: FIXED_NOW)


@pytest.fixture
def identity() -> Identity:
    return Identity(uid="user-1", email="driver@example.com", display_name="Driver", id_token="token-1")


@pytest.fixture
def tracker(store: RemoteStore) -> TrackerState:
    return TrackerState(store, cache=DatasetCache())
