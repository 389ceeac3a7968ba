"""
Shared fixtures: an in-memory stand-in for the hosted backend.

`FakeBackend` answers the PostgREST (`/rest/v1`) and GoTrue (`/auth/v1`)
requests the client makes, through `httpx.MockTransport`, and records
every request so tests can assert on what was (and was not) sent.
"""

import datetime as dt
import itertools
import json
import time
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from practice_tracker.gateway import RemoteDataGateway
from practice_tracker.identity import IdentityProvider
from practice_tracker.storage import MemoryStorage
from practice_tracker.store import PracticeStore


BASE_URL = "https://test-project.supabase.co"
ANON_KEY = "anon-key"

COLLECTIONS = ["profiles", "athletes", "sessions", "session_drills", "goals", "drill_frequency"]


def _fmt(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class FailureRule:
    def __init__(self, method: str, collection: str, match: Callable[[Any], bool],
                 status: int, message: str, times: Optional[int]):
        self.method = method
        self.collection = collection
        self.match = match
        self.status = status
        self.message = message
        self.times = times


class FakeBackend:
    """In-memory PostgREST + GoTrue."""

    def __init__(self):
        self.tables: Dict[str, List[dict]] = {name: [] for name in COLLECTIONS}
        self.users: Dict[str, dict] = {}
        self.refresh_tokens: Dict[str, str] = {}
        self.requests: List[httpx.Request] = []
        self.failures: List[FailureRule] = []
        self.timeouts: List[tuple] = []
        self.confirm_email = False
        self._ids = itertools.count(1)
        self._clock = dt.datetime(2026, 1, 1, tzinfo=dt.timezone.utc)

    # ===== Setup helpers =====

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handle))

    def next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def _timestamp(self) -> str:
        self._clock += dt.timedelta(seconds=1)
        return self._clock.isoformat()

    def seed(self, collection: str, **row) -> dict:
        if collection != "drill_frequency":
            row.setdefault("id", self.next_id(collection.rstrip("s")))
            row.setdefault("created_at", self._timestamp())
        self._apply_defaults(collection, row)
        self.tables[collection].append(row)
        return row

    def add_user(self, email: str = "parent@example.com", password: str = "secret1",
                 is_pro: bool = False, pro_expires_at: Optional[str] = None,
                 with_profile: bool = True) -> str:
        user_id = self.next_id("user")
        self.users[email] = {"id": user_id, "password": password}
        if with_profile:
            self.seed("profiles", id=user_id, is_pro=is_pro, pro_expires_at=pro_expires_at)
        return user_id

    def fail_on(self, method: str, collection: str, match: Callable[[Any], bool] = lambda body: True,
                status: int = 400, message: str = "permission denied", times: Optional[int] = 1) -> None:
        self.failures.append(FailureRule(method, collection, match, status, message, times))

    def timeout_on(self, method: str, collection: str) -> None:
        self.timeouts.append((method, collection))

    # ===== Inspection helpers =====

    def rows(self, collection: str, **filters) -> List[dict]:
        return [
            row for row in self.tables[collection]
            if all(row.get(k) == v for k, v in filters.items())
        ]

    def rest_requests(self, method: Optional[str] = None, collection: Optional[str] = None) -> List[httpx.Request]:
        found = []
        for request in self.requests:
            path = request.url.path
            if not path.startswith("/rest/v1/"):
                continue
            if method and request.method != method:
                continue
            if collection and path != f"/rest/v1/{collection}":
                continue
            found.append(request)
        return found

    # ===== Dispatch =====

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/rest/v1/"):
            return self._handle_rest(request, path[len("/rest/v1/"):])
        if path.startswith("/auth/v1/"):
            return self._handle_auth(request, path[len("/auth/v1/"):])
        return httpx.Response(404, json={"message": "not found"})

    def _body(self, request: httpx.Request) -> Any:
        if not request.content:
            return None
        return json.loads(request.content)

    # ===== PostgREST =====

    def _apply_defaults(self, collection: str, row: dict) -> None:
        if collection == "athletes":
            row.setdefault("archived_at", None)
        elif collection == "sessions":
            row.setdefault("note", None)
            row.setdefault("reflection", None)
        elif collection == "goals":
            row.setdefault("is_active", True)
            row.setdefault("linked_drill_id", None)
        elif collection == "profiles":
            row.setdefault("is_pro", False)
            row.setdefault("pro_expires_at", None)
            row.setdefault("stripe_customer_id", None)

    def _matches(self, row: dict, filters: List[tuple]) -> bool:
        for column, op, value in filters:
            if op == "eq" and _fmt(row.get(column)) != value:
                return False
            if op == "is" and value == "null" and row.get(column) is not None:
                return False
        return True

    def _parse_query(self, request: httpx.Request):
        filters, order, limit = [], None, None
        for key, value in request.url.params.multi_items():
            if key == "select":
                continue
            if key == "order":
                column, direction = value.rsplit(".", 1)
                order = (column, direction == "desc")
            elif key == "limit":
                limit = int(value)
            else:
                op, _, operand = value.partition(".")
                filters.append((key, op, operand))
        return filters, order, limit

    def _injected_failure(self, request: httpx.Request, collection: str, body: Any) -> Optional[httpx.Response]:
        for method, name in self.timeouts:
            if method == request.method and name == collection:
                raise httpx.ReadTimeout("timed out", request=request)
        for rule in self.failures:
            if rule.method != request.method or rule.collection != collection:
                continue
            if rule.times == 0 or not rule.match(body):
                continue
            if rule.times is not None:
                rule.times -= 1
            return httpx.Response(rule.status, json={
                "message": rule.message, "code": "42501", "details": None, "hint": None,
            })
        return None

    def _handle_rest(self, request: httpx.Request, collection: str) -> httpx.Response:
        if collection not in self.tables:
            return httpx.Response(404, json={"message": f"relation \"{collection}\" does not exist", "code": "42P01"})

        body = self._body(request)
        failure = self._injected_failure(request, collection, body)
        if failure is not None:
            return failure

        filters, order, limit = self._parse_query(request)

        if request.method == "GET":
            rows = [dict(r) for r in self.tables[collection] if self._matches(r, filters)]
            if order:
                column, descending = order
                rows.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=descending)
            if limit is not None:
                rows = rows[:limit]
            return httpx.Response(200, json=rows)

        if request.method == "POST":
            payloads = body if isinstance(body, list) else [body]
            created = [self.seed(collection, **payload) for payload in payloads]
            if "return=representation" in request.headers.get("Prefer", ""):
                return httpx.Response(201, json=[dict(r) for r in created])
            return httpx.Response(201)

        if request.method == "PATCH":
            updated = []
            for row in self.tables[collection]:
                if self._matches(row, filters):
                    row.update(body)
                    updated.append(dict(row))
            return httpx.Response(200, json=updated)

        if request.method == "DELETE":
            self.tables[collection] = [r for r in self.tables[collection] if not self._matches(r, filters)]
            return httpx.Response(204)

        return httpx.Response(405, json={"message": "method not allowed"})

    # ===== GoTrue =====

    def _session_body(self, email: str) -> dict:
        user = self.users[email]
        refresh = self.next_id("refresh")
        self.refresh_tokens[refresh] = email
        return {
            "access_token": f"token-{user['id']}-{refresh}",
            "refresh_token": refresh,
            "token_type": "bearer",
            "expires_in": 3600,
            "expires_at": int(time.time()) + 3600,
            "user": self._user_body(email),
        }

    def _user_body(self, email: str) -> dict:
        user = self.users[email]
        return {
            "id": user["id"],
            "email": email,
            "identities": [{"id": user["id"], "provider": "email"}],
        }

    def _handle_auth(self, request: httpx.Request, endpoint: str) -> httpx.Response:
        body = self._body(request) or {}
        grant_type = request.url.params.get("grant_type")

        if endpoint == "token" and grant_type == "password":
            user = self.users.get(body.get("email"))
            if user is None or user["password"] != body.get("password"):
                return httpx.Response(400, json={
                    "error": "invalid_grant", "error_description": "Invalid login credentials",
                })
            return httpx.Response(200, json=self._session_body(body["email"]))

        if endpoint == "token" and grant_type == "refresh_token":
            email = self.refresh_tokens.pop(body.get("refresh_token"), None)
            if email is None:
                return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid Refresh Token"})
            return httpx.Response(200, json=self._session_body(email))

        if endpoint == "signup":
            email = body.get("email")
            if email in self.users:
                # Anti-enumeration: an obfuscated user with no identities
                return httpx.Response(200, json={"id": self.next_id("user"), "email": email, "identities": []})
            self.add_user(email, body.get("password"))
            if self.confirm_email:
                return httpx.Response(200, json=self._user_body(email))
            return httpx.Response(200, json=self._session_body(email))

        if endpoint == "logout":
            return httpx.Response(204)

        return httpx.Response(404, json={"msg": "not found"})


class TrickleStream(httpx.SyncByteStream):
    """Response body delivered one byte at a time, pausing before each."""

    def __init__(self, body: bytes, delay: float):
        self.body = body
        self.delay = delay

    def __iter__(self):
        for i in range(len(self.body)):
            time.sleep(self.delay)
            yield self.body[i:i + 1]


# ===== Fixtures =====


@pytest.fixture
def backend():
    """Fresh in-memory backend."""
    return FakeBackend()


@pytest.fixture
def http_client(backend):
    """HTTP client routed to the in-memory backend."""
    client = backend.client()
    yield client
    client.close()


@pytest.fixture
def trickling_client():
    """Factory for clients whose every response body arrives slowly."""
    clients = []

    def make(payload: Any, delay: float = 0.05) -> httpx.Client:
        body = json.dumps(payload).encode()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                headers={"Content-Type": "application/json"},
                stream=TrickleStream(body, delay),
            )

        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield make
    for client in clients:
        client.close()


@pytest.fixture
def storage():
    """Empty key-value storage."""
    return MemoryStorage()


@pytest.fixture
def identity(backend, http_client, storage):
    """Identity provider talking to the in-memory backend."""
    return IdentityProvider(BASE_URL, ANON_KEY, storage, client=http_client)


@pytest.fixture
def gateway(http_client, identity):
    """Gateway authorised by whoever is signed in through `identity`."""
    return RemoteDataGateway(BASE_URL, ANON_KEY, token_provider=lambda: identity.access_token, client=http_client)


@pytest.fixture
def store(gateway, storage):
    """Store with no athlete loaded yet."""
    return PracticeStore(gateway, storage)
