"""
Remote data gateway.

Translates select/insert/update/delete calls with equality and null
filters into PostgREST requests. Every call carries the public `apikey`
header plus a bearer credential: the signed-in user's access token, or the
anonymous key when nobody is signed in.

Backend rejections come back as a `GatewayResult` with `error` set; only
transport failures (connection errors, timeouts) raise.
"""

import time
from typing import Any, Callable, List, Optional, Sequence, Tuple

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict


TokenProvider = Callable[[], Optional[str]]


class GatewayTransportError(Exception):
    """The request never produced an HTTP response."""


class GatewayError(BaseModel):
    """PostgREST error body, as returned by the backend."""

    message: str
    code: Optional[str] = None
    details: Optional[str] = None
    hint: Optional[str] = None
    status_code: Optional[int] = None


class GatewayResult(BaseModel):
    """`(data, error)` pair. Exactly one of them is meaningful."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    data: Any = None
    error: Optional[GatewayError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Filter(BaseModel):
    """A single `column=op.value` predicate."""

    model_config = ConfigDict(frozen=True)

    column: str
    operator: str
    value: str

    def to_param(self) -> Tuple[str, str]:
        return self.column, f"{self.operator}.{self.value}"


class Order(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: str
    ascending: bool = True

    def to_param(self) -> Tuple[str, str]:
        return "order", f"{self.column}.{'asc' if self.ascending else 'desc'}"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def eq(column: str, value: Any) -> Filter:
    return Filter(column=column, operator="eq", value=_format_value(value))


def is_null(column: str) -> Filter:
    return Filter(column=column, operator="is", value="null")


def _error_from_response(response: httpx.Response) -> GatewayError:
    """Build a GatewayError from a non-2xx response, whatever its body."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        message = body.get("message") or body.get("msg") or body.get("error") or response.reason_phrase
        return GatewayError(
            message=str(message),
            code=str(body["code"]) if body.get("code") is not None else None,
            details=str(body["details"]) if body.get("details") is not None else None,
            hint=str(body["hint"]) if body.get("hint") is not None else None,
            status_code=response.status_code,
        )

    return GatewayError(
        message=response.text or response.reason_phrase or f"HTTP {response.status_code}",
        status_code=response.status_code,
    )


class RemoteDataGateway:
    """
    Thin PostgREST client.

    No caching and no retries: each call is exactly one HTTP request.
    CRUD calls have no timeout of their own; `select` accepts a deadline
    covering the whole exchange (headers and body) for callers that need one.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        token_provider: Optional[TokenProvider] = None,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the gateway.

        Args:
            base_url: Service URL (without the `/rest/v1` suffix)
            anon_key: Public anonymous key
            token_provider: Returns the current user's access token, or None
            client: Optional pre-configured httpx client (tests inject a mock transport)
        """
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.token_provider = token_provider or (lambda: None)
        self.client = client or httpx.Client(timeout=None)

    def close(self) -> None:
        self.client.close()

    def _url(self, collection: str) -> str:
        return f"{self.base_url}/rest/v1/{collection}"

    def _headers(self, extra: Optional[dict] = None) -> dict:
        token = self.token_provider() or self.anon_key
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token}",
        }
        if extra:
            headers.update(extra)
        return headers

    def _send(
        self,
        method: str,
        collection: str,
        params: List[Tuple[str, str]],
        headers: dict,
        json_body: Any = None,
        deadline: Optional[float] = None,
    ) -> httpx.Response:
        try:
            if deadline is None:
                response = self.client.request(
                    method,
                    self._url(collection),
                    params=params,
                    headers=headers,
                    json=json_body,
                )
            else:
                response = self._request_within(
                    deadline,
                    method,
                    self._url(collection),
                    params=params,
                    headers=headers,
                    json=json_body,
                )
        except httpx.RequestError as e:
            logger.error(f"{method} {collection} failed: {e!r}")
            raise GatewayTransportError(f"{method} {collection}: {e}") from e

        logger.debug(f"{method} {collection} -> {response.status_code}")
        return response

    def _request_within(self, seconds: float, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Send a request that must complete, body included, within `seconds`.

        httpx timeouts bound each connect/read/write separately, so a body
        trickling in byte by byte would never trip them. The body is streamed
        and the elapsed time checked after every chunk instead.

        Raises:
            httpx.ReadTimeout: If the deadline passes before the body is complete
        """
        started = time.monotonic()
        chunks = []
        with self.client.stream(method, url, timeout=seconds, **kwargs) as response:
            for chunk in response.iter_raw():
                chunks.append(chunk)
                if time.monotonic() - started > seconds:
                    break
            if time.monotonic() - started > seconds:
                raise httpx.ReadTimeout(
                    f"No complete response within {seconds}s", request=response.request
                )

        return httpx.Response(
            response.status_code,
            headers=response.headers,
            content=b"".join(chunks),
            request=response.request,
        )

    def _decode(self, response: httpx.Response) -> Tuple[Any, Optional[GatewayError]]:
        if not response.content:
            return None, None
        try:
            return response.json(), None
        except ValueError:
            return None, GatewayError(
                message="Malformed response body",
                status_code=response.status_code,
            )

    def select(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order: Optional[Order] = None,
        limit: Optional[int] = None,
        single: bool = False,
        deadline: Optional[float] = None,
    ) -> GatewayResult:
        """
        Read rows from a collection.

        Args:
            collection: Collection (table or view) name
            filters: Equality / null predicates, all ANDed
            columns: Column list for `select=`
            order: Optional ordering
            limit: Optional row cap
            single: Return the first row (or None) instead of a list
            deadline: Seconds the whole request may take; overrun raises
                GatewayTransportError like any other timeout

        Returns:
            GatewayResult with a list of row dicts (or one dict when `single`)
        """
        params = [("select", columns)]
        params.extend(f.to_param() for f in filters)
        if order is not None:
            params.append(order.to_param())
        if limit is not None:
            params.append(("limit", str(limit)))

        response = self._send("GET", collection, params, self._headers(), deadline=deadline)
        if not response.is_success:
            return GatewayResult(error=_error_from_response(response))

        data, error = self._decode(response)
        if error is not None:
            return GatewayResult(error=error)
        if not isinstance(data, list):
            return GatewayResult(error=GatewayError(
                message="Expected a list of rows", status_code=response.status_code
            ))
        if single:
            return GatewayResult(data=data[0] if data else None)
        return GatewayResult(data=data)

    def insert(self, collection: str, row: dict, return_representation: bool = True) -> GatewayResult:
        """
        Insert one row.

        With `return_representation` the created row (with server-assigned
        id and timestamps) comes back as `data`; otherwise `data` is None.
        """
        prefer = "return=representation" if return_representation else "return=minimal"
        headers = self._headers({"Content-Type": "application/json", "Prefer": prefer})
        response = self._send("POST", collection, [], headers, json_body=row)
        if not response.is_success:
            return GatewayResult(error=_error_from_response(response))
        if not return_representation:
            return GatewayResult()

        data, error = self._decode(response)
        if error is not None:
            return GatewayResult(error=error)
        if isinstance(data, list):
            data = data[0] if data else None
        return GatewayResult(data=data)

    def update(self, collection: str, values: dict, filters: Sequence[Filter]) -> GatewayResult:
        """Patch every row matching `filters`; `data` is the list of updated rows."""
        headers = self._headers({"Content-Type": "application/json", "Prefer": "return=representation"})
        params = [f.to_param() for f in filters]
        response = self._send("PATCH", collection, params, headers, json_body=values)
        if not response.is_success:
            return GatewayResult(error=_error_from_response(response))

        data, error = self._decode(response)
        if error is not None:
            return GatewayResult(error=error)
        return GatewayResult(data=data or [])

    def delete(self, collection: str, filters: Sequence[Filter]) -> GatewayResult:
        """Delete every row matching `filters`."""
        params = [f.to_param() for f in filters]
        response = self._send("DELETE", collection, params, self._headers())
        if not response.is_success:
            return GatewayResult(error=_error_from_response(response))
        return GatewayResult()
