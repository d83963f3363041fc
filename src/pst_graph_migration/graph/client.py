"""Async Microsoft Graph REST client."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from types import TracebackType
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from pst_graph_migration.config.settings import GraphSettings, RetrySettings
from pst_graph_migration.graph.auth import ClientCredentialTokenProvider, TokenProvider
from pst_graph_migration.graph.odata import FilterExpr
from pst_graph_migration.utils.retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

RETRYABLE_GET_STATUSES: frozenset[int] = frozenset({429, 500, 502, 503, 504})
RETRYABLE_POST_STATUSES: frozenset[int] = frozenset({429})


class GraphApiError(RuntimeError):
    """Raised when a Graph request fails (HTTP error or transport failure)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None,
        code: str | None = None,
        method: str | None = None,
        url: str | None = None,
        retry_after_s: float | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            status_code: HTTP status, or None for transport failures.
            code: Graph error code (e.g. ``ErrorInvalidIdMalformed``).
            method: HTTP method of the failed request.
            url: Request URL.
            retry_after_s: Server-requested delay from ``Retry-After``.
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.method = method
        self.url = url
        self.retry_after_s = retry_after_s

    def __str__(self) -> str:
        status = self.status_code if self.status_code is not None else "transport"
        code = f" {self.code}" if self.code else ""
        return f"Graph {self.method or ''} {self.url or ''} failed ({status}{code}): {self.message}"

    @classmethod
    def from_response(cls, response: httpx.Response) -> GraphApiError:
        """Build an error from a non-success Graph response.

        Args:
            response: HTTP response with a 4xx/5xx status.

        Returns:
            GraphApiError carrying status, code and message.
        """
        code: str | None = None
        message = response.reason_phrase or "request failed"
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            error = payload["error"]
            code = str(error["code"]) if error.get("code") else None
            message = str(error.get("message") or message)

        retry_after: float | None = None
        header = response.headers.get("Retry-After")
        if header:
            try:
                retry_after = float(header)
            except ValueError:
                retry_after = None

        return cls(
            message,
            status_code=response.status_code,
            code=code,
            method=response.request.method,
            url=str(response.request.url),
            retry_after_s=retry_after,
        )


class GraphApi(Protocol):
    """Operations the migration engine needs from Graph."""

    async def list_values(
        self,
        path: str,
        *,
        filter: FilterExpr | None = None,
        select: Sequence[str] | None = None,
        top: int | None = None,
        follow_pages: bool = True,
    ) -> list[dict[str, Any]]:
        """Return the ``value`` entries of a collection."""
        ...

    async def post(self, path: str, *, body: dict[str, Any]) -> dict[str, Any]:
        """Create a resource and return it."""
        ...


def user_path(mailbox: str) -> str:
    """Return the ``/users/{mailbox}`` prefix for a target mailbox."""
    return f"/users/{quote(mailbox, safe='@')}"


def _is_retryable_get(exc: BaseException) -> bool:
    """Return whether a failed GET should be retried."""
    if not isinstance(exc, GraphApiError):
        return False
    return exc.status_code is None or exc.status_code in RETRYABLE_GET_STATUSES


def _is_retryable_post(exc: BaseException) -> bool:
    """Return whether a failed POST should be retried.

    Only throttled requests are repeated; a POST that failed later may
    already have created the resource.
    """
    return isinstance(exc, GraphApiError) and exc.status_code in RETRYABLE_POST_STATUSES


def _retry_after(exc: BaseException) -> float | None:
    """Extract ``Retry-After`` from a Graph error."""
    return exc.retry_after_s if isinstance(exc, GraphApiError) else None


class GraphClient:
    """Thin async wrapper around the Graph REST endpoints used by the migration."""

    def __init__(
        self,
        *,
        http: httpx.AsyncClient,
        tokens: TokenProvider,
        retry: RetryPolicy | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            http: HTTP client with ``base_url`` pointing at the Graph version root.
            tokens: Bearer token source.
            retry: Backoff policy for transient failures.
        """
        self._http = http
        self._tokens = tokens
        self._retry = retry or RetryPolicy()

    @classmethod
    def from_settings(cls, graph: GraphSettings, retry: RetrySettings) -> GraphClient:
        """Create a client using the configured app registration.

        Args:
            graph: Graph settings.
            retry: Retry settings.

        Returns:
            GraphClient instance.
        """
        http = httpx.AsyncClient(
            base_url=graph.base_url,
            timeout=graph.timeout_seconds,
            headers={"Accept": "application/json"},
        )
        return cls(
            http=http,
            tokens=ClientCredentialTokenProvider(settings=graph),
            retry=RetryPolicy.from_settings(retry),
        )

    async def __aenter__(self) -> GraphClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def get(self, path: str, *, params: dict[str, str] | None = None) -> dict[str, Any]:
        """GET a single resource or page.

        Args:
            path: Path relative to the base URL, or an absolute ``@odata.nextLink``.
            params: Query parameters.

        Returns:
            Decoded JSON object.
        """

        async def _call() -> dict[str, Any]:
            """Issue one GET attempt."""
            return await self._send("GET", path, params=params)

        return await retry_async(
            _call,
            policy=self._retry,
            should_retry=_is_retryable_get,
            delay_hint=_retry_after,
        )

    async def list_values(
        self,
        path: str,
        *,
        filter: FilterExpr | None = None,
        select: Sequence[str] | None = None,
        top: int | None = None,
        follow_pages: bool = True,
    ) -> list[dict[str, Any]]:
        """Return collection entries, following ``@odata.nextLink`` pages.

        Args:
            path: Collection path.
            filter: Optional ``$filter`` expression.
            select: Optional ``$select`` properties.
            top: Optional ``$top`` page size.
            follow_pages: Whether to fetch pages after the first.

        Returns:
            All ``value`` entries, in server order.
        """
        params: dict[str, str] = {}
        if filter is not None:
            params["$filter"] = filter.render()
        if select:
            params["$select"] = ",".join(select)
        if top is not None:
            params["$top"] = str(top)

        values: list[dict[str, Any]] = []
        next_url: str | None = path
        next_params: dict[str, str] | None = params or None
        while next_url:
            page = await self.get(next_url, params=next_params)
            values.extend(v for v in page.get("value", []) or [] if isinstance(v, dict))
            if not follow_pages:
                break
            link = page.get("@odata.nextLink")
            next_url = str(link) if link else None
            next_params = None
        return values

    async def post(self, path: str, *, body: dict[str, Any]) -> dict[str, Any]:
        """POST a JSON body and return the created resource.

        Args:
            path: Collection path.
            body: JSON payload.

        Returns:
            Decoded JSON response (empty for 204).
        """

        async def _call() -> dict[str, Any]:
            """Issue one POST attempt."""
            return await self._send("POST", path, json=body)

        return await retry_async(
            _call,
            policy=self._retry,
            should_retry=_is_retryable_post,
            delay_hint=_retry_after,
        )

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one authenticated request.

        Args:
            method: HTTP method.
            url: Relative path or absolute URL.
            params: Query parameters.
            json: JSON body.

        Returns:
            Decoded JSON object.

        Raises:
            GraphApiError: On transport failures, error statuses or non-object bodies.
        """
        headers = {"Authorization": f"Bearer {await self._tokens.token()}"}
        try:
            response = await self._http.request(
                method,
                url,
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.TransportError as exc:
            raise GraphApiError(
                str(exc) or type(exc).__name__,
                status_code=None,
                method=method,
                url=url,
            ) from exc

        if response.is_error:
            raise GraphApiError.from_response(response)

        if response.status_code == 204 or not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise GraphApiError(
                "Response is not JSON",
                status_code=response.status_code,
                method=method,
                url=url,
            ) from exc
        if not isinstance(payload, dict):
            raise GraphApiError(
                f"Unexpected response body: {payload!r}",
                status_code=response.status_code,
                method=method,
                url=url,
            )
        return payload
