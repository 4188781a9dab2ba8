"""GitHub API client using httpx.

One :class:`GitHubClient` is opened per invocation and shared by every query
and mutation issued during it. The token is resolved once by the caller (see
:mod:`prthreads.auth`) and passed in explicitly; ``None`` means anonymous
access.

Endpoints can be redirected for test isolation:

- ``GITHUB_GRAPHQL_URL``: GraphQL endpoint (default ``https://api.github.com/graphql``)
- ``GITHUB_API_URL``: REST base URL (default ``https://api.github.com``)
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

import httpx

from prthreads.errors import ConnectFailed, GraphQLErrors, HttpStatusError, MalformedResponse

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)

_GITHUB_API_URL = "https://api.github.com"
_GITHUB_GRAPHQL_URL = "https://api.github.com/graphql"
_DEFAULT_TIMEOUT = 30.0

_HTTP_UNAUTHORIZED = 401
_HTTP_FORBIDDEN = 403


def graphql_url() -> str:
    """Return the GraphQL endpoint, honouring ``GITHUB_GRAPHQL_URL``."""
    return os.environ.get("GITHUB_GRAPHQL_URL") or _GITHUB_GRAPHQL_URL


def api_url() -> str:
    """Return the REST base URL, honouring ``GITHUB_API_URL``."""
    return (os.environ.get("GITHUB_API_URL") or _GITHUB_API_URL).rstrip("/")


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def _build_headers(token: str | None) -> dict[str, str]:
    """Build GitHub API request headers, omitting auth for anonymous access."""
    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
        "User-Agent": "prthreads",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _raise_for_status(response: httpx.Response) -> None:
    """Raise :exc:`HttpStatusError` for non-2xx responses."""
    if response.is_success:
        return

    try:
        body = response.json()
        msg = body.get("message", response.text)
    except Exception:
        msg = response.text

    status = response.status_code
    if status == _HTTP_UNAUTHORIZED:
        msg = f"GitHub API authentication failed: {msg}"
    elif status == _HTTP_FORBIDDEN:
        if "rate limit" in msg.lower():
            msg = f"GitHub API rate limit exceeded: {msg}"
        else:
            msg = f"GitHub API access forbidden: {msg}"
    else:
        msg = f"GitHub API error {status}: {msg}"
    raise HttpStatusError(msg, status_code=status)


def _decode_json(response: httpx.Response) -> Any:
    """Parse a JSON body, mapping decode failures to :exc:`MalformedResponse`."""
    try:
        return response.json()
    except ValueError as exc:
        msg = f"Response from {response.request.url} is not valid JSON: {exc}"
        raise MalformedResponse(msg) from exc


def check_graphql_errors(result: dict[str, Any]) -> None:
    """Raise :exc:`GraphQLErrors` if a GraphQL envelope carries errors."""
    errors = result.get("errors")
    if errors:
        messages = [e.get("message", str(e)) if isinstance(e, dict) else str(e) for e in errors]
        raise GraphQLErrors(messages)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class GitHubClient:
    """Async GitHub client for GraphQL queries and REST writes.

    Use as an async context manager so the underlying connection pool is
    closed when the invocation ends::

        async with GitHubClient(token) as client:
            data = await client.graphql(QUERY, {"owner": "o"})
    """

    def __init__(
        self,
        token: str | None,
        *,
        graphql_endpoint: str | None = None,
        rest_base: str | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self.graphql_endpoint = graphql_endpoint or graphql_url()
        self.rest_base = (rest_base or api_url()).rstrip("/")
        self._http = httpx.AsyncClient(headers=_build_headers(token), timeout=timeout)

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            msg = f"Request to {url} failed: {exc}"
            raise ConnectFailed(msg) from exc
        _raise_for_status(response)
        return response

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Execute a GraphQL query or mutation and return its ``data`` object.

        Raises:
            ConnectFailed: If the request could not be sent.
            HttpStatusError: On a non-2xx HTTP status.
            GraphQLErrors: If the response carries an ``errors`` array.
            MalformedResponse: If the body is not JSON or ``data`` is missing.
        """
        is_mutation = query.strip().lower().startswith("mutation")
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        logger.debug("GraphQL %s %s", "mutation" if is_mutation else "query", variables or {})
        response = await self._send("POST", self.graphql_endpoint, json=payload)
        result = _decode_json(response)
        if not isinstance(result, dict):
            msg = "GraphQL response is not a JSON object"
            raise MalformedResponse(msg)

        check_graphql_errors(result)

        data = result.get("data")
        if not isinstance(data, dict):
            msg = "GraphQL response has no data"
            raise MalformedResponse(msg)
        return data

    async def rest(self, endpoint: str, method: str = "GET", **kwargs: Any) -> Any:
        """Execute a REST API call and return the parsed JSON body.

        Args:
            endpoint: Path below the REST base (e.g. ``/repos/o/r/pulls/comments/1``).
            method: HTTP method (default ``GET``).
            **kwargs: Query parameters (GET) or JSON body fields (non-GET).

        Returns:
            Parsed JSON, or ``None`` for an empty body.
        """
        upper = method.upper()
        params = dict(kwargs) if upper == "GET" and kwargs else None
        json_body = dict(kwargs) if upper != "GET" and kwargs else None

        logger.debug("REST %s %s", upper, endpoint)
        response = await self._send(upper, f"{self.rest_base}{endpoint}", params=params, json=json_body)
        if not response.content:
            return None
        return _decode_json(response)
