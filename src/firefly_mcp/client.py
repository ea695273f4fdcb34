"""HTTP client, response envelope decoding and pagination for the Firefly III API."""

import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

import httpx


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 10

# Hard ceiling on pages fetched for a single listing
MAX_PAGES = 1000


class FireflyError(Exception):
    """Base error for all failures talking to the Firefly III API."""

    pass


class TransportError(FireflyError):
    """Connection failure or timeout before a response was received."""

    pass


class HttpStatusError(FireflyError):
    """Response carried an unexpected HTTP status and no API message."""

    def __init__(self, status_code: int):
        super().__init__(f"HTTP error: {status_code}")
        self.status_code = status_code


class ApiError(FireflyError):
    """Server reported a logical error in the envelope `message` field."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(f"API error: {message}")
        self.message = message
        self.status_code = status_code


class DecodeError(FireflyError):
    """Response body is not valid JSON or has an unexpected shape."""

    pass


class PaginationLimitError(FireflyError):
    """Server kept reporting more pages past the MAX_PAGES ceiling."""

    pass


@dataclass
class ApiConfig:
    """Connection settings for a Firefly III instance."""

    api_key: str
    api_url: str
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        self.api_url = self.api_url.rstrip("/")

    @classmethod
    def from_env(cls) -> "ApiConfig":
        """Build config from FIREFLY_API_KEY, FIREFLY_API_URL and FIREFLY_TIMEOUT.

        Raises:
            ValueError: If the key or URL is missing, or the timeout is not an integer.
        """
        api_key = os.environ.get("FIREFLY_API_KEY")
        if not api_key:
            raise ValueError(
                "FIREFLY_API_KEY environment variable is required. "
                "Create a personal access token in Firefly III under Options > Profile > OAuth"
            )
        api_url = os.environ.get("FIREFLY_API_URL")
        if not api_url:
            raise ValueError(
                "FIREFLY_API_URL environment variable is required, "
                "e.g. https://firefly.example.com/api/v1"
            )
        timeout = os.environ.get("FIREFLY_TIMEOUT")
        try:
            timeout_seconds = int(timeout) if timeout else DEFAULT_TIMEOUT_SECONDS
        except ValueError as e:
            raise ValueError(f"FIREFLY_TIMEOUT must be an integer, got {timeout!r}") from e
        return cls(api_key=api_key, api_url=api_url, timeout_seconds=timeout_seconds)


@dataclass
class Pagination:
    current_page: int = 0
    total_pages: int = 0
    total: int = 0


@dataclass
class Envelope:
    """Decoded `{data, message, meta.pagination}` response envelope."""

    data: Any = None
    message: str = ""
    pagination: Pagination = field(default_factory=Pagination)


def _error_message(content: bytes) -> str:
    """Extract a non-empty `message` from an error body, or return ""."""
    try:
        body = json.loads(content)
    except ValueError:
        return ""
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str):
            return message
    return ""


def decode_body(status_code: int, content: bytes, ok_status: int = 200) -> Any:
    """Check status and `message`, then return the parsed JSON body.

    Args:
        status_code: Observed HTTP status.
        content: Raw response body.
        ok_status: Status that denotes success for this request.

    Returns:
        Parsed JSON, or None when ok_status is 204 (body is not read).

    Raises:
        ApiError: Body carries a non-empty `message`, whatever the status.
        HttpStatusError: Status differs from ok_status and no message is present.
        DecodeError: Body is not valid JSON.
    """
    if status_code != ok_status:
        message = _error_message(content) if content else ""
        if message:
            logger.warning("API error %d: %s", status_code, message)
            raise ApiError(message, status_code)
        logger.warning("Unexpected status %d (expected %d)", status_code, ok_status)
        raise HttpStatusError(status_code)

    if ok_status == 204:
        return None

    try:
        body = json.loads(content)
    except ValueError as e:
        logger.error("Invalid JSON response: %s (preview %r)", e, content[:200])
        raise DecodeError(f"Invalid JSON response: {e}") from e

    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message:
            logger.warning("API returned error message: %s", message)
            raise ApiError(message, status_code)

    return body


def _decode_pagination(body: dict[str, Any]) -> Pagination:
    meta = body.get("meta") or {}
    if not isinstance(meta, dict):
        raise DecodeError("Invalid meta field in response")
    raw = meta.get("pagination") or {}
    if not isinstance(raw, dict):
        raise DecodeError("Invalid pagination field in response")
    try:
        return Pagination(
            current_page=int(raw.get("current_page", 0)),
            total_pages=int(raw.get("total_pages", 0)),
            total=int(raw.get("total", 0)),
        )
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Invalid pagination values: {e}") from e


def decode_envelope(status_code: int, content: bytes, ok_status: int = 200) -> Envelope:
    """Decode a response into an Envelope.

    Same status and message rules as decode_body; additionally requires the
    body to be a JSON object.
    """
    body = decode_body(status_code, content, ok_status)
    if ok_status == 204:
        return Envelope()
    if not isinstance(body, dict):
        raise DecodeError(f"Expected JSON object, got {type(body).__name__}")
    message = body.get("message")
    return Envelope(
        data=body.get("data"),
        message=message if isinstance(message, str) else "",
        pagination=_decode_pagination(body),
    )


def require_id(envelope: Envelope) -> str:
    """Return `data.id` of a create/update response.

    Raises:
        DecodeError: If data is not an object or carries no id.
    """
    if not isinstance(envelope.data, dict):
        raise DecodeError("Invalid response format: missing data field")
    resource_id = envelope.data.get("id")
    if resource_id in (None, ""):
        raise DecodeError("Invalid response format: missing resource id")
    return str(resource_id)


def decode_items(items: list[Any], factory: Callable[[dict[str, Any]], T]) -> list[T]:
    """Convert raw item dicts into typed records.

    Raises:
        DecodeError: If an item is not an object or the factory rejects it.
    """
    result: list[T] = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise DecodeError(f"Item {i} is {type(item).__name__}, expected object")
        try:
            result.append(factory(item))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("Failed to decode item %d: %s", i, e)
            raise DecodeError(f"Failed to decode item {i}: {e}") from e
    return result


class FireflyClient:
    """Thin async client over the Firefly III REST API."""

    def __init__(
        self,
        config: ApiConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize client.

        Args:
            config: API key, base URL and timeout.
            transport: Optional httpx transport (tests pass httpx.MockTransport).
        """
        self.config = config
        self._transport = transport

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    async def _send(
        self,
        method: str,
        path: str,
        payload: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = f"{self.config.api_url}{path}"
        start_time = time.monotonic()

        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=float(self.config.timeout_seconds),
        ) as client:
            try:
                response = await client.request(
                    method,
                    url,
                    json=payload,
                    params=params,
                    headers=self.headers,
                )
            except httpx.TimeoutException as e:
                logger.error("%s %s timed out after %ss", method, path, self.config.timeout_seconds)
                raise TransportError(f"Request timed out: {method} {path}") from e
            except httpx.HTTPError as e:
                logger.error("%s %s failed: %s", method, path, e)
                raise TransportError(f"HTTP error during request: {e}") from e

        logger.debug(
            "%s %s -> %d in %.0fms (%d bytes)",
            method,
            path,
            response.status_code,
            (time.monotonic() - start_time) * 1000,
            len(response.content),
        )
        return response

    async def request(
        self,
        method: str,
        path: str,
        payload: Any = None,
        ok_status: int = 200,
        params: dict[str, Any] | None = None,
    ) -> Envelope:
        """Send a request and decode the response envelope.

        Raises:
            TransportError, HttpStatusError, ApiError, DecodeError.
        """
        response = await self._send(method, path, payload, params)
        return decode_envelope(response.status_code, response.content, ok_status)

    async def get(self, path: str, **params: Any) -> Envelope:
        return await self.request("GET", path, params=params or None)

    async def get_json(self, path: str, **params: Any) -> Any:
        """GET an endpoint that answers with a bare JSON value instead of an envelope."""
        response = await self._send("GET", path, params=params or None)
        return decode_body(response.status_code, response.content, 200)

    async def post(self, path: str, payload: Any) -> Envelope:
        return await self.request("POST", path, payload=payload)

    async def put(self, path: str, payload: Any) -> Envelope:
        return await self.request("PUT", path, payload=payload)

    async def delete(self, path: str) -> Envelope:
        return await self.request("DELETE", path, ok_status=204)

    async def fetch_paginated(self, path: str, **params: Any) -> list[Any]:
        """Fetch every page of a listing endpoint, starting at page 1.

        Stops on an empty page or when the server reports current_page >=
        total_pages. Any error aborts the whole fetch.

        Args:
            path: Resource path, e.g. "/accounts".
            **params: Fixed query parameters sent with every page.

        Returns:
            All items in arrival order.

        Raises:
            PaginationLimitError: If MAX_PAGES pages were fetched and the
                server still reports more.
        """
        items: list[Any] = []
        page = 1

        while True:
            envelope = await self.get(path, **params, page=page)

            data = envelope.data
            if not isinstance(data, list):
                logger.error("Page %d of %s: data is %s, expected list", page, path, type(data).__name__)
                raise DecodeError(f"Invalid data format in response from {path}")

            logger.debug(
                "Page %d of %s: %d items (current_page=%d, total_pages=%d)",
                page,
                path,
                len(data),
                envelope.pagination.current_page,
                envelope.pagination.total_pages,
            )

            if not data:
                break

            items.extend(data)

            if envelope.pagination.current_page >= envelope.pagination.total_pages:
                break

            if page >= MAX_PAGES:
                logger.warning(
                    "Pagination safety limit of %d pages reached for %s (server reports %d pages)",
                    MAX_PAGES,
                    path,
                    envelope.pagination.total_pages,
                )
                raise PaginationLimitError(
                    f"Pagination safety limit of {MAX_PAGES} pages reached for {path}"
                )

            page += 1

        logger.debug("Fetched %d items from %s in %d pages", len(items), path, page)
        return items
