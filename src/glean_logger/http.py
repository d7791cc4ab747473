"""Logging for outgoing HTTP calls.

ApiLogger records request, response and error events through a server sink.
LoggedClient wraps an ``httpx.AsyncClient`` so every call gets an
``X-Request-ID`` header and a request/response pair in the log. Response
bodies are only captured when the redaction policy allows it:

1. body logging is enabled
2. the status code is not in ``skip_status_codes``
3. the content type is loggable and not binary
4. the declared Content-Length is within twice ``max_size``
5. the URL is sampled
6. the body arrives within ``read_timeout``

Checks 1-5 use only the status and headers, so nothing is read for capture
before they pass.

Captured JSON is parsed and redacted; anything else is redacted as text and
truncated. Body capture never raises into the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from typing import TYPE_CHECKING, Any

import httpx

from glean_logger.redaction import (
    DEFAULT_POLICY,
    BodyKind,
    classify_body,
    is_body_loggable,
    redact,
    redact_headers,
    redact_string,
    should_capture_body,
    should_skip_for_length,
    truncate_body,
)
from glean_logger.server import ServerLogger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from glean_logger.redaction import RedactionPolicy

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def generate_request_id() -> str:
    return str(uuid.uuid4())


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class ApiLogger:
    """Emits API request/response/error events with redacted headers and bodies.

    Args:
        sink: Leveled logger receiving the events (default: ServerLogger("api"))
        policy: Redaction policy (default: DEFAULT_POLICY)
    """

    def __init__(self, sink: Any = None, policy: RedactionPolicy | None = None) -> None:
        self.sink = sink if sink is not None else ServerLogger("glean_logger.api")
        self.policy = policy or DEFAULT_POLICY

    def log_request(
        self,
        request_id: str,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: Any = None,
    ) -> None:
        context: dict[str, Any] = {
            "type": "request",
            "request_id": request_id,
            "method": method,
            "url": url,
            "headers": redact_headers(headers, self.policy),
        }
        if body is not None and self.policy.verbose:
            context["request_body"] = redact(body, self.policy)
        self.sink.info(f"API Request: {method} {url}", context)

    def log_response(
        self,
        request_id: str,
        method: str,
        url: str,
        status_code: int,
        duration_ms: float,
        headers: dict[str, str] | None = None,
        *,
        body: Any = None,
        body_skipped: str | None = None,
    ) -> None:
        context: dict[str, Any] = {
            "type": "response",
            "request_id": request_id,
            "method": method,
            "url": url,
            "status": status_code,
            "duration_ms": duration_ms,
            "headers": redact_headers(headers, self.policy),
        }
        if body is not None:
            context["response_body"] = body
        elif body_skipped and self.policy.verbose:
            context["body_skipped"] = body_skipped

        message = f"API Response: {method} {url} {status_code}"
        if status_code >= 500:
            self.sink.error(message, context)
        elif status_code >= 400:
            self.sink.warn(message, context)
        else:
            self.sink.info(message, context)

    def log_error(self, error: BaseException, context: dict[str, Any] | None = None) -> None:
        fields = dict(context or {})
        fields.update(
            type="error",
            error_name=type(error).__name__,
            error_message=str(error),
        )
        self.sink.error(f"API Error: {error}", redact(fields, self.policy))


class LoggedClient:
    """An ``httpx.AsyncClient`` wrapper that logs every call.

    Args:
        client: Client to wrap (default: a new AsyncClient, closed by aclose)
        api_logger: Event emitter (default: ApiLogger with ``policy``)
        policy: Redaction policy, used when api_logger is not given
        rng: Source of floats in [0, 1) for body sampling

    Example:
        >>> async with create_logged_client() as client:
        ...     response = await client.get("https://api.example.com/users")
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        api_logger: ApiLogger | None = None,
        policy: RedactionPolicy | None = None,
        rng: Callable[[], float] | None = None,
    ) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()
        self.api_logger = api_logger or ApiLogger(policy=policy)
        self.rng = rng

    @property
    def policy(self) -> RedactionPolicy:
        return self.api_logger.policy

    async def __aenter__(self) -> LoggedClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def request(self, method: str, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        """Send a request, logging it and its response.

        Accepts the keyword arguments of ``httpx.AsyncClient.build_request``.
        The returned response is fully read. Whether the body is captured is
        decided from the status and headers before reading; a capture read
        that outlasts ``read_timeout`` is logged without a body while the read
        continues for the caller.

        Raises:
            httpx.HTTPError: Transport failures, after they are logged
        """
        method = method.upper()
        request_id = generate_request_id()

        headers = httpx.Headers(kwargs.pop("headers", None))
        headers[REQUEST_ID_HEADER] = request_id
        request = self.client.build_request(method, url, headers=headers, **kwargs)
        url_text = str(request.url)

        self.api_logger.log_request(
            request_id,
            method,
            url_text,
            dict(request.headers),
            body=kwargs.get("json"),
        )

        started = time.perf_counter()
        logged = False
        try:
            response = await self.client.send(request, stream=True)
            duration_ms = _elapsed_ms(started)
            skipped = self._skip_reason(url_text, response)

            body_read = asyncio.ensure_future(response.aread())
            try:
                if skipped is None:
                    try:
                        await asyncio.wait_for(asyncio.shield(body_read), self.policy.read_timeout)
                    except TimeoutError:
                        skipped = "read timeout"
                        self._log_response(
                            request_id, method, url_text, response, duration_ms, None, skipped
                        )
                        logged = True
                await body_read
            finally:
                if not body_read.done():
                    body_read.cancel()
                await response.aclose()
        except httpx.HTTPError as e:
            self.api_logger.log_error(
                e,
                {
                    "request_id": request_id,
                    "method": method,
                    "url": url_text,
                    "duration_ms": _elapsed_ms(started),
                },
            )
            raise

        if not logged:
            body = None
            if skipped is None:
                body, skipped = self._read_body(url_text, response)
            self._log_response(
                request_id, method, url_text, response, duration_ms, body, skipped
            )
        return response

    async def get(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    # -------------------------------------------------------------------------
    # Body capture
    # -------------------------------------------------------------------------

    def _log_response(
        self,
        request_id: str,
        method: str,
        url: str,
        response: httpx.Response,
        duration_ms: float,
        body: Any = None,
        skipped: str | None = None,
    ) -> None:
        self.api_logger.log_response(
            request_id,
            method,
            url,
            response.status_code,
            duration_ms,
            dict(response.headers),
            body=body,
            body_skipped=skipped,
        )

    def _skip_reason(self, url: str, response: httpx.Response) -> str | None:
        """Decide from status and headers alone; None means read and capture."""
        policy = self.policy
        content_type = response.headers.get("content-type")

        if not policy.body_enabled:
            return "disabled"
        if response.status_code in policy.skip_status_codes:
            return f"status {response.status_code}"
        if not is_body_loggable(content_type, policy):
            return "content type excluded"
        if classify_body(content_type) is BodyKind.BINARY:
            return "binary content"
        if should_skip_for_length(response.headers.get("content-length"), policy):
            return "content too large"
        if not should_capture_body(url, policy, self.rng):
            return "not sampled"
        return None

    def _read_body(self, url: str, response: httpx.Response) -> tuple[Any, str | None]:
        """Return (body, None) for a read response, else (None, reason)."""
        policy = self.policy
        try:
            text = response.text
        except (UnicodeDecodeError, LookupError) as e:
            logger.debug("Could not decode response body from %s: %s", url, e)
            return None, "undecodable"
        if not text:
            return None, "empty"

        if classify_body(response.headers.get("content-type")) is BodyKind.JSON:
            try:
                data = json.loads(text)
            except ValueError:
                logger.debug("Malformed JSON body from %s, logging as text", url)
            else:
                redacted = redact(data, policy)
                serialized = json.dumps(redacted, default=str)
                if len(serialized) > policy.max_size:
                    return truncate_body(serialized, policy.max_size), None
                return redacted, None

        return truncate_body(redact_string(text, policy), policy.max_size), None


def create_logged_client(
    client: httpx.AsyncClient | None = None,
    api_logger: ApiLogger | None = None,
    policy: RedactionPolicy | None = None,
    rng: Callable[[], float] | None = None,
) -> LoggedClient:
    return LoggedClient(client, api_logger=api_logger, policy=policy, rng=rng)


async def time_api_call(
    operation: str,
    fn: Callable[[], Awaitable[Any]],
    logger: Any = None,
    context: dict[str, Any] | None = None,
) -> Any:
    """Await ``fn()`` and log how long it took.

    Args:
        operation: Name recorded on every event
        fn: Zero-argument coroutine function performing the call
        logger: Leveled sink (default: ServerLogger("glean_logger.api"))
        context: Extra fields for every event

    Returns:
        Whatever ``fn`` returns

    Raises:
        Exception: Whatever ``fn`` raises, after logging it
    """
    sink = logger if logger is not None else ServerLogger("glean_logger.api")
    fields = {"operation": operation, **(context or {})}

    sink.debug(f"{operation} started", fields)
    started = time.perf_counter()
    try:
        result = await fn()
    except Exception as e:
        sink.error(
            f"{operation} failed",
            {
                **fields,
                "duration_ms": _elapsed_ms(started),
                "error_name": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise
    sink.info(f"{operation} completed", {**fields, "duration_ms": _elapsed_ms(started)})
    return result
