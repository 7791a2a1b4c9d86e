from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, AsyncIterator, Dict, Optional, Sequence, Union

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from .context import remove_record
from .models import RequestSnapshot
from .utils import decode_body

if TYPE_CHECKING:
    from .logger import TraceCapture, TraceLogger

__all__ = ["TraceLoggingMiddleware", "setup_observability"]

logger = logging.getLogger(__name__)

_TEXTUAL_CONTENT_TYPES = ("application/json", "text/", "application/xml", "application/x-www-form-urlencoded")
_FORWARDED_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "proxy-client-ip", "wl-proxy-client-ip")


def _is_textual(content_type: str) -> bool:
    return any(marker in content_type for marker in _TEXTUAL_CONTENT_TYPES)


class TraceLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, trace_logger: "TraceLogger") -> None:
        super().__init__(app)
        self.trace_logger = trace_logger

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if self.trace_logger.interceptor.is_ignored(request.url.path):
            return await call_next(request)

        snapshot = await self._build_snapshot(request)
        capture = self.trace_logger.begin_request(snapshot)
        try:
            response = await call_next(request)
        except BaseException as exc:
            capture.set_error(exc)
            self.trace_logger.finish_request(capture)
            raise

        body_iterator = getattr(response, "body_iterator", None)
        if body_iterator is None:
            body = decode_body(getattr(response, "body", b""), self.trace_logger.config.max_body_size)
            capture.set_response(status_code=response.status_code, headers=dict(response.headers), body=body)
            self.trace_logger.finish_request(capture)
            return response

        # The record is completed by the body stream once it is exhausted.
        response.body_iterator = self._tee_body(response, body_iterator, capture)
        remove_record()
        return response

    async def _build_snapshot(self, request: Request) -> RequestSnapshot:
        return RequestSnapshot(
            uri=request.url.path,
            method=request.method,
            ip=self._resolve_ip(request),
            params=dict(request.query_params),
            body=await self._extract_request_body(request),
            headers=dict(request.headers),
        )

    async def _extract_request_body(self, request: Request) -> Optional[str]:
        if not _is_textual(request.headers.get("content-type", "")):
            return None
        try:
            body = await request.body()
        except Exception:
            return None

        # Allow downstream handlers to re-read the body.
        request._body = body  # type: ignore[attr-defined]
        return decode_body(body, self.trace_logger.config.max_body_size)

    async def _tee_body(
        self,
        response: Response,
        body_iterator: AsyncIterator[Union[bytes, str]],
        capture: "TraceCapture",
    ) -> AsyncIterator[Union[bytes, str]]:
        """Pass the body through unchanged, keeping at most ``max_body_size`` bytes of text."""
        limit = self.trace_logger.config.max_body_size
        keep = _is_textual(response.headers.get("content-type", ""))
        captured = bytearray()

        try:
            async for chunk in body_iterator:
                if keep and len(captured) < limit:
                    data = chunk if isinstance(chunk, bytes) else chunk.encode(response.charset)
                    captured.extend(data[: limit - len(captured)])
                yield chunk
        except GeneratorExit:
            raise
        except BaseException as exc:
            capture.set_error(exc)
            raise
        finally:
            capture.set_response(
                status_code=response.status_code,
                headers=dict(response.headers),
                body=decode_body(bytes(captured), limit) if keep else None,
            )
            self.trace_logger.finish_request(capture)

    def _resolve_ip(self, request: Request) -> Optional[str]:
        for header in _FORWARDED_IP_HEADERS:
            value = request.headers.get(header)
            if value and value.lower() != "unknown":
                return value.split(",")[0].strip()
        return request.client.host if request.client else None


def setup_observability(
    app: FastAPI,
    service_id: Optional[str] = None,
    service_port: Optional[int] = None,
    api_url: Optional[str] = None,
    ignore_paths: Optional[Sequence[str]] = None,
    redact_keys: Optional[str] = None,
    enabled: Optional[bool] = None,
) -> Optional["TraceLogger"]:
    """
    Set up request tracing for a FastAPI application.

    This function configures and enables the trace logging middleware automatically.
    All parameters are optional and fall back to ``SPAN_LOGGER_*`` environment variables.

    Args:
        app: The FastAPI application instance
        service_id: Reporting service id (default: SPAN_LOGGER_SERVICE_ID, fallback to app.title)
        service_port: Reporting service port (default: SPAN_LOGGER_SERVICE_PORT, fallback to 8000)
        api_url: Logging admin URL (default: SPAN_LOGGER_API_URL); records are only logged locally when unset
        ignore_paths: Ant-style paths that are never traced (default: SPAN_LOGGER_IGNORE_PATHS)
        redact_keys: Comma-separated keys to redact from headers and params (default: SPAN_LOGGER_REDACT_KEYS)
        enabled: Whether to enable tracing (default: from SPAN_LOGGER_ENABLED env var, default True)

    Returns:
        TraceLogger instance if enabled, None otherwise
    """
    from .config import SpanLoggerConfig
    from .logger import TraceLogger

    if enabled is None:
        enabled = os.environ.get("SPAN_LOGGER_ENABLED", "true").lower() == "true"

    if not enabled:
        logger.info("Request tracing disabled")
        return None

    final_service_id = service_id or os.environ.get("SPAN_LOGGER_SERVICE_ID")
    if not final_service_id and getattr(app, "title", None):
        final_service_id = app.title.lower().replace(" ", "_")

    overrides: Dict[str, object] = {
        "service_id": final_service_id,
        "service_port": service_port,
        "api_url": api_url,
        "ignore_paths": tuple(ignore_paths) if ignore_paths is not None else None,
        "redact_keys": redact_keys,
    }
    config = SpanLoggerConfig.from_env(**overrides)

    trace_logger = TraceLogger(config)
    app.add_middleware(TraceLoggingMiddleware, trace_logger=trace_logger)

    @app.on_event("shutdown")
    async def shutdown_trace_logger():
        trace_logger.shutdown()

    return trace_logger
