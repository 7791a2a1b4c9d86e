"""Outbound trace propagation for httpx clients.

The current hop's ``trace_id`` is forwarded as is and its ``span_id`` becomes
the parent span of whatever hop the callee establishes. Calls made while no
record is bound (outside a traced request, or on an ignored path) are sent
without trace headers.
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping, Optional

import httpx

from .config import DEFAULT_PARENT_SPAN_HEADER, DEFAULT_TRACE_HEADER, SpanLoggerConfig
from .context import get_record

__all__ = [
    "inject_trace_headers",
    "TracePropagationHook",
    "AsyncTracePropagationHook",
    "traced_client",
    "traced_async_client",
]

logger = logging.getLogger(__name__)


def _header_names(config: Optional[SpanLoggerConfig]) -> tuple:
    if config is None:
        return DEFAULT_TRACE_HEADER, DEFAULT_PARENT_SPAN_HEADER
    return config.trace_header, config.parent_span_header


def inject_trace_headers(headers: MutableMapping[str, str], config: Optional[SpanLoggerConfig] = None) -> bool:
    """Copy the bound trace context into ``headers``. Returns False when nothing is bound."""
    record = get_record()
    if record is None or not record.trace_id:
        logger.debug("No trace context bound, outbound request sent without trace headers")
        return False

    trace_header, parent_span_header = _header_names(config)
    headers[trace_header] = record.trace_id
    if record.span_id:
        headers[parent_span_header] = record.span_id
    return True


class TracePropagationHook:
    """httpx ``request`` event hook for ``httpx.Client``."""

    def __init__(self, config: Optional[SpanLoggerConfig] = None) -> None:
        self.config = config

    def __call__(self, request: httpx.Request) -> None:
        if inject_trace_headers(request.headers, self.config):
            logger.debug(
                "Request uri %s, method %s, set trace id %s, span id %s",
                request.url,
                request.method,
                request.headers.get(_header_names(self.config)[0]),
                request.headers.get(_header_names(self.config)[1]),
            )


class AsyncTracePropagationHook(TracePropagationHook):
    """httpx ``request`` event hook for ``httpx.AsyncClient``."""

    async def __call__(self, request: httpx.Request) -> None:  # type: ignore[override]
        super().__call__(request)


def _with_request_hook(kwargs: dict, hook: Any) -> dict:
    event_hooks = dict(kwargs.pop("event_hooks", None) or {})
    event_hooks["request"] = [hook, *event_hooks.get("request", [])]
    kwargs["event_hooks"] = event_hooks
    return kwargs


def traced_client(config: Optional[SpanLoggerConfig] = None, **kwargs: Any) -> httpx.Client:
    return httpx.Client(**_with_request_hook(kwargs, TracePropagationHook(config)))


def traced_async_client(config: Optional[SpanLoggerConfig] = None, **kwargs: Any) -> httpx.AsyncClient:
    return httpx.AsyncClient(**_with_request_hook(kwargs, AsyncTracePropagationHook(config)))
