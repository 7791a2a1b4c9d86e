"""Pluggable trace and span identifier strategies."""

from __future__ import annotations

import importlib
import uuid
from abc import ABC, abstractmethod
from typing import Any, Union

__all__ = [
    "TraceGenerator",
    "SpanGenerator",
    "UUIDTraceGenerator",
    "UUIDSpanGenerator",
    "HexTraceGenerator",
    "HexSpanGenerator",
    "load_generator",
]


class TraceGenerator(ABC):
    @abstractmethod
    def create_trace_id(self) -> str:
        """Return a non-empty identifier unique across the whole system."""


class SpanGenerator(ABC):
    @abstractmethod
    def create_span_id(self) -> str:
        """Return a non-empty identifier unique per invocation."""


class UUIDTraceGenerator(TraceGenerator):
    def create_trace_id(self) -> str:
        return str(uuid.uuid4())


class UUIDSpanGenerator(SpanGenerator):
    def create_span_id(self) -> str:
        return str(uuid.uuid4())


class HexTraceGenerator(TraceGenerator):
    """32 lowercase hex characters, the width B3 uses for 128-bit trace ids."""

    def create_trace_id(self) -> str:
        return uuid.uuid4().hex


class HexSpanGenerator(SpanGenerator):
    """16 lowercase hex characters."""

    def create_span_id(self) -> str:
        return uuid.uuid4().hex[:16]


def load_generator(target: Union[str, Any]) -> Any:
    """
    Resolve a generator instance.

    Accepts an instance (returned as is), a class (instantiated), or a dotted
    path in either ``package.module:Class`` or ``package.module.Class`` form.
    """
    if not isinstance(target, str):
        return target() if isinstance(target, type) else target

    if ":" in target:
        module_name, _, attr = target.partition(":")
    else:
        module_name, _, attr = target.rpartition(".")
    if not module_name or not attr:
        raise ValueError(f"invalid generator path: {target!r}")

    module = importlib.import_module(module_name)
    try:
        factory = getattr(module, attr)
    except AttributeError as exc:
        raise ValueError(f"generator {attr!r} not found in {module_name!r}") from exc
    return factory() if isinstance(factory, type) else factory
