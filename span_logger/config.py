import os
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from .generators import (
    SpanGenerator,
    TraceGenerator,
    UUIDSpanGenerator,
    UUIDTraceGenerator,
    load_generator,
)

DEFAULT_TRACE_HEADER = "X-Logging-TraceId"
DEFAULT_PARENT_SPAN_HEADER = "X-Logging-ParentSpanId"

_ENV_PREFIX = "SPAN_LOGGER_"


def _split_csv(value: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(slots=True)
class SpanLoggerConfig:
    """Runtime configuration for the span logger."""

    service_id: str
    service_port: int = 8000
    api_url: Optional[str] = None
    ignore_paths: Tuple[str, ...] = field(default_factory=tuple)
    trace_header: str = DEFAULT_TRACE_HEADER
    parent_span_header: str = DEFAULT_PARENT_SPAN_HEADER
    trace_generator: Union[str, TraceGenerator] = field(default_factory=UUIDTraceGenerator)
    span_generator: Union[str, SpanGenerator] = field(default_factory=UUIDSpanGenerator)
    batch_size: int = 20
    flush_interval: float = 2.0
    queue_size: int = 10_000
    redact_keys: Tuple[str, ...] = field(default_factory=tuple)
    max_body_size: int = 8192
    enable_console_fallback: bool = True

    def __post_init__(self) -> None:
        if not self.service_id:
            raise ValueError("service_id must not be empty")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.flush_interval <= 0:
            raise ValueError("flush_interval must be > 0")
        if self.max_body_size < 1:
            raise ValueError("max_body_size must be >= 1")
        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        if not self.trace_header or not self.parent_span_header:
            raise ValueError("propagation header names must not be empty")
        if self.api_url and self.api_url.endswith("/"):
            self.api_url = self.api_url.rstrip("/")
        if isinstance(self.ignore_paths, str):
            self.ignore_paths = _split_csv(self.ignore_paths)
        elif isinstance(self.ignore_paths, Iterable):
            self.ignore_paths = tuple(str(path) for path in self.ignore_paths)
        if isinstance(self.redact_keys, str):
            self.redact_keys = _split_csv(self.redact_keys)
        elif isinstance(self.redact_keys, Iterable):
            self.redact_keys = tuple(str(key) for key in self.redact_keys)

        self.trace_generator = load_generator(self.trace_generator)
        self.span_generator = load_generator(self.span_generator)
        if not isinstance(self.trace_generator, TraceGenerator):
            raise ValueError("trace_generator must be a TraceGenerator")
        if not isinstance(self.span_generator, SpanGenerator):
            raise ValueError("span_generator must be a SpanGenerator")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "SpanLoggerConfig":
        """
        Build a config from ``SPAN_LOGGER_*`` environment variables.

        Keyword overrides that are not None take precedence over the environment.
        """
        env = os.environ if environ is None else environ

        def read(name: str) -> Optional[str]:
            value = env.get(_ENV_PREFIX + name)
            return value if value not in (None, "") else None

        values: dict = {}
        string_fields = {
            "service_id": "SERVICE_ID",
            "api_url": "API_URL",
            "trace_header": "TRACE_HEADER",
            "parent_span_header": "PARENT_SPAN_HEADER",
            "trace_generator": "TRACE_GENERATOR",
            "span_generator": "SPAN_GENERATOR",
        }
        for attr, name in string_fields.items():
            value = read(name)
            if value is not None:
                values[attr] = value

        for attr, name, cast in (
            ("service_port", "SERVICE_PORT", int),
            ("batch_size", "BATCH_SIZE", int),
            ("flush_interval", "FLUSH_INTERVAL", float),
            ("queue_size", "QUEUE_SIZE", int),
            ("max_body_size", "MAX_BODY_SIZE", int),
        ):
            value = read(name)
            if value is not None:
                values[attr] = cast(value)

        for attr, name in (("ignore_paths", "IGNORE_PATHS"), ("redact_keys", "REDACT_KEYS")):
            value = read(name)
            if value is not None:
                values[attr] = _split_csv(value)

        console_fallback = read("CONSOLE_FALLBACK")
        if console_fallback is not None:
            values["enable_console_fallback"] = console_fallback.lower() == "true"

        values.update({key: value for key, value in overrides.items() if value is not None})
        values.setdefault("service_id", "unknown_service")
        return cls(**values)
