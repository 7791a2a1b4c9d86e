from __future__ import annotations

import json
import socket
import time
import traceback
from functools import lru_cache
from typing import Any, Iterable, Mapping, Optional


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


@lru_cache(maxsize=1)
def get_host_address() -> str:
    # Failures are not cached, so a later request can still resolve.
    return socket.gethostbyname(socket.gethostname())


def format_stack(error: BaseException) -> str:
    return "".join(traceback.format_exception(error))


def to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def truncate(text: Optional[str], limit: int) -> Optional[str]:
    if text is None or limit <= 0 or len(text) <= limit:
        return text
    return text[:limit]


def decode_body(body: bytes, limit: int) -> Optional[str]:
    if not body:
        return None
    return truncate(body.decode("utf-8", errors="replace"), limit)


def redact_payload(payload: Any, redact_keys: Iterable[str]) -> Any:
    if not isinstance(payload, Mapping):
        return payload

    redact_set = {key.lower() for key in redact_keys}

    def _redact(value: Any) -> Any:
        if isinstance(value, Mapping):
            return {k: _redact("<<redacted>>" if k.lower() in redact_set else v) for k, v in value.items()}
        if isinstance(value, list):
            return [_redact(item) for item in value]
        return value

    return _redact(payload)
