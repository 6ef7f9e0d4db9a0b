"""
Request ids for log correlation and in-process operation counters.

Counters live in process memory and reset on restart; GET /admin/metrics
exposes them.
"""

from contextvars import ContextVar
from typing import Dict, List, Tuple
import logging
import threading
import uuid

REQUEST_ID_HEADER = "x-request-id"

_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], int] = {}
_counters_lock = threading.Lock()


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def set_request_id(request_id: str):
    """Bind request_id to the current context; returns the token for reset_request_id."""
    return _request_id.set(request_id)


def reset_request_id(token):
    _request_id.reset(token)


def current_request_id() -> str:
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    """Stamps every record with the id of the request being served ("-" outside one)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        return True


def install_request_id_filter(logger: logging.Logger = None):
    """Attach RequestIdFilter to every handler of logger (root by default)."""
    target = logger or logging.getLogger()
    for handler in target.handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())


def _key(name: str, labels: Dict[str, object]):
    return name, tuple(sorted((k, str(v)) for k, v in labels.items()))


def inc(name: str, amount: int = 1, **labels):
    key = _key(name, labels)
    with _counters_lock:
        _counters[key] = _counters.get(key, 0) + amount


def counter_value(name: str, **labels) -> int:
    with _counters_lock:
        return _counters.get(_key(name, labels), 0)


def snapshot_counters() -> List[Dict]:
    with _counters_lock:
        items = sorted(_counters.items())
    return [{"name": name, "labels": dict(labels), "value": value} for (name, labels), value in items]


def reset_counters():
    with _counters_lock:
        _counters.clear()
