"""Structured JSON logging enriched with request and user context."""

from __future__ import annotations

import json
import re
import sys
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, TextIO
from urllib.parse import parse_qsl, urlsplit

SUB_KEY = "subject"
USERNAME_KEY = "username"
WORKSPACE_KEY = "workspace"

COMMIT = "0"

_MASK = "*****"
_SENSITIVE_HEADERS = frozenset({"Authorization", "Cookie"})
_RFC1123Z = "%a, %d %b %Y %H:%M:%S %z"
_VERB = re.compile(r"%(%|[svqd])")

_write_lock = threading.Lock()
_init_lock = threading.Lock()
_logger: Logger | None = None


@dataclass
class Request:
    """An incoming HTTP request as seen by the logger."""

    method: str = "GET"
    url: str | None = None
    headers: dict[str, list[str]] = field(default_factory=dict)
    body: bytes | str = b""


@dataclass
class RequestContext:
    """Per-request key/value store with an optional request attached."""

    request: Request | None = None
    values: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str) -> Any:
        return self.values.get(key)

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value


def _get_string(ctx: RequestContext, key: str) -> str:
    value = ctx.get(key)
    return value if isinstance(value, str) else ""


def _sprintf(msg: str, args: Iterable[str]) -> str:
    """Format ``msg`` with printf-style verbs, reporting missing or extra arguments inline."""
    pending = list(args)
    used = 0

    def substitute(match: re.Match[str]) -> str:
        nonlocal used
        verb = match.group(1)
        if verb == "%":
            return "%"
        if used >= len(pending):
            return f"%!{verb}(MISSING)"
        arg = pending[used]
        used += 1
        if verb == "q":
            return json.dumps(arg, ensure_ascii=False)
        if verb == "d":
            return f"%!d(string={arg})"
        return arg

    out = _VERB.sub(substitute, msg)
    if used < len(pending):
        extra = ", ".join(f"string={arg}" for arg in pending[used:])
        out += f"%!(EXTRA {extra})"
    return out


def _format(msg: str, args: tuple[str, ...]) -> str:
    return _sprintf(msg, args) if args else msg


def _generic_context(subject: str, username: str) -> list[Any]:
    fields: list[Any] = [
        "timestamp",
        datetime.now().astimezone().strftime(_RFC1123Z),
        "commit",
        COMMIT[:7],
    ]
    if subject:
        fields += ["user_id", subject]
    if username:
        fields += [USERNAME_KEY, username]
    return fields


def _request_info(req: Request) -> list[Any]:
    fields: list[Any] = []
    if req.url is not None:
        parts = urlsplit(req.url)
        host = parts.netloc.rpartition("@")[2]
        fields += ["req_url", f"{parts.scheme}://{host}{parts.path}"]

        params: dict[str, list[str]] = {}
        for name, value in parse_qsl(parts.query, keep_blank_values=True):
            params.setdefault(name, []).append(value)
        if params:
            masked = {
                name: [_MASK] if name.lower() == "token" else values
                for name, values in params.items()
            }
            fields += ["req_params", masked]

    if req.headers:
        headers = {
            name: _MASK if name in _SENSITIVE_HEADERS else list(values)
            for name, values in req.headers.items()
        }
        fields += ["req_headers", headers]

    if len(req.body) > 0:
        payload = (
            req.body
            if isinstance(req.body, str)
            else req.body.decode("utf-8", errors="replace")
        )
        fields += ["req_payload", payload]
    return fields


def _context_info(ctx: RequestContext | None) -> list[Any]:
    if ctx is None:
        return _generic_context("", "")
    fields = _generic_context(_get_string(ctx, SUB_KEY), _get_string(ctx, USERNAME_KEY))
    if ctx.request is not None:
        fields += _request_info(ctx.request)
    return fields


def _pairs(flat: Iterable[Any]) -> Iterable[tuple[Any, Any]]:
    items = list(flat)
    return zip(items[0::2], items[1::2])


class Logger:
    """Writes one JSON object per log line to its stream."""

    def __init__(self, name: str, stream: TextIO | None = None, values: Iterable[Any] = ()):
        self.name = name
        self._stream = stream
        self._values = tuple(values)

    def _emit(self, level: str, msg: str, fields: list[Any], err: BaseException | None = None) -> None:
        record: dict[str, Any] = {
            "level": level,
            "ts": time.time(),
            "logger": self.name,
            "msg": msg,
        }
        if err is not None:
            record["error"] = str(err)
        for key, value in _pairs((*self._values, *fields)):
            record[str(key)] = value
        line = json.dumps(record, separators=(",", ":"), ensure_ascii=False, default=str)
        stream = self._stream if self._stream is not None else sys.stderr
        with _write_lock:
            stream.write(line + "\n")
            stream.flush()

    def info(self, ctx: RequestContext | None, msg: str) -> None:
        """Log a non-error message."""
        self._emit("info", msg, _context_info(ctx))

    def infof(self, ctx: RequestContext | None, msg: str, *args: str) -> None:
        """Log a non-error formatted message."""
        self._emit("info", _format(msg, args), _context_info(ctx))

    def info_echof(self, ctx: RequestContext, msg: str, *args: str) -> None:
        """Log a formatted message for a proxied workspace request."""
        fields = _generic_context(_get_string(ctx, SUB_KEY), _get_string(ctx, USERNAME_KEY))
        request = ctx.request
        fields += [
            "workspace", _get_string(ctx, WORKSPACE_KEY),
            "method", request.method if request is not None else "",
            "url", request.url if request is not None else None,
        ]
        self._emit("info", _format(msg, args), fields)

    def error(self, ctx: RequestContext | None, err: BaseException, msg: str) -> None:
        """Log an error with the given message."""
        self.errorf(ctx, err, msg)

    def errorf(self, ctx: RequestContext | None, err: BaseException, msg: str, *args: str) -> None:
        """Log an error with the given formatted message."""
        self._emit("error", _format(msg, args), _context_info(ctx), err)

    def with_values(self, keys_and_values: dict[str, Any] | None) -> Logger:
        """Return a logger that adds the given key/value pairs to every line."""
        if not keys_and_values:
            return self
        base = _current()
        flat = [item for pair in keys_and_values.items() for item in pair]
        return Logger(base.name, base._stream, flat)


def _current() -> Logger:
    if _logger is None:
        raise RuntimeError("logger is not initialized, call init() first")
    return _logger


def init(with_name: str, stream: TextIO | None = None) -> None:
    """Initialize the global logger once; later calls have no effect until reset()."""
    global _logger
    with _init_lock:
        if _logger is None:
            _logger = Logger(with_name, stream)


def reset() -> None:
    """Forget the global logger so that init() takes effect again."""
    global _logger
    with _init_lock:
        _logger = None


def info(ctx: RequestContext | None, msg: str) -> None:
    _current().info(ctx, msg)


def infof(ctx: RequestContext | None, msg: str, *args: str) -> None:
    _current().infof(ctx, msg, *args)


def info_echof(ctx: RequestContext, msg: str, *args: str) -> None:
    _current().info_echof(ctx, msg, *args)


def error(ctx: RequestContext | None, err: BaseException, msg: str) -> None:
    _current().error(ctx, err, msg)


def errorf(ctx: RequestContext | None, err: BaseException, msg: str, *args: str) -> None:
    _current().errorf(ctx, err, msg, *args)


def with_values(keys_and_values: dict[str, Any] | None) -> Logger:
    return _current().with_values(keys_and_values)