"""
Log redaction for hubclient, plus optional handlers.

Every hubclient module logs through ``get_logger(__name__)``, which attaches a
RedactingFilter to the module's logger.  Records are scrubbed at the logger,
before propagation, so whatever handlers the application installs (root,
pytest's caplog, a JSON shipper) only ever see:
- GitHub tokens, Bearer/Basic credentials and Authorization values masked
- credential query parameters (``access_token``, signed-URL signatures) and
  userinfo removed from URLs
- request payloads and response bodies reduced to their size

setup_logging() is a convenience for scripts: it installs one handler on the
``hubclient`` logger and leaves the root logger alone.

Usage:
    from hubclient.logging_config import setup_logging

    setup_logging(level="DEBUG", json_format=False)  # request traffic on stderr
"""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import IO, Any

import orjson
from yarl import URL

PACKAGE_LOGGER = "hubclient"

REDACTED = "[REDACTED]"

# Extra fields whose name contains one of these are replaced wholesale
SENSITIVE_KEYS: frozenset[str] = frozenset(
    {"token", "authorization", "password", "secret", "credential", "cookie"}
)

# Extra fields holding request or response bodies
BODY_KEYS: frozenset[str] = frozenset({"body", "payload"})

# Query parameters that carry credentials (OAuth flows, signed asset URLs)
SENSITIVE_QUERY_KEYS: frozenset[str] = frozenset(
    {
        "access_token",
        "client_secret",
        "code",
        "token",
        "x-amz-credential",
        "x-amz-security-token",
        "x-amz-signature",
    }
)

_URL_PATTERN = re.compile(r"https?://[^\s\"'<>]+")
_TEXT_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # Header lines: the whole value goes
    (re.compile(r"\b(authorization\s*[=:]\s*)[^\n\"']+", re.I), rf"\1{REDACTED}"),
    (re.compile(r"\b((?:bearer|basic)\s+)[^\s,;\"']+", re.I), rf"\1{REDACTED}"),
    (re.compile(r"\b(token\s*[=:]\s*)[^\s,;\"'&]+", re.I), rf"\1{REDACTED}"),
    # Classic, fine-grained, OAuth, app and refresh tokens anywhere
    (re.compile(r"\b(?:gh[pousr]_[A-Za-z0-9]{20,}|github_pat_[A-Za-z0-9_]{20,})\b"), REDACTED),
]

# Standard LogRecord attributes; anything else arrived through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}

_MAX_DEPTH = 3


def redact_url(url: str | URL) -> str:
    """Drop userinfo and mask credential query parameters of a URL."""
    try:
        parsed = URL(url) if isinstance(url, str) else url
    except (TypeError, ValueError):
        return REDACTED
    if parsed.user is not None or parsed.password is not None:
        parsed = parsed.with_user(None)
    if any(key.lower() in SENSITIVE_QUERY_KEYS for key in parsed.query):
        parsed = parsed.with_query(
            [
                (key, REDACTED if key.lower() in SENSITIVE_QUERY_KEYS else value)
                for key, value in parsed.query.items()
            ]
        )
    return str(parsed)


def redact_text(text: str) -> str:
    """Mask credentials in free text (messages, error strings, tracebacks)."""
    if not text:
        return text
    result = _URL_PATTERN.sub(lambda match: redact_url(match.group(0)), text)
    for pattern, replacement in _TEXT_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def _redact_field(key: str, value: Any, depth: int = 0) -> Any:
    lowered = key.lower()
    if any(sensitive in lowered for sensitive in SENSITIVE_KEYS):
        return REDACTED
    if lowered in BODY_KEYS:
        if isinstance(value, (str, bytes, bytearray)):
            return f"[{len(value)} bytes]"
        return REDACTED
    if lowered == "url" and value is not None:
        return redact_url(str(value))
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, Mapping):
        if depth >= _MAX_DEPTH:
            return REDACTED
        return {k: _redact_field(str(k), v, depth + 1) for k, v in value.items()}
    return value


def extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Fields passed to the logging call through ``extra``."""
    return {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}


class RedactingFilter(logging.Filter):
    """
    Rewrites records in place so credentials never reach a handler.

    Never drops a record.  Redaction is idempotent, so a record passing
    through several filtered loggers or handlers is unaffected by repeats.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # Mismatched args; the handler reports it through handleError()
            return True
        redacted = redact_text(message)
        if redacted != message:
            record.msg = redacted
            record.args = ()

        for key, value in extra_fields(record).items():
            setattr(record, key, _redact_field(key, value))

        if record.exc_info and not record.exc_text:
            record.exc_text = redact_text(logging.Formatter().formatException(record.exc_info))
        elif record.exc_text:
            record.exc_text = redact_text(record.exc_text)
        return True


_FILTER = RedactingFilter()


def get_logger(name: str) -> logging.Logger:
    """Module logger with the shared RedactingFilter attached (once)."""
    logger = logging.getLogger(name)
    if _FILTER not in logger.filters:
        logger.addFilter(_FILTER)
    return logger


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    {"ts":"2024-01-01T00:00:00.000+00:00","level":"DEBUG","logger":"...","msg":"...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.levelno >= logging.WARNING:
            entry["file"] = record.filename
            entry["line"] = record.lineno
        if record.exc_info or record.exc_text:
            entry["exc"] = record.exc_text or self.formatException(record.exc_info)
        entry.update(extra_fields(record))
        return orjson.dumps(entry, default=str).decode("utf-8")


class SimpleFormatter(logging.Formatter):
    """``LEVEL logger: message | key=value ...``"""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname:8s} {record.name}: {record.getMessage()}"
        fields = extra_fields(record)
        if fields:
            line += " | " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info or record.exc_text:
            line += "\n" + (record.exc_text or self.formatException(record.exc_info))
        return line


_HANDLER: logging.Handler | None = None


def setup_logging(
    *,
    level: int | str = logging.INFO,
    json_format: bool = True,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Send hubclient's records to ``stream``.

    Installs a single handler on the ``hubclient`` logger, replacing the one
    a previous call installed, and stops propagation so records are not
    printed twice.  The root logger is not touched.

    Args:
        level: Level for the hubclient logger (DEBUG shows request traffic).
        json_format: Use JsonFormatter (default) instead of SimpleFormatter.
        stream: Output stream (default stderr).

    Returns:
        The installed handler.
    """
    global _HANDLER

    package_logger = get_logger(PACKAGE_LOGGER)
    if _HANDLER is not None:
        package_logger.removeHandler(_HANDLER)
        _HANDLER.close()

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else SimpleFormatter())
    handler.addFilter(_FILTER)

    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = False
    _HANDLER = handler
    return handler


def reset_logging() -> None:
    """Undo setup_logging(): remove its handler and restore propagation."""
    global _HANDLER

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if _HANDLER is not None:
        package_logger.removeHandler(_HANDLER)
        _HANDLER.close()
        _HANDLER = None
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True
