"""
Structured logging, user context, and optional Sentry initialization.

- structlog configuration with JSON/console rendering
- hashed user context binding via contextvars
- sensitive data redaction
- Sentry init (if SENTRY_DSN provided)
"""
from __future__ import annotations

import hashlib
import logging
import os
from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict

import sentry_sdk
import structlog

SCHEMA_VERSION = "1.0"

LOGGER = logging.getLogger(__name__)

# Guard to avoid double Sentry initialization in multi-import scenarios
_SENTRY_INIT_DONE = False
_SENTRY_DSN_USED: str | None = None

_RECENT_ERRORS: deque = deque(maxlen=200)


def _redact_sensitive(logger, method, event_dict: Dict[str, Any]):
    try:
        sensitive_keys = {"token", "password", "secret", "authorization", "cookie", "set-cookie"}
        for key in list(event_dict.keys()):
            try:
                if any(s in key.lower() for s in sensitive_keys):
                    event_dict[key] = "[REDACTED]"
            except Exception:
                continue
    except Exception:
        return event_dict
    return event_dict


def _add_schema_version(logger, method, event_dict: Dict[str, Any]):
    event_dict.setdefault("schema_version", SCHEMA_VERSION)
    return event_dict


def _choose_renderer():
    debug = str(os.getenv("DEBUG", "")).lower() in {"1", "true", "yes"}
    fmt = (os.getenv("LOG_FORMAT") or "").lower().strip()
    if debug or fmt == "console":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def _hash_identifier(raw: Any) -> str:
    try:
        if raw is None:
            return ""
        text = str(raw).strip()
    except Exception:
        text = ""
    if not text:
        return ""
    digest = hashlib.sha256(text.encode("utf-8", "ignore")).hexdigest()
    return digest[:16]


def _set_sentry_tag(name: str, value: str) -> None:
    if not value or not _SENTRY_INIT_DONE:
        return
    try:
        sentry_sdk.set_tag(str(name), str(value))
    except Exception:
        return


def get_observability_context() -> Dict[str, str]:
    try:
        ctx = structlog.contextvars.get_contextvars()
    except Exception:
        return {}
    result: Dict[str, str] = {}
    for key in ("user_id",):
        val = ctx.get(key)
        if val:
            result[str(key)] = str(val)
    return result


def setup_structlog_logging(min_level: str | int = "INFO") -> None:
    level = logging.getLevelName(min_level) if isinstance(min_level, str) else int(min_level)

    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, handlers=[logging.StreamHandler()])
    else:
        logging.getLogger().setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _redact_sensitive,
            _add_schema_version,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _choose_renderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def bind_user_context(*, user_id: Any | None = None) -> None:
    """Bind a hashed user id to the logging context; None clears it."""
    user_hash = _hash_identifier(user_id)
    if not user_hash:
        structlog.contextvars.unbind_contextvars("user_id")
        return
    structlog.contextvars.bind_contextvars(user_id=user_hash)
    _set_sentry_tag("user_id", user_hash)


def emit_event(event: str, severity: str = "info", **fields: Any) -> None:
    logger = structlog.get_logger()
    if "user_id" in fields:
        fields["user_id"] = _hash_identifier(fields.get("user_id"))

    if severity in {"error", "critical"}:
        ctx = get_observability_context()
        message_text = str(fields.get("error") or fields.get("message") or event)

        _RECENT_ERRORS.append({
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": str(event),
            "error": str(fields.get("error") or fields.get("message") or ""),
            "operation": str(fields.get("operation") or ""),
        })

        if _SENTRY_INIT_DONE:
            try:
                with sentry_sdk.push_scope() as scope:
                    if ctx.get("user_id"):
                        scope.set_tag("user_id", ctx["user_id"])
                    sentry_sdk.capture_message(message_text, level="error")
            except Exception:
                LOGGER.debug("sentry capture failed", exc_info=True)
        logger.error(event, **fields)
    elif severity in {"warn", "warning"}:
        logger.warning(event, **fields)
    elif severity == "debug":
        logger.debug(event, **fields)
    else:
        logger.info(event, **fields)


def get_recent_errors(limit: int = 10) -> list[Dict[str, Any]]:
    items = list(_RECENT_ERRORS)[-max(0, int(limit)):] if limit else []
    return list(reversed(items))


def init_sentry(dsn: str | None = None) -> None:
    global _SENTRY_INIT_DONE, _SENTRY_DSN_USED
    dsn = dsn or os.getenv("SENTRY_DSN")
    if not dsn:
        return
    if _SENTRY_INIT_DONE and _SENTRY_DSN_USED == dsn:
        return
    sentry_sdk.init(
        dsn=dsn,
        environment=os.getenv("ENVIRONMENT", "production"),
        send_default_pii=False,
        traces_sample_rate=0.0,
    )
    _SENTRY_INIT_DONE = True
    _SENTRY_DSN_USED = dsn
    LOGGER.info("sentry initialized")
