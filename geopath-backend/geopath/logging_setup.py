"""Structured logging configuration.

JSON lines when ENABLE_JSON_LOGS=1 (default), otherwise a short human
format. Request records carry request_id, path, method, status and
duration_ms; resolver records may add source_crs, target_crs and
candidates.
"""
from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from time import perf_counter

_EXTRA_FIELDS = (
    "request_id",
    "path",
    "method",
    "status",
    "duration_ms",
    "source_crs",
    "target_crs",
    "candidates",
)


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - formatting
        payload = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for attr in _EXTRA_FIELDS:
            if hasattr(record, attr):
                payload[attr] = getattr(record, attr)
        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_type"] = record.exc_info[0].__name__
            payload["exc"] = str(record.exc_info[1])
        return json.dumps(payload, ensure_ascii=False)


class _PlainFormatter(logging.Formatter):  # pragma: no cover - formatting
    def format(self, record: logging.LogRecord) -> str:
        parts = [
            self.formatTime(record, datefmt="%H:%M:%S"),
            record.levelname[0],
            f"{record.name}:",
            record.getMessage(),
        ]
        for attr in ("request_id", "source_crs", "target_crs", "status"):
            if hasattr(record, attr):
                parts.append(f"{attr}={getattr(record, attr)}")
        return " ".join(parts)


def configure_logging(force: bool = False) -> None:
    """Install one stdout handler on the root logger; later calls are no-ops."""
    if getattr(configure_logging, "_configured", False) and not force:
        return
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    json_enabled = os.getenv("ENABLE_JSON_LOGS", "1") == "1"
    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):  # drop uvicorn's defaults
        root.removeHandler(h)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_enabled else _PlainFormatter())
    root.addHandler(handler)
    # pyproj chatter stays at WARNING unless asked for
    logging.getLogger("pyproj").setLevel(os.getenv("PYPROJ_LOG_LEVEL", "WARNING").upper())
    configure_logging._configured = True  # type: ignore[attr-defined]


async def logging_middleware(request, call_next):  # pragma: no cover - thin wrapper
    rid = request.headers.get("x-request-id") or uuid.uuid4().hex[:8]
    request.state.request_id = rid
    logger = logging.getLogger("geopath.request")
    start = perf_counter()
    status = None
    logger.info("request.start", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    try:
        response = await call_next(request)
        status = response.status_code
        response.headers["X-Request-ID"] = rid
        return response
    finally:
        logger.info(
            "request.end",
            extra={
                "request_id": rid,
                "path": request.url.path,
                "method": request.method,
                "status": status,
                "duration_ms": round((perf_counter() - start) * 1000.0, 2),
            },
        )
