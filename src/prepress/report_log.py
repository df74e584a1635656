"""
Structured JSON Report Log
==========================
One JSON line per processed page, with page id, duration and QA outcome.
In-memory counters back ``get_metrics()``.
"""

import json
import logging
import os
import threading
import time
from logging.handlers import RotatingFileHandler
from typing import Optional

from . import config

_logger = logging.getLogger("prepress.reports")
_logger.setLevel(logging.INFO)
_logger.propagate = False

_MAX_LATENCIES = 1000
_lock = threading.Lock()


def _fresh_metrics() -> dict:
    return {
        "pages": 0,
        "passed": 0,
        "failed": 0,
        "errors": 0,
        "by_warning": {},
        "latencies": [],  # last 1000 page durations in ms
        "started_at": time.time(),
    }


_metrics = _fresh_metrics()


def configure_report_log(log_dir: Optional[str] = None) -> str:
    """Attach a rotating JSONL file handler; returns the log file path."""
    log_dir = log_dir or config.LOG_DIR
    os.makedirs(log_dir, exist_ok=True)
    path = os.path.join(log_dir, "reports.jsonl")

    for handler in list(_logger.handlers):
        if isinstance(handler, RotatingFileHandler) and handler.baseFilename == os.path.abspath(path):
            return path

    handler = RotatingFileHandler(
        path,
        maxBytes=config.REPORT_LOG_MAX_BYTES,
        backupCount=config.REPORT_LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    _logger.addHandler(handler)
    return path


def close_report_log():
    for handler in list(_logger.handlers):
        _logger.removeHandler(handler)
        handler.close()


def record_page(page_id: str, report, duration_ms: float, steps=()) -> dict:
    """
    Log one processed page and update counters. Returns the logged entry.

    Nothing is written until ``configure_report_log`` attaches a file.
    """
    entry = {
        "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "page": page_id,
        "ms": round(duration_ms, 1),
        "steps": list(steps),
        "passed": report.passed,
        "warnings": [w.code.value for w in report.warnings],
        "phash": report.perceptual_hash,
    }
    if _logger.handlers:
        _logger.info(json.dumps(entry))

    with _lock:
        _metrics["pages"] += 1
        if report.passed:
            _metrics["passed"] += 1
        else:
            _metrics["failed"] += 1
        for code in entry["warnings"]:
            _metrics["by_warning"][code] = _metrics["by_warning"].get(code, 0) + 1
        _metrics["latencies"].append(duration_ms)
        if len(_metrics["latencies"]) > _MAX_LATENCIES:
            _metrics["latencies"] = _metrics["latencies"][-_MAX_LATENCIES:]
    return entry


def record_error(page_id: str, exc: Exception, duration_ms: float) -> dict:
    entry = {
        "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "page": page_id,
        "ms": round(duration_ms, 1),
        "error": type(exc).__name__,
        "detail": str(exc)[:200],
    }
    if _logger.handlers:
        _logger.error(json.dumps(entry))
    with _lock:
        _metrics["errors"] += 1
    return entry


def get_metrics() -> dict:
    """Return current page metrics."""
    with _lock:
        latencies = list(_metrics["latencies"])
        snapshot = dict(_metrics)
        by_warning = dict(_metrics["by_warning"])

    sorted_lat = sorted(latencies) if latencies else [0]
    p50_idx = int(len(sorted_lat) * 0.5)
    p95_idx = int(len(sorted_lat) * 0.95)

    return {
        "pages": snapshot["pages"],
        "passed": snapshot["passed"],
        "failed": snapshot["failed"],
        "errors": snapshot["errors"],
        "uptime_seconds": round(time.time() - snapshot["started_at"]),
        "latency_ms": {
            "p50": round(sorted_lat[min(p50_idx, len(sorted_lat) - 1)], 1),
            "p95": round(sorted_lat[min(p95_idx, len(sorted_lat) - 1)], 1),
        },
        "top_warnings": dict(sorted(by_warning.items(), key=lambda x: x[1], reverse=True)[:10]),
    }


def reset_metrics():
    global _metrics
    with _lock:
        _metrics = _fresh_metrics()


if config.REPORT_LOG_ENABLED:
    configure_report_log()
