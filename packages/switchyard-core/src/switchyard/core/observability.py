from __future__ import annotations

import json
import logging
import time
from importlib import import_module
from typing import Any

from switchyard.core.runtime.settings import Settings

log = logging.getLogger("switchyard.core.observability")


class MetricsSink:
    """Optional metrics sink.

    Users can provide a module via SWITCHYARD_METRICS_MODULE exposing METRICS: MetricsSink.
    """

    def on_initialize_start(self, *, identity: str) -> None:  # pragma: no cover
        return None

    def on_initialize_end(self, *, identity: str, state: str, duration_ms: int) -> None:  # pragma: no cover
        return None


def load_metrics_sink(settings: Settings) -> MetricsSink:
    mod = settings.metrics_module
    if not mod:
        return MetricsSink()
    m = import_module(mod)
    sink = getattr(m, "METRICS", None)
    if sink is None:
        raise AttributeError(f"{mod} must expose METRICS")
    return sink


def _now_ms() -> int:
    return int(time.time() * 1000)


def dur_ms(t0: float, t1: float) -> int:
    return int((t1 - t0) * 1000)


def log_event(logger: logging.Logger, *, settings: Settings, level: int, event: str, **fields: Any) -> None:
    """Emit an event log.

    - text format: one-liner `event key=value ...`
    - json format: one JSON object per line
    """
    if settings.log_format.lower() == "json":
        payload = {"ts_ms": _now_ms(), "event": event, **fields}
        logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
        return

    parts = [event]
    for k, v in fields.items():
        parts.append(f"{k}={v}")
    logger.log(level, " ".join(parts))


def ensure_logging(settings: Settings) -> None:
    fmt = '%(asctime)s - (%(threadName)-10s) - %(name)s - %(levelname)s - %(message)s'
    if (settings.log_format or "text").lower() == "json":
        # JSON payload already includes timestamp; keep formatter minimal.
        fmt = "%(message)s"
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=fmt,
    )


def notify_metrics(sink: MetricsSink, method: str, **kwargs: Any) -> None:
    """Call a sink hook; metrics must never break connector initialization."""
    try:
        getattr(sink, method)(**kwargs)
    except Exception:
        log.warning("metrics sink %s failed", method, exc_info=True)
