from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import pytest

from conftest import FakeFetcher, connector_document
from switchyard.core.connector import Connector
from switchyard.core.observability import MetricsSink, load_metrics_sink, log_event
from switchyard.core.runtime.settings import load_settings


def _json_events(caplog: pytest.LogCaptureFixture) -> list:
    out = []
    for rec in caplog.records:
        try:
            data = json.loads(rec.getMessage())
        except ValueError:
            continue
        if isinstance(data, dict):
            out.append(data)
    return out


def test_log_event_text_format(caplog: pytest.LogCaptureFixture):
    settings = load_settings({"log_format": "text"}, env={})
    logger = logging.getLogger("switchyard.test")
    caplog.set_level("INFO", logger="switchyard.test")
    log_event(logger, settings=settings, level=logging.INFO, event="connector_fetched", connector="acme/demo@v1", path="/x")
    assert caplog.records[-1].getMessage() == "connector_fetched connector=acme/demo@v1 path=/x"


def test_initialize_emits_json_events(descriptor, settings, loader, locks, caplog: pytest.LogCaptureFixture):
    s = settings.model_copy(update={"log_format": "json"})
    caplog.set_level("DEBUG", logger="switchyard.core")
    c = Connector(descriptor, settings=s, fetcher=FakeFetcher(connector_document("send", "receive")), loader=loader, locks=locks)
    c.initialize()

    events = _json_events(caplog)
    states = [e["state"] for e in events if e["event"] == "connector_state"]
    assert states == ["FETCHING", "LOADING", "READY"]
    ready = [e for e in events if e["event"] == "connector_ready"][-1]
    assert ready["connector"] == "acme/demo@v1"
    assert ready["actions"] == 2
    assert "duration_ms" in ready
    assert "ts_ms" in ready


def test_cached_connector_goes_straight_to_loading(descriptor, settings, loader, locks, caplog: pytest.LogCaptureFixture):
    s = settings.model_copy(update={"log_format": "json"})
    first = Connector(descriptor, settings=s, fetcher=FakeFetcher(connector_document("send")), loader=loader, locks=locks)
    first.initialize()

    caplog.clear()
    caplog.set_level("DEBUG", logger="switchyard.core")
    Connector(descriptor, settings=s, fetcher=FakeFetcher(), loader=loader, locks=locks).initialize()
    states = [e["state"] for e in _json_events(caplog) if e["event"] == "connector_state"]
    assert states == ["LOADING", "READY"]


def test_metrics_module_is_loaded_from_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    (tmp_path / "my_switchyard_metrics.py").write_text(
        "from switchyard.core.observability import MetricsSink\n"
        "class Sink(MetricsSink):\n"
        "    pass\n"
        "METRICS = Sink()\n",
        encoding="utf-8",
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    sink = load_metrics_sink(load_settings(env={"SWITCHYARD_METRICS_MODULE": "my_switchyard_metrics"}))
    assert isinstance(sink, MetricsSink)
    assert type(sink).__name__ == "Sink"
    assert sys.modules["my_switchyard_metrics"].METRICS is sink


def test_metrics_module_without_metrics_attribute(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    (tmp_path / "my_switchyard_nometrics.py").write_text("X = 1\n", encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))
    with pytest.raises(AttributeError, match="must expose METRICS"):
        load_metrics_sink(load_settings(env={"SWITCHYARD_METRICS_MODULE": "my_switchyard_nometrics"}))


def test_default_metrics_sink_is_noop():
    sink = load_metrics_sink(load_settings(env={}))
    assert type(sink) is MetricsSink
    sink.on_initialize_start(identity="acme/demo@v1")
    sink.on_initialize_end(identity="acme/demo@v1", state="READY", duration_ms=1)
