import json

import pytest

from configs.config import Config
from utils.metrics import Timer, incr, metrics_file
from utils.release_errors import ConflictError


def records():
    return [json.loads(line) for line in metrics_file().read_text(encoding="utf-8").splitlines()]


def test_counter_drops_empty_labels_and_clips_long_ones():
    incr("release.published", repo="acme/api", tag=None, note="x" * 500)
    (rec,) = records()
    assert rec["kind"] == "counter"
    assert rec["metric"] == "release.published"
    assert rec["value"] == 1
    assert "tag" not in rec
    assert len(rec["note"]) == 121


def test_timer_records_success():
    with Timer("github.release.get", repo="acme/api") as timer:
        pass
    (rec,) = records()
    assert rec["kind"] == "timer"
    assert rec["metric"] == "github.release.get.latency_s"
    assert rec["ok"] is True
    assert "error" not in rec
    assert timer.elapsed >= 0


def test_timer_records_error_code_and_reraises():
    with pytest.raises(ConflictError):
        with Timer("github.release.create"):
            raise ConflictError("exists")
    (rec,) = records()
    assert rec["ok"] is False
    assert rec["error"] == "CONFLICT"


def test_timer_names_plain_exceptions():
    with pytest.raises(KeyError):
        with Timer("history.collect"):
            raise KeyError("sha")
    assert records()[0]["error"] == "KeyError"


def test_disabled_metrics_write_nothing(monkeypatch):
    monkeypatch.setattr(Config, "METRICS_ENABLED", False)
    incr("release.failure")
    assert not metrics_file().exists()
