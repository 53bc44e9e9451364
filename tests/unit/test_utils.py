import json
import logging

import pytest
from pydantic import ValidationError

from cmdflow.utils.config import Settings
from cmdflow.utils.logger import attach_file_logger, bind, detach_file_logger, get_logger, log_with_context, unbind
from cmdflow.utils.timing import Stopwatch, format_elapsed


def test_settings_env_override(monkeypatch):
    monkeypatch.setenv("HISTORY_LIMIT", "7")
    monkeypatch.setenv("STEP_DELAY_MS", "0")
    s = Settings()
    assert s.HISTORY_LIMIT == 7 and s.STEP_DELAY_MS == 0
    assert s.WORKFLOWS_DIR.is_absolute()


def test_settings_reject_bad_values():
    with pytest.raises(ValidationError):
        Settings(HISTORY_LIMIT=0)
    with pytest.raises(ValidationError):
        Settings(DEFAULT_GRAPH_NAME="   ")


def test_format_elapsed_and_stopwatch():
    assert format_elapsed(12) == "12 ms"
    assert format_elapsed(1500) == "1.500 s"
    with Stopwatch() as sw:
        pass
    assert sw.elapsed_ms() >= 0
    assert Stopwatch().elapsed_ms() == 0


def test_file_logger_writes_bound_context(tmp_path):
    path = tmp_path / "run.jsonl"
    handler = attach_file_logger(path, level=logging.DEBUG)
    bind(graph_id="g-1")
    try:
        log = log_with_context(get_logger("tests"), node_id="n-1")
        log.warning("hello")
    finally:
        unbind("graph_id")
        detach_file_logger(handler)
    record = json.loads(path.read_text(encoding="utf-8").splitlines()[-1])
    assert record["msg"] == "hello"
    assert record["graph_id"] == "g-1" and record["node_id"] == "n-1"
    assert record["logger"] == "cmdflow.tests"
