"""Test cross-cutting utilities.

Tests for src.utils:
    - fs: atomic writes replace files without leaving tmp files, YAML roundtrip
    - hashing: file digests match hashlib, array digests cover dtype/shape/values
    - profiler: timer sink, TimerAccumulator mean
    - logging_config: idempotent setup, JSON file lines with context,
      log_context restore, invalid level

Run:
    pytest tests/test_utils.py -v
"""

import hashlib
import json
import logging
import sys

import numpy as np
import pytest

from src.utils import fs, hashing, logging_config, profiler


@pytest.fixture
def restore_logging(monkeypatch):
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    logging_config.pop_context()


# ============================================================================
# FS
# ============================================================================

def test_ensure_dir_creates_parents(tmp_path):
    target = tmp_path / "a" / "b" / "c"
    assert fs.ensure_dir(target) == target
    assert target.is_dir()
    fs.ensure_dir(target)  # idempotent


def test_atomic_write_bytes_replaces(tmp_path):
    path = tmp_path / "out" / "data.bin"
    fs.atomic_write_bytes(path, b"first version, longer")
    fs.atomic_write_bytes(path, b"second")

    assert path.read_bytes() == b"second"
    assert list(path.parent.iterdir()) == [path]


def test_atomic_write_under_file_fails(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file")
    with pytest.raises(OSError):
        fs.atomic_write_text(blocker / "x.txt", "data")


def test_atomic_write_text_encoding(tmp_path):
    path = tmp_path / "t.txt"
    fs.atomic_write_text(path, "écart, 0.0\n")
    assert path.read_text(encoding="utf-8") == "écart, 0.0\n"


def test_yaml_roundtrip_preserves_order(tmp_path):
    data = {'schema': 'calibration_manifest.v1', 'images': [{'id': 'a', 'size': [2, 2]}], 'z': 1.5}
    path = tmp_path / "m.yaml"
    fs.atomic_yaml_dump(data, path)

    assert fs.load_yaml(path) == data
    assert path.read_text().startswith("schema:")


def test_load_yaml_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        fs.load_yaml(tmp_path / "absent.yaml")


def test_load_yaml_empty(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert fs.load_yaml(path) == {}


# ============================================================================
# HASHING
# ============================================================================

def test_sha256_file_matches_hashlib(tmp_path):
    path = tmp_path / "blob"
    payload = bytes(range(256)) * 1000
    path.write_bytes(payload)

    assert hashing.sha256_file(path, chunk_size=4096) == hashlib.sha256(payload).hexdigest()


def test_sha256_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        hashing.sha256_file(tmp_path / "nope")


def test_sha256_array():
    a = np.arange(12, dtype=np.uint8).reshape(3, 4)
    assert hashing.sha256_array(a) == hashing.sha256_array(a.copy())
    assert len(hashing.sha256_array(a)) == 64
    # same bytes, different shape / dtype
    assert hashing.sha256_array(a) != hashing.sha256_array(a.reshape(4, 3))
    assert hashing.sha256_array(a) != hashing.sha256_array(a.view(np.int8))
    # non-contiguous views hash by value
    assert hashing.sha256_array(a.T) == hashing.sha256_array(np.ascontiguousarray(a.T))


# ============================================================================
# PROFILER
# ============================================================================

def test_timer_sink():
    seen = []
    with profiler.timer("decode", sink=lambda name, s: seen.append((name, s))):
        pass
    assert len(seen) == 1
    assert seen[0][0] == "decode"
    assert seen[0][1] >= 0.0


def test_timer_logs_without_sink(caplog):
    caplog.set_level(logging.DEBUG, logger="src.utils.profiler")
    with profiler.timer("compare"):
        pass
    assert "compare:" in caplog.text


def test_timer_accumulator():
    acc = profiler.TimerAccumulator("compare")
    assert acc.mean() == 0.0
    acc.add(1.0)
    acc.add(3.0)
    assert acc.mean() == 2.0
    with acc.measure():
        pass
    assert acc.count == 3


# ============================================================================
# LOGGING
# ============================================================================

def test_setup_logging_idempotent(restore_logging):
    first = logging_config.setup_logging("INFO")
    second = logging_config.setup_logging("DEBUG")
    root = logging.getLogger()

    assert len(first) == len(second) == 1
    assert first[0] not in root.handlers
    assert second[0] in root.handlers
    assert root.level == logging.DEBUG


def test_json_file_logging_with_context(restore_logging, tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    handlers = logging_config.setup_logging(
        "INFO", str(log_file), json=True, to_stderr=False, context={"app": "calibrate"}
    )
    with logging_config.log_context(pair="a<->b"):
        logging.getLogger("test").info("Scored %r", 765.0)
    for handler in handlers:
        handler.flush()

    entry = json.loads(log_file.read_text().splitlines()[-1])
    assert entry['msg'] == "Scored 765.0"
    assert entry['lvl'] == "INFO"
    assert entry['app'] == "calibrate"
    assert entry['pair'] == "a<->b"


def test_human_format_includes_context(restore_logging):
    logging_config.push_context(app="compare")
    formatter = logging_config.ContextFormatter("human", use_color=False)
    record = logging.LogRecord("x", logging.WARNING, __file__, 1, "hello", None, None)
    line = formatter.format(record)

    assert "| WARNING  |" in line
    assert "app=compare |" in line
    assert line.endswith("hello")


def test_log_context_restores():
    logging_config.pop_context()
    logging_config.push_context(app="calibrate")
    with logging_config.log_context(pair="x"):
        assert logging_config.current_context() == {"app": "calibrate", "pair": "x"}
    assert logging_config.current_context() == {"app": "calibrate"}
    logging_config.pop_context(keys=["app"])
    assert logging_config.current_context() == {}


def test_invalid_level(restore_logging):
    with pytest.raises(ValueError):
        logging_config.setup_logging("LOUD")


def test_install_excepthook(restore_logging, caplog):
    logging_config.install_excepthook()
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        sys.excepthook(*sys.exc_info())
    assert "Uncaught exception" in caplog.text
