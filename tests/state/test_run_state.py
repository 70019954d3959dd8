"""Tests for the run-state record and its store."""

import tempfile
from pathlib import Path

import pytest

from borderforge.state.kvfile import load_key_values
from borderforge.state.run_state import RunState, RunStateStore


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_dir):
    return RunStateStore(temp_dir / "runstate.txt")


def test_begin_record(temp_dir):
    state = RunState.begin(temp_dir / "in", temp_dir / "out", 3, 10)

    assert state.running is True
    assert state.clean_exit is False
    assert state.last_started_idx == 3
    assert state.last_started_name == ""
    assert state.last_done_idx == -1
    assert state.total == 10
    assert state.started_at


def test_save_writes_camel_case_keys(store, temp_dir):
    state = RunState.begin(temp_dir / "in", temp_dir / "out", 0, 2)
    state.mark_started(0, "a.jpg")
    store.save(state)

    record = load_key_values(store.path)
    assert record["running"] == "true"
    assert record["cleanExit"] == "false"
    assert record["lastStartedIdx"] == "0"
    assert record["lastStartedName"] == "a.jpg"
    assert record["outputPath"] == str(temp_dir / "out")
    assert store.path.read_text(encoding="utf-8").startswith("#")


def test_mark_done_keeps_started(store, temp_dir):
    state = RunState.begin(temp_dir, temp_dir, 0, 2)
    state.mark_started(1, "b.jpg")
    state.mark_done(1, "b.jpg")
    store.save(state)

    loaded = store.load()
    assert loaded.last_started_idx == 1
    assert loaded.last_done_idx == 1
    assert loaded.last_done_name == "b.jpg"
    assert loaded.heartbeat


def test_load_missing_returns_none(store):
    assert store.exists() is False
    assert store.load() is None


def test_from_record_tolerates_garbage():
    state = RunState.from_record({"lastStartedIdx": "x", "total": "?", "cleanExit": "nope"})

    assert state.last_started_idx == -1
    assert state.total == 0
    assert state.clean_exit is False


def test_finish_removes_record(store, temp_dir):
    state = RunState.begin(temp_dir, temp_dir, 0, 1)
    store.save(state)
    store.finish(state)

    assert state.clean_exit is True
    assert state.running is False
    assert state.ended_at
    assert not store.exists()


def test_clear_missing_file_is_noop(store):
    store.clear()
    assert not store.exists()


def test_save_failure_is_logged_not_raised(temp_dir):
    blocker = temp_dir / "blocker"
    blocker.write_text("not a directory")
    store = RunStateStore(blocker / "runstate.txt")

    store.save(RunState.begin(temp_dir, temp_dir, 0, 1))

    assert not store.exists()
