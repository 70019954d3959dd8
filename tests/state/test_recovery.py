"""Tests for startup recovery classification and the resume decision."""

import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from borderforge.state.kvfile import save_key_values
from borderforge.state.recovery import RecoveryStatus, build_prompt, inspect, resolve
from borderforge.state.run_state import RunStateStore


@pytest.fixture
def store():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield RunStateStore(Path(tmpdir) / "runstate.txt")


def write(store, **values):
    save_key_values(store.path, values)


def test_no_state(store):
    confirm = MagicMock()

    decision = resolve(store, confirm)

    assert inspect(store).status is RecoveryStatus.NO_STATE
    assert decision.do_resume is False
    confirm.assert_not_called()


def test_clean_exit_is_discarded_silently(store):
    write(store, running=False, cleanExit=True, lastStartedIdx=4)
    confirm = MagicMock()

    decision = resolve(store, confirm)

    assert decision.do_resume is False
    assert decision.cleared is True
    assert not store.exists()
    confirm.assert_not_called()


def test_dirty_with_fields_resume(store):
    write(store, running=True, cleanExit=False, lastStartedIdx=7, lastStartedName="h.jpg")
    confirm = MagicMock(return_value=True)

    decision = resolve(store, confirm)

    assert decision.do_resume is True
    assert decision.last_started_idx == 7
    assert decision.last_started_name == "h.jpg"
    assert store.exists()
    prompt = confirm.call_args[0][0]
    assert "h.jpg" in prompt
    assert "Index: 7" in prompt


def test_dirty_decline_clears_state(store):
    write(store, running=True, lastStartedIdx=2, lastStartedName="c.jpg")

    decision = resolve(store, lambda message: False)

    assert decision.do_resume is False
    assert decision.cleared is True
    assert not store.exists()


def test_dirty_without_fields(store):
    write(store, running=True, cleanExit=False)

    inspection = inspect(store)

    assert inspection.status is RecoveryStatus.DIRTY_NO_FIELDS
    assert "unexpected stop" in build_prompt(inspection).lower()


def test_empty_file_counts_as_dirty(store):
    store.path.write_text("", encoding="utf-8")

    assert inspect(store).status is RecoveryStatus.DIRTY_NO_FIELDS


def test_unparseable_index_still_offers_resume(store):
    write(store, lastStartedIdx="abc", lastStartedName="x.png")

    decision = resolve(store, lambda message: True)

    assert decision.do_resume is True
    assert decision.last_started_idx == -1
    assert decision.last_started_name == "x.png"
