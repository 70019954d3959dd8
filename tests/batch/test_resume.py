"""Tests for rebuilding an interrupted batch from saved settings."""

import tempfile
from pathlib import Path

import pytest
from PIL import Image

from borderforge.batch.orchestrator import run_batch
from borderforge.batch.resume import ResumeRefusedError, plan_resume
from borderforge.options import BatchOptions
from borderforge.processing.pillow_engine import PillowEngine
from borderforge.state.kvfile import save_key_values
from borderforge.state.recovery import RecoveryDecision, resolve
from borderforge.state.run_state import RunStateStore
from borderforge.state.settings import FolderChoices, SettingsStore


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def stores(temp_dir):
    return SettingsStore(temp_dir / "settings.txt"), RunStateStore(temp_dir / "runstate.txt")


@pytest.fixture
def input_dir(temp_dir):
    folder = temp_dir / "photos"
    folder.mkdir()
    for name in ("a.png", "b.png", "c.png", "d.png"):
        Image.new("RGB", (60, 40), (200, 40, 40)).save(folder / name)
    return folder


def decision(idx=-1):
    return RecoveryDecision(do_resume=True, last_started_idx=idx)


def test_refused_without_settings(stores):
    settings_store, run_state_store = stores

    with pytest.raises(ResumeRefusedError):
        plan_resume(decision(), settings_store, run_state_store)


def test_refused_when_folders_not_remembered(stores, input_dir):
    settings_store, run_state_store = stores
    settings_store.save(BatchOptions(), FolderChoices(remember_folders=False, input_path=str(input_dir)))

    with pytest.raises(ResumeRefusedError) as exc_info:
        plan_resume(decision(), settings_store, run_state_store)
    assert "remember folders" in str(exc_info.value)


def test_refused_when_input_folder_is_gone(stores, temp_dir):
    settings_store, run_state_store = stores
    settings_store.save(BatchOptions(), FolderChoices(input_path=str(temp_dir / "deleted")))

    with pytest.raises(ResumeRefusedError):
        plan_resume(decision(), settings_store, run_state_store)


def test_refused_when_custom_output_path_missing(stores, input_dir):
    settings_store, run_state_store = stores
    save_key_values(settings_store.path, {
        "rememberFolders": True, "inputPath": str(input_dir), "useCustomOut": True, "customOutPath": "",
    })

    with pytest.raises(ResumeRefusedError):
        plan_resume(decision(), settings_store, run_state_store)


def test_resumes_into_recorded_output(stores, input_dir):
    settings_store, run_state_store = stores
    settings_store.save(BatchOptions(suffix="_b"), FolderChoices(input_path=str(input_dir)))
    output_dir = input_dir / "With Borders"
    output_dir.mkdir()
    save_key_values(run_state_store.path, {"outputPath": str(output_dir), "lastStartedIdx": 2})

    plan = plan_resume(decision(), settings_store, run_state_store)

    assert plan.output_dir == output_dir
    assert plan.start_index == 2
    assert plan.force_redo_index == 2
    assert plan.options.suffix == "_b"
    assert [t.name for t in plan.tasks] == ["a.png", "b.png", "c.png", "d.png"]


def test_missing_recorded_output_uses_next_numbered_folder(stores, input_dir):
    settings_store, run_state_store = stores
    settings_store.save(BatchOptions(), FolderChoices(input_path=str(input_dir)))
    (input_dir / "With Borders").mkdir()
    save_key_values(run_state_store.path, {"outputPath": str(input_dir / "gone"), "lastStartedIdx": 1})

    plan = plan_resume(decision(), settings_store, run_state_store)

    assert plan.output_dir == input_dir / "With Borders 2"
    assert plan.output_dir.is_dir()


def test_custom_output_is_created(stores, input_dir, temp_dir):
    settings_store, run_state_store = stores
    custom = temp_dir / "exports" / "today"
    settings_store.save(BatchOptions(), FolderChoices(
        input_path=str(input_dir), use_custom_out=True, custom_out_path=str(custom)))
    save_key_values(run_state_store.path, {"lastStartedIdx": 0})

    plan = plan_resume(decision(), settings_store, run_state_store)

    assert plan.output_dir == custom
    assert custom.is_dir()


@pytest.mark.parametrize(
    "record,decision_idx,expected",
    [
        ({"lastStartedIdx": 99}, -1, 3),
        ({"lastStartedIdx": "junk"}, 2, 2),
        ({}, -1, 0),
    ],
)
def test_resume_index_selection(stores, input_dir, record, decision_idx, expected):
    settings_store, run_state_store = stores
    settings_store.save(BatchOptions(), FolderChoices(input_path=str(input_dir)))
    save_key_values(run_state_store.path, dict(record, running=True))

    plan = plan_resume(decision(decision_idx), settings_store, run_state_store)

    assert plan.start_index == expected


def test_interrupted_run_finishes_after_resume(stores, input_dir):
    settings_store, run_state_store = stores
    settings_store.save(BatchOptions(long_side=300, padding=10), FolderChoices(input_path=str(input_dir)))
    output_dir = input_dir / "With Borders"
    output_dir.mkdir()
    # a finished, b was mid-write when the process died
    Image.new("RGB", (10, 10)).save(output_dir / "aWB.jpg")
    (output_dir / "bWB.jpg").write_bytes(b"\xff\xd8truncated")
    save_key_values(run_state_store.path, {
        "running": True, "cleanExit": False, "outputPath": str(output_dir),
        "lastStartedIdx": 1, "lastStartedName": "b.png", "lastDoneIdx": 0,
    })

    recovery = resolve(run_state_store, lambda message: True)
    plan = plan_resume(recovery, settings_store, run_state_store)
    result = run_batch(
        plan.tasks, plan.start_index, plan.output_dir, plan.options, plan.force_redo_index,
        engine=PillowEngine(), store=run_state_store, input_dir=plan.input_dir,
    )

    assert result.finished_normally is True
    assert result.processed == 3
    assert not run_state_store.exists()
    for name in ("bWB.jpg", "cWB.jpg", "dWB.jpg"):
        with Image.open(output_dir / name) as out:
            assert out.size == (240, 300)
    with Image.open(output_dir / "aWB.jpg") as out:
        assert out.size == (10, 10)
