"""Tests for size-window JPEG encoding."""

import math
import tempfile
from pathlib import Path

import pytest

from borderforge.options import BatchOptions
from borderforge.processing.encoder import SizeWindow, encode


class FakeDocument:
    """Document whose saved size is looked up from a quality -> KB table."""

    def __init__(self, sizes_kb):
        self.sizes_kb = sizes_kb
        self.saves = []

    def save(self, path, quality, embed_profile=False):
        size = self.sizes_kb[quality] * 1024
        Path(path).write_bytes(b"\0" * size)
        self.saves.append(quality)
        return size


# Monotonic: quality q produces (q + 1) * 100 KB
LINEAR = {q: (q + 1) * 100 for q in range(13)}


@pytest.fixture
def target():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "out.jpg"


def test_window_score():
    window = SizeWindow(100, 200)

    assert window.score(150) == 0
    assert window.score(50) == 50
    assert window.score(260) == 60
    assert window.score(0) == math.inf
    assert SizeWindow(0, 0).contains(10**9)


def test_no_limits_saves_once(target):
    document = FakeDocument(LINEAR)
    options = BatchOptions(jpeg_quality=10, min_kb=0, max_kb=0)

    result = encode(document, target, options)

    assert document.saves == [10]
    assert result.final_quality == 10
    assert result.in_window is True


def test_ignored_limits_save_once(target):
    document = FakeDocument(LINEAR)
    options = BatchOptions(jpeg_quality=10, max_kb=100, ignore_file_size_limits=True)

    encode(document, target, options)

    assert document.saves == [10]


def test_start_quality_in_window(target):
    document = FakeDocument(LINEAR)

    result = encode(document, target, BatchOptions(jpeg_quality=5, min_kb=0, max_kb=900))

    assert document.saves == [5]
    assert result.final_size == 600 * 1024


def test_steps_down_until_under_max(target):
    document = FakeDocument(LINEAR)

    result = encode(document, target, BatchOptions(jpeg_quality=10, min_kb=0, max_kb=650))

    assert document.saves == [10, 9, 8, 7, 6, 5]
    assert result.final_quality == 5
    assert result.in_window is True
    assert target.stat().st_size == 600 * 1024


def test_steps_up_until_over_min(target):
    document = FakeDocument(LINEAR)

    result = encode(document, target, BatchOptions(jpeg_quality=2, min_kb=550, max_kb=0))

    assert document.saves == [2, 3, 4, 5]
    assert result.final_quality == 5


def test_unreachable_window_keeps_closest_and_resaves(target):
    # Window 420..480 KB falls between q=3 (400) and q=4 (500)
    document = FakeDocument(LINEAR)

    result = encode(document, target, BatchOptions(jpeg_quality=6, min_kb=420, max_kb=480))

    # Down: 700, 600, 500, 400 (too small, stop); 500 and 400 both score 20 KB,
    # the first minimum (q=4) wins and is rewritten over the q=3 bytes.
    assert document.saves == [6, 5, 4, 3, 4]
    assert result.in_window is False
    assert result.final_quality == 4
    assert target.stat().st_size == 500 * 1024


def test_best_is_last_trial_no_resave(target):
    document = FakeDocument(LINEAR)

    result = encode(document, target, BatchOptions(jpeg_quality=12, min_kb=0, max_kb=50))

    assert document.saves == list(range(12, -1, -1))
    assert result.final_quality == 0
    assert result.in_window is False

