from __future__ import annotations

from unittest.mock import AsyncMock, Mock

import pytest

from triage.sync.activity import NewActivityDetector
from triage.sync.edit_guard import detail_view

VIEW = detail_view("t-1")


def _detector(guard):
    refresh = AsyncMock()
    scroll = Mock()
    return NewActivityDetector(VIEW, guard, refresh=refresh, scroll_to_latest=scroll), refresh, scroll


def test_increase_after_baseline_raises_flag(guard):
    detector, _, _ = _detector(guard)
    detector.reset(2)

    assert detector.observe(2) is False
    assert detector.observe(3) is True
    assert detector.has_new_activity
    assert detector.last_count == 3


def test_first_observation_only_sets_baseline(guard):
    detector, _, _ = _detector(guard)

    assert detector.observe(5) is False
    assert not detector.has_new_activity


def test_zero_comment_baseline_still_detects(guard):
    detector, _, _ = _detector(guard)
    detector.reset(0)

    assert detector.observe(1) is True


def test_no_flag_while_view_is_edited(guard):
    detector, _, _ = _detector(guard)
    detector.reset(1)
    guard.begin(VIEW, "comment")

    assert detector.observe(2) is False
    assert not detector.has_new_activity


@pytest.mark.asyncio
async def test_dismiss_clears_flag_refreshes_and_scrolls(guard):
    detector, refresh, scroll = _detector(guard)
    detector.reset(1)
    detector.observe(4)

    await detector.dismiss()

    assert not detector.has_new_activity
    refresh.assert_awaited_once()
    scroll.assert_called_once_with()
