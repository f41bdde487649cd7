"""
Unit tests for capacity_guard with a mocked session.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from backend.app.errors import AppError, ErrorCode
from backend.app.services import capacity_guard


def _session_returning(group) -> MagicMock:
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = group
    return session


def test_lock_group_raises_when_missing():
    with pytest.raises(AppError) as exc_info:
        capacity_guard.lock_group(404, _session_returning(None))

    err = exc_info.value
    assert err.code == ErrorCode.GROUP_NOT_FOUND
    assert err.http_status == 404


def test_lock_group_issues_for_update():
    group = SimpleNamespace(id=1, max_members=None)
    session = _session_returning(group)

    assert capacity_guard.lock_group(1, session) is group

    stmt = session.execute.call_args.args[0]
    assert stmt._for_update_arg is not None


def test_lock_group_refreshes_identity_map_copy():
    session = _session_returning(SimpleNamespace(id=1, max_members=None))

    capacity_guard.lock_group(1, session)

    stmt = session.execute.call_args.args[0]
    assert stmt.get_execution_options().get("populate_existing") is True


@patch("backend.app.services.capacity_guard.count_occupying_members")
def test_reserve_slot_unbounded_group_skips_count(mock_count):
    group = SimpleNamespace(id=1, max_members=None)

    assert capacity_guard.reserve_slot(1, _session_returning(group)) is group
    mock_count.assert_not_called()


@patch("backend.app.services.capacity_guard.count_occupying_members", return_value=4)
def test_reserve_slot_with_room(mock_count):
    group = SimpleNamespace(id=1, max_members=5)

    assert capacity_guard.reserve_slot(1, _session_returning(group)) is group


@patch("backend.app.services.capacity_guard.count_occupying_members", return_value=5)
def test_reserve_slot_full_group(mock_count):
    group = SimpleNamespace(id=1, max_members=5)

    with pytest.raises(AppError) as exc_info:
        capacity_guard.reserve_slot(1, _session_returning(group))

    err = exc_info.value
    assert err.code == ErrorCode.GROUP_FULL
    assert err.http_status == 409
