"""
Unit tests for join_service dispatch and admission rules.

Repository lookups are patched so each (privacy, mode) branch can be driven
without a database.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from backend.app.errors import AlreadyMemberError, AppError, ErrorCode
from backend.app.models.enums import GroupStatus, JoinMethod, MemberRole, MemberStatus, Privacy
from backend.app.services import join_service

_MODULE = "backend.app.services.join_service"


def _group(privacy=Privacy.PUBLIC, approval_required=False, status=GroupStatus.ACTIVE):
    return SimpleNamespace(
        id=1,
        privacy=privacy,
        approval_required=approval_required,
        status=status,
        max_members=None,
    )


# ── ensure_can_join ────────────────────────────────────────────────────────

@patch(f"{_MODULE}.get_membership", return_value=None)
def test_ensure_can_join_new_user(mock_get):
    assert join_service.ensure_can_join(1, 7, MagicMock()) is None


@pytest.mark.parametrize("status", [MemberStatus.ACTIVE, MemberStatus.MUTED])
@patch(f"{_MODULE}.get_membership")
def test_ensure_can_join_occupying_member(mock_get, status):
    mock_get.return_value = SimpleNamespace(status=status)

    with pytest.raises(AppError) as exc_info:
        join_service.ensure_can_join(1, 7, MagicMock())

    assert exc_info.value.code == ErrorCode.ALREADY_MEMBER
    assert exc_info.value.http_status == 409


@patch(f"{_MODULE}.get_membership")
def test_ensure_can_join_banned(mock_get):
    mock_get.return_value = SimpleNamespace(status=MemberStatus.BANNED)

    with pytest.raises(AppError) as exc_info:
        join_service.ensure_can_join(1, 7, MagicMock())

    assert exc_info.value.code == ErrorCode.MEMBER_BANNED
    assert exc_info.value.http_status == 403


@patch(f"{_MODULE}.get_membership")
def test_ensure_can_join_returns_left_row(mock_get):
    left = SimpleNamespace(status=MemberStatus.LEFT)
    mock_get.return_value = left

    assert join_service.ensure_can_join(1, 7, MagicMock()) is left


# ── admit_member ───────────────────────────────────────────────────────────

@patch(f"{_MODULE}.reserve_slot")
@patch(f"{_MODULE}.ensure_can_join")
def test_admit_member_reactivates_left_row(mock_ensure, mock_reserve):
    left = SimpleNamespace(
        status=MemberStatus.LEFT,
        role=MemberRole.MEMBER,
        join_method=JoinMethod.DIRECT,
        joined_at=None,
        invite_code_used=None,
    )
    mock_ensure.return_value = left
    session = MagicMock()

    result = join_service.admit_member(1, 7, JoinMethod.INVITE, session, invite_code_used="abc")

    assert result is left
    assert left.status == MemberStatus.ACTIVE
    assert left.join_method == JoinMethod.INVITE
    assert left.invite_code_used == "abc"
    assert left.joined_at is not None
    session.add.assert_not_called()
    mock_reserve.assert_called_once_with(1, session)


@patch(f"{_MODULE}.reserve_slot")
@patch(f"{_MODULE}.ensure_can_join", return_value=None)
def test_admit_member_maps_unique_violation_to_already_member(mock_ensure, mock_reserve):
    session = MagicMock()
    session.flush.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

    with pytest.raises(AppError) as exc_info:
        join_service.admit_member(1, 7, JoinMethod.DIRECT, session)

    assert exc_info.value.code == ErrorCode.ALREADY_MEMBER


@patch(f"{_MODULE}.reserve_slot")
@patch(f"{_MODULE}.ensure_can_join")
def test_admit_member_checks_membership_before_capacity(mock_ensure, mock_reserve):
    mock_ensure.side_effect = AlreadyMemberError(1, 7)

    with pytest.raises(AppError):
        join_service.admit_member(1, 7, JoinMethod.DIRECT, MagicMock())

    mock_reserve.assert_not_called()


# ── join() dispatch ────────────────────────────────────────────────────────

def test_join_rejects_unknown_mode():
    session = MagicMock()

    with pytest.raises(AppError) as exc_info:
        join_service.join(1, 7, "teleport", session)

    err = exc_info.value
    assert err.code == ErrorCode.INVALID_JOIN_MODE
    assert err.http_status == 400
    session.execute.assert_not_called()


@patch(f"{_MODULE}.get_group_or_404")
def test_join_refuses_paused_group(mock_group):
    mock_group.return_value = _group(status=GroupStatus.PAUSED)

    with pytest.raises(AppError) as exc_info:
        join_service.join(1, 7, "direct", MagicMock())

    assert exc_info.value.code == ErrorCode.GROUP_NOT_ACTIVE
    assert exc_info.value.http_status == 409


@pytest.mark.parametrize("privacy", [Privacy.PRIVATE, Privacy.INVITE_ONLY])
@patch(f"{_MODULE}.admit_member")
@patch(f"{_MODULE}.get_user_or_404")
@patch(f"{_MODULE}.get_group_or_404")
def test_direct_join_on_restricted_group(mock_group, mock_user, mock_admit, privacy):
    mock_group.return_value = _group(privacy=privacy, approval_required=True)

    with pytest.raises(AppError) as exc_info:
        join_service.join(1, 7, "direct", MagicMock())

    assert exc_info.value.code == ErrorCode.APPROVAL_REQUIRED
    mock_admit.assert_not_called()


@patch(f"{_MODULE}.get_membership_with_user")
@patch(f"{_MODULE}.admit_member")
@patch(f"{_MODULE}.get_user_or_404")
@patch(f"{_MODULE}.get_group_or_404")
def test_direct_join_on_open_public_group(mock_group, mock_user, mock_admit, mock_with_user):
    mock_group.return_value = _group()
    mock_with_user.return_value.to_dict.return_value = {"user_id": 7}
    session = MagicMock()

    result = join_service.join(1, 7, "direct", session)

    assert result == {"status": "joined", "membership": {"user_id": 7}}
    mock_admit.assert_called_once_with(1, 7, JoinMethod.DIRECT, session)


@patch(f"{_MODULE}.get_user_or_404")
@patch(f"{_MODULE}.get_group_or_404")
def test_request_on_open_public_group(mock_group, mock_user):
    mock_group.return_value = _group()

    with pytest.raises(AppError) as exc_info:
        join_service.join(1, 7, "request", MagicMock())

    assert exc_info.value.code == ErrorCode.INVALID_JOIN_MODE


@patch(f"{_MODULE}.get_open_request")
@patch(f"{_MODULE}.ensure_can_join", return_value=None)
@patch(f"{_MODULE}.get_user_or_404")
@patch(f"{_MODULE}.get_group_or_404")
def test_second_open_request_is_duplicate(mock_group, mock_user, mock_ensure, mock_open):
    mock_group.return_value = _group(privacy=Privacy.PRIVATE, approval_required=True)
    mock_open.return_value = SimpleNamespace(id=3)
    session = MagicMock()

    with pytest.raises(AppError) as exc_info:
        join_service.join(1, 7, "request", session)

    assert exc_info.value.code == ErrorCode.DUPLICATE_REQUEST
    session.add.assert_not_called()


@patch(f"{_MODULE}.admit_member")
@patch(f"{_MODULE}.find_live_invite_by_code")
@patch(f"{_MODULE}.get_user_or_404")
@patch(f"{_MODULE}.get_group_or_404")
def test_redeem_invite_addressed_to_someone_else(mock_group, mock_user, mock_find, mock_admit):
    mock_group.return_value = _group(privacy=Privacy.INVITE_ONLY, approval_required=True)
    mock_find.return_value = SimpleNamespace(user_id=99, consumed_at=None)

    with pytest.raises(AppError) as exc_info:
        join_service.join(1, 7, "redeem_invite", MagicMock(), invite_code="abc")

    assert exc_info.value.code == ErrorCode.INVITE_NOT_FOUND
    assert exc_info.value.http_status == 404
    mock_admit.assert_not_called()


@patch(f"{_MODULE}.get_membership_with_user")
@patch(f"{_MODULE}.admit_member")
@patch(f"{_MODULE}.find_live_invite_by_code")
@patch(f"{_MODULE}.get_user_or_404")
@patch(f"{_MODULE}.get_group_or_404")
def test_redeem_invite_consumes_it(mock_group, mock_user, mock_find, mock_admit, mock_with_user):
    mock_group.return_value = _group(privacy=Privacy.PRIVATE, approval_required=True)
    invite = SimpleNamespace(user_id=7, consumed_at=None)
    mock_find.return_value = invite
    mock_with_user.return_value.to_dict.return_value = {"user_id": 7, "join_method": "invite"}
    session = MagicMock()

    result = join_service.join(1, 7, "redeem_invite", session, invite_code="abc")

    assert result["status"] == "joined"
    assert invite.consumed_at is not None
    mock_admit.assert_called_once_with(1, 7, JoinMethod.INVITE, session, invite_code_used="abc")
