"""
Unit tests for request_service review transitions and invite batching.

These tests run DB-free with patched repository helpers.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from backend.app.errors import AlreadyMemberError, AppError, ErrorCode
from backend.app.models.enums import GroupStatus, JoinMethod, Privacy, RequestStatus
from backend.app.services import request_service

_MODULE = "backend.app.services.request_service"


def _request(status=RequestStatus.PENDING, user_id=7):
    return SimpleNamespace(
        id=11,
        group_id=1,
        user_id=user_id,
        status=status,
        is_invite=False,
        message=None,
        requested_at=None,
        reviewed_at=None,
        reviewed_by=None,
        response_message=None,
    )


def _group(privacy=Privacy.PRIVATE, status=GroupStatus.ACTIVE):
    return SimpleNamespace(
        id=1,
        name="Graph Theory",
        description=None,
        privacy=privacy,
        status=status,
        is_restricted=privacy != Privacy.PUBLIC,
    )


# ── _approve ───────────────────────────────────────────────────────────────

@patch(f"{_MODULE}.admit_member")
@patch(f"{_MODULE}.get_current_membership", return_value=None)
def test_approve_pending_admits_member(mock_current, mock_admit):
    request = _request()
    session = MagicMock()

    result = request_service._approve(request, _group(), 2, "welcome", session)

    assert result["already_member"] is False
    assert result["transitioned"] is True
    assert result["request"]["status"] == "approved"
    assert result["request"]["reviewed_by"] == 2
    assert result["request"]["response_message"] == "welcome"
    mock_admit.assert_called_once_with(1, 7, JoinMethod.APPROVAL, session)


@patch(f"{_MODULE}.admit_member")
@patch(f"{_MODULE}.get_current_membership")
def test_approve_approved_request_is_noop(mock_current, mock_admit):
    request = _request(status=RequestStatus.APPROVED)
    mock_current.return_value = SimpleNamespace(user_id=7)
    session = MagicMock()

    result = request_service._approve(request, _group(), 2, None, session)

    assert result["already_member"] is True
    assert result["transitioned"] is False
    mock_admit.assert_not_called()
    session.flush.assert_not_called()


@patch(f"{_MODULE}.admit_member")
@patch(f"{_MODULE}.get_current_membership", return_value=None)
def test_approve_approved_request_after_member_left_is_noop(mock_current, mock_admit):
    request = _request(status=RequestStatus.APPROVED)
    session = MagicMock()

    result = request_service._approve(request, _group(), 2, None, session)

    assert result["already_member"] is False
    assert result["transitioned"] is False
    mock_admit.assert_not_called()
    session.flush.assert_not_called()


@patch(f"{_MODULE}.get_current_membership", return_value=None)
def test_approve_rejected_request_conflicts(mock_current):
    with pytest.raises(AppError) as exc_info:
        request_service._approve(_request(status=RequestStatus.REJECTED), _group(), 2, None, MagicMock())

    err = exc_info.value
    assert err.code == ErrorCode.REQUEST_ALREADY_REVIEWED
    assert err.http_status == 409


@patch(f"{_MODULE}.admit_member")
@patch(f"{_MODULE}.get_current_membership")
def test_approve_for_existing_member_adds_note(mock_current, mock_admit):
    mock_current.return_value = SimpleNamespace(user_id=7)
    request = _request()

    result = request_service._approve(request, _group(), 2, "ignored", MagicMock())

    assert result["already_member"] is True
    assert request.status == RequestStatus.APPROVED
    assert request.response_message == request_service.ALREADY_MEMBER_NOTE
    mock_admit.assert_not_called()


@patch(f"{_MODULE}.admit_member")
@patch(f"{_MODULE}.get_current_membership", return_value=None)
def test_approve_in_archived_group(mock_current, mock_admit):
    with pytest.raises(AppError) as exc_info:
        request_service._approve(_request(), _group(status=GroupStatus.ARCHIVED), 2, None, MagicMock())

    assert exc_info.value.code == ErrorCode.GROUP_NOT_ACTIVE
    mock_admit.assert_not_called()


# ── _reject ────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("status", [RequestStatus.APPROVED, RequestStatus.REJECTED])
def test_reject_terminal_request_conflicts(status):
    with pytest.raises(AppError) as exc_info:
        request_service._reject(_request(status=status), 2, None, MagicMock())

    assert exc_info.value.code == ErrorCode.REQUEST_ALREADY_REVIEWED


def test_reject_pending_request():
    request = _request()

    result = request_service._reject(request, 2, "not now", MagicMock())

    assert result["request"]["status"] == "rejected"
    assert request.reviewed_at is not None


# ── Lookup by (group, user) ────────────────────────────────────────────────

@patch(f"{_MODULE}.get_latest_reviewed_request", return_value=None)
@patch(f"{_MODULE}.get_open_request", return_value=None)
def test_find_request_for_user_not_found(mock_open, mock_latest):
    with pytest.raises(AppError) as exc_info:
        request_service._find_request_for_user(1, 7, MagicMock())

    assert exc_info.value.code == ErrorCode.REQUEST_NOT_FOUND
    assert exc_info.value.http_status == 404


@patch(f"{_MODULE}.get_latest_reviewed_request")
@patch(f"{_MODULE}.get_open_request")
def test_find_request_prefers_open_request(mock_open, mock_latest):
    open_request = _request()
    mock_open.return_value = open_request

    assert request_service._find_request_for_user(1, 7, MagicMock()) is open_request
    mock_latest.assert_not_called()


# ── Invites ────────────────────────────────────────────────────────────────

@patch(f"{_MODULE}.get_group_or_404")
def test_invite_users_rejects_public_group(mock_group):
    mock_group.return_value = _group(privacy=Privacy.PUBLIC)

    with pytest.raises(AppError) as exc_info:
        request_service.invite_users(1, 2, [7], MagicMock())

    assert exc_info.value.code == ErrorCode.INVALID_JOIN_MODE


@patch(f"{_MODULE}._invite_one")
@patch(f"{_MODULE}.require_capability")
@patch(f"{_MODULE}.get_current_membership")
@patch(f"{_MODULE}.get_group_or_404")
def test_invite_users_reports_each_user(mock_group, mock_current, mock_require, mock_invite_one):
    mock_group.return_value = _group()
    mock_invite_one.side_effect = ["code-7", AlreadyMemberError(1, 8)]

    result = request_service.invite_users(1, 2, [7, 8, 7], MagicMock())

    assert result[0] == {"user_id": 7, "invite_code": "code-7"}
    assert result[1]["user_id"] == 8
    assert result[1]["error"]["code"] == ErrorCode.ALREADY_MEMBER
    assert len(result) == 2


@patch(f"{_MODULE}.find_live_invite_by_code", return_value=None)
@patch(f"{_MODULE}.get_group_or_404")
def test_verify_unknown_invite(mock_group, mock_find):
    mock_group.return_value = _group()

    with pytest.raises(AppError) as exc_info:
        request_service.verify_invite_code(1, "nope", MagicMock())

    assert exc_info.value.code == ErrorCode.INVITE_NOT_FOUND


@patch(f"{_MODULE}._approve")
@patch(f"{_MODULE}._require_reviewer")
@patch(f"{_MODULE}.get_request_or_404")
def test_approve_request_by_id_checks_reviewer_of_its_group(mock_get, mock_reviewer, mock_approve):
    request = _request()
    group = _group()
    mock_get.return_value = request
    mock_reviewer.return_value = group
    session = MagicMock()

    request_service.approve_request(11, 2, session, note="ok")

    mock_reviewer.assert_called_once_with(1, 2, session)
    mock_approve.assert_called_once_with(request, group, 2, "ok", session)
