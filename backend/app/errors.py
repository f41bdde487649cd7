"""
errors.py — AppError hierarchy and error code registry.

Every error returned by the StudyHub API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - New error codes require: add constant here + add a test that asserts it.
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).

Taxonomy (one subclass per HTTP family, then one per named failure):

  BadRequestError  400  InvalidModeError, ApprovalRequiredError
  ForbiddenError   403
  NotFoundError    404
  ConflictError    409  AlreadyMemberError, DuplicateRequestError,
                        GroupFullError, GroupNotActiveError,
                        RequestAlreadyReviewedError,
                        LeadershipTransferRequiredError
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_PRIVACY            = "INVALID_PRIVACY"
    INVALID_ROLE               = "INVALID_ROLE"
    INVALID_JOIN_MODE          = "INVALID_JOIN_MODE"
    APPROVAL_REQUIRED          = "APPROVAL_REQUIRED"
    INVALID_SCORE              = "INVALID_SCORE"
    INVALID_MEETING_WINDOW     = "INVALID_MEETING_WINDOW"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    ALREADY_MEMBER             = "ALREADY_MEMBER"
    DUPLICATE_REQUEST          = "DUPLICATE_REQUEST"
    GROUP_FULL                 = "GROUP_FULL"
    GROUP_NOT_ACTIVE           = "GROUP_NOT_ACTIVE"
    REQUEST_ALREADY_REVIEWED   = "REQUEST_ALREADY_REVIEWED"
    LEADERSHIP_TRANSFER_REQUIRED = "LEADERSHIP_TRANSFER_REQUIRED"
    CAPACITY_BELOW_MEMBER_COUNT = "CAPACITY_BELOW_MEMBER_COUNT"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    MEMBER_NOT_FOUND           = "MEMBER_NOT_FOUND"
    REQUEST_NOT_FOUND          = "REQUEST_NOT_FOUND"
    INVITE_NOT_FOUND           = "INVITE_NOT_FOUND"
    COMMUNITY_NOT_FOUND        = "COMMUNITY_NOT_FOUND"
    RESOURCE_NOT_FOUND         = "RESOURCE_NOT_FOUND"

    # ── Method Errors (405) ────────────────────────────────────────────────
    METHOD_NOT_ALLOWED         = "METHOD_NOT_ALLOWED"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403
    NOT_COMMUNITY_MEMBER       = "NOT_COMMUNITY_MEMBER"   # 403
    MEMBER_BANNED              = "MEMBER_BANNED"          # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # The requested user has no membership in the group; stats are null.
    NO_MEMBERSHIP_DATA = "NO_MEMBERSHIP_DATA"

    # approve was called for a user who was already a member.
    ALREADY_MEMBER = "ALREADY_MEMBER"

    # approve was repeated for a request that is already approved, and the
    # user is no longer a member. Nothing is re-admitted.
    REQUEST_ALREADY_APPROVED = "REQUEST_ALREADY_APPROVED"


# ── HTTP families ──────────────────────────────────────────────────────────

class BadRequestError(AppError):
    def __init__(self, code: str, message: str, field: str | None = None) -> None:
        super().__init__(code, message, 400, field)


class ForbiddenError(AppError):
    def __init__(self, message: str, code: str = ErrorCode.FORBIDDEN) -> None:
        super().__init__(code, message, 403)


class NotFoundError(AppError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(code, message, 404)


class ConflictError(AppError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(code, message, 409)


# ── Named failures ─────────────────────────────────────────────────────────

class InvalidModeError(BadRequestError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.INVALID_JOIN_MODE, message, field="mode")


class ApprovalRequiredError(BadRequestError):
    def __init__(self, group_id: int) -> None:
        super().__init__(
            ErrorCode.APPROVAL_REQUIRED,
            f"Group {group_id} requires approval. "
            "Send a join request or redeem an invite code instead.",
        )


class AlreadyMemberError(ConflictError):
    def __init__(self, group_id: int, user_id: int) -> None:
        super().__init__(
            ErrorCode.ALREADY_MEMBER,
            f"User {user_id} is already a member of group {group_id}.",
        )


class DuplicateRequestError(ConflictError):
    def __init__(self, group_id: int, user_id: int) -> None:
        super().__init__(
            ErrorCode.DUPLICATE_REQUEST,
            f"User {user_id} already has an open request or invite for group {group_id}.",
        )


class GroupFullError(ConflictError):
    def __init__(self, group_id: int, max_members: int) -> None:
        super().__init__(
            ErrorCode.GROUP_FULL,
            f"Group {group_id} has reached its limit of {max_members} members.",
        )


class GroupNotActiveError(ConflictError):
    def __init__(self, group_id: int, status: str) -> None:
        super().__init__(
            ErrorCode.GROUP_NOT_ACTIVE,
            f"Group {group_id} is {status} and does not accept new members.",
        )


class RequestAlreadyReviewedError(ConflictError):
    def __init__(self, request_id: int, status: str) -> None:
        super().__init__(
            ErrorCode.REQUEST_ALREADY_REVIEWED,
            f"Request {request_id} was already {status}.",
        )


class LeadershipTransferRequiredError(ConflictError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.LEADERSHIP_TRANSFER_REQUIRED, message)
