"""
models/enums.py — Enum definitions shared by models, schemas and services.

Defined here so they can be imported by schemas and services without pulling
in the full model. Do not duplicate these as plain string constants anywhere
else in the codebase.
"""

from __future__ import annotations

import enum


class Privacy(str, enum.Enum):
    PUBLIC      = "public"
    PRIVATE     = "private"
    INVITE_ONLY = "invite_only"


class GroupStatus(str, enum.Enum):
    ACTIVE    = "active"
    PAUSED    = "paused"
    COMPLETED = "completed"
    ARCHIVED  = "archived"


class MemberRole(str, enum.Enum):
    MEMBER    = "member"
    CO_LEADER = "co-leader"
    LEADER    = "leader"
    MODERATOR = "moderator"


class MemberStatus(str, enum.Enum):
    ACTIVE = "active"
    MUTED  = "muted"
    BANNED = "banned"
    LEFT   = "left"


class JoinMethod(str, enum.Enum):
    DIRECT   = "direct"
    INVITE   = "invite"
    APPROVAL = "approval"
    PROMOTED = "promoted"


class RequestStatus(str, enum.Enum):
    PENDING  = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CommunityMemberStatus(str, enum.Enum):
    ACTIVE  = "active"
    PENDING = "pending"
    BANNED  = "banned"


class TaskStatus(str, enum.Enum):
    PENDING     = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED   = "completed"
    ARCHIVED    = "archived"


class MeetingStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELED  = "canceled"


class ContentType(str, enum.Enum):
    PDF   = "pdf"
    VIDEO = "video"
    CODE  = "code"
    LINK  = "link"
    SLIDE = "slide"
    IMAGE = "image"


# Memberships in these states hold a capacity slot.
OCCUPYING_STATUSES: tuple[MemberStatus, ...] = (MemberStatus.ACTIVE, MemberStatus.MUTED)


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'co-leader'), not names ('CO_LEADER')."""
    return [member.value for member in enum_cls]
