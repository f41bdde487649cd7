"""
services/community_service.py — Community-membership checker.

Communities are owned by another part of the platform. The study group engine
only needs one answer from them: may this user create groups here?
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import ErrorCode, NotFoundError
from backend.app.models.community import Community, CommunityMember
from backend.app.models.enums import CommunityMemberStatus


def get_community_or_404(community_id: int, session: Session) -> Community:
    community = session.get(Community, community_id)
    if community is None:
        raise NotFoundError(
            ErrorCode.COMMUNITY_NOT_FOUND,
            f"Community {community_id} does not exist.",
        )
    return community


def is_active_community_member(community_id: int, user_id: int, session: Session) -> bool:
    """True when user_id holds an 'active' membership in community_id."""
    status = session.execute(
        select(CommunityMember.status).where(
            CommunityMember.community_id == community_id,
            CommunityMember.user_id == user_id,
        )
    ).scalar_one_or_none()
    return status is not None and CommunityMemberStatus(status) == CommunityMemberStatus.ACTIVE
