"""
tests/integration/test_gamification_and_activities.py — Points, stats, meetings, topics.

Endpoints covered:
  GET  /groups/:id/leaderboard          → 200
  GET  /groups/:id/members/:uid/stats   → 200
  POST /groups/:id/topics               → 201
  GET  /groups/:id/meetings             → 200
  POST /groups/:id/meetings             → 201
"""

from __future__ import annotations

from sqlalchemy import select

from backend.app.extensions import db
from backend.app.models.enums import ContentType, TaskStatus
from backend.app.models.group_activity import GroupTask, SharedContent, TaskAssignment
from backend.app.models.study_group_member import StudyGroupMember

from .conftest import auth_headers, join_group, make_group


def _set_score(app, group_id: int, user_id: int, score: int, achievements=None) -> None:
    with app.app_context():
        row = db.session.execute(
            select(StudyGroupMember).where(
                StudyGroupMember.group_id == group_id,
                StudyGroupMember.user_id == user_id,
            )
        ).scalar_one()
        row.contribution_score = score
        if achievements is not None:
            row.achievements = achievements
        db.session.commit()


def _stats(client, token, group_id, user_id):
    return client.get(
        f"/api/v1/groups/{group_id}/members/{user_id}/stats",
        headers=auth_headers(token),
    )


def _create_topic(client, token, group_id, title="Week 1", content="Dijkstra vs A*"):
    return client.post(
        f"/api/v1/groups/{group_id}/topics",
        json={"title": title, "content": content},
        headers=auth_headers(token),
    )


def _schedule(client, token, group_id, **fields):
    payload = {
        "title": "Problem session",
        "start_time": "2026-11-02T18:00:00+00:00",
        **fields,
    }
    return client.post(
        f"/api/v1/groups/{group_id}/meetings",
        json=payload,
        headers=auth_headers(token),
    )


# ── Leaderboard ───────────────────────────────────────────────────────────

def test_leaderboard_ranks_by_points_then_join_order(client, app, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"])
    join_group(client, ctx["tokens"]["alice"], group["id"])
    join_group(client, ctx["tokens"]["bob"], group["id"])
    _set_score(app, group["id"], ctx["ids"]["alice"], 30)
    _set_score(app, group["id"], ctx["ids"]["bob"], 130)
    _set_score(app, group["id"], ctx["ids"]["leader"], 30)

    resp = client.get(
        f"/api/v1/groups/{group['id']}/leaderboard",
        headers=auth_headers(ctx["tokens"]["alice"]),
    )

    assert resp.status_code == 200
    board = resp.get_json()["data"]
    assert [e["username"] for e in board] == ["bob", "leader", "alice"]
    assert [e["rank"] for e in board] == [1, 2, 3]
    assert board[0]["points"] == 130
    assert board[0]["level"] == 2
    assert board[1]["role"] == "leader"


def test_leaderboard_forbidden_for_non_members(client, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"])

    resp = client.get(
        f"/api/v1/groups/{group['id']}/leaderboard",
        headers=auth_headers(ctx["tokens"]["carol"]),
    )

    assert resp.status_code == 403


# ── Stats ─────────────────────────────────────────────────────────────────

def test_member_stats(client, app, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"])
    join_group(client, ctx["tokens"]["alice"], group["id"])
    _set_score(
        app, group["id"], ctx["ids"]["alice"], 120,
        achievements=["TOP_CONTRIBUTOR", "helpful_reply:7", "RESOURCE_PROVIDER", "helpful_reply:3"],
    )

    with app.app_context():
        done = GroupTask(group_id=group["id"], creator_id=ctx["ids"]["leader"],
                         title="Read CLRS 22", status=TaskStatus.COMPLETED)
        open_task = GroupTask(group_id=group["id"], creator_id=ctx["ids"]["leader"],
                              title="Read CLRS 23", status=TaskStatus.IN_PROGRESS)
        db.session.add_all([done, open_task])
        db.session.flush()
        db.session.add_all([
            TaskAssignment(task_id=done.id, user_id=ctx["ids"]["alice"]),
            TaskAssignment(task_id=open_task.id, user_id=ctx["ids"]["alice"]),
            SharedContent(group_id=group["id"], uploader_id=ctx["ids"]["alice"],
                          title="Notes", file_type=ContentType.PDF),
            SharedContent(group_id=group["id"], uploader_id=ctx["ids"]["alice"],
                          title="Slides", file_type=ContentType.SLIDE),
        ])
        db.session.commit()

    resp = _stats(client, ctx["tokens"]["leader"], group["id"], ctx["ids"]["alice"])

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["warnings"] == []
    stats = body["data"]
    assert stats["username"] == "alice"
    assert stats["points"] == 120
    assert stats["level"] == 2
    assert stats["current_level_progress"] == 20
    assert stats["next_level_threshold"] == 200
    assert stats["completed_tasks"] == 1
    assert stats["contributed_content"] == 2
    assert stats["helpful_replies"] == 2
    assert stats["recent_achievements"] == [
        "TOP_CONTRIBUTOR", "helpful_reply:7", "RESOURCE_PROVIDER",
    ]


def test_fresh_member_is_level_one(client, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"])

    stats = _stats(client, ctx["tokens"]["leader"], group["id"], ctx["ids"]["leader"]).get_json()["data"]

    assert stats["points"] == 0
    assert stats["level"] == 1
    assert stats["current_level_progress"] == 0
    assert stats["next_level_threshold"] == 100


def test_stats_for_non_member_are_null_with_warning(client, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"])

    resp = _stats(client, ctx["tokens"]["leader"], group["id"], ctx["ids"]["dave"])

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["data"] is None
    assert [w["code"] for w in body["warnings"]] == ["NO_MEMBERSHIP_DATA"]


def test_non_member_cannot_read_private_group_stats(client, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"], privacy="private")

    stats = _stats(client, ctx["tokens"]["bob"], group["id"], ctx["ids"]["leader"])
    board = client.get(
        f"/api/v1/groups/{group['id']}/leaderboard",
        headers=auth_headers(ctx["tokens"]["bob"]),
    )

    assert stats.status_code == 403
    assert stats.get_json()["error"]["code"] == "FORBIDDEN"
    assert "data" not in stats.get_json()
    assert board.status_code == 403


# ── Topics ────────────────────────────────────────────────────────────────

def test_topic_awards_points(client, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"])

    resp = _create_topic(client, ctx["tokens"]["leader"], group["id"])

    assert resp.status_code == 201
    topic = resp.get_json()["data"]
    assert topic["title"] == "Week 1"
    assert topic["points_awarded"] == 10
    assert topic["new_achievements"] == []

    stats = _stats(client, ctx["tokens"]["leader"], group["id"], ctx["ids"]["leader"]).get_json()["data"]
    assert stats["points"] == 10


def test_topic_crossing_threshold_grants_achievement(client, app, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"])
    _set_score(app, group["id"], ctx["ids"]["leader"], 45)

    first = _create_topic(client, ctx["tokens"]["leader"], group["id"]).get_json()["data"]
    second = _create_topic(client, ctx["tokens"]["leader"], group["id"], title="Week 2").get_json()["data"]

    assert first["new_achievements"] == ["RESOURCE_PROVIDER"]
    assert second["new_achievements"] == []


def test_member_cannot_open_topic(client, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"])
    join_group(client, ctx["tokens"]["alice"], group["id"])

    resp = _create_topic(client, ctx["tokens"]["alice"], group["id"])

    assert resp.status_code == 403
    assert "set_topic" in resp.get_json()["error"]["message"]


# ── Meetings ──────────────────────────────────────────────────────────────

def test_schedule_and_list_meetings(client, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"])
    join_group(client, ctx["tokens"]["alice"], group["id"])

    later = _schedule(
        client, ctx["tokens"]["leader"], group["id"],
        title="Review", start_time="2026-11-09T18:00:00+00:00",
    )
    earlier = _schedule(
        client, ctx["tokens"]["leader"], group["id"],
        end_time="2026-11-02T19:30:00+00:00",
        meeting_url="https://meet.example.com/graphs",
    )
    assert later.status_code == 201
    assert earlier.status_code == 201
    assert earlier.get_json()["data"]["status"] == "scheduled"

    resp = client.get(
        f"/api/v1/groups/{group['id']}/meetings",
        headers=auth_headers(ctx["tokens"]["alice"]),
    )

    assert resp.status_code == 200
    meetings = resp.get_json()["data"]
    assert [m["title"] for m in meetings] == ["Problem session", "Review"]
    assert meetings[0]["meeting_url"] == "https://meet.example.com/graphs"


def test_meeting_end_must_follow_start(client, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"])

    resp = _schedule(
        client, ctx["tokens"]["leader"], group["id"],
        end_time="2026-11-02T17:00:00+00:00",
    )

    assert resp.status_code == 400
    body = resp.get_json()["error"]
    assert body["code"] == "INVALID_MEETING_WINDOW"
    assert body["field"] == "end_time"


def test_meeting_requires_timezone(client, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"])

    resp = _schedule(
        client, ctx["tokens"]["leader"], group["id"],
        start_time="2026-11-02T18:00:00",
    )

    assert resp.status_code == 400
    assert resp.get_json()["error"]["field"] == "start_time"


def test_member_cannot_schedule_meeting(client, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"])
    join_group(client, ctx["tokens"]["alice"], group["id"])

    resp = _schedule(client, ctx["tokens"]["alice"], group["id"])

    assert resp.status_code == 403
    assert "schedule_meeting" in resp.get_json()["error"]["message"]


def test_non_member_cannot_list_meetings(client, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"])

    resp = client.get(
        f"/api/v1/groups/{group['id']}/meetings",
        headers=auth_headers(ctx["tokens"]["carol"]),
    )

    assert resp.status_code == 403
