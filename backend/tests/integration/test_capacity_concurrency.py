"""
tests/integration/test_capacity_concurrency.py — Concurrent joins against max_members.

Runs only against PostgreSQL (TEST_DATABASE_URL=postgresql://...). SQLite
ignores SELECT ... FOR UPDATE, so the race cannot be reproduced there; the
default SQLite run covers the guard through test_join_flow.py's
test_capacity_is_read_under_the_lock instead. Select these with -m postgres.

Scenario: a group with one free slot receives simultaneous direct joins from
several users. Exactly one succeeds; the rest get GROUP_FULL.
"""

from __future__ import annotations

import os
import threading

import pytest

from .conftest import auth_headers, make_group, make_user, occupying_count, token_for

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(
        not os.getenv("TEST_DATABASE_URL", "").startswith("postgresql"),
        reason="row locking needs PostgreSQL (set TEST_DATABASE_URL)",
    ),
]


def test_last_slot_goes_to_exactly_one_joiner(app, client, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"], max_members=2)

    tokens = [ctx["tokens"][name] for name in ("alice", "bob", "carol", "dave")]
    barrier = threading.Barrier(len(tokens))
    statuses: list[int] = []
    codes: list[str] = []
    lock = threading.Lock()

    def attempt(token: str) -> None:
        thread_client = app.test_client()
        barrier.wait()
        resp = thread_client.post(
            f"/api/v1/groups/{group['id']}/join",
            json={},
            headers=auth_headers(token),
        )
        with lock:
            statuses.append(resp.status_code)
            if resp.status_code != 201:
                codes.append(resp.get_json()["error"]["code"])

    threads = [threading.Thread(target=attempt, args=(t,)) for t in tokens]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(statuses) == [201, 409, 409, 409]
    assert codes == ["GROUP_FULL"] * 3
    assert occupying_count(app, group["id"]) == 2


def test_same_user_double_join_creates_one_row(app, client, community_with_users):
    ctx = community_with_users
    group = make_group(client, ctx["tokens"]["leader"], ctx["community_id"])
    joiner = make_user(app, "eve")
    # eve is not a community member; joining a group does not require it
    token = token_for(joiner)

    barrier = threading.Barrier(2)
    statuses: list[int] = []
    lock = threading.Lock()

    def attempt() -> None:
        thread_client = app.test_client()
        barrier.wait()
        resp = thread_client.post(
            f"/api/v1/groups/{group['id']}/join",
            json={},
            headers=auth_headers(token),
        )
        with lock:
            statuses.append(resp.status_code)

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(statuses) == [201, 409]
    assert occupying_count(app, group["id"]) == 2
