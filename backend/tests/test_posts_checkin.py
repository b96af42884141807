"""Check-in ingestion: posts drive the ledger, streak failures never fail the post."""
from datetime import date, datetime, timezone

import pytest

from backend.core.errors import (
    NotFoundError,
    OutOfOrderCheckInError,
    PermissionError,
    StorageUnavailableError,
    ValidationError,
)
from backend.features.groups.service import GroupService
from backend.features.posts.service import PostService
from backend.features.streaks.ledger import StreakLedger
from backend.models.streak import CheckInOutcome


@pytest.fixture
def ledger():
    return StreakLedger(require_preseed=False)


@pytest.fixture
def groups(ledger):
    return GroupService(ledger=ledger)


@pytest.fixture
def service(ledger, groups):
    return PostService(ledger=ledger, groups_svc=groups)


@pytest.fixture
def group(groups):
    return groups.create_group("lifter", "Evening Crew")


def test_checkin_post_starts_streak(service, group):
    result = service.create_post(
        user_id="lifter",
        group_id=group.group_id,
        content="Leg day done",
        created_at=datetime(2024, 2, 1, 18, 0, tzinfo=timezone.utc),
    )
    assert result.post.post_type == "checkin"
    assert result.streak_outcome is CheckInOutcome.STARTED
    assert result.streak.current_streak == 1
    assert result.streak_error is None


def test_next_day_checkin_extends(service, group, ledger):
    for day in (1, 2):
        service.create_post(
            user_id="lifter",
            group_id=group.group_id,
            created_at=datetime(2024, 2, day, 7, 0, tzinfo=timezone.utc),
        )
    assert ledger.get_streak("lifter", group.group_id).current_streak == 2


def test_motivation_post_does_not_touch_streak(service, group, ledger):
    result = service.create_post(user_id="lifter", group_id=group.group_id, content="You got this", post_type="motivation")
    assert result.streak is None
    assert result.streak_outcome is None
    assert ledger.get_streak("lifter", group.group_id).current_streak == 0


def test_out_of_order_streak_update_keeps_post(service, group, ledger):
    service.create_post(user_id="lifter", group_id=group.group_id, created_at=datetime(2024, 2, 5, tzinfo=timezone.utc))

    late = service.create_post(user_id="lifter", group_id=group.group_id, created_at=datetime(2024, 2, 3, tzinfo=timezone.utc))

    assert late.post.post_id
    assert late.streak is None
    assert late.streak_error == OutOfOrderCheckInError.code
    assert ledger.get_streak("lifter", group.group_id).last_check_in_date == date(2024, 2, 5)
    assert len(service.list_group_posts("lifter", group.group_id)) == 2


def test_storage_failure_in_ledger_keeps_post(group, groups):
    class DownLedger(StreakLedger):
        def record_check_in(self, user_id, group_id, checked_in_at=None):
            raise StorageUnavailableError("Storage unavailable during record_check_in")

    service = PostService(ledger=DownLedger(), groups_svc=groups)
    result = service.create_post(user_id="lifter", group_id=group.group_id)

    assert result.streak_error == "storage_unavailable"
    assert [p.post_id for p in service.list_group_posts("lifter", group.group_id)] == [result.post.post_id]


def test_non_member_cannot_post(service, group):
    with pytest.raises(PermissionError):
        service.create_post(user_id="stranger", group_id=group.group_id)


def test_unknown_post_type_rejected(service, group):
    with pytest.raises(ValidationError):
        service.create_post(user_id="lifter", group_id=group.group_id, post_type="selfie")


def test_posts_listed_newest_first(service, group):
    for day in (1, 2, 3):
        service.create_post(
            user_id="lifter",
            group_id=group.group_id,
            content=f"day {day}",
            created_at=datetime(2024, 2, day, tzinfo=timezone.utc),
        )
    contents = [p.content for p in service.list_group_posts("lifter", group.group_id, limit=2)]
    assert contents == ["day 3", "day 2"]


def test_checkin_over_http(client, as_user):
    created = client.post("/v1/groups", json={"name": "Crew"}, headers=as_user("lifter")).json()["group"]

    resp = client.post(
        f"/v1/groups/{created['id']}/posts",
        json={"content": "5k run", "image_url": "https://img.example/run.jpg"},
        headers=as_user("lifter"),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["post"]["post_type"] == "checkin"
    assert body["streak"]["current_streak"] == 1
    assert body["streak_outcome"] == "started"

    duplicate = client.post(f"/v1/groups/{created['id']}/posts", json={"content": "again"}, headers=as_user("lifter"))
    assert duplicate.status_code == 201
    assert duplicate.json()["streak_outcome"] == "unchanged"
    assert duplicate.json()["streak"]["current_streak"] == 1

    feed = client.get(f"/v1/groups/{created['id']}/posts", headers=as_user("lifter")).json()["posts"]
    assert len(feed) == 2


def test_invalid_post_type_over_http_is_400(client, as_user):
    created = client.post("/v1/groups", json={"name": "Crew"}, headers=as_user("lifter")).json()["group"]
    resp = client.post(f"/v1/groups/{created['id']}/posts", json={"post_type": "selfie"}, headers=as_user("lifter"))
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_own_posts_across_groups_are_paged(service, groups, group):
    other = groups.create_group("lifter", "Weekend Runs")
    for day, target in ((1, group), (2, other), (3, group)):
        service.create_post(
            user_id="lifter",
            group_id=target.group_id,
            content=f"day {day}",
            post_type="motivation",
            created_at=datetime(2024, 2, day, tzinfo=timezone.utc),
        )

    first_page = service.list_user_posts("lifter", limit=2)
    second_page = service.list_user_posts("lifter", limit=2, offset=2)

    assert [(p.content, p.group_name) for p in first_page] == [("day 3", "Evening Crew"), ("day 2", "Weekend Runs")]
    assert [p.content for p in second_page] == ["day 1"]
    assert service.list_user_posts("someone-else") == []


def test_only_author_can_delete_post(service, groups, group, ledger):
    groups.join_group("buddy", group.invite_code)
    result = service.create_post(user_id="lifter", group_id=group.group_id, created_at=datetime(2024, 2, 1, tzinfo=timezone.utc))

    with pytest.raises(NotFoundError):
        service.delete_post("buddy", result.post.post_id)

    service.delete_post("lifter", result.post.post_id)
    assert service.list_group_posts("lifter", group.group_id) == []
    assert ledger.get_streak("lifter", group.group_id).current_streak == 1
    with pytest.raises(NotFoundError):
        service.delete_post("lifter", result.post.post_id)


def test_post_delete_and_own_feed_over_http(client, as_user):
    created = client.post("/v1/groups", json={"name": "Crew"}, headers=as_user("lifter")).json()["group"]
    post_id = client.post(f"/v1/groups/{created['id']}/posts", json={"content": "bench"}, headers=as_user("lifter")).json()["post"]["id"]

    feed = client.get("/v1/posts/me", params={"limit": 5}, headers=as_user("lifter")).json()
    assert [p["id"] for p in feed["posts"]] == [post_id]
    assert feed["posts"][0]["group_name"] == "Crew"

    denied = client.delete(f"/v1/posts/{post_id}", headers=as_user("intruder"))
    assert denied.status_code == 404
    assert denied.json()["detail"] == "Post not found or not authorized"

    assert client.delete(f"/v1/posts/{post_id}", headers=as_user("lifter")).status_code == 204
    assert client.get("/v1/posts/me", headers=as_user("lifter")).json()["posts"] == []
