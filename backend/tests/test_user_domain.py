"""Tests for the User domain."""
from uuid import uuid4

from backend.features.users.service import get_user, get_or_create_user, normalize_display_name


def test_get_or_create_idempotent():
    uid = f"user-{uuid4()}"
    u1 = get_or_create_user(uid, "Sam")
    u2 = get_or_create_user(uid, "Someone Else")
    assert u1.user_id == u2.user_id
    assert u2.display_name == "Sam"


def test_display_name_normalization_deterministic():
    handle1 = normalize_display_name("deterministic-user", None)
    handle2 = normalize_display_name("deterministic-user", "   ")
    assert handle1 == handle2
    assert handle1.startswith("@u_")


def test_group_paths_auto_create_users(client, as_user):
    creator = f"creator-{uuid4()}"
    assert get_user(creator) is None
    client.post("/v1/groups", json={"name": "Crew"}, headers=as_user(creator))
    assert get_user(creator) is not None
