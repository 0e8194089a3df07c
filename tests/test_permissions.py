import pytest

from ideas.permissions import (
    IdeaPermission,
    IdeaRole,
    can_edit_idea,
    get_role_info,
    get_user_id,
    get_user_role,
    has_permission,
)


@pytest.mark.parametrize(
    "claims, role",
    [
        ({"ideas_role": "Curator"}, IdeaRole.CURATOR),
        ({"ideas_role": "user", "roles": ["Ideas.Curator"]}, IdeaRole.USER),
        ({"roles": ["Ideas.Curator"]}, IdeaRole.CURATOR),
        ({"roles": "curator"}, IdeaRole.USER),
        ({}, IdeaRole.USER),
    ],
)
def test_get_user_role(claims, role):
    assert get_user_role(claims) == role


def test_get_user_id_prefers_oid():
    assert get_user_id({"oid": "o", "sub": "s"}) == "o"
    assert get_user_id({"sub": "s"}) == "s"


def test_users_cannot_curate():
    claims = {"oid": "u"}

    assert has_permission(claims, IdeaPermission.VOTE)
    assert not has_permission(claims, IdeaPermission.CHANGE_STATUS)
    assert not has_permission(claims, IdeaPermission.RECONCILE_VOTES)


def test_curators_keep_user_permissions():
    claims = {"oid": "c", "ideas_role": "curator"}

    assert has_permission(claims, IdeaPermission.SUBMIT_IDEA)
    assert has_permission(claims, IdeaPermission.TRIGGER_DIGEST)


def test_only_owner_can_edit():
    assert can_edit_idea({"oid": "owner-1"}, "owner-1")
    assert not can_edit_idea({"oid": "other", "ideas_role": "curator"}, "owner-1")


def test_role_info():
    info = get_role_info({"ideas_role": "curator"})

    assert info["role"] == "curator"
    assert info["isCurator"] is True
    assert "manage_categories" in info["permissions"]
