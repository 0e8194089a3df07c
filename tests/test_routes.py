from unittest.mock import AsyncMock

import jwt
import pytest

from app import create_app
from config import (
    CONFIG_AUTH_CLIENT,
    CONFIG_CATEGORY_STORE,
    CONFIG_DIGEST_SCHEDULER,
    CONFIG_IDEAS_HUB_ENABLED,
    CONFIG_IDEAS_SERVICE,
    CONFIG_TEAM_CATEGORY_STORE,
    CONFIG_TEAM_PREFERENCE_STORE,
    CONFIG_TEAM_TAG_STORE,
    CONFIG_VOTE_COORDINATOR,
)
from conftest import make_idea
from core.authentication import AuthenticationHelper
from ideas.digest import DigestBuilder
from ideas.errors import StoreUnavailableError
from ideas.models import IdeaStatus, TeamPreference, UserVote, utc_now
from ideas.scheduler import DigestScheduler
from ideas.service import IdeasService
from ideas.votes import VoteCoordinator

SECRET = "submit-idea-test-secret-0123456789abcdef"


def auth_headers(oid="user-1", **claims):
    token = jwt.encode({"oid": oid, "name": f"Name of {oid}", **claims}, SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


CURATOR = auth_headers("curator-1", ideas_role="curator")


@pytest.fixture
def deliver():
    return AsyncMock()


@pytest.fixture
def app(
    idea_store, vote_store, category_store, team_category_store, team_preference_store, team_tag_store, deliver
):
    app = create_app()
    app.config[CONFIG_AUTH_CLIENT] = AuthenticationHelper(enabled=True, secret_key=SECRET)
    app.config[CONFIG_IDEAS_HUB_ENABLED] = True
    app.config[CONFIG_CATEGORY_STORE] = category_store
    app.config[CONFIG_TEAM_CATEGORY_STORE] = team_category_store
    app.config[CONFIG_TEAM_PREFERENCE_STORE] = team_preference_store
    app.config[CONFIG_TEAM_TAG_STORE] = team_tag_store
    app.config[CONFIG_IDEAS_SERVICE] = IdeasService(idea_store, category_store, team_category_store)
    app.config[CONFIG_VOTE_COORDINATOR] = VoteCoordinator(idea_store, vote_store, backoff_seconds=0)
    app.config[CONFIG_DIGEST_SCHEDULER] = DigestScheduler(
        DigestBuilder(idea_store, team_preference_store), deliver
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()


async def test_healthz(client):
    response = await client.get("/healthz")

    assert response.status_code == 200


async def test_status_needs_no_token(client):
    response = await client.get("/api/ideas/status")

    data = await response.get_json()
    assert data["enabled"] is True
    assert data["module"] == "submit_idea"
    assert data["scheduler_running"] is False


async def test_missing_token_is_unauthorized(client):
    response = await client.get("/api/ideas/role")

    assert response.status_code == 401


async def test_invalid_token_is_unauthorized(client):
    token = jwt.encode({"oid": "user-1"}, "another-secret-0123456789abcdef-xyz", algorithm="HS256")

    response = await client.get("/api/ideas/role", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


async def test_disabled_module_rejects_requests(app, client):
    app.config[CONFIG_IDEAS_HUB_ENABLED] = False

    response = await client.get("/api/ideas", headers=auth_headers())

    assert response.status_code == 400


async def test_anonymous_user_when_auth_disabled(app, client):
    app.config[CONFIG_AUTH_CLIENT] = AuthenticationHelper(enabled=False)

    response = await client.get("/api/ideas/role")

    assert (await response.get_json())["role"] == "user"


async def test_role_of_curator(client):
    response = await client.get("/api/ideas/role", headers=CURATOR)

    assert (await response.get_json())["isCurator"] is True


async def test_submit_idea(client, idea_store):
    response = await client.post(
        "/api/ideas",
        json={"title": "Shared calendar", "description": "One calendar per team", "categoryId": "cat-1", "tags": "ops;ai"},
        headers=auth_headers(),
    )

    assert response.status_code == 201
    data = await response.get_json()
    assert data["status"] == "pending"
    assert data["createdByObjectId"] == "user-1"
    assert data["tags"] == "ops;ai"
    assert idea_store.total_votes("user-1", data["id"]) == 0


async def test_submit_invalid_idea_is_bad_request(client):
    response = await client.post("/api/ideas", json={"title": "", "description": "x"}, headers=auth_headers())

    assert response.status_code == 400


async def test_search_ideas_falls_back_to_store(client, idea_store):
    idea_store.add(make_idea("a", category_id="cat-1"))
    idea_store.add(make_idea("b", category_id="cat-2"))

    response = await client.get("/api/ideas?categories=cat-2", headers=auth_headers())

    data = await response.get_json()
    assert [idea["id"] for idea in data["ideas"]] == ["b"]
    assert data["totalCount"] == 1


async def test_get_idea_without_owner(client, idea_store):
    idea_store.add(make_idea())

    response = await client.get("/api/ideas/idea-1", headers=auth_headers())

    assert (await response.get_json())["id"] == "idea-1"


async def test_get_missing_idea(client):
    response = await client.get("/api/ideas/missing?ownerId=owner-1", headers=auth_headers())

    assert response.status_code == 404


async def test_only_owner_can_edit(client, idea_store):
    idea_store.add(make_idea())

    response = await client.patch(
        "/api/ideas/idea-1?ownerId=owner-1", json={"title": "Hijacked"}, headers=auth_headers("intruder")
    )

    assert response.status_code == 403


async def test_owner_edits_pending_idea(client, idea_store):
    idea_store.add(make_idea())

    response = await client.patch("/api/ideas/idea-1", json={"title": "Sharper"}, headers=auth_headers("owner-1"))

    assert response.status_code == 200
    assert (await response.get_json())["title"] == "Sharper"


async def test_user_cannot_change_status(client, idea_store):
    idea_store.add(make_idea())

    response = await client.patch(
        "/api/ideas/idea-1/status", json={"ownerId": "owner-1", "status": "approved"}, headers=auth_headers()
    )

    assert response.status_code == 403
    assert (await response.get_json())["required_permission"] == "change_status"


async def test_curator_approves_idea(client, idea_store):
    idea_store.add(make_idea())

    response = await client.patch(
        "/api/ideas/idea-1/status",
        json={"ownerId": "owner-1", "status": "approved", "feedback": "Go"},
        headers=CURATOR,
    )

    data = await response.get_json()
    assert data["status"] == "approved"
    assert data["approvedOrRejectedByName"] == "Name of curator-1"


async def test_status_change_requires_owner(client):
    response = await client.patch("/api/ideas/idea-1/status", json={"status": "approved"}, headers=CURATOR)

    assert response.status_code == 400


async def test_vote_then_vote_again(client, idea_store, vote_store):
    idea_store.add(make_idea(total_votes=3))

    first = await client.post("/api/ideas/idea-1/votes?ownerId=owner-1", headers=auth_headers())
    second = await client.post("/api/ideas/idea-1/votes?ownerId=owner-1", headers=auth_headers())

    assert (await first.get_json()) == {"success": True}
    assert (await second.get_json()) == {"success": False}
    assert idea_store.total_votes("owner-1", "idea-1") == 4
    assert ("user-1", "idea-1") in vote_store.votes


async def test_vote_looks_up_owner(client, idea_store):
    idea_store.add(make_idea())

    response = await client.post("/api/ideas/idea-1/votes", headers=auth_headers())

    assert (await response.get_json()) == {"success": True}
    assert idea_store.total_votes("owner-1", "idea-1") == 1


async def test_vote_on_missing_idea(client):
    response = await client.post("/api/ideas/missing/votes", headers=auth_headers())

    assert response.status_code == 200
    assert (await response.get_json()) == {"success": False}


async def test_remove_vote(client, idea_store, vote_store):
    idea_store.add(make_idea(total_votes=1))
    vote_store.votes[("user-1", "idea-1")] = UserVote(user_id="user-1", idea_id="idea-1")

    response = await client.delete("/api/ideas/idea-1/votes?ownerId=owner-1", headers=auth_headers())

    assert (await response.get_json()) == {"success": True}
    assert idea_store.total_votes("owner-1", "idea-1") == 0


async def test_failed_vote_is_server_error(client, idea_store):
    idea_store.add(make_idea())
    idea_store.replace_outcomes = [StoreUnavailableError("down")]

    response = await client.post("/api/ideas/idea-1/votes?ownerId=owner-1", headers=auth_headers())

    assert response.status_code == 500
    assert (await response.get_json())["ideaId"] == "idea-1"


async def test_failed_rollback_reports_reconciliation(client, idea_store, vote_store):
    idea_store.add(make_idea())
    vote_store.add_error = StoreUnavailableError("down")
    idea_store.replace_outcomes = [None, StoreUnavailableError("down")]

    response = await client.post("/api/ideas/idea-1/votes?ownerId=owner-1", headers=auth_headers())

    assert response.status_code == 500
    data = await response.get_json()
    assert data["needsReconciliation"]["counterDelta"] == 1


async def test_curator_reconciles_votes(client, idea_store, vote_store):
    idea_store.add(make_idea(total_votes=5))
    vote_store.votes[("user-1", "idea-1")] = UserVote(user_id="user-1", idea_id="idea-1")

    response = await client.post("/api/ideas/idea-1/votes/reconcile", headers=CURATOR)

    assert (await response.get_json()) == {"ideaId": "idea-1", "totalVotes": 1}


async def test_list_user_votes(client, vote_store):
    vote_store.votes[("user-1", "idea-1")] = UserVote(user_id="user-1", idea_id="idea-1")
    vote_store.votes[("user-2", "idea-2")] = UserVote(user_id="user-2", idea_id="idea-2")

    response = await client.get("/api/votes", headers=auth_headers())

    assert [vote["ideaId"] for vote in await response.get_json()] == ["idea-1"]


async def test_filter_bar_values(client, idea_store):
    idea_store.add(make_idea("a", created_by_name="Ada", tags=["ai"]))

    authors = await client.get("/api/ideas/authors", headers=auth_headers())
    tags = await client.get("/api/ideas/tags", headers=auth_headers())

    assert await authors.get_json() == ["Ada"]
    assert await tags.get_json() == ["ai"]


async def test_curator_creates_category(client, category_store):
    response = await client.post("/api/categories", json={"categoryName": "Culture"}, headers=CURATOR)

    assert response.status_code == 201
    category_id = (await response.get_json())["categoryId"]
    assert category_store.categories[category_id].name == "Culture"


async def test_category_name_is_required(client):
    response = await client.post("/api/categories", json={}, headers=CURATOR)

    assert response.status_code == 400


async def test_user_cannot_manage_categories(client):
    response = await client.delete("/api/categories?categoryIds=cat-1", headers=auth_headers())

    assert response.status_code == 403


async def test_curator_deletes_categories(client, category_store):
    response = await client.delete("/api/categories?categoryIds=cat-1;nope", headers=CURATOR)

    assert (await response.get_json()) == {"deleted": 1}
    assert "cat-1" not in category_store.categories


async def test_team_categories_and_ideas(client, idea_store):
    idea_store.add(make_idea("approved", status=IdeaStatus.APPROVED))

    saved = await client.put("/api/teams/team-1/categories", json={"categories": ["cat-1"]}, headers=CURATOR)
    ideas = await client.get("/api/teams/team-1/ideas", headers=auth_headers())

    assert saved.status_code == 200
    assert [idea["id"] for idea in (await ideas.get_json())["ideas"]] == ["approved"]


async def test_team_preferences(client, team_preference_store):
    missing = await client.get("/api/teams/team-1/preferences", headers=auth_headers())
    invalid = await client.put(
        "/api/teams/team-1/preferences", json={"digestFrequency": "daily"}, headers=auth_headers()
    )
    saved = await client.put(
        "/api/teams/team-1/preferences",
        json={"digestFrequency": "Monthly", "categories": "cat-1;cat-2"},
        headers=auth_headers(),
    )

    assert missing.status_code == 404
    assert invalid.status_code == 400
    assert saved.status_code == 200
    assert team_preference_store.preferences["team-1"].categories == ["cat-1", "cat-2"]


async def test_team_tags(client, team_tag_store):
    empty = await client.get("/api/teams/team-1/tags", headers=auth_headers())
    saved = await client.put("/api/teams/team-1/tags", json={"tags": "ux; api"}, headers=auth_headers())
    fetched = await client.get("/api/teams/team-1/tags", headers=auth_headers("user-2"))

    assert (await empty.get_json())["tags"] == []
    assert saved.status_code == 200
    assert (await fetched.get_json())["tags"] == ["ux", "api"]
    assert team_tag_store.team_tags["team-1"].created_by_user_id == "user-1"


async def test_team_tags_update_keeps_creator(client, team_tag_store):
    await client.put("/api/teams/team-1/tags", json={"tags": ["ux"]}, headers=auth_headers())
    await client.put("/api/teams/team-1/tags", json={"tags": ["ops"]}, headers=auth_headers("user-2"))

    team_tag = team_tag_store.team_tags["team-1"]
    assert team_tag.tags == ["ops"]
    assert (team_tag.created_by_user_id, team_tag.updated_by_user_id) == ("user-1", "user-2")


@pytest.mark.parametrize("tags", [["a", "b", "c", "d"], ["x" * 21]])
async def test_invalid_team_tags_are_bad_request(client, team_tag_store, tags):
    response = await client.put("/api/teams/team-1/tags", json={"tags": tags}, headers=auth_headers())

    assert response.status_code == 400
    assert team_tag_store.team_tags == {}


async def test_team_filter_bar_values(client, idea_store, team_category_store):
    idea_store.add(make_idea("a", status=IdeaStatus.APPROVED, created_by_name="Ada", tags=["ai"]))
    idea_store.add(make_idea("b", category_id="cat-2", status=IdeaStatus.APPROVED, created_by_name="Bob", tags=["ops"]))
    await client.put("/api/teams/team-1/categories", json={"categories": ["cat-1"]}, headers=CURATOR)

    authors = await client.get("/api/teams/team-1/ideas/authors", headers=auth_headers())
    tags = await client.get("/api/teams/team-1/ideas/tags", headers=auth_headers())

    assert await authors.get_json() == ["Ada"]
    assert await tags.get_json() == ["ai"]


async def test_curator_triggers_digest(client, idea_store, team_preference_store, deliver):
    idea_store.add(make_idea(updated=utc_now()))
    await team_preference_store.upsert_team_preference(TeamPreference(team_id="team-1", categories=["cat-1"]))

    response = await client.post("/api/digest/weekly", headers=CURATOR)

    data = await response.get_json()
    assert data["teams"] == 1
    assert data["ideas"] == 1
    deliver.assert_awaited_once()


async def test_unknown_digest_frequency(client):
    response = await client.post("/api/digest/daily", headers=CURATOR)

    assert response.status_code == 400
