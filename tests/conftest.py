"""
Shared pytest fixtures for the Submit Idea tests.

The fake stores keep records in memory and mimic the Cosmos DB stores'
contract: absent records are None, writes to ideas are conditional on the
ETag read with them, the vote ledger rejects duplicate and missing votes,
and failures can be injected per call.
"""

import contextvars
from datetime import datetime, timezone
from typing import Any, Optional

import pytest

from ideas.errors import (
    ConcurrencyConflictError,
    StoreUnavailableError,
    VoteAlreadyExistsError,
    VoteNotFoundError,
)
from ideas.models import (
    Category,
    DigestFrequency,
    Idea,
    TeamCategory,
    TeamPreference,
    TeamTag,
    UserVote,
)

# Set once the current task has been handed its injected conflict
_conflict_injected: contextvars.ContextVar[bool] = contextvars.ContextVar(
    "conflict_injected", default=False
)


class FakeIdeaStore:
    """In-memory IdeaStore with real ETag checks."""

    def __init__(self):
        self.items: dict[tuple[str, str], dict[str, Any]] = {}
        self.etags: dict[tuple[str, str], int] = {}
        # Outcomes of upcoming replace calls: None succeeds, an exception is raised
        self.replace_outcomes: list[Optional[Exception]] = []
        # Every task's first replace conflicts, later ones go through
        self.conflict_once_per_task = False
        self.read_error: Optional[Exception] = None
        self.replace_calls = 0
        self.conflicts = 0

    def add(self, idea: Idea) -> Idea:
        key = (idea.created_by_object_id, idea.idea_id)
        self.items[key] = idea.to_cosmos_item()
        self.etags[key] = self.etags.get(key, 0) + 1
        idea.etag = str(self.etags[key])
        return idea

    def total_votes(self, owner_id: str, idea_id: str) -> int:
        return self.items[(owner_id, idea_id)]["totalVotes"]

    async def get_idea(self, owner_id: str, idea_id: str) -> Idea | None:
        if self.read_error:
            raise self.read_error
        key = (owner_id, idea_id)
        if key not in self.items:
            return None
        return Idea.from_cosmos_item({**self.items[key], "_etag": str(self.etags[key])})

    async def find_idea(self, idea_id: str) -> Idea | None:
        for owner_id, stored_id in self.items:
            if stored_id == idea_id:
                return await self.get_idea(owner_id, idea_id)
        return None

    async def create_idea(self, idea: Idea) -> Idea:
        return self.add(idea)

    async def replace_idea(self, idea: Idea) -> Idea:
        self.replace_calls += 1
        if self.replace_outcomes:
            outcome = self.replace_outcomes.pop(0)
            if outcome is not None:
                if isinstance(outcome, ConcurrencyConflictError):
                    self.conflicts += 1
                raise outcome

        if self.conflict_once_per_task and not _conflict_injected.get():
            _conflict_injected.set(True)
            self.conflicts += 1
            raise ConcurrencyConflictError(f"Injected conflict on {idea.idea_id}")

        key = (idea.created_by_object_id, idea.idea_id)
        if key not in self.items:
            raise StoreUnavailableError(f"Idea {idea.idea_id} does not exist")
        if idea.etag is not None and idea.etag != str(self.etags[key]):
            self.conflicts += 1
            raise ConcurrencyConflictError(f"Idea {idea.idea_id} changed since it was retrieved")
        return self.add(idea)

    async def list_ideas(
        self,
        page: int = 1,
        page_size: int = 50,
        status: str | None = None,
        category_ids: list[str] | None = None,
        created_by: str | None = None,
        sort_by: str = "updatedDate",
    ) -> tuple[list[Idea], int]:
        ideas = [Idea.from_cosmos_item(item) for item in self.items.values()]
        if status:
            ideas = [idea for idea in ideas if idea.status.value == status]
        if category_ids:
            ideas = [idea for idea in ideas if idea.category_id in category_ids]
        if created_by:
            ideas = [idea for idea in ideas if idea.created_by_object_id == created_by]
        if sort_by == "totalVotes":
            ideas.sort(key=lambda idea: idea.total_votes, reverse=True)
        else:
            ideas.sort(key=lambda idea: idea.updated_date, reverse=True)
        offset = (page - 1) * page_size
        return ideas[offset:offset + page_size], len(ideas)

    async def list_ideas_updated_between(self, from_date: datetime, to_date: datetime) -> list[Idea]:
        ideas = [Idea.from_cosmos_item(item) for item in self.items.values()]
        return [idea for idea in ideas if from_date <= idea.updated_date <= to_date]


class FakeVoteStore:
    """In-memory VoteStore with injectable failures."""

    def __init__(self):
        self.votes: dict[tuple[str, str], UserVote] = {}
        self.add_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self.read_error: Optional[Exception] = None

    async def get_vote(self, user_id: str, idea_id: str) -> UserVote | None:
        if self.read_error:
            raise self.read_error
        return self.votes.get((user_id, idea_id))

    async def add_vote(self, vote: UserVote) -> None:
        if self.add_error:
            raise self.add_error
        if (vote.user_id, vote.idea_id) in self.votes:
            raise VoteAlreadyExistsError(f"Vote of {vote.user_id} on {vote.idea_id} already exists")
        self.votes[(vote.user_id, vote.idea_id)] = vote

    async def delete_vote(self, idea_id: str, user_id: str) -> None:
        if self.delete_error:
            raise self.delete_error
        if self.votes.pop((user_id, idea_id), None) is None:
            raise VoteNotFoundError(f"Vote of {user_id} on {idea_id} does not exist")

    async def list_votes(self, user_id: str) -> list[UserVote]:
        return [vote for (voter, _), vote in self.votes.items() if voter == user_id]

    async def count_votes(self, idea_id: str) -> int:
        return sum(1 for (_, voted_idea) in self.votes if voted_idea == idea_id)


class FakeCategoryStore:
    def __init__(self, categories: Optional[list[Category]] = None):
        self.categories = {category.category_id: category for category in categories or []}

    async def list_categories(self) -> list[Category]:
        return list(self.categories.values())

    async def get_category(self, category_id: str) -> Category | None:
        return self.categories.get(category_id)

    async def get_categories_by_ids(self, category_ids: list[str]) -> list[Category]:
        return [self.categories[cid] for cid in category_ids if cid in self.categories]

    async def upsert_category(self, category: Category) -> Category:
        self.categories[category.category_id] = category
        return category

    async def delete_categories(self, category_ids: list[str]) -> int:
        return sum(1 for cid in category_ids if self.categories.pop(cid, None) is not None)


class FakeTeamCategoryStore:
    def __init__(self):
        self.team_categories: dict[str, TeamCategory] = {}

    async def get_team_category(self, team_id: str) -> TeamCategory | None:
        return self.team_categories.get(team_id)

    async def upsert_team_category(self, team_category: TeamCategory) -> TeamCategory:
        self.team_categories[team_category.team_id] = team_category
        return team_category


class FakeTeamTagStore:
    def __init__(self):
        self.team_tags: dict[str, TeamTag] = {}

    async def get_team_tag(self, team_id: str) -> TeamTag | None:
        return self.team_tags.get(team_id)

    async def upsert_team_tag(self, team_tag: TeamTag) -> TeamTag:
        self.team_tags[team_tag.team_id] = team_tag
        return team_tag


class FakeTeamPreferenceStore:
    def __init__(self):
        self.preferences: dict[str, TeamPreference] = {}

    async def get_team_preference(self, team_id: str) -> TeamPreference | None:
        return self.preferences.get(team_id)

    async def list_team_preferences(self, frequency: DigestFrequency) -> list[TeamPreference]:
        return [p for p in self.preferences.values() if p.digest_frequency == frequency]

    async def upsert_team_preference(self, preference: TeamPreference) -> TeamPreference:
        self.preferences[preference.team_id] = preference
        return preference


def make_idea(
    idea_id: str = "idea-1",
    owner_id: str = "owner-1",
    total_votes: int = 0,
    category_id: str = "cat-1",
    updated: Optional[datetime] = None,
    **kwargs: Any,
) -> Idea:
    updated = updated or datetime(2024, 1, 10, tzinfo=timezone.utc)
    return Idea(
        idea_id=idea_id,
        created_by_object_id=owner_id,
        title=kwargs.pop("title", f"Idea {idea_id}"),
        description=kwargs.pop("description", "Make things better"),
        category_id=category_id,
        total_votes=total_votes,
        created_date=kwargs.pop("created", updated),
        updated_date=updated,
        **kwargs,
    )


@pytest.fixture
def idea_store():
    return FakeIdeaStore()


@pytest.fixture
def vote_store():
    return FakeVoteStore()


@pytest.fixture
def category_store():
    return FakeCategoryStore([
        Category(category_id="cat-1", name="Process"),
        Category(category_id="cat-2", name="Tools"),
    ])


@pytest.fixture
def team_category_store():
    return FakeTeamCategoryStore()


@pytest.fixture
def team_tag_store():
    return FakeTeamTagStore()


@pytest.fixture
def team_preference_store():
    return FakeTeamPreferenceStore()
