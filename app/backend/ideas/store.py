"""
Cosmos DB storage for the Submit Idea module.

Each store wraps one container and translates SDK failures into the
errors defined in ``errors.py``. Reads return None for absent records;
the vote ledger raises on duplicate creates and missing deletes.
"""

import logging
from datetime import datetime
from typing import Any

from azure.core import MatchConditions
from azure.cosmos.aio import ContainerProxy
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from .errors import (
    ConcurrencyConflictError,
    StoreUnavailableError,
    VoteAlreadyExistsError,
    VoteNotFoundError,
)
from .models import (
    Category,
    DigestFrequency,
    Idea,
    TeamCategory,
    TeamPreference,
    TeamTag,
    UserVote,
    format_datetime,
)

logger = logging.getLogger(__name__)


class IdeaStore:
    """
    Idea records, partitioned by the creator's object id.

    Writes to an existing idea are conditional on its ETag so that
    concurrent counter updates never overwrite each other.
    """

    def __init__(self, container: ContainerProxy):
        self.container = container

    async def get_idea(self, owner_id: str, idea_id: str) -> Idea | None:
        """
        Read an idea by its owner and id.

        Args:
            owner_id: Object id of the idea's creator (partition key).
            idea_id: The unique identifier of the idea.

        Returns:
            The idea with its current ETag, or None if it does not exist.
        """
        if not owner_id or not idea_id:
            return None

        try:
            item = await self.container.read_item(item=idea_id, partition_key=owner_id)
            return Idea.from_cosmos_item(item)
        except CosmosResourceNotFoundError:
            logger.debug(f"Idea {idea_id} of owner {owner_id} not found")
            return None
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to read idea {idea_id}: {e}") from e

    async def find_idea(self, idea_id: str) -> Idea | None:
        """Look up an idea by id alone with a cross-partition query."""
        query = "SELECT * FROM c WHERE c.type = 'idea' AND c.ideaId = @ideaId"
        parameters = [{"name": "@ideaId", "value": idea_id}]
        try:
            async for item in self.container.query_items(query=query, parameters=parameters):
                return Idea.from_cosmos_item(item)
            return None
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to look up idea {idea_id}: {e}") from e

    async def create_idea(self, idea: Idea) -> Idea:
        """Store a new idea and return it with its first ETag."""
        try:
            item = await self.container.create_item(body=idea.to_cosmos_item())
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to create idea {idea.idea_id}: {e}") from e

        idea.etag = item.get("_etag") if item else None
        return idea

    async def replace_idea(self, idea: Idea) -> Idea:
        """
        Replace an idea only if it is unchanged since it was read.

        Args:
            idea: The idea to write. Its ``etag`` must come from the read.

        Returns:
            The idea carrying the new ETag.

        Raises:
            ConcurrencyConflictError: The stored idea changed since the read.
            StoreUnavailableError: Any other storage failure.
        """
        kwargs: dict[str, Any] = {}
        if idea.etag:
            kwargs["etag"] = idea.etag
            kwargs["match_condition"] = MatchConditions.IfNotModified

        try:
            item = await self.container.replace_item(
                item=idea.idea_id,
                body=idea.to_cosmos_item(),
                **kwargs,
            )
        except CosmosAccessConditionFailedError as e:
            raise ConcurrencyConflictError(
                f"Idea {idea.idea_id} changed since it was retrieved"
            ) from e
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to replace idea {idea.idea_id}: {e}") from e

        idea.etag = item.get("_etag") if item else None
        return idea

    async def list_ideas(
        self,
        page: int = 1,
        page_size: int = 50,
        status: str | None = None,
        category_ids: list[str] | None = None,
        created_by: str | None = None,
        sort_by: str = "updatedDate",
    ) -> tuple[list[Idea], int]:
        """
        List ideas with filtering and pagination.

        Returns:
            The page of ideas and the total number of matches.
        """
        conditions = ["c.type = 'idea'"]
        parameters: list[dict[str, Any]] = []

        if status:
            conditions.append("c.status = @status")
            parameters.append({"name": "@status", "value": status})

        if category_ids:
            conditions.append("ARRAY_CONTAINS(@categoryIds, c.categoryId)")
            parameters.append({"name": "@categoryIds", "value": category_ids})

        if created_by:
            conditions.append("c.createdByObjectId = @createdBy")
            parameters.append({"name": "@createdBy", "value": created_by})

        where_clause = " AND ".join(conditions)

        allowed_sort_fields = ["updatedDate", "createdDate", "totalVotes", "title"]
        if sort_by not in allowed_sort_fields:
            sort_by = "updatedDate"

        offset = (page - 1) * page_size
        try:
            total_count = 0
            async for count in self.container.query_items(
                query=f"SELECT VALUE COUNT(1) FROM c WHERE {where_clause}",
                parameters=parameters,
            ):
                total_count = count
                break

            ideas = []
            async for item in self.container.query_items(
                query=f"""
                    SELECT * FROM c
                    WHERE {where_clause}
                    ORDER BY c.{sort_by} DESC
                    OFFSET @offset LIMIT @limit
                """,
                parameters=parameters + [
                    {"name": "@offset", "value": offset},
                    {"name": "@limit", "value": page_size},
                ],
            ):
                ideas.append(Idea.from_cosmos_item(item))
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to list ideas: {e}") from e

        return ideas, total_count

    async def list_ideas_updated_between(self, from_date: datetime, to_date: datetime) -> list[Idea]:
        """All ideas whose updatedDate lies in [from_date, to_date], bounds taken in UTC."""
        query = """
            SELECT * FROM c
            WHERE c.type = 'idea'
            AND c.updatedDate >= @fromDate
            AND c.updatedDate <= @toDate
        """
        parameters = [
            {"name": "@fromDate", "value": format_datetime(from_date)},
            {"name": "@toDate", "value": format_datetime(to_date)},
        ]
        try:
            return [
                Idea.from_cosmos_item(item)
                async for item in self.container.query_items(query=query, parameters=parameters)
            ]
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to list ideas for digest: {e}") from e


class VoteStore:
    """
    The vote ledger, partitioned by user id with the idea id as document id.

    The (user, idea) pair is the document identity, so a user can hold at
    most one vote per idea.
    """

    def __init__(self, container: ContainerProxy):
        self.container = container

    async def get_vote(self, user_id: str, idea_id: str) -> UserVote | None:
        """Return the user's vote on the idea, or None."""
        try:
            item = await self.container.read_item(item=idea_id, partition_key=user_id)
            return UserVote.from_cosmos_item(item)
        except CosmosResourceNotFoundError:
            return None
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to read vote of {user_id} on {idea_id}: {e}") from e

    async def add_vote(self, vote: UserVote) -> None:
        """
        Create a vote record.

        Raises:
            VoteAlreadyExistsError: The user already voted on the idea.
            StoreUnavailableError: Any other storage failure.
        """
        try:
            await self.container.create_item(body=vote.to_cosmos_item())
        except CosmosResourceExistsError as e:
            raise VoteAlreadyExistsError(f"Vote of {vote.user_id} on {vote.idea_id} already exists") from e
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(
                f"Failed to store vote of {vote.user_id} on {vote.idea_id}: {e}"
            ) from e

    async def delete_vote(self, idea_id: str, user_id: str) -> None:
        """
        Delete a vote record.

        Raises:
            VoteNotFoundError: The user holds no vote on the idea.
            StoreUnavailableError: Any other storage failure.
        """
        try:
            await self.container.delete_item(item=idea_id, partition_key=user_id)
        except CosmosResourceNotFoundError as e:
            raise VoteNotFoundError(f"Vote of {user_id} on {idea_id} does not exist") from e
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to delete vote of {user_id} on {idea_id}: {e}") from e

    async def list_votes(self, user_id: str) -> list[UserVote]:
        """All votes cast by a user."""
        query = "SELECT * FROM c WHERE c.userId = @userId"
        try:
            return [
                UserVote.from_cosmos_item(item)
                async for item in self.container.query_items(
                    query=query,
                    parameters=[{"name": "@userId", "value": user_id}],
                    partition_key=user_id,
                )
            ]
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to list votes of {user_id}: {e}") from e

    async def count_votes(self, idea_id: str) -> int:
        """Number of vote records referencing an idea."""
        query = "SELECT VALUE COUNT(1) FROM c WHERE c.ideaId = @ideaId"
        try:
            async for count in self.container.query_items(
                query=query,
                parameters=[{"name": "@ideaId", "value": idea_id}],
            ):
                return count
            return 0
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to count votes on {idea_id}: {e}") from e


class CategoryStore:
    """Curator-managed idea categories."""

    def __init__(self, container: ContainerProxy):
        self.container = container

    async def list_categories(self) -> list[Category]:
        """All categories, most recently updated first."""
        query = "SELECT * FROM c WHERE c.type = 'category' ORDER BY c.updatedOn DESC"
        try:
            return [
                Category.from_cosmos_item(item)
                async for item in self.container.query_items(query=query)
            ]
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to list categories: {e}") from e

    async def get_category(self, category_id: str) -> Category | None:
        try:
            item = await self.container.read_item(item=category_id, partition_key=category_id)
            return Category.from_cosmos_item(item)
        except CosmosResourceNotFoundError:
            return None
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to read category {category_id}: {e}") from e

    async def get_categories_by_ids(self, category_ids: list[str]) -> list[Category]:
        ids = list(dict.fromkeys(cid for cid in category_ids if cid and cid.strip()))
        if not ids:
            return []
        query = "SELECT * FROM c WHERE c.type = 'category' AND ARRAY_CONTAINS(@ids, c.categoryId)"
        try:
            return [
                Category.from_cosmos_item(item)
                async for item in self.container.query_items(
                    query=query,
                    parameters=[{"name": "@ids", "value": ids}],
                )
            ]
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to read categories: {e}") from e

    async def upsert_category(self, category: Category) -> Category:
        try:
            await self.container.upsert_item(body=category.to_cosmos_item())
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to store category {category.category_id}: {e}") from e
        return category

    async def delete_categories(self, category_ids: list[str]) -> int:
        """Delete categories by id, skipping ids that do not exist."""
        deleted = 0
        for category_id in category_ids:
            try:
                await self.container.delete_item(item=category_id, partition_key=category_id)
                deleted += 1
            except CosmosResourceNotFoundError:
                logger.debug(f"Category {category_id} not found for deletion")
            except CosmosHttpResponseError as e:
                raise StoreUnavailableError(f"Failed to delete category {category_id}: {e}") from e
        return deleted


class TeamCategoryStore:
    """Per-team category configuration, keyed by team id."""

    def __init__(self, container: ContainerProxy):
        self.container = container

    async def get_team_category(self, team_id: str) -> TeamCategory | None:
        try:
            item = await self.container.read_item(item=team_id, partition_key=team_id)
            return TeamCategory.from_cosmos_item(item)
        except CosmosResourceNotFoundError:
            return None
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to read categories of team {team_id}: {e}") from e

    async def upsert_team_category(self, team_category: TeamCategory) -> TeamCategory:
        try:
            await self.container.upsert_item(body=team_category.to_cosmos_item())
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(
                f"Failed to store categories of team {team_category.team_id}: {e}"
            ) from e
        return team_category


class TeamPreferenceStore:
    """Per-team digest preferences, keyed by team id."""

    def __init__(self, container: ContainerProxy):
        self.container = container

    async def get_team_preference(self, team_id: str) -> TeamPreference | None:
        try:
            item = await self.container.read_item(item=team_id, partition_key=team_id)
            return TeamPreference.from_cosmos_item(item)
        except CosmosResourceNotFoundError:
            return None
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to read preference of team {team_id}: {e}") from e

    async def list_team_preferences(self, frequency: DigestFrequency) -> list[TeamPreference]:
        """All team preferences configured for a digest frequency."""
        query = "SELECT * FROM c WHERE c.type = 'team_preference' AND c.digestFrequency = @frequency"
        try:
            return [
                TeamPreference.from_cosmos_item(item)
                async for item in self.container.query_items(
                    query=query,
                    parameters=[{"name": "@frequency", "value": frequency.value}],
                )
            ]
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to list {frequency.value} preferences: {e}") from e

    async def upsert_team_preference(self, preference: TeamPreference) -> TeamPreference:
        try:
            await self.container.upsert_item(body=preference.to_cosmos_item())
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(
                f"Failed to store preference of team {preference.team_id}: {e}"
            ) from e
        return preference



class TeamTagStore:
    """Per-team tag configuration, keyed by team id."""

    def __init__(self, container: ContainerProxy):
        self.container = container

    async def get_team_tag(self, team_id: str) -> TeamTag | None:
        try:
            item = await self.container.read_item(item=team_id, partition_key=team_id)
            return TeamTag.from_cosmos_item(item)
        except CosmosResourceNotFoundError:
            return None
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to read tags of team {team_id}: {e}") from e

    async def upsert_team_tag(self, team_tag: TeamTag) -> TeamTag:
        try:
            await self.container.upsert_item(body=team_tag.to_cosmos_item())
        except CosmosHttpResponseError as e:
            raise StoreUnavailableError(f"Failed to store tags of team {team_tag.team_id}: {e}") from e
        return team_tag
