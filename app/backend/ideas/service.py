"""
Service layer for the Submit Idea module.

This module contains the business logic for idea submission, owner edits,
curation and discovery. Votes are handled by ``VoteCoordinator`` in
``votes.py``.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Iterable, Optional

from .errors import IdeaValidationError
from .models import (
    Idea,
    IdeaListResponse,
    IdeaStatus,
    parse_datetime,
    split_semicolon_list,
    utc_now,
)
from .search_index import SORT_NEWEST, IdeasSearchService
from .store import CategoryStore, IdeaStore, TeamCategoryStore

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 500
MAX_TAGS = 3
MAX_TAG_LENGTH = 20

# Upper bound of ideas scanned to collect filter bar values
MAX_FILTER_SCAN = 5000

__all__ = [
    "IdeasService",
    "filter_ideas_by_tags",
    "ideas_in_date_range",
    "split_semicolon_list",
    "unique_author_names",
    "unique_category_ids",
    "unique_tags",
    "validate_tags",
]


def validate_tags(tags: Iterable[str]) -> list[str]:
    """
    Check submitted tags and return them trimmed.

    Raises:
        IdeaValidationError: Too many tags, an empty tag, a tag that is too
            long or a tag containing the ``;`` separator.
    """
    cleaned = []
    for tag in tags:
        tag = (tag or "").strip()
        if not tag:
            raise IdeaValidationError("Tag cannot be empty")
        if ";" in tag:
            raise IdeaValidationError(f"Tag '{tag}' must not contain ';'")
        if len(tag) > MAX_TAG_LENGTH:
            raise IdeaValidationError(f"Tag '{tag}' exceeds {MAX_TAG_LENGTH} characters")
        if tag not in cleaned:
            cleaned.append(tag)
    if len(cleaned) > MAX_TAGS:
        raise IdeaValidationError(f"At most {MAX_TAGS} tags are allowed")
    return cleaned


def filter_ideas_by_tags(ideas: Iterable[Idea], tags: Iterable[str]) -> list[Idea]:
    """Ideas carrying at least one of the given tags; all ideas if no tags are given."""
    wanted = {tag.lower() for tag in tags if tag}
    if not wanted:
        return list(ideas)
    return [idea for idea in ideas if wanted.intersection(tag.lower() for tag in idea.tags)]


def ideas_in_date_range(ideas: Iterable[Idea], from_date: datetime, to_date: datetime) -> list[Idea]:
    """Ideas updated within ``[from_date, to_date]``, both ends inclusive."""
    from_date = parse_datetime(from_date)
    to_date = parse_datetime(to_date)
    return [idea for idea in ideas if from_date <= parse_datetime(idea.updated_date) <= to_date]


def unique_author_names(ideas: Iterable[Idea]) -> list[str]:
    """Distinct creator display names, in first-seen order."""
    return list(dict.fromkeys(idea.created_by_name for idea in ideas if idea.created_by_name))


def unique_tags(ideas: Iterable[Idea]) -> list[str]:
    """Distinct tags across ideas, in first-seen order."""
    return list(dict.fromkeys(tag for idea in ideas for tag in idea.tags))


def unique_category_ids(ideas: Iterable[Idea]) -> list[str]:
    """Distinct category ids across ideas, in first-seen order."""
    return list(dict.fromkeys(idea.category_id for idea in ideas if idea.category_id))


class IdeasService:
    """
    Service class for managing ideas.

    Cosmos DB is the source of truth; the search index is refreshed after
    every write on a best effort basis and used for discovery when present.
    """

    def __init__(
        self,
        idea_store: IdeaStore,
        category_store: Optional[CategoryStore] = None,
        team_category_store: Optional[TeamCategoryStore] = None,
        search_service: Optional[IdeasSearchService] = None,
    ):
        """
        Initialize the Ideas service.

        Args:
            idea_store: Store holding idea records.
            category_store: Store used to resolve category names.
            team_category_store: Store holding each team's categories.
            search_service: IdeasSearchService for indexing and discovery.
        """
        self.idea_store = idea_store
        self.category_store = category_store
        self.team_category_store = team_category_store
        self.search_service = search_service

    async def _resolve_category_name(self, category_id: str) -> str:
        if not category_id or not self.category_store:
            return ""
        category = await self.category_store.get_category(category_id)
        if category is None:
            raise IdeaValidationError(f"Category {category_id} does not exist")
        return category.name

    async def _sync_search(self, idea: Idea, created: bool = False) -> None:
        if not self.search_service:
            return
        try:
            if created:
                await self.search_service.index_document(idea)
            else:
                await self.search_service.update_document(idea)
        except Exception as e:
            logger.warning(f"Failed to sync idea {idea.idea_id} with search: {e}")

    async def submit_idea(
        self,
        title: str,
        description: str,
        category_id: str,
        tags: Iterable[str],
        user: dict[str, Any],
    ) -> Idea:
        """
        Validate and store a new idea.

        Args:
            title: Idea title.
            description: Idea description.
            category_id: Category the idea belongs to.
            tags: Up to three short tags.
            user: The submitting user: ``oid``, ``name`` and ``preferred_username``.

        Returns:
            The stored idea, pending curation and without votes.

        Raises:
            IdeaValidationError: The submitted data is invalid.
        """
        title = (title or "").strip()
        description = (description or "").strip()

        if not title:
            raise IdeaValidationError("Title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise IdeaValidationError(f"Title exceeds {MAX_TITLE_LENGTH} characters")
        if not description:
            raise IdeaValidationError("Description is required")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise IdeaValidationError(f"Description exceeds {MAX_DESCRIPTION_LENGTH} characters")
        if not user.get("oid"):
            raise IdeaValidationError("User ID not found")

        tags = validate_tags(tags)
        category_name = await self._resolve_category_name(category_id)

        now = utc_now()
        idea = Idea(
            idea_id=str(uuid.uuid4()),
            created_by_object_id=user["oid"],
            title=title,
            description=description,
            category_id=category_id or "",
            category=category_name,
            tags=tags,
            created_by_name=user.get("name", ""),
            created_by_upn=user.get("preferred_username", ""),
            status=IdeaStatus.PENDING,
            total_votes=0,
            created_date=now,
            updated_date=now,
        )

        idea = await self.idea_store.create_idea(idea)
        await self._sync_search(idea, created=True)

        logger.info(f"Created idea {idea.idea_id}")
        return idea

    async def get_idea(self, owner_id: str, idea_id: str) -> Idea | None:
        """Retrieve an idea by its owner and id."""
        return await self.idea_store.get_idea(owner_id, idea_id)

    async def find_idea(self, idea_id: str) -> Idea | None:
        """Retrieve an idea by id alone, when the owner is not known."""
        return await self.idea_store.find_idea(idea_id)

    async def update_idea(self, idea: Idea, updates: dict[str, Any], user_id: str) -> Idea:
        """
        Apply an owner's edits to a pending idea.

        Args:
            idea: The idea as currently stored.
            updates: API fields to change: title, description, categoryId, tags.
            user_id: Object id of the editing user.

        Returns:
            The updated idea.

        Raises:
            PermissionError: The user is not the owner.
            IdeaValidationError: The idea is no longer pending or the edit is invalid.
            ConcurrencyConflictError: The idea changed since it was read.
        """
        if not idea.is_owner(user_id):
            raise PermissionError("Only the owner can edit this idea")
        if not idea.can_be_edited():
            raise IdeaValidationError("This idea cannot be edited in its current status")

        if "title" in updates:
            title = (updates["title"] or "").strip()
            if not title or len(title) > MAX_TITLE_LENGTH:
                raise IdeaValidationError(f"Title must be 1 to {MAX_TITLE_LENGTH} characters")
            idea.title = title

        if "description" in updates:
            description = (updates["description"] or "").strip()
            if not description or len(description) > MAX_DESCRIPTION_LENGTH:
                raise IdeaValidationError(
                    f"Description must be 1 to {MAX_DESCRIPTION_LENGTH} characters"
                )
            idea.description = description

        if "categoryId" in updates and updates["categoryId"] != idea.category_id:
            idea.category = await self._resolve_category_name(updates["categoryId"])
            idea.category_id = updates["categoryId"] or ""

        if "tags" in updates:
            idea.tags = validate_tags(split_semicolon_list(updates["tags"]))

        idea.update_timestamp()
        idea = await self.idea_store.replace_idea(idea)
        await self._sync_search(idea)

        logger.info(f"Updated idea {idea.idea_id}")
        return idea

    async def change_status(
        self,
        owner_id: str,
        idea_id: str,
        status: IdeaStatus | str,
        feedback: str,
        curator_name: str,
    ) -> Idea | None:
        """
        Approve or reject a pending idea.

        Returns:
            The updated idea, or None if it does not exist.

        Raises:
            IdeaValidationError: The target status is not approved or
                rejected, or the idea was already curated.
        """
        try:
            new_status = IdeaStatus(status)
        except ValueError:
            raise IdeaValidationError(f"Invalid status value: {status}")

        if new_status == IdeaStatus.PENDING:
            raise IdeaValidationError("Ideas can only be approved or rejected")

        idea = await self.idea_store.get_idea(owner_id, idea_id)
        if idea is None:
            return None

        if idea.status != IdeaStatus.PENDING:
            raise IdeaValidationError(f"Idea is already {idea.status.value}")

        idea.status = new_status
        idea.feedback = (feedback or "").strip()
        idea.approved_or_rejected_by_name = curator_name or ""
        idea.update_timestamp()

        idea = await self.idea_store.replace_idea(idea)
        await self._sync_search(idea)

        logger.info(f"Idea {idea_id} {new_status.value} by {curator_name}")
        return idea

    async def search_ideas(
        self,
        search_text: str | None = None,
        category_ids: list[str] | None = None,
        author_names: list[str] | None = None,
        tags: list[str] | None = None,
        status: str | None = None,
        created_by: str | None = None,
        sort_by: str = SORT_NEWEST,
        page: int = 1,
        page_size: int = 20,
    ) -> IdeaListResponse:
        """
        Search ideas through the search index.

        Falls back to a Cosmos DB query when search is not configured or
        fails; the fallback ignores free text and filters authors and tags
        in memory.

        Returns:
            Paginated list of ideas matching the search criteria.
        """
        if self.search_service:
            try:
                ideas, total_count = await self.search_service.search_ideas(
                    search_text=search_text,
                    category_ids=category_ids,
                    author_names=author_names,
                    tags=tags,
                    status=status,
                    created_by=created_by,
                    sort_by=sort_by,
                    page=page,
                    page_size=page_size,
                )
                skip = (page - 1) * page_size
                return IdeaListResponse(
                    ideas=ideas,
                    total_count=total_count,
                    page=page,
                    page_size=page_size,
                    has_more=(skip + len(ideas)) < total_count,
                )
            except Exception as e:
                logger.error(f"Search failed, falling back to store query: {e}")
        else:
            logger.debug("Search service not available, falling back to store query")

        return await self._query_ideas(
            category_ids=category_ids,
            author_names=author_names,
            tags=tags,
            status=status,
            created_by=created_by,
            sort_by=sort_by,
            page=page,
            page_size=page_size,
        )

    async def _query_ideas(
        self,
        category_ids: list[str] | None,
        author_names: list[str] | None,
        tags: list[str] | None,
        status: str | None,
        created_by: str | None,
        sort_by: str,
        page: int,
        page_size: int,
    ) -> IdeaListResponse:
        store_sort = "totalVotes" if sort_by == "popular" else "updatedDate"

        if not author_names and not tags:
            ideas, total_count = await self.idea_store.list_ideas(
                page=page,
                page_size=page_size,
                status=status,
                category_ids=category_ids,
                created_by=created_by,
                sort_by=store_sort,
            )
            skip = (page - 1) * page_size
            return IdeaListResponse(
                ideas=ideas,
                total_count=total_count,
                page=page,
                page_size=page_size,
                has_more=(skip + len(ideas)) < total_count,
            )

        candidates, _ = await self.idea_store.list_ideas(
            page=1,
            page_size=MAX_FILTER_SCAN,
            status=status,
            category_ids=category_ids,
            created_by=created_by,
            sort_by=store_sort,
        )
        if author_names:
            names = set(author_names)
            candidates = [idea for idea in candidates if idea.created_by_name in names]
        if tags:
            candidates = filter_ideas_by_tags(candidates, tags)

        skip = (page - 1) * page_size
        page_ideas = candidates[skip:skip + page_size]
        return IdeaListResponse(
            ideas=page_ideas,
            total_count=len(candidates),
            page=page,
            page_size=page_size,
            has_more=(skip + len(page_ideas)) < len(candidates),
        )

    async def _get_team_category_ids(self, team_id: str) -> list[str]:
        team_category = None
        if self.team_category_store:
            team_category = await self.team_category_store.get_team_category(team_id)

        if not team_category or not team_category.categories:
            logger.debug(f"Team {team_id} has no configured categories")
            return []
        return team_category.categories

    async def _list_team_approved_ideas(self, team_id: str) -> list[Idea]:
        category_ids = await self._get_team_category_ids(team_id)
        if not category_ids:
            return []
        ideas, _ = await self.idea_store.list_ideas(
            page=1,
            page_size=MAX_FILTER_SCAN,
            status=IdeaStatus.APPROVED.value,
            category_ids=category_ids,
        )
        return ideas

    async def list_team_ideas(
        self,
        team_id: str,
        search_text: str | None = None,
        sort_by: str = SORT_NEWEST,
        page: int = 1,
        page_size: int = 20,
    ) -> IdeaListResponse:
        """
        Approved ideas in the categories a team has configured.

        A team without configured categories sees nothing.
        """
        category_ids = await self._get_team_category_ids(team_id)
        if not category_ids:
            return IdeaListResponse(ideas=[], total_count=0, page=page, page_size=page_size, has_more=False)

        return await self.search_ideas(
            search_text=search_text,
            category_ids=category_ids,
            status=IdeaStatus.APPROVED.value,
            sort_by=sort_by,
            page=page,
            page_size=page_size,
        )

    async def list_unique_authors(self) -> list[str]:
        """Display names of everyone who submitted an idea, for the filter bar."""
        ideas, _ = await self.idea_store.list_ideas(page=1, page_size=MAX_FILTER_SCAN)
        return unique_author_names(ideas)

    async def list_unique_tags(self) -> list[str]:
        """Tags used on any idea, for the filter bar."""
        ideas, _ = await self.idea_store.list_ideas(page=1, page_size=MAX_FILTER_SCAN)
        return unique_tags(ideas)

    async def list_team_authors(self, team_id: str) -> list[str]:
        """Creators of approved ideas in a team's categories, for the team's filter bar."""
        return unique_author_names(await self._list_team_approved_ideas(team_id))

    async def list_team_idea_tags(self, team_id: str) -> list[str]:
        """Tags of approved ideas in a team's categories, for the team's filter bar."""
        return unique_tags(await self._list_team_approved_ideas(team_id))
