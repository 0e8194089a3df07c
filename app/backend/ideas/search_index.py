"""
Azure AI Search access for the Submit Idea module.

Ideas are pushed to an existing search index whenever they change and
queried with full-text search plus OData filters built from the filter
bar selections. Creating the index itself is a deployment concern.
"""

import logging
from typing import Any, Iterable, Optional

from azure.core.credentials import AzureKeyCredential, TokenCredential
from azure.search.documents.aio import SearchClient

from .models import Idea, split_semicolon_list

logger = logging.getLogger(__name__)

# Default index name for ideas
IDEAS_INDEX_NAME = "team-idea-index"

SORT_NEWEST = "newest"
SORT_POPULAR = "popular"

SORT_ORDERS = {
    SORT_NEWEST: ["updatedDate desc"],
    SORT_POPULAR: ["totalVotes desc", "updatedDate desc"],
}

SEARCH_FIELDS = ["title", "description", "tags"]


def escape_odata_string(value: str) -> str:
    """Escape a value for use inside a single-quoted OData literal."""
    return value.replace("'", "''")


def _equality_filter(field_name: str, values: Iterable[str]) -> str | None:
    items = split_semicolon_list(list(values) if not isinstance(values, str) else values)
    if not items:
        return None
    return " or ".join(f"{field_name} eq '{escape_odata_string(item)}'" for item in items)


def build_category_filter(category_ids: Iterable[str]) -> str | None:
    """Match ideas in any of the given categories."""
    return _equality_filter("categoryId", category_ids)


def build_author_filter(author_names: Iterable[str]) -> str | None:
    """Match ideas created by any of the given display names."""
    return _equality_filter("createdByName", author_names)


def build_tag_filter(tags: Iterable[str]) -> str | None:
    """Match ideas carrying any of the given tags."""
    items = split_semicolon_list(list(tags) if not isinstance(tags, str) else tags)
    if not items:
        return None
    return " or ".join(f"tags/any(t: t eq '{escape_odata_string(tag)}')" for tag in items)


def combine_filters(*filters: Optional[str]) -> str | None:
    """AND together the non-empty filters, each in its own parentheses."""
    parts = [f"({expression})" for expression in filters if expression]
    if not parts:
        return None
    return " and ".join(parts)


class IdeasSearchService:
    """
    Push indexing and querying of ideas in Azure AI Search.

    Indexing failures are logged and reported as False; the idea record in
    Cosmos DB stays the source of truth.
    """

    def __init__(
        self,
        endpoint: str,
        credential: TokenCredential | AzureKeyCredential,
        index_name: str = IDEAS_INDEX_NAME,
        search_client: Optional[SearchClient] = None,
    ):
        """
        Initialize the search service.

        Args:
            endpoint: Azure AI Search endpoint URL.
            credential: Azure credential for authentication.
            index_name: Name of the search index.
            search_client: Pre-built client, mainly for tests.
        """
        self.endpoint = endpoint
        self.credential = credential
        self.index_name = index_name
        self._search_client = search_client

    @property
    def search_client(self) -> SearchClient:
        """Get or create the search client for document operations."""
        if self._search_client is None:
            self._search_client = SearchClient(
                endpoint=self.endpoint,
                index_name=self.index_name,
                credential=self.credential,
            )
        return self._search_client

    async def close(self) -> None:
        """Close the search client to avoid resource leaks."""
        if self._search_client is not None:
            await self._search_client.close()
            self._search_client = None

    async def index_document(self, idea: Idea) -> bool:
        """
        Upload an idea to the search index.

        Returns:
            True if successful, False otherwise.
        """
        try:
            result = await self.search_client.upload_documents(documents=[idea.to_search_document()])
            if result and result[0].succeeded:
                logger.debug(f"Indexed idea {idea.idea_id}")
                return True
            error_msg = result[0].error_message if result else "Unknown error"
            logger.error(f"Failed to index idea {idea.idea_id}: {error_msg}")
            return False
        except Exception as e:
            logger.error(f"Failed to index idea {idea.idea_id}: {e}")
            return False

    async def update_document(self, idea: Idea) -> bool:
        """
        Merge an idea's current state into the search index.

        Returns:
            True if successful, False otherwise.
        """
        try:
            result = await self.search_client.merge_or_upload_documents(
                documents=[idea.to_search_document()]
            )
            if result and result[0].succeeded:
                logger.debug(f"Updated idea {idea.idea_id} in search index")
                return True
            error_msg = result[0].error_message if result else "Unknown error"
            logger.error(f"Failed to update idea {idea.idea_id} in search index: {error_msg}")
            return False
        except Exception as e:
            logger.error(f"Failed to update idea {idea.idea_id} in search index: {e}")
            return False

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
    ) -> tuple[list[Idea], int]:
        """
        Search ideas with full-text search and filter bar selections.

        Args:
            search_text: Free text matched against title, description and tags.
            category_ids: Restrict to these categories.
            author_names: Restrict to ideas created by these display names.
            tags: Restrict to ideas carrying any of these tags.
            status: Restrict to one status.
            created_by: Restrict to one creator's object id.
            sort_by: ``newest`` or ``popular``.
            page: Page number (1-indexed).
            page_size: Number of items per page.

        Returns:
            The page of ideas and the total number of matches.

        Raises:
            azure.core.exceptions.HttpResponseError: The search request failed.
        """
        status_filter = f"status eq '{escape_odata_string(status)}'" if status else None
        creator_filter = (
            f"createdByObjectId eq '{escape_odata_string(created_by)}'" if created_by else None
        )
        filter_expr = combine_filters(
            build_category_filter(category_ids or []),
            build_author_filter(author_names or []),
            build_tag_filter(tags or []),
            status_filter,
            creator_filter,
        )

        skip = (max(page, 1) - 1) * page_size

        results = await self.search_client.search(
            search_text=search_text or "*",
            search_fields=SEARCH_FIELDS if search_text else None,
            filter=filter_expr,
            order_by=SORT_ORDERS.get(sort_by, SORT_ORDERS[SORT_NEWEST]),
            top=page_size,
            skip=skip,
            include_total_count=True,
        )

        ideas = []
        async for result in results:
            ideas.append(Idea.from_cosmos_item(self._map_search_result(result)))

        total_count = await results.get_count() or 0
        return ideas, total_count

    @staticmethod
    def _map_search_result(result: dict[str, Any]) -> dict[str, Any]:
        """Map a search result onto the stored idea document shape."""
        return {
            "id": result.get("id"),
            "ideaId": result.get("id"),
            "title": result.get("title", ""),
            "description": result.get("description", ""),
            "categoryId": result.get("categoryId", ""),
            "category": result.get("category", ""),
            "tags": result.get("tags", []),
            "status": result.get("status", "pending"),
            "totalVotes": result.get("totalVotes", 0),
            "createdByObjectId": result.get("createdByObjectId", ""),
            "createdByName": result.get("createdByName", ""),
            "createdDate": result.get("createdDate"),
            "updatedDate": result.get("updatedDate"),
        }
