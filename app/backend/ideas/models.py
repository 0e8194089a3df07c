"""
Data models for the Submit Idea module.

This module defines the data structures for ideas, user votes, categories
and team configuration. Models follow the dataclass pattern with Cosmos DB
serialization support.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> datetime:
    """
    Parse a stored timestamp into a timezone-aware UTC datetime.

    Accepts ISO 8601 strings, epoch milliseconds and datetime instances.
    Naive values are taken as UTC and offsets are converted to UTC.
    Missing values map to the epoch so sorting stays total.
    """
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parse_datetime(parsed)
    return datetime.fromtimestamp(0, tz=timezone.utc)


def format_datetime(value: Any) -> str:
    """
    ISO 8601 form of a timestamp in UTC.

    Stored timestamps are compared as strings, which orders them correctly
    only while every one of them carries the same +00:00 offset.
    """
    return parse_datetime(value).isoformat()


def split_semicolon_list(value: Any) -> list[str]:
    """Split a semicolon-joined transport value into its non-empty parts."""
    if not value:
        return []
    if isinstance(value, list):
        parts = value
    else:
        parts = str(value).split(";")
    return [part.strip() for part in parts if part and part.strip()]


def join_semicolon_list(values: list[str]) -> str:
    """Join values into the semicolon-separated transport format."""
    return ";".join(value.strip() for value in values if value and value.strip())


class IdeaStatus(str, Enum):
    """Status of an idea in the curation workflow."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DigestFrequency(str, Enum):
    """How often a team receives the digest of new ideas."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass
class Idea:
    """
    Represents an idea submitted by a team member.

    The aggregate vote count lives on the idea itself and is maintained by
    the vote coordinator with conditional writes against ``etag``.
    """

    # Core identification
    idea_id: str
    created_by_object_id: str

    # User-provided content
    title: str
    description: str
    category_id: str = ""
    category: str = ""
    tags: list[str] = field(default_factory=list)

    # Author
    created_by_name: str = ""
    created_by_upn: str = ""

    # Metadata
    status: IdeaStatus = IdeaStatus.PENDING
    total_votes: int = 0
    created_date: datetime = field(default_factory=utc_now)
    updated_date: datetime = field(default_factory=utc_now)

    # Curation
    approved_or_rejected_by_name: str = ""
    feedback: str = ""

    # Storage concurrency token, never part of the document body
    etag: Optional[str] = None

    def __post_init__(self):
        self.created_date = parse_datetime(self.created_date)
        self.updated_date = parse_datetime(self.updated_date)

    def to_cosmos_item(self) -> dict[str, Any]:
        """
        Convert the idea to a Cosmos DB document format.

        Returns:
            Dictionary representation suitable for Cosmos DB storage.
        """
        return {
            "id": self.idea_id,
            "ideaId": self.idea_id,
            "type": "idea",
            "createdByObjectId": self.created_by_object_id,
            "createdByName": self.created_by_name,
            "createdByUserPrincipalName": self.created_by_upn,
            "title": self.title,
            "description": self.description,
            "categoryId": self.category_id,
            "category": self.category,
            "tags": join_semicolon_list(self.tags),
            "status": self.status.value if isinstance(self.status, IdeaStatus) else self.status,
            "totalVotes": self.total_votes,
            "createdDate": format_datetime(self.created_date),
            "updatedDate": format_datetime(self.updated_date),
            "approvedOrRejectedByName": self.approved_or_rejected_by_name,
            "feedback": self.feedback,
        }

    @classmethod
    def from_cosmos_item(cls, item: dict[str, Any]) -> "Idea":
        """
        Create an Idea instance from a Cosmos DB document.

        Args:
            item: Dictionary from Cosmos DB query result.

        Returns:
            Idea instance populated with document data.
        """
        status_value = item.get("status", IdeaStatus.PENDING.value)
        try:
            status = IdeaStatus(status_value)
        except ValueError:
            status = IdeaStatus.PENDING

        return cls(
            idea_id=item.get("ideaId", item.get("id", "")),
            created_by_object_id=item.get("createdByObjectId", ""),
            title=item.get("title", ""),
            description=item.get("description", ""),
            category_id=item.get("categoryId", ""),
            category=item.get("category", ""),
            tags=split_semicolon_list(item.get("tags")),
            created_by_name=item.get("createdByName", ""),
            created_by_upn=item.get("createdByUserPrincipalName", ""),
            status=status,
            total_votes=max(0, int(item.get("totalVotes", 0) or 0)),
            created_date=parse_datetime(item.get("createdDate")),
            updated_date=parse_datetime(item.get("updatedDate")),
            approved_or_rejected_by_name=item.get("approvedOrRejectedByName", ""),
            feedback=item.get("feedback", ""),
            etag=item.get("_etag"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON API response."""
        return self.to_cosmos_item()

    def to_search_document(self) -> dict[str, Any]:
        """Convert to the document shape pushed to the search index."""
        return {
            "id": self.idea_id,
            "title": self.title,
            "description": self.description,
            "categoryId": self.category_id,
            "category": self.category,
            "tags": list(self.tags),
            "status": self.status.value,
            "totalVotes": self.total_votes,
            "createdByObjectId": self.created_by_object_id,
            "createdByName": self.created_by_name,
            "createdDate": format_datetime(self.created_date),
            "updatedDate": format_datetime(self.updated_date),
        }

    def update_timestamp(self) -> None:
        """Update the updated_date timestamp to current time."""
        self.updated_date = utc_now()

    def is_owner(self, user_id: str) -> bool:
        """Check if the given user is the owner of this idea."""
        return self.created_by_object_id == user_id

    def can_be_edited(self) -> bool:
        """Only pending ideas can still be edited by their owner."""
        return self.status == IdeaStatus.PENDING


@dataclass
class UserVote:
    """
    Marker of one user's vote on one idea.

    At most one vote exists per (user, idea); existence is the signal.
    """

    user_id: str
    idea_id: str
    created_date: datetime = field(default_factory=utc_now)

    def to_cosmos_item(self) -> dict[str, Any]:
        """Convert to Cosmos DB document format."""
        return {
            "id": self.idea_id,
            "ideaId": self.idea_id,
            "userId": self.user_id,
            "createdDate": format_datetime(self.created_date),
            "type": "user_vote",
        }

    @classmethod
    def from_cosmos_item(cls, item: dict[str, Any]) -> "UserVote":
        """Create a UserVote instance from a Cosmos DB document."""
        return cls(
            user_id=item.get("userId", ""),
            idea_id=item.get("ideaId", item.get("id", "")),
            created_date=parse_datetime(item.get("createdDate")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON API response."""
        return {
            "userId": self.user_id,
            "ideaId": self.idea_id,
            "createdDate": format_datetime(self.created_date),
        }


@dataclass
class Category:
    """An idea category managed by curators."""

    category_id: str
    name: str
    description: str = ""
    created_by_user_id: str = ""
    updated_by_user_id: str = ""
    created_date: datetime = field(default_factory=utc_now)
    updated_date: datetime = field(default_factory=utc_now)

    def to_cosmos_item(self) -> dict[str, Any]:
        """Convert to Cosmos DB document format."""
        return {
            "id": self.category_id,
            "categoryId": self.category_id,
            "categoryName": self.name,
            "categoryDescription": self.description,
            "createdByUserId": self.created_by_user_id,
            "modifiedByUserId": self.updated_by_user_id,
            "createdOn": format_datetime(self.created_date),
            "updatedOn": format_datetime(self.updated_date),
            "type": "category",
        }

    @classmethod
    def from_cosmos_item(cls, item: dict[str, Any]) -> "Category":
        """Create a Category instance from a Cosmos DB document."""
        return cls(
            category_id=item.get("categoryId", item.get("id", "")),
            name=item.get("categoryName", ""),
            description=item.get("categoryDescription", ""),
            created_by_user_id=item.get("createdByUserId", ""),
            updated_by_user_id=item.get("modifiedByUserId", ""),
            created_date=parse_datetime(item.get("createdOn")),
            updated_date=parse_datetime(item.get("updatedOn")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON API response."""
        return self.to_cosmos_item()


@dataclass
class TeamCategory:
    """Categories a team has chosen to see in its discover tab."""

    team_id: str
    categories: list[str] = field(default_factory=list)
    created_by_user_id: str = ""
    updated_by_user_id: str = ""
    created_date: datetime = field(default_factory=utc_now)
    updated_date: datetime = field(default_factory=utc_now)

    def to_cosmos_item(self) -> dict[str, Any]:
        """Convert to Cosmos DB document format."""
        return {
            "id": self.team_id,
            "teamId": self.team_id,
            "categories": join_semicolon_list(self.categories),
            "createdByUserId": self.created_by_user_id,
            "updatedByUserId": self.updated_by_user_id,
            "createdDate": format_datetime(self.created_date),
            "updatedDate": format_datetime(self.updated_date),
            "type": "team_category",
        }

    @classmethod
    def from_cosmos_item(cls, item: dict[str, Any]) -> "TeamCategory":
        """Create a TeamCategory instance from a Cosmos DB document."""
        return cls(
            team_id=item.get("teamId", item.get("id", "")),
            categories=split_semicolon_list(item.get("categories")),
            created_by_user_id=item.get("createdByUserId", ""),
            updated_by_user_id=item.get("updatedByUserId", ""),
            created_date=parse_datetime(item.get("createdDate")),
            updated_date=parse_datetime(item.get("updatedDate")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON API response."""
        return self.to_cosmos_item()


@dataclass
class TeamTag:
    """Tags a team has configured; at most three, stored semicolon-joined."""

    team_id: str
    tags: list[str] = field(default_factory=list)
    created_by_name: str = ""
    created_by_user_id: str = ""
    updated_by_user_id: str = ""
    created_date: datetime = field(default_factory=utc_now)
    updated_date: datetime = field(default_factory=utc_now)

    def to_cosmos_item(self) -> dict[str, Any]:
        return {
            "id": self.team_id,
            "teamId": self.team_id,
            "tags": join_semicolon_list(self.tags),
            "createdByName": self.created_by_name,
            "createdByUserId": self.created_by_user_id,
            "updatedByUserId": self.updated_by_user_id,
            "createdDate": format_datetime(self.created_date),
            "updatedDate": format_datetime(self.updated_date),
            "type": "team_tag",
        }

    @classmethod
    def from_cosmos_item(cls, item: dict[str, Any]) -> "TeamTag":
        return cls(
            team_id=item.get("teamId", item.get("id", "")),
            tags=split_semicolon_list(item.get("tags")),
            created_by_name=item.get("createdByName", ""),
            created_by_user_id=item.get("createdByUserId", ""),
            updated_by_user_id=item.get("updatedByUserId", ""),
            created_date=parse_datetime(item.get("createdDate")),
            updated_date=parse_datetime(item.get("updatedDate")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON API response."""
        item = self.to_cosmos_item()
        item["tags"] = list(self.tags)
        return item


@dataclass
class TeamPreference:
    """
    Digest preferences of a team.

    The digest for this team includes only ideas whose category is listed
    in ``categories``.
    """

    team_id: str
    digest_frequency: DigestFrequency = DigestFrequency.WEEKLY
    categories: list[str] = field(default_factory=list)
    updated_by_object_id: str = ""
    updated_date: datetime = field(default_factory=utc_now)

    def to_cosmos_item(self) -> dict[str, Any]:
        """Convert to Cosmos DB document format."""
        return {
            "id": self.team_id,
            "teamId": self.team_id,
            "digestFrequency": (
                self.digest_frequency.value
                if isinstance(self.digest_frequency, DigestFrequency)
                else self.digest_frequency
            ),
            "categories": join_semicolon_list(self.categories),
            "updatedByObjectId": self.updated_by_object_id,
            "updatedDate": format_datetime(self.updated_date),
            "type": "team_preference",
        }

    @classmethod
    def from_cosmos_item(cls, item: dict[str, Any]) -> "TeamPreference":
        """Create a TeamPreference instance from a Cosmos DB document."""
        frequency_value = str(item.get("digestFrequency", DigestFrequency.WEEKLY.value)).lower()
        try:
            frequency = DigestFrequency(frequency_value)
        except ValueError:
            frequency = DigestFrequency.WEEKLY

        return cls(
            team_id=item.get("teamId", item.get("id", "")),
            digest_frequency=frequency,
            categories=split_semicolon_list(item.get("categories")),
            updated_by_object_id=item.get("updatedByObjectId", ""),
            updated_date=parse_datetime(item.get("updatedDate")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON API response."""
        return self.to_cosmos_item()


@dataclass
class IdeaListResponse:
    """Response model for paginated idea list."""

    ideas: list[Idea]
    total_count: int
    page: int
    page_size: int
    has_more: bool

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "ideas": [idea.to_dict() for idea in self.ideas],
            "totalCount": self.total_count,
            "page": self.page,
            "pageSize": self.page_size,
            "hasMore": self.has_more,
        }
