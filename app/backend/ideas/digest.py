"""
Digest selection for the Submit Idea module.

Teams opt into a weekly or monthly digest of recently updated ideas in
the categories they care about. Selection is a pure function over the
ideas loaded for the digest window; ``DigestBuilder`` does the loading.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from .models import DigestFrequency, Idea, TeamPreference, parse_datetime, utc_now
from .store import IdeaStore, TeamPreferenceStore

logger = logging.getLogger(__name__)

MAX_DIGEST_ITEMS = 15


def select_digest_items(
    ideas: Iterable[Idea],
    from_date: datetime,
    to_date: datetime,
    preferred_category_ids: Iterable[str],
    max_count: int = MAX_DIGEST_ITEMS,
) -> list[Idea]:
    """
    Pick the ideas a team's digest should list.

    Keeps ideas updated within ``[from_date, to_date]`` (both inclusive)
    whose category is preferred, most recently updated first, and stops
    after ``max_count`` ideas.

    Args:
        ideas: Candidate ideas, in any order.
        from_date: Start of the digest window.
        to_date: End of the digest window.
        preferred_category_ids: Category ids the team subscribed to.
        max_count: Maximum number of ideas in the digest.

    Returns:
        The selected ideas; empty if nothing matches.
    """
    if max_count <= 0:
        return []

    from_date = parse_datetime(from_date)
    to_date = parse_datetime(to_date)
    preferred = {category_id for category_id in preferred_category_ids if category_id}
    if not preferred:
        return []

    in_window = [idea for idea in ideas if from_date <= parse_datetime(idea.updated_date) <= to_date]
    in_window.sort(key=lambda idea: parse_datetime(idea.updated_date), reverse=True)

    selected: list[Idea] = []
    for idea in in_window:
        if idea.category_id in preferred:
            selected.append(idea)
            if len(selected) >= max_count:
                break
    return selected


def digest_window(frequency: DigestFrequency, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """
    Date range covered by a digest sent at ``now``.

    Weekly digests cover the last seven days. Monthly digests cover the
    previous calendar month.
    """
    now = parse_datetime(now) if now else utc_now()

    if frequency == DigestFrequency.WEEKLY:
        return now - timedelta(days=7), now

    first_of_this_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    last_of_previous_month = first_of_this_month - timedelta(microseconds=1)
    first_of_previous_month = last_of_previous_month.replace(
        day=1, hour=0, minute=0, second=0, microsecond=0
    )
    return first_of_previous_month, last_of_previous_month


@dataclass
class TeamDigest:
    """The ideas to announce to one team."""

    team_id: str
    frequency: DigestFrequency
    ideas: list[Idea] = field(default_factory=list)
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "teamId": self.team_id,
            "frequency": self.frequency.value,
            "ideas": [idea.to_dict() for idea in self.ideas],
            "fromDate": self.from_date.isoformat() if self.from_date else None,
            "toDate": self.to_date.isoformat() if self.to_date else None,
        }


class DigestBuilder:
    """Builds the digests of every team subscribed to a frequency."""

    def __init__(
        self,
        idea_store: IdeaStore,
        preference_store: TeamPreferenceStore,
        max_count: int = MAX_DIGEST_ITEMS,
    ):
        self.idea_store = idea_store
        self.preference_store = preference_store
        self.max_count = max_count

    def build_for_team(
        self,
        preference: TeamPreference,
        ideas: list[Idea],
        from_date: datetime,
        to_date: datetime,
    ) -> TeamDigest:
        return TeamDigest(
            team_id=preference.team_id,
            frequency=preference.digest_frequency,
            ideas=select_digest_items(ideas, from_date, to_date, preference.categories, self.max_count),
            from_date=from_date,
            to_date=to_date,
        )

    async def build(self, frequency: DigestFrequency, now: Optional[datetime] = None) -> list[TeamDigest]:
        """
        Build one digest per subscribed team with something to announce.

        Args:
            frequency: Which subscribers to build for.
            now: Reference time of the run; defaults to the current time.

        Returns:
            Digests with at least one idea; teams without matches are skipped.
        """
        from_date, to_date = digest_window(frequency, now)
        ideas = await self.idea_store.list_ideas_updated_between(from_date, to_date)
        if not ideas:
            logger.info(
                f"No ideas updated between {from_date.isoformat()} and {to_date.isoformat()}"
            )
            return []

        preferences = await self.preference_store.list_team_preferences(frequency)
        digests = []
        for preference in preferences:
            digest = self.build_for_team(preference, ideas, from_date, to_date)
            if digest.ideas:
                digests.append(digest)

        logger.info(
            f"Built {len(digests)} {frequency.value} digests from {len(ideas)} ideas "
            f"for {len(preferences)} teams"
        )
        return digests
