"""
Vote coordination for the Submit Idea module.

A vote toggle touches two records: the user's vote record and the idea's
aggregate ``total_votes`` counter. The store only offers conditional
writes, so the counter is moved with a read-current, compute-next,
conditional-write loop that retries on conflict. A failed vote record
write is compensated by moving the counter back; if that also fails the
divergence is raised as ``CompensationFailedError`` for reconciliation.

A toggle that loses a race against the same user's concurrent toggle finds
the vote record already created or already deleted. Its counter move is
then rolled back and the toggle reports that nothing changed.
"""

import logging
from typing import Any, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from .errors import (
    CompensationFailedError,
    ConcurrencyConflictError,
    CounterUpdateFailedError,
    IdeasStoreError,
    VoteAlreadyExistsError,
    VoteNotFoundError,
    VoteRecordFailedError,
)
from .models import Idea, UserVote
from .store import IdeaStore, VoteStore

logger = logging.getLogger(__name__)

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 1.0


def next_vote_count(current: int, delta: int) -> int:
    """Apply a vote delta to a counter, never going below zero."""
    result = current + delta
    if result < 0:
        logger.warning(f"Vote count would drop to {result}; clamping to 0")
        return 0
    return result


class VoteCoordinator:
    """
    Toggles a user's vote on an idea while keeping the idea's counter
    consistent with the vote ledger.

    There is no in-process locking: concurrent toggles on the same idea
    are serialized only by the idea store's conditional write. Toggles on
    different ideas never contend.
    """

    def __init__(
        self,
        idea_store: IdeaStore,
        vote_store: VoteStore,
        search_service: Optional[Any] = None,
        max_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
    ):
        """
        Initialize the vote coordinator.

        Args:
            idea_store: Store holding idea records.
            vote_store: Store holding vote records.
            search_service: IdeasSearchService refreshed after each vote.
            max_attempts: Attempts of the counter update before giving up.
            backoff_seconds: Linear backoff step between attempts.
        """
        self.idea_store = idea_store
        self.vote_store = vote_store
        self.search_service = search_service
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.backoff_seconds, increment=self.backoff_seconds),
            retry=retry_if_exception_type(ConcurrencyConflictError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def _update_vote_count(
        self,
        owner_id: str,
        idea_id: str,
        delta: int | None = None,
        absolute: int | None = None,
    ) -> Idea | None:
        """
        Move an idea's counter with a conditional write, retrying on conflict.

        Every attempt re-reads the idea so the new value is computed from
        the current one, never from a stale read.

        Returns:
            The updated idea, or None if the idea does not exist.

        Raises:
            ConcurrencyConflictError: Conflicts persisted through all attempts.
            IdeasStoreError: Any non-retryable storage failure.
        """
        async for attempt in self._retrying():
            with attempt:
                idea = await self.idea_store.get_idea(owner_id, idea_id)
                if idea is None:
                    return None

                if absolute is not None:
                    idea.total_votes = max(0, absolute)
                else:
                    idea.total_votes = next_vote_count(idea.total_votes, delta or 0)

                return await self.idea_store.replace_idea(idea)
        return None

    async def _refresh_search(self, idea: Idea) -> None:
        if not self.search_service:
            return
        try:
            await self.search_service.update_document(idea)
        except Exception as e:
            logger.warning(f"Failed to refresh idea {idea.idea_id} in search: {e}")

    async def _change_vote_count(self, user_id: str, owner_id: str, idea_id: str, delta: int) -> Idea | None:
        try:
            return await self._update_vote_count(owner_id, idea_id, delta=delta)
        except ConcurrencyConflictError as e:
            logger.error(
                f"Vote count of idea {idea_id} not updated after "
                f"{self.max_attempts} attempts: {e}"
            )
            raise CounterUpdateFailedError(
                f"Vote count of idea {idea_id} could not be updated", idea_id, user_id
            ) from e
        except IdeasStoreError as e:
            logger.error(f"Vote count of idea {idea_id} not updated: {e}")
            raise CounterUpdateFailedError(
                f"Vote count of idea {idea_id} could not be updated", idea_id, user_id
            ) from e

    async def _compensate(self, user_id: str, owner_id: str, idea_id: str, delta: int) -> None:
        """
        Undo a counter move after the vote record operation failed.

        Raises:
            CompensationFailedError: The rollback did not persist; the
                counter is off by the original delta.
        """
        try:
            await self._update_vote_count(owner_id, idea_id, delta=-delta)
            logger.info(f"Rolled back vote count of idea {idea_id} by {-delta}")
        except IdeasStoreError as e:
            error = CompensationFailedError(
                f"Vote count of idea {idea_id} could not be rolled back",
                idea_id=idea_id,
                user_id=user_id,
                owner_id=owner_id,
                delta=delta,
            )
            logger.error(
                f"Vote count of idea {idea_id} needs reconciliation: {error.needs_reconciliation}"
            )
            raise error from e

    async def cast_vote(self, user_id: str, idea_owner_id: str, idea_id: str) -> bool:
        """
        Record a user's vote on an idea and increment its counter.

        Args:
            user_id: Object id of the voting user.
            idea_owner_id: Object id of the idea's creator.
            idea_id: The unique identifier of the idea.

        Returns:
            True if the vote was recorded, False if the user had already
            voted or the idea does not exist.

        Raises:
            CounterUpdateFailedError: Nothing was written.
            VoteRecordFailedError: The counter was rolled back.
            CompensationFailedError: The counter is one too high.
        """
        try:
            existing_vote = await self.vote_store.get_vote(user_id, idea_id)
        except IdeasStoreError as e:
            raise CounterUpdateFailedError(
                f"Vote of {user_id} on idea {idea_id} could not be checked", idea_id, user_id
            ) from e

        if existing_vote:
            logger.debug(f"User {user_id} already voted on idea {idea_id}")
            return False

        idea = await self._change_vote_count(user_id, idea_owner_id, idea_id, 1)
        if idea is None:
            logger.warning(f"Idea {idea_id} of owner {idea_owner_id} not found, vote ignored")
            return False

        logger.info(f"Vote count updated for idea {idea_id}")

        try:
            await self.vote_store.add_vote(UserVote(user_id=user_id, idea_id=idea_id))
        except VoteAlreadyExistsError:
            logger.info(f"User {user_id} already voted on idea {idea_id}, rolling back count")
            await self._compensate(user_id, idea_owner_id, idea_id, 1)
            return False
        except IdeasStoreError as e:
            logger.error(f"Vote of {user_id} on idea {idea_id} not stored: {e}")
            await self._compensate(user_id, idea_owner_id, idea_id, 1)
            raise VoteRecordFailedError(
                f"Vote of {user_id} on idea {idea_id} could not be stored", idea_id, user_id
            ) from e

        logger.info(f"User {user_id} voted on idea {idea_id}")
        await self._refresh_search(idea)
        return True

    async def remove_vote(self, user_id: str, idea_owner_id: str, idea_id: str) -> bool:
        """
        Delete a user's vote on an idea and decrement its counter.

        Args:
            user_id: Object id of the user withdrawing the vote.
            idea_owner_id: Object id of the idea's creator.
            idea_id: The unique identifier of the idea.

        Returns:
            True if the vote was removed, False if the user had not voted
            or the idea does not exist.

        Raises:
            CounterUpdateFailedError: Nothing was written.
            VoteRecordFailedError: The counter was rolled back.
            CompensationFailedError: The counter is one too low.
        """
        try:
            existing_vote = await self.vote_store.get_vote(user_id, idea_id)
        except IdeasStoreError as e:
            raise CounterUpdateFailedError(
                f"Vote of {user_id} on idea {idea_id} could not be checked", idea_id, user_id
            ) from e

        if not existing_vote:
            logger.debug(f"User {user_id} has not voted on idea {idea_id}")
            return False

        idea = await self._change_vote_count(user_id, idea_owner_id, idea_id, -1)
        if idea is None:
            logger.warning(f"Idea {idea_id} of owner {idea_owner_id} not found, vote kept")
            return False

        logger.info(f"Vote count updated for idea {idea_id}")

        try:
            await self.vote_store.delete_vote(idea_id, user_id)
        except VoteNotFoundError:
            logger.info(f"Vote of {user_id} on idea {idea_id} already removed, rolling back count")
            await self._compensate(user_id, idea_owner_id, idea_id, -1)
            return False
        except IdeasStoreError as e:
            logger.error(f"Vote of {user_id} on idea {idea_id} not deleted: {e}")
            await self._compensate(user_id, idea_owner_id, idea_id, -1)
            raise VoteRecordFailedError(
                f"Vote of {user_id} on idea {idea_id} could not be deleted", idea_id, user_id
            ) from e

        logger.info(f"User {user_id} removed vote from idea {idea_id}")
        await self._refresh_search(idea)
        return True

    async def reconcile_vote_count(self, owner_id: str, idea_id: str) -> int | None:
        """
        Reset an idea's counter to the number of vote records referencing it.

        Returns:
            The reconciled count, or None if the idea does not exist.
        """
        count = await self.vote_store.count_votes(idea_id)
        idea = await self._update_vote_count(owner_id, idea_id, absolute=count)
        if idea is None:
            return None

        logger.info(f"Reconciled vote count of idea {idea_id} to {count}")
        await self._refresh_search(idea)
        return idea.total_votes

    async def get_user_votes(self, user_id: str) -> list[UserVote]:
        """All votes cast by a user."""
        return await self.vote_store.list_votes(user_id)
