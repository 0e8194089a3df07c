"""
Error types for the Submit Idea module.

Store errors describe what went wrong talking to Cosmos DB. Vote operation
errors describe how a vote toggle failed and what state it left behind.
"""

from typing import Any


class IdeasStoreError(Exception):
    """Raised when a storage operation fails."""


class ConcurrencyConflictError(IdeasStoreError):
    """The record changed since it was read; the write was rejected."""


class StoreUnavailableError(IdeasStoreError):
    """Any non-retryable storage failure."""


class VoteAlreadyExistsError(IdeasStoreError):
    """The user already holds a vote record on the idea."""


class VoteNotFoundError(IdeasStoreError):
    """The user holds no vote record on the idea."""


class IdeaValidationError(ValueError):
    """Raised when submitted idea data is invalid."""


class VoteOperationError(Exception):
    """Base class for failed vote toggles."""

    def __init__(self, message: str, idea_id: str, user_id: str):
        self.idea_id = idea_id
        self.user_id = user_id
        super().__init__(message)


class CounterUpdateFailedError(VoteOperationError):
    """
    The idea's vote counter could not be updated.

    No vote record was written or deleted, so state is unchanged.
    """


class VoteRecordFailedError(VoteOperationError):
    """
    The vote record write or delete failed after the counter moved.

    The counter was rolled back, so state is unchanged.
    """


class CompensationFailedError(VoteOperationError):
    """
    Rolling back the counter failed after a vote record failure.

    The idea's counter is off by ``delta`` until reconciled.
    """

    def __init__(self, message: str, idea_id: str, user_id: str, owner_id: str, delta: int):
        self.owner_id = owner_id
        self.delta = delta
        super().__init__(message, idea_id, user_id)

    @property
    def needs_reconciliation(self) -> dict[str, Any]:
        """The divergence left behind, for an out-of-band reconciliation."""
        return {
            "ideaId": self.idea_id,
            "ownerId": self.owner_id,
            "userId": self.user_id,
            "counterDelta": self.delta,
        }
