# Submit Idea module
# Provides idea submission, voting, curation and team digest functionality

from .digest import DigestBuilder, TeamDigest, digest_window, select_digest_items
from .errors import (
    CompensationFailedError,
    ConcurrencyConflictError,
    CounterUpdateFailedError,
    IdeasStoreError,
    IdeaValidationError,
    StoreUnavailableError,
    VoteAlreadyExistsError,
    VoteNotFoundError,
    VoteOperationError,
    VoteRecordFailedError,
)
from .models import (
    Category,
    DigestFrequency,
    Idea,
    IdeaListResponse,
    IdeaStatus,
    TeamCategory,
    TeamPreference,
    TeamTag,
    UserVote,
)
from .permissions import (
    IdeaPermission,
    IdeaRole,
    can_edit_idea,
    get_role_info,
    get_user_role,
    has_permission,
    require_permission,
)
from .routes import ideas_bp, votes_bp
from .scheduler import DigestScheduler
from .search_index import IDEAS_INDEX_NAME, IdeasSearchService
from .service import IdeasService
from .store import (
    CategoryStore,
    IdeaStore,
    TeamCategoryStore,
    TeamPreferenceStore,
    TeamTagStore,
    VoteStore,
)
from .team_routes import categories_bp, digest_bp, teams_bp
from .votes import VoteCoordinator

__all__ = [
    "Category",
    "CategoryStore",
    "CompensationFailedError",
    "ConcurrencyConflictError",
    "CounterUpdateFailedError",
    "DigestBuilder",
    "DigestFrequency",
    "DigestScheduler",
    "IDEAS_INDEX_NAME",
    "Idea",
    "IdeaListResponse",
    "IdeaPermission",
    "IdeaRole",
    "IdeaStatus",
    "IdeaStore",
    "IdeaValidationError",
    "IdeasSearchService",
    "IdeasService",
    "IdeasStoreError",
    "StoreUnavailableError",
    "TeamCategory",
    "TeamCategoryStore",
    "TeamDigest",
    "TeamPreference",
    "TeamPreferenceStore",
    "TeamTag",
    "TeamTagStore",
    "UserVote",
    "VoteAlreadyExistsError",
    "VoteCoordinator",
    "VoteNotFoundError",
    "VoteOperationError",
    "VoteRecordFailedError",
    "VoteStore",
    "can_edit_idea",
    "categories_bp",
    "digest_bp",
    "digest_window",
    "get_role_info",
    "get_user_role",
    "has_permission",
    "ideas_bp",
    "require_permission",
    "select_digest_items",
    "teams_bp",
    "votes_bp",
]
