"""
API routes for the Submit Idea module.

This module defines the REST API endpoints for idea submission, owner
edits, curation, discovery and voting. All routes except ``/status``
require authentication.
"""

import logging
import os
from typing import Any, Optional

from azure.core.credentials import AzureKeyCredential
from azure.cosmos.aio import CosmosClient
from quart import Blueprint, current_app, jsonify, request

from config import (
    CONFIG_CATEGORY_STORE,
    CONFIG_COSMOS_CLIENT,
    CONFIG_CREDENTIAL,
    CONFIG_DIGEST_DELIVERY,
    CONFIG_DIGEST_SCHEDULER,
    CONFIG_IDEAS_HUB_ENABLED,
    CONFIG_IDEAS_SEARCH_SERVICE,
    CONFIG_IDEAS_SERVICE,
    CONFIG_TEAM_CATEGORY_STORE,
    CONFIG_TEAM_PREFERENCE_STORE,
    CONFIG_TEAM_TAG_STORE,
    CONFIG_VOTE_COORDINATOR,
)
from decorators import authenticated
from error import error_response

from .digest import DigestBuilder
from .errors import ConcurrencyConflictError
from .models import split_semicolon_list
from .permissions import (
    IdeaPermission,
    can_edit_idea,
    get_role_info,
    get_user_id,
    require_permission,
)
from .scheduler import DigestScheduler
from .search_index import IDEAS_INDEX_NAME, SORT_NEWEST, IdeasSearchService
from .service import IdeasService
from .store import (
    CategoryStore,
    IdeaStore,
    TeamCategoryStore,
    TeamPreferenceStore,
    TeamTagStore,
    VoteStore,
)
from .votes import DEFAULT_RETRY_ATTEMPTS, DEFAULT_RETRY_BACKOFF_SECONDS, VoteCoordinator

logger = logging.getLogger(__name__)

# Create blueprint with URL prefix
ideas_bp = Blueprint("ideas", __name__, url_prefix="/api/ideas")


def _check_ideas_enabled() -> tuple[Any, int] | None:
    """Check if the Submit Idea module is enabled. Returns error response if not."""
    if not current_app.config.get(CONFIG_IDEAS_HUB_ENABLED, False):
        return jsonify({"error": "Submit Idea is not enabled"}), 400
    return None


def _get_ideas_service() -> IdeasService | None:
    """Get the configured IdeasService instance."""
    return current_app.config.get(CONFIG_IDEAS_SERVICE)


def _get_vote_coordinator() -> VoteCoordinator | None:
    """Get the configured VoteCoordinator instance."""
    return current_app.config.get(CONFIG_VOTE_COORDINATOR)


def _get_digest_scheduler() -> DigestScheduler | None:
    """Get the configured DigestScheduler instance."""
    return current_app.config.get(CONFIG_DIGEST_SCHEDULER)


def _get_list_arg(name: str) -> list[str]:
    """Read a filter that may be repeated or semicolon-joined."""
    values = []
    for value in request.args.getlist(name):
        values.extend(split_semicolon_list(value))
    return values


def _get_paging() -> tuple[int, int]:
    page = max(1, int(request.args.get("page", 1)))
    page_size = min(100, max(1, int(request.args.get("pageSize", 20))))
    return page, page_size


@ideas_bp.before_app_serving
async def setup_ideas_module():
    """
    Initialize the Submit Idea module before the application starts serving.

    Sets up the Cosmos DB stores, the search service, the vote coordinator
    and the digest scheduler.
    """
    USE_IDEAS_HUB = os.getenv("USE_IDEAS_HUB", "").lower() == "true"
    AZURE_IDEAS_DATABASE = os.getenv("AZURE_IDEAS_DATABASE", "submit-idea")
    AZURE_IDEAS_CONTAINER = os.getenv("AZURE_IDEAS_CONTAINER", "ideas")
    AZURE_VOTES_CONTAINER = os.getenv("AZURE_VOTES_CONTAINER", "user-votes")
    AZURE_CATEGORIES_CONTAINER = os.getenv("AZURE_CATEGORIES_CONTAINER", "categories")
    AZURE_TEAM_CATEGORIES_CONTAINER = os.getenv("AZURE_TEAM_CATEGORIES_CONTAINER", "team-categories")
    AZURE_TEAM_PREFERENCES_CONTAINER = os.getenv("AZURE_TEAM_PREFERENCES_CONTAINER", "team-preferences")
    AZURE_TEAM_TAGS_CONTAINER = os.getenv("AZURE_TEAM_TAGS_CONTAINER", "team-tags")
    AZURE_SEARCH_SERVICE = os.getenv("AZURE_SEARCH_SERVICE")
    AZURE_SEARCH_KEY = os.getenv("AZURE_SEARCH_KEY")
    AZURE_IDEAS_SEARCH_INDEX = os.getenv("AZURE_IDEAS_SEARCH_INDEX", IDEAS_INDEX_NAME)
    VOTE_RETRY_ATTEMPTS = int(os.getenv("VOTE_RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS))
    VOTE_RETRY_BACKOFF_SECONDS = float(
        os.getenv("VOTE_RETRY_BACKOFF_SECONDS", DEFAULT_RETRY_BACKOFF_SECONDS)
    )
    ENABLE_DIGEST_SCHEDULER = os.getenv("ENABLE_DIGEST_SCHEDULER", "").lower() == "true"

    current_app.config[CONFIG_IDEAS_HUB_ENABLED] = USE_IDEAS_HUB

    if not USE_IDEAS_HUB:
        current_app.logger.info("Submit Idea is disabled")
        return

    current_app.logger.info("USE_IDEAS_HUB is true, setting up Submit Idea")

    try:
        cosmos_client: Optional[CosmosClient] = current_app.config.get(CONFIG_COSMOS_CLIENT)
        if not cosmos_client:
            current_app.logger.error("Cosmos DB client not available")
            current_app.config[CONFIG_IDEAS_HUB_ENABLED] = False
            return

        cosmos_db = cosmos_client.get_database_client(AZURE_IDEAS_DATABASE)

        idea_store = IdeaStore(cosmos_db.get_container_client(AZURE_IDEAS_CONTAINER))
        vote_store = VoteStore(cosmos_db.get_container_client(AZURE_VOTES_CONTAINER))
        category_store = CategoryStore(cosmos_db.get_container_client(AZURE_CATEGORIES_CONTAINER))
        team_category_store = TeamCategoryStore(
            cosmos_db.get_container_client(AZURE_TEAM_CATEGORIES_CONTAINER)
        )
        team_preference_store = TeamPreferenceStore(
            cosmos_db.get_container_client(AZURE_TEAM_PREFERENCES_CONTAINER)
        )
        team_tag_store = TeamTagStore(cosmos_db.get_container_client(AZURE_TEAM_TAGS_CONTAINER))

        current_app.config[CONFIG_CATEGORY_STORE] = category_store
        current_app.config[CONFIG_TEAM_CATEGORY_STORE] = team_category_store
        current_app.config[CONFIG_TEAM_PREFERENCE_STORE] = team_preference_store
        current_app.config[CONFIG_TEAM_TAG_STORE] = team_tag_store

        search_service = None
        if AZURE_SEARCH_SERVICE:
            credential = (
                AzureKeyCredential(AZURE_SEARCH_KEY)
                if AZURE_SEARCH_KEY
                else current_app.config.get(CONFIG_CREDENTIAL)
            )
            if credential:
                search_service = IdeasSearchService(
                    endpoint=f"https://{AZURE_SEARCH_SERVICE}.search.windows.net",
                    credential=credential,
                    index_name=AZURE_IDEAS_SEARCH_INDEX,
                )
            else:
                current_app.logger.warning("No credential for Azure AI Search, search disabled")
        current_app.config[CONFIG_IDEAS_SEARCH_SERVICE] = search_service

        current_app.config[CONFIG_IDEAS_SERVICE] = IdeasService(
            idea_store=idea_store,
            category_store=category_store,
            team_category_store=team_category_store,
            search_service=search_service,
        )
        current_app.config[CONFIG_VOTE_COORDINATOR] = VoteCoordinator(
            idea_store=idea_store,
            vote_store=vote_store,
            search_service=search_service,
            max_attempts=VOTE_RETRY_ATTEMPTS,
            backoff_seconds=VOTE_RETRY_BACKOFF_SECONDS,
        )

        scheduler = DigestScheduler(
            builder=DigestBuilder(idea_store, team_preference_store),
            deliver=current_app.config.get(CONFIG_DIGEST_DELIVERY),
        )
        current_app.config[CONFIG_DIGEST_SCHEDULER] = scheduler

        if ENABLE_DIGEST_SCHEDULER:
            scheduler.start()
            current_app.logger.info("Digest scheduler started")
        else:
            current_app.logger.info("Digest scheduler disabled (ENABLE_DIGEST_SCHEDULER != true)")

        current_app.logger.info(
            f"Submit Idea initialized with database: {AZURE_IDEAS_DATABASE}, "
            f"ideas container: {AZURE_IDEAS_CONTAINER}, "
            f"votes container: {AZURE_VOTES_CONTAINER}"
        )
    except Exception as e:
        current_app.logger.error(f"Failed to initialize Submit Idea: {e}")
        current_app.config[CONFIG_IDEAS_HUB_ENABLED] = False


@ideas_bp.after_app_serving
async def cleanup_ideas_module():
    """
    Clean up resources when the application stops serving.
    """
    scheduler = _get_digest_scheduler()
    if scheduler:
        scheduler.stop()

    search_service: Optional[IdeasSearchService] = current_app.config.get(CONFIG_IDEAS_SEARCH_SERVICE)
    if search_service:
        await search_service.close()

    logger.info("Submit Idea cleanup complete")


@ideas_bp.route("/status", methods=["GET"])
async def ideas_status():
    """
    Get the status of the Submit Idea module.

    No authentication required - used for health checks.
    """
    scheduler = _get_digest_scheduler()
    return jsonify({
        "enabled": current_app.config.get(CONFIG_IDEAS_HUB_ENABLED, False),
        "scheduler_running": bool(scheduler and scheduler.running),
        "search_enabled": current_app.config.get(CONFIG_IDEAS_SEARCH_SERVICE) is not None,
        "module": "submit_idea",
        "version": "1.0.0",
    })


@ideas_bp.route("/role", methods=["GET"])
@authenticated
async def get_role(auth_claims: dict[str, Any]):
    """Role and permissions of the current user."""
    return jsonify(get_role_info(auth_claims))


@ideas_bp.route("", methods=["POST"])
@authenticated
@require_permission(IdeaPermission.SUBMIT_IDEA)
async def submit_idea(auth_claims: dict[str, Any]):
    """
    Submit a new idea.

    Request body should contain:
        - title: Idea title (required, max 200 characters)
        - description: Description (required, max 500 characters)
        - categoryId: Category of the idea
        - tags: Up to 3 tags, as a list or semicolon-joined

    Returns:
        JSON response with the created idea.
    """
    error = _check_ideas_enabled()
    if error:
        return error

    if not get_user_id(auth_claims):
        return jsonify({"error": "User ID not found"}), 401

    try:
        request_json = await request.get_json() or {}
        service = _get_ideas_service()
        idea = await service.submit_idea(
            title=request_json.get("title", ""),
            description=request_json.get("description", ""),
            category_id=request_json.get("categoryId", ""),
            tags=split_semicolon_list(request_json.get("tags")),
            user=auth_claims,
        )
        return jsonify(idea.to_dict()), 201
    except ValueError as ve:
        return jsonify({"error": str(ve)}), 400
    except Exception as e:
        return error_response(e, "/api/ideas")


@ideas_bp.route("", methods=["GET"])
@authenticated
async def search_ideas(auth_claims: dict[str, Any]):
    """
    Search, filter and sort ideas.

    Query parameters:
        - q: Search text
        - categories: Category ids (repeated or semicolon-joined)
        - authors: Creator display names
        - tags: Tags
        - status: pending, approved or rejected
        - myIdeas: Only the user's own ideas (default: false)
        - sortBy: newest or popular (default: newest)
        - page, pageSize: Paging (pageSize max 100)

    Returns:
        JSON response with paginated ideas.
    """
    error = _check_ideas_enabled()
    if error:
        return error

    user_id = get_user_id(auth_claims)
    if not user_id:
        return jsonify({"error": "User ID not found"}), 401

    try:
        page, page_size = _get_paging()
        my_ideas = request.args.get("myIdeas", "").lower() == "true"
        result = await _get_ideas_service().search_ideas(
            search_text=request.args.get("q"),
            category_ids=_get_list_arg("categories"),
            author_names=_get_list_arg("authors"),
            tags=_get_list_arg("tags"),
            status=request.args.get("status"),
            created_by=user_id if my_ideas else None,
            sort_by=request.args.get("sortBy", SORT_NEWEST),
            page=page,
            page_size=page_size,
        )
        return jsonify(result.to_dict())
    except ValueError as ve:
        return jsonify({"error": str(ve)}), 400
    except Exception as e:
        return error_response(e, "/api/ideas")


@ideas_bp.route("/authors", methods=["GET"])
@authenticated
async def list_authors(auth_claims: dict[str, Any]):
    """Distinct creator names for the filter bar."""
    error = _check_ideas_enabled()
    if error:
        return error

    try:
        return jsonify(await _get_ideas_service().list_unique_authors())
    except Exception as e:
        return error_response(e, "/api/ideas/authors")


@ideas_bp.route("/tags", methods=["GET"])
@authenticated
async def list_tags(auth_claims: dict[str, Any]):
    """Distinct tags for the filter bar."""
    error = _check_ideas_enabled()
    if error:
        return error

    try:
        return jsonify(await _get_ideas_service().list_unique_tags())
    except Exception as e:
        return error_response(e, "/api/ideas/tags")


@ideas_bp.route("/<idea_id>", methods=["GET"])
@authenticated
async def get_idea(auth_claims: dict[str, Any], idea_id: str):
    """
    Get a single idea.

    Query parameters:
        - ownerId: Object id of the idea's creator; looked up when absent

    Returns:
        JSON response with idea data or 404 if not found.
    """
    error = _check_ideas_enabled()
    if error:
        return error

    try:
        service = _get_ideas_service()
        owner_id = request.args.get("ownerId")
        if owner_id:
            idea = await service.get_idea(owner_id, idea_id)
        else:
            idea = await service.find_idea(idea_id)

        if not idea:
            return jsonify({"error": "Idea not found"}), 404
        return jsonify(idea.to_dict())
    except Exception as e:
        return error_response(e, f"/api/ideas/{idea_id}")


@ideas_bp.route("/<idea_id>", methods=["PATCH"])
@authenticated
async def update_idea(auth_claims: dict[str, Any], idea_id: str):
    """
    Edit an idea.

    Only the owner can edit an idea, and only while it is pending.
    Request body may contain title, description, categoryId and tags.
    """
    error = _check_ideas_enabled()
    if error:
        return error

    user_id = get_user_id(auth_claims)
    if not user_id:
        return jsonify({"error": "User ID not found"}), 401

    try:
        service = _get_ideas_service()
        owner_id = request.args.get("ownerId") or user_id
        idea = await service.get_idea(owner_id, idea_id)
        if not idea:
            return jsonify({"error": "Idea not found"}), 404

        if not can_edit_idea(auth_claims, idea.created_by_object_id):
            return jsonify({"error": "You do not have permission to edit this idea"}), 403

        request_json = await request.get_json() or {}
        updated_idea = await service.update_idea(idea, request_json, user_id)
        return jsonify(updated_idea.to_dict())
    except PermissionError as pe:
        return jsonify({"error": str(pe)}), 403
    except ConcurrencyConflictError:
        return jsonify({"error": "The idea was changed by someone else, reload and retry"}), 409
    except ValueError as ve:
        return jsonify({"error": str(ve)}), 400
    except Exception as e:
        return error_response(e, f"/api/ideas/{idea_id}")


@ideas_bp.route("/<idea_id>/status", methods=["PATCH"])
@authenticated
@require_permission(IdeaPermission.CHANGE_STATUS)
async def change_idea_status(auth_claims: dict[str, Any], idea_id: str):
    """
    Approve or reject a pending idea.

    Request body should contain:
        - ownerId: Object id of the idea's creator (required)
        - status: approved or rejected (required)
        - feedback: Feedback for the submitter (optional)
    """
    error = _check_ideas_enabled()
    if error:
        return error

    try:
        request_json = await request.get_json() or {}
        owner_id = request_json.get("ownerId")
        status = request_json.get("status")
        if not owner_id or not status:
            return jsonify({"error": "ownerId and status are required"}), 400

        idea = await _get_ideas_service().change_status(
            owner_id=owner_id,
            idea_id=idea_id,
            status=status,
            feedback=request_json.get("feedback", ""),
            curator_name=auth_claims.get("name", ""),
        )
        if not idea:
            return jsonify({"error": "Idea not found"}), 404
        return jsonify(idea.to_dict())
    except ConcurrencyConflictError:
        return jsonify({"error": "The idea was changed by someone else, reload and retry"}), 409
    except ValueError as ve:
        return jsonify({"error": str(ve)}), 400
    except Exception as e:
        return error_response(e, f"/api/ideas/{idea_id}/status")


async def _resolve_owner_id(idea_id: str) -> str | None:
    owner_id = request.args.get("ownerId")
    if owner_id:
        return owner_id
    idea = await _get_ideas_service().find_idea(idea_id)
    return idea.created_by_object_id if idea else None


@ideas_bp.route("/<idea_id>/votes", methods=["POST"])
@authenticated
@require_permission(IdeaPermission.VOTE)
async def cast_vote(auth_claims: dict[str, Any], idea_id: str):
    """
    Vote for an idea.

    Query parameters:
        - ownerId: Object id of the idea's creator

    Returns:
        ``{"success": true}`` if the vote was recorded, ``{"success": false}``
        if the user had already voted or the idea does not exist.
    """
    error = _check_ideas_enabled()
    if error:
        return error

    user_id = get_user_id(auth_claims)
    if not user_id:
        return jsonify({"error": "User ID not found"}), 401

    route = f"/api/ideas/{idea_id}/votes"
    try:
        owner_id = await _resolve_owner_id(idea_id)
        if not owner_id:
            return jsonify({"success": False})

        success = await _get_vote_coordinator().cast_vote(user_id, owner_id, idea_id)
        return jsonify({"success": success})
    except Exception as e:
        return error_response(e, route)


@ideas_bp.route("/<idea_id>/votes", methods=["DELETE"])
@authenticated
@require_permission(IdeaPermission.VOTE)
async def remove_vote(auth_claims: dict[str, Any], idea_id: str):
    """
    Withdraw a vote from an idea.

    Query parameters:
        - ownerId: Object id of the idea's creator

    Returns:
        ``{"success": true}`` if the vote was removed, ``{"success": false}``
        if the user had not voted or the idea does not exist.
    """
    error = _check_ideas_enabled()
    if error:
        return error

    user_id = get_user_id(auth_claims)
    if not user_id:
        return jsonify({"error": "User ID not found"}), 401

    route = f"/api/ideas/{idea_id}/votes"
    try:
        owner_id = await _resolve_owner_id(idea_id)
        if not owner_id:
            return jsonify({"success": False})

        success = await _get_vote_coordinator().remove_vote(user_id, owner_id, idea_id)
        return jsonify({"success": success})
    except Exception as e:
        return error_response(e, route)


@ideas_bp.route("/<idea_id>/votes/reconcile", methods=["POST"])
@authenticated
@require_permission(IdeaPermission.RECONCILE_VOTES)
async def reconcile_votes(auth_claims: dict[str, Any], idea_id: str):
    """
    Reset an idea's vote count to the number of stored votes.

    Used after a vote left the count out of step with the vote records.
    """
    error = _check_ideas_enabled()
    if error:
        return error

    try:
        owner_id = await _resolve_owner_id(idea_id)
        if not owner_id:
            return jsonify({"error": "Idea not found"}), 404

        total_votes = await _get_vote_coordinator().reconcile_vote_count(owner_id, idea_id)
        if total_votes is None:
            return jsonify({"error": "Idea not found"}), 404
        return jsonify({"ideaId": idea_id, "totalVotes": total_votes})
    except Exception as e:
        return error_response(e, f"/api/ideas/{idea_id}/votes/reconcile")


votes_bp = Blueprint("votes", __name__, url_prefix="/api/votes")


@votes_bp.route("", methods=["GET"])
@authenticated
async def list_user_votes(auth_claims: dict[str, Any]):
    """Votes cast by the current user."""
    error = _check_ideas_enabled()
    if error:
        return error

    user_id = get_user_id(auth_claims)
    if not user_id:
        return jsonify({"error": "User ID not found"}), 401

    try:
        votes = await _get_vote_coordinator().get_user_votes(user_id)
        return jsonify([vote.to_dict() for vote in votes])
    except Exception as e:
        return error_response(e, "/api/votes")

