"""
API routes for categories, team configuration and digests.

Curators manage categories and decide which categories each team sees;
team members choose their digest frequency, categories and team tags.
"""

import logging
import uuid
from typing import Any

from quart import Blueprint, current_app, jsonify, request

from config import (
    CONFIG_CATEGORY_STORE,
    CONFIG_DIGEST_SCHEDULER,
    CONFIG_IDEAS_HUB_ENABLED,
    CONFIG_IDEAS_SERVICE,
    CONFIG_TEAM_CATEGORY_STORE,
    CONFIG_TEAM_PREFERENCE_STORE,
    CONFIG_TEAM_TAG_STORE,
)
from decorators import authenticated
from error import error_response

from .errors import IdeaValidationError
from .models import (
    Category,
    DigestFrequency,
    TeamCategory,
    TeamPreference,
    TeamTag,
    split_semicolon_list,
    utc_now,
)
from .permissions import IdeaPermission, get_user_id, require_permission
from .search_index import SORT_NEWEST
from .service import validate_tags

logger = logging.getLogger(__name__)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")
teams_bp = Blueprint("teams", __name__, url_prefix="/api/teams")
digest_bp = Blueprint("digest", __name__, url_prefix="/api/digest")


def _check_ideas_enabled() -> tuple[Any, int] | None:
    """Check if the Submit Idea module is enabled. Returns error response if not."""
    if not current_app.config.get(CONFIG_IDEAS_HUB_ENABLED, False):
        return jsonify({"error": "Submit Idea is not enabled"}), 400
    return None


@categories_bp.route("", methods=["GET"])
@authenticated
async def list_categories(auth_claims: dict[str, Any]):
    """All categories."""
    error = _check_ideas_enabled()
    if error:
        return error

    try:
        categories = await current_app.config[CONFIG_CATEGORY_STORE].list_categories()
        return jsonify([category.to_dict() for category in categories])
    except Exception as e:
        return error_response(e, "/api/categories")


@categories_bp.route("", methods=["POST"])
@authenticated
@require_permission(IdeaPermission.MANAGE_CATEGORIES)
async def save_category(auth_claims: dict[str, Any]):
    """
    Create or update a category.

    Request body should contain:
        - categoryName: Display name (required)
        - categoryDescription: Description (optional)
        - categoryId: Id of the category to update (omit to create)
    """
    error = _check_ideas_enabled()
    if error:
        return error

    user_id = get_user_id(auth_claims) or ""
    try:
        request_json = await request.get_json() or {}
        name = (request_json.get("categoryName") or "").strip()
        if not name:
            return jsonify({"error": "categoryName is required"}), 400

        store = current_app.config[CONFIG_CATEGORY_STORE]
        category_id = request_json.get("categoryId")
        category = await store.get_category(category_id) if category_id else None

        if category is None:
            category = Category(
                category_id=category_id or str(uuid.uuid4()),
                name=name,
                created_by_user_id=user_id,
            )
            status_code = 201
        else:
            category.name = name
            status_code = 200

        category.description = (request_json.get("categoryDescription") or "").strip()
        category.updated_by_user_id = user_id
        category.updated_date = utc_now()

        category = await store.upsert_category(category)
        logger.info(f"Saved category {category.category_id}")
        return jsonify(category.to_dict()), status_code
    except Exception as e:
        return error_response(e, "/api/categories")


@categories_bp.route("", methods=["DELETE"])
@authenticated
@require_permission(IdeaPermission.MANAGE_CATEGORIES)
async def delete_categories(auth_claims: dict[str, Any]):
    """
    Delete categories.

    Query parameters:
        - categoryIds: Semicolon-joined ids of the categories to delete
    """
    error = _check_ideas_enabled()
    if error:
        return error

    category_ids = split_semicolon_list(request.args.get("categoryIds"))
    if not category_ids:
        return jsonify({"error": "categoryIds is required"}), 400

    try:
        deleted = await current_app.config[CONFIG_CATEGORY_STORE].delete_categories(category_ids)
        logger.info(f"Deleted {deleted} categories")
        return jsonify({"deleted": deleted})
    except Exception as e:
        return error_response(e, "/api/categories")


@teams_bp.route("/<team_id>/categories", methods=["GET"])
@authenticated
async def get_team_categories(auth_claims: dict[str, Any], team_id: str):
    """Categories configured for a team; empty if none."""
    error = _check_ideas_enabled()
    if error:
        return error

    try:
        team_category = await current_app.config[CONFIG_TEAM_CATEGORY_STORE].get_team_category(team_id)
        if team_category is None:
            team_category = TeamCategory(team_id=team_id)
        return jsonify(team_category.to_dict())
    except Exception as e:
        return error_response(e, f"/api/teams/{team_id}/categories")


@teams_bp.route("/<team_id>/categories", methods=["PUT"])
@authenticated
@require_permission(IdeaPermission.CONFIGURE_TEAM_CATEGORIES)
async def save_team_categories(auth_claims: dict[str, Any], team_id: str):
    """
    Set the categories a team sees.

    Request body should contain:
        - categories: Category ids, as a list or semicolon-joined
    """
    error = _check_ideas_enabled()
    if error:
        return error

    user_id = get_user_id(auth_claims) or ""
    try:
        request_json = await request.get_json() or {}
        store = current_app.config[CONFIG_TEAM_CATEGORY_STORE]

        team_category = await store.get_team_category(team_id)
        if team_category is None:
            team_category = TeamCategory(team_id=team_id, created_by_user_id=user_id)

        team_category.categories = split_semicolon_list(request_json.get("categories"))
        team_category.updated_by_user_id = user_id
        team_category.updated_date = utc_now()

        team_category = await store.upsert_team_category(team_category)
        return jsonify(team_category.to_dict())
    except Exception as e:
        return error_response(e, f"/api/teams/{team_id}/categories")


@teams_bp.route("/<team_id>/tags", methods=["GET"])
@authenticated
async def get_team_tags(auth_claims: dict[str, Any], team_id: str):
    """Tags configured for a team; empty if none were set."""
    error = _check_ideas_enabled()
    if error:
        return error

    try:
        team_tag = await current_app.config[CONFIG_TEAM_TAG_STORE].get_team_tag(team_id)
        if team_tag is None:
            team_tag = TeamTag(team_id=team_id)
        return jsonify(team_tag.to_dict())
    except Exception as e:
        return error_response(e, f"/api/teams/{team_id}/tags")


@teams_bp.route("/<team_id>/tags", methods=["PUT"])
@authenticated
@require_permission(IdeaPermission.CONFIGURE_TEAM_TAGS)
async def save_team_tags(auth_claims: dict[str, Any], team_id: str):
    """
    Set the tags a team works with.

    Request body should contain:
        - tags: Up to 3 tags, as a list or semicolon-joined
    """
    error = _check_ideas_enabled()
    if error:
        return error

    user_id = get_user_id(auth_claims) or ""
    try:
        request_json = await request.get_json() or {}
        tags = validate_tags(split_semicolon_list(request_json.get("tags")))
        store = current_app.config[CONFIG_TEAM_TAG_STORE]

        team_tag = await store.get_team_tag(team_id)
        if team_tag is None:
            team_tag = TeamTag(
                team_id=team_id,
                created_by_name=auth_claims.get("name", ""),
                created_by_user_id=user_id,
            )

        team_tag.tags = tags
        team_tag.updated_by_user_id = user_id
        team_tag.updated_date = utc_now()

        team_tag = await store.upsert_team_tag(team_tag)
        logger.info(f"Team {team_id} tags set to {tags} by {user_id}")
        return jsonify(team_tag.to_dict())
    except IdeaValidationError as ve:
        return jsonify({"error": str(ve)}), 400
    except Exception as e:
        return error_response(e, f"/api/teams/{team_id}/tags")


@teams_bp.route("/<team_id>/ideas/authors", methods=["GET"])
@authenticated
async def list_team_authors(auth_claims: dict[str, Any], team_id: str):
    """Creators of approved ideas in the team's categories."""
    error = _check_ideas_enabled()
    if error:
        return error

    try:
        return jsonify(await current_app.config[CONFIG_IDEAS_SERVICE].list_team_authors(team_id))
    except Exception as e:
        return error_response(e, f"/api/teams/{team_id}/ideas/authors")


@teams_bp.route("/<team_id>/ideas/tags", methods=["GET"])
@authenticated
async def list_team_idea_tags(auth_claims: dict[str, Any], team_id: str):
    """Tags of approved ideas in the team's categories."""
    error = _check_ideas_enabled()
    if error:
        return error

    try:
        return jsonify(await current_app.config[CONFIG_IDEAS_SERVICE].list_team_idea_tags(team_id))
    except Exception as e:
        return error_response(e, f"/api/teams/{team_id}/ideas/tags")


@teams_bp.route("/<team_id>/preferences", methods=["GET"])
@authenticated
async def get_team_preferences(auth_claims: dict[str, Any], team_id: str):
    """Digest preferences of a team, or 404 if the team has none."""
    error = _check_ideas_enabled()
    if error:
        return error

    try:
        preference = await current_app.config[CONFIG_TEAM_PREFERENCE_STORE].get_team_preference(team_id)
        if preference is None:
            return jsonify({"error": "Team preference not found"}), 404
        return jsonify(preference.to_dict())
    except Exception as e:
        return error_response(e, f"/api/teams/{team_id}/preferences")


@teams_bp.route("/<team_id>/preferences", methods=["PUT"])
@authenticated
@require_permission(IdeaPermission.CONFIGURE_TEAM_PREFERENCES)
async def save_team_preferences(auth_claims: dict[str, Any], team_id: str):
    """
    Set a team's digest preferences.

    Request body should contain:
        - digestFrequency: weekly or monthly (required)
        - categories: Category ids, as a list or semicolon-joined
    """
    error = _check_ideas_enabled()
    if error:
        return error

    try:
        request_json = await request.get_json() or {}
        try:
            frequency = DigestFrequency(str(request_json.get("digestFrequency", "")).lower())
        except ValueError:
            return jsonify({"error": "digestFrequency must be weekly or monthly"}), 400

        preference = TeamPreference(
            team_id=team_id,
            digest_frequency=frequency,
            categories=split_semicolon_list(request_json.get("categories")),
            updated_by_object_id=get_user_id(auth_claims) or "",
        )
        preference = await current_app.config[CONFIG_TEAM_PREFERENCE_STORE].upsert_team_preference(preference)
        return jsonify(preference.to_dict())
    except Exception as e:
        return error_response(e, f"/api/teams/{team_id}/preferences")


@teams_bp.route("/<team_id>/ideas", methods=["GET"])
@authenticated
async def list_team_ideas(auth_claims: dict[str, Any], team_id: str):
    """
    Approved ideas in the team's configured categories.

    Query parameters:
        - q: Search text
        - sortBy: newest or popular (default: newest)
        - page, pageSize: Paging (pageSize max 100)
    """
    error = _check_ideas_enabled()
    if error:
        return error

    try:
        page = max(1, int(request.args.get("page", 1)))
        page_size = min(100, max(1, int(request.args.get("pageSize", 20))))
        result = await current_app.config[CONFIG_IDEAS_SERVICE].list_team_ideas(
            team_id,
            search_text=request.args.get("q"),
            sort_by=request.args.get("sortBy", SORT_NEWEST),
            page=page,
            page_size=page_size,
        )
        return jsonify(result.to_dict())
    except ValueError as ve:
        return jsonify({"error": str(ve)}), 400
    except Exception as e:
        return error_response(e, f"/api/teams/{team_id}/ideas")


@digest_bp.route("/<frequency>", methods=["POST"])
@authenticated
@require_permission(IdeaPermission.TRIGGER_DIGEST)
async def trigger_digest(auth_claims: dict[str, Any], frequency: str):
    """Run the weekly or monthly digest job now."""
    error = _check_ideas_enabled()
    if error:
        return error

    try:
        digest_frequency = DigestFrequency(frequency.lower())
    except ValueError:
        return jsonify({"error": "Frequency must be weekly or monthly"}), 400

    scheduler = current_app.config.get(CONFIG_DIGEST_SCHEDULER)
    if not scheduler:
        return jsonify({"error": "Digest scheduler not configured"}), 500

    try:
        results = await scheduler.trigger(digest_frequency)
        return jsonify(results)
    except Exception as e:
        return error_response(e, f"/api/digest/{frequency}")
