"""
Access control for the Submit Idea module.

Every signed-in user may submit and edit their own ideas, vote, pick
the digest settings of a team and set the tags a team works with.
Curators may additionally approve or reject ideas, maintain categories,
assign categories to teams, run the digest on demand and reconcile vote
counts.
"""

import logging
from enum import Enum
from functools import wraps
from typing import Any, Callable

from quart import jsonify

logger = logging.getLogger(__name__)


class IdeaRole(str, Enum):
    USER = "user"
    CURATOR = "curator"


class IdeaPermission(str, Enum):
    SUBMIT_IDEA = "submit_idea"
    EDIT_OWN_IDEAS = "edit_own_ideas"
    VOTE = "vote"
    CONFIGURE_TEAM_PREFERENCES = "configure_team_preferences"
    CONFIGURE_TEAM_TAGS = "configure_team_tags"

    # Curators only
    CHANGE_STATUS = "change_status"
    MANAGE_CATEGORIES = "manage_categories"
    CONFIGURE_TEAM_CATEGORIES = "configure_team_categories"
    TRIGGER_DIGEST = "trigger_digest"
    RECONCILE_VOTES = "reconcile_votes"


_MEMBER_PERMISSIONS = frozenset({
    IdeaPermission.SUBMIT_IDEA,
    IdeaPermission.EDIT_OWN_IDEAS,
    IdeaPermission.VOTE,
    IdeaPermission.CONFIGURE_TEAM_PREFERENCES,
    IdeaPermission.CONFIGURE_TEAM_TAGS,
})

_CURATOR_PERMISSIONS = _MEMBER_PERMISSIONS | {
    IdeaPermission.CHANGE_STATUS,
    IdeaPermission.MANAGE_CATEGORIES,
    IdeaPermission.CONFIGURE_TEAM_CATEGORIES,
    IdeaPermission.TRIGGER_DIGEST,
    IdeaPermission.RECONCILE_VOTES,
}

ROLE_PERMISSIONS: dict[IdeaRole, frozenset[IdeaPermission]] = {
    IdeaRole.USER: _MEMBER_PERMISSIONS,
    IdeaRole.CURATOR: _CURATOR_PERMISSIONS,
}


def get_user_id(auth_claims: dict[str, Any]) -> str | None:
    """Object id of the caller, falling back to the token subject."""
    return auth_claims.get("oid") or auth_claims.get("sub")


def get_user_role(auth_claims: dict[str, Any]) -> IdeaRole:
    """
    Resolve the caller's role.

    An explicit ``ideas_role`` claim wins. Otherwise any app role whose
    name mentions "curator" (for example ``Ideas.Curator``) grants the
    curator role. Everyone else is a plain user.
    """
    explicit = str(auth_claims.get("ideas_role", "")).lower()
    if explicit in {role.value for role in IdeaRole}:
        return IdeaRole(explicit)

    app_roles = auth_claims.get("roles") or []
    if isinstance(app_roles, list) and any("curator" in str(name).lower() for name in app_roles):
        return IdeaRole.CURATOR

    return IdeaRole.USER


def has_permission(auth_claims: dict[str, Any], permission: IdeaPermission) -> bool:
    return permission in ROLE_PERMISSIONS[get_user_role(auth_claims)]


def can_edit_idea(auth_claims: dict[str, Any], idea_owner_id: str) -> bool:
    """Edits are reserved to the idea's creator, whatever their role."""
    return (
        get_user_id(auth_claims) == idea_owner_id
        and has_permission(auth_claims, IdeaPermission.EDIT_OWN_IDEAS)
    )


def require_permission(permission: IdeaPermission) -> Callable:
    """
    Reject the request with 403 unless the caller holds ``permission``.

    Stack it under ``@authenticated``, which supplies the claims as the
    route's first argument.
    """
    def decorator(route_fn: Callable) -> Callable:
        @wraps(route_fn)
        async def guarded(auth_claims: dict[str, Any], *args, **kwargs):
            if has_permission(auth_claims, permission):
                return await route_fn(auth_claims, *args, **kwargs)

            logger.warning(
                f"User {get_user_id(auth_claims)} with role "
                f"{get_user_role(auth_claims).value} lacks {permission.value}"
            )
            return jsonify({
                "error": "Permission denied",
                "required_permission": permission.value,
            }), 403
        return guarded
    return decorator


def get_role_info(auth_claims: dict[str, Any]) -> dict[str, Any]:
    """Role summary the client uses to show or hide curator controls."""
    role = get_user_role(auth_claims)
    return {
        "role": role.value,
        "permissions": sorted(permission.value for permission in ROLE_PERMISSIONS[role]),
        "isCurator": role == IdeaRole.CURATOR,
    }
