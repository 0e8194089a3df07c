from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar, cast

from quart import current_app, jsonify, request

from config import CONFIG_AUTH_CLIENT
from core.authentication import AuthError

_C = TypeVar("_C", bound=Callable[..., Any])


def authenticated(route_fn: _C) -> _C:
    """
    Decorator for routes that require a signed-in user. Unpacks Authorization header information into an auth_claims dictionary
    """

    @wraps(route_fn)
    async def auth_handler(*args, **kwargs):
        auth_helper = current_app.config[CONFIG_AUTH_CLIENT]
        try:
            auth_claims = await auth_helper.get_auth_claims_if_enabled(request.headers)
        except AuthError as e:
            return jsonify({"error": e.error}), e.status_code

        return await route_fn(auth_claims, *args, **kwargs)

    return cast(_C, auth_handler)
