# Authentication for the Submit Idea backend
# Validates bearer tokens issued for the Teams tab and bot

import logging
from typing import Any, Optional

import jwt

logger = logging.getLogger(__name__)

# Claims used by the development identity when authentication is disabled
ANONYMOUS_CLAIMS = {
    "oid": "00000000-0000-0000-0000-000000000000",
    "name": "Anonymous",
    "preferred_username": "anonymous@localhost",
    "roles": [],
}


class AuthError(Exception):
    """Raised when a request cannot be authenticated"""

    def __init__(self, error: str, status_code: int = 401):
        self.error = error
        self.status_code = status_code
        super().__init__(error)


class AuthenticationHelper:
    """
    Validates the Authorization bearer token and turns it into auth claims.

    Tokens are HS256 JWTs signed with a shared secret. When a tenant or
    client id is configured the issuer and audience are checked as well.
    """

    def __init__(
        self,
        enabled: bool = False,
        secret_key: Optional[str] = None,
        tenant_id: Optional[str] = None,
        client_id: Optional[str] = None,
    ):
        self.enabled = enabled
        self.secret_key = secret_key
        self.tenant_id = tenant_id
        self.client_id = client_id

        if enabled and not secret_key:
            raise ValueError("AUTH_SECRET_KEY is required when authentication is enabled")

    @property
    def issuer(self) -> Optional[str]:
        if not self.tenant_id:
            return None
        return f"https://login.microsoftonline.com/{self.tenant_id}/v2.0"

    @staticmethod
    def get_token_from_headers(headers: Any) -> str:
        """Extract the bearer token from the Authorization header"""
        auth_header = headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            raise AuthError("Missing or invalid Authorization header", 401)
        token = auth_header[len("Bearer "):].strip()
        if not token:
            raise AuthError("Missing bearer token", 401)
        return token

    def validate_token(self, token: str) -> dict[str, Any]:
        """Validate a JWT and return its payload"""
        options = {"verify_aud": self.client_id is not None}
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=["HS256"],
                audience=self.client_id,
                issuer=self.issuer,
                options=options,
            )
        except jwt.ExpiredSignatureError as e:
            logger.warning("Token expired")
            raise AuthError("Token expired", 401) from e
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            raise AuthError("Invalid token", 401) from e

    async def get_auth_claims_if_enabled(self, headers: Any) -> dict[str, Any]:
        """
        Claims of the calling user.

        Returns the anonymous development identity when authentication is
        disabled.
        """
        if not self.enabled:
            return dict(ANONYMOUS_CLAIMS)

        payload = self.validate_token(self.get_token_from_headers(headers))

        user_oid = payload.get("oid") or payload.get("sub")
        if not user_oid:
            raise AuthError("Token has no user id", 401)

        roles = payload.get("roles", [])
        return {
            "oid": user_oid,
            "name": payload.get("name", ""),
            "preferred_username": payload.get("preferred_username") or payload.get("upn", ""),
            "roles": roles if isinstance(roles, list) else [roles],
            "ideas_role": payload.get("ideas_role", ""),
        }
