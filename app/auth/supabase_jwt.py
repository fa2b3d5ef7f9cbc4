"""
Supabase JWT verification.

The frontend signs users in with Supabase and sends the access token as
`Authorization: Bearer <jwt>` (or in the `auth_token` cookie). Tokens are
HS256-signed with the project's JWT secret.

Configuration:
- SUPABASE_JWT_SECRET (required): the project's JWT secret.
- SUPABASE_JWT_AUDIENCE (optional): expected `aud` claim, default "authenticated".
"""

import logging
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.exceptions import AuthenticationError, ErrorCode
from src.config import get_settings
from src.types.generation import Principal
from src.utils.logging import set_request_context

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def verify_supabase_token(token: str, secret: str, audience: Optional[str] = "authenticated") -> Dict[str, Any]:
    """
    Verify a Supabase access token and return its claims.

    Raises jwt.PyJWTError subclasses on invalid tokens.
    """
    options = {"verify_aud": audience is not None, "require": ["sub", "exp"]}
    kwargs: Dict[str, Any] = {"options": options}
    if audience is not None:
        kwargs["audience"] = audience
    return jwt.decode(token, secret, algorithms=["HS256"], **kwargs)


def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(get_settings().auth.auth_cookie_name)


def _profile_from_claims(claims: Dict[str, Any]) -> Dict[str, Optional[str]]:
    metadata = claims.get("user_metadata") or {}
    return {
        "email": claims.get("email"),
        "name": metadata.get("full_name") or metadata.get("name"),
        "picture": metadata.get("avatar_url") or metadata.get("picture"),
    }


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    """
    Resolve the caller to a Principal.

    The user row (and with it the tier) is read from the user store on every
    request.

    Raises:
        AuthenticationError: Missing, invalid or expired token.
    """
    token = _extract_token(request, credentials)
    if not token:
        raise AuthenticationError("Authentication required")

    auth_settings = get_settings().auth
    if not auth_settings.supabase_jwt_secret:
        logger.error("SUPABASE_JWT_SECRET is not configured; rejecting authenticated request")
        raise AuthenticationError("Authentication is not available")

    try:
        claims = verify_supabase_token(
            token,
            auth_settings.supabase_jwt_secret.get_secret_value(),
            auth_settings.supabase_jwt_audience or None,
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired", error_code=ErrorCode.EXPIRED_TOKEN) from None
    except jwt.PyJWTError as e:
        logger.info(f"Rejected token: {type(e).__name__}")
        raise AuthenticationError("Invalid token", error_code=ErrorCode.INVALID_TOKEN) from None

    user_store = request.app.state.user_store
    principal = await user_store.get_or_create_by_supabase_id(str(claims["sub"]), **_profile_from_claims(claims))
    request.state.user_id = principal.id
    request.state.tier = principal.tier.value
    set_request_context(user_id=principal.id, tier=principal.tier.value)
    return principal
