# oral_exam/services/supa_auth.py
"""
Supabase access-token verification for learner requests.

Only signed-in learners get through: the project's anon key is itself a
valid HS256 JWT, so tokens without a subject or with the anon role are refused.
"""
import logging
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from oral_exam.config import settings

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "
REJECTED_ROLES = frozenset({"anon"})


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise ValueError("missing Authorization header")
    if not authorization.lower().startswith(BEARER_PREFIX):
        raise ValueError("Authorization header must be a Bearer token")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise ValueError("empty bearer token")
    return token


def decode_access_token(token: str, secret: str) -> Dict[str, Any]:
    try:
        # Supabase sets aud="authenticated"; the role claim is checked instead
        return jwt.decode(token, secret, algorithms=["HS256"], options={"verify_aud": False})
    except ExpiredSignatureError as e:
        raise ValueError("token expired") from e
    except JWTError as e:
        logger.warning("[AUTH] token rejected: %s", e)
        raise ValueError("invalid token") from e


async def verify_bearer(authorization: Optional[str]) -> Dict[str, Optional[str]]:
    """
    Returns {"user_id", "email"} for a signed-in learner.

    Raises:
        ValueError: missing/malformed header, bad signature, expired or anonymous token
    """
    if not settings.supabase_jwt_secret:
        raise ValueError("SUPABASE_JWT_SECRET is not configured")

    claims = decode_access_token(_bearer_token(authorization), settings.supabase_jwt_secret)

    if claims.get("role") in REJECTED_ROLES or not claims.get("sub"):
        raise ValueError("anonymous token")

    return {"user_id": claims["sub"], "email": claims.get("email")}
