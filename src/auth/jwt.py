"""
Supabase access-token verification.

HS* tokens are checked against SUPABASE_JWT_SECRET; asymmetric tokens against
the project's published JWKS. The verified "sub" claim is the requester id.
"""

import logging
from functools import lru_cache
from typing import Any, Dict

import jwt
from jwt import PyJWKClient, PyJWTError

from src.auth.config import AuthConfig, get_auth_config

logger = logging.getLogger(__name__)

SYMMETRIC_PREFIX = "HS"


class JWTError(Exception):
    """The bearer token cannot be trusted."""


@lru_cache(maxsize=1)
def get_jwks_client(jwks_url: str) -> PyJWKClient:
    return PyJWKClient(jwks_url, cache_keys=True, lifespan=3600)


def get_verification_key(token: str, config: AuthConfig) -> Any:
    """Shared secret for HS* algorithms, the JWKS signing key otherwise."""
    if config.jwt_algorithm.startswith(SYMMETRIC_PREFIX):
        if not config.supabase_jwt_secret:
            raise JWTError("SUPABASE_JWT_SECRET not configured")
        return config.supabase_jwt_secret

    project_ref = config.supabase_project_ref
    if not project_ref:
        raise JWTError(f"SUPABASE_URL required to verify {config.jwt_algorithm} tokens")

    jwks_url = f"https://{project_ref}.supabase.co/auth/v1/.well-known/jwks.json"
    try:
        return get_jwks_client(jwks_url).get_signing_key_from_jwt(token).key
    except PyJWTError as e:
        logger.error(f"Could not load signing key from {jwks_url}: {e}")
        raise JWTError(f"Failed to fetch public key from Supabase: {e}")


def verify_supabase_token(token: str) -> Dict[str, Any]:
    """
    Decode a bearer token and return its claims.

    Raises:
        JWTError: Bad signature, audience or algorithm, expired, or no "sub"
    """
    config = get_auth_config()

    try:
        payload = jwt.decode(
            token,
            get_verification_key(token, config),
            algorithms=[config.jwt_algorithm],
            audience=config.jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        raise JWTError("Token has expired")
    except jwt.InvalidAudienceError:
        raise JWTError("Invalid token audience")
    except jwt.InvalidSignatureError:
        raise JWTError("Invalid token signature")
    except PyJWTError as e:
        raise JWTError(f"Token validation error: {e}")

    if not payload.get("sub"):
        raise JWTError("Token missing 'sub' claim (user ID)")
    return payload
