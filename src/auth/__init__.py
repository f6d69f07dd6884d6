"""
Authentication Module

Supabase JWT auth for the check endpoint:
- JWTs are validated against the Supabase JWT secret (or JWKS)
- The "sub" claim is the requester id handed to the orchestrator
- AUTH_ENABLED=false substitutes a fixed development user

Usage:
    @router.post("/checks/run")
    async def run(requester_id: UUID = Depends(get_requester_id)):
        ...
"""

from .config import AuthConfig, get_auth_config
from .jwt import verify_supabase_token, JWTError
from .dependencies import get_requester_id

__all__ = [
    "AuthConfig",
    "get_auth_config",
    "verify_supabase_token",
    "JWTError",
    "get_requester_id",
]
