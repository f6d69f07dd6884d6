"""
FastAPI Authentication Dependencies

Resolves the authenticated caller for a request. The visibility core only
needs a trusted requester id; ownership checks happen in the orchestrator.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from src.auth.config import get_auth_config
from src.auth.jwt import verify_supabase_token, JWTError

logger = logging.getLogger(__name__)

# HTTP Bearer token extraction
security = HTTPBearer(auto_error=False)


async def get_requester_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> UUID:
    """
    Get the authenticated requester's user id.

    Raises:
        HTTPException 401: If not authenticated
    """
    config = get_auth_config()

    # If auth is disabled (local dev), every request comes from the dev user
    if not config.auth_enabled:
        return UUID(config.dev_user_id)

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = verify_supabase_token(credentials.credentials)
        return UUID(payload["sub"])
    except JWTError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token 'sub' claim is not a user id",
            headers={"WWW-Authenticate": "Bearer"},
        )
