"""
Authentication Configuration

Settings for Supabase JWT validation and auth behavior.
"""

import os
from typing import Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


class AuthConfig(BaseSettings):
    """Authentication configuration loaded from environment."""

    # Supabase Configuration
    supabase_url: str = ""
    supabase_jwt_secret: str = ""

    # JWT Settings
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"

    # Auth behavior
    auth_enabled: bool = True  # Set to False for local dev without auth
    dev_user_id: str = "00000000-0000-0000-0000-000000000001"  # Requester when auth is disabled

    class Config:
        env_prefix = ""
        extra = "ignore"

    @property
    def supabase_project_ref(self) -> Optional[str]:
        """Extract project reference from Supabase URL."""
        if not self.supabase_url:
            return None
        # https://abcdefg.supabase.co -> abcdefg
        ref = self.supabase_url.replace("https://", "").replace("http://", "").split(".")[0]
        return ref or None


@lru_cache()
def get_auth_config() -> AuthConfig:
    """Get cached auth configuration."""
    return AuthConfig(
        supabase_url=os.getenv("SUPABASE_URL", ""),
        supabase_jwt_secret=os.getenv("SUPABASE_JWT_SECRET", ""),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        jwt_audience=os.getenv("JWT_AUDIENCE", "authenticated"),
        auth_enabled=os.getenv("AUTH_ENABLED", "true").lower() == "true",
        dev_user_id=os.getenv("DEV_USER_ID", "00000000-0000-0000-0000-000000000001"),
    )
