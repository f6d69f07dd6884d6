"""
Visibility Tracker Database Layer

Usage:
    from src.database import (
        # Session management
        init_db, get_db_context,

        # Models
        Project, Keyword, Observation,

        # Read access (projects/keywords are owned by the CRUD layer)
        ProjectRepository, ProjectInfo, KeywordInfo,
    )

    # Initialize database
    init_db()

    repo = ProjectRepository()
    keyword = repo.get_keyword(keyword_id)
"""

# Models
from .models import (
    Base,
    Project,
    Keyword,
    Observation,
)

# Session management
from .session import (
    get_database_url,
    create_db_engine,
    get_engine,
    make_session_factory,
    get_session_factory,
    get_db_context,
    init_db,
    check_db_connection,
)

# Repository
from .repository import (
    ProjectRepository,
    ProjectInfo,
    KeywordInfo,
)

__all__ = [
    # Models
    "Base",
    "Project",
    "Keyword",
    "Observation",
    # Session
    "get_database_url",
    "create_db_engine",
    "get_engine",
    "make_session_factory",
    "get_session_factory",
    "get_db_context",
    "init_db",
    "check_db_connection",
    # Repository
    "ProjectRepository",
    "ProjectInfo",
    "KeywordInfo",
]
