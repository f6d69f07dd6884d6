"""
Repository Layer - Read Access to Projects and Keywords

Projects and keywords are created and destroyed by the CRUD layer; the
visibility pipeline only reads them. Everything returned here is a plain,
immutable snapshot so callers never hold a live session.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from .models import Project, Keyword
from .session import get_db_context

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectInfo:
    """Snapshot of a project row."""
    id: UUID
    owner_user_id: UUID
    name: str
    domain: str
    brand_name: Optional[str] = None


@dataclass(frozen=True)
class KeywordInfo:
    """Snapshot of a keyword row."""
    id: UUID
    project_id: UUID
    owner_user_id: UUID
    text: str


def _project_info(project: Project) -> ProjectInfo:
    return ProjectInfo(
        id=project.id,
        owner_user_id=project.owner_user_id,
        name=project.name,
        domain=project.domain,
        brand_name=project.brand_name,
    )


def _keyword_info(keyword: Keyword) -> KeywordInfo:
    return KeywordInfo(
        id=keyword.id,
        project_id=keyword.project_id,
        owner_user_id=keyword.owner_user_id,
        text=keyword.text,
    )


class ProjectRepository:
    """
    Read-only access to project and keyword records.

    Usage:
        repo = ProjectRepository()
        keyword = repo.get_keyword(keyword_id)
        project = repo.get_project(keyword.project_id)
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    def get_project(self, project_id: UUID) -> Optional[ProjectInfo]:
        """Get a project by id, or None."""
        with get_db_context(self.session_factory) as db:
            project = db.get(Project, project_id)
            return _project_info(project) if project else None

    def get_keyword(self, keyword_id: UUID) -> Optional[KeywordInfo]:
        """Get a keyword by id, or None."""
        with get_db_context(self.session_factory) as db:
            keyword = db.get(Keyword, keyword_id)
            return _keyword_info(keyword) if keyword else None

    def get_keywords(self, keyword_ids: Iterable[UUID]) -> Dict[UUID, KeywordInfo]:
        """Get several keywords at once, keyed by id. Missing ids are absent."""
        ids = set(keyword_ids)
        if not ids:
            return {}
        with get_db_context(self.session_factory) as db:
            rows = db.scalars(select(Keyword).where(Keyword.id.in_(ids))).all()
            return {row.id: _keyword_info(row) for row in rows}

    def count_keywords(self, project_id: UUID) -> int:
        """Number of keywords tracked under a project."""
        with get_db_context(self.session_factory) as db:
            return db.scalar(
                select(func.count()).select_from(Keyword).where(Keyword.project_id == project_id)
            ) or 0
