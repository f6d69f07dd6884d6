"""
SQLAlchemy Models for the AI Visibility Tracker

Design Principles:
1. Projects and keywords are owned by the CRUD layer - this pipeline only reads them
2. Observations are an append-only log (no updates, no deletes)
3. Denormalize project/owner onto observations (fast project-level aggregation)
4. Enforce observation invariants in the schema as well as in code

Portable types (Uuid, JSON) so the same schema runs on PostgreSQL and SQLite.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Text,
    ForeignKey, Index, CheckConstraint, JSON, Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere
JSONVariant = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# =============================================================================
# CORE TABLES (written by the project/keyword CRUD layer)
# =============================================================================

class Project(Base):
    """A tracked brand: one domain, one owner."""
    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid4)
    owner_user_id = Column(Uuid, nullable=False)  # Supabase auth.users.id

    name = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=False)
    brand_name = Column(String(255))

    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    keywords = relationship("Keyword", back_populates="project", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("length(domain) > 0", name="ck_project_domain_not_empty"),
        Index("idx_project_owner", "owner_user_id"),
    )


class Keyword(Base):
    """Free-text query tracked for a project. project_id never changes."""
    __tablename__ = "keywords"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False)
    owner_user_id = Column(Uuid, nullable=False)

    text = Column(String(500), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    project = relationship("Project", back_populates="keywords")

    __table_args__ = (
        Index("idx_keyword_project", "project_id"),
        Index("idx_keyword_owner", "owner_user_id"),
    )


# =============================================================================
# OBSERVATIONS - append-only log of engine checks
# =============================================================================

class Observation(Base):
    """
    One engine's answer for one keyword at one instant.

    All observations of a run share keyword_id and timestamp.
    """
    __tablename__ = "observations"

    id = Column(Uuid, primary_key=True, default=uuid4)
    keyword_id = Column(Uuid, ForeignKey("keywords.id"), nullable=False)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False)  # Copy of keyword.project_id
    owner_user_id = Column(Uuid, nullable=False)  # Copy of keyword.owner_user_id

    # Engine registry id (e.g. "perplexity"), not an enum: engines are pluggable
    engine = Column(String(64), nullable=False)

    # Visibility
    presence = Column(Boolean, nullable=False)
    position = Column(Integer)  # 1-based, set iff presence
    answer_snippet = Column(Text, nullable=False, default="")
    citations_count = Column(Integer, nullable=False, default=0)
    observed_urls = Column(JSONVariant, nullable=False, default=list)

    # Synthesized after the engine failed twice
    is_degraded = Column(Boolean, nullable=False, default=False)

    timestamp = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "(presence AND position IS NOT NULL) OR (NOT presence AND position IS NULL)",
            name="ck_observation_position_iff_presence",
        ),
        CheckConstraint("position IS NULL OR position >= 1", name="ck_observation_position_min"),
        CheckConstraint("citations_count >= 0", name="ck_observation_citations_min"),
        CheckConstraint(
            "presence OR citations_count = 0",
            name="ck_observation_citations_when_absent",
        ),
        Index("idx_observation_project_time", "project_id", "timestamp"),
        Index("idx_observation_keyword_time", "keyword_id", "timestamp"),
        Index("idx_observation_project_presence", "project_id", "presence", "timestamp"),
    )

    def __repr__(self):
        return f"<Observation {self.engine} keyword={self.keyword_id} presence={self.presence}>"
