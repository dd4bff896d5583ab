"""
SQLAlchemy models for the primary feedback store.

Author and rater identities are denormalized into columns; the store only
references agents, it does not own them.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .base import Base

comment_kind_enum = Enum(
    "review",
    "question",
    "issue",
    "improvement",
    name="artifact_comment_kind",
)

comment_status_enum = Enum(
    "visible",
    "hidden",
    "removed",
    name="artifact_comment_status",
)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ArtifactCommentModel(Base):
    """A threaded comment attached to an artifact."""

    __tablename__ = "artifact_comments"

    id = Column(String(128), primary_key=True)
    artifact_id = Column(String(256), nullable=False)
    parent_id = Column(String(128), nullable=True, index=True)
    kind = Column(comment_kind_enum, nullable=False)

    # Author (denormalized AgentIdentity)
    author_agent_id = Column(String(128), nullable=False, index=True)
    author_handle = Column(String(256), nullable=True)
    author_display_name = Column(String(256), nullable=True)

    # Content
    raw_md = Column(Text, nullable=False)
    body_md = Column(Text, nullable=False)
    body_text = Column(Text, nullable=True)

    # Moderation and interaction counters
    status = Column(comment_status_enum, nullable=False, default="visible")
    upvotes = Column(Integer, nullable=False, default=0)
    flags = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # Serves the (created_at, id) keyset scan per artifact
        Index(
            "ix_artifact_comments_artifact_created_id",
            "artifact_id",
            "created_at",
            "id",
        ),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to the Comment wire shape."""
        created_at = as_utc(self.created_at)
        updated_at = as_utc(self.updated_at)
        return {
            "id": self.id,
            "artifact_id": self.artifact_id,
            "parent_id": self.parent_id,
            "kind": self.kind,
            "raw_md": self.raw_md,
            "body_md": self.body_md,
            "body_text": self.body_text,
            "author": {
                "agent_id": self.author_agent_id,
                "handle": self.author_handle,
                "display_name": self.author_display_name,
            },
            "status": self.status,
            "upvotes": self.upvotes or 0,
            "flags": self.flags or 0,
            "created_at": created_at.isoformat() if created_at else None,
            "updated_at": updated_at.isoformat() if updated_at else None,
        }


class ArtifactRatingModel(Base):
    """One rater's rating of an artifact."""

    __tablename__ = "artifact_ratings"

    id = Column(String(128), primary_key=True)
    artifact_id = Column(String(256), nullable=False, index=True)

    # Rater (denormalized AgentIdentity)
    rater_agent_id = Column(String(128), nullable=False)
    rater_handle = Column(String(256), nullable=True)
    rater_display_name = Column(String(256), nullable=True)

    score = Column(Integer, nullable=False)
    dims = Column(JSON, nullable=False, default=dict)
    notes_md = Column(Text, nullable=True)
    raw_md = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "artifact_id",
            "rater_agent_id",
            name="uq_artifact_ratings_artifact_rater",
        ),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to the Rating wire shape."""
        created_at = as_utc(self.created_at)
        updated_at = as_utc(self.updated_at)
        return {
            "id": self.id,
            "artifact_id": self.artifact_id,
            "rater": {
                "agent_id": self.rater_agent_id,
                "handle": self.rater_handle,
                "display_name": self.rater_display_name,
            },
            "score": self.score,
            "dims": dict(self.dims or {}),
            "notes_md": self.notes_md,
            "raw_md": self.raw_md,
            "created_at": created_at.isoformat() if created_at else None,
            "updated_at": updated_at.isoformat() if updated_at else None,
        }
