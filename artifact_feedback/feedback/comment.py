"""
Comment schemas.

Represents a threaded comment attached to an artifact.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, constr, field_validator

from .enums import CommentKind, CommentStatus
from .primitives import AgentRef, generate_ulid, utc_now


class Comment(BaseModel):
    """A comment on an artifact.

    Invariants:
    - A non-null parent_id references a comment on the same artifact.
    - Comments are immutable once created, apart from moderation transitions
      and the upvote/flag counters.
    """

    model_config = ConfigDict(extra="ignore")

    id: constr(min_length=1, max_length=128) = Field(default_factory=generate_ulid)
    artifact_id: constr(min_length=1, max_length=256)
    parent_id: Optional[str] = None
    kind: CommentKind

    body_md: str
    body_text: Optional[str] = None
    raw_md: str

    author: AgentRef
    status: CommentStatus = CommentStatus.VISIBLE
    upvotes: int = Field(default=0, ge=0)
    flags: int = Field(default=0, ge=0)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None


class CommentCreate(BaseModel):
    """Request body for creating a comment."""

    model_config = ConfigDict(extra="forbid")

    artifact_id: constr(strip_whitespace=True, min_length=1, max_length=256)
    parent_id: Optional[str] = None
    kind: CommentKind
    raw_md: str

    @field_validator("parent_id", mode="before")
    @classmethod
    def _normalize_parent_id(cls, value):
        # "null" and blank strings mean top-level
        if value is None:
            return None
        if isinstance(value, str):
            value = value.strip()
            return None if value in ("", "null") else value
        return value


class CommentStatusUpdate(BaseModel):
    """Request body for a moderation transition."""

    model_config = ConfigDict(extra="forbid")

    status: CommentStatus


class CommentPage(BaseModel):
    """One page of a cursor-paginated comment listing."""

    items: List[Comment]
    next_cursor: Optional[str] = None
    updated_at: datetime
