"""
Storage abstraction for comments and ratings.

Two implementations hold the same logical rows:

* PrimaryBackend: the relational store (SQLAlchemy).
* FileBackend: two local JSON array files, used when the primary's tables
  do not exist.

FailoverBackend composes them. Callers depend on StorageBackend only.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from ..feedback.comment import Comment
from ..feedback.cursor import CursorPosition
from ..feedback.enums import CommentStatus, ListInclude, ListOrder
from ..feedback.rating import Rating, RatingUpsertResult

COUNTER_FIELDS = ("upvotes", "flags")


def sort_key(comment: Comment):
    """Total order used by every backend: (created_at, id)."""
    return (comment.created_at, comment.id)


class StorageBackend(ABC):
    """Persistence contract shared by the primary and fallback stores.

    Implementations raise BackendUnavailable only when the underlying
    relation does not exist, and DatabaseError for any other failure.
    """

    name: str = "backend"

    # -- comments ---------------------------------------------------------

    @abstractmethod
    def insert_comment(self, comment: Comment) -> Comment:
        """Persist a new comment and return it as stored."""

    @abstractmethod
    def get_comment(self, comment_id: str) -> Optional[Comment]:
        """Return a comment by id in any status, or None."""

    @abstractmethod
    def list_comments(
        self,
        artifact_id: str,
        limit: int,
        after: Optional[CursorPosition] = None,
        order: ListOrder = ListOrder.ASC,
        include: ListInclude = ListInclude.ALL,
    ) -> List[Comment]:
        """Return up to ``limit`` visible comments ordered by (created_at, id).

        With ``after`` set, only rows strictly past that position in the
        requested order are returned.
        """

    @abstractmethod
    def list_artifact_comments(self, artifact_id: str) -> List[Comment]:
        """Return every comment on the artifact in any status, oldest first."""

    @abstractmethod
    def update_comment_status(
        self,
        comment_id: str,
        expected: CommentStatus,
        status: CommentStatus,
        updated_at: datetime,
    ) -> Optional[Comment]:
        """Move a comment from ``expected`` to ``status``.

        Returns None when the comment is missing or no longer in ``expected``.
        """

    @abstractmethod
    def increment_comment_counter(self, comment_id: str, counter: str) -> Optional[int]:
        """Atomically add one to ``upvotes`` or ``flags``; None if the comment is missing."""

    # -- ratings ----------------------------------------------------------

    @abstractmethod
    def upsert_rating(self, rating: Rating) -> RatingUpsertResult:
        """Insert or update the rating keyed on (artifact_id, rater.agent_id).

        On update the stored id and created_at are kept.
        """

    @abstractmethod
    def list_ratings(self, artifact_id: str) -> List[Rating]:
        """Return every rating of the artifact."""

    def close(self) -> None:
        """Release any resources held by the backend.

        Default is a no-op so callers can always call close() safely.
        """
