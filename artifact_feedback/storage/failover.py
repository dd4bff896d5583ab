"""
Failover composition of two backends.

Every call goes to the primary first. Only a typed BackendUnavailable
(missing relation) reroutes the call to the fallback; any other error
propagates so reads and writes never split across diverging data sets.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

import structlog

from ..feedback.comment import Comment
from ..feedback.cursor import CursorPosition
from ..feedback.enums import CommentStatus, ListInclude, ListOrder
from ..feedback.errors import BackendUnavailable
from ..feedback.rating import Rating, RatingUpsertResult
from .backend import StorageBackend

logger = structlog.get_logger()


class FailoverBackend(StorageBackend):
    """Try ``primary``; fall back to ``fallback`` when its relation is missing."""

    name = "failover"

    def __init__(self, primary: StorageBackend, fallback: StorageBackend):
        self.primary = primary
        self.fallback = fallback

    def _call(self, operation: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return getattr(self.primary, operation)(*args, **kwargs)
        except BackendUnavailable as exc:
            logger.warning(
                "primary_backend_unavailable",
                operation=operation,
                relation=exc.relation,
                fallback=self.fallback.name,
            )
            return getattr(self.fallback, operation)(*args, **kwargs)

    def insert_comment(self, comment: Comment) -> Comment:
        return self._call("insert_comment", comment)

    def get_comment(self, comment_id: str) -> Optional[Comment]:
        return self._call("get_comment", comment_id)

    def list_comments(
        self,
        artifact_id: str,
        limit: int,
        after: Optional[CursorPosition] = None,
        order: ListOrder = ListOrder.ASC,
        include: ListInclude = ListInclude.ALL,
    ) -> List[Comment]:
        return self._call(
            "list_comments", artifact_id, limit, after=after, order=order, include=include
        )

    def list_artifact_comments(self, artifact_id: str) -> List[Comment]:
        return self._call("list_artifact_comments", artifact_id)

    def update_comment_status(
        self,
        comment_id: str,
        expected: CommentStatus,
        status: CommentStatus,
        updated_at: datetime,
    ) -> Optional[Comment]:
        return self._call("update_comment_status", comment_id, expected, status, updated_at)

    def increment_comment_counter(self, comment_id: str, counter: str) -> Optional[int]:
        return self._call("increment_comment_counter", comment_id, counter)

    def upsert_rating(self, rating: Rating) -> RatingUpsertResult:
        return self._call("upsert_rating", rating)

    def list_ratings(self, artifact_id: str) -> List[Rating]:
        return self._call("list_ratings", artifact_id)

    def close(self) -> None:
        self.primary.close()
        self.fallback.close()
