"""
Feedback service layer.

CommentService and RatingService hold the business rules (validation,
pagination, depth limits, moderation transitions, aggregation) and delegate
persistence to a StorageBackend, normally a FailoverBackend.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Union

import structlog

from ..storage.backend import StorageBackend
from .comment import Comment, CommentPage
from .cursor import decode_cursor, encode_cursor
from .enums import (
    STATUS_TRANSITIONS,
    CommentKind,
    CommentStatus,
    ListInclude,
    ListOrder,
    RatingDimension,
)
from .errors import (
    CommentNotFoundError,
    InvalidParentError,
    InvalidTransitionError,
    MaxDepthExceededError,
    ValidationError,
)
from .primitives import AgentIdentity, AgentRef, generate_ulid, utc_now
from .rating import SCORE_MAX, SCORE_MIN, Rating, RatingsSummary, RatingUpsertResult

logger = structlog.get_logger()

DEFAULT_LIMIT = 50
MAX_LIMIT = 100
DEFAULT_MAX_DEPTH = 5

Identity = Union[AgentIdentity, AgentRef]


def _as_ref(identity: Identity) -> AgentRef:
    if isinstance(identity, AgentIdentity):
        return AgentRef.from_identity(identity)
    return identity


class CommentService:
    """Comment store: creation, parent validation, pagination, moderation."""

    def __init__(
        self,
        backend: StorageBackend,
        max_depth: int = DEFAULT_MAX_DEPTH,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ):
        self.backend = backend
        self.max_depth = max_depth
        self.default_limit = default_limit
        self.max_limit = max_limit

    def create(
        self,
        artifact_id: str,
        parent_id: Optional[str],
        kind: Union[CommentKind, str],
        raw_md: str,
        body_md: str,
        body_text: Optional[str],
        author: Identity,
    ) -> Comment:
        """Create a comment.

        A non-null parent_id must already have been checked with
        assert_valid_parent / assert_can_reply; it is not re-validated here.
        """
        errors: List[str] = []
        if not artifact_id or not artifact_id.strip():
            errors.append("artifact_id is required")
        try:
            kind = CommentKind(kind)
        except ValueError:
            errors.append("kind is required (review|question|issue|improvement)")
        if not body_md or not body_md.strip():
            errors.append("body must be >= 1 char")
        if errors:
            raise ValidationError("Validation failed", errors)

        comment = Comment(
            id=generate_ulid(),
            artifact_id=artifact_id,
            parent_id=parent_id,
            kind=kind,
            raw_md=raw_md,
            body_md=body_md,
            body_text=body_text,
            author=_as_ref(author),
            status=CommentStatus.VISIBLE,
            created_at=utc_now(),
        )
        stored = self.backend.insert_comment(comment)
        logger.info(
            "comment_created",
            comment_id=stored.id,
            artifact_id=artifact_id,
            parent_id=parent_id,
            author_id=stored.author.agent_id,
        )
        return stored

    def get(self, comment_id: str) -> Comment:
        comment = self.backend.get_comment(comment_id)
        if comment is None:
            raise CommentNotFoundError(comment_id)
        return comment

    def _get_parent(self, artifact_id: str, parent_id: str) -> Optional[Comment]:
        parent = self.backend.get_comment(parent_id)
        if parent is None or parent.artifact_id != artifact_id:
            return None
        return parent

    def assert_valid_parent(self, artifact_id: str, parent_id: str) -> bool:
        """True when parent_id names a comment on the same artifact."""
        return self._get_parent(artifact_id, parent_id) is not None

    def depth_of(self, comment: Comment) -> int:
        """Nesting depth of ``comment``; top-level comments are at depth 1.

        The walk stops once the depth passes max_depth, on a missing ancestor,
        or on a cycle.
        """
        depth = 1
        seen = {comment.id}
        current = comment
        while current.parent_id is not None and depth <= self.max_depth:
            parent = self.backend.get_comment(current.parent_id)
            if parent is None or parent.id in seen:
                break
            seen.add(parent.id)
            depth += 1
            current = parent
        return depth

    def assert_can_reply(self, artifact_id: str, parent_id: str) -> Comment:
        """Return the parent if a reply to it is allowed, else raise.

        Replying to a comment at depth max_depth - 1 is allowed; at max_depth
        it is rejected. Removed comments take no new replies; hidden ones do.
        """
        parent = self._get_parent(artifact_id, parent_id)
        if parent is None:
            raise InvalidParentError(artifact_id, parent_id)
        if parent.status == CommentStatus.REMOVED:
            raise InvalidParentError(
                artifact_id, parent_id, f"parent_id '{parent_id}' has been removed"
            )
        if self.depth_of(parent) >= self.max_depth:
            raise MaxDepthExceededError(parent_id, self.max_depth)
        return parent

    def list(
        self,
        artifact_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        order: Union[ListOrder, str] = ListOrder.ASC,
        include: Union[ListInclude, str] = ListInclude.ALL,
    ) -> CommentPage:
        """Return one page of visible comments ordered by (created_at, id).

        An undecodable cursor starts from the beginning.
        """
        limit = self.default_limit if limit is None else limit
        limit = min(self.max_limit, max(1, int(limit)))
        order = ListOrder(order)
        include = ListInclude(include)
        after = decode_cursor(cursor)

        rows = self.backend.list_comments(
            artifact_id, limit + 1, after=after, order=order, include=include
        )
        has_more = len(rows) > limit
        items = rows[:limit]
        next_cursor = None
        if has_more and items:
            last = items[-1]
            next_cursor = encode_cursor(last.created_at, last.id)

        return CommentPage(items=items, next_cursor=next_cursor, updated_at=utc_now())

    def list_thread(self, artifact_id: str) -> List[Comment]:
        """Every comment on the artifact in any status, for thread rendering."""
        return self.backend.list_artifact_comments(artifact_id)

    def set_status(self, comment_id: str, status: Union[CommentStatus, str]) -> Comment:
        """Apply a moderation transition. Re-applying the current status is a no-op."""
        target = CommentStatus(status)
        current = self.get(comment_id)
        if current.status == target:
            return current
        if target not in STATUS_TRANSITIONS[current.status]:
            raise InvalidTransitionError(comment_id, current.status.value, target.value)

        updated = self.backend.update_comment_status(
            comment_id, current.status, target, utc_now()
        )
        if updated is None:
            # Lost a race with another transition
            latest = self.get(comment_id)
            raise InvalidTransitionError(comment_id, latest.status.value, target.value)

        logger.info(
            "comment_status_changed",
            comment_id=comment_id,
            before=current.status.value,
            after=target.value,
        )
        return updated

    def upvote(self, comment_id: str) -> int:
        count = self.backend.increment_comment_counter(comment_id, "upvotes")
        if count is None:
            raise CommentNotFoundError(comment_id)
        return count

    def flag(self, comment_id: str) -> int:
        count = self.backend.increment_comment_counter(comment_id, "flags")
        if count is None:
            raise CommentNotFoundError(comment_id)
        logger.info("comment_flagged", comment_id=comment_id, flags=count)
        return count


def _validate_score(value, field: str, errors: List[str]) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        errors.append(f"{field} is required")
        return None
    if isinstance(value, float) and not value.is_integer():
        errors.append(f"{field} must be a whole number")
        return None
    if not SCORE_MIN <= value <= SCORE_MAX:
        errors.append(f"{field} must be between {SCORE_MIN} and {SCORE_MAX}")
        return None
    return int(value)


def normalize_dims(dims: Optional[Mapping[str, object]], errors: List[str]) -> Dict[str, int]:
    """Keep known dimensions that were supplied; report bad keys and values."""
    known = {d.value for d in RatingDimension}
    normalized: Dict[str, int] = {}
    for key, value in (dims or {}).items():
        if key not in known:
            errors.append(f"dims.{key} is not a known dimension")
            continue
        if value is None:
            continue
        score = _validate_score(value, f"dims.{key}", errors)
        if score is not None:
            normalized[key] = score
    return normalized


def summarize(artifact_id: str, ratings: Iterable[Rating]) -> RatingsSummary:
    """Aggregate ratings: mean score, and per-dimension means over the raters
    that supplied each dimension."""
    ratings = list(ratings)
    count = len(ratings)
    avg = sum(r.score for r in ratings) / count if count else None

    dims_avg: Dict[str, float] = {}
    for dimension in RatingDimension:
        values = [
            r.dims[dimension.value]
            for r in ratings
            if isinstance(r.dims.get(dimension.value), (int, float))
            and not isinstance(r.dims.get(dimension.value), bool)
        ]
        if values:
            dims_avg[dimension.value] = sum(values) / len(values)

    timestamps: List[datetime] = [r.updated_at or r.created_at for r in ratings]
    updated_at = max(timestamps) if timestamps else utc_now()

    return RatingsSummary(
        artifact_id=artifact_id,
        count=count,
        avg=avg,
        dims_avg=dims_avg,
        updated_at=updated_at,
    )


class RatingService:
    """Rating store: one rating per (artifact, rater), plus summaries."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    def upsert(
        self,
        artifact_id: str,
        rater: Identity,
        score: int,
        dims: Optional[Mapping[str, object]],
        raw_md: str,
        notes_md: Optional[str] = None,
    ) -> RatingUpsertResult:
        """Insert the rater's rating or update their existing one."""
        errors: List[str] = []
        if not artifact_id or not artifact_id.strip():
            errors.append("artifact_id is required")
        normalized_score = _validate_score(score, "score", errors)
        normalized_dims = normalize_dims(dims, errors)
        if raw_md is None:
            errors.append("raw_md is required")
        if errors:
            raise ValidationError("Validation failed", errors)

        now = utc_now()
        rating = Rating(
            id=generate_ulid(),
            artifact_id=artifact_id,
            rater=_as_ref(rater),
            score=normalized_score,
            dims=normalized_dims,
            notes_md=notes_md,
            raw_md=raw_md,
            created_at=now,
            updated_at=now,
        )
        result = self.backend.upsert_rating(rating)
        logger.info(
            "rating_upserted",
            rating_id=result.rating.id,
            artifact_id=artifact_id,
            rater_id=rating.rater.agent_id,
            created=result.created,
        )
        return result

    def summary(self, artifact_id: str) -> RatingsSummary:
        return summarize(artifact_id, self.backend.list_ratings(artifact_id))
