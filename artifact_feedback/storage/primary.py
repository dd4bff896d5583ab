"""
Primary relational backend (SQLAlchemy).

Keyset pagination runs in SQL; the rating upsert is a single
INSERT .. ON CONFLICT DO UPDATE statement so concurrent first-time raters
converge on one row.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator, List, Optional

import structlog
from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..db.models import ArtifactCommentModel, ArtifactRatingModel
from ..feedback.comment import Comment
from ..feedback.cursor import CursorPosition
from ..feedback.enums import CommentStatus, ListInclude, ListOrder
from ..feedback.errors import BackendUnavailable, DatabaseError
from ..feedback.primitives import ensure_utc
from ..feedback.rating import Rating, RatingUpsertResult
from .backend import COUNTER_FIELDS, StorageBackend

logger = structlog.get_logger()

# PostgreSQL SQLSTATE for "undefined_table"
UNDEFINED_TABLE = "42P01"

# Smallest step that keeps a rating's updated_at strictly increasing
_TICK = timedelta(microseconds=1)


def is_missing_relation(exc: DBAPIError) -> bool:
    """True when the driver reports that a table/relation does not exist."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == UNDEFINED_TABLE:
        return True
    message = str(orig if orig is not None else exc).lower()
    return "no such table" in message or ("relation" in message and "does not exist" in message)


def _comment_from_model(row: ArtifactCommentModel) -> Comment:
    return Comment.model_validate(row.to_dict())


def _rating_from_model(row: ArtifactRatingModel) -> Rating:
    return Rating.model_validate(row.to_dict())


class PrimaryBackend(StorageBackend):
    """StorageBackend over the relational store."""

    name = "primary"

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self, relation: str, operation: str) -> Iterator[Session]:
        """Open a session and translate driver errors into the feedback taxonomy."""
        session: Session = self._session_factory()
        try:
            yield session
            session.commit()
        except DBAPIError as exc:
            session.rollback()
            if is_missing_relation(exc):
                raise BackendUnavailable(relation) from exc
            logger.error("primary_backend_error", operation=operation, error=str(exc))
            raise DatabaseError() from exc
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("primary_backend_error", operation=operation, error=str(exc))
            raise DatabaseError() from exc
        finally:
            session.close()

    # -- comments ---------------------------------------------------------

    def insert_comment(self, comment: Comment) -> Comment:
        with self._session("artifact_comments", "insert_comment") as db:
            db_comment = ArtifactCommentModel(
                id=comment.id,
                artifact_id=comment.artifact_id,
                parent_id=comment.parent_id,
                kind=comment.kind.value,
                author_agent_id=comment.author.agent_id,
                author_handle=comment.author.handle,
                author_display_name=comment.author.display_name,
                raw_md=comment.raw_md,
                body_md=comment.body_md,
                body_text=comment.body_text,
                status=comment.status.value,
                upvotes=comment.upvotes,
                flags=comment.flags,
                created_at=ensure_utc(comment.created_at),
                updated_at=comment.updated_at,
            )
            db.add(db_comment)
            db.flush()
            return _comment_from_model(db_comment)

    def get_comment(self, comment_id: str) -> Optional[Comment]:
        with self._session("artifact_comments", "get_comment") as db:
            row = db.get(ArtifactCommentModel, comment_id)
            return _comment_from_model(row) if row else None

    def list_comments(
        self,
        artifact_id: str,
        limit: int,
        after: Optional[CursorPosition] = None,
        order: ListOrder = ListOrder.ASC,
        include: ListInclude = ListInclude.ALL,
    ) -> List[Comment]:
        model = ArtifactCommentModel
        query = select(model).where(
            model.artifact_id == artifact_id,
            model.status == CommentStatus.VISIBLE.value,
        )

        if include == ListInclude.TOP:
            query = query.where(model.parent_id.is_(None))

        if after is not None:
            ts = ensure_utc(after.created_at)
            if order == ListOrder.ASC:
                query = query.where(
                    or_(model.created_at > ts, and_(model.created_at == ts, model.id > after.id))
                )
            else:
                query = query.where(
                    or_(model.created_at < ts, and_(model.created_at == ts, model.id < after.id))
                )

        if order == ListOrder.ASC:
            query = query.order_by(model.created_at.asc(), model.id.asc())
        else:
            query = query.order_by(model.created_at.desc(), model.id.desc())

        with self._session("artifact_comments", "list_comments") as db:
            rows = db.scalars(query.limit(limit)).all()
            return [_comment_from_model(r) for r in rows]

    def list_artifact_comments(self, artifact_id: str) -> List[Comment]:
        model = ArtifactCommentModel
        query = (
            select(model)
            .where(model.artifact_id == artifact_id)
            .order_by(model.created_at.asc(), model.id.asc())
        )
        with self._session("artifact_comments", "list_artifact_comments") as db:
            return [_comment_from_model(r) for r in db.scalars(query).all()]

    def update_comment_status(
        self,
        comment_id: str,
        expected: CommentStatus,
        status: CommentStatus,
        updated_at: datetime,
    ) -> Optional[Comment]:
        model = ArtifactCommentModel
        stmt = (
            update(model)
            .where(model.id == comment_id, model.status == expected.value)
            .values(status=status.value, updated_at=ensure_utc(updated_at))
            .execution_options(synchronize_session=False)
        )
        with self._session("artifact_comments", "update_comment_status") as db:
            result = db.execute(stmt)
            if result.rowcount == 0:
                return None
            row = db.get(model, comment_id, populate_existing=True)
            return _comment_from_model(row) if row else None

    def increment_comment_counter(self, comment_id: str, counter: str) -> Optional[int]:
        if counter not in COUNTER_FIELDS:
            raise ValueError(f"Unknown counter: {counter}")
        model = ArtifactCommentModel
        column = getattr(model, counter)
        stmt = (
            update(model)
            .where(model.id == comment_id)
            .values({counter: column + 1})
            .execution_options(synchronize_session=False)
        )
        with self._session("artifact_comments", "increment_comment_counter") as db:
            result = db.execute(stmt)
            if result.rowcount == 0:
                return None
            return db.scalar(select(column).where(model.id == comment_id))

    # -- ratings ----------------------------------------------------------

    def upsert_rating(self, rating: Rating) -> RatingUpsertResult:
        model = ArtifactRatingModel
        with self._session("artifact_ratings", "upsert_rating") as db:
            dialect = db.get_bind().dialect.name
            if dialect == "postgresql":
                from sqlalchemy.dialects.postgresql import insert
            elif dialect == "sqlite":
                from sqlalchemy.dialects.sqlite import insert
            else:
                raise DatabaseError(f"Atomic upsert is not supported on {dialect}")

            previous = db.scalar(
                select(model.updated_at).where(
                    model.artifact_id == rating.artifact_id,
                    model.rater_agent_id == rating.rater.agent_id,
                )
            )
            updated_at = ensure_utc(rating.updated_at)
            if previous is not None:
                # updated_at must advance even if the clock has not
                updated_at = max(updated_at, ensure_utc(previous) + _TICK)
            if dialect == "postgresql":
                # Re-checked against the row locked by the conflict
                advanced = case(
                    (model.updated_at < updated_at, updated_at),
                    else_=model.updated_at + _TICK,
                )
            else:
                advanced = updated_at

            stmt = insert(model).values(
                id=rating.id,
                artifact_id=rating.artifact_id,
                rater_agent_id=rating.rater.agent_id,
                rater_handle=rating.rater.handle,
                rater_display_name=rating.rater.display_name,
                score=rating.score,
                dims=dict(rating.dims),
                notes_md=rating.notes_md,
                raw_md=rating.raw_md,
                created_at=ensure_utc(rating.created_at),
                updated_at=ensure_utc(rating.updated_at),
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[model.artifact_id, model.rater_agent_id],
                set_={
                    "rater_handle": stmt.excluded.rater_handle,
                    "rater_display_name": stmt.excluded.rater_display_name,
                    "score": stmt.excluded.score,
                    "dims": stmt.excluded.dims,
                    "notes_md": stmt.excluded.notes_md,
                    "raw_md": stmt.excluded.raw_md,
                    "updated_at": advanced,
                },
            )
            row = db.scalars(
                stmt.returning(model),
                execution_options={"populate_existing": True},
            ).one()
            stored = _rating_from_model(row)

        # The conflict branch keeps the existing id, so a new id means an insert
        return RatingUpsertResult(rating=stored, created=stored.id == rating.id)

    def list_ratings(self, artifact_id: str) -> List[Rating]:
        query = select(ArtifactRatingModel).where(ArtifactRatingModel.artifact_id == artifact_id)
        with self._session("artifact_ratings", "list_ratings") as db:
            return [_rating_from_model(r) for r in db.scalars(query).all()]
