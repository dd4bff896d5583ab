"""
Local JSON file backend.

Layout:
    {data_dir}/artifact_comments.json   # JSON array, newest inserted first
    {data_dir}/artifact_ratings.json    # JSON array, newest inserted first

Each file is rewritten whole on every write: the new content goes to a
temporary file in the same directory which then replaces the original via
os.replace, so readers only ever see a complete JSON array.

Read-modify-write cycles are serialized by one lock per file path, shared by
every FileBackend in the process. The lock does not span processes; this
store is a single-process degraded mode, not a production write path.
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..feedback.comment import Comment
from ..feedback.cursor import CursorPosition
from ..feedback.enums import CommentStatus, ListInclude, ListOrder
from ..feedback.errors import SerializationError
from ..feedback.primitives import ensure_utc
from ..feedback.rating import Rating, RatingUpsertResult
from .backend import COUNTER_FIELDS, StorageBackend, sort_key

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)

_LOCKS: Dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _LOCKS_GUARD:
        return _LOCKS.setdefault(key, threading.Lock())


class JsonArrayFile:
    """A JSON array persisted in a single file."""

    def __init__(self, path: Path, lenient_reads: bool = False):
        self.path = Path(path)
        self.lenient_reads = lenient_reads
        self._lock = _lock_for(self.path)

    def _load(self) -> List[Dict[str, Any]]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise SerializationError(str(self.path), str(exc)) from exc

        if not raw.strip():
            return []
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SerializationError(str(self.path), f"invalid JSON ({exc.msg})") from exc
        if not isinstance(parsed, list):
            raise SerializationError(str(self.path), "top-level value is not an array")
        return [row for row in parsed if isinstance(row, dict)]

    def read(self) -> List[Dict[str, Any]]:
        """Return all rows; a missing file is an empty array."""
        try:
            return self._load()
        except SerializationError as exc:
            logger.error("file_store_corrupt", path=str(self.path), reason=exc.reason)
            if self.lenient_reads:
                return []
            raise

    def validate(self, model: Type[ModelT], row: Dict[str, Any]) -> ModelT:
        """Validate one stored row; a row of the wrong shape is corruption."""
        try:
            return model.model_validate(row)
        except PydanticValidationError as exc:
            reason = f"malformed row {row.get('id')!r} ({exc.error_count()} validation errors)"
            logger.error("file_store_corrupt", path=str(self.path), reason=reason)
            raise SerializationError(str(self.path), reason) from exc

    def read_models(self, model: Type[ModelT]) -> List[ModelT]:
        """Return every row as ``model``; lenient reads skip malformed rows."""
        items = []
        for row in self.read():
            try:
                items.append(self.validate(model, row))
            except SerializationError:
                if not self.lenient_reads:
                    raise
        return items

    def _write(self, rows: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(rows, handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    @contextmanager
    def transaction(self) -> Iterator[List[Dict[str, Any]]]:
        """Hold the file lock, yield the rows for mutation, then persist them.

        Nothing is written if the body raises or leaves the rows unchanged.
        A corrupt file is never overwritten, even with lenient reads enabled.
        """
        with self._lock:
            rows = self._load()
            before = copy.deepcopy(rows)
            yield rows
            if rows != before:
                self._write(rows)


class FileBackend(StorageBackend):
    """StorageBackend over two JSON array files."""

    name = "file"

    def __init__(self, comments_path: Path, ratings_path: Path, lenient_reads: bool = False):
        self.comments = JsonArrayFile(comments_path, lenient_reads=lenient_reads)
        self.ratings = JsonArrayFile(ratings_path, lenient_reads=lenient_reads)

    @staticmethod
    def _dump(model) -> Dict[str, Any]:
        return model.model_dump(mode="json")

    def _all_comments(self) -> List[Comment]:
        return self.comments.read_models(Comment)

    # -- comments ---------------------------------------------------------

    def insert_comment(self, comment: Comment) -> Comment:
        with self.comments.transaction() as rows:
            rows.insert(0, self._dump(comment))
        return comment

    def get_comment(self, comment_id: str) -> Optional[Comment]:
        for comment in self._all_comments():
            if comment.id == comment_id:
                return comment
        return None

    def list_comments(
        self,
        artifact_id: str,
        limit: int,
        after: Optional[CursorPosition] = None,
        order: ListOrder = ListOrder.ASC,
        include: ListInclude = ListInclude.ALL,
    ) -> List[Comment]:
        candidates = [
            c
            for c in self._all_comments()
            if c.artifact_id == artifact_id and c.status == CommentStatus.VISIBLE
        ]
        if include == ListInclude.TOP:
            candidates = [c for c in candidates if c.parent_id is None]

        descending = order == ListOrder.DESC
        candidates.sort(key=sort_key, reverse=descending)

        if after is not None:
            position = (ensure_utc(after.created_at), after.id)
            if descending:
                candidates = [c for c in candidates if sort_key(c) < position]
            else:
                candidates = [c for c in candidates if sort_key(c) > position]

        return candidates[:limit]

    def list_artifact_comments(self, artifact_id: str) -> List[Comment]:
        items = [c for c in self._all_comments() if c.artifact_id == artifact_id]
        items.sort(key=sort_key)
        return items

    def update_comment_status(
        self,
        comment_id: str,
        expected: CommentStatus,
        status: CommentStatus,
        updated_at: datetime,
    ) -> Optional[Comment]:
        with self.comments.transaction() as rows:
            for index, row in enumerate(rows):
                if row.get("id") != comment_id:
                    continue
                current = self.comments.validate(Comment, row)
                if current.status != expected:
                    return None
                changed = current.model_copy(
                    update={"status": status, "updated_at": ensure_utc(updated_at)}
                )
                rows[index] = self._dump(changed)
                return changed
        return None

    def increment_comment_counter(self, comment_id: str, counter: str) -> Optional[int]:
        if counter not in COUNTER_FIELDS:
            raise ValueError(f"Unknown counter: {counter}")
        with self.comments.transaction() as rows:
            for row in rows:
                if row.get("id") == comment_id:
                    row[counter] = int(row.get(counter) or 0) + 1
                    return row[counter]
        return None

    # -- ratings ----------------------------------------------------------

    def upsert_rating(self, rating: Rating) -> RatingUpsertResult:
        with self.ratings.transaction() as rows:
            for index, row in enumerate(rows):
                if (
                    row.get("artifact_id") == rating.artifact_id
                    and (row.get("rater") or {}).get("agent_id") == rating.rater.agent_id
                ):
                    existing = self.ratings.validate(Rating, row)
                    # updated_at must advance even if the clock has not
                    updated_at = max(
                        ensure_utc(rating.updated_at),
                        ensure_utc(existing.updated_at) + timedelta(microseconds=1),
                    )
                    updated = existing.model_copy(
                        update={
                            "rater": rating.rater,
                            "score": rating.score,
                            "dims": dict(rating.dims),
                            "raw_md": rating.raw_md,
                            "notes_md": rating.notes_md,
                            "updated_at": updated_at,
                        }
                    )
                    rows[index] = self._dump(updated)
                    return RatingUpsertResult(rating=updated, created=False)

            rows.insert(0, self._dump(rating))
            return RatingUpsertResult(rating=rating, created=True)

    def list_ratings(self, artifact_id: str) -> List[Rating]:
        return [r for r in self.ratings.read_models(Rating) if r.artifact_id == artifact_id]
