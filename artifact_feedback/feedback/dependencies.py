"""
FastAPI dependencies wiring services to the configured backends.
"""

from functools import lru_cache

from fastapi import Depends

from ..config import Settings, get_settings
from ..db.base import get_session_local
from ..storage import FailoverBackend, FileBackend, PrimaryBackend, StorageBackend
from .services import CommentService, RatingService


def build_backend(settings: Settings) -> StorageBackend:
    """Primary relational store with the JSON file store as fallback."""
    primary = PrimaryBackend(get_session_local())
    fallback = FileBackend(
        settings.comments_path,
        settings.ratings_path,
        lenient_reads=settings.file_store_lenient_reads,
    )
    return FailoverBackend(primary, fallback)


@lru_cache(maxsize=1)
def get_backend() -> StorageBackend:
    """Process-wide backend, built on first use."""
    return build_backend(get_settings())


def get_comment_service(
    backend: StorageBackend = Depends(get_backend),
    settings: Settings = Depends(get_settings),
) -> CommentService:
    return CommentService(
        backend,
        max_depth=settings.thread_max_depth,
        default_limit=settings.comments_default_limit,
        max_limit=settings.comments_max_limit,
    )


def get_rating_service(backend: StorageBackend = Depends(get_backend)) -> RatingService:
    return RatingService(backend)
