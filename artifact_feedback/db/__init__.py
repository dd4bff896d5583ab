"""
Database package for the primary feedback store.
"""

from .base import Base, build_engine, get_engine, get_session_local, init_database
from .models import ArtifactCommentModel, ArtifactRatingModel

__all__ = [
    "Base",
    "build_engine",
    "get_engine",
    "get_session_local",
    "init_database",
    "ArtifactCommentModel",
    "ArtifactRatingModel",
]
