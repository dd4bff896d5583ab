"""
Artifact Feedback

Threaded comments and ratings on artifacts, backed by a relational store with
a JSON file fallback.
"""

import importlib.metadata

__version__ = importlib.metadata.version("artifact-feedback")

from .feedback import (
    AgentIdentity,
    AgentRef,
    Comment,
    CommentKind,
    CommentStatus,
    FeedbackError,
    Rating,
    RatingsSummary,
)

__all__ = [
    "AgentIdentity",
    "AgentRef",
    "Comment",
    "CommentKind",
    "CommentStatus",
    "FeedbackError",
    "Rating",
    "RatingsSummary",
]
