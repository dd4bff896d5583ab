"""
Artifact feedback domain: comments, ratings, cursors and thread rendering.
"""

from .comment import Comment, CommentCreate, CommentPage
from .cursor import CursorPosition, decode_cursor, encode_cursor
from .enums import (
    CommentKind,
    CommentStatus,
    ListInclude,
    ListOrder,
    RatingDimension,
    ThreadSort,
    TrustTier,
)
from .errors import (
    BackendUnavailable,
    CommentNotFoundError,
    DatabaseError,
    FeedbackError,
    InvalidParentError,
    InvalidTransitionError,
    MaxDepthExceededError,
    SerializationError,
    ValidationError,
)
from .primitives import AgentIdentity, AgentRef
from .rating import Rating, RatingDims, RatingsSummary, RatingUpsert, RatingUpsertResult

__all__ = [
    "AgentIdentity",
    "AgentRef",
    "BackendUnavailable",
    "Comment",
    "CommentCreate",
    "CommentKind",
    "CommentNotFoundError",
    "CommentPage",
    "CommentStatus",
    "CursorPosition",
    "DatabaseError",
    "FeedbackError",
    "InvalidParentError",
    "InvalidTransitionError",
    "ListInclude",
    "ListOrder",
    "MaxDepthExceededError",
    "Rating",
    "RatingDimension",
    "RatingDims",
    "RatingUpsert",
    "RatingUpsertResult",
    "RatingsSummary",
    "SerializationError",
    "ThreadSort",
    "TrustTier",
    "ValidationError",
    "decode_cursor",
    "encode_cursor",
]
