"""
Canonical enums for artifact feedback.

These define the allowed values for comment, rating and thread fields.
"""

from enum import Enum


class CommentKind(str, Enum):
    """Comment sub-types."""

    REVIEW = "review"
    QUESTION = "question"
    ISSUE = "issue"
    IMPROVEMENT = "improvement"


class CommentStatus(str, Enum):
    """Moderation state of a comment.

    visible -> hidden   (moderator)
    hidden  -> visible  (moderator un-hide)
    visible -> removed  (author retraction, terminal)
    """

    VISIBLE = "visible"
    HIDDEN = "hidden"
    REMOVED = "removed"


class ListOrder(str, Enum):
    """Pagination order over (created_at, id)."""

    ASC = "asc"
    DESC = "desc"


class ListInclude(str, Enum):
    """Which comments a page contains."""

    ALL = "all"
    TOP = "top"


class ThreadSort(str, Enum):
    """Ordering of top-level comments in a rendered thread."""

    NEWEST = "newest"
    OLDEST = "oldest"
    TOP = "top"


class TrustTier(str, Enum):
    """Externally computed classification of an author's identity."""

    VERIFIED = "verified"
    KNOWN = "known"
    UNVERIFIED = "unverified"


class RatingDimension(str, Enum):
    """Named sub-scores a rating may carry."""

    USEFULNESS = "usefulness"
    CORRECTNESS = "correctness"
    NOVELTY = "novelty"


# Valid moderation transitions: from -> allowed targets
STATUS_TRANSITIONS = {
    CommentStatus.VISIBLE: {CommentStatus.HIDDEN, CommentStatus.REMOVED},
    CommentStatus.HIDDEN: {CommentStatus.VISIBLE},
    CommentStatus.REMOVED: set(),
}
