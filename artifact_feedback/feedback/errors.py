"""
Error taxonomy for the feedback engine.

Only BackendUnavailable changes behavior (it triggers the file fallback);
every other error propagates to the handler layer.
"""

from typing import Any, Dict, List, Optional


class FeedbackError(Exception):
    """Base class for feedback errors."""

    code = "FEEDBACK_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class ValidationError(FeedbackError):
    """Malformed input, rejected before any backend call."""

    code = "VALIDATION_FAILED"

    def __init__(self, message: str, details: Optional[List[str]] = None):
        self.details = details or [message]
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class InvalidParentError(FeedbackError):
    """parent_id does not resolve to a comment on the same artifact."""

    code = "INVALID_PARENT"

    def __init__(self, artifact_id: str, parent_id: str, message: Optional[str] = None):
        self.artifact_id = artifact_id
        self.parent_id = parent_id
        super().__init__(
            message or f"parent_id '{parent_id}' not found on artifact '{artifact_id}'"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "artifact_id": self.artifact_id,
            "parent_id": self.parent_id,
        }


class MaxDepthExceededError(FeedbackError):
    """Replying to the parent would nest deeper than the configured maximum."""

    code = "MAX_DEPTH_EXCEEDED"

    def __init__(self, parent_id: str, max_depth: int):
        self.parent_id = parent_id
        self.max_depth = max_depth
        super().__init__(
            f"Comment '{parent_id}' is at the maximum thread depth ({max_depth}); replies are not allowed"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "parent_id": self.parent_id,
            "max_depth": self.max_depth,
        }


class CommentNotFoundError(FeedbackError):
    """No comment with the given id."""

    code = "COMMENT_NOT_FOUND"

    def __init__(self, comment_id: str):
        self.comment_id = comment_id
        super().__init__(f"Comment '{comment_id}' not found")


class InvalidTransitionError(FeedbackError):
    """Moderation transition not allowed from the current status."""

    code = "INVALID_TRANSITION"

    def __init__(self, comment_id: str, current: str, target: str):
        self.comment_id = comment_id
        self.current = current
        self.target = target
        super().__init__(f"Cannot move comment '{comment_id}' from '{current}' to '{target}'")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "comment_id": self.comment_id,
            "current": self.current,
            "target": self.target,
        }


class BackendUnavailable(FeedbackError):
    """The primary backend's relation/table does not exist.

    Recoverable: the failover backend switches to the file store.
    """

    code = "BACKEND_UNAVAILABLE"

    def __init__(self, relation: str, message: Optional[str] = None):
        self.relation = relation
        super().__init__(message or f"Relation '{relation}' does not exist")


class DatabaseError(FeedbackError):
    """Any other storage failure. Fatal for the request, never a fallback trigger."""

    code = "DATABASE_ERROR"

    def __init__(self, message: str = "Database error"):
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        # Never leak backend detail to callers
        return {"error": self.code, "message": "Database error"}


class SerializationError(DatabaseError):
    """A fallback file does not hold a valid JSON array."""

    code = "DATABASE_ERROR"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Corrupt feedback file {path}: {reason}")
