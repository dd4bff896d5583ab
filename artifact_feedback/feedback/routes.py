"""
Artifact feedback API routes.

Comments, ratings and thread views are nested under /artifacts/{artifact_id};
per-comment actions live under /comments/{comment_id}.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..config import Settings, get_settings
from .auth import known_trust_tiers, require_agent
from .comment import CommentCreate, CommentStatusUpdate
from .dependencies import get_comment_service, get_rating_service
from .enums import CommentStatus, ListInclude, ListOrder, ThreadSort
from .errors import ValidationError
from .markdown import derive_bodies
from .primitives import AgentIdentity, utc_now
from .rating import RatingUpsert
from .services import CommentService, RatingService
from .thread import build_tree, render_thread

router = APIRouter(tags=["Feedback"])


def _check_artifact_id(path_id: str, body_id: str) -> None:
    if body_id != path_id:
        raise ValidationError("Validation failed", ["artifact_id mismatch"])


def _check_size(raw_md: str, settings: Settings) -> None:
    if len(raw_md.encode("utf-8")) > settings.max_markdown_bytes:
        raise HTTPException(status_code=413, detail="body too large")


def _parse_limit(raw: Optional[str]) -> Optional[int]:
    # Unparsable limits fall back to the default page size
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


# =============================================================================
# Comment Endpoints
# =============================================================================


@router.post("/artifacts/{artifact_id}/comments", status_code=201)
def create_comment(
    artifact_id: str,
    payload: CommentCreate,
    agent: AgentIdentity = Depends(require_agent),
    service: CommentService = Depends(get_comment_service),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """Create a comment or a reply on an artifact."""
    _check_size(payload.raw_md, settings)
    _check_artifact_id(artifact_id, payload.artifact_id)

    body_md, body_text = derive_bodies(payload.raw_md)
    if not body_md:
        raise ValidationError("Validation failed", ["body must be >= 1 char"])

    if payload.parent_id is not None:
        service.assert_can_reply(artifact_id, payload.parent_id)

    comment = service.create(
        artifact_id=artifact_id,
        parent_id=payload.parent_id,
        kind=payload.kind,
        raw_md=payload.raw_md,
        body_md=body_md,
        body_text=body_text,
        author=agent,
    )
    return {
        "status": "success",
        "comment": comment.model_dump(mode="json"),
    }


@router.get("/artifacts/{artifact_id}/comments")
def list_comments(
    artifact_id: str,
    limit: Optional[str] = None,
    cursor: Optional[str] = None,
    order: Optional[str] = None,
    include: Optional[str] = None,
    service: CommentService = Depends(get_comment_service),
) -> Dict[str, Any]:
    """List visible comments, one cursor page at a time."""
    page = service.list(
        artifact_id,
        limit=_parse_limit(limit),
        cursor=cursor,
        order=ListOrder.DESC if order == "desc" else ListOrder.ASC,
        include=ListInclude.TOP if include == "top" else ListInclude.ALL,
    )
    return {"artifact_id": artifact_id, **page.model_dump(mode="json")}


@router.get("/artifacts/{artifact_id}/thread")
def get_thread(
    artifact_id: str,
    sort: ThreadSort = Query(ThreadSort.NEWEST),
    highlight: Optional[str] = None,
    service: CommentService = Depends(get_comment_service),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """Render the full comment thread of an artifact."""
    tree = build_tree(service.list_thread(artifact_id))
    rendered = render_thread(
        tree,
        sort=sort,
        max_depth=settings.thread_max_depth,
        collapse_threshold=settings.thread_collapse_threshold,
        trust_tiers=known_trust_tiers(settings),
        highlighted_id=highlight,
    )
    return {
        "artifact_id": artifact_id,
        "sort": sort.value,
        "count": len(tree),
        "items": [node.to_dict() for node in rendered],
        "updated_at": utc_now().isoformat(),
    }


@router.post("/comments/{comment_id}/upvote")
def upvote_comment(
    comment_id: str,
    agent: AgentIdentity = Depends(require_agent),
    service: CommentService = Depends(get_comment_service),
) -> Dict[str, Any]:
    return {"comment_id": comment_id, "upvotes": service.upvote(comment_id)}


@router.post("/comments/{comment_id}/flag")
def flag_comment(
    comment_id: str,
    agent: AgentIdentity = Depends(require_agent),
    service: CommentService = Depends(get_comment_service),
) -> Dict[str, Any]:
    return {"comment_id": comment_id, "flags": service.flag(comment_id)}


@router.patch("/comments/{comment_id}/status")
def update_comment_status(
    comment_id: str,
    payload: CommentStatusUpdate,
    agent: AgentIdentity = Depends(require_agent),
    service: CommentService = Depends(get_comment_service),
) -> Dict[str, Any]:
    """Apply a moderation transition.

    Authors may remove their own comments; hiding and un-hiding are reserved
    for moderators.
    """
    comment = service.get(comment_id)
    if payload.status == CommentStatus.REMOVED:
        allowed = comment.author.agent_id == agent.agent_id
    else:
        allowed = agent.is_moderator
    if not allowed:
        raise HTTPException(
            status_code=403,
            detail=f"Not allowed to set status '{payload.status.value}' on this comment",
        )

    updated = service.set_status(comment_id, payload.status)
    return {
        "status": "success",
        "comment": updated.model_dump(mode="json"),
    }


# =============================================================================
# Rating Endpoints
# =============================================================================


@router.post("/artifacts/{artifact_id}/ratings")
def upsert_rating(
    artifact_id: str,
    payload: RatingUpsert,
    agent: AgentIdentity = Depends(require_agent),
    service: RatingService = Depends(get_rating_service),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """Submit or replace the caller's rating of an artifact."""
    _check_size(payload.raw_md, settings)
    _check_artifact_id(artifact_id, payload.artifact_id)

    result = service.upsert(
        artifact_id=artifact_id,
        rater=agent,
        score=payload.score,
        dims=payload.dims.as_dict(),
        raw_md=payload.raw_md,
        notes_md=payload.notes_md,
    )
    return result.model_dump(mode="json")


@router.get("/artifacts/{artifact_id}/ratings/summary")
def get_ratings_summary(
    artifact_id: str,
    service: RatingService = Depends(get_rating_service),
) -> Dict[str, Any]:
    return service.summary(artifact_id).model_dump(mode="json")
