"""
Thread rendering.

Turns a flat (or nested) set of comments into a depth-capped, collapsible,
moderation-aware tree of view nodes.

Structure and interaction state are kept apart:

* CommentTree is immutable: an arena of CommentNode keyed by id, plus the
  comments themselves and the ordered root ids.
* ThreadState is a flat map of comment id -> InteractionState (upvoted,
  flagged, collapsed, ...). Commands replace entries; the tree never changes.

render_thread() combines the two into RenderedComment view nodes.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

import structlog
from pydantic import Field

from .comment import Comment
from .enums import CommentStatus, ThreadSort, TrustTier
from .errors import CommentNotFoundError
from .primitives import AgentRef

logger = structlog.get_logger()

DEFAULT_MAX_DEPTH = 5
DEFAULT_COLLAPSE_THRESHOLD = 5

HIDDEN_NOTICE = "This comment has been hidden by moderators."
REMOVED_NOTICE = "This comment was removed by its author."
MAX_DEPTH_LABEL = "Max depth reached"
SAVE_FAILED_MESSAGE = "Could not save. Please try again."


class ThreadInput(Comment):
    """A comment carrying its replies inline (nested input)."""

    replies: List["ThreadInput"] = Field(default_factory=list)


ThreadInput.model_rebuild()


def _chronological(comment: Comment) -> Tuple[datetime, str]:
    return (comment.created_at, comment.id)


def flatten(items: Iterable[Union[Comment, ThreadInput]]) -> List[Comment]:
    """Flatten nested input; replies inherit their parent's id as parent_id."""
    flat: List[Comment] = []
    stack: List[Tuple[Comment, Optional[str]]] = [(item, None) for item in reversed(list(items))]
    while stack:
        item, inherited_parent = stack.pop()
        replies = getattr(item, "replies", None) or []
        data = item.model_dump(exclude={"replies"})
        if data.get("parent_id") is None and inherited_parent is not None:
            data["parent_id"] = inherited_parent
        flat.append(Comment.model_validate(data))
        for reply in reversed(replies):
            stack.append((reply, item.id))
    return flat


# =============================================================================
# Tree structure
# =============================================================================


@dataclass(frozen=True)
class CommentNode:
    """Position of one comment in the tree. Depth 1 is top-level."""

    id: str
    parent_id: Optional[str]
    depth: int
    children: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CommentTree:
    """Immutable arena of nodes plus the comments they index."""

    nodes: Mapping[str, CommentNode]
    comments: Mapping[str, Comment]
    roots: Tuple[str, ...]

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, comment_id: object) -> bool:
        return comment_id in self.nodes

    def node(self, comment_id: str) -> CommentNode:
        try:
            return self.nodes[comment_id]
        except KeyError:
            raise CommentNotFoundError(comment_id) from None

    def comment(self, comment_id: str) -> Comment:
        try:
            return self.comments[comment_id]
        except KeyError:
            raise CommentNotFoundError(comment_id) from None

    def walk(self) -> Iterator[CommentNode]:
        """Depth-first, roots in stored order, replies chronological."""
        stack = [self.nodes[r] for r in reversed(self.roots)]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(self.nodes[c] for c in reversed(node.children))


def build_tree(items: Iterable[Union[Comment, ThreadInput]]) -> CommentTree:
    """Build a CommentTree from flat or nested comments.

    Replies are ordered chronologically ascending by (created_at, id).
    A comment whose parent is absent from the set becomes a root, and so does
    the earliest member of any parent cycle.
    """
    comments: Dict[str, Comment] = {}
    for comment in flatten(items):
        comments.setdefault(comment.id, comment)

    children: Dict[str, List[str]] = {cid: [] for cid in comments}
    roots: List[str] = []
    for comment in sorted(comments.values(), key=_chronological):
        parent_id = comment.parent_id
        if parent_id is None or parent_id == comment.id or parent_id not in comments:
            roots.append(comment.id)
        else:
            children[parent_id].append(comment.id)

    nodes: Dict[str, CommentNode] = {}

    def attach(root_id: str) -> None:
        stack = [(root_id, None, 1)]
        while stack:
            cid, parent_id, depth = stack.pop()
            nodes[cid] = CommentNode(
                id=cid,
                parent_id=parent_id,
                depth=depth,
                children=tuple(children[cid]),
            )
            stack.extend((child, cid, depth + 1) for child in children[cid])

    for root_id in roots:
        attach(root_id)

    # Members of a parent cycle are unreachable from any root
    while len(nodes) < len(comments):
        stranded = [c for c in comments.values() if c.id not in nodes]
        first = min(stranded, key=_chronological)
        parent_id = first.parent_id
        if parent_id in children:
            children[parent_id] = [c for c in children[parent_id] if c != first.id]
        roots.append(first.id)
        attach(first.id)

    return CommentTree(nodes=nodes, comments=comments, roots=tuple(roots))


def sort_roots(tree: CommentTree, sort: Union[ThreadSort, str] = ThreadSort.NEWEST) -> List[str]:
    """Order top-level comments. Replies are never reordered."""
    sort = ThreadSort(sort)
    roots = [tree.comments[r] for r in tree.roots]
    if sort == ThreadSort.OLDEST:
        roots.sort(key=_chronological)
    elif sort == ThreadSort.NEWEST:
        roots.sort(key=_chronological, reverse=True)
    else:
        roots.sort(key=lambda c: (c.upvotes, c.created_at, c.id), reverse=True)
    return [c.id for c in roots]


# =============================================================================
# Interaction state
# =============================================================================


@dataclass(frozen=True)
class InteractionState:
    """Ephemeral per-comment UI state."""

    upvote_count: int = 0
    upvoted: bool = False
    flagged: bool = False
    collapsed: bool = False
    show_all_replies: bool = False
    revealed: bool = False
    replying: bool = False


class ThreadState:
    """Flat map of comment id -> InteractionState for one rendered thread."""

    def __init__(self, tree: Optional[CommentTree] = None):
        self._states: Dict[str, InteractionState] = {}
        if tree is not None:
            for cid, comment in tree.comments.items():
                self._states[cid] = InteractionState(upvote_count=comment.upvotes)

    def get(self, comment_id: str) -> InteractionState:
        return self._states.get(comment_id, InteractionState())

    def set(self, comment_id: str, state: InteractionState) -> None:
        self._states[comment_id] = state

    def update(self, comment_id: str, **changes: Any) -> InteractionState:
        """Replace fields of one entry; returns the previous entry."""
        previous = self.get(comment_id)
        self._states[comment_id] = replace(previous, **changes)
        return previous

    def toggle_collapsed(self, comment_id: str) -> None:
        self.update(comment_id, collapsed=not self.get(comment_id).collapsed)

    def expand_replies(self, comment_id: str) -> None:
        """Reveal replies beyond the collapse threshold. No fetch involved."""
        self.update(comment_id, show_all_replies=True)

    def reveal(self, comment_id: str) -> None:
        """Reveal a hidden comment ("show anyway")."""
        self.update(comment_id, revealed=True)

    def toggle_reply(self, tree: CommentTree, comment_id: str, max_depth: int = DEFAULT_MAX_DEPTH) -> bool:
        """Open or close the reply form; refused at the depth cap or on a tombstone."""
        if not can_reply(tree, self, comment_id, max_depth):
            return False
        self.update(comment_id, replying=not self.get(comment_id).replying)
        return True


def can_reply(tree: CommentTree, state: ThreadState, comment_id: str, max_depth: int = DEFAULT_MAX_DEPTH) -> bool:
    """A comment accepts replies while it is shown as content and below the cap."""
    node = tree.node(comment_id)
    comment = tree.comment(comment_id)
    if comment.status == CommentStatus.REMOVED:
        return False
    if comment.status == CommentStatus.HIDDEN and not state.get(comment_id).revealed:
        return False
    return node.depth < max_depth


# =============================================================================
# Optimistic commands
# =============================================================================


@dataclass(frozen=True)
class ActionResult:
    """Outcome of an optimistic command; ``message`` is user-facing."""

    ok: bool
    state: InteractionState
    message: Optional[str] = None


def _apply_optimistically(
    state: ThreadState,
    comment_id: str,
    action: str,
    optimistic: InteractionState,
    commit: Callable[[], Any],
) -> ActionResult:
    previous = state.get(comment_id)
    state.set(comment_id, optimistic)
    try:
        commit()
    except Exception as exc:  # any failed write rolls back
        state.set(comment_id, previous)
        logger.warning(
            "optimistic_action_rolled_back",
            action=action,
            comment_id=comment_id,
            error=str(exc),
        )
        return ActionResult(ok=False, state=previous, message=SAVE_FAILED_MESSAGE)
    return ActionResult(ok=True, state=optimistic)


def upvote(state: ThreadState, comment_id: str, write: Callable[[str, bool], Any]) -> ActionResult:
    """Toggle the caller's upvote locally, then persist via ``write(comment_id, upvoted)``."""
    previous = state.get(comment_id)
    upvoted = not previous.upvoted
    optimistic = replace(
        previous,
        upvoted=upvoted,
        upvote_count=max(0, previous.upvote_count + (1 if upvoted else -1)),
    )
    return _apply_optimistically(
        state, comment_id, "upvote", optimistic, lambda: write(comment_id, upvoted)
    )


def flag(state: ThreadState, comment_id: str, write: Callable[[str], Any]) -> ActionResult:
    """Flag once per session; a second flag is a no-op and there is no un-flag."""
    previous = state.get(comment_id)
    if previous.flagged:
        return ActionResult(ok=True, state=previous)
    optimistic = replace(previous, flagged=True)
    return _apply_optimistically(state, comment_id, "flag", optimistic, lambda: write(comment_id))


# =============================================================================
# Rendering
# =============================================================================


@dataclass
class RenderedComment:
    """View node for one comment. ``variant`` is comment, hidden or removed."""

    id: str
    depth: int
    variant: str
    created_at: datetime
    author: Optional[AgentRef] = None
    kind: Optional[str] = None
    body_md: Optional[str] = None
    edited: bool = False
    notice: Optional[str] = None
    show_anyway: bool = False
    revealed: bool = False
    show_unverified_warning: bool = False
    can_reply: bool = False
    reply_label: Optional[str] = None
    replying: bool = False
    upvote_count: int = 0
    upvoted: bool = False
    flagged: bool = False
    flag_label: Optional[str] = None
    highlighted: bool = False
    collapsed: bool = False
    collapse_label: Optional[str] = None
    reply_count: int = 0
    more_replies: int = 0
    more_replies_label: Optional[str] = None
    replies: List["RenderedComment"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "depth": self.depth,
            "variant": self.variant,
            "created_at": self.created_at.isoformat(),
            "author": self.author.model_dump(mode="json") if self.author else None,
            "kind": self.kind,
            "body_md": self.body_md,
            "edited": self.edited,
            "notice": self.notice,
            "show_anyway": self.show_anyway,
            "revealed": self.revealed,
            "show_unverified_warning": self.show_unverified_warning,
            "can_reply": self.can_reply,
            "reply_label": self.reply_label,
            "replying": self.replying,
            "upvote_count": self.upvote_count,
            "upvoted": self.upvoted,
            "flagged": self.flagged,
            "flag_label": self.flag_label,
            "highlighted": self.highlighted,
            "collapsed": self.collapsed,
            "collapse_label": self.collapse_label,
            "reply_count": self.reply_count,
            "more_replies": self.more_replies,
            "more_replies_label": self.more_replies_label,
            "replies": [r.to_dict() for r in self.replies],
        }


def _author_tier(author: AgentRef, trust_tiers: Mapping[str, TrustTier]) -> TrustTier:
    if author.trust_tier is not None:
        return author.trust_tier
    return trust_tiers.get(author.agent_id, TrustTier.UNVERIFIED)


def render_thread(
    tree: CommentTree,
    state: Optional[ThreadState] = None,
    sort: Union[ThreadSort, str] = ThreadSort.NEWEST,
    max_depth: int = DEFAULT_MAX_DEPTH,
    collapse_threshold: int = DEFAULT_COLLAPSE_THRESHOLD,
    trust_tiers: Optional[Mapping[str, TrustTier]] = None,
    highlighted_id: Optional[str] = None,
) -> List[RenderedComment]:
    """Render the whole thread into view nodes, top-level comments sorted by ``sort``.

    Hidden and removed comments become placeholders, but their replies are
    still rendered beneath them.
    """
    state = state or ThreadState(tree)
    trust_tiers = trust_tiers or {}

    def render(comment_id: str) -> RenderedComment:
        node = tree.nodes[comment_id]
        comment = tree.comments[comment_id]
        interaction = state.get(comment_id)

        view = RenderedComment(
            id=comment.id,
            depth=node.depth,
            variant="comment",
            created_at=comment.created_at,
            highlighted=comment.id == highlighted_id,
        )

        if comment.status == CommentStatus.REMOVED:
            view.variant = "removed"
            view.notice = REMOVED_NOTICE
        elif comment.status == CommentStatus.HIDDEN and not interaction.revealed:
            view.variant = "hidden"
            view.notice = HIDDEN_NOTICE
            view.show_anyway = True
        else:
            replyable = node.depth < max_depth
            view.revealed = comment.status == CommentStatus.HIDDEN
            view.author = comment.author
            view.kind = comment.kind.value
            view.body_md = comment.body_md
            view.edited = (
                comment.updated_at is not None and comment.updated_at != comment.created_at
            )
            view.show_unverified_warning = (
                node.depth == 1
                and _author_tier(comment.author, trust_tiers) == TrustTier.UNVERIFIED
            )
            view.can_reply = replyable
            view.reply_label = "Reply" if replyable else MAX_DEPTH_LABEL
            view.replying = interaction.replying and replyable
            view.upvote_count = interaction.upvote_count
            view.upvoted = interaction.upvoted
            view.flagged = interaction.flagged
            view.flag_label = "Flagged" if interaction.flagged else "Flag"

        replies = node.children
        view.reply_count = len(replies)
        if replies:
            view.collapsed = interaction.collapsed
            view.collapse_label = (
                f"Show {len(replies)} replies" if interaction.collapsed else "Collapse"
            )
        if replies and not interaction.collapsed:
            shown = replies
            if len(replies) > collapse_threshold and not interaction.show_all_replies:
                shown = replies[:collapse_threshold]
                view.more_replies = len(replies) - collapse_threshold
                view.more_replies_label = f"{view.more_replies} more replies..."
            view.replies = [render(child) for child in shown]
        return view

    return [render(root_id) for root_id in sort_roots(tree, sort)]
