"""Tests for thread building, interaction state and rendering."""

from datetime import timedelta

import pytest

from artifact_feedback.feedback.enums import CommentStatus, ThreadSort, TrustTier
from artifact_feedback.feedback.errors import CommentNotFoundError
from artifact_feedback.feedback.primitives import AgentRef
from artifact_feedback.feedback.thread import (
    HIDDEN_NOTICE,
    MAX_DEPTH_LABEL,
    REMOVED_NOTICE,
    SAVE_FAILED_MESSAGE,
    ThreadInput,
    ThreadState,
    build_tree,
    can_reply,
    flag,
    render_thread,
    sort_roots,
    upvote,
)


def _chain(make_comment, length):
    """c1 <- c2 <- ... <- c{length}, one reply per level."""
    comments = [make_comment("c1")]
    for i in range(2, length + 1):
        comments.append(make_comment(f"c{i}", parent_id=f"c{i - 1}", minutes=i))
    return comments


def _find(nodes, comment_id):
    for node in nodes:
        if node.id == comment_id:
            return node
        found = _find(node.replies, comment_id)
        if found is not None:
            return found
    return None


class TestBuildTree:
    """Tests for build_tree."""

    def test_depths_and_children(self, make_comment):
        tree = build_tree(
            [
                make_comment("a", minutes=1),
                make_comment("b", parent_id="a", minutes=3),
                make_comment("c", parent_id="a", minutes=2),
                make_comment("d", parent_id="c", minutes=4),
            ]
        )
        assert tree.roots == ("a",)
        assert tree.node("a").depth == 1
        assert tree.node("c").depth == 2
        assert tree.node("d").depth == 3
        # Replies are chronological regardless of input order
        assert tree.node("a").children == ("c", "b")
        assert [n.id for n in tree.walk()] == ["a", "c", "d", "b"]

    def test_orphan_becomes_root(self, make_comment):
        tree = build_tree([make_comment("a"), make_comment("b", parent_id="gone", minutes=1)])
        assert set(tree.roots) == {"a", "b"}
        assert tree.node("b").depth == 1

    def test_cycle_is_broken(self, make_comment):
        tree = build_tree(
            [
                make_comment("x", parent_id="y", minutes=1),
                make_comment("y", parent_id="x", minutes=2),
            ]
        )
        assert len(tree) == 2
        assert tree.roots == ("x",)
        assert tree.node("y").depth == 2

    def test_self_parent_is_root(self, make_comment):
        tree = build_tree([make_comment("a", parent_id="a")])
        assert tree.roots == ("a",)

    def test_nested_input_is_flattened(self, make_comment):
        reply = ThreadInput(**make_comment("r", minutes=1).model_dump(exclude={"parent_id"}))
        top = ThreadInput(**make_comment("t").model_dump(), replies=[reply])
        tree = build_tree([top])
        assert tree.comment("r").parent_id == "t"
        assert tree.node("r").depth == 2

    def test_unknown_id_raises(self, make_comment):
        tree = build_tree([make_comment("a")])
        with pytest.raises(CommentNotFoundError):
            tree.node("missing")


class TestSortRoots:
    """Only top-level comments are reordered."""

    @pytest.fixture
    def tree(self, make_comment):
        return build_tree(
            [
                make_comment("old", minutes=1, upvotes=3),
                make_comment("mid", minutes=2, upvotes=9),
                make_comment("new", minutes=3, upvotes=3),
                make_comment("r1", parent_id="old", minutes=5, upvotes=100),
                make_comment("r2", parent_id="old", minutes=4),
            ]
        )

    def test_newest(self, tree):
        assert sort_roots(tree, ThreadSort.NEWEST) == ["new", "mid", "old"]

    def test_oldest(self, tree):
        assert sort_roots(tree, "oldest") == ["old", "mid", "new"]

    def test_top_breaks_ties_by_recency(self, tree):
        assert sort_roots(tree, ThreadSort.TOP) == ["mid", "new", "old"]

    def test_replies_keep_chronological_order(self, tree):
        rendered = render_thread(tree, sort=ThreadSort.TOP)
        old = _find(rendered, "old")
        assert [r.id for r in old.replies] == ["r2", "r1"]


class TestModerationRendering:
    """Hidden and removed comments render as placeholders with their replies."""

    @pytest.fixture
    def tree(self, make_comment):
        return build_tree(
            [
                make_comment("hidden", minutes=1, status=CommentStatus.HIDDEN),
                make_comment("under-hidden-1", parent_id="hidden", minutes=2, status=CommentStatus.HIDDEN),
                make_comment("under-hidden-2", parent_id="hidden", minutes=3, status=CommentStatus.HIDDEN),
                make_comment("removed", minutes=4, status=CommentStatus.REMOVED),
                make_comment("under-removed-1", parent_id="removed", minutes=5),
                make_comment("under-removed-2", parent_id="removed", minutes=6),
            ]
        )

    def test_hidden_placeholder(self, tree):
        node = _find(render_thread(tree), "hidden")
        assert node.variant == "hidden"
        assert node.notice == HIDDEN_NOTICE
        assert node.show_anyway is True
        assert node.body_md is None
        assert node.author is None
        assert node.can_reply is False
        assert [r.id for r in node.replies] == ["under-hidden-1", "under-hidden-2"]

    def test_removed_placeholder_keeps_both_replies(self, tree):
        node = _find(render_thread(tree), "removed")
        assert node.variant == "removed"
        assert node.notice == REMOVED_NOTICE
        assert node.show_anyway is False
        assert node.body_md is None
        assert [r.id for r in node.replies] == ["under-removed-1", "under-removed-2"]
        assert all(r.variant == "comment" and r.depth == 2 for r in node.replies)

    def test_show_anyway_reveals_hidden_comment(self, tree):
        state = ThreadState(tree)
        assert can_reply(tree, state, "hidden") is False
        state.reveal("hidden")
        node = _find(render_thread(tree, state), "hidden")
        assert node.variant == "comment"
        assert node.revealed is True
        assert node.body_md == "comment hidden"
        assert can_reply(tree, state, "hidden") is True

    def test_hidden_children_are_revealed_independently(self, tree):
        state = ThreadState(tree)
        state.reveal("under-hidden-2")
        rendered = render_thread(tree, state)

        assert _find(rendered, "hidden").variant == "hidden"
        assert _find(rendered, "under-hidden-1").variant == "hidden"
        revealed = _find(rendered, "under-hidden-2")
        assert revealed.variant == "comment"
        assert revealed.body_md == "comment under-hidden-2"

    def test_removed_cannot_be_replied_to(self, tree):
        state = ThreadState(tree)
        assert can_reply(tree, state, "removed") is False
        assert state.toggle_reply(tree, "removed") is False


class TestDepthAndCollapse:
    """Tests for the depth cap and reply collapsing."""

    def test_reply_label_at_depth_cap(self, make_comment):
        tree = build_tree(_chain(make_comment, 5))
        rendered = render_thread(tree, max_depth=5)
        assert _find(rendered, "c4").reply_label == "Reply"
        deepest = _find(rendered, "c5")
        assert deepest.depth == 5
        assert deepest.can_reply is False
        assert deepest.reply_label == MAX_DEPTH_LABEL

    def test_toggle_reply_refused_at_cap(self, make_comment):
        tree = build_tree(_chain(make_comment, 3))
        state = ThreadState(tree)
        assert state.toggle_reply(tree, "c3", max_depth=3) is False
        assert state.toggle_reply(tree, "c2", max_depth=3) is True
        assert state.get("c2").replying is True

    def test_replies_beyond_threshold_are_summarized(self, make_comment):
        comments = [make_comment("top")]
        comments += [make_comment(f"r{i}", parent_id="top", minutes=i + 1) for i in range(8)]
        tree = build_tree(comments)

        node = render_thread(tree, collapse_threshold=5)[0]
        assert [r.id for r in node.replies] == ["r0", "r1", "r2", "r3", "r4"]
        assert node.more_replies == 3
        assert node.more_replies_label == "3 more replies..."
        assert node.reply_count == 8

        state = ThreadState(tree)
        state.expand_replies("top")
        node = render_thread(tree, state, collapse_threshold=5)[0]
        assert len(node.replies) == 8
        assert node.more_replies_label is None

    def test_collapse_hides_replies(self, make_comment):
        tree = build_tree([make_comment("a"), make_comment("b", parent_id="a", minutes=1)])
        state = ThreadState(tree)
        assert render_thread(tree, state)[0].collapse_label == "Collapse"

        state.toggle_collapsed("a")
        node = render_thread(tree, state)[0]
        assert node.collapsed is True
        assert node.replies == []
        assert node.collapse_label == "Show 1 replies"

    def test_leaf_has_no_collapse_control(self, make_comment):
        node = render_thread(build_tree([make_comment("a")]))[0]
        assert node.collapse_label is None


class TestUnverifiedWarning:
    """The unverified banner applies to top-level comments only."""

    def test_banner_only_at_top_level(self, make_comment):
        tree = build_tree(
            [
                make_comment("top", author_id="agt_anon"),
                make_comment("reply", parent_id="top", minutes=1, author_id="agt_anon"),
            ]
        )
        top = render_thread(tree)[0]
        assert top.show_unverified_warning is True
        assert top.replies[0].show_unverified_warning is False

    def test_known_tiers_suppress_banner(self, make_comment):
        tree = build_tree([make_comment("a", author_id="agt_known")])
        rendered = render_thread(tree, trust_tiers={"agt_known": TrustTier.KNOWN})
        assert rendered[0].show_unverified_warning is False

    def test_author_tier_on_comment_wins(self, make_comment):
        comment = make_comment("a").model_copy(
            update={"author": AgentRef(agent_id="agt_x", trust_tier=TrustTier.VERIFIED)}
        )
        assert render_thread(build_tree([comment]))[0].show_unverified_warning is False


class TestOptimisticActions:
    """Upvote and flag apply immediately and roll back on failure."""

    @pytest.fixture
    def tree(self, make_comment):
        return build_tree([make_comment("a", upvotes=2)])

    def test_upvote_toggles(self, tree):
        state = ThreadState(tree)
        writes = []

        result = upvote(state, "a", lambda cid, upvoted: writes.append((cid, upvoted)))
        assert result.ok is True
        assert state.get("a").upvoted is True
        assert state.get("a").upvote_count == 3

        upvote(state, "a", lambda cid, upvoted: writes.append((cid, upvoted)))
        assert state.get("a").upvoted is False
        assert state.get("a").upvote_count == 2
        assert writes == [("a", True), ("a", False)]

    def test_failed_upvote_rolls_back(self, tree):
        state = ThreadState(tree)

        def failing_write(comment_id, upvoted):
            raise ConnectionError("offline")

        result = upvote(state, "a", failing_write)
        assert result.ok is False
        assert result.message == SAVE_FAILED_MESSAGE
        assert state.get("a").upvoted is False
        assert state.get("a").upvote_count == 2
        assert render_thread(tree, state)[0].upvote_count == 2

    def test_flag_is_one_shot(self, tree):
        state = ThreadState(tree)
        writes = []
        assert flag(state, "a", writes.append).ok is True
        assert flag(state, "a", writes.append).ok is True
        assert writes == ["a"]
        node = render_thread(tree, state)[0]
        assert node.flagged is True
        assert node.flag_label == "Flagged"

    def test_failed_flag_rolls_back(self, tree):
        state = ThreadState(tree)

        def failing_write(comment_id):
            raise ConnectionError("offline")

        result = flag(state, "a", failing_write)
        assert result.ok is False
        assert state.get("a").flagged is False

    def test_edited_marker(self, make_comment):
        comment = make_comment("a")
        edited = comment.model_copy(update={"updated_at": comment.created_at + timedelta(minutes=5)})
        assert render_thread(build_tree([comment]))[0].edited is False
        assert render_thread(build_tree([edited]))[0].edited is True

    def test_highlighted_comment(self, tree):
        assert render_thread(tree, highlighted_id="a")[0].highlighted is True

    def test_to_dict_is_json_ready(self, tree):
        data = render_thread(tree)[0].to_dict()
        assert data["id"] == "a"
        assert data["variant"] == "comment"
        assert data["author"]["agent_id"] == "agt_alice"
        assert isinstance(data["created_at"], str)
        assert data["replies"] == []
