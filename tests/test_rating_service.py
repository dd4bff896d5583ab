"""Tests for RatingService upserts and summaries."""

from datetime import datetime, timedelta, timezone

import pytest

from artifact_feedback.feedback.errors import ValidationError
from artifact_feedback.feedback.primitives import AgentRef
from artifact_feedback.feedback.rating import Rating
from artifact_feedback.feedback.services import summarize


class TestUpsert:
    """One rating per (artifact, rater)."""

    def test_first_rating_is_created(self, rating_service, alice):
        result = rating_service.upsert("art_1", alice, 4, {"usefulness": 5}, "Solid.")
        assert result.created is True
        assert result.rating.score == 4
        assert result.rating.dims == {"usefulness": 5}
        assert result.rating.rater.agent_id == "agt_alice"

    def test_second_rating_updates_in_place(self, rating_service, alice):
        first = rating_service.upsert("art_1", alice, 2, {"novelty": 1}, "Meh.")
        second = rating_service.upsert("art_1", alice, 5, {"correctness": 4}, "Better now.", "v2")

        assert second.created is False
        assert second.rating.id == first.rating.id
        assert second.rating.created_at == first.rating.created_at
        assert second.rating.updated_at > first.rating.updated_at
        assert second.rating.score == 5
        assert second.rating.dims == {"correctness": 4}
        assert second.rating.notes_md == "v2"
        assert len(rating_service.backend.list_ratings("art_1")) == 1

    def test_updated_at_advances_when_clock_stands_still(self, rating_service, alice, monkeypatch):
        frozen = datetime(2026, 1, 1, tzinfo=timezone.utc)
        monkeypatch.setattr("artifact_feedback.feedback.services.utc_now", lambda: frozen)

        first = rating_service.upsert("art_1", alice, 2, {}, "One.")
        second = rating_service.upsert("art_1", alice, 3, {}, "Two.")
        third = rating_service.upsert("art_1", alice, 4, {}, "Three.")

        assert first.rating.updated_at == frozen
        assert second.rating.updated_at == frozen + timedelta(microseconds=1)
        assert third.rating.updated_at == frozen + timedelta(microseconds=2)
        assert third.rating.created_at == frozen

    def test_repeated_identical_upsert_is_idempotent(self, rating_service, alice):
        for _ in range(3):
            rating_service.upsert("art_1", alice, 3, {}, "Same.")
        ratings = rating_service.backend.list_ratings("art_1")
        assert len(ratings) == 1
        assert ratings[0].score == 3

    def test_different_raters_and_artifacts_are_separate(self, rating_service, alice, bob):
        rating_service.upsert("art_1", alice, 3, {}, "a")
        rating_service.upsert("art_1", bob, 5, {}, "b")
        rating_service.upsert("art_2", alice, 1, {}, "c")
        assert len(rating_service.backend.list_ratings("art_1")) == 2
        assert len(rating_service.backend.list_ratings("art_2")) == 1

    @pytest.mark.parametrize("score", [0, 6, 3.5, None, "4", True])
    def test_bad_score_rejected(self, rating_service, alice, score):
        with pytest.raises(ValidationError):
            rating_service.upsert("art_1", alice, score, {}, "x")

    def test_bad_dims_rejected(self, rating_service, alice):
        with pytest.raises(ValidationError) as exc_info:
            rating_service.upsert("art_1", alice, 3, {"usefulness": 9, "vibes": 2}, "x")
        details = exc_info.value.details
        assert any("dims.usefulness" in d for d in details)
        assert any("dims.vibes" in d for d in details)

    def test_rejected_rating_is_not_stored(self, rating_service, alice):
        with pytest.raises(ValidationError):
            rating_service.upsert("art_1", alice, 9, {}, "x")
        assert rating_service.backend.list_ratings("art_1") == []


class TestSummary:
    """Tests for rating aggregation."""

    def test_empty_summary(self, rating_service):
        summary = rating_service.summary("art_1")
        assert summary.count == 0
        assert summary.avg is None
        assert summary.dims_avg == {}
        assert summary.updated_at.tzinfo is not None

    def test_summary_averages(self, rating_service, alice, bob):
        rating_service.upsert("art_1", alice, 4, {"usefulness": 5, "novelty": 2}, "a")
        rating_service.upsert("art_1", bob, 1, {"usefulness": 3}, "b")
        summary = rating_service.summary("art_1")
        assert summary.count == 2
        assert summary.avg == pytest.approx(2.5)
        # Each dimension is averaged over the raters that supplied it
        assert summary.dims_avg == {"usefulness": pytest.approx(4.0), "novelty": pytest.approx(2.0)}

    def test_summary_with_one_dimension(self, rating_service, alice, bob):
        rating_service.upsert("art_1", alice, 2, {"usefulness": 5}, "a")
        rating_service.upsert("art_1", bob, 4, {}, "b")
        summary = rating_service.summary("art_1")
        assert summary.count == 2
        assert summary.avg == pytest.approx(3.0)
        assert summary.dims_avg == {"usefulness": pytest.approx(5.0)}

    def test_summary_reflects_latest_rating(self, rating_service, alice):
        rating_service.upsert("art_1", alice, 1, {}, "a")
        rating_service.upsert("art_1", alice, 5, {}, "b")
        summary = rating_service.summary("art_1")
        assert summary.count == 1
        assert summary.avg == 5


def _rating(agent_id, score, dims, updated_at):
    return Rating(
        artifact_id="art_1",
        rater=AgentRef(agent_id=agent_id),
        score=score,
        dims=dims,
        raw_md="x",
        created_at=updated_at,
        updated_at=updated_at,
    )


class TestSummarize:
    """Tests for the pure aggregation function."""

    def test_updated_at_is_latest_rating(self):
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        ratings = [
            _rating("a", 2, {}, base),
            _rating("b", 4, {"correctness": 3}, base + timedelta(hours=2)),
            _rating("c", 3, {}, base + timedelta(hours=1)),
        ]
        summary = summarize("art_1", ratings)
        assert summary.count == 3
        assert summary.avg == pytest.approx(3.0)
        assert summary.dims_avg == {"correctness": pytest.approx(3.0)}
        assert summary.updated_at == base + timedelta(hours=2)
