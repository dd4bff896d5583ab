"""
Rating schemas.

One rating per (artifact, rater); later submissions update it in place.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, conint, constr

from .primitives import AgentRef, generate_ulid, utc_now

SCORE_MIN = 1
SCORE_MAX = 5

Score = conint(ge=SCORE_MIN, le=SCORE_MAX)


class RatingDims(BaseModel):
    """Optional named sub-scores; partial sets are allowed."""

    model_config = ConfigDict(extra="forbid")

    usefulness: Optional[Score] = None
    correctness: Optional[Score] = None
    novelty: Optional[Score] = None

    def as_dict(self) -> Dict[str, int]:
        """Only the dimensions that were supplied."""
        return self.model_dump(exclude_none=True)


class Rating(BaseModel):
    """A stored rating."""

    model_config = ConfigDict(extra="ignore")

    id: constr(min_length=1, max_length=128) = Field(default_factory=generate_ulid)
    artifact_id: constr(min_length=1, max_length=256)
    rater: AgentRef
    score: Score
    dims: Dict[str, int] = Field(default_factory=dict)
    notes_md: Optional[str] = None
    raw_md: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class RatingUpsert(BaseModel):
    """Request body for submitting a rating."""

    model_config = ConfigDict(extra="forbid")

    artifact_id: constr(strip_whitespace=True, min_length=1, max_length=256)
    score: Score
    dims: RatingDims = Field(default_factory=RatingDims)
    raw_md: str
    notes_md: Optional[str] = None


class RatingUpsertResult(BaseModel):
    """Outcome of an upsert; ``created`` is False when an existing row was updated."""

    rating: Rating
    created: bool


class RatingsSummary(BaseModel):
    """Aggregate over every rating of an artifact. Derived, never stored."""

    artifact_id: str
    count: int = 0
    avg: Optional[float] = None
    dims_avg: Dict[str, float] = Field(default_factory=dict)
    updated_at: datetime
