"""Test configuration and fixtures."""

import json
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest
from fastapi.testclient import TestClient

from artifact_feedback.api import app
from artifact_feedback.config import Settings, get_settings
from artifact_feedback.db.base import build_engine, get_session_local, init_database
from artifact_feedback.feedback.comment import Comment
from artifact_feedback.feedback.dependencies import get_backend
from artifact_feedback.feedback.enums import CommentKind, CommentStatus
from artifact_feedback.feedback.primitives import AgentIdentity, AgentRef
from artifact_feedback.feedback.services import CommentService, RatingService
from artifact_feedback.storage import FailoverBackend, FileBackend, PrimaryBackend

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

API_KEYS = {
    "alice-key": {
        "agent_id": "agt_alice",
        "handle": "@alice@local",
        "display_name": "Alice",
        "trustTier": "verified",
    },
    "bob-key": {"agent_id": "agt_bob", "handle": "@bob@local", "display_name": "Bob"},
    "mod-key": {
        "agent_id": "agt_mod",
        "handle": "@mod@local",
        "display_name": "Mod",
        "trust_tier": "known",
        "is_moderator": True,
    },
}


@pytest.fixture
def alice() -> AgentIdentity:
    return AgentIdentity.model_validate(API_KEYS["alice-key"])


@pytest.fixture
def bob() -> AgentIdentity:
    return AgentIdentity.model_validate(API_KEYS["bob-key"])


# =============================================================================
# Backends
# =============================================================================


@pytest.fixture
def primary_backend() -> PrimaryBackend:
    """Primary backend over an in-memory SQLite database with tables created."""
    engine = build_engine("sqlite://")
    init_database(engine)
    yield PrimaryBackend(get_session_local(engine))
    engine.dispose()


@pytest.fixture
def missing_primary() -> PrimaryBackend:
    """Primary backend whose tables were never created."""
    engine = build_engine("sqlite://")
    yield PrimaryBackend(get_session_local(engine))
    engine.dispose()


@pytest.fixture
def file_backend(tmp_path) -> FileBackend:
    return FileBackend(
        tmp_path / "data" / "artifact_comments.json",
        tmp_path / "data" / "artifact_ratings.json",
    )


@pytest.fixture
def failover_backend(missing_primary, file_backend) -> FailoverBackend:
    """Failover whose primary is missing its tables, so the file store serves."""
    return FailoverBackend(missing_primary, file_backend)


@pytest.fixture(params=["primary", "file", "failover"])
def backend(request):
    """Every backend configuration must behave identically."""
    return request.getfixturevalue(f"{request.param}_backend")


@pytest.fixture
def comment_service(backend) -> CommentService:
    return CommentService(backend)


@pytest.fixture
def rating_service(backend) -> RatingService:
    return RatingService(backend)


@pytest.fixture
def make_comment() -> Callable[..., Comment]:
    """Build Comment objects with deterministic timestamps for direct inserts."""

    def _make(
        comment_id: str,
        artifact_id: str = "art_1",
        parent_id: Optional[str] = None,
        minutes: int = 0,
        status: CommentStatus = CommentStatus.VISIBLE,
        upvotes: int = 0,
        author_id: str = "agt_alice",
        created_at: Optional[datetime] = None,
    ) -> Comment:
        return Comment(
            id=comment_id,
            artifact_id=artifact_id,
            parent_id=parent_id,
            kind=CommentKind.REVIEW,
            raw_md=f"comment {comment_id}",
            body_md=f"comment {comment_id}",
            body_text=f"comment {comment_id}",
            author=AgentRef(agent_id=author_id, handle=f"@{author_id}"),
            status=status,
            upvotes=upvotes,
            created_at=created_at or BASE_TIME + timedelta(minutes=minutes),
        )

    return _make


# =============================================================================
# API
# =============================================================================


@pytest.fixture
def api_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "data",
        agent_api_keys_json=json.dumps(API_KEYS),
        create_tables_on_startup=False,
    )


@pytest.fixture
def client(api_settings, primary_backend) -> TestClient:
    """TestClient wired to a fresh primary backend and test API keys."""
    app.dependency_overrides[get_settings] = lambda: api_settings
    app.dependency_overrides[get_backend] = lambda: primary_backend
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def fallback_client(api_settings, failover_backend) -> TestClient:
    """TestClient whose primary store has no tables."""
    app.dependency_overrides[get_settings] = lambda: api_settings
    app.dependency_overrides[get_backend] = lambda: failover_backend
    yield TestClient(app)
    app.dependency_overrides.clear()
