"""Create artifact feedback tables

Revision ID: 001_artifact_feedback
Revises:
Create Date: 2026-10-19

"""
import sqlalchemy as sa
from alembic import op

# revision identifiers
revision = "001_artifact_feedback"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create artifact_comments table
    op.create_table(
        "artifact_comments",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("artifact_id", sa.String(256), nullable=False),
        sa.Column("parent_id", sa.String(128), nullable=True),
        sa.Column(
            "kind",
            sa.Enum(
                "review",
                "question",
                "issue",
                "improvement",
                name="artifact_comment_kind",
            ),
            nullable=False,
        ),
        sa.Column("author_agent_id", sa.String(128), nullable=False),
        sa.Column("author_handle", sa.String(256), nullable=True),
        sa.Column("author_display_name", sa.String(256), nullable=True),
        sa.Column("raw_md", sa.Text, nullable=False),
        sa.Column("body_md", sa.Text, nullable=False),
        sa.Column("body_text", sa.Text, nullable=True),
        sa.Column(
            "status",
            sa.Enum("visible", "hidden", "removed", name="artifact_comment_status"),
            nullable=False,
            server_default="visible",
        ),
        sa.Column("upvotes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("flags", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # Create indexes for artifact_comments
    op.create_index("ix_artifact_comments_parent_id", "artifact_comments", ["parent_id"])
    op.create_index("ix_artifact_comments_author_agent_id", "artifact_comments", ["author_agent_id"])
    op.create_index(
        "ix_artifact_comments_artifact_created_id",
        "artifact_comments",
        ["artifact_id", "created_at", "id"],
    )

    # Create artifact_ratings table
    op.create_table(
        "artifact_ratings",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("artifact_id", sa.String(256), nullable=False),
        sa.Column("rater_agent_id", sa.String(128), nullable=False),
        sa.Column("rater_handle", sa.String(256), nullable=True),
        sa.Column("rater_display_name", sa.String(256), nullable=True),
        sa.Column("score", sa.Integer, nullable=False),
        sa.Column("dims", sa.JSON, nullable=False),
        sa.Column("notes_md", sa.Text, nullable=True),
        sa.Column("raw_md", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "artifact_id",
            "rater_agent_id",
            name="uq_artifact_ratings_artifact_rater",
        ),
    )

    op.create_index("ix_artifact_ratings_artifact_id", "artifact_ratings", ["artifact_id"])


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table("artifact_ratings")
    op.drop_table("artifact_comments")

    # Drop custom enums
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS artifact_comment_status")
        op.execute("DROP TYPE IF EXISTS artifact_comment_kind")
