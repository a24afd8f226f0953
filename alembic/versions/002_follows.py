"""Follow graph for the friends feed.

Revision ID: 002_follows
Revises: 001_game_economy
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_follows"
down_revision: str | None = "001_game_economy"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS follows (
            id BIGSERIAL PRIMARY KEY,
            follower_id VARCHAR(64) NOT NULL REFERENCES user_progress(user_id) ON DELETE CASCADE,
            following_id VARCHAR(64) NOT NULL REFERENCES user_progress(user_id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_follows_pair UNIQUE (follower_id, following_id),
            CONSTRAINT ck_follows_not_self CHECK (follower_id <> following_id)
        )
    """)
    # The unique pair index already serves "who do I follow"
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_follows_following
        ON follows(following_id)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS follows CASCADE")
