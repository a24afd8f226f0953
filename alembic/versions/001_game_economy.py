"""Game economy tables.

Creates user_progress, xp_ledger, boosters, offline_actions, activities,
league_snapshots and purchases.

Revision ID: 001_game_economy
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_game_economy"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- User progression ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_progress (
            user_id VARCHAR(64) PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            xp BIGINT NOT NULL DEFAULT 0 CONSTRAINT ck_user_progress_xp CHECK (xp >= 0),
            weekly_xp BIGINT NOT NULL DEFAULT 0 CONSTRAINT ck_user_progress_weekly_xp CHECK (weekly_xp >= 0),
            lifetime_xp BIGINT NOT NULL DEFAULT 0 CONSTRAINT ck_user_progress_lifetime_xp CHECK (lifetime_xp >= 0),
            level INTEGER NOT NULL DEFAULT 1,
            gems INTEGER NOT NULL DEFAULT 50 CONSTRAINT ck_user_progress_gems CHECK (gems >= 0),
            streak INTEGER NOT NULL DEFAULT 0 CONSTRAINT ck_user_progress_streak CHECK (streak >= 0),
            longest_streak INTEGER NOT NULL DEFAULT 0,
            streak_before_break INTEGER NOT NULL DEFAULT 0,
            last_active_date DATE,
            total_days_studied INTEGER NOT NULL DEFAULT 0,
            grace_passes_available INTEGER NOT NULL DEFAULT 1
                CONSTRAINT ck_user_progress_grace_passes CHECK (grace_passes_available >= 0),
            grace_passes_used INTEGER NOT NULL DEFAULT 0,
            league INTEGER NOT NULL DEFAULT 1 CONSTRAINT ck_user_progress_league CHECK (league BETWEEN 1 AND 4),
            league_position INTEGER NOT NULL DEFAULT 0,
            morning_bonus_date DATE,
            has_streak_bonus BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_progress_league_weekly
        ON user_progress(league, weekly_xp)
    """)

    # --- XP ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_ledger (
            id BIGSERIAL PRIMARY KEY,
            action_id VARCHAR(256) UNIQUE NOT NULL,
            user_id VARCHAR(64) NOT NULL REFERENCES user_progress(user_id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            base_amount INTEGER NOT NULL,
            source VARCHAR(128) NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_xp_ledger_user
        ON xp_ledger(user_id, id)
    """)

    # --- Boosters ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS boosters (
            id BIGSERIAL PRIMARY KEY,
            action_id VARCHAR(256) UNIQUE NOT NULL,
            user_id VARCHAR(64) NOT NULL REFERENCES user_progress(user_id) ON DELETE CASCADE,
            booster_type VARCHAR(4) NOT NULL CONSTRAINT ck_boosters_type CHECK (booster_type IN ('2x', '3x')),
            expires_at TIMESTAMPTZ NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT true,
            giver_id VARCHAR(64) REFERENCES user_progress(user_id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_boosters_user_active
        ON boosters(user_id, is_active, expires_at)
    """)

    # --- Offline actions (queue + processed-action record) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS offline_actions (
            id BIGSERIAL PRIMARY KEY,
            action_id VARCHAR(256) UNIQUE NOT NULL,
            user_id VARCHAR(64) NOT NULL REFERENCES user_progress(user_id) ON DELETE CASCADE,
            action_type VARCHAR(32) NOT NULL,
            payload JSONB NOT NULL DEFAULT '{}',
            processed BOOLEAN NOT NULL DEFAULT false,
            result JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            processed_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_offline_actions_pending
        ON offline_actions(user_id, processed, created_at)
    """)

    # --- Activity feed ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS activities (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES user_progress(user_id) ON DELETE CASCADE,
            activity_type VARCHAR(32) NOT NULL CONSTRAINT ck_activities_type CHECK (
                activity_type IN ('challenge_completed', 'milestone_reached', 'league_promoted', 'booster_gifted')
            ),
            details TEXT NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_activities_user
        ON activities(user_id, id)
    """)

    # --- League snapshots ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS league_snapshots (
            id BIGSERIAL PRIMARY KEY,
            period_start DATE UNIQUE NOT NULL,
            period_end DATE NOT NULL,
            rankings JSONB NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Purchases ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS purchases (
            id BIGSERIAL PRIMARY KEY,
            transaction_id VARCHAR(256) UNIQUE NOT NULL,
            user_id VARCHAR(64) NOT NULL REFERENCES user_progress(user_id) ON DELETE CASCADE,
            product_id VARCHAR(64) NOT NULL,
            entitlements JSONB NOT NULL DEFAULT '[]',
            gems_granted INTEGER NOT NULL DEFAULT 0,
            grace_passes_granted INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS purchases CASCADE")
    op.execute("DROP TABLE IF EXISTS league_snapshots CASCADE")
    op.execute("DROP TABLE IF EXISTS activities CASCADE")
    op.execute("DROP TABLE IF EXISTS offline_actions CASCADE")
    op.execute("DROP TABLE IF EXISTS boosters CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_ledger CASCADE")
    op.execute("DROP TABLE IF EXISTS user_progress CASCADE")
