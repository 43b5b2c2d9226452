"""create profiles, active_sessions, completed_runs, user_statistics

Revision ID: 3e1f9a2c7b10
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3e1f9a2c7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('is_visible', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_profiles_id', 'profiles', ['id'])

    op.create_table(
        'active_sessions',
        sa.Column('owner_id', sa.String(), nullable=False),
        sa.Column('current_lat', sa.Float(), nullable=False),
        sa.Column('current_lon', sa.Float(), nullable=False),
        sa.Column('route', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('owner_id')
    )
    op.create_index('ix_active_sessions_owner_id', 'active_sessions', ['owner_id'])

    op.create_table(
        'completed_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(length=64), nullable=False),
        sa.Column('owner_id', sa.String(), nullable=False),
        sa.Column('distance_m', sa.Float(), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=False),
        sa.Column('route', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stats_applied', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', name='uq_completed_runs_session_id')
    )
    op.create_index('ix_completed_runs_id', 'completed_runs', ['id'])
    op.create_index('ix_completed_runs_owner_id', 'completed_runs', ['owner_id'])

    op.create_table(
        'user_statistics',
        sa.Column('owner_id', sa.String(), nullable=False),
        sa.Column('total_runs', sa.Integer(), server_default='0', nullable=False),
        sa.Column('total_distance_m', sa.Float(), server_default='0', nullable=False),
        sa.Column('total_time_seconds', sa.Integer(), server_default='0', nullable=False),
        sa.PrimaryKeyConstraint('owner_id')
    )
    op.create_index('ix_user_statistics_owner_id', 'user_statistics', ['owner_id'])


def downgrade() -> None:
    # Safe drop if exists
    op.execute('DROP TABLE IF EXISTS user_statistics')
    op.execute('DROP TABLE IF EXISTS completed_runs')
    op.execute('DROP TABLE IF EXISTS active_sessions')
    op.execute('DROP TABLE IF EXISTS profiles')
