"""create leaderboard_entry and database_metadata

Revision ID: 3a7c91d2e4b0
Revises:
Create Date: 2026-09-14 10:20:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3a7c91d2e4b0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'leaderboard_entry' not in existing_tables:
        op.create_table(
            'leaderboard_entry',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.Column('score', sa.Integer(), nullable=False),
            sa.Column('game_mode', sa.String(length=16), nullable=False),
            sa.Column('difficulty', sa.String(length=16), nullable=False),
            sa.Column('session_id', sa.String(length=32), nullable=True),
            sa.Column('legacy_key', sa.String(length=64), nullable=True, unique=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_leaderboard_entry_created_at', 'leaderboard_entry', ['created_at'])
        op.create_index('ix_leaderboard_mode_difficulty_score', 'leaderboard_entry',
                        ['game_mode', 'difficulty', 'score'])

    if 'database_metadata' not in existing_tables:
        op.create_table(
            'database_metadata',
            sa.Column('key', sa.String(length=64), primary_key=True),
            sa.Column('value', sa.Text(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )


def downgrade():
    op.drop_table('database_metadata')
    op.drop_index('ix_leaderboard_mode_difficulty_score', table_name='leaderboard_entry')
    op.drop_index('ix_leaderboard_entry_created_at', table_name='leaderboard_entry')
    op.drop_table('leaderboard_entry')
