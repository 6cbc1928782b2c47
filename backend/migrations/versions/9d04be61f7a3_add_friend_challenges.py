"""add friend_challenge and challenge_participant

Revision ID: 9d04be61f7a3
Revises: 3a7c91d2e4b0
Create Date: 2026-09-21 16:45:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '9d04be61f7a3'
down_revision = '3a7c91d2e4b0'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'friend_challenge' not in existing_tables:
        op.create_table(
            'friend_challenge',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('challenge_code', sa.String(length=6), nullable=False),
            sa.Column('title', sa.String(length=100), nullable=False),
            sa.Column('creator_name', sa.String(length=64), nullable=False),
            sa.Column('difficulty', sa.String(length=16), nullable=False),
            sa.Column('listing_ids', sa.Text(), nullable=False),
            sa.Column('max_participants', sa.Integer(), nullable=False),
            sa.Column('is_active', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('expires_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_friend_challenge_challenge_code', 'friend_challenge', ['challenge_code'], unique=True)

    if 'challenge_participant' not in existing_tables:
        op.create_table(
            'challenge_participant',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('challenge_id', sa.Integer(), sa.ForeignKey('friend_challenge.id'), nullable=False),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.Column('session_id', sa.String(length=32), nullable=False),
            sa.Column('final_score', sa.Integer(), nullable=True),
            sa.Column('completed_at', sa.DateTime(), nullable=True),
            sa.Column('joined_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('challenge_id', 'name', name='uq_challenge_participant_name'),
        )


def downgrade():
    op.drop_table('challenge_participant')
    op.drop_index('ix_friend_challenge_challenge_code', table_name='friend_challenge')
    op.drop_table('friend_challenge')
