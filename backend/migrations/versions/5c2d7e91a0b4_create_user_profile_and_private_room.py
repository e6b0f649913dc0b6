"""create user_profile and private_room

Revision ID: 5c2d7e91a0b4
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2d7e91a0b4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user_profile',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('visitor_id', sa.String(length=64), nullable=False),
        sa.Column('username', sa.String(length=20), nullable=False),
        sa.Column('avatar', sa.String(length=16), nullable=False),
        sa.Column('matches_played', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('matches_won', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('matches_lost', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rounds_played', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rounds_won', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('win_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('best_win_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.Column('last_seen_at', sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('user_profile') as batch_op:
        batch_op.create_index(batch_op.f('ix_user_profile_visitor_id'), ['visitor_id'], unique=True)

    op.create_table(
        'private_room',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=8), nullable=False),
        sa.Column('host_visitor_id', sa.String(length=64), nullable=False),
        sa.Column('host_sid', sa.String(length=64), nullable=True),
        sa.Column('guest_visitor_id', sa.String(length=64), nullable=True),
        sa.Column('guest_sid', sa.String(length=64), nullable=True),
        sa.Column('match_id', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.Column('expires_at', sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('private_room') as batch_op:
        batch_op.create_index(batch_op.f('ix_private_room_code'), ['code'], unique=True)
        batch_op.create_index(batch_op.f('ix_private_room_host_visitor_id'), ['host_visitor_id'], unique=False)


def downgrade():
    with op.batch_alter_table('private_room') as batch_op:
        batch_op.drop_index(batch_op.f('ix_private_room_host_visitor_id'))
        batch_op.drop_index(batch_op.f('ix_private_room_code'))
    op.drop_table('private_room')
    with op.batch_alter_table('user_profile') as batch_op:
        batch_op.drop_index(batch_op.f('ix_user_profile_visitor_id'))
    op.drop_table('user_profile')
