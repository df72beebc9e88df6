"""create user and game tables

Revision ID: 1a7c3e9b2f40
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a7c3e9b2f40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'game',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('time_control', sa.Integer(), nullable=True),
        sa.Column('result', sa.String(length=16), nullable=True),
        sa.Column('end_reason', sa.String(length=32), nullable=True),
        sa.Column('creator_id', sa.String(length=36), nullable=False),
        sa.Column('white_player_id', sa.String(length=36), nullable=True),
        sa.Column('black_player_id', sa.String(length=36), nullable=True),
        sa.Column('winner_id', sa.String(length=36), nullable=True),
        sa.Column('white_time_remaining', sa.Integer(), nullable=True),
        sa.Column('black_time_remaining', sa.Integer(), nullable=True),
        sa.Column('last_move_at', sa.DateTime(), nullable=True),
        sa.Column('turn_color', sa.String(length=5), nullable=True),
        sa.Column('move_log', sa.Text(), nullable=False, server_default=''),
        sa.Column('position', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['creator_id'], ['user.id']),
        sa.ForeignKeyConstraint(['white_player_id'], ['user.id']),
        sa.ForeignKeyConstraint(['black_player_id'], ['user.id']),
        sa.ForeignKeyConstraint(['winner_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_game_status', 'game', ['status'])
    op.create_index('ix_game_created_at', 'game', ['created_at'])
    op.create_index('ix_game_creator_id', 'game', ['creator_id'])
    op.create_index('ix_game_white_player_id', 'game', ['white_player_id'])
    op.create_index('ix_game_black_player_id', 'game', ['black_player_id'])


def downgrade():
    op.drop_table('game')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
