"""create betting pool schema

Revision ID: 4c2a9d1e7b30
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2a9d1e7b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=120), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True, unique=True),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'team',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('short_name', sa.String(length=16), nullable=False),
    )

    op.create_table(
        'competition',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('season_year', sa.Integer(), nullable=False),
    )

    op.create_table(
        'round',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('competition_id', sa.Integer(), sa.ForeignKey('competition.id'), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('bets_deadline', sa.DateTime(), nullable=False),
        sa.Column('ticket_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='upcoming'),
        sa.Column('settled_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('competition_id', 'round_number', name='uq_round_competition_number'),
        sa.CheckConstraint('bets_deadline <= end_date', name='ck_round_deadline_before_end'),
        sa.CheckConstraint('ticket_price >= 0', name='ck_round_ticket_price'),
    )

    op.create_table(
        'match',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('round_id', sa.Integer(), sa.ForeignKey('round.id'), nullable=False),
        sa.Column('home_team_id', sa.Integer(), sa.ForeignKey('team.id'), nullable=False),
        sa.Column('away_team_id', sa.Integer(), sa.ForeignKey('team.id'), nullable=False),
        sa.Column('scheduled_at', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='scheduled'),
        sa.Column('home_score', sa.Integer(), nullable=True),
        sa.Column('away_score', sa.Integer(), nullable=True),
        sa.Column('settled_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('home_team_id <> away_team_id', name='ck_match_distinct_teams'),
        sa.CheckConstraint('home_score IS NULL OR home_score >= 0', name='ck_match_home_score'),
        sa.CheckConstraint('away_score IS NULL OR away_score >= 0', name='ck_match_away_score'),
    )
    op.create_index('ix_match_round_id', 'match', ['round_id'])

    op.create_table(
        'ticket',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('round_id', sa.Integer(), sa.ForeignKey('round.id'), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'round_id', name='uq_ticket_user_round'),
    )
    op.create_index('ix_ticket_user_id', 'ticket', ['user_id'])
    op.create_index('ix_ticket_round_id', 'ticket', ['round_id'])

    op.create_table(
        'bet',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('ticket.id'), nullable=False),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('match.id'), nullable=False),
        sa.Column('predicted_outcome', sa.String(length=8), nullable=False),
        sa.Column('predicted_home_score', sa.Integer(), nullable=True),
        sa.Column('predicted_away_score', sa.Integer(), nullable=True),
        sa.Column('points', sa.Integer(), nullable=True),
        sa.UniqueConstraint('ticket_id', 'match_id', name='uq_bet_ticket_match'),
    )
    op.create_index('ix_bet_ticket_id', 'bet', ['ticket_id'])
    op.create_index('ix_bet_match_id', 'bet', ['match_id'])

    op.create_table(
        'prize_allocation',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('round_id', sa.Integer(), sa.ForeignKey('round.id'), nullable=False, unique=True),
        sa.Column('outcome', sa.String(length=32), nullable=False),
        sa.Column('prize_pool', sa.Numeric(12, 2), nullable=False),
        sa.Column('winning_score', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('notified_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'prize_award',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('allocation_id', sa.Integer(), sa.ForeignKey('prize_allocation.id'), nullable=False),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('ticket.id'), nullable=False, unique=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
    )
    op.create_index('ix_prize_award_allocation_id', 'prize_award', ['allocation_id'])
    op.create_index('ix_prize_award_user_id', 'prize_award', ['user_id'])

    op.create_table(
        'notification',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('data', sa.Text(), nullable=True),
    )
    op.create_index('ix_notification_user_id', 'notification', ['user_id'])


def downgrade():
    op.drop_table('notification')
    op.drop_table('prize_award')
    op.drop_table('prize_allocation')
    op.drop_table('bet')
    op.drop_table('ticket')
    op.drop_table('match')
    op.drop_table('round')
    op.drop_table('competition')
    op.drop_table('team')
    op.drop_table('user')
