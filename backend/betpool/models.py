from betpool import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import json

# Round lifecycle: upcoming -> active -> closed -> settled
ROUND_UPCOMING = 'upcoming'
ROUND_ACTIVE = 'active'
ROUND_CLOSED = 'closed'
ROUND_SETTLED = 'settled'
ROUND_STATUSES = (ROUND_UPCOMING, ROUND_ACTIVE, ROUND_CLOSED, ROUND_SETTLED)

MATCH_SCHEDULED = 'scheduled'
MATCH_LIVE = 'live'
MATCH_FINISHED = 'finished'

PAYMENT_PENDING = 'pending'
PAYMENT_PAID = 'paid'
PAYMENT_REJECTED = 'rejected'

OUTCOME_HOME = 'HOME'
OUTCOME_DRAW = 'DRAW'
OUTCOME_AWAY = 'AWAY'
OUTCOMES = (OUTCOME_HOME, OUTCOME_DRAW, OUTCOME_AWAY)

NOTIFICATION_ROUND_SETTLED = 'round_settled'
NOTIFICATION_PRIZE_WON = 'prize_won'
NOTIFICATION_GENERIC = 'generic'


def utcnow() -> datetime:
    """Naive UTC timestamp; every datetime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


def _money(value):
    return str(value) if value is not None else None


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(120), nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=True)
    password_hash = db.Column(db.String(256), nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    # Derived: sum of points across settled bets, rewritten by the ranking refresh
    total_points = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    tickets = db.relationship('Ticket', back_populates='user')

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def name(self):
        return self.display_name or self.username

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'display_name': self.name,
            'email': self.email,
            'is_admin': self.is_admin,
            'total_points': self.total_points,
        }


class Team(db.Model):
    __tablename__ = 'team'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    short_name = db.Column(db.String(16), nullable=False)

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'short_name': self.short_name}


class Competition(db.Model):
    __tablename__ = 'competition'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    season_year = db.Column(db.Integer, nullable=False)
    rounds = db.relationship('Round', back_populates='competition', order_by='Round.round_number')

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'season_year': self.season_year}


class Round(db.Model):
    __tablename__ = 'round'
    __table_args__ = (
        db.UniqueConstraint('competition_id', 'round_number', name='uq_round_competition_number'),
        db.CheckConstraint('bets_deadline <= end_date', name='ck_round_deadline_before_end'),
        db.CheckConstraint('ticket_price >= 0', name='ck_round_ticket_price'),
    )
    id = db.Column(db.Integer, primary_key=True)
    competition_id = db.Column(db.Integer, db.ForeignKey('competition.id'), nullable=False)
    round_number = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    bets_deadline = db.Column(db.DateTime, nullable=False)
    ticket_price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=ROUND_UPCOMING)  # upcoming, active, closed, settled
    settled_at = db.Column(db.DateTime, nullable=True)

    competition = db.relationship('Competition', back_populates='rounds')
    matches = db.relationship('Match', back_populates='round', order_by='Match.scheduled_at',
                              cascade='all, delete-orphan')
    tickets = db.relationship('Ticket', back_populates='round')

    def to_dict(self, include_matches=False):
        data = {
            'id': self.id,
            'competition_id': self.competition_id,
            'round_number': self.round_number,
            'name': self.name,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'bets_deadline': _iso(self.bets_deadline),
            'ticket_price': _money(self.ticket_price),
            'status': self.status,
            'settled_at': _iso(self.settled_at),
        }
        if include_matches:
            data['matches'] = [m.to_dict() for m in self.matches]
        return data


class Match(db.Model):
    __tablename__ = 'match'
    __table_args__ = (
        db.CheckConstraint('home_team_id <> away_team_id', name='ck_match_distinct_teams'),
        db.CheckConstraint('home_score IS NULL OR home_score >= 0', name='ck_match_home_score'),
        db.CheckConstraint('away_score IS NULL OR away_score >= 0', name='ck_match_away_score'),
    )
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False, index=True)
    home_team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    away_team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    scheduled_at = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=MATCH_SCHEDULED)  # scheduled, live, finished
    home_score = db.Column(db.Integer, nullable=True)
    away_score = db.Column(db.Integer, nullable=True)
    settled_at = db.Column(db.DateTime, nullable=True)

    round = db.relationship('Round', back_populates='matches')
    home_team = db.relationship('Team', foreign_keys=[home_team_id])
    away_team = db.relationship('Team', foreign_keys=[away_team_id])
    bets = db.relationship('Bet', back_populates='match', lazy='dynamic')

    @property
    def is_finished(self):
        return self.status == MATCH_FINISHED

    def to_dict(self):
        return {
            'id': self.id,
            'round_id': self.round_id,
            'home_team': self.home_team.to_dict() if self.home_team else None,
            'away_team': self.away_team.to_dict() if self.away_team else None,
            'scheduled_at': _iso(self.scheduled_at),
            'status': self.status,
            'home_score': self.home_score,
            'away_score': self.away_score,
        }


class Ticket(db.Model):
    __tablename__ = 'ticket'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'round_id', name='uq_ticket_user_round'),
    )
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_PENDING)  # pending, paid, rejected
    paid_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    user = db.relationship('User', back_populates='tickets')
    round = db.relationship('Round', back_populates='tickets')
    bets = db.relationship('Bet', back_populates='ticket', cascade='all, delete-orphan')

    @property
    def is_paid(self):
        return self.payment_status == PAYMENT_PAID

    def to_dict(self, include_bets=True):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'round_id': self.round_id,
            'payment_status': self.payment_status,
            'paid_at': _iso(self.paid_at),
        }
        if include_bets:
            data['bets'] = [b.to_dict() for b in sorted(self.bets, key=lambda b: b.match_id)]
        return data


class Bet(db.Model):
    __tablename__ = 'bet'
    __table_args__ = (
        db.UniqueConstraint('ticket_id', 'match_id', name='uq_bet_ticket_match'),
    )
    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey('ticket.id'), nullable=False, index=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False, index=True)
    predicted_outcome = db.Column(db.String(8), nullable=False)  # HOME, DRAW, AWAY
    predicted_home_score = db.Column(db.Integer, nullable=True)
    predicted_away_score = db.Column(db.Integer, nullable=True)
    # Only the settlement coordinator writes this; null until the match is settled
    points = db.Column(db.Integer, nullable=True)

    ticket = db.relationship('Ticket', back_populates='bets')
    match = db.relationship('Match', back_populates='bets')

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'predicted_outcome': self.predicted_outcome,
            'predicted_home_score': self.predicted_home_score,
            'predicted_away_score': self.predicted_away_score,
            'points': self.points,
        }


class PrizeAllocation(db.Model):
    """Settlement marker: one row per settled round, written exactly once."""
    __tablename__ = 'prize_allocation'
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False, unique=True)
    outcome = db.Column(db.String(32), nullable=False)  # awarded, no_paid_tickets
    prize_pool = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    winning_score = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    notified_at = db.Column(db.DateTime, nullable=True)

    round = db.relationship('Round')
    awards = db.relationship('PrizeAward', back_populates='allocation', order_by='PrizeAward.id',
                             cascade='all, delete-orphan')


class PrizeAward(db.Model):
    __tablename__ = 'prize_award'
    id = db.Column(db.Integer, primary_key=True)
    allocation_id = db.Column(db.Integer, db.ForeignKey('prize_allocation.id'), nullable=False, index=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey('ticket.id'), nullable=False, unique=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)

    allocation = db.relationship('PrizeAllocation', back_populates='awards')
    ticket = db.relationship('Ticket')


class Notification(db.Model):
    __tablename__ = 'notification'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    type = db.Column(db.String(32), nullable=False, default=NOTIFICATION_GENERIC)  # round_settled, prize_won, generic
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    data = db.Column(db.Text, nullable=True)  # JSON-encoded payload

    @property
    def payload(self):
        return json.loads(self.data) if self.data else {}

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'is_read': self.is_read,
            'created_at': _iso(self.created_at),
            'data': self.payload,
        }
