import os
import sys
from datetime import timedelta
from decimal import Decimal

import pytest

# Ensure the backend root (containing the `betpool` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from betpool import create_app, db, socketio
from betpool.models import (
    Bet, Competition, Match, Round, Team, Ticket, User, utcnow,
    PAYMENT_PAID, PAYMENT_PENDING, ROUND_ACTIVE,
)


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    SETTLEMENT_LOCK_TIMEOUT_SEC = 0.1
    ROUND_POLL_INTERVAL_SEC = 0


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import betpool.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


class PoolFactory:
    """Builds rows directly, bypassing the betting guards, for engine tests."""

    def __init__(self):
        self._seq = 0
        self._competition = None

    def _next(self):
        self._seq += 1
        return self._seq

    def user(self, username=None, is_admin=False, created_at=None, password='password'):
        n = self._next()
        user = User(
            username=username or f'user{n}',
            display_name=(username or f'user{n}').title(),
            email=f'{username or "user" + str(n)}@example.com',
            is_admin=is_admin,
            created_at=created_at or (utcnow() - timedelta(days=365) + timedelta(minutes=n)),
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    def competition(self):
        if self._competition is None:
            self._competition = Competition(name='Brasileirao', season_year=2026)
            db.session.add(self._competition)
            db.session.commit()
        return self._competition

    def round(self, n_matches=2, status=ROUND_ACTIVE, ticket_price='10.00', competition=None,
              start_date=None, bets_deadline=None, end_date=None):
        now = utcnow()
        competition = competition or self.competition()
        n = self._next()
        round_ = Round(
            competition=competition,
            round_number=n,
            name=f'Round {n}',
            start_date=start_date or now - timedelta(days=1),
            bets_deadline=bets_deadline or now + timedelta(days=1),
            end_date=end_date or now + timedelta(days=3),
            ticket_price=Decimal(ticket_price),
            status=status,
        )
        db.session.add(round_)
        for idx in range(n_matches):
            home = Team(name=f'Home {n}-{idx}', short_name=f'H{idx}')
            away = Team(name=f'Away {n}-{idx}', short_name=f'A{idx}')
            db.session.add_all([home, away])
            db.session.add(Match(round=round_, home_team=home, away_team=away,
                                 scheduled_at=now + timedelta(days=2, hours=idx)))
        db.session.commit()
        return round_

    def ticket(self, user, round_, predictions, paid=False, paid_at=None):
        """``predictions`` holds one (outcome, home, away) tuple per match, in match id order."""
        ticket = Ticket(
            user_id=user.id,
            round_id=round_.id,
            payment_status=PAYMENT_PAID if paid else PAYMENT_PENDING,
            paid_at=(paid_at or utcnow()) if paid else None,
        )
        matches = Match.query.filter_by(round_id=round_.id).order_by(Match.id).all()
        for match, (outcome, home, away) in zip(matches, predictions):
            ticket.bets.append(Bet(match_id=match.id, predicted_outcome=outcome,
                                   predicted_home_score=home, predicted_away_score=away))
        db.session.add(ticket)
        db.session.commit()
        return ticket


@pytest.fixture()
def factory(flask_app):
    return PoolFactory()


def matches_of(round_):
    return Match.query.filter_by(round_id=round_.id).order_by(Match.id).all()


def login(client, username, password='password'):
    res = client.post('/login', json={'username': username, 'password': password})
    assert res.status_code == 200
    return res
