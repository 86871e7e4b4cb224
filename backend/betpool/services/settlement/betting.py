from datetime import datetime
from typing import Dict, Iterable, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from betpool import db
from betpool.models import Bet, Match, Ticket, utcnow, OUTCOMES, PAYMENT_PAID, PAYMENT_PENDING
from .persistence import atomic, lock_timeout, match_locks
from .errors import BettingClosed, DuplicateTicket, InvalidPrediction, PersistenceFailure, TicketNotFound
from .rounds import ensure_betting_open, load_round
from .scoring import match_outcome


def _optional_goals(value, field: str, match_id: int) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidPrediction(f"Match {match_id}: {field} must be a non-negative integer")
    return value


def parse_predictions(predictions: Iterable[dict], match_ids: Iterable[int]) -> Dict[int, dict]:
    """Validate one prediction per match of the round.

    Each item needs ``match_id`` and ``outcome`` (HOME, DRAW or AWAY);
    ``home_score``/``away_score`` are optional but must come together and
    agree with the outcome.
    """
    expected = set(match_ids)
    parsed: Dict[int, dict] = {}
    for item in predictions or []:
        if not isinstance(item, dict):
            raise InvalidPrediction("Each prediction must be an object")
        match_id = item.get('match_id')
        if match_id not in expected:
            raise InvalidPrediction(f"Match {match_id!r} is not part of this round")
        if match_id in parsed:
            raise InvalidPrediction(f"Duplicate prediction for match {match_id}")
        outcome = str(item.get('outcome') or '').upper()
        if outcome not in OUTCOMES:
            raise InvalidPrediction(f"Match {match_id}: outcome must be one of {', '.join(OUTCOMES)}")
        home = _optional_goals(item.get('home_score'), 'home_score', match_id)
        away = _optional_goals(item.get('away_score'), 'away_score', match_id)
        if (home is None) != (away is None):
            raise InvalidPrediction(f"Match {match_id}: exact score needs both home_score and away_score")
        if home is not None and match_outcome(home, away) != outcome:
            raise InvalidPrediction(f"Match {match_id}: score {home}-{away} contradicts outcome {outcome}")
        parsed[match_id] = {'outcome': outcome, 'home': home, 'away': away}

    missing = expected - set(parsed)
    if missing:
        raise InvalidPrediction(f"Missing predictions for match(es): {', '.join(str(m) for m in sorted(missing))}")
    return parsed


def submit_ticket(user, round_id: int, predictions: Iterable[dict], now: Optional[datetime] = None) -> Ticket:
    """Create the user's ticket for a round, or replace its predictions.

    A ticket always holds exactly one bet per match of the round.
    """
    round_ = load_round(round_id)
    ensure_betting_open(round_, now)
    match_ids = [m.id for m in Match.query.filter_by(round_id=round_.id).order_by(Match.id).all()]
    parsed = parse_predictions(predictions, match_ids)

    with match_locks(match_ids, lock_timeout()):
        # Re-read under the locks: a settlement may have committed since the first read
        matches = (
            Match.query.filter(Match.id.in_(match_ids)).order_by(Match.id)
            .with_for_update().populate_existing().all()
        )
        db.session.refresh(round_)
        try:
            ensure_betting_open(round_, now)
            if any(m.is_finished for m in matches):
                raise BettingClosed(f"Round {round_.id} already has finished matches")
        except BettingClosed:
            db.session.rollback()
            raise

        ticket = Ticket.query.filter_by(user_id=user.id, round_id=round_.id).first()
        created = ticket is None
        if created:
            ticket = Ticket(user_id=user.id, round_id=round_.id, payment_status=PAYMENT_PENDING)
            db.session.add(ticket)
        existing = {b.match_id: b for b in ticket.bets}
        for match in matches:
            prediction = parsed[match.id]
            bet = existing.get(match.id)
            if bet is None:
                bet = Bet(match_id=match.id)
                ticket.bets.append(bet)
            bet.predicted_outcome = prediction['outcome']
            bet.predicted_home_score = prediction['home']
            bet.predicted_away_score = prediction['away']
            bet.points = None

        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise DuplicateTicket(f"User {user.id} already holds a ticket for round {round_.id}") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceFailure(f"Could not save ticket for round {round_.id}") from exc

    current_app.logger.info(
        f"[ticket] user={user.id} round={round_.id} ticket={ticket.id} {'created' if created else 'updated'}"
    )
    return ticket


def mark_ticket_paid(ticket_id: int, paid_at: Optional[datetime] = None) -> Ticket:
    """Record a confirmed payment reported by the payment collaborator."""
    ticket = Ticket.query.filter_by(id=ticket_id).first()
    if not ticket:
        raise TicketNotFound(f"Ticket {ticket_id} not found")
    if ticket.payment_status != PAYMENT_PAID:
        with atomic(f"payment of ticket {ticket_id}"):
            ticket.payment_status = PAYMENT_PAID
            ticket.paid_at = paid_at or utcnow()
    return ticket
