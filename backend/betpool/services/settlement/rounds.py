"""Round lifecycle state machine.

upcoming -> active -> closed -> settled. Rounds only move forward and
``settled`` is terminal. Every transition is a compare-and-set on
Round.status so concurrent callers cannot both perform the same step.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from flask import current_app

from betpool import db
from betpool.models import (
    Bet, Match, Round, Ticket, utcnow,
    MATCH_FINISHED, ROUND_ACTIVE, ROUND_CLOSED, ROUND_SETTLED, ROUND_STATUSES, ROUND_UPCOMING,
)
from .errors import BettingClosed, IncompleteSettlement, InvalidRound, InvalidTransition, RoundNotFound
from .persistence import atomic, compare_and_set_round_status


def load_round(round_id: int) -> Round:
    round_ = Round.query.filter_by(id=round_id).first()
    if not round_:
        raise RoundNotFound(f"Round {round_id} not found")
    return round_


def list_rounds(competition_id: Optional[int] = None, status: Optional[str] = None):
    """Rounds in play order, optionally narrowed to one competition or status."""
    if status is not None and status not in ROUND_STATUSES:
        raise InvalidRound(f"Unknown round status: {status}")
    query = Round.query
    if competition_id is not None:
        query = query.filter(Round.competition_id == competition_id)
    if status is not None:
        query = query.filter(Round.status == status)
    return query.order_by(Round.round_number, Round.competition_id, Round.id).all()


def ensure_betting_open(round_: Round, now: Optional[datetime] = None) -> None:
    now = now or utcnow()
    if round_.status != ROUND_ACTIVE:
        raise BettingClosed(f"Round {round_.id} is {round_.status}; bets are not accepted")
    if now >= round_.bets_deadline:
        raise BettingClosed(f"Bets deadline for round {round_.id} has passed")


def unfinished_match_count(round_id: int) -> int:
    return Match.query.filter(Match.round_id == round_id, Match.status != MATCH_FINISHED).count()


def all_matches_finished(round_id: int) -> bool:
    if not Match.query.filter_by(round_id=round_id).count():
        return False
    return unfinished_match_count(round_id) == 0


def unscored_bet_count(round_id: int) -> int:
    return (
        Bet.query.join(Ticket, Bet.ticket_id == Ticket.id)
        .filter(Ticket.round_id == round_id, Bet.points.is_(None))
        .count()
    )


def round_is_complete(round_id: int) -> bool:
    """Every match finished and every bet of every ticket scored."""
    return unfinished_match_count(round_id) == 0 and unscored_bet_count(round_id) == 0


def _advance(round_: Round, expected: str, new: str) -> bool:
    with atomic(f"round {round_.id} {expected} -> {new}"):
        won = compare_and_set_round_status(round_.id, expected, new)
    db.session.refresh(round_)
    if won:
        current_app.logger.info(f"[round-transition] round={round_.id} {expected} -> {new}")
    return won


def transition_round_status(round_id: int, target: Optional[str] = None,
                            now: Optional[datetime] = None) -> str:
    """Advance a round as far as its guards allow and return the resulting status.

    Without ``target`` the time and completion guards decide. With a
    ``target`` (admin override) the round is pushed forward up to that
    status regardless of dates; reaching ``settled`` still requires every
    match finished and every bet scored. Regressions are rejected.
    """
    round_ = load_round(round_id)
    now = now or utcnow()

    if target is not None:
        if target not in ROUND_STATUSES:
            raise InvalidTransition(f"Unknown round status: {target}")
        if ROUND_STATUSES.index(target) < ROUND_STATUSES.index(round_.status):
            raise InvalidTransition(f"Round {round_.id} cannot move from {round_.status} back to {target}")
        if target == ROUND_SETTLED and round_.status != ROUND_SETTLED:
            pending = unfinished_match_count(round_.id)
            if pending or unscored_bet_count(round_.id):
                raise IncompleteSettlement(
                    f"Round {round_.id} has {pending} unfinished match(es) or unscored bets"
                )

    forced = target is not None
    while round_.status != ROUND_SETTLED and round_.status != target:
        status = round_.status
        if status == ROUND_UPCOMING:
            if not (forced or now >= round_.start_date):
                break
            _advance(round_, ROUND_UPCOMING, ROUND_ACTIVE)
        elif status == ROUND_ACTIVE:
            if not (forced or now >= round_.bets_deadline or all_matches_finished(round_.id)):
                break
            _advance(round_, ROUND_ACTIVE, ROUND_CLOSED)
        elif status == ROUND_CLOSED:
            if not round_is_complete(round_.id):
                break
            from .prizes import allocate_prizes
            allocate_prizes(round_.id, now=now)
            db.session.refresh(round_)
            if round_.status == ROUND_CLOSED:
                current_app.logger.warning(f"[round-transition] round={round_.id} still closed after allocation")
                break
        else:
            raise InvalidTransition(f"Round {round_.id} has unknown status {status}")
    return round_.status


def create_round(competition, round_number: int, name: str, start_date: datetime, end_date: datetime,
                 bets_deadline: datetime, ticket_price) -> Round:
    """Validate and stage a new upcoming round; the caller commits."""
    try:
        price = Decimal(str(ticket_price))
    except InvalidOperation:
        raise InvalidRound(f"Invalid ticket price: {ticket_price!r}") from None
    if price < 0:
        raise InvalidRound("Ticket price must be non-negative")
    if bets_deadline > end_date:
        raise InvalidRound("Bets deadline must not be after the round end date")
    if start_date > end_date:
        raise InvalidRound("Round start date must not be after its end date")
    if Round.query.filter_by(competition_id=competition.id, round_number=round_number).first():
        raise InvalidRound(f"Round number {round_number} already exists in {competition.name}")
    round_ = Round(
        competition=competition,
        round_number=round_number,
        name=name,
        start_date=start_date,
        end_date=end_date,
        bets_deadline=bets_deadline,
        ticket_price=price,
        status=ROUND_UPCOMING,
    )
    db.session.add(round_)
    return round_


def add_match(round_: Round, home_team, away_team, scheduled_at: datetime) -> Match:
    if home_team is away_team or (home_team.id is not None and home_team.id == away_team.id):
        raise InvalidRound("A match needs two different teams")
    if round_.status != ROUND_UPCOMING:
        raise InvalidRound(f"Matches can only be added while round {round_.id} is upcoming")
    match = Match(round=round_, home_team=home_team, away_team=away_team, scheduled_at=scheduled_at)
    db.session.add(match)
    return match
