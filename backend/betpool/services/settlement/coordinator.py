"""Match settlement.

``settle_match`` records a final score and rescores every bet on the match
in one transaction. It is idempotent: running it again with the same score
rewrites the same points, so a caller that timed out or hit a persistence
failure simply calls it again from the top.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from flask import current_app

from betpool import socketio
from betpool.models import Bet, Match, PrizeAllocation, Ticket, utcnow, MATCH_FINISHED, ROUND_SETTLED
from .errors import InvalidScore, MatchNotFound, RoundAlreadySettled
from .persistence import atomic, lock_timeout, match_lock
from .prizes import AllocationResult, load_allocation
from .ranking import refresh_all_totals, refresh_user_totals
from .rounds import transition_round_status
from .scoring import get_scoring_rule


@dataclass
class SettlementResult:
    match_id: int
    round_id: int
    home_score: int
    away_score: int
    points: Dict[int, int] = field(default_factory=dict)  # bet id -> points
    round_status: Optional[str] = None
    allocation: Optional[AllocationResult] = None

    @property
    def bets_scored(self) -> int:
        return len(self.points)

    def to_dict(self):
        return {
            'match_id': self.match_id,
            'round_id': self.round_id,
            'home_score': self.home_score,
            'away_score': self.away_score,
            'bets_scored': self.bets_scored,
            'points': {str(k): v for k, v in self.points.items()},
            'round_status': self.round_status,
            'allocation': self.allocation.to_dict() if self.allocation else None,
        }


def _validate_score(value, side: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidScore(f"{side} score must be an integer, got {value!r}")
    if value < 0:
        raise InvalidScore(f"{side} score must be non-negative, got {value}")
    return value


def _score_bets(match: Match, home_score: int, away_score: int) -> Dict[int, int]:
    rule = get_scoring_rule(current_app.config)
    points = {}
    for bet in Bet.query.filter_by(match_id=match.id).order_by(Bet.id).all():
        bet.points = rule.score(bet, home_score, away_score)
        points[bet.id] = bet.points
    return points


def settle_match(match_id: int, home_score: int, away_score: int) -> SettlementResult:
    home_score = _validate_score(home_score, 'Home')
    away_score = _validate_score(away_score, 'Away')

    with match_lock(match_id, lock_timeout()):
        with atomic(f"settlement of match {match_id}"):
            match = Match.query.filter_by(id=match_id).with_for_update().first()
            if not match:
                raise MatchNotFound(f"Match {match_id} not found")
            round_id = match.round_id
            changed = not match.is_finished or (match.home_score, match.away_score) != (home_score, away_score)
            if changed and match.round.status == ROUND_SETTLED:
                raise RoundAlreadySettled(
                    f"Round {round_id} is settled; match {match_id} result can no longer change"
                )
            # settled_at keeps the time the current result was first recorded
            if changed:
                match.status = MATCH_FINISHED
                match.home_score = home_score
                match.away_score = away_score
                match.settled_at = utcnow()
            points = _score_bets(match, home_score, away_score)

    current_app.logger.info(
        f"[settle] match={match_id} round={round_id} score={home_score}-{away_score} bets={len(points)}"
    )
    result = SettlementResult(match_id, round_id, home_score, away_score, points=points)

    user_ids = [uid for (uid,) in Ticket.query.with_entities(Ticket.user_id).filter_by(round_id=round_id).all()]
    refresh_user_totals(user_ids)
    _push_ranking_update(round_id, match_id)

    # Closing and prize allocation happen inside the transition once the round is complete
    already_allocated = PrizeAllocation.query.filter_by(round_id=round_id).count() > 0
    result.round_status = transition_round_status(round_id)
    if result.round_status == ROUND_SETTLED:
        result.allocation = load_allocation(round_id, created=not already_allocated)
    return result


def _push_ranking_update(round_id: int, match_id: int) -> None:
    try:
        socketio.emit('ranking_update', {'round_id': round_id, 'match_id': match_id},
                      to=f"round:{round_id}", namespace='/ws')
    except Exception:
        current_app.logger.exception(f"[ranking-push-failed] round={round_id} match={match_id}")


def recompute_all_points() -> int:
    """Rescore every finished match from its stored result and rebuild user totals."""
    rule = get_scoring_rule(current_app.config)
    finished = Match.query.filter_by(status=MATCH_FINISHED).order_by(Match.id).all()
    rescored = 0
    for match in finished:
        with match_lock(match.id, lock_timeout()):
            with atomic(f"rescoring of match {match.id}"):
                for bet in Bet.query.filter_by(match_id=match.id).all():
                    bet.points = rule.score(bet, match.home_score, match.away_score)
                    rescored += 1
    refresh_all_totals()
    current_app.logger.info(f"[recompute] matches={len(finished)} bets={rescored}")
    return rescored
