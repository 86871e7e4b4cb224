"""Leaderboard as a read view recomputed from bets.

Nothing here is authoritative state: totals are always derived from
Bet.points, and the per-user ``total_points`` column is just a cached copy
rewritten by ``refresh_user_totals``.
"""

from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func

from betpool import db
from betpool.models import Bet, PrizeAllocation, PrizeAward, Round, Ticket, User
from .persistence import atomic


@dataclass
class RankingEntry:
    position: int
    user_id: int
    display_name: str
    total_points: int
    rounds_won: int

    def to_dict(self):
        return asdict(self)


def _scope(round_column, competition_id: Optional[int], round_id: Optional[int]) -> list:
    filters = []
    if round_id is not None:
        filters.append(round_column == round_id)
    if competition_id is not None:
        filters.append(Round.competition_id == competition_id)
    return filters


def user_totals(competition_id: Optional[int] = None, round_id: Optional[int] = None) -> Dict[int, int]:
    """Sum of settled bet points per ticket holder in scope (one aggregate statement)."""
    rows = (
        db.session.query(Ticket.user_id, func.coalesce(func.sum(Bet.points), 0))
        .join(Round, Round.id == Ticket.round_id)
        .outerjoin(Bet, Bet.ticket_id == Ticket.id)
        .filter(*_scope(Ticket.round_id, competition_id, round_id))
        .group_by(Ticket.user_id)
        .all()
    )
    return {user_id: int(total) for user_id, total in rows}


def rounds_won(competition_id: Optional[int] = None, round_id: Optional[int] = None) -> Dict[int, int]:
    rows = (
        db.session.query(PrizeAward.user_id, func.count(func.distinct(PrizeAllocation.round_id)))
        .join(PrizeAllocation, PrizeAllocation.id == PrizeAward.allocation_id)
        .join(Round, Round.id == PrizeAllocation.round_id)
        .filter(*_scope(PrizeAllocation.round_id, competition_id, round_id))
        .group_by(PrizeAward.user_id)
        .all()
    )
    return {user_id: int(count) for user_id, count in rows}


def get_ranking(competition_id: Optional[int] = None, round_id: Optional[int] = None) -> List[RankingEntry]:
    """Ordered leaderboard for the scope.

    Order: total points desc, rounds won desc, account creation asc, user id asc.
    """
    totals = user_totals(competition_id, round_id)
    if not totals:
        return []
    wins = rounds_won(competition_id, round_id)
    users = User.query.filter(User.id.in_(list(totals))).all()
    users.sort(key=lambda u: (-totals[u.id], -wins.get(u.id, 0), u.created_at, u.id))
    return [
        RankingEntry(
            position=idx + 1,
            user_id=u.id,
            display_name=u.name,
            total_points=totals[u.id],
            rounds_won=wins.get(u.id, 0),
        )
        for idx, u in enumerate(users)
    ]


def ticket_round_scores(round_id: int) -> Dict[int, int]:
    """Round score per ticket: the sum of its bets' points in that round."""
    rows = (
        db.session.query(Ticket.id, func.coalesce(func.sum(Bet.points), 0))
        .outerjoin(Bet, Bet.ticket_id == Ticket.id)
        .filter(Ticket.round_id == round_id)
        .group_by(Ticket.id)
        .all()
    )
    return {ticket_id: int(total) for ticket_id, total in rows}


def round_standings(round_id: int) -> List[dict]:
    scores = ticket_round_scores(round_id)
    tickets = Ticket.query.filter_by(round_id=round_id).all()
    tickets.sort(key=lambda t: (-scores.get(t.id, 0), t.user.created_at, t.user_id))
    return [
        {
            'position': idx + 1,
            'ticket_id': t.id,
            'user_id': t.user_id,
            'display_name': t.user.name,
            'points': scores.get(t.id, 0),
            'payment_status': t.payment_status,
        }
        for idx, t in enumerate(tickets)
    ]


def refresh_user_totals(user_ids: Iterable[int]) -> Dict[int, int]:
    """Rewrite User.total_points for the given users from their bets."""
    ids = set(user_ids)
    if not ids:
        return {}
    rows = (
        db.session.query(Ticket.user_id, func.coalesce(func.sum(Bet.points), 0))
        .outerjoin(Bet, Bet.ticket_id == Ticket.id)
        .filter(Ticket.user_id.in_(ids))
        .group_by(Ticket.user_id)
        .all()
    )
    totals = {user_id: int(total) for user_id, total in rows}
    with atomic(f"total points for {len(ids)} user(s)"):
        for user in User.query.filter(User.id.in_(ids)).all():
            user.total_points = totals.get(user.id, 0)
    return {uid: totals.get(uid, 0) for uid in ids}


def refresh_all_totals() -> Dict[int, int]:
    return refresh_user_totals(uid for (uid,) in db.session.query(User.id).all())
