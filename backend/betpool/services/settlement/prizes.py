"""Prize allocation for fully settled rounds.

Winners are the paid tickets with the highest round score; the pool (sum
of paid ticket prices) is split evenly between them in whole currency
units. Leftover units go one each to the winners who paid first (ties by
ticket id), so the awards always add up to the pool exactly.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_DOWN, Decimal
from typing import List, Optional, Sequence, Tuple

from flask import current_app

from betpool import db
from betpool.models import PrizeAllocation, PrizeAward, Ticket, utcnow, ROUND_CLOSED, ROUND_SETTLED
from .errors import ConcurrencyConflict, RoundNotFullySettled
from .persistence import atomic, compare_and_set_round_status
from .ranking import ticket_round_scores
from .rounds import load_round, round_is_complete

AWARDED = 'awarded'
NO_PAID_TICKETS = 'no_paid_tickets'


@dataclass
class PrizeShare:
    ticket_id: int
    user_id: int
    amount: Decimal

    def to_dict(self):
        return {'ticket_id': self.ticket_id, 'user_id': self.user_id, 'amount': str(self.amount)}


@dataclass
class AllocationResult:
    round_id: int
    outcome: str
    prize_pool: Decimal
    winning_score: Optional[int]
    shares: List[PrizeShare] = field(default_factory=list)
    created: bool = False

    @property
    def total_winners(self) -> int:
        return len(self.shares)

    @classmethod
    def from_record(cls, allocation: PrizeAllocation, created: bool) -> 'AllocationResult':
        return cls(
            round_id=allocation.round_id,
            outcome=allocation.outcome,
            prize_pool=Decimal(allocation.prize_pool),
            winning_score=allocation.winning_score,
            shares=[PrizeShare(a.ticket_id, a.user_id, Decimal(a.amount)) for a in allocation.awards],
            created=created,
        )

    def to_dict(self):
        return {
            'round_id': self.round_id,
            'outcome': self.outcome,
            'prize_pool': str(self.prize_pool),
            'winning_score': self.winning_score,
            'total_winners': self.total_winners,
            'shares': [s.to_dict() for s in self.shares],
            'created': self.created,
        }


def _payment_order(ticket: Ticket):
    return (ticket.paid_at is None, ticket.paid_at or datetime.min, ticket.id)


def split_prize(pool: Decimal, winners: Sequence[Ticket],
                quantum: Decimal = Decimal('0.01')) -> List[Tuple[Ticket, Decimal]]:
    if not winners:
        return []
    ordered = sorted(winners, key=_payment_order)
    units = int((pool / quantum).to_integral_value(rounding=ROUND_DOWN))
    base, remainder = divmod(units, len(ordered))
    shares = [(t, (base + (1 if idx < remainder else 0)) * quantum) for idx, t in enumerate(ordered)]
    # Sub-unit residue (only when the pool is not a whole number of quanta)
    residue = pool - units * quantum
    if residue:
        first, amount = shares[0]
        shares[0] = (first, amount + residue)
    return shares


def _build_allocation(round_, quantum: Decimal) -> PrizeAllocation:
    scores = ticket_round_scores(round_.id)
    paid = [t for t in Ticket.query.filter_by(round_id=round_.id).all() if t.is_paid]
    if not paid:
        return PrizeAllocation(round_id=round_.id, outcome=NO_PAID_TICKETS, prize_pool=Decimal('0'))

    pool = sum((Decimal(round_.ticket_price) for _ in paid), Decimal('0'))
    top = max(scores.get(t.id, 0) for t in paid)
    winners = [t for t in paid if scores.get(t.id, 0) == top]
    allocation = PrizeAllocation(round_id=round_.id, outcome=AWARDED, prize_pool=pool, winning_score=top)
    for ticket, amount in split_prize(pool, winners, quantum):
        allocation.awards.append(PrizeAward(ticket_id=ticket.id, user_id=ticket.user_id, amount=amount))
    return allocation


def load_allocation(round_id: int, created: bool = False) -> Optional[AllocationResult]:
    allocation = PrizeAllocation.query.filter_by(round_id=round_id).first()
    return AllocationResult.from_record(allocation, created=created) if allocation else None


def allocate_prizes(round_id: int, now: Optional[datetime] = None) -> AllocationResult:
    """Settle a closed, fully scored round and record its winners exactly once.

    Re-invocation on a round that already has an allocation returns the
    recorded outcome without computing or notifying anything again.
    """
    round_ = load_round(round_id)
    existing = PrizeAllocation.query.filter_by(round_id=round_id).first()
    if existing:
        current_app.logger.info(f"[prize-skip] round={round_id} already allocated")
        if round_.status == ROUND_CLOSED:
            # The allocation is the settlement marker; bring the status in line with it
            with atomic(f"settled marker for round {round_id}"):
                repaired = compare_and_set_round_status(round_id, ROUND_CLOSED, ROUND_SETTLED,
                                                        settled_at=existing.created_at or utcnow())
            db.session.refresh(round_)
            if repaired:
                current_app.logger.warning(f"[prize-repair] round={round_id} closed -> settled")
        return AllocationResult.from_record(existing, created=False)
    if round_.status != ROUND_CLOSED or not round_is_complete(round_id):
        raise RoundNotFullySettled(
            f"Round {round_id} is {round_.status}; prizes need a closed round with every match settled"
        )

    now = now or utcnow()
    quantum = Decimal(str(current_app.config.get('PRIZE_CURRENCY_QUANTUM', '0.01')))
    allocation = None
    with atomic(f"prize allocation for round {round_id}"):
        # Only the caller that flips closed -> settled computes prizes
        if compare_and_set_round_status(round_id, ROUND_CLOSED, ROUND_SETTLED, settled_at=now):
            allocation = _build_allocation(round_, quantum)
            db.session.add(allocation)

    if allocation is None:
        existing = PrizeAllocation.query.filter_by(round_id=round_id).first()
        if existing:
            return AllocationResult.from_record(existing, created=False)
        raise ConcurrencyConflict(f"Round {round_id} is being settled by another request")

    result = AllocationResult.from_record(allocation, created=True)
    current_app.logger.info(
        f"[prize] round={round_id} outcome={result.outcome} pool={result.prize_pool} "
        f"winners={result.total_winners} score={result.winning_score}"
    )

    from .notifications import dispatch_allocation
    dispatch_allocation(allocation.id)
    return result
