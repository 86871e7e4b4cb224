from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from betpool import db
from betpool.models import (
    Notification, PrizeAllocation, PrizeAward, Round, utcnow, MATCH_FINISHED, ROUND_CLOSED, ROUND_SETTLED,
)
from betpool.services.settlement import prizes
from betpool.services.settlement.coordinator import settle_match
from betpool.services.settlement.errors import RoundNotFullySettled
from betpool.services.settlement.persistence import compare_and_set_round_status
from betpool.services.settlement.prizes import allocate_prizes, split_prize
from betpool.services.settlement.rounds import transition_round_status
from conftest import matches_of


def test_tied_paid_tickets_share_pool_and_unpaid_is_excluded(factory):
    round_ = factory.round(n_matches=2, ticket_price='10.00')
    x_user, y_user, z_user = factory.user('x'), factory.user('y'), factory.user('z')
    # Final scores 1-0 and 2-2. X and Y score 8, unpaid Z scores 10
    x = factory.ticket(x_user, round_, [('HOME', 1, 0), ('DRAW', None, None)], paid=True)
    y = factory.ticket(y_user, round_, [('HOME', None, None), ('DRAW', 2, 2)], paid=True)
    factory.ticket(z_user, round_, [('HOME', 1, 0), ('DRAW', 2, 2)])
    first, second = matches_of(round_)
    settle_match(first.id, 1, 0)
    result = settle_match(second.id, 2, 2).allocation

    assert result.outcome == 'awarded'
    assert result.prize_pool == Decimal('20.00')
    assert result.winning_score == 8
    assert {s.ticket_id: s.amount for s in result.shares} == {x.id: Decimal('10.00'), y.id: Decimal('10.00')}


def test_remainder_goes_to_earliest_payers(flask_app):
    now = utcnow()
    t1 = SimpleNamespace(id=1, paid_at=now)
    t2 = SimpleNamespace(id=2, paid_at=now - timedelta(hours=2))
    t3 = SimpleNamespace(id=3, paid_at=now - timedelta(hours=1))

    shares = split_prize(Decimal('10.00'), [t1, t2, t3])

    assert [(t.id, amount) for t, amount in shares] == [
        (2, Decimal('3.34')), (3, Decimal('3.33')), (1, Decimal('3.33')),
    ]
    assert sum(amount for _, amount in shares) == Decimal('10.00')


def test_split_never_loses_currency(flask_app):
    now = utcnow()
    for pool in ['0.01', '0.05', '7.00', '99.99', '100.00']:
        for n in range(1, 8):
            winners = [SimpleNamespace(id=i, paid_at=now + timedelta(minutes=i)) for i in range(n)]
            shares = split_prize(Decimal(pool), winners)
            assert sum(a for _, a in shares) == Decimal(pool)
            amounts = [a for _, a in shares]
            assert max(amounts) - min(amounts) <= Decimal('0.01')


def test_split_with_coarse_quantum_keeps_residue(flask_app):
    winners = [SimpleNamespace(id=i, paid_at=None) for i in range(3)]
    shares = split_prize(Decimal('10.50'), winners, quantum=Decimal('1'))
    assert [a for _, a in shares] == [Decimal('4.50'), Decimal('3'), Decimal('3')]


def test_three_way_split_in_round(factory):
    round_ = factory.round(n_matches=1, ticket_price='10.00')
    base = utcnow() - timedelta(days=1)
    tickets = [
        factory.ticket(factory.user(), round_, [('HOME', None, None)], paid=True, paid_at=base + timedelta(hours=h))
        for h in (3, 1, 2)
    ]
    result = settle_match(matches_of(round_)[0].id, 1, 0).allocation

    amounts = {s.ticket_id: s.amount for s in result.shares}
    assert sum(amounts.values()) == Decimal('30.00')
    assert amounts[tickets[1].id] == Decimal('10.00')
    assert amounts == {t.id: Decimal('10.00') for t in tickets}


def test_no_paid_tickets_records_zero_winner_outcome(factory):
    round_ = factory.round(n_matches=1)
    factory.ticket(factory.user(), round_, [('HOME', None, None)])
    result = settle_match(matches_of(round_)[0].id, 1, 0).allocation

    assert result.outcome == 'no_paid_tickets'
    assert result.total_winners == 0
    assert result.prize_pool == Decimal('0')
    assert PrizeAward.query.count() == 0
    assert Round.query.filter_by(id=round_.id).first().status == 'settled'


def test_allocation_before_completion_fails(factory):
    round_ = factory.round(n_matches=2)
    factory.ticket(factory.user(), round_, [('HOME', None, None), ('HOME', None, None)], paid=True)
    with pytest.raises(RoundNotFullySettled):
        allocate_prizes(round_.id)
    transition_round_status(round_.id, target='closed')
    settle_match(matches_of(round_)[0].id, 1, 0)
    with pytest.raises(RoundNotFullySettled):
        allocate_prizes(round_.id)
    assert PrizeAllocation.query.count() == 0


def test_reallocation_is_a_noop(factory):
    round_ = factory.round(n_matches=1)
    factory.ticket(factory.user(), round_, [('HOME', None, None)], paid=True)
    settle_match(matches_of(round_)[0].id, 1, 0)
    notifications_before = Notification.query.count()

    again = allocate_prizes(round_.id)

    assert again.created is False
    assert again.total_winners == 1
    assert PrizeAllocation.query.count() == 1
    assert PrizeAward.query.count() == 1
    assert Notification.query.count() == notifications_before


def test_only_one_caller_flips_closed_to_settled(factory):
    round_ = factory.round(n_matches=1)
    transition_round_status(round_.id, target='closed')

    first = compare_and_set_round_status(round_.id, ROUND_CLOSED, ROUND_SETTLED)
    second = compare_and_set_round_status(round_.id, ROUND_CLOSED, ROUND_SETTLED)
    db.session.commit()

    assert (first, second) == (True, False)
    assert Round.query.filter_by(id=round_.id).first().status == ROUND_SETTLED


def test_allocation_after_lost_flip_reports_recorded_outcome(factory):
    round_ = factory.round(n_matches=1)
    factory.ticket(factory.user(), round_, [('HOME', None, None)], paid=True)
    settle_match(matches_of(round_)[0].id, 1, 0)
    # A stale reader that still sees the round as closed
    Round.query.filter_by(id=round_.id).first().status = ROUND_CLOSED
    db.session.commit()

    result = allocate_prizes(round_.id)

    assert result.created is False
    assert PrizeAllocation.query.count() == 1
    assert Round.query.filter_by(id=round_.id).first().status == ROUND_SETTLED


def test_transition_settles_closed_round_that_already_has_allocation(factory):
    round_ = factory.round(n_matches=1)
    factory.ticket(factory.user(), round_, [('HOME', None, None)], paid=True)
    settle_match(matches_of(round_)[0].id, 1, 0)
    Round.query.filter_by(id=round_.id).first().status = ROUND_CLOSED
    db.session.commit()

    assert transition_round_status(round_.id) == ROUND_SETTLED
    assert PrizeAllocation.query.count() == 1


def test_transition_stops_when_allocation_leaves_round_closed(factory, monkeypatch):
    round_ = factory.round(n_matches=1)
    match = matches_of(round_)[0]
    match.status = MATCH_FINISHED
    match.home_score, match.away_score = 1, 0
    db.session.commit()
    allocation_calls = []
    monkeypatch.setattr(prizes, 'allocate_prizes', lambda round_id, now=None: allocation_calls.append(round_id))

    assert transition_round_status(round_.id) == ROUND_CLOSED
    assert allocation_calls == [round_.id]
