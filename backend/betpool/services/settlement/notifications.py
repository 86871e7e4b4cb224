"""Turn settlement outcomes into per-user notification records.

Dispatch runs after the settlement transaction has committed. A failure
here is logged and left for the lifecycle poller to retry; it never rolls
back scoring or prize allocation.
"""

import json
from typing import Iterable, List, Optional

from flask import current_app

from betpool import db, socketio
from betpool.models import (
    Notification, PrizeAllocation, Ticket, utcnow,
    NOTIFICATION_GENERIC, NOTIFICATION_PRIZE_WON, NOTIFICATION_ROUND_SETTLED,
)
from .persistence import atomic
from .ranking import ticket_round_scores


def _push(notification: Notification) -> None:
    try:
        socketio.emit('notification', notification.to_dict(), to=f"user:{notification.user_id}", namespace='/ws')
    except Exception:
        current_app.logger.exception(f"[notify-push-failed] notification={notification.id}")


def build_allocation_notifications(allocation: PrizeAllocation) -> List[Notification]:
    round_ = allocation.round
    scores = ticket_round_scores(round_.id)
    awards = {a.ticket_id: a for a in allocation.awards}
    total_winners = len(awards)

    notifications = []
    for ticket in Ticket.query.filter_by(round_id=round_.id).order_by(Ticket.id).all():
        points = scores.get(ticket.id, 0)
        notifications.append(Notification(
            user_id=ticket.user_id,
            type=NOTIFICATION_ROUND_SETTLED,
            title=f"{round_.name} settled",
            message=f"{round_.name} is over. You scored {points} points.",
            data=json.dumps({
                'round_id': round_.id,
                'user_points': points,
                'total_winners': total_winners,
                'winning_score': allocation.winning_score,
            }),
        ))
        award = awards.get(ticket.id)
        if award is not None:
            notifications.append(Notification(
                user_id=ticket.user_id,
                type=NOTIFICATION_PRIZE_WON,
                title=f"You won {round_.name}!",
                message=f"Your ticket topped {round_.name} with {points} points. Prize: {award.amount}.",
                data=json.dumps({
                    'round_id': round_.id,
                    'user_points': points,
                    'total_winners': total_winners,
                    'prize_amount': str(award.amount),
                }),
            ))
    return notifications


def dispatch_allocation(allocation_id: int) -> int:
    """Create the notifications for one allocation once; returns how many were created."""
    allocation = PrizeAllocation.query.filter_by(id=allocation_id).first()
    if not allocation or allocation.notified_at is not None:
        return 0
    round_id = allocation.round_id
    try:
        notifications = build_allocation_notifications(allocation)
        db.session.add_all(notifications)
        allocation.notified_at = utcnow()
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"[notify-failed] round={round_id} allocation={allocation_id}")
        return 0

    current_app.logger.info(f"[notify] round={round_id} created={len(notifications)}")
    for notification in notifications:
        _push(notification)
    return len(notifications)


def pending_allocation_ids() -> List[int]:
    return [a.id for a in PrizeAllocation.query.filter(PrizeAllocation.notified_at.is_(None)).all()]


def notify_users(user_ids: Iterable[int], title: str, message: str,
                 data: Optional[dict] = None) -> List[Notification]:
    notifications = [
        Notification(
            user_id=uid,
            type=NOTIFICATION_GENERIC,
            title=title,
            message=message,
            data=json.dumps(data) if data else None,
        )
        for uid in sorted(set(user_ids))
    ]
    with atomic(f"{len(notifications)} generic notification(s)"):
        db.session.add_all(notifications)
    for notification in notifications:
        _push(notification)
    return notifications


def notify_round_holders(round_id: int, title: str, message: str) -> List[Notification]:
    user_ids = [uid for (uid,) in db.session.query(Ticket.user_id).filter(Ticket.round_id == round_id).all()]
    return notify_users(user_ids, title, message, data={'round_id': round_id})
