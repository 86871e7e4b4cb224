import threading
from contextlib import ExitStack, contextmanager
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from betpool import db
from betpool.models import Round
from .errors import ConcurrencyConflict, PersistenceFailure

# match id -> [lock, number of callers holding or waiting for it]
_match_locks: Dict[int, List] = {}
_match_locks_guard = threading.Lock()


@contextmanager
def atomic(action: str):
    """Commit everything staged inside the block as one unit, or nothing.

    Database errors roll the session back and surface as PersistenceFailure;
    the caller retries the whole operation.
    """
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[persistence-failure] {action}: {exc}")
        raise PersistenceFailure(f"Could not persist {action}") from exc
    except Exception:
        db.session.rollback()
        raise


def compare_and_set_round_status(round_id: int, expected: str, new: str,
                                 settled_at: Optional[datetime] = None) -> bool:
    """Flip Round.status from ``expected`` to ``new``; True only for the single winning caller."""
    values = {'status': new}
    if settled_at is not None:
        values['settled_at'] = settled_at
    result = db.session.execute(
        update(Round)
        .where(Round.id == round_id, Round.status == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


@contextmanager
def match_lock(match_id: int, timeout: float):
    """Serialize writers of one match inside this process.

    The registry entry is dropped once nobody holds or waits for the lock.
    """
    with _match_locks_guard:
        entry = _match_locks.setdefault(match_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        if not entry[0].acquire(timeout=timeout):
            raise ConcurrencyConflict(f"Match {match_id} is being settled by another request")
        try:
            yield
        finally:
            entry[0].release()
    finally:
        with _match_locks_guard:
            entry[1] -= 1
            if not entry[1]:
                _match_locks.pop(match_id, None)


@contextmanager
def match_locks(match_ids: Iterable[int], timeout: float):
    # Ascending id order so two multi-match callers cannot deadlock
    with ExitStack() as stack:
        for match_id in sorted(set(match_ids)):
            stack.enter_context(match_lock(match_id, timeout))
        yield


def lock_timeout() -> float:
    return float(current_app.config.get('SETTLEMENT_LOCK_TIMEOUT_SEC', 10))
