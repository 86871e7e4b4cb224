from datetime import datetime
from typing import Dict, Optional, Set

from betpool import socketio
from betpool.models import Round, ROUND_SETTLED
from .errors import SettlementError
from .notifications import dispatch_allocation, pending_allocation_ids
from .rounds import transition_round_status


_running_pollers: Set[int] = set()


def run_lifecycle_pass(app, now: Optional[datetime] = None) -> Dict[int, str]:
    """One pass over every unsettled round, plus retry of undelivered notifications.

    Must be called inside an application context. Returns round id -> status.
    """
    statuses: Dict[int, str] = {}
    round_ids = [r.id for r in Round.query.filter(Round.status != ROUND_SETTLED).order_by(Round.id).all()]
    for round_id in round_ids:
        try:
            statuses[round_id] = transition_round_status(round_id, now=now)
        except SettlementError as exc:
            # Transient or business-rule failure for one round must not stop the pass
            app.logger.warning(f"[lifecycle-skip] round={round_id} {exc.__class__.__name__}: {exc.message}")
    for allocation_id in pending_allocation_ids():
        dispatch_allocation(allocation_id)
    return statuses


def start_lifecycle_poller(app) -> None:
    """Run ``run_lifecycle_pass`` every ROUND_POLL_INTERVAL_SEC in a background task.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - No-ops when the interval is 0
    - At most one poller per application object
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return
    interval = int(app.config.get('ROUND_POLL_INTERVAL_SEC', 60))
    if interval <= 0 or id(app) in _running_pollers:
        return
    _running_pollers.add(id(app))
    app.logger.info(f"[poller-start] interval={interval}s")

    def _worker():
        while True:
            socketio.sleep(interval)
            with app.app_context():
                try:
                    statuses = run_lifecycle_pass(app)
                    app.logger.info(f"[poller-tick] rounds={len(statuses)}")
                except Exception:
                    app.logger.exception("[poller-error] lifecycle pass failed")

    socketio.start_background_task(_worker)
