from flask import Blueprint, jsonify, request
from betpool.api import admin_required
from betpool.services.settlement.betting import mark_ticket_paid
from betpool.services.settlement.coordinator import settle_match


settlement = Blueprint('settlement', __name__)


@settlement.route('/matches/<int:match_id>/result', methods=['POST'])
@admin_required
def enter_result(match_id):
    """Record a final score and settle every bet on the match.

    Safe to repeat with the same score; a 503 or a 409 flagged retryable
    means the whole call should simply be sent again.
    """
    data = request.get_json(silent=True) or {}
    if 'home_score' not in data or 'away_score' not in data:
        return jsonify({'error': 'home_score and away_score are required'}), 400
    result = settle_match(match_id, data['home_score'], data['away_score'])
    return jsonify(result.to_dict())


@settlement.route('/tickets/<int:ticket_id>/paid', methods=['POST'])
@admin_required
def confirm_payment(ticket_id):
    ticket = mark_ticket_paid(ticket_id)
    return jsonify(ticket.to_dict(include_bets=False))
