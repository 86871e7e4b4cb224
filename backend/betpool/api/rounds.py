from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from betpool.api import admin_required
from betpool.models import Ticket
from betpool.services.settlement.betting import submit_ticket
from betpool.services.settlement.prizes import allocate_prizes
from betpool.services.settlement.ranking import round_standings
from betpool.services.settlement.rounds import list_rounds, load_round, transition_round_status
from betpool.services.settlement.notifications import notify_round_holders


rounds = Blueprint('rounds', __name__)


@rounds.route('', methods=['GET'])
def get_rounds():
    found = list_rounds(
        competition_id=request.args.get('competition_id', type=int),
        status=request.args.get('status'),
    )
    return jsonify({'rounds': [r.to_dict(include_matches=True) for r in found]})


@rounds.route('/<int:round_id>', methods=['GET'])
def get_round(round_id):
    round_ = load_round(round_id)
    return jsonify(round_.to_dict(include_matches=True))


@rounds.route('/<int:round_id>/standings', methods=['GET'])
def get_round_standings(round_id):
    load_round(round_id)
    return jsonify({'round_id': round_id, 'standings': round_standings(round_id)})


@rounds.route('/<int:round_id>/tickets', methods=['POST'])
@login_required
def place_ticket(round_id):
    data = request.get_json(silent=True) or {}
    predictions = data.get('predictions')
    if not isinstance(predictions, list):
        return jsonify({'error': 'predictions must be a list'}), 400
    existed = Ticket.query.filter_by(user_id=current_user.id, round_id=round_id).first() is not None
    ticket = submit_ticket(current_user, round_id, predictions)
    return jsonify(ticket.to_dict()), 200 if existed else 201


@rounds.route('/<int:round_id>/tickets/mine', methods=['GET'])
@login_required
def get_my_ticket(round_id):
    load_round(round_id)
    ticket = Ticket.query.filter_by(user_id=current_user.id, round_id=round_id).first_or_404()
    return jsonify(ticket.to_dict())


@rounds.route('/<int:round_id>/transition', methods=['POST'])
@admin_required
def transition_round(round_id):
    data = request.get_json(silent=True) or {}
    status = transition_round_status(round_id, target=data.get('target'))
    return jsonify({'round_id': round_id, 'status': status})


@rounds.route('/<int:round_id>/allocate', methods=['POST'])
@admin_required
def allocate_round_prizes(round_id):
    result = allocate_prizes(round_id)
    return jsonify(result.to_dict()), 201 if result.created else 200


@rounds.route('/<int:round_id>/notify', methods=['POST'])
@admin_required
def notify_round(round_id):
    data = request.get_json(silent=True) or {}
    title = data.get('title')
    message = data.get('message')
    if not all([title, message]):
        return jsonify({'error': 'Title and message are required'}), 400
    load_round(round_id)
    created = notify_round_holders(round_id, title, message)
    return jsonify({'round_id': round_id, 'notified': len(created)}), 201
