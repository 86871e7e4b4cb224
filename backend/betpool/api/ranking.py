from flask import Blueprint, jsonify, request
from betpool.services.settlement.ranking import get_ranking


ranking = Blueprint('ranking', __name__)


@ranking.route('', methods=['GET'])
def get_leaderboard():
    competition_id = request.args.get('competition_id', type=int)
    round_id = request.args.get('round_id', type=int)
    entries = get_ranking(competition_id=competition_id, round_id=round_id)
    return jsonify({
        'scope': {'competition_id': competition_id, 'round_id': round_id},
        'ranking': [e.to_dict() for e in entries],
    })
