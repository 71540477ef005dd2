from flask import Blueprint, current_app, jsonify, request

from arena.commands import parse_player_id
from arena.services.game import current_services

sessions = Blueprint('sessions', __name__)


def _body():
    return request.get_json(silent=True) or {}


@sessions.route('', methods=['POST'])
def create_session():
    """
    Starts a session for a player: loads HP and builds the opponent roster.
    """
    player_id = parse_player_id(_body().get('player_id'), 'player_id')
    session = current_services().sessions.create(player_id)
    current_app.logger.info(
        f"[session-create] session={session.id} player={player_id} opponents={len(session.opponents)}"
    )
    return jsonify(session.to_dict()), 201


@sessions.route('/<string:session_id>', methods=['GET'])
def get_session(session_id):
    return jsonify(current_services().sessions.get(session_id).to_dict())


@sessions.route('/<string:session_id>/attack', methods=['POST'])
def attack(session_id):
    data = _body()
    opponent_id = parse_player_id(data.get('opponent_id'), 'opponent_id')
    manager = current_services().sessions
    outcome = manager.attack(session_id, opponent_id, data.get('weapon'))
    payload = manager.get(session_id).to_dict()
    payload['outcome'] = outcome.to_dict()
    return jsonify(payload)


@sessions.route('/<string:session_id>/opponents', methods=['POST'])
def add_opponent(session_id):
    """
    Adds an opponent by username. NOT_FOUND and ALREADY_OPPONENT are
    reported in the body, not as HTTP errors.
    """
    manager = current_services().sessions
    result = manager.add_opponent(session_id, _body().get('username'))
    return jsonify({'result': result.value, 'session': manager.get(session_id).to_dict()})


@sessions.route('/<string:session_id>/reset', methods=['POST'])
def reset(session_id):
    manager = current_services().sessions
    won = manager.reset(session_id)
    payload = manager.get(session_id).to_dict()
    payload['won'] = won
    return jsonify(payload)


@sessions.route('/<string:session_id>', methods=['DELETE'])
def end_session(session_id):
    current_services().sessions.end(session_id)
    current_app.logger.info(f"[session-end] session={session_id}")
    return jsonify({'success': True})
