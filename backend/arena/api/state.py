from flask import Blueprint, current_app, jsonify, request

from arena.commands import (
    GetAttacks,
    GetHp,
    GetWins,
    IncrementWins,
    LogAttack,
    ResetHp,
    SetHp,
    execute,
    parse_action,
    parse_player_id,
)
from arena.errors import ExternalLookupFailure
from arena.services.game import current_services
from arena.services.game.engine import Combatant
from arena.services.game.leaderboard import compute_leaderboard

state = Blueprint('state', __name__)


def _run(command):
    return jsonify(execute(command, current_services().store))


def _body():
    return request.get_json(silent=True) or {}


@state.route('/hp', methods=['GET'])
def get_hp():
    return _run(GetHp.from_payload(request.args))


@state.route('/hp/set', methods=['POST'])
def set_hp():
    return _run(SetHp.from_payload(_body()))


@state.route('/hp/reset', methods=['POST'])
def reset_hp():
    return _run(ResetHp.from_payload(_body()))


@state.route('/wins', methods=['GET'])
def get_wins():
    return _run(GetWins.from_payload(request.args))


@state.route('/wins/increment', methods=['POST'])
def increment_wins():
    return _run(IncrementWins.from_payload(_body()))


@state.route('/attack/log', methods=['POST'])
def log_attack():
    return _run(LogAttack.from_payload(_body()))


@state.route('/attacks', methods=['GET'])
def get_attacks():
    return _run(GetAttacks.from_payload(request.args))


@state.route('/redis/<string:action>', methods=['GET', 'POST'])
def legacy_action(action):
    """Single-endpoint surface used by older frame clients."""
    data = request.args if request.method == 'GET' else _body()
    return _run(parse_action(action, request.method, data))


@state.route('/leaderboard', methods=['GET'])
def leaderboard():
    svc = current_services()
    board = compute_leaderboard(svc.store, svc.directory)
    return jsonify({'leaderboard': [entry.to_dict() for entry in board]})


@state.route('/weapons', methods=['GET'])
def weapons():
    return jsonify({'weapons': current_app.config['WEAPON_CATALOG']})


@state.route('/attack', methods=['POST'])
def attack():
    """Resolve one attack outside of any session."""
    data = _body()
    attacker_id = parse_player_id(data.get('attacker_id'), 'attacker_id')
    target_id = parse_player_id(data.get('target_id'), 'target_id')
    svc = current_services()
    try:
        users = svc.directory.lookup_users([attacker_id, target_id])
    except ExternalLookupFailure as exc:
        current_app.logger.warning(f"[directory-fail] attack name lookup: {exc}")
        users = {}

    def combatant(player_id):
        user = users.get(player_id)
        name = user.username if user and user.username else f"fid:{player_id}"
        return Combatant(id=player_id, display_name=name, hp=svc.store.get_hp(player_id))

    outcome = svc.engine.resolve_attack(combatant(attacker_id), combatant(target_id), data.get('weapon'))
    svc.broadcaster.publish(outcome.announcements)
    return jsonify(outcome.to_dict())
