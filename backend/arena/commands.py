"""Store operations as a closed set of command types.

Each command validates its own payload at the boundary; ``execute`` has one
handler per command type. The HTTP layer builds commands either from a
dedicated route or from the legacy ``/redis/<action>`` name.
"""

from dataclasses import dataclass
from functools import singledispatch
from typing import Mapping, Tuple

from arena.errors import ValidationError
from arena.store import ATTACK_LOG_LIMIT


def parse_player_id(value, name: str = 'id') -> int:
    if isinstance(value, bool) or value is None or value == '':
        raise ValidationError(f"{name} is required")
    try:
        player_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")
    if player_id <= 0:
        raise ValidationError(f"{name} must be positive")
    return player_id


def _id_from(data: Mapping) -> int:
    # Frame clients send ``fid``; both spellings are accepted
    return parse_player_id(data.get('id', data.get('fid')))


@dataclass(frozen=True)
class GetHp:
    player_id: int

    @classmethod
    def from_payload(cls, data: Mapping) -> 'GetHp':
        return cls(_id_from(data))


@dataclass(frozen=True)
class SetHp:
    player_id: int
    hp: int

    @classmethod
    def from_payload(cls, data: Mapping) -> 'SetHp':
        hp = data.get('hp')
        if hp is None:
            raise ValidationError('id and hp are required')
        if isinstance(hp, bool) or not isinstance(hp, int):
            raise ValidationError('hp must be an integer')
        return cls(_id_from(data), hp)


@dataclass(frozen=True)
class ResetHp:
    player_ids: Tuple[int, ...]

    @classmethod
    def from_payload(cls, data: Mapping) -> 'ResetHp':
        ids = data.get('ids', data.get('fids'))
        if not isinstance(ids, list):
            raise ValidationError('ids array is required')
        return cls(tuple(parse_player_id(v, 'ids[]') for v in ids))


@dataclass(frozen=True)
class GetWins:
    player_id: int

    @classmethod
    def from_payload(cls, data: Mapping) -> 'GetWins':
        return cls(_id_from(data))


@dataclass(frozen=True)
class IncrementWins:
    player_id: int

    @classmethod
    def from_payload(cls, data: Mapping) -> 'IncrementWins':
        return cls(_id_from(data))


@dataclass(frozen=True)
class LogAttack:
    player_id: int
    attack: Mapping

    @classmethod
    def from_payload(cls, data: Mapping) -> 'LogAttack':
        attack = data.get('attack')
        if not isinstance(attack, dict) or not attack:
            raise ValidationError('id and attack data are required')
        return cls(_id_from(data), attack)


@dataclass(frozen=True)
class GetAttacks:
    player_id: int
    limit: int = ATTACK_LOG_LIMIT

    @classmethod
    def from_payload(cls, data: Mapping) -> 'GetAttacks':
        limit = data.get('limit', ATTACK_LOG_LIMIT)
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            raise ValidationError('limit must be an integer')
        return cls(_id_from(data), max(0, min(limit, ATTACK_LOG_LIMIT)))


# Legacy action names -> (HTTP method, command type)
ACTIONS = {
    'get-hp': ('GET', GetHp),
    'get-wins': ('GET', GetWins),
    'get-attacks': ('GET', GetAttacks),
    'set-hp': ('POST', SetHp),
    'reset-hp': ('POST', ResetHp),
    'increment-wins': ('POST', IncrementWins),
    'log-attack': ('POST', LogAttack),
}


def parse_action(action: str, method: str, data: Mapping):
    entry = ACTIONS.get(action)
    if entry is None or entry[0] != method:
        raise ValidationError('Invalid action')
    return entry[1].from_payload(data)


@singledispatch
def execute(command, store) -> dict:
    raise ValidationError(f"Unsupported command {type(command).__name__}")


@execute.register
def _get_hp(command: GetHp, store) -> dict:
    return {'hp': store.get_hp(command.player_id)}


@execute.register
def _set_hp(command: SetHp, store) -> dict:
    store.set_hp(command.player_id, command.hp)
    return {'success': True}


@execute.register
def _reset_hp(command: ResetHp, store) -> dict:
    store.reset_hp(command.player_ids)
    return {'success': True}


@execute.register
def _get_wins(command: GetWins, store) -> dict:
    return {'wins': store.get_wins(command.player_id)}


@execute.register
def _increment_wins(command: IncrementWins, store) -> dict:
    return {'success': True, 'wins': store.increment_wins(command.player_id)}


@execute.register
def _log_attack(command: LogAttack, store) -> dict:
    store.append_attack(command.player_id, command.attack)
    return {'success': True}


@execute.register
def _get_attacks(command: GetAttacks, store) -> dict:
    return {'attacks': store.get_recent_attacks(command.player_id, command.limit)}
