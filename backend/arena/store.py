"""Typed key-value persistence for HP, wins and attack logs.

Keys follow the ``hp:<id>``, ``wins:<id>`` and ``attacks:<id>`` layout that
other tooling reads directly, so the naming here is a wire contract.
"""

import functools
import json
from typing import Iterable, List, Mapping, Set

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from arena import db
from arena.errors import StoreUnavailable, ValidationError
from arena.models import KeyValue, ListEntry

DEFAULT_HP = 100
MAX_HP = 100
DEFAULT_WINS = 0
ATTACK_LOG_LIMIT = 10


def hp_key(player_id: int) -> str:
    return f"hp:{player_id}"


def wins_key(player_id: int) -> str:
    return f"wins:{player_id}"


def attacks_key(player_id: int) -> str:
    return f"attacks:{player_id}"


def _guarded(func):
    """Roll back and surface backend failures as StoreUnavailable."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SQLAlchemyError as exc:
            try:
                db.session.rollback()
            except SQLAlchemyError:
                pass
            raise StoreUnavailable(f"Store unavailable: {exc.__class__.__name__}") from exc
    return wrapper


def _require_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    return value


class KeyValueStore:
    """Read/write access to the three game namespaces.

    Every method is a separate unit of work: it commits before returning and
    never retries after a backend failure.
    """

    # ---- HP ----

    def _read_int(self, key: str, default: int) -> int:
        value = db.session.execute(
            sa.select(KeyValue.value).where(KeyValue.key == key)
        ).scalar_one_or_none()
        return int(value) if value is not None else default

    def _exists(self, key: str) -> bool:
        return db.session.execute(
            sa.select(KeyValue.key).where(KeyValue.key == key)
        ).first() is not None

    @_guarded
    def get_hp(self, player_id: int) -> int:
        return self._read_int(hp_key(player_id), DEFAULT_HP)

    @_guarded
    def set_hp(self, player_id: int, hp: int) -> None:
        _require_int('hp', hp)
        db.session.merge(KeyValue(key=hp_key(player_id), value=str(hp)))
        db.session.commit()

    @_guarded
    def compare_and_set_hp(self, player_id: int, expected: int, new: int) -> bool:
        """Write ``new`` only if the stored HP still equals ``expected``.

        An absent key reads as DEFAULT_HP, so it matches ``expected == 100``.
        """
        _require_int('hp', new)
        key = hp_key(player_id)
        result = db.session.execute(
            sa.update(KeyValue)
            .where(KeyValue.key == key, KeyValue.value == str(expected))
            .values(value=str(new))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            db.session.commit()
            return True
        db.session.rollback()
        if expected != DEFAULT_HP or self._exists(key):
            return False
        try:
            db.session.add(KeyValue(key=key, value=str(new)))
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return False
        return True

    @_guarded
    def reset_hp(self, player_ids: Iterable[int]) -> None:
        for player_id in player_ids:
            db.session.merge(KeyValue(key=hp_key(player_id), value=str(DEFAULT_HP)))
        db.session.commit()

    # ---- Wins ----

    @_guarded
    def get_wins(self, player_id: int) -> int:
        return self._read_int(wins_key(player_id), DEFAULT_WINS)

    @_guarded
    def increment_wins(self, player_id: int) -> int:
        """Atomically add one win, creating the counter at 1."""
        key = wins_key(player_id)
        if self._increment_existing(key):
            db.session.commit()
        else:
            try:
                db.session.add(KeyValue(key=key, value='1'))
                db.session.commit()
            except IntegrityError:
                # Another writer created the counter first
                db.session.rollback()
                self._increment_existing(key)
                db.session.commit()
        return self._read_int(key, DEFAULT_WINS)

    def _increment_existing(self, key: str) -> bool:
        result = db.session.execute(
            sa.update(KeyValue)
            .where(KeyValue.key == key)
            .values(value=sa.cast(sa.cast(KeyValue.value, sa.Integer) + 1, sa.String))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    @_guarded
    def list_winner_ids(self) -> Set[int]:
        winners = set()
        rows = db.session.execute(
            sa.select(KeyValue.key, KeyValue.value).where(KeyValue.key.like('wins:%'))
        ).all()
        for row in rows:
            try:
                player_id = int(row.key.split(':', 1)[1])
                wins = int(row.value)
            except ValueError:
                continue
            if wins > 0:
                winners.add(player_id)
        return winners

    # ---- Attack log ----

    @_guarded
    def append_attack(self, target_id: int, entry: Mapping) -> None:
        """Prepend ``entry`` to the target's log and keep only the newest 10."""
        key = attacks_key(target_id)
        db.session.add(ListEntry(key=key, value=json.dumps(dict(entry))))
        db.session.flush()
        stale = [
            row.id for row in ListEntry.query.filter_by(key=key)
            .order_by(ListEntry.id.desc())
            .offset(ATTACK_LOG_LIMIT)
            .all()
        ]
        if stale:
            ListEntry.query.filter(ListEntry.id.in_(stale)).delete(synchronize_session=False)
        db.session.commit()

    @_guarded
    def get_recent_attacks(self, target_id: int, limit: int = ATTACK_LOG_LIMIT) -> List[dict]:
        rows = (
            ListEntry.query.filter_by(key=attacks_key(target_id))
            .order_by(ListEntry.id.desc())
            .limit(limit)
            .all()
        )
        return [json.loads(row.value) for row in rows]
