"""In-memory game sessions: one player, their opponent roster, and the
Loading -> Active -> GameOver -> (reset) -> Active lifecycle.

HP is persisted through the store; the roster itself only lives as long as
the session.
"""

import threading
import uuid
from enum import Enum
from typing import Callable, Dict, List, Optional

from flask import current_app

from arena.errors import (
    AttackNotPermitted,
    ExternalLookupFailure,
    SessionNotFound,
    StoreUnavailable,
    ValidationError,
)
from arena.store import DEFAULT_HP, DEFAULT_WINS
from .engine import AttackOutcome, Combatant
from .leaderboard import compute_leaderboard

Opponent = Combatant


class SessionState(Enum):
    LOADING = 'loading'
    ACTIVE = 'active'
    GAME_OVER = 'game_over'


class SearchResult(Enum):
    ADDED = 'added'
    NOT_FOUND = 'not_found'
    ALREADY_OPPONENT = 'already_opponent'


def parse_pairings(raw: str) -> Dict[int, int]:
    """Parse ``"a:b,c:d"`` into a symmetric id -> partner map."""
    pairings = {}
    for chunk in (raw or '').split(','):
        chunk = chunk.strip()
        if not chunk:
            continue
        left, sep, right = chunk.partition(':')
        if not sep:
            raise ValueError(f"Invalid opponent pair {chunk!r}, expected 'a:b'")
        a, b = int(left), int(right)
        pairings[a] = b
        pairings[b] = a
    return pairings


class GameSession:
    def __init__(self, player_id: int, session_id: Optional[str] = None):
        self.id = session_id or uuid.uuid4().hex
        self.player = Combatant(id=player_id, display_name=f"fid:{player_id}")
        self.opponents: List[Opponent] = []
        self.state = SessionState.LOADING
        self.wins = DEFAULT_WINS
        self.last_outcome: Optional[AttackOutcome] = None
        self.lock = threading.RLock()

    # ---- Loading ----

    def load(self, store, directory, roster_size: int = 5, pairings: Optional[Dict[int, int]] = None) -> None:
        """Build the roster. Lookup failures degrade to defaults and an empty roster."""
        self.state = SessionState.LOADING
        player_id = self.player.id

        partner_id = (pairings or {}).get(player_id)
        names = _lookup_names(directory, [player_id] + ([partner_id] if partner_id else []))
        if player_id in names:
            self.player.display_name = names[player_id]
        self.player.hp = _read_hp(store, player_id)
        try:
            self.wins = store.get_wins(player_id)
        except StoreUnavailable as exc:
            current_app.logger.warning(f"[load] wins for {player_id} unavailable: {exc}")
            self.wins = DEFAULT_WINS

        try:
            contacts = directory.following(player_id, limit=roster_size)
        except ExternalLookupFailure as exc:
            current_app.logger.warning(f"[directory-fail] following for {player_id}: {exc}")
            contacts = []

        roster = []
        seen = {player_id}
        for user in contacts:
            if len(roster) >= roster_size:
                break
            if user.id in seen:
                continue
            seen.add(user.id)
            roster.append(Opponent(id=user.id, display_name=user.username, hp=_read_hp(store, user.id)))
        if partner_id and partner_id not in seen:
            roster.append(Opponent(
                id=partner_id,
                display_name=names.get(partner_id, f"fid:{partner_id}"),
                hp=_read_hp(store, partner_id),
            ))
        self.opponents = roster
        self.state = SessionState.GAME_OVER if self.is_game_over() else SessionState.ACTIVE

    # ---- Derived state ----

    def is_game_over(self) -> bool:
        if self.player.hp <= 0:
            return True
        return bool(self.opponents) and all(o.hp <= 0 for o in self.opponents)

    def find_opponent(self, opponent_id: int) -> Optional[Opponent]:
        for opponent in self.opponents:
            if opponent.id == opponent_id:
                return opponent
        return None

    # ---- Actions ----

    def attack(self, opponent_id: int, weapon: str, engine) -> AttackOutcome:
        if self.state is not SessionState.ACTIVE:
            raise AttackNotPermitted(f"Cannot attack while session is {self.state.value}")
        target = self.find_opponent(opponent_id)
        if target is None:
            raise ValidationError(f"{opponent_id} is not in the opponent roster")
        outcome = engine.resolve_attack(self.player, target, weapon)
        self.last_outcome = outcome
        if self.is_game_over():
            self.state = SessionState.GAME_OVER
        return outcome

    def add_opponent(self, username: str, store, directory) -> SearchResult:
        query = (username or '').strip().lstrip('@')
        if not query:
            raise ValidationError('username is required')
        if any(o.display_name.lower() == query.lower() for o in self.opponents):
            return SearchResult.ALREADY_OPPONENT
        try:
            user = directory.search_user(query)
        except ExternalLookupFailure as exc:
            current_app.logger.warning(f"[directory-fail] search {query!r}: {exc}")
            return SearchResult.NOT_FOUND
        if user is None or user.id == self.player.id:
            return SearchResult.NOT_FOUND
        if self.find_opponent(user.id) is not None:
            return SearchResult.ALREADY_OPPONENT
        self.opponents.append(Opponent(id=user.id, display_name=user.username, hp=_read_hp(store, user.id)))
        return SearchResult.ADDED

    def reset(self, store) -> bool:
        """Restore everyone to full HP; returns True when this reset records a win."""
        won = self.state is SessionState.GAME_OVER and self.player.hp > 0
        store.reset_hp([self.player.id] + [o.id for o in self.opponents])
        self.player.hp = DEFAULT_HP
        for opponent in self.opponents:
            opponent.hp = DEFAULT_HP
        if won:
            self.wins = store.increment_wins(self.player.id)
        self.last_outcome = None
        self.state = SessionState.ACTIVE
        return won

    def to_dict(self):
        return {
            'id': self.id,
            'state': self.state.value,
            'game_over': self.state is SessionState.GAME_OVER,
            'player': self.player.to_dict(),
            'wins': self.wins,
            'opponents': [o.to_dict() for o in self.opponents],
            'last_outcome': self.last_outcome.to_dict() if self.last_outcome else None,
        }


def _read_hp(store, player_id: int) -> int:
    try:
        return store.get_hp(player_id)
    except StoreUnavailable as exc:
        current_app.logger.warning(f"[load] hp for {player_id} unavailable, using default: {exc}")
        return DEFAULT_HP


def _lookup_names(directory, player_ids: List[int]) -> Dict[int, str]:
    try:
        users = directory.lookup_users(player_ids)
    except ExternalLookupFailure as exc:
        current_app.logger.warning(f"[directory-fail] lookup {player_ids}: {exc}")
        return {}
    return {pid: user.username for pid, user in users.items() if user.username}


class SessionManager:
    """Registry of live sessions plus the side effects around them:
    broadcasting announcements, pushing updates, and the deferred reset.
    """

    def __init__(self, store, directory, engine, broadcaster, scheduler,
                 reset_delay: float = 5.0, roster_size: int = 5,
                 pairings: Optional[Dict[int, int]] = None,
                 notify: Optional[Callable[[str, dict, str], None]] = None):
        self.store = store
        self.directory = directory
        self.engine = engine
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.reset_delay = reset_delay
        self.roster_size = roster_size
        self.pairings = pairings or {}
        self._notify = notify or (lambda event, payload, session_id: None)
        self._sessions: Dict[str, GameSession] = {}
        self._lock = threading.Lock()

    def create(self, player_id: int) -> GameSession:
        """Start a session, replacing any live session for the same player."""
        session = GameSession(player_id)
        session.load(self.store, self.directory, self.roster_size, self.pairings)
        with self._lock:
            replaced = [sid for sid, s in self._sessions.items() if s.player.id == player_id]
            for sid in replaced:
                del self._sessions[sid]
            self._sessions[session.id] = session
        for sid in replaced:
            self.scheduler.cancel(sid)
            current_app.logger.info(f"[session-replaced] session={sid} by={session.id}")
            self._notify('session_ended', {'session_id': sid, 'reason': 'replaced'}, sid)
        if session.state is SessionState.GAME_OVER:
            self._schedule_reset(session)
        return session

    def get(self, session_id: str) -> GameSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(f"Session {session_id} not found")
        return session

    def end(self, session_id: str) -> None:
        if not self.discard(session_id):
            raise SessionNotFound(f"Session {session_id} not found")

    def discard(self, session_id: str) -> bool:
        """Drop a session and its pending reset; False if it was already gone."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        self.scheduler.cancel(session_id)
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def attack(self, session_id: str, opponent_id: int, weapon: str) -> AttackOutcome:
        session = self.get(session_id)
        with session.lock:
            outcome = session.attack(opponent_id, weapon, self.engine)
            payload = session.to_dict()
            game_over = session.state is SessionState.GAME_OVER
        # HP and log writes are committed; publishing cannot undo them
        self.broadcaster.publish(outcome.announcements)
        self._notify('state_update', payload, session.id)
        if game_over:
            self._notify('game_over', payload, session.id)
            self._schedule_reset(session)
        return outcome

    def add_opponent(self, session_id: str, username: str) -> SearchResult:
        session = self.get(session_id)
        with session.lock:
            result = session.add_opponent(username, self.store, self.directory)
            payload = session.to_dict()
        if result is SearchResult.ADDED:
            self._notify('state_update', payload, session.id)
        return result

    def reset(self, session_id: str) -> bool:
        session = self.get(session_id)
        self.scheduler.cancel(session_id)
        with session.lock:
            won = session.reset(self.store)
            payload = session.to_dict()
        self._notify('state_update', payload, session.id)
        if won:
            self._refresh_leaderboard(session.id)
        return won

    def _schedule_reset(self, session: GameSession) -> None:
        self.scheduler.schedule(session.id, self.reset_delay, lambda: self._fire_reset(session.id))

    def _fire_reset(self, session_id: str) -> None:
        with self._lock:
            if session_id not in self._sessions:
                return
        self.reset(session_id)

    def _refresh_leaderboard(self, session_id: str) -> None:
        try:
            board = compute_leaderboard(self.store, self.directory)
        except StoreUnavailable as exc:
            current_app.logger.warning(f"[leaderboard] refresh skipped: {exc}")
            return
        self._notify('leaderboard_update', {'leaderboard': [e.to_dict() for e in board]}, session_id)
