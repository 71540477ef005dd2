import time
from typing import Any, Dict

from flask import current_app, request
from flask_socketio import join_room, leave_room, emit

from arena import socketio
from arena.services.game import current_services


def session_room(session_id: str) -> str:
    return f"session:{session_id}"


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect():
    # If this socket owned a session and no other owner remains, end it
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx or not ctx.get('is_owner'):
        return
    session_id = ctx['session_id']
    _owner_count[session_id] = max(0, _owner_count.get(session_id, 0) - 1)
    if _owner_count[session_id] > 0:
        return
    # In tests, end immediately for determinism; in prod, allow grace period
    if current_app.config.get('TESTING'):
        _end_session(session_id, 'owner_disconnected')
        return
    _schedule_end_if_no_owner(session_id, float(current_app.config.get('OWNER_GRACE_SEC', 2)))


def handle_join_session(data):
    session_id = (data or {}).get('session_id')
    is_owner = bool((data or {}).get('is_owner'))
    if not session_id:
        emit('error', {'message': 'session_id is required'})
        return
    room = session_room(session_id)
    join_room(room)
    previous = _sid_to_ctx.get(_get_sid())
    if is_owner and not (previous and previous.get('is_owner') and previous['session_id'] == session_id):
        _owner_count[session_id] = _owner_count.get(session_id, 0) + 1
        _end_deadline.pop(session_id, None)
    _sid_to_ctx[_get_sid()] = {'session_id': session_id, 'is_owner': is_owner}
    emit('joined', {'room': room})


def handle_leave_session(data):
    session_id = (data or {}).get('session_id')
    if not session_id:
        emit('error', {'message': 'session_id is required'})
        return
    room = session_room(session_id)
    leave_room(room)
    emit('left', {'room': room})
    ctx = _sid_to_ctx.get(_get_sid())
    if ctx and ctx.get('is_owner') and ctx['session_id'] == session_id:
        # Explicit quit: end immediately
        _sid_to_ctx.pop(_get_sid(), None)
        _end_session(session_id, 'owner_left')


def handle_ping(data):
    emit('pong', data or {})


def emit_to_session(event: str, payload: dict, session_id: str) -> None:
    """Push a server-side event to every frame watching a session."""
    socketio.emit(event, payload, to=session_room(session_id), namespace='/ws')


# ---- Session owner lifecycle helpers ----

_sid_to_ctx: Dict[str, Dict[str, Any]] = {}
_owner_count: Dict[str, int] = {}
_end_deadline: Dict[str, float] = {}


def _get_sid() -> str:
    return request.sid  # type: ignore


def _end_session(session_id: str, reason: str) -> None:
    _owner_count.pop(session_id, None)
    _end_deadline.pop(session_id, None)
    if current_services().sessions.discard(session_id):
        current_app.logger.info(f"[session-end] session={session_id} reason={reason}")
        emit_to_session('session_ended', {'session_id': session_id, 'reason': reason}, session_id)


def _schedule_end_if_no_owner(session_id: str, delay_sec: float) -> None:
    _end_deadline[session_id] = time.time() + delay_sec
    app = current_app._get_current_object()

    def _runner(sid: str, deadline: float):
        sleep_for = max(0.0, deadline - time.time())
        if sleep_for:
            time.sleep(sleep_for)
        if _owner_count.get(sid, 0) == 0 and _end_deadline.get(sid) == deadline:
            with app.app_context():
                _end_session(sid, 'owner_disconnected')

    socketio.start_background_task(_runner, session_id, _end_deadline[session_id])


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('join_session', handle_join_session, namespace=namespace)
        socketio.on_event('leave_session', handle_leave_session, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
