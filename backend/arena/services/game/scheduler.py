import threading
import time
from typing import Callable, Dict, Optional

from arena import socketio


class ResetScheduler:
    """One cancellable, one-shot deferred task per key.

    Scheduling again for the same key supersedes the pending task; a task
    whose token was cancelled or superseded wakes up and does nothing.
    """

    def __init__(self, app, spawn: Optional[Callable] = None):
        self.app = app
        self._spawn = spawn or socketio.start_background_task
        self._tokens: Dict[str, object] = {}
        self._lock = threading.Lock()

    def schedule(self, key: str, delay: float, fn: Callable[[], None]) -> None:
        token = object()
        with self._lock:
            self._tokens[key] = token
        self.app.logger.info(f"[reset-scheduled] session={key} delay={delay}s")
        self._spawn(self._runner, key, token, delay, fn)

    def cancel(self, key: str) -> bool:
        with self._lock:
            cancelled = self._tokens.pop(key, None) is not None
        if cancelled:
            self.app.logger.info(f"[reset-cancel] session={key}")
        return cancelled

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._tokens

    def _runner(self, key: str, token: object, delay: float, fn: Callable[[], None]) -> None:
        if delay > 0:
            time.sleep(delay)
        with self._lock:
            if self._tokens.get(key) is not token:
                self.app.logger.info(f"[reset-abort] session={key} cancelled or superseded")
                return
            del self._tokens[key]
        with self.app.app_context():
            self.app.logger.info(f"[reset-fire] session={key}")
            try:
                fn()
            except Exception:
                self.app.logger.exception(f"[reset-fail] session={key}")
