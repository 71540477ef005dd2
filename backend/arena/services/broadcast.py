"""Post-commit publication of attack announcements.

Announcements are queued after HP and log writes have committed and are
delivered by a background worker, so a failing directory can never affect
game state.
"""

import logging
import queue
from typing import Iterable

from arena.errors import ExternalLookupFailure

logger = logging.getLogger(__name__)


class BroadcastQueue:
    def __init__(self, directory, enabled: bool = True):
        self.directory = directory
        self.enabled = enabled
        self._pending: 'queue.Queue[str]' = queue.Queue()
        self._running = False

    def publish(self, messages: Iterable[str]) -> None:
        if not self.enabled:
            return
        for message in messages:
            self._pending.put(message)

    def drain(self) -> int:
        """Deliver everything queued right now; returns the number delivered."""
        delivered = 0
        while True:
            try:
                message = self._pending.get_nowait()
            except queue.Empty:
                return delivered
            if self._deliver(message):
                delivered += 1

    def _deliver(self, message: str) -> bool:
        try:
            self.directory.publish_cast(message)
            return True
        except ExternalLookupFailure as exc:
            logger.warning("[broadcast-fail] %s: %s", exc, message)
        except Exception:
            logger.exception("[broadcast-fail] unexpected error: %s", message)
        return False

    def start(self, socketio) -> None:
        """Run the delivery loop as a Socket.IO background task."""
        if self._running or not self.enabled:
            return
        self._running = True
        socketio.start_background_task(self._worker)

    def _worker(self):
        while True:
            self._deliver(self._pending.get())
