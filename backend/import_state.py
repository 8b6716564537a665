"""
In-memory import tracker.

The upload page polls `/import/status` while `/import` is still running
in another worker thread, so progress, the last result and the cancel
token for each user live here behind one lock. State is per process and
is lost on restart; it only ever describes the current or latest import.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, Optional

from models import ImportResult, ImportStatus


@dataclass
class _UserImport:
    importing: bool = False
    progress: int = 0
    last_result: Optional[ImportResult] = None
    cancel: threading.Event = field(default_factory=threading.Event)


class ImportTracker:
    """Per-user import state shared between request threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._users: Dict[str, _UserImport] = {}

    def _get(self, user_id: str) -> _UserImport:
        state = self._users.get(user_id)
        if state is None:
            state = self._users[user_id] = _UserImport()
        return state

    def begin(self, user_id: str) -> Optional[threading.Event]:
        """Mark an import as running and return its cancel token.

        Returns None if `user_id` already has an import in flight.
        """
        with self._lock:
            state = self._get(user_id)
            if state.importing:
                return None
            state.importing = True
            state.progress = 0
            state.cancel = threading.Event()
            return state.cancel

    def set_progress(self, user_id: str, percent: int) -> None:
        with self._lock:
            self._get(user_id).progress = percent

    def finish(self, user_id: str, result: ImportResult) -> None:
        with self._lock:
            state = self._get(user_id)
            state.importing = False
            state.last_result = result

    def cancel(self, user_id: str) -> bool:
        """Signal the running import to stop. False if nothing is running."""
        with self._lock:
            state = self._users.get(user_id)
            if state is None or not state.importing:
                return False
            state.cancel.set()
            return True

    def status(self, user_id: str) -> ImportStatus:
        with self._lock:
            state = self._users.get(user_id)
            if state is None:
                return ImportStatus()
            return ImportStatus(
                importing=state.importing,
                progress=state.progress,
                last_result=state.last_result,
            )

    def clear_result(self, user_id: str) -> None:
        with self._lock:
            state = self._users.get(user_id)
            if state is not None:
                state.last_result = None
