from __future__ import annotations

from import_state import ImportTracker
from models import ImportResult


def test_begin_returns_fresh_token_and_blocks_second_import() -> None:
    tracker = ImportTracker()

    token = tracker.begin("alex")
    assert token is not None and not token.is_set()
    assert tracker.begin("alex") is None
    assert tracker.begin("sam") is not None


def test_progress_finish_and_clear() -> None:
    tracker = ImportTracker()
    tracker.begin("alex")
    tracker.set_progress("alex", 42)
    assert tracker.status("alex").progress == 42
    assert tracker.status("alex").importing

    tracker.finish("alex", ImportResult(success=True, imported=3))
    status = tracker.status("alex")
    assert not status.importing
    assert status.last_result.imported == 3

    tracker.clear_result("alex")
    assert tracker.status("alex").last_result is None


def test_cancel_sets_token_only_while_running() -> None:
    tracker = ImportTracker()
    assert tracker.cancel("alex") is False

    token = tracker.begin("alex")
    assert tracker.cancel("alex") is True
    assert token.is_set()

    tracker.finish("alex", ImportResult(success=False))
    next_token = tracker.begin("alex")
    assert not next_token.is_set()


def test_unknown_user_status_is_idle() -> None:
    status = ImportTracker().status("nobody")

    assert status.importing is False
    assert status.progress == 0
    assert status.last_result is None
