from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable, Optional

logger = logging.getLogger(__name__)

STATUS_IDLE = "idle"
STATUS_SAVING = "saving"
STATUS_SAVED = "saved"
STATUS_ERROR = "error"


def _fingerprint(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


class AutoSaver:
    """
    Debounced saver for one editable value.

    push() only schedules a save when the value differs from the last one
    saved; a newer push within delay_ms replaces the pending one.
    """

    def __init__(self, on_save: Callable[[Any], None], delay_ms: int = 800):
        self._on_save = on_save
        self._delay = max(0, int(delay_ms)) / 1000.0
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._pending: Any = None
        self._last_saved: Optional[str] = None
        self._status = STATUS_IDLE
        self._error: Optional[BaseException] = None
        self._closed = False

    @property
    def status(self) -> str:
        return self._status

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def seed(self, value: Any) -> None:
        """Mark value as already persisted (e.g. freshly loaded from the store)."""
        with self._lock:
            self._last_saved = _fingerprint(value)

    def push(self, value: Any) -> bool:
        fp = _fingerprint(value)
        with self._lock:
            if self._closed or fp == self._last_saved:
                return False
            if self._timer is not None:
                self._timer.cancel()
            self._pending = value
            self._timer = threading.Timer(self._delay, self._fire)
            self._timer.daemon = True
            self._timer.start()
            return True

    def flush(self) -> str:
        """Run the pending save now, on the calling thread."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        self._fire()
        return self._status

    def close(self) -> None:
        with self._lock:
            self._closed = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = None

    def _fire(self) -> None:
        with self._lock:
            if self._closed or self._pending is None:
                return
            value, self._pending = self._pending, None
            self._timer = None
            self._status = STATUS_SAVING

        try:
            self._on_save(value)
        except Exception as e:
            logger.warning("Auto-save failed: %s", e)
            with self._lock:
                if not self._closed:
                    self._status = STATUS_ERROR
                    self._error = e
            return

        with self._lock:
            if not self._closed:
                self._status = STATUS_SAVED
                self._error = None
                self._last_saved = _fingerprint(value)


def combined_status(statuses: Iterable[str]) -> str:
    statuses = list(statuses)
    if STATUS_SAVING in statuses:
        return STATUS_SAVING
    if STATUS_ERROR in statuses:
        return STATUS_ERROR
    if STATUS_SAVED in statuses:
        return STATUS_SAVED
    return STATUS_IDLE


def save_concurrently(tasks: Iterable[Callable[[], Any]], max_workers: int = 4) -> str:
    """Run independent writes in parallel; one failure does not cancel the others."""
    tasks = list(tasks)
    if not tasks:
        return STATUS_IDLE

    statuses = []
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [pool.submit(t) for t in tasks]
        for f in futures:
            try:
                f.result()
                statuses.append(STATUS_SAVED)
            except Exception as e:
                logger.warning("Concurrent save failed: %s", e)
                statuses.append(STATUS_ERROR)
    return combined_status(statuses)
