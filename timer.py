"""Countdown timer for timed tests and sections."""

import math
import threading
import time
from typing import Callable, Optional


class Timer:
    """Deadline-based countdown.

    Remaining time is derived from a clock, so it can be polled from any
    thread (or from a Streamlit rerun) without drifting. Callbacks fire from
    poll(); start_watcher() runs poll() once a second on a daemon thread for
    callers that block on input.
    """

    def __init__(
        self,
        total_seconds: int,
        clock: Callable[[], float] = time.monotonic,
        on_warning: Optional[Callable[[int], None]] = None,
        on_expire: Optional[Callable[[], None]] = None,
        warning_seconds: Optional[int] = None,
    ):
        self.total_seconds = max(0, int(total_seconds))
        self._clock = clock
        self._on_warning = on_warning
        self._on_expire = on_expire
        self._warning_seconds = warning_seconds
        self._lock = threading.Lock()
        self._started_at: Optional[float] = None
        self._stopped_remaining: Optional[int] = None
        self._warned = False
        self._expired = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        with self._lock:
            self._started_at = self._clock()
            self._stopped_remaining = None
            self._warned = False
            self._expired = False

    def reset(self, total_seconds: int) -> None:
        self.total_seconds = max(0, int(total_seconds))
        self.start()

    def stop(self) -> None:
        """Freeze the remaining time and stop any watcher thread."""
        with self._lock:
            if self._stopped_remaining is None:
                self._stopped_remaining = self._compute_remaining()
        self._stop_event.set()
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=2)

    def _compute_remaining(self) -> int:
        if self._started_at is None:
            return self.total_seconds
        left = self.total_seconds - (self._clock() - self._started_at)
        return max(0, math.ceil(left))

    def get_remaining(self) -> int:
        with self._lock:
            if self._stopped_remaining is not None:
                return self._stopped_remaining
            return self._compute_remaining()

    def get_elapsed(self) -> int:
        return self.total_seconds - self.get_remaining()

    def get_formatted_remaining(self) -> str:
        r = self.get_remaining()
        return f"{r // 60:02d}:{r % 60:02d}"

    def is_time_up(self) -> bool:
        return self.get_remaining() <= 0

    def poll(self) -> int:
        """Fire due callbacks once each and return the remaining seconds."""
        remaining = self.get_remaining()
        fire_warning = fire_expire = False
        with self._lock:
            if (
                self._warning_seconds is not None
                and not self._warned
                and 0 < remaining <= self._warning_seconds
            ):
                self._warned = True
                fire_warning = True
            if remaining <= 0 and not self._expired:
                self._expired = True
                fire_expire = True

        if fire_warning and self._on_warning:
            self._on_warning(remaining)
        if fire_expire and self._on_expire:
            self._on_expire()
        return remaining

    def start_watcher(self, interval: float = 1.0) -> None:
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, args=(interval,), daemon=True)
        self._thread.start()

    def _run(self, interval: float) -> None:
        while not self._stop_event.is_set():
            if self.poll() <= 0:
                break
            self._stop_event.wait(interval)
