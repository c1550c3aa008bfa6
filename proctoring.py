"""Proctoring: classify client events as violations and enforce the warning limit."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

import config
from models import ProctoringViolation, ViolationSeverity

logger = logging.getLogger(__name__)


@dataclass
class Violation:
    violation_type: str
    severity: str
    description: str


@dataclass
class ViolationOutcome:
    count: int
    disqualified: bool
    message: str


def _is_devtools_shortcut(event: Dict) -> bool:
    key = str(event.get("key", ""))
    ctrl = bool(event.get("ctrlKey") or event.get("ctrl"))
    shift = bool(event.get("shiftKey") or event.get("shift"))
    if key == "F12":
        return True
    if ctrl and shift and key in ("I", "J"):
        return True
    return ctrl and key == "u"


def violation_from_event(event: Dict) -> Optional[Violation]:
    """Translate a client-side event into a violation, if it is one.

    Events are plain dicts as posted by the browser, e.g.
    {"type": "visibilitychange", "hidden": True} or
    {"type": "keydown", "key": "I", "ctrlKey": True, "shiftKey": True}.
    """
    kind = event.get("type")

    if kind == "visibilitychange":
        if event.get("hidden"):
            return Violation("tab_switch", ViolationSeverity.WARNING.value, "Tab switched or minimized")
        return None

    if kind == "blur":
        return Violation("window_blur", ViolationSeverity.WARNING.value, "Window lost focus")

    if kind == "fullscreenchange":
        if not event.get("fullscreen") and event.get("was_fullscreen"):
            return Violation("fullscreen_exit", ViolationSeverity.CRITICAL.value, "Exited fullscreen mode")
        return None

    if kind == "resize":
        threshold = config.DEVTOOLS_SIZE_THRESHOLD
        width_gap = event.get("outerWidth", 0) - event.get("innerWidth", 0)
        height_gap = event.get("outerHeight", 0) - event.get("innerHeight", 0)
        if width_gap > threshold or height_gap > threshold:
            return Violation("devtools", ViolationSeverity.CRITICAL.value, "Developer tools detected")
        return None

    if kind == "keydown" and _is_devtools_shortcut(event):
        return Violation("devtools", ViolationSeverity.WARNING.value, "Attempted to open developer tools")

    return None


class ProctoringMonitor:
    """Counts violations for one test and disqualifies past the limit.

    `recorder` persists each violation and the running count; it receives
    (ProctoringViolation, count). `on_disqualify` is called once with the
    reason.
    """

    def __init__(
        self,
        test_id: Optional[int],
        user_id: Optional[int],
        enabled: bool = True,
        max_warnings: int = config.MAX_WARNINGS,
        recorder: Optional[Callable[[ProctoringViolation, int], None]] = None,
        on_disqualify: Optional[Callable[[str], None]] = None,
        initial_count: int = 0,
    ):
        self.test_id = test_id
        self.user_id = user_id
        self.enabled = enabled
        self.max_warnings = max_warnings
        self.violation_count = initial_count
        self.is_disqualified = False
        self.disqualify_reason: Optional[str] = None
        self._recorder = recorder
        self._on_disqualify = on_disqualify

    def handle_event(self, event: Dict) -> Optional[ViolationOutcome]:
        violation = violation_from_event(event)
        if violation is None:
            return None
        return self.log_violation(violation.violation_type, violation.severity, violation.description)

    def log_violation(
        self, violation_type: str, severity: str, description: str
    ) -> Optional[ViolationOutcome]:
        if not self.enabled or self.is_disqualified:
            return None

        severity = ViolationSeverity(severity).value
        self.violation_count += 1
        count = self.violation_count

        if self._recorder:
            self._recorder(
                ProctoringViolation(
                    test_id=self.test_id,
                    user_id=self.user_id,
                    violation_type=violation_type,
                    severity=severity,
                    description=description,
                    created_at=datetime.now().isoformat(),
                ),
                count,
            )
        logger.warning(
            "Test %s: %s violation '%s' (%d/%d)",
            self.test_id, severity, violation_type, count, self.max_warnings,
        )

        if severity == ViolationSeverity.TERMINAL.value:
            self._disqualify(description)
            return ViolationOutcome(count, True, description)

        if count >= self.max_warnings:
            reason = "Maximum violations exceeded"
            self._disqualify(reason)
            return ViolationOutcome(count, True, reason)

        return ViolationOutcome(
            count, False, f"{description} ({count}/{self.max_warnings} warnings)"
        )

    def _disqualify(self, reason: str) -> None:
        if self.is_disqualified:
            return
        self.is_disqualified = True
        self.disqualify_reason = reason
        if self._on_disqualify:
            self._on_disqualify(reason)
