import pytest

from proctoring import ProctoringMonitor, violation_from_event


@pytest.mark.parametrize("event, expected", [
    ({"type": "visibilitychange", "hidden": True}, ("tab_switch", "warning")),
    ({"type": "blur"}, ("window_blur", "warning")),
    ({"type": "fullscreenchange", "fullscreen": False, "was_fullscreen": True},
     ("fullscreen_exit", "critical")),
    ({"type": "resize", "outerWidth": 1400, "innerWidth": 1000, "outerHeight": 900, "innerHeight": 880},
     ("devtools", "critical")),
    ({"type": "keydown", "key": "F12"}, ("devtools", "warning")),
    ({"type": "keydown", "key": "I", "ctrlKey": True, "shiftKey": True}, ("devtools", "warning")),
    ({"type": "keydown", "key": "u", "ctrlKey": True}, ("devtools", "warning")),
])
def test_events_that_are_violations(event, expected):
    violation = violation_from_event(event)
    assert (violation.violation_type, violation.severity) == expected


@pytest.mark.parametrize("event", [
    {"type": "visibilitychange", "hidden": False},
    {"type": "fullscreenchange", "fullscreen": True, "was_fullscreen": False},
    {"type": "resize", "outerWidth": 1000, "innerWidth": 990, "outerHeight": 800, "innerHeight": 780},
    {"type": "keydown", "key": "a"},
    {"type": "click"},
])
def test_harmless_events(event):
    assert violation_from_event(event) is None


def test_disqualifies_at_warning_limit():
    recorded, disqualified = [], []
    monitor = ProctoringMonitor(
        5, 9,
        recorder=lambda v, count: recorded.append((v.violation_type, count)),
        on_disqualify=disqualified.append,
    )

    first = monitor.handle_event({"type": "blur"})
    assert (first.count, first.disqualified) == (1, False)
    assert "1/3" in first.message

    monitor.handle_event({"type": "blur"})
    third = monitor.handle_event({"type": "visibilitychange", "hidden": True})
    assert third.disqualified
    assert monitor.is_disqualified
    assert disqualified == ["Maximum violations exceeded"]
    assert recorded == [("window_blur", 1), ("window_blur", 2), ("tab_switch", 3)]

    # Nothing is counted after disqualification
    assert monitor.handle_event({"type": "blur"}) is None
    assert monitor.violation_count == 3


def test_terminal_violation_disqualifies_immediately():
    disqualified = []
    monitor = ProctoringMonitor(1, 1, on_disqualify=disqualified.append)
    outcome = monitor.log_violation("impersonation", "terminal", "Another person detected")
    assert outcome.disqualified
    assert disqualified == ["Another person detected"]


def test_disabled_monitor_ignores_everything():
    monitor = ProctoringMonitor(1, 1, enabled=False)
    assert monitor.handle_event({"type": "blur"}) is None
    assert monitor.violation_count == 0


def test_count_resumes_from_persisted_value():
    monitor = ProctoringMonitor(1, 1, initial_count=2)
    outcome = monitor.handle_event({"type": "blur"})
    assert outcome.disqualified


def test_non_violation_event_is_not_counted():
    monitor = ProctoringMonitor(1, 1)
    assert monitor.handle_event({"type": "visibilitychange", "hidden": False}) is None
    assert monitor.violation_count == 0


def test_unknown_severity_is_rejected():
    monitor = ProctoringMonitor(1, 1)
    with pytest.raises(ValueError):
        monitor.log_violation("tab_switch", "minor", "Tab switched")
