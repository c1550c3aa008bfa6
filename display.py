import os
from typing import Dict, List, Optional, Tuple

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

import config
from config import ExamConfig
from models import (
    ProctoringViolation,
    Question,
    Section,
    SectionState,
    Student,
    Test,
    TestResult,
    TopicPerformance,
)

custom_theme = Theme({
    "correct": "bold green",
    "wrong": "bold red",
    "skip": "dim",
    "strong": "bold green",
    "needs_work": "bold yellow",
    "weak": "bold red",
    "info": "bold cyan",
    "header": "bold magenta",
    "timer_ok": "bold green",
    "timer_warn": "bold yellow",
    "timer_critical": "bold red",
})

console = Console(theme=custom_theme)


# ---------------------------------------------------------------------------
# General UI
# ---------------------------------------------------------------------------

def clear_screen() -> None:
    os.system("cls" if os.name == "nt" else "clear")


def show_banner(exam: Optional[ExamConfig] = None) -> None:
    banner = Text()
    banner.append("  Admission Test Prep  ", style="bold white on blue")
    console.print()
    console.print(Align.center(banner))
    subtitle = exam.name if exam else "Practice, simulations and mock sessions"
    console.print(Align.center(Text(subtitle, style="dim")))
    console.print()


def show_menu(title: str, options: List[str]) -> int:
    """Show a numbered menu and return 1-indexed selection."""
    console.print(Rule(title, style="header"))
    console.print()
    for i, option in enumerate(options, 1):
        console.print(f"  [bold cyan]{i}.[/bold cyan] {option}")
    console.print()

    while True:
        try:
            raw = console.input("[bold]Choose an option: [/bold]").strip()
            choice = int(raw)
            if 1 <= choice <= len(options):
                return choice
            console.print(f"  Please enter a number between 1 and {len(options)}.", style="wrong")
        except (ValueError, EOFError):
            console.print(f"  Please enter a number between 1 and {len(options)}.", style="wrong")


def show_error(message: str) -> None:
    console.print(f"  [wrong]Error:[/wrong] {message}")


def show_success(message: str) -> None:
    console.print(f"  [correct]{message}[/correct]")


def show_info(message: str) -> None:
    console.print(f"  [info]{message}[/info]")


def show_warning(message: str) -> None:
    console.print(f"  [needs_work]Warning:[/needs_work] {message}")


def confirm(prompt: str) -> bool:
    while True:
        raw = console.input(f"  {prompt} [bold](y/n)[/bold]: ").strip().lower()
        if raw in ("y", "yes"):
            return True
        if raw in ("n", "no"):
            return False
        console.print("  Please enter y or n.", style="dim")


def prompt_text(prompt: str, default: str = "") -> str:
    suffix = f" [{default}]" if default else ""
    raw = console.input(f"  {prompt}{suffix}: ").strip()
    return raw if raw else default


def prompt_int(prompt: str, min_val: int = 0, max_val: int = 100, default: Optional[int] = None) -> int:
    suffix = f" [{default}]" if default is not None else ""
    while True:
        try:
            raw = console.input(f"  {prompt} ({min_val}-{max_val}){suffix}: ").strip()
            if not raw and default is not None:
                return default
            val = int(raw)
            if min_val <= val <= max_val:
                return val
            console.print(f"  Please enter a number between {min_val} and {max_val}.", style="wrong")
        except (ValueError, EOFError):
            console.print("  Please enter a valid number.", style="wrong")


def press_enter_to_continue() -> None:
    try:
        console.input("  [dim]Press Enter to continue...[/dim]")
    except EOFError:
        pass


# ---------------------------------------------------------------------------
# Timer display
# ---------------------------------------------------------------------------

def format_time_remaining(seconds: int) -> str:
    """Return formatted time string with color based on remaining time."""
    mins = seconds // 60
    secs = seconds % 60
    time_str = f"{mins:02d}:{secs:02d}"

    if seconds <= 60:
        return f"[timer_critical]{time_str}[/timer_critical]"
    elif seconds <= config.LOW_TIME_SECONDS:
        return f"[timer_warn]{time_str}[/timer_warn]"
    else:
        return f"[timer_ok]{time_str}[/timer_ok]"


# ---------------------------------------------------------------------------
# Exam screens
# ---------------------------------------------------------------------------

def show_test_intro(session, proctored: bool = False) -> None:
    test = session.test
    lines = [
        f"[bold]{session.exam.name}[/bold]",
        f"{test.subject}",
        "",
        f"Questions: {len(session.questions)}",
        f"Time limit: {test.time_limit_minutes} minutes",
    ]
    if session.is_mock:
        lines.append(f"Sections: {len(session.sections)} (each one locks when you move on)")
    if proctored:
        lines += [
            "",
            "[needs_work]This test is proctored.[/needs_work] Leaving the test counts as a "
            f"violation; {config.MAX_WARNINGS} violations disqualify you.",
        ]
    lines += ["", "[dim]Type h at any prompt for the list of commands.[/dim]"]
    console.print()
    console.print(Panel("\n".join(lines), border_style="blue", padding=(1, 2)))
    console.print()


def show_section_intro(section: Section, index: int, total: int) -> None:
    console.print()
    console.print(Panel(
        f"[bold]Section {index + 1}/{total}: {section.name}[/bold]\n\n"
        f"Questions: {section.question_count}\n"
        f"Time: {section.duration_minutes} minutes",
        border_style="blue",
        padding=(1, 2),
    ))
    console.print()


def show_exam_question(session) -> None:
    """Render the current question with its options and the timers."""
    question = session.current_question
    if question is None:
        return
    number = session.current_index + 1
    header_parts = [f"Question {number}/{len(session.questions)}"]
    section = session.current_section
    if session.is_mock and section:
        header_parts.insert(0, section.name)
    if session.is_mock or config.TIMER_ENABLED:
        header_parts.append(f"Time: {format_time_remaining(session.display_remaining())}")
    if question.is_marked:
        header_parts.append("[needs_work]Marked[/needs_work]")
    header = "  |  ".join(header_parts)

    console.print()
    console.print(Panel(
        f"[bold]{question.question_text}[/bold]",
        title=f"[header]{header}[/header]",
        border_style="blue",
        padding=(0, 2),
    ))
    for i, option in enumerate(question.options):
        letter = config.OPTION_LETTERS[i] if i < len(config.OPTION_LETTERS) else str(i + 1)
        if question.user_answer == i:
            console.print(f"  [info]> {letter}) {option}[/info]")
        else:
            console.print(f"    [bold]{letter})[/bold] {option}")
    console.print(
        f"  [dim]Answered {session.answered_count}/{len(session.questions)}"
        f"  |  Marked {session.marked_count}[/dim]"
    )
    console.print()


def get_exam_command() -> str:
    try:
        return console.input("  [bold]Answer or command (h for help): [/bold]")
    except EOFError:
        return "q"


def show_exam_help(is_mock: bool) -> None:
    table = Table(border_style="dim", show_header=False)
    table.add_column("Key", style="bold cyan")
    table.add_column("Action")
    table.add_row("A-E", "Choose an answer")
    table.add_row("n / Enter", "Next question")
    table.add_row("p", "Previous question")
    table.add_row("g 12  or  12", "Go to question 12")
    table.add_row("m", "Mark or unmark for review")
    if is_mock:
        table.add_row("l", "Lock this section and open the next")
        table.add_row("k", "Skip the rest of this section")
        table.add_row("o", "Show sections")
    table.add_row("v", "Save question to bookmarks")
    table.add_row("s", "Submit the test")
    table.add_row("q", "Pause and return to the menu")
    console.print(table)


def show_section_list(session) -> None:
    table = Table(title="Sections", border_style="dim")
    table.add_column("#", justify="right")
    table.add_column("Section", style="bold")
    table.add_column("Questions", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("Status")
    styles = {
        SectionState.COMPLETED: ("skip", "Locked"),
        SectionState.IN_PROGRESS: ("info", "In progress"),
        SectionState.NOT_STARTED: ("dim", "Not started"),
    }
    for i, section in enumerate(session.sections):
        style, label = styles[session.section_state(i)]
        table.add_row(
            str(i + 1), section.name, str(section.question_count),
            f"{section.duration_minutes}m", f"[{style}]{label}[/{style}]",
        )
    console.print(table)


def show_violation(outcome) -> None:
    console.print(Panel(
        f"[bold]Proctoring warning[/bold]\n\n{outcome.message}",
        border_style="yellow",
        padding=(0, 2),
    ))


def show_submission_warnings(warnings: Dict[str, int]) -> None:
    if warnings.get("unanswered"):
        show_warning(f"{warnings['unanswered']} question(s) unanswered.")
    if warnings.get("marked"):
        show_warning(f"{warnings['marked']} question(s) still marked for review.")


def _score_style(percentage: float) -> str:
    if percentage >= config.STRONG_ACCURACY:
        return "strong"
    if percentage >= config.WEAK_ACCURACY:
        return "needs_work"
    return "weak"


def show_test_result(test: Test, result: TestResult, exam: ExamConfig) -> None:
    """Display the end-of-test score report."""
    console.print()
    console.print(Rule(f"[bold]{exam.name} - RESULTS[/bold]", style="header"))
    if result.reason == "disqualified":
        console.print(Align.center(Text("Disqualified by proctoring", style="wrong")))
    elif result.reason == "time_up":
        console.print(Align.center(Text("Submitted automatically: time up", style="dim")))
    console.print()

    style = _score_style(result.score_percentage)
    console.print(
        f"  Score: [{style}]{result.final_score:g} points ({result.score_percentage}%)[/{style}]"
    )
    console.print(
        f"  Correct: [correct]{result.correct}[/correct]  |  "
        f"Incorrect: [wrong]{result.wrong}[/wrong]  |  "
        f"Skipped: [skip]{result.skipped}[/skip]"
    )
    mins, secs = divmod(result.time_taken_seconds, 60)
    console.print(f"  Time: {mins}m {secs}s")
    console.print()

    if test.is_mock and result.section_results:
        table = Table(border_style="blue", padding=(0, 1))
        table.add_column("Section", style="bold")
        table.add_column("Points", justify="right")
        table.add_column("Correct", justify="right")
        table.add_column("Wrong", justify="right")
        table.add_column("Skipped", justify="right")
        for sr in result.section_results:
            table.add_row(
                sr.section_name, f"{sr.score:g}", str(sr.correct_count),
                str(sr.wrong_count), str(sr.skipped_count),
            )
        console.print(table)
        console.print()

    if result.topic_breakdown:
        console.print(Rule("Topic Breakdown", style="dim"))
        strong, needs_work, weak = [], [], []
        for (_, topic), data in sorted(result.topic_breakdown.items()):
            accuracy = data["accuracy"]
            entry = f"{topic} ({accuracy:.0f}%)"
            bucket = _score_style(accuracy)
            {"strong": strong, "needs_work": needs_work, "weak": weak}[bucket].append(entry)
        if strong:
            console.print(f"  [strong]Strong:[/strong] {', '.join(strong)}")
        if needs_work:
            console.print(f"  [needs_work]Needs Work:[/needs_work] {', '.join(needs_work)}")
        if weak:
            console.print(f"  [weak]Weak:[/weak] {', '.join(weak)}")
        console.print()

    console.print(Rule(style="dim"))


# ---------------------------------------------------------------------------
# Practice setup
# ---------------------------------------------------------------------------

def show_topics(topics: List[Tuple[str, int]]) -> None:
    table = Table(title="Topics in the bank", border_style="dim")
    table.add_column("Topic", style="bold")
    table.add_column("Questions", justify="right")
    for name, count in topics:
        style = "correct" if count >= 10 else ("needs_work" if count >= 5 else "wrong")
        table.add_row(name, f"[{style}]{count}[/{style}]")
    console.print(table)


def show_mock_sessions(views) -> None:
    table = Table(title="Mock Sessions", border_style="blue")
    table.add_column("#", justify="right")
    table.add_column("Title", style="bold")
    table.add_column("Starts")
    table.add_column("Ends")
    table.add_column("Status")
    table.add_column("Registered")
    styles = {"live": "correct", "upcoming": "info", "past": "skip"}
    for i, view in enumerate(views, 1):
        s = view.session
        style = styles.get(view.status, "dim")
        table.add_row(
            str(i),
            s.title or f"Session {s.id}",
            (s.start_time or "?")[:16],
            (s.end_time or "?")[:16],
            f"[{style}]{view.status.title()}[/{style}]",
            "Yes" if view.is_registered else "No",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Progress display
# ---------------------------------------------------------------------------

def show_progress_dashboard(
    student: Student,
    exam: ExamConfig,
    stats: Dict,
    tests: List[Test],
    performance: List[TopicPerformance],
) -> None:
    """Render the full progress dashboard."""
    console.print()
    console.print(Rule(f"Progress Report - {student.name} ({exam.name})", style="header"))
    console.print()

    console.print(
        f"  Tests Taken: {stats['practice_tests']} practice, "
        f"{stats['mock_tests']} mock"
    )
    total = stats["total_questions"]
    accuracy = stats["total_correct"] / total * 100 if total else 0
    console.print(f"  Questions Answered: {total:,} ({accuracy:.0f}% correct)")
    if stats.get("disqualified"):
        console.print(f"  [wrong]Disqualified attempts: {stats['disqualified']}[/wrong]")
    console.print()

    scored = [t for t in tests if t.score is not None]
    if scored:
        console.print(Rule("Score Trend", style="dim"))
        show_score_trend(scored[:10])
        console.print()

    if performance:
        console.print(Rule("Topic Performance", style="dim"))
        show_topic_performance(performance)
        console.print()

    console.print(Rule(style="dim"))


def show_score_trend(tests: List[Test]) -> None:
    """ASCII bar chart of recent test scores."""
    bar_width = 40
    table = Table(show_header=True, border_style="dim", padding=(0, 1))
    table.add_column("Date", style="dim", width=12)
    table.add_column("Type", width=8)
    table.add_column("Score", justify="right", width=6)
    table.add_column("", width=bar_width + 2)

    for t in reversed(tests):
        date_str = t.started_at[:10] if t.started_at else "?"
        score = t.score or 0
        bar_len = int(max(0, min(score, 100)) / 100 * bar_width)
        color = {"strong": "green", "needs_work": "yellow", "weak": "red"}[_score_style(score)]
        table.add_row(date_str, t.test_type, f"{score}%", Text("█" * bar_len, style=color))

    console.print(table)


def show_topic_performance(performance: List[TopicPerformance]) -> None:
    """Table of topic accuracy with color-coded status."""
    table = Table(show_header=True, border_style="dim", padding=(0, 1))
    table.add_column("Subject", style="dim")
    table.add_column("Topic", style="bold")
    table.add_column("Accuracy", justify="right")
    table.add_column("Attempted", justify="right")
    table.add_column("Status")

    labels = {"strong": "Strong", "needs_work": "Needs Work", "weak": "Weak"}
    for p in performance:
        if p.total_questions == 0:
            continue
        style = _score_style(p.accuracy_percentage)
        table.add_row(
            p.subject,
            p.topic,
            f"[{style}]{p.accuracy_percentage:.0f}%[/{style}]",
            str(p.total_questions),
            f"[{style}]{labels[style]}[/{style}]",
        )

    console.print(table)


def show_history(tests: List[Test]) -> None:
    table = Table(title="Completed Tests", border_style="blue")
    table.add_column("Date", style="dim")
    table.add_column("Type")
    table.add_column("Subject", style="bold")
    table.add_column("Score", justify="right")
    table.add_column("C/W/S", justify="right")
    table.add_column("Proctoring")
    for t in tests:
        style = _score_style(t.score or 0)
        table.add_row(
            t.started_at[:10] if t.started_at else "?",
            t.test_type,
            t.subject,
            f"[{style}]{t.score}%[/{style}]",
            f"{t.correct_answers}/{t.wrong_answers}/{t.skipped_answers}",
            t.proctoring_status,
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Review display
# ---------------------------------------------------------------------------

def show_review_summary(
    test: Test, final_score: float, violations: List[ProctoringViolation]
) -> None:
    console.print()
    console.print(Panel(
        f"[bold]{test.subject}[/bold]  ({test.test_type}, {test.exam_type})\n\n"
        f"Score: {final_score:g} points ({test.score}%)\n"
        f"Correct {test.correct_answers}  |  Wrong {test.wrong_answers}  |  "
        f"Skipped {test.skipped_answers}\n"
        f"Proctoring: {test.proctoring_status}",
        border_style="blue",
        padding=(1, 2),
    ))
    for v in violations:
        console.print(f"  [needs_work]{v.severity}[/needs_work] {v.violation_type}: {v.description}")
    console.print()


def show_review_question(number: int, total: int, question: Question) -> None:
    """Show a question with the student's answer, the correct one and the explanation."""
    title = f"Question {number}/{total}"
    if question.topic:
        title += f"  |  {question.topic}"
    console.print()
    console.print(Panel(
        f"[bold]{question.question_text}[/bold]",
        title=f"[header]{title}[/header]",
        border_style="blue",
        padding=(0, 2),
    ))
    for i, option in enumerate(question.options):
        letter = config.OPTION_LETTERS[i] if i < len(config.OPTION_LETTERS) else str(i + 1)
        if i == question.correct_index:
            console.print(f"    [correct]{letter}) {option}[/correct]")
        elif i == question.user_answer:
            console.print(f"    [wrong]{letter}) {option}[/wrong]")
        else:
            console.print(f"    {letter}) {option}")

    if question.user_answer is None:
        console.print("  [skip]You skipped this question.[/skip]")
    elif question.user_answer == question.correct_index:
        console.print("  [correct]Correct![/correct]")
    else:
        console.print("  [wrong]Incorrect.[/wrong]")

    if question.explanation:
        console.print(f"\n  [dim]Explanation: {question.explanation}[/dim]")
    console.print()
