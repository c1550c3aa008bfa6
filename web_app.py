#!/usr/bin/env python3
"""Admission Test Prep: Streamlit Web Application."""

from typing import Optional

import pandas as pd
import streamlit as st

import config
from config import ExamConfig
from database import Database
from exam_runner import ExamRunner, ExamRunnerError
from exam_state import SECTION_EXPIRED, TIME_UP, ExamStateError
from mock_sessions import LIVE, MockSessionError, MockSessionService
from models import Plan, SectionState, SubmitReason
from practice import PracticeBank, PracticeError
from progress import ProgressTracker
from question_generator import QuestionGenerationError, QuestionGenerator
import scoring


# =====================================================================
# Section 1: Page Config & Initialization
# =====================================================================

st.set_page_config(
    page_title="Admission Test Prep",
    page_icon="pencil2",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Initialize logging and database once per session
if "db" not in st.session_state:
    config.setup_logging()
    db = Database(config.SUPABASE_DB_URL)
    db.initialize()
    st.session_state.db = db

if "page" not in st.session_state:
    st.session_state.page = "home"

if "student" not in st.session_state:
    st.session_state.student = None

if "exam_id" not in st.session_state:
    st.session_state.exam_id = config.ACTIVE_EXAM if config.ACTIVE_EXAM in config.EXAMS else config.CENT_S.id


def get_db() -> Database:
    return st.session_state.db


def get_exam() -> ExamConfig:
    return config.get_exam(st.session_state.exam_id)


# =====================================================================
# Section 2: Helper Functions
# =====================================================================

def make_bank() -> PracticeBank:
    generator = QuestionGenerator() if config.ANTHROPIC_API_KEY else None
    return PracticeBank(get_db(), generator)


def reset_test_state():
    keys_to_remove = [k for k in st.session_state.keys() if k.startswith("test_") or k.startswith("q_")]
    for k in keys_to_remove:
        del st.session_state[k]


def open_test(test_id: int) -> None:
    """Load a test into a runner and switch to the exam page."""
    reset_test_state()
    runner = ExamRunner(get_db(), st.session_state.student, make_bank())
    try:
        runner.load(test_id)
    except (ExamRunnerError, ValueError) as e:
        st.error(str(e))
        return
    st.session_state.test_runner = runner
    st.session_state.page = "test"
    st.rerun()


def accuracy_label(accuracy: float) -> str:
    if accuracy >= config.STRONG_ACCURACY:
        return "Strong"
    if accuracy >= config.WEAK_ACCURACY:
        return "Needs Work"
    return "Weak"


def render_review_question(number: int, question) -> None:
    outcome = scoring.question_outcome(question)
    icon = {"correct": "✅", "wrong": "❌", "skipped": "➖"}[outcome]
    with st.expander(f"{icon} Question {number}: {question.question_text[:80]}"):
        st.markdown(f"**{question.question_text}**")
        for i, option in enumerate(question.options):
            letter = config.OPTION_LETTERS[i] if i < len(config.OPTION_LETTERS) else str(i + 1)
            if i == question.correct_index:
                st.success(f"{letter}) {option}")
            elif i == question.user_answer:
                st.error(f"{letter}) {option}")
            else:
                st.write(f"{letter}) {option}")
        if question.explanation:
            st.caption(f"Explanation: {question.explanation}")


# =====================================================================
# Section 3: Sidebar Navigation
# =====================================================================

def render_sidebar():
    with st.sidebar:
        st.title("Admission Test Prep")
        st.caption(get_exam().name)

        if st.session_state.student:
            s = st.session_state.student
            st.info(f"**{s.name}** | {s.plan.title()} plan")
            st.divider()

            nav = [
                ("Practice Test", "practice"),
                ("Full Simulation", "simulation"),
                ("Mock Sessions", "mock_sessions"),
                ("Test History", "history"),
                ("Progress", "progress"),
                ("Bookmarks", "bookmarks"),
            ]
            for label, page in nav:
                if st.button(label, use_container_width=True, key=f"nav_{page}"):
                    if st.session_state.page != "test":
                        reset_test_state()
                    st.session_state.page = page
                    st.rerun()

            st.divider()
            if st.button("Switch Profile", use_container_width=True, key="nav_switch"):
                st.session_state.student = None
                st.session_state.page = "profile"
                st.rerun()
            if st.button("Settings", use_container_width=True, key="nav_settings"):
                st.session_state.page = "settings"
                st.rerun()
        else:
            st.warning("No profile selected")


# =====================================================================
# Section 4: Profile Page
# =====================================================================

def page_profile():
    st.header("Select or Create Profile")
    db = get_db()
    students = db.list_students()

    if students:
        st.subheader("Existing Profiles")
        for s in students:
            col1, col2 = st.columns([3, 1])
            with col1:
                st.write(f"**{s.name}** ({s.plan.title()} plan)")
            with col2:
                if st.button("Select", key=f"sel_{s.id}"):
                    st.session_state.student = s
                    st.session_state.page = "home"
                    st.rerun()

    st.divider()
    st.subheader("Create New Profile")
    with st.form("new_profile"):
        name = st.text_input("Your name")
        email = st.text_input("Email (optional)")
        submitted = st.form_submit_button("Create Profile")

        if submitted and name.strip():
            student = db.create_student(name.strip(), email.strip(), Plan.EXPLORER.value)
            st.session_state.student = student
            st.session_state.page = "home"
            st.rerun()
        elif submitted:
            st.error("Please enter a name.")


# =====================================================================
# Section 5: Home Page
# =====================================================================

def page_home():
    s = st.session_state.student
    exam = get_exam()
    st.header(exam.name)
    st.write(f"Welcome, **{s.name}**! Use the sidebar to start practising.")

    st.info(
        f"**{exam.total_questions} questions** | **{exam.duration_minutes} minutes** | "
        f"Marking: {exam.scoring.correct:+g} correct, {exam.scoring.incorrect:+g} wrong, "
        f"{exam.scoring.skipped:+g} blank"
    )
    st.table(pd.DataFrame([
        {"Section": sec.name, "Questions": sec.question_count, "Minutes": sec.duration_minutes}
        for sec in exam.sections
    ]))

    unfinished = ProgressTracker(get_db(), s, exam).in_progress_tests()
    if unfinished:
        st.subheader("Unfinished Tests")
        for t in unfinished:
            col1, col2 = st.columns([3, 1])
            col1.write(f"**{t.subject}** ({t.test_type}), started {(t.started_at or '?')[:16]}")
            if col2.button("Resume", key=f"resume_{t.id}"):
                open_test(t.id)


# =====================================================================
# Section 6: Practice Setup
# =====================================================================

def page_practice():
    student = st.session_state.student
    exam = get_exam()
    bank = make_bank()

    st.header("Practice Test")
    subject = st.selectbox("Subject", exam.section_names())

    remaining = bank.remaining_today(student, subject)
    if remaining is not None:
        st.caption(f"Explorer plan: {remaining} question(s) left today for {subject}.")

    topics = bank.list_topics(exam, subject)
    topic_labels = ["All topics"] + [f"{name} ({count})" for name, count in topics]
    topic_idx = st.selectbox("Topic", range(len(topic_labels)), format_func=lambda i: topic_labels[i])
    topic = config.ALL_TOPICS if topic_idx == 0 else topics[topic_idx - 1][0]

    difficulty = st.selectbox(
        "Difficulty", config.DIFFICULTIES, index=1, format_func=str.title,
    )
    col1, col2 = st.columns(2)
    count = col1.number_input(
        "Questions", min_value=config.PRACTICE_MIN_QUESTIONS,
        max_value=config.PRACTICE_MAX_QUESTIONS, value=config.PRACTICE_DEFAULT_QUESTIONS,
    )
    time_limit = col2.number_input(
        "Time limit (minutes)", min_value=5, max_value=180, value=config.PRACTICE_DEFAULT_MINUTES,
    )

    if st.button("Start Practice", type="primary"):
        with st.spinner("Preparing questions..."):
            try:
                test = bank.create_practice_test(
                    student, exam, subject, topic, difficulty, int(count), int(time_limit)
                )
            except PracticeError as e:
                st.error(str(e))
                return
        open_test(test.id)


def page_simulation():
    student = st.session_state.student
    exam = get_exam()
    st.header(f"Full Simulation: {exam.name}")
    st.write(
        f"**{exam.total_questions} questions** in **{len(exam.sections)} timed sections**, "
        f"**{exam.duration_minutes} minutes** total. Sections lock once you move on."
    )
    if exam.proctored:
        st.warning(
            f"Simulations are proctored: {config.MAX_WARNINGS} violations disqualify the attempt."
        )
    if st.button("Begin Simulation", type="primary"):
        try:
            test = make_bank().create_full_simulation(student, exam)
        except PracticeError as e:
            st.error(str(e))
            return
        open_test(test.id)


# =====================================================================
# Section 7: Mock Sessions
# =====================================================================

def page_mock_sessions():
    student = st.session_state.student
    exam = get_exam()
    service = MockSessionService(get_db())

    st.header("Mock Sessions")
    views = service.list_sessions(exam.id, student)
    if not views:
        st.info(f"No mock sessions scheduled for {exam.name}.")
        return

    for view in views:
        s = view.session
        with st.container(border=True):
            col1, col2 = st.columns([3, 1])
            col1.markdown(f"**{s.title or f'Session {s.id}'}**  ·  {view.status.title()}")
            col1.caption(f"{(s.start_time or '?')[:16]} to {(s.end_time or '?')[:16]}")
            try:
                if not view.is_registered:
                    if col2.button("Register", key=f"reg_{s.id}"):
                        service.register(student, s.id)
                        st.success("Registered!")
                        st.rerun()
                elif view.status == LIVE:
                    if col2.button("Start", key=f"start_{s.id}", type="primary"):
                        test = service.start_test(student, s.id)
                        open_test(test.id)
                else:
                    col2.write("Registered")
            except MockSessionError as e:
                st.error(str(e))


# =====================================================================
# Section 8: Exam Page
# =====================================================================

def page_test():
    runner: Optional[ExamRunner] = st.session_state.get("test_runner")
    if runner is None or runner.session is None:
        st.session_state.page = "home"
        st.rerun()
        return

    session = runner.session
    events = runner.poll()
    if SECTION_EXPIRED in events and not session.is_submitted:
        st.warning("Section time is over. The next section has started.")
    if TIME_UP in events:
        st.warning("Time's up! Your test has been submitted.")
    for notice in runner.drain_notices():
        st.warning(notice)

    if session.is_submitted:
        _render_result(runner)
        return

    _render_exam_header(runner)
    _render_exam_question(runner)


def _render_exam_header(runner: ExamRunner):
    session = runner.session
    test = session.test
    st.header(test.subject)

    cols = st.columns(4)
    cols[0].metric("Time Left", scoring.format_time(session.display_remaining()))
    if session.is_mock:
        cols[1].metric("Total Time Left", scoring.format_time(session.global_remaining()))
    cols[2].metric("Answered", f"{session.answered_count}/{len(session.questions)}")
    if runner.monitor.enabled:
        cols[3].metric("Warnings", f"{runner.monitor.violation_count}/{runner.monitor.max_warnings}")

    if session.is_mock and session.sections:
        labels = {
            SectionState.COMPLETED: "🔒",
            SectionState.IN_PROGRESS: "▶",
            SectionState.NOT_STARTED: "·",
        }
        st.caption("  ".join(
            f"{labels[session.section_state(i)]} {s.name}" for i, s in enumerate(session.sections)
        ))


def _render_exam_question(runner: ExamRunner):
    session = runner.session
    question = session.current_question
    if question is None:
        st.error("This test has no questions.")
        return

    title = f"Question {session.current_index + 1} of {len(session.questions)}"
    if question.is_marked:
        title += "  (marked for review)"
    st.subheader(title)
    st.markdown(f"**{question.question_text}**")

    labels = [
        f"{config.OPTION_LETTERS[i] if i < len(config.OPTION_LETTERS) else i + 1}) {opt}"
        for i, opt in enumerate(question.options)
    ]
    selected = st.radio(
        "Select your answer:",
        range(len(labels)),
        index=question.user_answer,
        format_func=lambda i: labels[i],
        key=f"q_{question.id}",
    )
    try:
        if selected is not None and selected != question.user_answer:
            runner.answer(selected)

        cols = st.columns(5)
        if cols[0].button("Previous", key="test_prev"):
            runner.previous_question()
            st.rerun()
        if cols[1].button("Next", key="test_next", type="primary"):
            runner.next_question()
            st.rerun()
        if cols[2].button("Unmark" if question.is_marked else "Mark for review", key="test_mark"):
            runner.toggle_mark()
            st.rerun()
        if cols[3].button("Bookmark", key="test_bookmark"):
            if runner.bookmark():
                st.success("Question saved to bookmarks.")
            else:
                st.info("Already saved.")

        section = session.current_section
        if session.is_mock and section:
            c1, c2 = st.columns(2)
            if c1.button(f"Lock '{section.name}' and continue", key="test_lock"):
                if runner.complete_section() is None:
                    st.session_state.test_confirm_submit = True
                st.rerun()
            if c2.button("Skip rest of section", key="test_skip"):
                if runner.skip_section() is None:
                    st.session_state.test_confirm_submit = True
                st.rerun()
        else:
            jump = st.number_input(
                "Go to question", min_value=1, max_value=len(session.questions),
                value=session.current_index + 1, key="test_jump",
            )
            if int(jump) - 1 != session.current_index and st.button("Go", key="test_go"):
                runner.navigate(int(jump) - 1)
                st.rerun()
    except (ExamStateError, ValueError) as e:
        st.warning(str(e))

    st.divider()
    if st.button("Submit Test", key="test_submit"):
        st.session_state.test_confirm_submit = True
    if st.session_state.get("test_confirm_submit"):
        warnings = session.submission_warnings()
        if warnings["unanswered"]:
            st.warning(f"{warnings['unanswered']} question(s) unanswered.")
        if warnings["marked"]:
            st.warning(f"{warnings['marked']} question(s) still marked for review.")
        c1, c2 = st.columns(2)
        if c1.button("Yes, submit", type="primary", key="test_submit_yes"):
            runner.submit(SubmitReason.MANUAL)
            st.session_state.test_confirm_submit = False
            st.rerun()
        if c2.button("Keep working", key="test_submit_no"):
            st.session_state.test_confirm_submit = False
            st.rerun()


def _render_result(runner: ExamRunner):
    session = runner.session
    result = session.result
    test = session.test

    st.header(f"{session.exam.name}: Results")
    if result.reason == "disqualified":
        st.error(f"Disqualified by proctoring: {runner.monitor.disqualify_reason or ''}")
    elif result.reason == "time_up":
        st.info("Submitted automatically when time ran out.")

    cols = st.columns(4)
    cols[0].metric("Score", f"{result.score_percentage}%")
    cols[1].metric("Points", f"{result.final_score:g}")
    cols[2].metric("Correct", result.correct)
    cols[3].metric("Wrong / Skipped", f"{result.wrong} / {result.skipped}")

    if test.is_mock and result.section_results:
        st.subheader("Sections")
        st.table(pd.DataFrame([
            {"Section": r.section_name, "Points": f"{r.score:g}", "Correct": r.correct_count,
             "Wrong": r.wrong_count, "Skipped": r.skipped_count}
            for r in result.section_results
        ]))

    if result.topic_breakdown:
        st.subheader("Topic Breakdown")
        for (_, topic), data in sorted(result.topic_breakdown.items()):
            acc = data["accuracy"]
            label = accuracy_label(acc)
            msg = f"**{topic}**: {acc:.0f}% ({data['correct']}/{data['total']})"
            if label == "Strong":
                st.success(msg)
            elif label == "Needs Work":
                st.warning(msg)
            else:
                st.error(msg)

    st.subheader("Review")
    for i, q in enumerate(session.questions, 1):
        render_review_question(i, q)

    if st.button("Back to Home", type="primary"):
        reset_test_state()
        st.session_state.page = "home"
        st.rerun()


# =====================================================================
# Section 9: History, Progress and Bookmarks
# =====================================================================

def page_history():
    student = st.session_state.student
    tracker = ProgressTracker(get_db(), student, get_exam())
    st.header("Test History")

    tests = tracker.completed_tests()
    if not tests:
        st.info("No completed tests yet.")
        return

    st.table(pd.DataFrame([
        {"Date": (t.started_at or "?")[:10], "Type": t.test_type, "Subject": t.subject,
         "Score": f"{t.score}%", "C/W/S": f"{t.correct_answers}/{t.wrong_answers}/{t.skipped_answers}",
         "Proctoring": t.proctoring_status}
        for t in tests
    ]))

    options = {f"{(t.started_at or '?')[:16]}  {t.subject} ({t.score}%)": t.id for t in tests}
    choice = st.selectbox("Review a test", list(options.keys()))
    test, questions, violations = tracker.load_review(options[choice])
    if test is None:
        return
    for v in violations:
        st.warning(f"{v.severity}: {v.violation_type} ({v.description})")
    mistakes_only = st.checkbox("Only questions I missed")
    for i, q in enumerate(questions, 1):
        if mistakes_only and scoring.question_outcome(q) == scoring.CORRECT:
            continue
        render_review_question(i, q)


def page_progress():
    student = st.session_state.student
    exam = get_exam()
    db = get_db()
    tracker = ProgressTracker(db, student, exam)

    st.header(f"Progress Report: {student.name}")
    st.caption(exam.name)

    stats = db.get_user_stats(student.id, exam_type=exam.id)
    tests = tracker.completed_tests()
    performance = db.list_topic_performance(student.id, exam.id)

    cols = st.columns(4)
    cols[0].metric("Practice Tests", stats["practice_tests"])
    cols[1].metric("Mock Tests", stats["mock_tests"])
    cols[2].metric("Questions", f"{stats['total_questions']:,}")
    total = stats["total_questions"]
    cols[3].metric("Accuracy", f"{stats['total_correct'] / total * 100:.0f}%" if total else "-")

    scored = [t for t in tests if t.score is not None]
    if scored:
        st.subheader("Score Trend")
        df = pd.DataFrame([
            {"Date": (t.started_at or "?")[:16], "Score": t.score}
            for t in reversed(scored)
        ])
        st.line_chart(df.set_index("Date"))

    active = [p for p in performance if p.total_questions > 0]
    if active:
        st.subheader("Topic Performance")
        st.table(pd.DataFrame([
            {"Subject": p.subject, "Topic": p.topic, "Accuracy": f"{p.accuracy_percentage:.0f}%",
             "Attempted": p.total_questions, "Status": accuracy_label(p.accuracy_percentage)}
            for p in active
        ]))

    recs = tracker.get_recommendations(stats, tests, performance)
    if recs:
        st.subheader("Recommendations")
        for r in recs:
            st.write(f"- {r}")


def page_bookmarks():
    student = st.session_state.student
    db = get_db()
    st.header("Bookmarked Questions")

    items = db.list_bookmarks(student.id)
    if not items:
        st.info("No saved questions yet.")
        return
    for i, (saved, question) in enumerate(items, 1):
        render_review_question(i, question)
        if st.button("Remove", key=f"unsave_{saved.id}"):
            db.delete_bookmark(student.id, saved.id)
            st.rerun()


# =====================================================================
# Section 10: Settings
# =====================================================================

def page_settings():
    student = st.session_state.student
    db = get_db()
    st.header("Settings")

    # Exam
    st.subheader("Exam")
    exams = [e for e in config.EXAMS.values() if e.is_live]
    ids = [e.id for e in exams]
    choice = st.selectbox(
        "Preparing for", ids, index=ids.index(st.session_state.exam_id),
        format_func=lambda i: config.EXAMS[i].name,
    )
    if choice != st.session_state.exam_id:
        st.session_state.exam_id = choice
        st.rerun()

    # Plan
    st.subheader("Plan")
    st.write(f"Current plan: **{student.plan.title()}**")
    if st.button("Switch to Pro" if student.is_explorer else "Switch to Explorer"):
        student.plan = Plan.PRO.value if student.is_explorer else Plan.EXPLORER.value
        db.update_student(student)
        st.rerun()

    st.divider()

    # Question bank
    st.subheader("Question Bank")
    exam = get_exam()
    if not config.ANTHROPIC_API_KEY:
        st.warning("ANTHROPIC_API_KEY is not set; question generation is unavailable.")
    else:
        subject = st.selectbox("Subject", exam.section_names(), key="gen_subject")
        count = st.number_input("Questions", min_value=1, max_value=30, value=config.QUESTIONS_PER_BATCH)
        if st.button("Generate Questions"):
            with st.spinner(f"Generating {subject} questions..."):
                try:
                    added = make_bank().generate_into_bank(exam, subject, int(count), difficulty="mixed")
                    st.success(f"{len(added)} new questions added to the bank.")
                except (QuestionGenerationError, PracticeError) as e:
                    st.error(str(e))

    st.divider()

    # Reset
    st.subheader("Reset Progress")
    st.warning("This will permanently delete all test history and analytics for this profile.")
    if st.button("Reset All Progress", type="secondary"):
        st.session_state.confirm_reset = True

    if st.session_state.get("confirm_reset"):
        st.error("Are you absolutely sure? This cannot be undone.")
        col1, col2 = st.columns(2)
        with col1:
            if st.button("Yes, Delete Everything", type="primary"):
                db.reset_user_progress(student.id)
                st.session_state.confirm_reset = False
                st.success("Progress has been reset.")
                st.rerun()
        with col2:
            if st.button("Cancel"):
                st.session_state.confirm_reset = False
                st.rerun()


# =====================================================================
# Section 11: Main Router
# =====================================================================

def main():
    render_sidebar()

    if st.session_state.student is None:
        page_profile()
        return

    page = st.session_state.page

    routes = {
        "home": page_home,
        "profile": page_profile,
        "practice": page_practice,
        "simulation": page_simulation,
        "mock_sessions": page_mock_sessions,
        "test": page_test,
        "history": page_history,
        "progress": page_progress,
        "bookmarks": page_bookmarks,
        "settings": page_settings,
    }

    handler = routes.get(page, page_home)
    handler()


if __name__ == "__main__":
    main()
