import threading
from datetime import timedelta

import pytest
from sqlmodel import Session, select

from conftest import T0, TWO_MCQ, minutes_after_t0, question_ids
from school_portal.core.database import engine
from school_portal.models import AssignmentAnswer, QuestionType, Submission, SubmissionStatus
from school_portal.services.errors import InvalidAnswerError
from school_portal.services.submission_workflow import (
    AttemptState, clean_answers, expire_overdue_attempts, open_attempt, submit_attempt, view_attempt
)
from school_portal.utils.time_utils import ensure_utc


def test_view_without_attempt_is_not_started(session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)

    view = view_attempt(session, assignment, seed.student, now=T0)

    assert view.state == AttemptState.NOT_STARTED
    assert view.submission is None
    assert not view.form_visible
    assert not view.read_only
    assert [q.question_text for q in view.questions] == ["2 + 2 = ?", "Capital of France?"]


def test_open_attempt_creates_draft_submission(session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)

    view = open_attempt(session, assignment, seed.student, now=T0)

    assert view.state == AttemptState.IN_PROGRESS
    assert view.form_visible
    assert view.submission.status == SubmissionStatus.IN_PROGRESS
    assert view.submission.attempt_number == 1
    assert ensure_utc(view.submission.started_at) == T0
    # Untimed attempts have no countdown
    assert view.remaining_seconds is None


def test_open_attempt_twice_resumes_the_same_attempt(session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)

    first = open_attempt(session, assignment, seed.student, now=T0)
    second = open_attempt(session, assignment, seed.student, now=minutes_after_t0(5))

    assert second.submission.id == first.submission.id
    rows = session.exec(select(Submission).where(Submission.assignment_id == assignment.id)).all()
    assert len(rows) == 1


def test_submit_records_timing_and_answers(session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)
    q1, q2 = question_ids(session, assignment)
    submission = open_attempt(session, assignment, seed.student, now=T0).submission

    result = submit_attempt(session, submission, {q1: "4", q2: "Rome"}, now=minutes_after_t0(12, 59))

    assert not result.already_submitted
    assert result.submission.status == SubmissionStatus.SUBMITTED
    assert result.submission.time_spent_minutes == 12
    assert result.submission.is_auto_submitted is False
    assert result.submission.is_late is False
    assert {a.question_id: a.answer_text for a in result.answers} == {q1: "4", q2: "Rome"}
    # Manual grading mode: no auto-grade marks, no grade
    assert all(a.is_correct is None for a in result.answers)
    assert result.grade is None


def test_second_submit_is_a_no_op(session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)
    q1, q2 = question_ids(session, assignment)
    submission = open_attempt(session, assignment, seed.student, now=T0).submission
    submit_attempt(session, submission, {q1: "4"}, now=minutes_after_t0(3))

    again = submit_attempt(session, submission, {q1: "3", q2: "Paris"}, now=minutes_after_t0(4))

    assert again.already_submitted
    assert ensure_utc(again.submission.submitted_at) == minutes_after_t0(3)
    answers = session.exec(select(AssignmentAnswer).where(AssignmentAnswer.submission_id == submission.id)).all()
    assert [(a.question_id, a.answer_text) for a in answers] == [(q1, "4")]


def test_blank_answers_are_not_stored(session, seed, make_assignment):
    assignment = make_assignment([
        ("Explain", QuestionType.ESSAY, 5.0, None, None),
        ("Short", QuestionType.SHORT_ANSWER, 1.0, None, None),
    ])
    essay, short = question_ids(session, assignment)
    submission = open_attempt(session, assignment, seed.student, now=T0).submission

    result = submit_attempt(session, submission, {essay: "   \n ", short: "ok"}, now=minutes_after_t0(1))

    assert [a.question_id for a in result.answers] == [short]


def test_answer_for_unknown_question_is_rejected(session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)
    submission = open_attempt(session, assignment, seed.student, now=T0).submission

    with pytest.raises(InvalidAnswerError):
        submit_attempt(session, submission, {"not-a-question": "4"}, now=minutes_after_t0(1))

    session.refresh(submission)
    assert submission.status == SubmissionStatus.IN_PROGRESS


def test_mcq_answer_must_be_an_option(session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)
    q1, _ = question_ids(session, assignment)

    with pytest.raises(InvalidAnswerError):
        clean_answers(view_attempt(session, assignment, seed.student).questions, {q1: "5"})

    # Lenient mode drops it instead
    assert clean_answers(view_attempt(session, assignment, seed.student).questions, {q1: "5"}, strict=False) == {}


def test_reopen_after_submit_is_read_only(session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ, allow_resubmission=False)
    q1, _ = question_ids(session, assignment)
    submission = open_attempt(session, assignment, seed.student, now=T0).submission
    submit_attempt(session, submission, {q1: "4"}, now=minutes_after_t0(2))

    view = open_attempt(session, assignment, seed.student, now=minutes_after_t0(10))

    assert view.state == AttemptState.SUBMITTED
    assert view.read_only
    assert not view.form_visible
    assert not view.can_start_new_attempt
    assert view.submission.id == submission.id
    assert [a.answer_text for a in view.answers] == ["4"]
    assert len(session.exec(select(Submission)).all()) == 1


def test_resubmission_creates_numbered_attempts(session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ, allow_resubmission=True)
    q1, q2 = question_ids(session, assignment)

    first = open_attempt(session, assignment, seed.student, now=T0).submission
    submit_attempt(session, first, {q1: "3"}, now=minutes_after_t0(1))
    view = view_attempt(session, assignment, seed.student, now=minutes_after_t0(2))
    assert view.can_start_new_attempt

    second = open_attempt(session, assignment, seed.student, now=minutes_after_t0(3)).submission
    submit_attempt(session, second, {q1: "4", q2: "Paris"}, now=minutes_after_t0(5))

    assert second.id != first.id
    assert (first.attempt_number, second.attempt_number) == (1, 2)
    latest = view_attempt(session, assignment, seed.student, now=minutes_after_t0(6))
    assert latest.submission.id == second.id
    assert sorted(a.answer_text for a in latest.answers) == ["4", "Paris"]
    first_answers = session.exec(select(AssignmentAnswer).where(AssignmentAnswer.submission_id == first.id)).all()
    assert [a.answer_text for a in first_answers] == ["3"]


def test_timed_attempt_reports_remaining_seconds(session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ, time_limit_minutes=30)
    open_attempt(session, assignment, seed.student, now=T0)

    view = view_attempt(session, assignment, seed.student, now=T0 + timedelta(seconds=10, milliseconds=400))

    assert view.state == AttemptState.IN_PROGRESS
    assert view.deadline == T0 + timedelta(minutes=30)
    assert view.remaining_seconds == 30 * 60 - 11


def test_timed_attempt_is_auto_submitted_at_deadline(session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ, time_limit_minutes=30)
    open_attempt(session, assignment, seed.student, now=T0)

    view = view_attempt(session, assignment, seed.student, now=minutes_after_t0(45))

    assert view.state == AttemptState.SUBMITTED
    assert view.submission.is_auto_submitted is True
    assert ensure_utc(view.submission.submitted_at) == minutes_after_t0(30)
    assert view.submission.time_spent_minutes == 30
    assert view.answers == []


def test_submit_after_deadline_counts_as_expiry(session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ, time_limit_minutes=10)
    q1, _ = question_ids(session, assignment)
    submission = open_attempt(session, assignment, seed.student, now=T0).submission

    result = submit_attempt(session, submission, {q1: "4"}, now=minutes_after_t0(10, 3))

    assert result.submission.is_auto_submitted is True
    assert result.submission.time_spent_minutes == 10
    assert [a.answer_text for a in result.answers] == ["4"]


def test_expire_overdue_attempts_sweeps_only_overdue(session, seed, make_assignment):
    timed = make_assignment(TWO_MCQ, title="Timed", time_limit_minutes=5)
    untimed = make_assignment(TWO_MCQ, title="Untimed")
    open_attempt(session, timed, seed.student, now=T0)
    open_attempt(session, timed, seed.student2, now=minutes_after_t0(4))
    open_attempt(session, untimed, seed.student, now=T0)

    expired = expire_overdue_attempts(session, now=minutes_after_t0(6))

    assert expired == 1
    statuses = {
        (s.assignment_id, s.student_id): s.status
        for s in session.exec(select(Submission)).all()
    }
    assert statuses[(timed.id, seed.student.id)] == SubmissionStatus.SUBMITTED
    assert statuses[(timed.id, seed.student2.id)] == SubmissionStatus.IN_PROGRESS
    assert statuses[(untimed.id, seed.student.id)] == SubmissionStatus.IN_PROGRESS


def test_late_submission_is_flagged(session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ, due_date=minutes_after_t0(60))
    first = open_attempt(session, assignment, seed.student, now=minutes_after_t0(50)).submission
    late = open_attempt(session, assignment, seed.student2, now=minutes_after_t0(50)).submission

    on_time = submit_attempt(session, first, {}, now=minutes_after_t0(59))
    overdue = submit_attempt(session, late, {}, now=minutes_after_t0(61))

    assert on_time.submission.is_late is False
    assert overdue.submission.is_late is True


def test_concurrent_submits_write_once(session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)
    q1, q2 = question_ids(session, assignment)
    submission_id = open_attempt(session, assignment, seed.student, now=T0).submission.id
    payloads = [{q1: "4"}, {q1: "3", q2: "Paris"}]
    barrier = threading.Barrier(len(payloads))
    results, errors = {}, []

    def submit(index):
        try:
            with Session(engine) as own_session:
                submission = own_session.get(Submission, submission_id)
                barrier.wait(timeout=5)
                result = submit_attempt(own_session, submission, payloads[index], now=minutes_after_t0(3))
                results[index] = result.already_submitted
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=submit, args=(index,)) for index in range(len(payloads))]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert errors == []
    assert sorted(results.values()) == [False, True]
    winner = next(index for index, already in results.items() if not already)
    stored = session.exec(select(AssignmentAnswer).where(AssignmentAnswer.submission_id == submission_id)).all()
    assert {a.question_id: a.answer_text for a in stored} == payloads[winner]
