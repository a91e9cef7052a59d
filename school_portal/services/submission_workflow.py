"""
Submission workflow for a student's attempt at an assignment.

An attempt moves NOT_STARTED -> IN_PROGRESS -> SUBMITTED. The state is not
stored separately; it is derived from the student's latest Submission row:

- no submission                -> NOT_STARTED
- latest submission in progress -> IN_PROGRESS
- latest submission submitted   -> SUBMITTED

A Submission row is created when the attempt is opened so the start time is
the server's. Answers only exist once the attempt is submitted. Timed
attempts get a countdown; when it runs out the attempt is submitted with
whatever answers it has, and `submitted_at` is clamped to the deadline.
Reads of an overdue attempt expire it on the spot, so a missed timer (server
restart, no event loop) cannot leave an attempt open past its deadline.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from school_portal.core.cache import Mutation, query_cache
from school_portal.core.database import engine
from school_portal.models.assignment import Assignment, AssignmentQuestion, GradingMode, QuestionType
from school_portal.models.grade import Grade
from school_portal.models.submission import AssignmentAnswer, GradingStatus, Submission, SubmissionStatus
from school_portal.models.user import User
from school_portal.services.auto_grading import run_auto_grading
from school_portal.services.countdown import timer_registry
from school_portal.services.errors import InvalidAnswerError, PersistenceError
from school_portal.services.grading import find_grade, load_answers, load_questions
from school_portal.utils.time_utils import now_utc, seconds_until, whole_minutes_between

logger = logging.getLogger(__name__)


class AttemptState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


@dataclass
class AttemptView:
    state: AttemptState
    assignment: Assignment
    questions: List[AssignmentQuestion]
    submission: Optional[Submission] = None
    answers: List[AssignmentAnswer] = field(default_factory=list)
    deadline: Optional[datetime] = None
    remaining_seconds: Optional[int] = None

    @property
    def form_visible(self) -> bool:
        return self.state == AttemptState.IN_PROGRESS

    @property
    def read_only(self) -> bool:
        return self.state == AttemptState.SUBMITTED

    @property
    def can_start_new_attempt(self) -> bool:
        return self.state == AttemptState.SUBMITTED and self.assignment.allow_resubmission


@dataclass
class SubmitResult:
    submission: Submission
    answers: List[AssignmentAnswer]
    already_submitted: bool = False
    grade: Optional[Grade] = None


class KeyedLocks:
    """One lock per key, created on first use"""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def discard(self, key: str) -> None:
        with self._guard:
            self._locks.pop(key, None)


submission_locks = KeyedLocks()


def latest_attempt(session: Session, assignment_id: str, student_id: str) -> Optional[Submission]:
    return session.exec(
        select(Submission)
        .where(Submission.assignment_id == assignment_id, Submission.student_id == student_id)
        .order_by(Submission.attempt_number.desc())
    ).first()


def attempt_deadline(assignment: Assignment, submission: Submission) -> Optional[datetime]:
    return assignment.deadline_for(submission.started_at)


def is_overdue(assignment: Assignment, submission: Submission, now: datetime) -> bool:
    if submission.status != SubmissionStatus.IN_PROGRESS:
        return False
    deadline = attempt_deadline(assignment, submission)
    return deadline is not None and seconds_until(deadline, now) == 0


def derive_state(submission: Optional[Submission]) -> AttemptState:
    if submission is None:
        return AttemptState.NOT_STARTED
    if submission.status == SubmissionStatus.IN_PROGRESS:
        return AttemptState.IN_PROGRESS
    return AttemptState.SUBMITTED


def view_attempt(session: Session, assignment: Assignment, student: User,
                 now: Optional[datetime] = None) -> AttemptView:
    """Current attempt of `student`, expiring it first if its countdown ran out"""
    now = now or now_utc()
    submission = latest_attempt(session, assignment.id, student.id)

    if submission is not None and is_overdue(assignment, submission, now):
        logger.info("Attempt %s is past its deadline, submitting it", submission.id)
        submission = expire_attempt(session, submission, now=now).submission

    view = AttemptView(
        state=derive_state(submission),
        assignment=assignment,
        questions=load_questions(session, assignment.id),
        submission=submission,
    )
    if submission is None:
        return view

    if view.state == AttemptState.SUBMITTED:
        view.answers = load_answers(session, submission.id)
    else:
        view.deadline = attempt_deadline(assignment, submission)
        if view.deadline is not None:
            view.remaining_seconds = seconds_until(view.deadline, now)
    return view


def arm_countdown(assignment: Assignment, submission: Submission) -> bool:
    deadline = attempt_deadline(assignment, submission)
    if deadline is None:
        return False
    return timer_registry.arm(submission.id, deadline, partial(expire_attempt_by_id, submission.id))


def open_attempt(session: Session, assignment: Assignment, student: User,
                 now: Optional[datetime] = None) -> AttemptView:
    """
    Begin (or resume) an attempt.

    An attempt in progress is returned as is. A submitted attempt starts a
    new one only when the assignment allows resubmission; otherwise the
    read-only view of the submitted attempt is returned.
    """
    now = now or now_utc()
    view = view_attempt(session, assignment, student, now=now)
    if view.state == AttemptState.IN_PROGRESS:
        return view
    if view.state == AttemptState.SUBMITTED and not assignment.allow_resubmission:
        return view

    attempt_number = view.submission.attempt_number + 1 if view.submission else 1
    submission = Submission(
        assignment_id=assignment.id,
        student_id=student.id,
        status=SubmissionStatus.IN_PROGRESS,
        attempt_number=attempt_number,
        started_at=now,
    )
    session.add(submission)
    try:
        session.commit()
    except IntegrityError:
        # Another request opened the same attempt number first
        session.rollback()
        return view_attempt(session, assignment, student, now=now)
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError(str(exc))
    session.refresh(submission)

    logger.info(
        "Student %s started attempt %s of assignment %s",
        student.id, attempt_number, assignment.id
    )
    arm_countdown(assignment, submission)
    query_cache.invalidate_after(Mutation.OPEN_ATTEMPT, assignment=assignment.id)
    return view_attempt(session, assignment, student, now=now)


def clean_answers(questions: List[AssignmentQuestion], answers: Dict[str, Optional[str]],
                  strict: bool = True) -> Dict[str, str]:
    """
    Keep the non-empty answers, keyed by question id.

    With `strict` an answer to an unknown question, or a multiple-choice
    answer that is not one of the options, raises InvalidAnswerError.
    Otherwise such answers are dropped.
    """
    questions_by_id = {question.id: question for question in questions}
    cleaned = {}
    for question_id, answer_text in answers.items():
        question = questions_by_id.get(question_id)
        if question is None:
            if strict:
                raise InvalidAnswerError(f"Question {question_id} is not part of this assignment")
            continue

        if answer_text is None or not answer_text.strip():
            continue

        if question.question_type == QuestionType.MCQ:
            options = [option.strip() for option in question.get_options()]
            if options and answer_text.strip() not in options:
                if strict:
                    raise InvalidAnswerError(
                        f"Answer for question {question_id} must be one of its options"
                    )
                continue

        cleaned[question_id] = answer_text
    return cleaned


def submit_attempt(session: Session, submission: Submission, answers: Dict[str, Optional[str]],
                   now: Optional[datetime] = None, auto: bool = False) -> SubmitResult:
    """
    Submit an attempt with its answers.

    Submitting is idempotent: an attempt that is already submitted is
    returned unchanged with `already_submitted` set. A submit that arrives at
    or after the countdown deadline is treated as a timer expiry.
    """
    with submission_locks.get(submission.id):
        session.refresh(submission)
        if submission.status == SubmissionStatus.SUBMITTED:
            return SubmitResult(
                submission=submission,
                answers=load_answers(session, submission.id),
                already_submitted=True,
                grade=find_grade(session, submission),
            )

        assignment = session.get(Assignment, submission.assignment_id)
        questions = load_questions(session, assignment.id)
        cleaned = clean_answers(questions, answers or {}, strict=not auto)

        now = now or now_utc()
        submitted_at = now
        deadline = attempt_deadline(assignment, submission)
        if deadline is not None and (auto or seconds_until(deadline, now) == 0):
            submitted_at = deadline
            auto = True

        submission.status = SubmissionStatus.SUBMITTED
        submission.submitted_at = submitted_at
        submission.time_spent_minutes = whole_minutes_between(submission.started_at, submitted_at)
        submission.is_late = assignment.is_late(submitted_at)
        submission.is_auto_submitted = auto
        if assignment.grading_mode == GradingMode.AUTO:
            submission.grading_status = GradingStatus.PENDING
        else:
            submission.grading_status = GradingStatus.NOT_REQUIRED
        session.add(submission)

        for question_id, answer_text in cleaned.items():
            session.add(AssignmentAnswer(
                submission_id=submission.id,
                question_id=question_id,
                answer_text=answer_text,
            ))

        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Failed to submit attempt %s: %s", submission.id, exc)
            raise PersistenceError(str(exc))
        session.refresh(submission)

    timer_registry.cancel(submission.id)
    submission_locks.discard(submission.id)
    logger.info(
        "Submission %s submitted (%s), %s answers, %s min, late=%s",
        submission.id, "timer expiry" if auto else "manual",
        len(cleaned), submission.time_spent_minutes, submission.is_late
    )

    grade = None
    if assignment.grading_mode == GradingMode.AUTO:
        grade = run_auto_grading(session, submission)
        session.refresh(submission)

    query_cache.invalidate_after(Mutation.SUBMIT_ATTEMPT, assignment=assignment.id)
    return SubmitResult(
        submission=submission,
        answers=load_answers(session, submission.id),
        grade=grade,
    )


def expire_attempt(session: Session, submission: Submission,
                   answers: Optional[Dict[str, Optional[str]]] = None,
                   now: Optional[datetime] = None) -> SubmitResult:
    """Submit an attempt because its countdown reached zero"""
    return submit_attempt(session, submission, answers or {}, now=now, auto=True)


def expire_attempt_by_id(submission_id: str) -> None:
    """Countdown callback; runs outside any request so it opens its own session"""
    with Session(engine) as session:
        submission = session.get(Submission, submission_id)
        if submission is None or submission.status == SubmissionStatus.SUBMITTED:
            return
        expire_attempt(session, submission)


def expire_overdue_attempts(session: Session, now: Optional[datetime] = None) -> int:
    """Submit every timed attempt whose countdown has already run out"""
    now = now or now_utc()
    results = session.exec(
        select(Submission, Assignment)
        .join(Assignment, Submission.assignment_id == Assignment.id)
        .where(
            Submission.status == SubmissionStatus.IN_PROGRESS,
            Assignment.time_limit_minutes != None,  # noqa: E711
        )
    ).all()

    expired = 0
    for submission, assignment in results:
        if is_overdue(assignment, submission, now):
            expire_attempt(session, submission, now=now)
            expired += 1
    if expired:
        logger.info("Expired %s overdue attempts", expired)
    return expired


def resume_countdowns(session: Session) -> int:
    """Re-arm the countdown of every timed attempt still in progress"""
    results = session.exec(
        select(Submission, Assignment)
        .join(Assignment, Submission.assignment_id == Assignment.id)
        .where(
            Submission.status == SubmissionStatus.IN_PROGRESS,
            Assignment.time_limit_minutes != None,  # noqa: E711
        )
    ).all()
    return sum(1 for submission, assignment in results if arm_countdown(assignment, submission))
