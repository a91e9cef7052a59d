from conftest import T0, TWO_MCQ, auth_headers, minutes_after_t0, question_ids
from school_portal.models import GradingMode
from school_portal.services.submission_workflow import open_attempt, submit_attempt


def _take(session, assignment, student, answers, minute=5):
    submission = open_attempt(session, assignment, student, now=T0).submission
    return submit_attempt(session, submission, answers, now=minutes_after_t0(minute)).submission


def test_my_grade_is_null_until_graded(client, session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)
    _take(session, assignment, seed.student, {})

    response = client.get(f"/api/assignments/{assignment.id}/grade/me", headers=auth_headers(seed.student))

    assert response.status_code == 200
    assert response.json() is None


def test_my_grade_follows_latest_attempt(client, session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ, grading_mode=GradingMode.AUTO, allow_resubmission=True)
    q1, q2 = question_ids(session, assignment)
    headers = auth_headers(seed.student)

    _take(session, assignment, seed.student, {q1: "3"})
    first = client.get(f"/api/assignments/{assignment.id}/grade/me", headers=headers).json()
    _take(session, assignment, seed.student, {q1: "4", q2: "Paris"}, minute=9)
    second = client.get(f"/api/assignments/{assignment.id}/grade/me", headers=headers).json()

    assert first["percentage"] == 0.0
    assert first["letter_grade"] == "F"
    assert second["percentage"] == 100.0
    assert second["letter_grade"] == "A"


def test_gradebook_totals(client, session, seed, make_assignment):
    graded = make_assignment(TWO_MCQ, title="Graded", grading_mode=GradingMode.AUTO)
    make_assignment(TWO_MCQ, title="Ungraded")
    make_assignment(TWO_MCQ, title="Hidden", is_published=False)
    q1, _ = question_ids(session, graded)
    _take(session, graded, seed.student, {q1: "4"})

    response = client.get(f"/api/courses/{seed.course.id}/gradebook/me", headers=auth_headers(seed.student))

    assert response.status_code == 200
    data = response.json()
    assert sorted(e["assignment_title"] for e in data["entries"]) == ["Graded", "Ungraded"]
    assert data["total_points_earned"] == 1.0
    assert data["total_max_points"] == 2.0
    assert data["overall_percentage"] == 50.0
    assert data["overall_letter_grade"] == "F"


def test_gradebook_is_for_enrolled_students(client, seed):
    outsider = client.get(f"/api/courses/{seed.course.id}/gradebook/me", headers=auth_headers(seed.outsider))
    teacher = client.get(f"/api/courses/{seed.course.id}/gradebook/me", headers=auth_headers(seed.teacher))

    assert outsider.status_code == 403
    assert teacher.status_code == 403
