from datetime import timedelta

from conftest import TWO_MCQ, auth_headers, question_ids
from school_portal.models import GradingMode, Submission
from school_portal.utils.time_utils import now_utc


def _start(client, assignment, student):
    response = client.post(f"/api/assignments/{assignment.id}/attempt", headers=auth_headers(student))
    assert response.status_code == 200
    return response.json()


def _rewind(session, submission_id, minutes):
    """Pretend the attempt started `minutes` ago."""
    submission = session.get(Submission, submission_id)
    submission.started_at = now_utc() - timedelta(minutes=minutes)
    session.add(submission)
    session.commit()


def test_start_and_submit_attempt(client, session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ, grading_mode=GradingMode.AUTO)
    q1, q2 = question_ids(session, assignment)

    started = _start(client, assignment, seed.student)
    assert started["state"] == "in_progress"
    assert started["form_visible"] is True
    # Students never receive the answer key
    assert all(q["correct_answer"] is None for q in started["assignment"]["questions"])

    response = client.post(
        f"/api/submissions/{started['submission']['id']}/submit",
        json={"answers": {q1: "4", q2: "Rome"}},
        headers=auth_headers(seed.student),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["already_submitted"] is False
    assert data["submission"]["status"] == "submitted"
    assert data["grade"]["percentage"] == 50.0

    view = client.get(f"/api/assignments/{assignment.id}/attempt", headers=auth_headers(seed.student)).json()
    assert view["state"] == "submitted"
    assert view["read_only"] is True
    assert view["form_visible"] is False
    assert view["can_start_new_attempt"] is False


def test_double_submit_returns_first_result(client, session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)
    q1, _ = question_ids(session, assignment)
    submission_id = _start(client, assignment, seed.student)["submission"]["id"]
    headers = auth_headers(seed.student)

    first = client.post(f"/api/submissions/{submission_id}/submit", json={"answers": {q1: "4"}}, headers=headers)
    second = client.post(f"/api/submissions/{submission_id}/submit", json={"answers": {q1: "3"}}, headers=headers)

    assert second.status_code == 200
    assert second.json()["already_submitted"] is True
    assert second.json()["submission"]["submitted_at"] == first.json()["submission"]["submitted_at"]
    assert [a["answer_text"] for a in second.json()["answers"]] == ["4"]


def test_unknown_question_is_a_bad_request(client, session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)
    submission_id = _start(client, assignment, seed.student)["submission"]["id"]

    response = client.post(
        f"/api/submissions/{submission_id}/submit",
        json={"answers": {"bogus": "4"}},
        headers=auth_headers(seed.student),
    )

    assert response.status_code == 400
    view = client.get(f"/api/assignments/{assignment.id}/attempt", headers=auth_headers(seed.student)).json()
    assert view["state"] == "in_progress"


def test_student_cannot_submit_someone_elses_attempt(client, session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)
    submission_id = _start(client, assignment, seed.student)["submission"]["id"]

    response = client.post(f"/api/submissions/{submission_id}/submit", json={"answers": {}},
                           headers=auth_headers(seed.student2))

    assert response.status_code == 403


def test_teachers_do_not_take_assignments(client, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)

    response = client.post(f"/api/assignments/{assignment.id}/attempt", headers=auth_headers(seed.teacher))

    assert response.status_code == 403


def test_unenrolled_student_is_refused(client, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)

    response = client.post(f"/api/assignments/{assignment.id}/attempt", headers=auth_headers(seed.outsider))

    assert response.status_code == 403


def test_unpublished_assignment_is_hidden(client, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ, is_published=False)

    response = client.get(f"/api/assignments/{assignment.id}/attempt", headers=auth_headers(seed.student))

    assert response.status_code == 404


def test_expire_is_refused_while_time_remains(client, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ, time_limit_minutes=20)
    started = _start(client, assignment, seed.student)
    assert 0 < started["remaining_seconds"] <= 20 * 60

    response = client.post(f"/api/submissions/{started['submission']['id']}/expire", json={"answers": {}},
                           headers=auth_headers(seed.student))

    assert response.status_code == 409


def test_expire_submits_with_time_limit_as_time_spent(client, session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ, time_limit_minutes=20)
    q1, _ = question_ids(session, assignment)
    submission_id = _start(client, assignment, seed.student)["submission"]["id"]
    _rewind(session, submission_id, 21)

    response = client.post(f"/api/submissions/{submission_id}/expire", json={"answers": {q1: "4"}},
                           headers=auth_headers(seed.student))

    assert response.status_code == 200
    data = response.json()["submission"]
    assert data["is_auto_submitted"] is True
    assert data["time_spent_minutes"] == 20


def test_reading_an_overdue_attempt_submits_it(client, session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ, time_limit_minutes=15)
    submission_id = _start(client, assignment, seed.student)["submission"]["id"]
    _rewind(session, submission_id, 30)

    view = client.get(f"/api/assignments/{assignment.id}/attempt", headers=auth_headers(seed.student)).json()

    assert view["state"] == "submitted"
    assert view["submission"]["is_auto_submitted"] is True
    assert view["submission"]["time_spent_minutes"] == 15


def test_resubmission_through_the_api(client, session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ, allow_resubmission=True)
    q1, _ = question_ids(session, assignment)
    headers = auth_headers(seed.student)

    first = _start(client, assignment, seed.student)["submission"]["id"]
    client.post(f"/api/submissions/{first}/submit", json={"answers": {q1: "3"}}, headers=headers)
    view = client.get(f"/api/assignments/{assignment.id}/attempt", headers=headers).json()
    assert view["can_start_new_attempt"] is True

    second = _start(client, assignment, seed.student)
    assert second["submission"]["attempt_number"] == 2
    client.post(f"/api/submissions/{second['submission']['id']}/submit", json={"answers": {q1: "4"}},
                headers=headers)

    latest = client.get(f"/api/assignments/{assignment.id}/attempt", headers=headers).json()
    assert latest["submission"]["id"] == second["submission"]["id"]
    assert [a["answer_text"] for a in latest["answers"]] == ["4"]


def test_submission_detail_visibility(client, session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ)
    submission_id = _start(client, assignment, seed.student)["submission"]["id"]

    own = client.get(f"/api/submissions/{submission_id}", headers=auth_headers(seed.student))
    teacher = client.get(f"/api/submissions/{submission_id}", headers=auth_headers(seed.teacher))
    other = client.get(f"/api/submissions/{submission_id}", headers=auth_headers(seed.student2))

    assert own.status_code == 200
    assert teacher.status_code == 200
    assert other.status_code == 403


def test_enabling_resubmission_refreshes_the_submitted_view(client, session, seed, make_assignment):
    assignment = make_assignment(TWO_MCQ, allow_resubmission=False)
    q1, _ = question_ids(session, assignment)
    headers = auth_headers(seed.student)
    submission_id = _start(client, assignment, seed.student)["submission"]["id"]
    client.post(f"/api/submissions/{submission_id}/submit", json={"answers": {q1: "4"}}, headers=headers)

    before = client.get(f"/api/assignments/{assignment.id}/attempt", headers=headers).json()
    assert before["can_start_new_attempt"] is False

    updated = client.put(
        f"/api/assignments/{assignment.id}",
        json={"title": "Quiz 1", "is_published": True, "allow_resubmission": True},
        headers=auth_headers(seed.teacher),
    )
    assert updated.status_code == 200

    after = client.get(f"/api/assignments/{assignment.id}/attempt", headers=headers).json()
    assert after["can_start_new_attempt"] is True
    assert after["assignment"]["allow_resubmission"] is True

