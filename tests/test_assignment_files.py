import pytest

from conftest import TWO_MCQ, auth_headers
from school_portal.core.config import settings
from school_portal.main import app
from school_portal.services.storage import get_storage_service


class FakeStorage:
    def __init__(self):
        self.objects = {}

    def upload(self, path, content, content_type):
        self.objects[path] = content
        return f"https://storage.test/{path}"

    def remove(self, path):
        return self.objects.pop(path, None) is not None


@pytest.fixture()
def storage(client):
    fake = FakeStorage()
    app.dependency_overrides[get_storage_service] = lambda: fake
    return fake


def _upload(client, assignment, user, name="notes.pdf", content=b"%PDF-1.4 work"):
    return client.post(
        f"/api/assignments/{assignment.id}/files",
        files={"file": (name, content, "application/pdf")},
        headers=auth_headers(user),
    )


def test_student_uploads_a_file(client, seed, storage, make_assignment):
    assignment = make_assignment(TWO_MCQ)

    response = _upload(client, assignment, seed.student)

    assert response.status_code == 201
    data = response.json()
    assert data["file_name"] == "notes.pdf"
    assert data["file_size"] == len(b"%PDF-1.4 work")
    [path] = storage.objects
    assert path.startswith(f"{assignment.id}/{seed.student.id}/")
    assert path.endswith(".pdf")
    assert data["file_url"] == f"https://storage.test/{path}"


def test_students_see_their_own_files_and_teachers_see_all(client, seed, storage, make_assignment):
    assignment = make_assignment(TWO_MCQ)
    _upload(client, assignment, seed.student, name="mine.pdf")
    _upload(client, assignment, seed.student2, name="theirs.pdf")

    own = client.get(f"/api/assignments/{assignment.id}/files", headers=auth_headers(seed.student)).json()
    everything = client.get(f"/api/assignments/{assignment.id}/files", headers=auth_headers(seed.teacher)).json()

    assert [f["file_name"] for f in own] == ["mine.pdf"]
    assert sorted(f["file_name"] for f in everything) == ["mine.pdf", "theirs.pdf"]


def test_only_the_uploader_can_delete(client, seed, storage, make_assignment):
    assignment = make_assignment(TWO_MCQ)
    file_id = _upload(client, assignment, seed.student).json()["id"]

    refused = client.delete(f"/api/assignment-files/{file_id}", headers=auth_headers(seed.teacher))
    deleted = client.delete(f"/api/assignment-files/{file_id}", headers=auth_headers(seed.student))

    assert refused.status_code == 403
    assert deleted.status_code == 200
    assert storage.objects == {}
    assert client.get(f"/api/assignments/{assignment.id}/files", headers=auth_headers(seed.student)).json() == []


def test_empty_and_oversized_files_are_rejected(client, seed, storage, make_assignment, monkeypatch):
    assignment = make_assignment(TWO_MCQ)

    empty = _upload(client, assignment, seed.student, content=b"")
    monkeypatch.setattr(settings, "max_upload_size_mb", 0)
    oversized = _upload(client, assignment, seed.student)

    assert empty.status_code == 400
    assert oversized.status_code == 400
    assert storage.objects == {}


def test_outsiders_cannot_upload(client, seed, storage, make_assignment):
    assignment = make_assignment(TWO_MCQ)

    response = _upload(client, assignment, seed.outsider)

    assert response.status_code == 403
