"""
Complaint submission, listing, status changes and deletion through the API.
"""
import io
from datetime import datetime, timedelta

import pytest

import config
from auth.security import create_access_token
from database.models import Complaint, ComplaintCategory, ComplaintStatus
from services.complaint_service import (
    LENIENT_STATUS_TRANSITIONS, STRICT_STATUS_TRANSITIONS, is_transition_allowed
)


COMPLAINT_FORM = {
    "title": "No water",
    "category": "water",
    "description": "Taps are dry since morning",
    "roomNumber": "B12",
    "location": "Hostel",
}


def submit(client, headers, files=None, **overrides):
    data = dict(COMPLAINT_FORM, **overrides)
    return client.post("/api/complaints", headers=headers, data=data, files=files)


def count_complaints(database):
    with database.get_session() as db:
        return db.query(Complaint).count()


def stored_status(database, complaint_id):
    with database.get_session() as db:
        complaint = db.query(Complaint).filter(Complaint.id == complaint_id).first()
        return complaint.status if complaint else None


class TestSubmit:

    def test_student_submits_and_lists_pending_complaint(self, client, student_headers):
        response = submit(client, student_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Complaint submitted successfully"

        mine = client.get("/api/my-complaints", headers=student_headers).json()
        assert len(mine) == 1
        assert mine[0]["_id"] == body["id"]
        assert mine[0]["status"] == "Pending"
        assert mine[0]["category"] == "water"
        assert mine[0]["location"] == "Hostel"
        assert mine[0]["imagePath"] is None

    def test_category_and_location_are_normalized(self, client, student_headers, database):
        response = submit(client, student_headers, category="Electricity", location="mess")
        assert response.status_code == 200
        with database.get_session() as db:
            complaint = db.query(Complaint).one()
            assert complaint.category == ComplaintCategory.ELECTRICITY
            assert complaint.location.value == "Mess"

    @pytest.mark.parametrize("field", ["title", "category", "description", "roomNumber", "location"])
    def test_missing_field_creates_nothing(self, client, student_headers, database, field):
        data = dict(COMPLAINT_FORM)
        data.pop(field)
        response = client.post("/api/complaints", headers=student_headers, data=data)
        assert response.status_code == 400
        assert field in response.json()["message"]
        assert count_complaints(database) == 0

    def test_blank_field_counts_as_missing(self, client, student_headers, database):
        response = submit(client, student_headers, title="   ")
        assert response.status_code == 400
        assert count_complaints(database) == 0

    def test_invalid_category(self, client, student_headers, database):
        response = submit(client, student_headers, category="plumbing")
        assert response.status_code == 400
        assert "category" in response.json()["message"]
        assert count_complaints(database) == 0

    def test_image_is_stored_and_served_path_recorded(self, client, student_headers, storage, database):
        files = {"image": ("tap.JPG", io.BytesIO(b"fake-jpeg-bytes"), "image/jpeg")}
        response = submit(client, student_headers, files=files)
        assert response.status_code == 200

        with database.get_session() as db:
            image_path = db.query(Complaint).one().image_path
        assert image_path.startswith("uploads/")
        assert image_path.endswith(".jpg")
        stored = storage.resolve(image_path)
        assert stored.read_bytes() == b"fake-jpeg-bytes"

    def test_rejected_image_type_stores_nothing(self, client, student_headers, storage, database):
        files = {"image": ("payload.exe", io.BytesIO(b"MZ"), "application/octet-stream")}
        response = submit(client, student_headers, files=files)
        assert response.status_code == 400
        assert count_complaints(database) == 0
        assert list(storage.root_dir.iterdir()) == []

    def test_oversized_image_rejected(self, client, student_headers, storage, database, monkeypatch):
        monkeypatch.setattr(config, "MAX_IMAGE_SIZE_MB", 0.00001)
        files = {"image": ("tap.png", io.BytesIO(b"x" * 1024), "image/png")}
        response = submit(client, student_headers, files=files)
        assert response.status_code == 400
        assert count_complaints(database) == 0


class TestListing:

    def test_my_complaints_only_shows_own_newest_first(
        self, client, student, student_headers, make_user, make_complaint
    ):
        other = make_user("B21CS002")
        now = datetime.utcnow()
        older = make_complaint(student, title="older", created_at=now - timedelta(hours=2))
        newer = make_complaint(student, title="newer", created_at=now - timedelta(hours=1))
        make_complaint(other, title="not mine")

        mine = client.get("/api/my-complaints", headers=student_headers).json()
        assert [c["_id"] for c in mine] == [newer.id, older.id]
        assert all(c["studentId"] == student.id for c in mine)

    def test_active_list_excludes_resolved_and_embeds_student(
        self, client, student, admin_headers, make_complaint
    ):
        pending = make_complaint(student, status=ComplaintStatus.PENDING)
        make_complaint(student, status=ComplaintStatus.RESOLVED)

        active = client.get("/api/complaints", headers=admin_headers).json()
        assert [c["_id"] for c in active] == [pending.id]
        assert active[0]["studentId"] == {
            "_id": student.id,
            "rollNumber": "B21CS001",
            "roomNumber": "B12",
            "name": student.name,
        }

    def test_active_list_filters(self, client, student, admin_headers, make_complaint):
        water = make_complaint(student, category=ComplaintCategory.WATER, room_number="A1")
        wifi = make_complaint(
            student, category=ComplaintCategory.INTERNET, room_number="A2", status=ComplaintStatus.IN_PROGRESS
        )

        by_category = client.get("/api/complaints", headers=admin_headers, params={"category": "internet"})
        assert [c["_id"] for c in by_category.json()] == [wifi.id]

        by_room = client.get("/api/complaints", headers=admin_headers, params={"roomNumber": "A1"})
        assert [c["_id"] for c in by_room.json()] == [water.id]

        by_status = client.get("/api/complaints", headers=admin_headers, params={"status": "In Progress"})
        assert [c["_id"] for c in by_status.json()] == [wifi.id]

    def test_active_list_filters_ignore_case(self, client, student, admin_headers, make_complaint):
        wifi = make_complaint(
            student, category=ComplaintCategory.INTERNET, status=ComplaintStatus.IN_PROGRESS
        )
        make_complaint(student, category=ComplaintCategory.WATER)

        response = client.get(
            "/api/complaints", headers=admin_headers, params={"category": "Internet", "status": "in progress"}
        )
        assert response.status_code == 200
        assert [c["_id"] for c in response.json()] == [wifi.id]

    def test_active_list_rejects_unknown_filter_value(self, client, admin_headers):
        response = client.get("/api/complaints", headers=admin_headers, params={"category": "plumbing"})
        assert response.status_code == 400

    def test_history_lists_resolved_most_recently_updated_first(
        self, client, student, admin_headers, make_complaint
    ):
        now = datetime.utcnow()
        first = make_complaint(student, status=ComplaintStatus.RESOLVED, updated_at=now - timedelta(days=3))
        second = make_complaint(student, status=ComplaintStatus.RESOLVED, updated_at=now - timedelta(days=1))
        make_complaint(student, status=ComplaintStatus.PENDING)

        history = client.get("/api/complaints/history", headers=admin_headers).json()
        assert [c["_id"] for c in history] == [second.id, first.id]

    def test_complaint_of_removed_student_has_no_owner(self, client, admin_headers, make_complaint):
        orphan = make_complaint(None)
        active = client.get("/api/complaints", headers=admin_headers).json()
        assert active[0]["_id"] == orphan.id
        assert active[0]["studentId"] is None


class TestStatusUpdate:

    def test_admin_resolves_complaint(self, client, student, admin_headers, make_complaint, database):
        stale = datetime.utcnow() - timedelta(days=5)
        complaint = make_complaint(student, updated_at=stale)

        response = client.put(f"/api/complaints/{complaint.id}", headers=admin_headers, json={"status": "Resolved"})
        assert response.status_code == 200
        assert response.json()["message"] == "Status updated"

        with database.get_session() as db:
            updated = db.query(Complaint).filter(Complaint.id == complaint.id).one()
            assert updated.status == ComplaintStatus.RESOLVED
            assert updated.updated_at > stale

    def test_unknown_complaint(self, client, admin_headers):
        response = client.put("/api/complaints/999", headers=admin_headers, json={"status": "Resolved"})
        assert response.status_code == 404

    def test_invalid_status_value(self, client, student, admin_headers, make_complaint, database):
        complaint = make_complaint(student)
        response = client.put(f"/api/complaints/{complaint.id}", headers=admin_headers, json={"status": "Done"})
        assert response.status_code == 400
        assert stored_status(database, complaint.id) == ComplaintStatus.PENDING

    def test_missing_status_value(self, client, student, admin_headers, make_complaint):
        complaint = make_complaint(student)
        response = client.put(f"/api/complaints/{complaint.id}", headers=admin_headers, json={})
        assert response.status_code == 400

    def test_reopen_allowed_by_default(self, client, student, admin_headers, make_complaint, database):
        complaint = make_complaint(student, status=ComplaintStatus.RESOLVED)
        response = client.put(f"/api/complaints/{complaint.id}", headers=admin_headers, json={"status": "Pending"})
        assert response.status_code == 200
        assert stored_status(database, complaint.id) == ComplaintStatus.PENDING

    def test_strict_mode_rejects_reopen(
        self, client, student, admin_headers, make_complaint, database, monkeypatch
    ):
        monkeypatch.setattr(config, "STRICT_STATUS_TRANSITIONS", True)
        complaint = make_complaint(student, status=ComplaintStatus.RESOLVED)
        response = client.put(f"/api/complaints/{complaint.id}", headers=admin_headers, json={"status": "Pending"})
        assert response.status_code == 400
        assert stored_status(database, complaint.id) == ComplaintStatus.RESOLVED


class TestTransitionTable:

    def test_lenient_table_allows_everything(self):
        for current in ComplaintStatus:
            assert LENIENT_STATUS_TRANSITIONS[current] == frozenset(ComplaintStatus)

    def test_strict_table_is_forward_only(self, monkeypatch):
        monkeypatch.setattr(config, "STRICT_STATUS_TRANSITIONS", True)
        assert is_transition_allowed(ComplaintStatus.PENDING, ComplaintStatus.IN_PROGRESS)
        assert is_transition_allowed(ComplaintStatus.IN_PROGRESS, ComplaintStatus.RESOLVED)
        assert is_transition_allowed(ComplaintStatus.RESOLVED, ComplaintStatus.RESOLVED)
        assert not is_transition_allowed(ComplaintStatus.IN_PROGRESS, ComplaintStatus.PENDING)
        assert STRICT_STATUS_TRANSITIONS[ComplaintStatus.RESOLVED] == frozenset()


class TestDelete:

    def test_pending_complaint_cannot_be_deleted(self, client, student, admin_headers, make_complaint, database):
        complaint = make_complaint(student)
        response = client.delete(f"/api/complaints/{complaint.id}", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Only resolved complaints can be deleted"
        assert count_complaints(database) == 1

    def test_resolved_complaint_deleted_with_image(
        self, client, student, admin_headers, make_complaint, storage, database
    ):
        image_path = storage.save(io.BytesIO(b"img"), "tap.png")
        complaint = make_complaint(student, status=ComplaintStatus.RESOLVED, image_path=image_path)

        response = client.delete(f"/api/complaints/{complaint.id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["message"] == "Complaint deleted successfully"
        assert count_complaints(database) == 0
        assert not storage.resolve(image_path).exists()

    def test_missing_image_file_does_not_block_delete(
        self, client, student, admin_headers, make_complaint, database
    ):
        complaint = make_complaint(student, status=ComplaintStatus.RESOLVED, image_path="uploads/gone.jpg")
        response = client.delete(f"/api/complaints/{complaint.id}", headers=admin_headers)
        assert response.status_code == 200
        assert count_complaints(database) == 0

    def test_unknown_complaint(self, client, admin_headers):
        response = client.delete("/api/complaints/999", headers=admin_headers)
        assert response.status_code == 404


def test_full_lifecycle(client, student_headers, admin_headers, database):
    complaint_id = submit(client, student_headers).json()["id"]

    active = client.get("/api/complaints", headers=admin_headers).json()
    assert [c["_id"] for c in active] == [complaint_id]

    client.put(f"/api/complaints/{complaint_id}", headers=admin_headers, json={"status": "Resolved"})
    assert client.get("/api/complaints", headers=admin_headers).json() == []
    history = client.get("/api/complaints/history", headers=admin_headers).json()
    assert [c["_id"] for c in history] == [complaint_id]

    assert client.delete(f"/api/complaints/{complaint_id}", headers=admin_headers).status_code == 200
    assert client.get("/api/complaints/history", headers=admin_headers).json() == []
    assert client.get("/api/my-complaints", headers=student_headers).json() == []


class TestStaleTokens:

    def test_token_for_reused_id_is_rejected(self, client, student, database):
        # Same id, different roll number: the id was handed to another student
        token = create_access_token(
            {"sub": str(student.id), "role": "student", "roll": "B19CS999"}, config.SECRET_KEY
        )
        response = submit(client, {"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert count_complaints(database) == 0

    def test_token_for_deleted_account_is_rejected(self, client, database):
        token = create_access_token({"sub": "4242", "role": "student", "roll": "B21CS404"}, config.SECRET_KEY)
        response = client.get("/api/my-complaints", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
