"""
Service-level tests for ComplaintLifecycleService.

Covers submission, read, update, resolve, the client's resolution
decision, deletion and per-client stats, including atomicity of the
resolve unit of work.
"""

import pytest

from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from app.models import db
from app.models.complaint import (
    Attachment,
    Complaint,
    ComplaintCategory,
    ComplaintHistory,
    ComplaintPriority,
    ComplaintStatus,
    Response,
)
from app.models.notification import Notification, NotificationType, StatusChangeMetadata
from app.services.complaint_lifecycle import ComplaintLifecycleService
from app.services.notification import NotificationService


class FakeStorage:
    """Blob storage double; files named ``bad*`` fail to upload."""

    def __init__(self):
        self.uploaded = []

    def upload(self, file):
        if file.filename.startswith("bad"):
            raise OSError("disk full")
        self.uploaded.append(file.filename)
        return {
            "url": f"/uploads/{file.filename}",
            "file_name": file.filename,
            "file_type": "text/plain",
            "file_size": 3,
        }


class FakeFile:
    def __init__(self, filename):
        self.filename = filename


class RecordingEmail:
    def __init__(self):
        self.sent = []

    def send_from_template(self, **kwargs):
        self.sent.append(kwargs)
        return True


@pytest.fixture()
def email():
    return RecordingEmail()


@pytest.fixture()
def svc(email):
    return ComplaintLifecycleService(db.session, storage=FakeStorage(), email=email)


def _count(model, **filters):
    return db.session.query(model).filter_by(**filters).count()


# ═════════════════════════════════════════════════════════════════════════════
# create
# ═════════════════════════════════════════════════════════════════════════════

class TestCreate:
    def test_submit_creates_pending_complaint_and_notifies_client(self, svc, client_user, project):
        complaint = svc.create(
            client_id=client_user.id,
            project_id=project.id,
            title="Login broken",
            description="Cannot log in since this morning",
            category="BUG",
        )

        assert complaint.status == ComplaintStatus.PENDING
        assert complaint.category == ComplaintCategory.BUG
        assert complaint.priority == ComplaintPriority.MEDIUM
        assert complaint.assignee_id is None

        notifs = Notification.query.filter_by(user_id=client_user.id).all()
        assert len(notifs) == 1
        assert notifs[0].type == NotificationType.COMPLAINT_SUBMITTED
        assert notifs[0].message == "New complaint submitted: Login broken"
        assert notifs[0].payload.complaint_id == complaint.id

    def test_lowercase_enum_values_are_accepted(self, svc, client_user, project):
        complaint = svc.create(client_user.id, project.id, "Slow", "Too slow", "delay", "high")
        assert complaint.category == ComplaintCategory.DELAY
        assert complaint.priority == ComplaintPriority.HIGH

    @pytest.mark.parametrize("field", ["project_id", "title", "description", "category"])
    def test_missing_field_is_rejected_without_writes(self, svc, client_user, project, field):
        kwargs = {
            "client_id": client_user.id,
            "project_id": project.id,
            "title": "Login broken",
            "description": "details",
            "category": "BUG",
        }
        kwargs[field] = ""
        with pytest.raises(ValidationError) as exc:
            svc.create(**kwargs)
        assert field in exc.value.details
        assert _count(Complaint) == 0
        assert _count(Notification) == 0

    def test_invalid_category(self, svc, client_user, project):
        with pytest.raises(ValidationError):
            svc.create(client_user.id, project.id, "t", "d", "NOT_A_CATEGORY")

    def test_invalid_priority(self, svc, client_user, project):
        with pytest.raises(ValidationError):
            svc.create(client_user.id, project.id, "t", "d", "BUG", priority="URGENT")

    def test_unknown_project(self, svc, client_user):
        with pytest.raises(NotFoundError):
            svc.create(client_user.id, "missing-project", "t", "d", "BUG")
        assert _count(Complaint) == 0

    def test_failed_uploads_are_omitted(self, svc, client_user, project):
        complaint = svc.create(
            client_user.id, project.id, "Broken image", "see files", "BUG",
            attachments=[FakeFile("ok.txt"), FakeFile("bad.txt"), FakeFile("also-ok.txt")],
        )
        names = sorted(a.file_name for a in complaint.attachments)
        assert names == ["also-ok.txt", "ok.txt"]

    def test_attachments_beyond_limit_are_dropped(self, client_user, project, email):
        svc = ComplaintLifecycleService(db.session, storage=FakeStorage(), email=email,
                                        max_attachments=2)
        complaint = svc.create(
            client_user.id, project.id, "Many files", "d", "BUG",
            attachments=[FakeFile(f"f{i}.txt") for i in range(4)],
        )
        assert _count(Attachment, complaint_id=complaint.id) == 2


# ═════════════════════════════════════════════════════════════════════════════
# get / update
# ═════════════════════════════════════════════════════════════════════════════

class TestGetAndUpdate:
    def test_get_never_mutates(self, svc, make_complaint, client_user):
        complaint = make_complaint()
        before = complaint.updated_at
        fetched = svc.get(complaint.id, client_user.id, "CLIENT")
        assert fetched.id == complaint.id
        assert fetched.status == ComplaintStatus.PENDING
        assert fetched.updated_at == before
        assert _count(ComplaintHistory) == 0

    def test_get_missing(self, svc):
        with pytest.raises(NotFoundError):
            svc.get("nope")

    def test_client_patch_ignores_status_and_assignee(self, svc, make_complaint, client_user, support_a):
        complaint = make_complaint()
        updated = svc.update(complaint.id, client_user.id, "CLIENT", {
            "title": "Login still broken",
            "priority": "HIGH",
            "status": "CLOSED",
            "assignee_id": support_a.id,
        })
        assert updated.title == "Login still broken"
        assert updated.priority == ComplaintPriority.HIGH
        assert updated.status == ComplaintStatus.PENDING
        assert updated.assignee_id is None
        assert _count(ComplaintHistory) == 0

    def test_client_cannot_edit_once_in_progress(self, svc, make_complaint, client_user, support_a):
        complaint = make_complaint(status=ComplaintStatus.IN_PROGRESS, assignee=support_a)
        with pytest.raises(ForbiddenError):
            svc.update(complaint.id, client_user.id, "CLIENT", {"title": "x"})

    def test_other_client_cannot_edit(self, svc, make_complaint, other_client):
        complaint = make_complaint()
        with pytest.raises(ForbiddenError):
            svc.update(complaint.id, other_client.id, "CLIENT", {"title": "x"})

    def test_staff_status_change_writes_history_and_notifies_client(
        self, svc, make_complaint, client_user, support_a,
    ):
        complaint = make_complaint()
        svc.update(complaint.id, support_a.id, "SUPPORT", {"status": "IN_PROGRESS"})

        history = ComplaintHistory.query.filter_by(complaint_id=complaint.id).all()
        assert len(history) == 1
        assert history[0].status == ComplaintStatus.IN_PROGRESS
        assert history[0].message == "Status updated from PENDING to IN_PROGRESS"

        notif = Notification.query.filter_by(user_id=client_user.id).one()
        assert notif.type == NotificationType.STATUS_UPDATED
        assert notif.message == "Complaint status updated to IN_PROGRESS"
        assert notif.payload.new_status == "IN_PROGRESS"

    def test_same_status_is_a_noop(self, svc, make_complaint, support_a):
        complaint = make_complaint()
        svc.update(complaint.id, support_a.id, "SUPPORT", {"status": "PENDING"})
        assert _count(ComplaintHistory) == 0
        assert _count(Notification) == 0

    def test_staff_assignee_change_notifies_new_assignee(self, svc, make_complaint, admin, support_b):
        complaint = make_complaint()
        svc.update(complaint.id, admin.id, "ADMIN", {"assignee_id": support_b.id})
        notif = Notification.query.filter_by(user_id=support_b.id).one()
        assert notif.type == NotificationType.ASSIGNED

    def test_invalid_status_value(self, svc, make_complaint, support_a):
        complaint = make_complaint()
        with pytest.raises(ValidationError):
            svc.update(complaint.id, support_a.id, "SUPPORT", {"status": "DONE"})

    def test_non_staff_assignee_rejected(self, svc, make_complaint, admin, other_client):
        complaint = make_complaint()
        with pytest.raises(ValidationError):
            svc.update(complaint.id, admin.id, "ADMIN", {"assignee_id": other_client.id})

    def test_unknown_assignee(self, svc, make_complaint, admin):
        complaint = make_complaint()
        with pytest.raises(NotFoundError):
            svc.update(complaint.id, admin.id, "ADMIN", {"assignee_id": "ghost"})

    def test_terminal_complaint_cannot_change(self, svc, make_complaint, admin):
        complaint = make_complaint(status=ComplaintStatus.CLOSED)
        with pytest.raises(ConflictError):
            svc.update(complaint.id, admin.id, "ADMIN", {"status": "IN_PROGRESS"})
        db.session.refresh(complaint)
        assert complaint.status == ComplaintStatus.CLOSED


# ═════════════════════════════════════════════════════════════════════════════
# resolve
# ═════════════════════════════════════════════════════════════════════════════

class TestResolve:
    def test_assignee_resolves(self, svc, make_complaint, client_user, support_a, email):
        complaint = make_complaint(status=ComplaintStatus.IN_PROGRESS, assignee=support_a)

        resolved = svc.resolve(complaint.id, support_a.id, "SUPPORT", "Fixed in v2")

        assert resolved.status == ComplaintStatus.RESOLVED
        responses = Response.query.filter_by(complaint_id=complaint.id).all()
        assert [r.message for r in responses] == ["Fixed in v2"]
        history = ComplaintHistory.query.filter_by(complaint_id=complaint.id).one()
        assert history.status == ComplaintStatus.RESOLVED
        assert history.message == "Complaint resolved: Fixed in v2"
        notif = Notification.query.filter_by(user_id=client_user.id).one()
        assert notif.type == NotificationType.RESOLVED
        assert notif.message == 'Your complaint "Login broken" has been resolved.'

        assert len(email.sent) == 1
        assert email.sent[0]["template_name"] == "complaint_resolved"
        assert email.sent[0]["to_email"] == client_user.email

    @pytest.mark.parametrize("comment", ["", "   ", None])
    def test_blank_comment(self, svc, make_complaint, support_a, comment):
        complaint = make_complaint(status=ComplaintStatus.IN_PROGRESS, assignee=support_a)
        with pytest.raises(ValidationError):
            svc.resolve(complaint.id, support_a.id, "SUPPORT", comment)

    @pytest.mark.parametrize("status", [
        ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED, ComplaintStatus.WITHDRAWN,
    ])
    def test_already_finished(self, svc, make_complaint, support_a, status):
        complaint = make_complaint(status=status, assignee=support_a)
        with pytest.raises(ConflictError):
            svc.resolve(complaint.id, support_a.id, "SUPPORT", "again")

    def test_other_support_member_forbidden(self, svc, make_complaint, support_a, support_b):
        complaint = make_complaint(status=ComplaintStatus.IN_PROGRESS, assignee=support_a)
        with pytest.raises(ForbiddenError):
            svc.resolve(complaint.id, support_b.id, "SUPPORT", "not mine")

    def test_client_forbidden(self, svc, make_complaint, client_user, support_a):
        complaint = make_complaint(status=ComplaintStatus.IN_PROGRESS, assignee=support_a)
        with pytest.raises(ForbiddenError):
            svc.resolve(complaint.id, client_user.id, "CLIENT", "done?")

    def test_unassigned_only_admin(self, svc, make_complaint, admin, support_a):
        complaint = make_complaint()
        with pytest.raises(ForbiddenError):
            svc.resolve(complaint.id, support_a.id, "SUPPORT", "grabbing it")

        resolved = svc.resolve(complaint.id, admin.id, "ADMIN", "Handled")
        assert resolved.status == ComplaintStatus.RESOLVED
        assert resolved.assignee_id == admin.id

    def test_failure_after_response_rolls_everything_back(
        self, svc, make_complaint, support_a, monkeypatch, email,
    ):
        complaint = make_complaint(status=ComplaintStatus.IN_PROGRESS, assignee=support_a)

        def boom(*args, **kwargs):
            raise RuntimeError("notification sink down")

        monkeypatch.setattr(NotificationService, "notify", boom)

        with pytest.raises(RuntimeError):
            svc.resolve(complaint.id, support_a.id, "SUPPORT", "Fixed in v2")

        db.session.expire_all()
        assert db.session.get(Complaint, complaint.id).status == ComplaintStatus.IN_PROGRESS
        assert _count(Response) == 0
        assert _count(ComplaintHistory) == 0
        assert _count(Notification) == 0
        assert email.sent == []


# ═════════════════════════════════════════════════════════════════════════════
# respond_to_resolution
# ═════════════════════════════════════════════════════════════════════════════

class TestRespondToResolution:
    def test_reject_reopens_and_notifies_assignee(self, svc, make_complaint, client_user, support_a):
        complaint = make_complaint(status=ComplaintStatus.RESOLVED, assignee=support_a)

        updated = svc.respond_to_resolution(
            complaint.id, client_user.id, "REJECT", "Not actually fixed",
        )

        assert updated.status == ComplaintStatus.IN_PROGRESS
        history = ComplaintHistory.query.filter_by(complaint_id=complaint.id).one()
        assert history.status == ComplaintStatus.IN_PROGRESS
        assert history.message == "Client rejected resolution: Not actually fixed"
        response = Response.query.filter_by(complaint_id=complaint.id).one()
        assert response.message == "I reject this resolution. Reason: Not actually fixed"

        notif = Notification.query.filter_by(user_id=support_a.id).one()
        assert notif.type == NotificationType.STATUS_UPDATED
        assert isinstance(notif.payload, StatusChangeMetadata)
        assert notif.payload.previous_status == "RESOLVED"
        assert notif.payload.new_status == "IN_PROGRESS"
        assert notif.payload.feedback == "Not actually fixed"

    def test_approve_closes(self, svc, make_complaint, client_user, support_a):
        complaint = make_complaint(status=ComplaintStatus.RESOLVED, assignee=support_a)
        updated = svc.respond_to_resolution(complaint.id, client_user.id, "approve")
        assert updated.status == ComplaintStatus.CLOSED
        history = ComplaintHistory.query.filter_by(complaint_id=complaint.id).one()
        assert history.message == "Client approved resolution: No additional feedback"
        notif = Notification.query.filter_by(user_id=support_a.id).one()
        assert notif.message == 'Client approved resolution for complaint "Login broken"'

    def test_reject_after_staff_override_to_resolved_notifies_resolver(
        self, svc, make_complaint, client_user, support_a,
    ):
        complaint = make_complaint()

        svc.update(complaint.id, support_a.id, "SUPPORT", {"status": "RESOLVED"})
        assert complaint.assignee_id == support_a.id

        assert Notification.query.filter_by(user_id=support_a.id).count() == 0
        updated = svc.respond_to_resolution(complaint.id, client_user.id, "REJECT", "nope")

        assert updated.status == ComplaintStatus.IN_PROGRESS
        notif = Notification.query.filter_by(user_id=support_a.id).one()
        assert notif.type == NotificationType.STATUS_UPDATED
        assert notif.payload.feedback == "nope"

    def test_unassigned_resolution_notifies_last_resolver(
        self, svc, make_complaint, client_user, support_b,
    ):
        complaint = make_complaint(status=ComplaintStatus.RESOLVED)
        db.session.add(ComplaintHistory(
            complaint_id=complaint.id,
            status=ComplaintStatus.RESOLVED,
            message="Complaint resolved: done",
            user_id=support_b.id,
        ))
        db.session.commit()

        svc.respond_to_resolution(complaint.id, client_user.id, "APPROVE")

        notif = Notification.query.filter_by(user_id=support_b.id).one()
        assert notif.payload.new_status == "CLOSED"

    def test_invalid_action(self, svc, make_complaint, client_user):
        complaint = make_complaint(status=ComplaintStatus.RESOLVED)
        with pytest.raises(ValidationError):
            svc.respond_to_resolution(complaint.id, client_user.id, "MAYBE")

    def test_only_owner(self, svc, make_complaint, other_client):
        complaint = make_complaint(status=ComplaintStatus.RESOLVED)
        with pytest.raises(ForbiddenError):
            svc.respond_to_resolution(complaint.id, other_client.id, "APPROVE")

    def test_requires_resolved(self, svc, make_complaint, client_user):
        complaint = make_complaint(status=ComplaintStatus.IN_PROGRESS)
        with pytest.raises(ConflictError):
            svc.respond_to_resolution(complaint.id, client_user.id, "APPROVE")
        db.session.refresh(complaint)
        assert complaint.status == ComplaintStatus.IN_PROGRESS


# ═════════════════════════════════════════════════════════════════════════════
# delete / stats
# ═════════════════════════════════════════════════════════════════════════════

class TestDelete:
    def test_owner_deletes_pending_complaint_with_related_rows(self, svc, client_user, project):
        complaint = svc.create(
            client_user.id, project.id, "Login broken", "d", "BUG",
            attachments=[FakeFile("log.txt")],
        )
        other = svc.create(client_user.id, project.id, "Invoice wrong", "d", "OTHER")

        svc.delete(complaint.id, client_user.id, "CLIENT")

        assert db.session.get(Complaint, complaint.id) is None
        assert _count(Attachment) == 0
        remaining = Notification.query.all()
        assert [n.complaint_id for n in remaining] == [other.id]

    def test_admin_deletes_resolved_complaint_with_timeline(
        self, svc, make_complaint, admin, support_a,
    ):
        complaint = make_complaint(status=ComplaintStatus.IN_PROGRESS, assignee=support_a)
        svc.resolve(complaint.id, support_a.id, "SUPPORT", "Fixed")
        response = Response.query.filter_by(complaint_id=complaint.id).one()
        db.session.add(Attachment(
            response_id=response.id, file_name="proof.png", file_path="/uploads/proof.png",
        ))
        db.session.commit()

        svc.delete(complaint.id, admin.id, "ADMIN")

        assert _count(Complaint) == 0
        assert _count(Response) == 0
        assert _count(ComplaintHistory) == 0
        assert _count(Attachment) == 0
        assert _count(Notification) == 0

    def test_owner_cannot_delete_once_in_progress(self, svc, make_complaint, client_user, support_a):
        complaint = make_complaint(status=ComplaintStatus.IN_PROGRESS, assignee=support_a)
        with pytest.raises(ForbiddenError):
            svc.delete(complaint.id, client_user.id, "CLIENT")
        assert _count(Complaint) == 1

    def test_support_cannot_delete(self, svc, make_complaint, support_a):
        complaint = make_complaint()
        with pytest.raises(ForbiddenError):
            svc.delete(complaint.id, support_a.id, "SUPPORT")


def test_client_stats_counts_only_own_complaints(svc, make_complaint, client_user, other_client):
    make_complaint()
    make_complaint(status=ComplaintStatus.RESOLVED)
    make_complaint(status=ComplaintStatus.RESOLVED)
    make_complaint(client=other_client)

    stats = svc.client_stats(client_user.id)

    assert stats["total"] == 3
    assert stats["by_status"]["PENDING"] == 1
    assert stats["by_status"]["RESOLVED"] == 2
    assert stats["by_status"]["CLOSED"] == 0
