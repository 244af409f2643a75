"""HTTP tests for /api/v1/assignment routes."""

from app.models import db
from app.models.complaint import Complaint, ComplaintStatus


def test_assign_requires_manager_or_admin(client, auth_headers, make_complaint, support_a):
    complaint = make_complaint()
    res = client.post("/api/v1/assignment/assign", json={
        "complaint_id": complaint.id, "assignee_id": support_a.id,
    }, headers=auth_headers(support_a))
    assert res.status_code == 403


def test_assign_missing_ids(client, auth_headers, admin):
    res = client.post("/api/v1/assignment/assign", json={}, headers=auth_headers(admin))
    assert res.status_code == 400
    assert set(res.get_json()["details"]) == {"complaint_id", "assignee_id"}


def test_assign_closed_complaint_conflicts(client, auth_headers, make_complaint, admin, support_a):
    complaint = make_complaint(status=ComplaintStatus.CLOSED)
    res = client.post("/api/v1/assignment/assign", json={
        "complaint_id": complaint.id, "assignee_id": support_a.id,
    }, headers=auth_headers(admin))
    assert res.status_code == 409


def test_assignable_staff(client, auth_headers, manager, admin, support_a):
    res = client.get("/api/v1/assignment/assignable-staff?role=SUPPORT",
                     headers=auth_headers(manager))
    assert res.status_code == 200
    body = res.get_json()
    assert body["total"] == 1
    assert body["items"][0]["user_id"] == support_a.id


def test_balance_workload(client, auth_headers, make_complaint, manager, support_a, support_b):
    ids = [make_complaint(f"Complaint {i}").id for i in range(3)]

    res = client.post("/api/v1/assignment/balance-workload", headers=auth_headers(manager))

    assert res.status_code == 200
    assert res.get_json() == {"assignments_count": 3, "failed": []}
    db.session.expire_all()
    assert [db.session.get(Complaint, cid).assignee_id for cid in ids] == [
        support_a.id, support_b.id, support_a.id,
    ]
