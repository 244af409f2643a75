"""Capability matrix and entity-aware guards."""

import pytest

from app.core.exceptions import ForbiddenError
from app.models.complaint import Complaint, ComplaintStatus
from app.models.user import UserRole
from app.services import permission


def _complaint(status=ComplaintStatus.PENDING, client_id="c1", assignee_id=None):
    return Complaint(status=status, client_id=client_id, assignee_id=assignee_id)


@pytest.mark.parametrize("role,allowed", [
    (UserRole.ADMIN, True),
    (UserRole.SUPPORT_MANAGER, True),
    (UserRole.SUPPORT, False),
    (UserRole.CLIENT, False),
    ("nonsense", False),
])
def test_assign_capability(role, allowed):
    assert permission.has_permission(role, "complaint_assign") is allowed


def test_role_strings_are_parsed():
    assert permission.has_permission("admin", "complaint_delete")


def test_check_permission_raises_with_action():
    with pytest.raises(ForbiddenError) as exc:
        permission.check_permission("CLIENT", "workload_balance", user_id="c1")
    assert exc.value.action == "workload_balance"
    assert exc.value.user_id == "c1"


class TestCanEdit:
    def test_owner_while_pending(self):
        permission.can_edit(_complaint(), "c1", UserRole.CLIENT)

    def test_owner_after_pending(self):
        with pytest.raises(ForbiddenError):
            permission.can_edit(_complaint(ComplaintStatus.IN_PROGRESS), "c1", UserRole.CLIENT)

    def test_staff_any_state(self):
        permission.can_edit(_complaint(ComplaintStatus.RESOLVED), "s1", UserRole.SUPPORT)


class TestCanResolve:
    def test_assignee(self):
        permission.can_resolve(_complaint(assignee_id="s1"), "s1", UserRole.SUPPORT)

    def test_manager_not_assigned(self):
        with pytest.raises(ForbiddenError):
            permission.can_resolve(_complaint(assignee_id="s1"), "m1", UserRole.SUPPORT_MANAGER)

    def test_admin_unassigned(self):
        permission.can_resolve(_complaint(), "a1", UserRole.ADMIN)

    def test_support_unassigned(self):
        with pytest.raises(ForbiddenError):
            permission.can_resolve(_complaint(), "s1", UserRole.SUPPORT)


class TestCanDelete:
    def test_admin_any_state(self):
        permission.can_delete(_complaint(ComplaintStatus.CLOSED), "a1", UserRole.ADMIN)

    def test_owner_pending(self):
        permission.can_delete(_complaint(), "c1", UserRole.CLIENT)

    def test_non_owner_client(self):
        with pytest.raises(ForbiddenError):
            permission.can_delete(_complaint(), "c2", UserRole.CLIENT)


def test_only_owner_responds_to_resolution():
    complaint = _complaint(ComplaintStatus.RESOLVED)
    permission.can_respond_to_resolution(complaint, "c1")
    with pytest.raises(ForbiddenError):
        permission.can_respond_to_resolution(complaint, "c2")
