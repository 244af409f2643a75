"""
Complaint workflow: Role-Based Access Control

Capability matrix keyed by UserRole plus per-operation guards that need the
complaint itself (ownership, assignee, current status).

Usage:
    from app.services.permission import check_permission, can_resolve

    # Raises ForbiddenError if the role lacks the capability
    check_permission(UserRole.SUPPORT, "complaint_assign", user_id=caller_id)

    # Entity-aware guard, raises ForbiddenError
    can_resolve(complaint, caller_id, caller_role)
"""

from app.core.exceptions import ForbiddenError
from app.models.complaint import ComplaintStatus
from app.models.user import UserRole

# role → capabilities
PERMISSION_MATRIX = {
    UserRole.CLIENT: {
        "complaint_create",
        "complaint_edit_own",
        "complaint_delete_own",
        "resolution_respond",
    },
    UserRole.SUPPORT: {
        "complaint_edit",
        "complaint_status_override",
        "complaint_resolve",
    },
    UserRole.SUPPORT_MANAGER: {
        "complaint_edit",
        "complaint_status_override",
        "complaint_resolve",
        "complaint_assign",
        "staff_list",
        "workload_balance",
    },
    UserRole.ADMIN: {
        "complaint_create",
        "complaint_edit",
        "complaint_status_override",
        "complaint_resolve",
        "complaint_resolve_any",
        "complaint_delete",
        "complaint_assign",
        "staff_list",
        "workload_balance",
    },
}


def has_permission(role, action: str) -> bool:
    """True if the role grants the capability. Unknown roles grant nothing."""
    role = UserRole.parse(role)
    if role is None:
        return False
    return action in PERMISSION_MATRIX.get(role, set())


def check_permission(role, action: str, *, user_id: str | None = None) -> None:
    """
    Assert the role grants *action*.

    Raises:
        ForbiddenError: If the role lacks the capability.
    """
    if not has_permission(role, action):
        raise ForbiddenError(
            f"Role '{_role_name(role)}' is not allowed to perform '{action}'",
            action=action, user_id=user_id,
        )


def _role_name(role) -> str:
    parsed = UserRole.parse(role)
    return parsed.value if parsed else str(role)


# ── Entity-aware guards ──────────────────────────────────────────────────────

def can_edit(complaint, caller_id: str, caller_role) -> None:
    """Owning client while PENDING, or staff."""
    if has_permission(caller_role, "complaint_edit"):
        return
    if (
        has_permission(caller_role, "complaint_edit_own")
        and complaint.client_id == caller_id
        and complaint.status == ComplaintStatus.PENDING
    ):
        return
    raise ForbiddenError(
        "You are not allowed to edit this complaint",
        action="complaint_edit", user_id=caller_id,
    )


def can_override_status(caller_role) -> bool:
    return has_permission(caller_role, "complaint_status_override")


def can_resolve(complaint, caller_id: str, caller_role) -> None:
    """Current assignee, or an admin."""
    if has_permission(caller_role, "complaint_resolve_any"):
        return
    if (
        has_permission(caller_role, "complaint_resolve")
        and complaint.assignee_id is not None
        and complaint.assignee_id == caller_id
    ):
        return
    raise ForbiddenError(
        "Only the assigned staff member or an admin can resolve this complaint",
        action="complaint_resolve", user_id=caller_id,
    )


def can_respond_to_resolution(complaint, caller_id: str) -> None:
    if complaint.client_id != caller_id:
        raise ForbiddenError(
            "Only the client who raised the complaint can respond to its resolution",
            action="resolution_respond", user_id=caller_id,
        )


def can_delete(complaint, caller_id: str, caller_role) -> None:
    """Admin, or owning client while PENDING."""
    if has_permission(caller_role, "complaint_delete"):
        return
    if (
        has_permission(caller_role, "complaint_delete_own")
        and complaint.client_id == caller_id
        and complaint.status == ComplaintStatus.PENDING
    ):
        return
    raise ForbiddenError(
        "You are not allowed to delete this complaint",
        action="complaint_delete", user_id=caller_id,
    )


def can_assign(caller_role, caller_id: str | None = None) -> None:
    check_permission(caller_role, "complaint_assign", user_id=caller_id)
