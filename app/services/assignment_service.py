"""
ProjectPulse: Assignment Service

Manual assignment of complaints to staff, assignable-staff listing with
workload figures, and round-robin workload balancing of unassigned
PENDING complaints.

Workload balancing is a best-effort batch: each complaint is assigned in
its own unit of work, and a failure rolls back that complaint only.
"""

import logging

from sqlalchemy import func, or_, select

from app.core.exceptions import ConflictError, NotFoundError, PulseError, ValidationError
from app.models.audit import write_activity
from app.models.complaint import OPEN_STATUSES, Complaint, ComplaintStatus
from app.models.notification import ComplaintMetadata, NotificationType, StatusChangeMetadata
from app.models.user import STAFF_ROLES, User, UserRole
from app.services.complaint_lifecycle import (
    get_complaint_or_404,
    record_history,
    require_transition,
    send_email_quietly,
)
from app.services.email_service import EmailService
from app.services.helpers.transaction import atomic
from app.services.notification import NotificationService
from app.services.permission import can_assign, check_permission

logger = logging.getLogger(__name__)

# Roles listed by default; an explicit role filter may name any staff role
ASSIGNABLE_ROLES = (UserRole.ADMIN, UserRole.SUPPORT)


class AssignmentService:
    """Assignment policy bound to one SQLAlchemy session."""

    def __init__(self, session, email=EmailService):
        self.session = session
        self.email = email
        self.notifications = NotificationService(session)

    # ── Manual assignment ─────────────────────────────────────────────────

    def assign(self, complaint_id, assignee_id, caller_id, caller_role):
        """
        Assign (or reassign) a complaint to a staff member.

        Raises:
            ForbiddenError: Caller is not ADMIN / SUPPORT_MANAGER.
            ValidationError: Missing id, or assignee is not staff.
            NotFoundError: Unknown complaint or assignee.
            ConflictError: Complaint is CLOSED or WITHDRAWN.
        """
        can_assign(caller_role, caller_id)

        missing = {
            name: "required"
            for name, value in (("complaint_id", complaint_id), ("assignee_id", assignee_id))
            if not value
        }
        if missing:
            raise ValidationError(
                "Complaint ID and Assignee ID are required", details=missing,
            )

        complaint = get_complaint_or_404(self.session, complaint_id)
        assignee = self.session.get(User, assignee_id)
        if assignee is None:
            raise NotFoundError(resource="Assignee", resource_id=assignee_id)
        if not assignee.is_staff:
            raise ValidationError(
                "Complaints can only be assigned to staff members",
                details={"assignee_id": "not_staff"},
            )
        if complaint.is_terminal:
            raise ConflictError(
                f"Cannot assign a {complaint.status.value} complaint",
                current_state=complaint.status.value,
            )

        previous_assignee_id = complaint.assignee_id
        previous_status = complaint.status
        target = None
        if previous_status == ComplaintStatus.PENDING:
            target = require_transition(complaint, "assign")

        with atomic(self.session):
            complaint.assignee_id = assignee.id
            if target is not None:
                complaint.status = target
                record_history(
                    self.session, complaint, target,
                    f"Complaint assigned to {assignee.name}",
                    user_id=caller_id,
                )

            self.notifications.notify(
                assignee.id,
                f"You've been assigned to complaint: {complaint.title}",
                NotificationType.ASSIGNED,
                ComplaintMetadata(complaint_id=complaint.id, complaint_title=complaint.title),
            )
            self.notifications.notify(
                complaint.client_id,
                f'Your complaint "{complaint.title}" has been assigned to {assignee.name}',
                NotificationType.STATUS_UPDATED,
                StatusChangeMetadata(
                    complaint_id=complaint.id,
                    complaint_title=complaint.title,
                    previous_status=previous_status.value,
                    new_status=complaint.status.value,
                ),
            )
            if previous_assignee_id and previous_assignee_id != assignee.id:
                self.notifications.notify(
                    previous_assignee_id,
                    f'Complaint "{complaint.title}" has been reassigned from you to {assignee.name}',
                    NotificationType.ASSIGNED,
                    ComplaintMetadata(complaint_id=complaint.id, complaint_title=complaint.title),
                )

            write_activity(
                self.session,
                action="COMPLAINT_ASSIGNED",
                entity_id=complaint.id,
                user_id=caller_id,
                details={
                    "complaint_id": complaint.id,
                    "assignee_id": assignee.id,
                    "previous_assignee_id": previous_assignee_id,
                    "method": "manual",
                },
            )

        logger.info(
            "Complaint %s assigned to user=%s by user=%s",
            complaint.id, assignee.id, caller_id,
        )

        send_email_quietly(self.email, assignee, "complaint_assigned", {
            "assignee_name": assignee.name,
            "complaint_title": complaint.title,
            "complaint_description": complaint.description,
            "priority": complaint.priority.value,
            "client_name": complaint.client.name if complaint.client else "",
        })
        return complaint

    # ── Staff listing ─────────────────────────────────────────────────────

    def list_assignable_staff(self, caller_role, search=None, role=None):
        """
        Staff who can take complaints, least loaded first.

        Each entry carries ``active_complaints`` (assigned PENDING /
        IN_PROGRESS) and ``workload_percentage`` (share of all open
        complaints).
        """
        check_permission(caller_role, "staff_list")

        roles = ASSIGNABLE_ROLES
        if role:
            parsed = UserRole.parse(role)
            if parsed not in STAFF_ROLES:
                raise ValidationError(
                    f"Invalid staff role filter: {role}", details={"role": "invalid"},
                )
            roles = (parsed,)

        stmt = select(User).where(User.role.in_(roles))
        if search and search.strip():
            pattern = f"%{search.strip().lower()}%"
            stmt = stmt.where(or_(
                func.lower(User.name).like(pattern),
                func.lower(User.email).like(pattern),
            ))
        staff = self.session.execute(stmt).scalars().all()

        active_by_user = dict(self.session.execute(
            select(Complaint.assignee_id, func.count(Complaint.id))
            .where(Complaint.status.in_(OPEN_STATUSES), Complaint.assignee_id.is_not(None))
            .group_by(Complaint.assignee_id)
        ).all())
        total_open = self.session.execute(
            select(func.count(Complaint.id)).where(Complaint.status.in_(OPEN_STATUSES))
        ).scalar_one()

        result = []
        for user in staff:
            active = active_by_user.get(user.id, 0)
            result.append({
                "user_id": user.id,
                "name": user.name,
                "email": user.email,
                "role": user.role.value,
                "active_complaints": active,
                "workload_percentage": round(active / total_open * 100, 2) if total_open else 0,
            })
        result.sort(key=lambda s: (s["active_complaints"], s["name"]))
        return result

    # ── Workload balancing ────────────────────────────────────────────────

    def balance_workload(self, caller_id, caller_role):
        """
        Round-robin unassigned PENDING complaints (oldest first) across
        SUPPORT staff (ascending id).

        Returns:
            {"assignments_count": int, "failed": [{"complaint_id", "error"}]}
        """
        check_permission(caller_role, "workload_balance", user_id=caller_id)

        complaint_ids = self.session.execute(
            select(Complaint.id)
            .where(Complaint.status == ComplaintStatus.PENDING, Complaint.assignee_id.is_(None))
            .order_by(Complaint.created_at.asc(), Complaint.id.asc())
        ).scalars().all()
        staff = self.session.execute(
            select(User.id, User.name)
            .where(User.role == UserRole.SUPPORT)
            .order_by(User.id.asc())
        ).all()

        if not complaint_ids or not staff:
            logger.info(
                "Workload balancing skipped: %d complaint(s), %d support staff",
                len(complaint_ids), len(staff),
            )
            return {"assignments_count": 0, "failed": []}

        assigned = 0
        failed = []
        for i, complaint_id in enumerate(complaint_ids):
            staff_id, staff_name = staff[i % len(staff)]
            try:
                if self._auto_assign_one(complaint_id, staff_id, staff_name, caller_id):
                    assigned += 1
            except PulseError as exc:
                logger.error(
                    "Auto-assignment of complaint %s to user=%s failed: %s",
                    complaint_id, staff_id, exc.message, exc_info=True,
                )
                failed.append({"complaint_id": complaint_id, "error": exc.message})

        logger.info(
            "Workload balanced: %d assigned, %d failed across %d support staff",
            assigned, len(failed), len(staff),
        )
        return {"assignments_count": assigned, "failed": failed}

    def _auto_assign_one(self, complaint_id, staff_id, staff_name, caller_id) -> bool:
        """One complaint, one unit of work. False when it no longer qualifies."""
        with atomic(self.session):
            complaint = self.session.get(Complaint, complaint_id)
            if (
                complaint is None
                or complaint.assignee_id is not None
                or complaint.status != ComplaintStatus.PENDING
            ):
                logger.info("Complaint %s skipped: no longer unassigned PENDING", complaint_id)
                return False

            target = require_transition(complaint, "assign")
            complaint.assignee_id = staff_id
            complaint.status = target
            record_history(
                self.session, complaint, target,
                f"Complaint auto-assigned to {staff_name}",
                user_id=caller_id,
            )
            self.notifications.notify(
                staff_id,
                f"You've been assigned to complaint: {complaint.title}",
                NotificationType.ASSIGNED,
                ComplaintMetadata(complaint_id=complaint.id, complaint_title=complaint.title),
            )
            self.notifications.notify(
                complaint.client_id,
                f'Your complaint "{complaint.title}" has been assigned to {staff_name}',
                NotificationType.STATUS_UPDATED,
                StatusChangeMetadata(
                    complaint_id=complaint.id,
                    complaint_title=complaint.title,
                    previous_status=ComplaintStatus.PENDING.value,
                    new_status=target.value,
                ),
            )
            write_activity(
                self.session,
                action="AUTO_COMPLAINT_ASSIGNED",
                entity_id=complaint.id,
                user_id=caller_id,
                details={
                    "complaint_id": complaint.id,
                    "assignee_id": staff_id,
                    "method": "workload_balancing",
                },
            )
        return True
