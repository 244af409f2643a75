"""
Dashboard Metrics Service

Read-only aggregates over complaints, scoped by the caller's role:
  - CLIENT sees own complaints
  - SUPPORT sees complaints assigned to them
  - ADMIN / SUPPORT_MANAGER see everything
"""

import logging

from sqlalchemy import case, func, select

from app.models.complaint import (
    OPEN_STATUSES,
    Complaint,
    ComplaintCategory,
    ComplaintPriority,
    ComplaintStatus,
)
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

RECENT_LIMIT = 5


class DashboardService:

    def __init__(self, session):
        self.session = session

    def _scope(self, stmt, user_id, role):
        role = UserRole.parse(role)
        if role == UserRole.CLIENT:
            return stmt.where(Complaint.client_id == user_id)
        if role == UserRole.SUPPORT:
            return stmt.where(Complaint.assignee_id == user_id)
        if role in (UserRole.ADMIN, UserRole.SUPPORT_MANAGER):
            return stmt
        # Unknown role sees nothing
        return stmt.where(Complaint.id.is_(None))

    def _counts_by(self, column, enum_cls, user_id, role):
        stmt = self._scope(
            select(column, func.count(Complaint.id)).group_by(column), user_id, role,
        )
        counts = {member: 0 for member in enum_cls}
        for key, count in self.session.execute(stmt).all():
            counts[key] = count
        return [{"key": member.value, "count": count} for member, count in counts.items()]

    # ── Overview ──────────────────────────────────────────────────────────

    def overview(self, user_id, role):
        """Per-status totals, open CRITICAL count and the latest complaints."""
        by_status = {row["key"]: row["count"] for row in self.status_stats(user_id, role)}

        critical = self.session.execute(
            self._scope(
                select(func.count(Complaint.id)).where(
                    Complaint.priority == ComplaintPriority.CRITICAL,
                    Complaint.status.in_(OPEN_STATUSES),
                ),
                user_id, role,
            )
        ).scalar_one()

        recent = self.session.execute(
            self._scope(
                select(Complaint).order_by(Complaint.created_at.desc()).limit(RECENT_LIMIT),
                user_id, role,
            )
        ).unique().scalars().all()

        return {
            "total": sum(by_status.values()),
            "pending": by_status[ComplaintStatus.PENDING.value],
            "in_progress": by_status[ComplaintStatus.IN_PROGRESS.value],
            "resolved": by_status[ComplaintStatus.RESOLVED.value],
            "closed": by_status[ComplaintStatus.CLOSED.value],
            "withdrawn": by_status[ComplaintStatus.WITHDRAWN.value],
            "critical_open": critical,
            "recent": [c.to_dict() for c in recent],
        }

    # ── Breakdowns ────────────────────────────────────────────────────────

    def category_stats(self, user_id, role):
        return self._counts_by(Complaint.category, ComplaintCategory, user_id, role)

    def status_stats(self, user_id, role):
        return self._counts_by(Complaint.status, ComplaintStatus, user_id, role)

    def priority_stats(self, user_id, role):
        return self._counts_by(Complaint.priority, ComplaintPriority, user_id, role)

    # ── Workload ──────────────────────────────────────────────────────────

    def workload_distribution(self):
        """Open and finished complaint counts per ADMIN / SUPPORT member."""
        open_count = func.sum(case((Complaint.status.in_(OPEN_STATUSES), 1), else_=0))
        done_count = func.sum(case(
            (Complaint.status.in_((ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED)), 1),
            else_=0,
        ))
        rows = self.session.execute(
            select(User.id, User.name, User.role, open_count, done_count)
            .outerjoin(Complaint, Complaint.assignee_id == User.id)
            .where(User.role.in_((UserRole.ADMIN, UserRole.SUPPORT)))
            .group_by(User.id, User.name, User.role)
            .order_by(User.name)
        ).all()
        return [
            {
                "user_id": user_id,
                "name": name,
                "role": role.value,
                "open_complaints": int(open_ or 0),
                "resolved_complaints": int(done or 0),
            }
            for user_id, name, role, open_, done in rows
        ]
