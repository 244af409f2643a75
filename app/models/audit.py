"""
ProjectPulse
Activity log model.

Models:
    - ActivityLog: immutable, append-only audit trail for assignment actions.
"""

import json
from datetime import datetime, timezone

from app.models import db, new_id

# ── Constants ────────────────────────────────────────────────────────────────

ACTIVITY_ACTIONS = {
    "COMPLAINT_ASSIGNED",
    "AUTO_COMPLAINT_ASSIGNED",
}


class ActivityLog(db.Model):
    """
    One row per audited action.  ``details_json`` carries the structured
    context (complaint, assignee, assignment method).
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("idx_activity_entity", "entity_id"),
        db.Index("idx_activity_action", "action"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        comment="Actor; null for system actions",
    )
    action = db.Column(db.String(60), nullable=False)
    entity_id = db.Column(db.String(36), nullable=False)
    details_json = db.Column(db.Text, default="{}")
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def details(self) -> dict:
        try:
            return json.loads(self.details_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "entity_id": self.entity_id,
            "details": self.details,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ActivityLog {self.id}: {self.action} on {self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_activity(
    session,
    *,
    action: str,
    entity_id: str,
    user_id: str | None = None,
    details: dict | None = None,
) -> ActivityLog:
    """
    Append a single activity row.  Uses ``flush`` so callers keep
    transaction control.
    """
    log = ActivityLog(
        user_id=user_id,
        action=action,
        entity_id=str(entity_id),
        details_json=json.dumps(details or {}, default=str),
    )
    session.add(log)
    session.flush()
    return log
