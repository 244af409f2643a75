"""
ProjectPulse
Notification domain model.

Models:
    - Notification: per-recipient inbox message with read tracking

Metadata is a typed payload per NotificationType (see ``METADATA_TYPES``),
stored as JSON text so the column stays schema-flexible.
"""

import enum
import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from app.models import db, new_id


class NotificationType(str, enum.Enum):
    COMPLAINT_SUBMITTED = "COMPLAINT_SUBMITTED"
    STATUS_UPDATED = "STATUS_UPDATED"
    NEW_RESPONSE = "NEW_RESPONSE"
    ASSIGNED = "ASSIGNED"
    RESOLVED = "RESOLVED"
    TEAM_ADDED = "TEAM_ADDED"
    TEAM_REMOVED = "TEAM_REMOVED"


# ── Typed metadata payloads ──────────────────────────────────────────────────

@dataclass(frozen=True)
class ComplaintMetadata:
    complaint_id: str
    complaint_title: str


@dataclass(frozen=True)
class StatusChangeMetadata:
    complaint_id: str
    complaint_title: str
    previous_status: str
    new_status: str
    feedback: str | None = None


@dataclass(frozen=True)
class TeamMetadata:
    team_id: str
    team_name: str


METADATA_TYPES = {
    NotificationType.COMPLAINT_SUBMITTED: ComplaintMetadata,
    NotificationType.STATUS_UPDATED: StatusChangeMetadata,
    NotificationType.NEW_RESPONSE: ComplaintMetadata,
    NotificationType.ASSIGNED: ComplaintMetadata,
    NotificationType.RESOLVED: ComplaintMetadata,
    NotificationType.TEAM_ADDED: TeamMetadata,
    NotificationType.TEAM_REMOVED: TeamMetadata,
}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event. Only the recipient may read,
    mark or delete it.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("idx_notification_user_read", "user_id", "is_read"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.Enum(NotificationType, native_enum=False, length=30), nullable=False)
    complaint_id = db.Column(
        db.String(36), nullable=True, index=True,
        comment="Denormalized from metadata for cascade cleanup",
    )
    metadata_json = db.Column(db.Text, nullable=True)

    # Read tracking
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def payload(self):
        """Deserialise *metadata_json* into the dataclass for this type."""
        if not self.metadata_json:
            return None
        try:
            raw = json.loads(self.metadata_json)
        except (json.JSONDecodeError, TypeError):
            return None
        cls = METADATA_TYPES.get(self.type)
        if cls is None or not isinstance(raw, dict):
            return None
        try:
            return cls(**raw)
        except TypeError:
            return None

    @payload.setter
    def payload(self, value):
        if value is None:
            self.metadata_json = None
            self.complaint_id = None
            return
        self.metadata_json = json.dumps(asdict(value), default=str)
        self.complaint_id = getattr(value, "complaint_id", None)

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        payload = self.payload
        return {
            "id": self.id,
            "user_id": self.user_id,
            "message": self.message,
            "type": self.type.value if self.type else None,
            "metadata": asdict(payload) if payload is not None else None,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.message[:40]}>"
