"""
ProjectPulse
Complaint domain model.

Models:
    - Complaint: client-raised ticket against a project (aggregate root)
    - Attachment: uploaded file reference on a complaint or a response
    - ComplaintHistory: append-only status audit trail, one row per transition
    - Response: immutable timeline message (resolution comment, approval note)

Lifecycle:
    PENDING → IN_PROGRESS → RESOLVED → CLOSED
                  ↑            │
                  └── reject ──┘
    CLOSED and WITHDRAWN are terminal.
"""

import enum
from datetime import datetime, timezone

from app.models import db, new_id


def _utcnow():
    return datetime.now(timezone.utc)


# ── Enums ────────────────────────────────────────────────────────────────────

class ComplaintStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    WITHDRAWN = "WITHDRAWN"


class ComplaintCategory(str, enum.Enum):
    BUG = "BUG"
    DELAY = "DELAY"
    QUALITY = "QUALITY"
    COMMUNICATION = "COMMUNICATION"
    OTHER = "OTHER"


class ComplaintPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ResolutionAction(str, enum.Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


TERMINAL_STATUSES = frozenset({ComplaintStatus.CLOSED, ComplaintStatus.WITHDRAWN})
OPEN_STATUSES = frozenset({ComplaintStatus.PENDING, ComplaintStatus.IN_PROGRESS})


def parse_enum(enum_cls, value):
    """Return ``enum_cls(value)`` or None when the value is not a member."""
    if isinstance(value, enum_cls):
        return value
    if value is None:
        return None
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        return None


# ── Transition rules ─────────────────────────────────────────────────────────
# event → allowed source statuses and target status.
# "override" has no fixed target: staff may move any non-terminal complaint
# to any status.

COMPLAINT_TRANSITIONS = {
    "assign": {"from": [ComplaintStatus.PENDING], "to": ComplaintStatus.IN_PROGRESS},
    "resolve": {
        "from": [ComplaintStatus.PENDING, ComplaintStatus.IN_PROGRESS],
        "to": ComplaintStatus.RESOLVED,
    },
    "approve_resolution": {"from": [ComplaintStatus.RESOLVED], "to": ComplaintStatus.CLOSED},
    "reject_resolution": {"from": [ComplaintStatus.RESOLVED], "to": ComplaintStatus.IN_PROGRESS},
    "withdraw": {"from": [ComplaintStatus.PENDING], "to": None},
    "override": {
        "from": [
            ComplaintStatus.PENDING,
            ComplaintStatus.IN_PROGRESS,
            ComplaintStatus.RESOLVED,
        ],
        "to": None,
    },
}


class Complaint(db.Model):
    """
    A ticket raised by a client against a project.

    History, Response and Attachment rows written during a transition are
    committed in the same unit of work as the status change.
    """

    __tablename__ = "complaints"
    __table_args__ = (
        db.Index("idx_complaint_status", "status"),
        db.Index("idx_complaint_client", "client_id"),
        db.Index("idx_complaint_assignee_status", "assignee_id", "status"),
        db.Index("idx_complaint_created", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False,
    )
    client_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    assignee_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.Enum(ComplaintCategory, native_enum=False, length=20), nullable=False)
    priority = db.Column(
        db.Enum(ComplaintPriority, native_enum=False, length=20),
        nullable=False, default=ComplaintPriority.MEDIUM,
    )
    status = db.Column(
        db.Enum(ComplaintStatus, native_enum=False, length=20),
        nullable=False, default=ComplaintStatus.PENDING,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    project = db.relationship("Project", lazy="joined")
    client = db.relationship("User", foreign_keys=[client_id], lazy="joined")
    assignee = db.relationship("User", foreign_keys=[assignee_id], lazy="joined")
    attachments = db.relationship(
        "Attachment", lazy="select", order_by="Attachment.created_at",
        primaryjoin="Complaint.id == Attachment.complaint_id",
        cascade="all, delete-orphan",
    )
    responses = db.relationship(
        "Response", lazy="select", order_by="Response.created_at", cascade="all, delete-orphan",
    )
    history = db.relationship(
        "ComplaintHistory", lazy="select", order_by="ComplaintHistory.created_at",
        cascade="all, delete-orphan",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self, include_timeline=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "client_id": self.client_id,
            "assignee_id": self.assignee_id,
            "title": self.title,
            "description": self.description,
            "category": self.category.value if self.category else None,
            "priority": self.priority.value if self.priority else None,
            "status": self.status.value if self.status else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "project": {"id": self.project.id, "name": self.project.name} if self.project else None,
            "client": _user_summary(self.client),
            "assignee": _user_summary(self.assignee),
            "attachments": [a.to_dict() for a in self.attachments],
        }
        if include_timeline:
            d["responses"] = [r.to_dict() for r in self.responses]
            d["history"] = [h.to_dict() for h in self.history]
        return d

    def __repr__(self):
        return f"<Complaint {self.id}: {self.title[:40]} [{self.status}]>"


def _user_summary(user):
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email}


class Attachment(db.Model):
    __tablename__ = "attachments"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    complaint_id = db.Column(
        db.String(36), db.ForeignKey("complaints.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    response_id = db.Column(
        db.String(36), db.ForeignKey("responses.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    file_name = db.Column(db.String(255), nullable=False)
    file_type = db.Column(db.String(100), nullable=True)
    file_path = db.Column(db.String(1000), nullable=False, comment="URL returned by blob storage")
    file_size = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "file_name": self.file_name,
            "file_type": self.file_type,
            "file_path": self.file_path,
            "file_size": self.file_size,
        }


class ComplaintHistory(db.Model):
    """Immutable status snapshot. One row per status transition."""

    __tablename__ = "complaint_history"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    complaint_id = db.Column(
        db.String(36), db.ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    status = db.Column(db.Enum(ComplaintStatus, native_enum=False, length=20), nullable=False)
    message = db.Column(db.Text, nullable=False, default="")
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "complaint_id": self.complaint_id,
            "status": self.status.value if self.status else None,
            "message": self.message,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ComplaintHistory {self.complaint_id} → {self.status}>"


class Response(db.Model):
    __tablename__ = "responses"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    complaint_id = db.Column(
        db.String(36), db.ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "complaint_id": self.complaint_id,
            "user_id": self.user_id,
            "message": self.message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
