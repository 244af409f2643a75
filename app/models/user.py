"""
ProjectPulse
Identity-side entities referenced by the complaint workflow.

Models:
    - User: caller identity (id, name, email, role)
    - Project: the client project a complaint is raised against

Users and projects are managed by the identity service / admin tooling;
the complaint core only reads id, name and role.
"""

import enum
from datetime import datetime, timezone

from app.models import db, new_id


class UserRole(str, enum.Enum):
    """Closed set of roles understood by the authorization layer."""

    CLIENT = "CLIENT"
    ADMIN = "ADMIN"
    SUPPORT = "SUPPORT"
    SUPPORT_MANAGER = "SUPPORT_MANAGER"

    @classmethod
    def parse(cls, value):
        """Return the matching role or None for unknown/empty input."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            return None


# Roles a complaint may be assigned to
STAFF_ROLES = frozenset({UserRole.ADMIN, UserRole.SUPPORT, UserRole.SUPPORT_MANAGER})


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    role = db.Column(db.Enum(UserRole, native_enum=False, length=30), nullable=False, default=UserRole.CLIENT)
    organization = db.Column(db.String(200), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value if self.role else None,
            "organization": self.organization,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"
