"""
Shared pytest fixtures for the ProjectPulse test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - client_user / admin / support_a / support_b / manager: one user per role
    - project: Pre-created Project entity
    - make_complaint: factory writing a complaint row directly
    - auth_headers: Bearer header builder for a user
"""

from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from app.models import db as _db
from app.models.complaint import (
    Complaint,
    ComplaintCategory,
    ComplaintPriority,
    ComplaintStatus,
)
from app.models.user import Project, User, UserRole
from app.services.jwt_service import generate_access_token


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users & project ──────────────────────────────────────────────────────


def _user(user_id, name, role):
    user = User(id=user_id, name=name, email=f"{user_id}@example.com", role=role)
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def client_user():
    return _user("user-client", "Carol Client", UserRole.CLIENT)


@pytest.fixture()
def other_client():
    return _user("user-client-2", "Oscar Other", UserRole.CLIENT)


@pytest.fixture()
def admin():
    return _user("user-admin", "Ada Admin", UserRole.ADMIN)


@pytest.fixture()
def support_a():
    return _user("user-support-a", "Sam Support", UserRole.SUPPORT)


@pytest.fixture()
def support_b():
    return _user("user-support-b", "Bea Support", UserRole.SUPPORT)


@pytest.fixture()
def manager():
    return _user("user-manager", "Max Manager", UserRole.SUPPORT_MANAGER)


@pytest.fixture()
def project():
    proj = Project(id="project-1", name="Website Revamp")
    _db.session.add(proj)
    _db.session.commit()
    return proj


@pytest.fixture()
def make_complaint(project, client_user):
    """Insert a complaint directly, bypassing the lifecycle service."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make(title="Login broken", status=ComplaintStatus.PENDING, assignee=None,
              client=None, priority=ComplaintPriority.MEDIUM,
              category=ComplaintCategory.BUG):
        counter["n"] += 1
        complaint = Complaint(
            project_id=project.id,
            client_id=(client or client_user).id,
            assignee_id=assignee.id if assignee else None,
            title=title,
            description=f"Details for {title}",
            category=category,
            priority=priority,
            status=status,
            created_at=base + timedelta(minutes=counter["n"]),
        )
        _db.session.add(complaint)
        _db.session.commit()
        return complaint

    return _make


@pytest.fixture()
def auth_headers(app):
    """Return a function building an Authorization header for a user."""

    def _headers(user):
        token = generate_access_token(user.id, user.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers
