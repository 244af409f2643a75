"""
ProjectPulse
Shared SQLAlchemy handle.

Every model module imports ``db`` from here so the extension is bound once
by ``create_app`` (``db.init_app(app)``).
"""

import uuid

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def new_id() -> str:
    """Generate a string UUID primary key."""
    return str(uuid.uuid4())
