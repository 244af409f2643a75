"""
Unit-of-work helper for multi-row lifecycle operations.

Usage:
    with atomic(self.session):
        complaint.status = ComplaintStatus.RESOLVED
        self.session.add(ComplaintHistory(...))
        self.notifications.notify(...)

Commits on success, rolls back on any exception.  Domain errors propagate
unchanged; SQLAlchemy failures surface as ``StorageError`` so no storage
detail leaks to the caller.
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import StorageError

logger = logging.getLogger(__name__)


@contextmanager
def atomic(session):
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Unit of work rolled back: %s", exc.__class__.__name__, exc_info=True)
        raise StorageError() from exc
    except Exception:
        session.rollback()
        raise
