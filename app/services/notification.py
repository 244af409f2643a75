"""
ProjectPulse
Notification Service.

Central sink for creating and querying per-recipient notifications.

``notify`` only adds and flushes: the caller's unit of work decides whether
the row is committed together with the state change that triggered it.
Inbox operations commit their own unit of work.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select, func

from app.core.exceptions import NotFoundError, ValidationError
from app.models.notification import METADATA_TYPES, Notification, NotificationType
from app.services.helpers.transaction import atomic

logger = logging.getLogger(__name__)


class NotificationService:
    """Notification operations bound to one SQLAlchemy session."""

    def __init__(self, session):
        self.session = session

    # ── Create ────────────────────────────────────────────────────────────

    def notify(self, user_id, message, type, metadata=None):
        """
        Stage one notification for *user_id*.

        Args:
            type: NotificationType (or its name).
            metadata: dataclass matching ``METADATA_TYPES[type]`` or None.

        Returns:
            The flushed Notification instance (not committed).

        Raises:
            ValidationError: Unknown type, or metadata of the wrong shape.
        """
        ntype = _parse_type(type)
        if metadata is not None:
            expected = METADATA_TYPES[ntype]
            if not isinstance(metadata, expected):
                raise ValidationError(
                    f"{ntype.value} notifications carry {expected.__name__} metadata",
                    details={"metadata": metadata.__class__.__name__},
                )

        notif = Notification(user_id=user_id, message=message, type=ntype)
        notif.payload = metadata
        self.session.add(notif)
        self.session.flush()
        logger.debug("Notification staged for user=%s type=%s", user_id, ntype.value)
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    def list_for_user(self, user_id, is_read=None, page=1, limit=10):
        """
        Retrieve notifications for a user, newest first.

        Returns:
            (items, total) where total ignores pagination.
        """
        page = max(int(page or 1), 1)
        limit = max(int(limit or 10), 1)

        stmt = select(Notification).where(Notification.user_id == user_id)
        if is_read is not None:
            stmt = stmt.where(Notification.is_read.is_(bool(is_read)))

        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        items = self.session.execute(
            stmt.order_by(Notification.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()
        return items, total

    def unread_count(self, user_id):
        return self.session.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        ).scalar_one()

    # ── Actions ───────────────────────────────────────────────────────────

    def mark_read(self, notification_id, user_id):
        """Mark a single notification as read. Idempotent."""
        notif = self._get_owned(notification_id, user_id)
        if not notif.is_read:
            with atomic(self.session):
                notif.mark_read()
        return notif

    def mark_all_read(self, user_id):
        """Mark every unread notification of *user_id* as read. Returns the count."""
        unread = self.session.execute(
            select(Notification).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        ).scalars().all()
        now = datetime.now(timezone.utc)
        with atomic(self.session):
            for notif in unread:
                notif.is_read = True
                notif.read_at = now
        return len(unread)

    def delete(self, notification_id, user_id):
        notif = self._get_owned(notification_id, user_id)
        with atomic(self.session):
            self.session.delete(notif)

    def delete_all_read(self, user_id):
        """Delete every read notification of *user_id*. Returns the count."""
        read = self.session.execute(
            select(Notification).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(True),
            )
        ).scalars().all()
        with atomic(self.session):
            for notif in read:
                self.session.delete(notif)
        return len(read)

    # ── Internals ─────────────────────────────────────────────────────────

    def _get_owned(self, notification_id, user_id):
        """Another user's notification is indistinguishable from a missing one."""
        notif = self.session.get(Notification, notification_id)
        if notif is None or notif.user_id != user_id:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        return notif


def _parse_type(value):
    if isinstance(value, NotificationType):
        return value
    try:
        return NotificationType(str(value).upper())
    except ValueError:
        raise ValidationError(
            f"Unknown notification type: {value}",
            details={"type": str(value)},
        ) from None
