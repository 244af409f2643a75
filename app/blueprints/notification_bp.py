"""
ProjectPulse
Notification Blueprint: the caller's inbox.

Every route is scoped to the authenticated user; another user's
notification answers 404.
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.blueprints import page_args, register_error_handlers
from app.middleware.jwt_auth import require_identity
from app.models import db
from app.services.notification import NotificationService

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")
register_error_handlers(notification_bp)


def _parse_bool(value):
    if value is None or value == "":
        return None
    return str(value).lower() in ("1", "true", "yes")


@notification_bp.route("/notifications", methods=["GET"])
@require_identity
def list_notifications():
    """List the caller's notifications, newest first. Query: is_read, page, limit."""
    page, limit = page_args()
    items, total = NotificationService(db.session).list_for_user(
        g.user_id,
        is_read=_parse_bool(request.args.get("is_read")),
        page=page,
        limit=limit,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit,
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_identity
def unread_count():
    return jsonify({"unread_count": NotificationService(db.session).unread_count(g.user_id)})


@notification_bp.route("/notifications/read-all", methods=["PUT"])
@require_identity
def mark_all_read():
    count = NotificationService(db.session).mark_all_read(g.user_id)
    return jsonify({"marked_read": count})


@notification_bp.route("/notifications/<notification_id>/read", methods=["PUT"])
@require_identity
def mark_read(notification_id):
    notif = NotificationService(db.session).mark_read(notification_id, g.user_id)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read", methods=["DELETE"])
@require_identity
def delete_all_read():
    count = NotificationService(db.session).delete_all_read(g.user_id)
    return jsonify({"deleted": count})


@notification_bp.route("/notifications/<notification_id>", methods=["DELETE"])
@require_identity
def delete_notification(notification_id):
    NotificationService(db.session).delete(notification_id, g.user_id)
    return jsonify({"message": "Notification deleted", "id": notification_id})
