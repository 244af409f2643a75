"""
ProjectPulse
Complaint Blueprint.

Provides:
    - Complaint submission (JSON or multipart with ``attachments``)
    - Read / update / delete
    - Resolution and the client's approve / reject decision
    - Per-client complaint counts
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, g, jsonify, request

from app.blueprints import register_error_handlers
from app.middleware.jwt_auth import require_identity
from app.models import db
from app.services.blob_storage import LocalBlobStorage
from app.services.complaint_lifecycle import ComplaintLifecycleService
from app.services.permission import check_permission

logger = logging.getLogger(__name__)

complaint_bp = Blueprint("complaint_bp", __name__, url_prefix="/api/v1")
register_error_handlers(complaint_bp)


def _lifecycle() -> ComplaintLifecycleService:
    return ComplaintLifecycleService(
        db.session,
        storage=LocalBlobStorage.from_config(current_app.config),
        max_attachments=current_app.config.get("MAX_ATTACHMENTS", 5),
    )


# ═══════════════════════════════════════════════════════════════════════════
#  SUBMIT
# ═══════════════════════════════════════════════════════════════════════════

@complaint_bp.route("/complaints", methods=["POST"])
@require_identity
def create_complaint():
    """Submit a complaint as the authenticated caller."""
    check_permission(g.user_role, "complaint_create", user_id=g.user_id)

    if request.files or request.form:
        data = request.form.to_dict()
        attachments = request.files.getlist("attachments")
    else:
        data = request.get_json(silent=True) or {}
        attachments = []

    complaint = _lifecycle().create(
        client_id=g.user_id,
        project_id=data.get("project_id"),
        title=data.get("title"),
        description=data.get("description"),
        category=data.get("category"),
        priority=data.get("priority"),
        attachments=attachments,
    )
    return jsonify(complaint.to_dict(include_timeline=True)), 201


# ═══════════════════════════════════════════════════════════════════════════
#  READ / UPDATE / DELETE
# ═══════════════════════════════════════════════════════════════════════════

@complaint_bp.route("/complaints/stats", methods=["GET"])
@require_identity
def complaint_stats():
    """Counts per status for the calling client."""
    return jsonify(_lifecycle().client_stats(g.user_id))


@complaint_bp.route("/complaints/<complaint_id>", methods=["GET"])
@require_identity
def get_complaint(complaint_id):
    complaint = _lifecycle().get(complaint_id, g.user_id, g.user_role)
    return jsonify(complaint.to_dict(include_timeline=True))


@complaint_bp.route("/complaints/<complaint_id>", methods=["PUT"])
@require_identity
def update_complaint(complaint_id):
    data = request.get_json(silent=True) or {}
    complaint = _lifecycle().update(complaint_id, g.user_id, g.user_role, data)
    return jsonify(complaint.to_dict(include_timeline=True))


@complaint_bp.route("/complaints/<complaint_id>", methods=["DELETE"])
@require_identity
def delete_complaint(complaint_id):
    _lifecycle().delete(complaint_id, g.user_id, g.user_role)
    return jsonify({"message": "Complaint deleted", "id": complaint_id})


# ═══════════════════════════════════════════════════════════════════════════
#  RESOLUTION
# ═══════════════════════════════════════════════════════════════════════════

@complaint_bp.route("/complaints/<complaint_id>/resolve", methods=["PUT"])
@require_identity
def resolve_complaint(complaint_id):
    data = request.get_json(silent=True) or {}
    complaint = _lifecycle().resolve(
        complaint_id, g.user_id, g.user_role, data.get("resolution_comment"),
    )
    return jsonify(complaint.to_dict(include_timeline=True))


@complaint_bp.route("/complaints/<complaint_id>/respond-resolution", methods=["POST"])
@require_identity
def respond_to_resolution(complaint_id):
    """Client approves or rejects a resolution: {"action": "APPROVE"|"REJECT", "feedback"}."""
    data = request.get_json(silent=True) or {}
    complaint = _lifecycle().respond_to_resolution(
        complaint_id, g.user_id, data.get("action"), data.get("feedback"),
    )
    return jsonify(complaint.to_dict(include_timeline=True))
