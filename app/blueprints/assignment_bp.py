"""
ProjectPulse
Assignment Blueprint: manual assignment, staff listing, workload balancing.
"""

from flask import Blueprint, g, jsonify, request

from app.blueprints import register_error_handlers
from app.middleware.jwt_auth import require_identity
from app.models import db
from app.services.assignment_service import AssignmentService

assignment_bp = Blueprint("assignment_bp", __name__, url_prefix="/api/v1/assignment")
register_error_handlers(assignment_bp)


@assignment_bp.route("/assign", methods=["POST"])
@require_identity
def assign_complaint():
    data = request.get_json(silent=True) or {}
    complaint = AssignmentService(db.session).assign(
        data.get("complaint_id"), data.get("assignee_id"), g.user_id, g.user_role,
    )
    return jsonify(complaint.to_dict())


@assignment_bp.route("/assignable-staff", methods=["GET"])
@require_identity
def assignable_staff():
    staff = AssignmentService(db.session).list_assignable_staff(
        g.user_role,
        search=request.args.get("search"),
        role=request.args.get("role"),
    )
    return jsonify({"items": staff, "total": len(staff)})


@assignment_bp.route("/balance-workload", methods=["POST"])
@require_identity
def balance_workload():
    result = AssignmentService(db.session).balance_workload(g.user_id, g.user_role)
    return jsonify(result)
