"""
ProjectPulse
Dashboard Blueprint: role-scoped complaint statistics.
"""

from flask import Blueprint, g, jsonify

from app.blueprints import register_error_handlers
from app.middleware.jwt_auth import require_identity
from app.models import db
from app.services.dashboard_service import DashboardService

dashboard_bp = Blueprint("dashboard_bp", __name__, url_prefix="/api/v1/dashboard")
register_error_handlers(dashboard_bp)


@dashboard_bp.route("/stats", methods=["GET"])
@require_identity
def stats():
    return jsonify(DashboardService(db.session).overview(g.user_id, g.user_role))


@dashboard_bp.route("/category-stats", methods=["GET"])
@require_identity
def category_stats():
    return jsonify(DashboardService(db.session).category_stats(g.user_id, g.user_role))


@dashboard_bp.route("/status-stats", methods=["GET"])
@require_identity
def status_stats():
    return jsonify(DashboardService(db.session).status_stats(g.user_id, g.user_role))


@dashboard_bp.route("/priority-stats", methods=["GET"])
@require_identity
def priority_stats():
    return jsonify(DashboardService(db.session).priority_stats(g.user_id, g.user_role))


@dashboard_bp.route("/workload", methods=["GET"])
@require_identity
def workload():
    return jsonify(DashboardService(db.session).workload_distribution())
