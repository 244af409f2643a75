"""
ProjectPulse
Blueprint registry helpers.
"""

import logging

from flask import request

from app.core.exceptions import PulseError
from app.utils.errors import E, api_error, error_response

logger = logging.getLogger(__name__)


def register_error_handlers(bp):
    """Render service-layer errors and unexpected failures as JSON."""

    @bp.errorhandler(PulseError)
    def _handle_pulse_error(error: PulseError):
        if error.http_status >= 500:
            logger.error("%s in %s: %s", error.kind, request.endpoint, error.message)
        return error_response(error)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        logger.exception("Unexpected error in endpoint=%s", request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")


def page_args(default_limit=10, max_limit=100):
    """Read ``page`` / ``limit`` query params.

    Returns:
        (page, limit) with page >= 1 and 1 <= limit <= max_limit.
    """
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (ValueError, TypeError):
        page = 1
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    return page, limit
