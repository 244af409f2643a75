"""
ProjectPulse: Complaint Lifecycle Service

Owns every status change of a complaint together with its side effects:
  - Transition validation against COMPLAINT_TRANSITIONS
  - Permission check (app.services.permission)
  - History / Response / Attachment rows
  - Notification fan-out (same unit of work)
  - Email after commit (fire-and-forget)

Every mutating operation validates and authorizes first, then opens one
``atomic`` unit of work.  A status change is never committed without its
ComplaintHistory row.

Usage:
    from app.services.complaint_lifecycle import ComplaintLifecycleService

    svc = ComplaintLifecycleService(db.session, storage=storage)
    complaint = svc.resolve(complaint_id, caller_id=user_id,
                            caller_role="SUPPORT",
                            resolution_comment="Fixed in v2")
"""

import logging

from sqlalchemy import delete, func, or_, select

from app.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from app.models.complaint import (
    COMPLAINT_TRANSITIONS,
    Attachment,
    Complaint,
    ComplaintCategory,
    ComplaintHistory,
    ComplaintPriority,
    ComplaintStatus,
    ResolutionAction,
    Response,
    parse_enum,
)
from app.models.notification import (
    ComplaintMetadata,
    Notification,
    NotificationType,
    StatusChangeMetadata,
)
from app.models.user import Project, User
from app.services.email_service import EmailService
from app.services.helpers.transaction import atomic
from app.services.notification import NotificationService
from app.services.permission import (
    can_delete,
    can_edit,
    can_override_status,
    can_resolve,
    can_respond_to_resolution,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTACHMENTS = 5

CLIENT_EDITABLE_FIELDS = ("title", "description", "category", "priority")
STAFF_EDITABLE_FIELDS = CLIENT_EDITABLE_FIELDS + ("status", "assignee_id")


# ── Transition helpers ───────────────────────────────────────────────────────

def validate_transition(complaint: Complaint, event: str) -> dict:
    """Validate whether *event* is valid for the complaint's current status."""
    rule = COMPLAINT_TRANSITIONS.get(event)
    if not rule:
        return {"valid": False, "from": complaint.status, "to": None,
                "reason": f"Unknown event: {event}"}

    if complaint.status not in rule["from"]:
        return {"valid": False, "from": complaint.status, "to": rule["to"],
                "reason": f"Cannot '{event}' a complaint in status '{complaint.status.value}'"}

    return {"valid": True, "from": complaint.status, "to": rule["to"], "reason": None}


def get_available_transitions(complaint: Complaint) -> list[str]:
    """Events that are legal from the complaint's current status."""
    return [
        event for event, rule in COMPLAINT_TRANSITIONS.items()
        if complaint.status in rule["from"]
    ]


def require_transition(complaint: Complaint, event: str):
    """Return the target status for *event* or raise ConflictError."""
    result = validate_transition(complaint, event)
    if not result["valid"]:
        logger.warning(
            "Blocked transition complaint=%s event=%s status=%s",
            complaint.id, event, complaint.status.value,
        )
        raise ConflictError(result["reason"], current_state=complaint.status.value)
    return result["to"]


def get_complaint_or_404(session, complaint_id) -> Complaint:
    complaint = session.get(Complaint, complaint_id) if complaint_id else None
    if complaint is None:
        raise NotFoundError(resource="Complaint", resource_id=complaint_id)
    return complaint


def record_history(session, complaint: Complaint, status, message: str, user_id=None):
    entry = ComplaintHistory(
        complaint_id=complaint.id,
        status=status,
        message=message,
        user_id=user_id,
    )
    session.add(entry)
    return entry


def send_email_quietly(email, user, template_name: str, context: dict) -> None:
    """Post-commit email; never raises."""
    if email is None or user is None or not user.email:
        return
    try:
        email.send_from_template(
            to_email=user.email,
            to_name=user.name,
            template_name=template_name,
            context=context,
        )
    except Exception:
        logger.warning("Email '%s' to user=%s failed", template_name, user.id, exc_info=True)


# ═════════════════════════════════════════════════════════════════════════════
# Service
# ═════════════════════════════════════════════════════════════════════════════

class ComplaintLifecycleService:
    """Complaint state machine bound to one SQLAlchemy session."""

    def __init__(self, session, storage=None, email=EmailService,
                 max_attachments=DEFAULT_MAX_ATTACHMENTS):
        self.session = session
        self.storage = storage
        self.email = email
        self.max_attachments = max_attachments
        self.notifications = NotificationService(session)

    # ── Submit ────────────────────────────────────────────────────────────

    def create(self, client_id, project_id, title, description, category,
               priority=None, attachments=()):
        """
        Submit a new complaint in PENDING.

        Raises:
            ValidationError: Missing field or invalid category/priority.
            NotFoundError: Unknown project or client.
        """
        missing = {
            name: "required"
            for name, value in (
                ("project_id", project_id),
                ("title", title),
                ("description", description),
                ("category", category),
            )
            if value is None or (isinstance(value, str) and not value.strip())
        }
        if not client_id:
            missing["client_id"] = "required"
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(sorted(missing))}",
                details=missing,
            )

        category_value = parse_enum(ComplaintCategory, category)
        if category_value is None:
            raise ValidationError(
                f"Invalid category: {category}", details={"category": "invalid"},
            )
        if priority is None or priority == "":
            priority_value = ComplaintPriority.MEDIUM
        else:
            priority_value = parse_enum(ComplaintPriority, priority)
            if priority_value is None:
                raise ValidationError(
                    f"Invalid priority: {priority}", details={"priority": "invalid"},
                )

        if self.session.get(Project, project_id) is None:
            raise NotFoundError(resource="Project", resource_id=project_id)
        if self.session.get(User, client_id) is None:
            raise NotFoundError(resource="Client", resource_id=client_id)

        # Uploads happen before the unit of work; failures are dropped.
        uploaded = self._upload_all(attachments)

        title = title.strip()
        with atomic(self.session):
            complaint = Complaint(
                project_id=project_id,
                client_id=client_id,
                title=title,
                description=description.strip(),
                category=category_value,
                priority=priority_value,
                status=ComplaintStatus.PENDING,
            )
            self.session.add(complaint)
            self.session.flush()

            for item in uploaded:
                self.session.add(Attachment(
                    complaint_id=complaint.id,
                    file_name=item["file_name"],
                    file_type=item.get("file_type"),
                    file_path=item["url"],
                    file_size=item.get("file_size"),
                ))

            self.notifications.notify(
                client_id,
                f"New complaint submitted: {title}",
                NotificationType.COMPLAINT_SUBMITTED,
                ComplaintMetadata(complaint_id=complaint.id, complaint_title=title),
            )

        logger.info(
            "Complaint %s submitted by client=%s (%d attachment(s))",
            complaint.id, client_id, len(uploaded),
        )
        return complaint

    def _upload_all(self, attachments) -> list[dict]:
        files = [f for f in (attachments or ()) if f is not None]
        if not files:
            return []
        if self.storage is None:
            logger.warning("Attachments ignored: no blob storage configured")
            return []
        if len(files) > self.max_attachments:
            logger.warning(
                "Only the first %d of %d attachments are kept",
                self.max_attachments, len(files),
            )
            files = files[: self.max_attachments]

        uploaded = []
        for f in files:
            try:
                uploaded.append(self.storage.upload(f))
            except (OSError, ValueError):
                logger.warning(
                    "Attachment upload failed: %s", getattr(f, "filename", f), exc_info=True,
                )
        return uploaded

    # ── Read ──────────────────────────────────────────────────────────────

    def get(self, complaint_id, caller_id=None, caller_role=None):
        """Read-only lookup. Visibility is not restricted by role."""
        return get_complaint_or_404(self.session, complaint_id)

    def client_stats(self, client_id):
        """Complaint counts per status for one client."""
        rows = self.session.execute(
            select(Complaint.status, func.count(Complaint.id))
            .where(Complaint.client_id == client_id)
            .group_by(Complaint.status)
        ).all()
        counts = {status.value: 0 for status in ComplaintStatus}
        for status, count in rows:
            counts[status.value] = count
        return {"total": sum(counts.values()), "by_status": counts}

    # ── Update ────────────────────────────────────────────────────────────

    def update(self, complaint_id, caller_id, caller_role, patch):
        """
        Edit fields and, for staff, override status or assignee.

        Client patches silently drop ``status`` and ``assignee_id``.
        """
        complaint = get_complaint_or_404(self.session, complaint_id)
        can_edit(complaint, caller_id, caller_role)
        if complaint.is_terminal:
            raise ConflictError(
                f"Complaint is {complaint.status.value} and can no longer be edited",
                current_state=complaint.status.value,
            )

        patch = patch or {}
        is_staff = can_override_status(caller_role)
        allowed = STAFF_EDITABLE_FIELDS if is_staff else CLIENT_EDITABLE_FIELDS
        changes = {k: v for k, v in patch.items() if k in allowed}

        for field in ("title", "description"):
            if field in changes:
                value = changes[field]
                if not isinstance(value, str) or not value.strip():
                    raise ValidationError(
                        f"{field} cannot be empty", details={field: "required"},
                    )
                changes[field] = value.strip()

        for field, enum_cls in (("category", ComplaintCategory), ("priority", ComplaintPriority)):
            if field in changes:
                parsed = parse_enum(enum_cls, changes[field])
                if parsed is None:
                    raise ValidationError(
                        f"Invalid {field}: {changes[field]}", details={field: "invalid"},
                    )
                changes[field] = parsed

        previous_status = complaint.status
        new_status = previous_status
        if "status" in changes:
            new_status = parse_enum(ComplaintStatus, changes.pop("status"))
            if new_status is None:
                raise ValidationError(
                    f"Invalid status: {patch.get('status')}", details={"status": "invalid"},
                )
            if new_status != previous_status:
                require_transition(complaint, "override")

        new_assignee = None
        assignee_changed = False
        if "assignee_id" in changes:
            assignee_id = changes.pop("assignee_id") or None
            if assignee_id != complaint.assignee_id:
                assignee_changed = True
                if assignee_id is not None:
                    new_assignee = self.session.get(User, assignee_id)
                    if new_assignee is None:
                        raise NotFoundError(resource="Assignee", resource_id=assignee_id)
                    if not new_assignee.is_staff:
                        raise ValidationError(
                            "Complaints can only be assigned to staff members",
                            details={"assignee_id": "not_staff"},
                        )

        with atomic(self.session):
            for field, value in changes.items():
                setattr(complaint, field, value)

            if assignee_changed:
                complaint.assignee_id = new_assignee.id if new_assignee else None

            if new_status != previous_status:
                complaint.status = new_status
                # Resolved complaints always have an owner for the client's reply.
                if new_status == ComplaintStatus.RESOLVED and complaint.assignee_id is None:
                    complaint.assignee_id = caller_id
                record_history(
                    self.session, complaint, new_status,
                    f"Status updated from {previous_status.value} to {new_status.value}",
                    user_id=caller_id,
                )
                self.notifications.notify(
                    complaint.client_id,
                    f"Complaint status updated to {new_status.value}",
                    NotificationType.STATUS_UPDATED,
                    StatusChangeMetadata(
                        complaint_id=complaint.id,
                        complaint_title=complaint.title,
                        previous_status=previous_status.value,
                        new_status=new_status.value,
                    ),
                )

            if new_assignee is not None:
                self.notifications.notify(
                    new_assignee.id,
                    f"You've been assigned to complaint: {complaint.title}",
                    NotificationType.ASSIGNED,
                    ComplaintMetadata(complaint_id=complaint.id, complaint_title=complaint.title),
                )

        if new_status != previous_status:
            logger.info(
                "Complaint %s status %s → %s by user=%s",
                complaint.id, previous_status.value, new_status.value, caller_id,
            )
        return complaint

    # ── Resolve ───────────────────────────────────────────────────────────

    def resolve(self, complaint_id, caller_id, caller_role, resolution_comment):
        """
        Mark a complaint RESOLVED with a mandatory comment.

        Raises:
            ValidationError: Blank comment.
            NotFoundError: Unknown complaint.
            ConflictError: Already RESOLVED, CLOSED or WITHDRAWN.
            ForbiddenError: Caller is neither the assignee nor an admin.
        """
        comment = (resolution_comment or "").strip() if isinstance(resolution_comment, str) else ""
        if not comment:
            raise ValidationError(
                "Resolution comment is required",
                details={"resolution_comment": "required"},
            )

        complaint = get_complaint_or_404(self.session, complaint_id)
        target = require_transition(complaint, "resolve")
        can_resolve(complaint, caller_id, caller_role)

        with atomic(self.session):
            complaint.status = target
            if complaint.assignee_id is None:
                complaint.assignee_id = caller_id

            self.session.add(Response(
                complaint_id=complaint.id,
                user_id=caller_id,
                message=comment,
            ))
            record_history(
                self.session, complaint, target,
                f"Complaint resolved: {comment}",
                user_id=caller_id,
            )
            self.notifications.notify(
                complaint.client_id,
                f'Your complaint "{complaint.title}" has been resolved.',
                NotificationType.RESOLVED,
                ComplaintMetadata(complaint_id=complaint.id, complaint_title=complaint.title),
            )

        logger.info("Complaint %s resolved by user=%s", complaint.id, caller_id)

        resolver = self.session.get(User, caller_id)
        send_email_quietly(self.email, complaint.client, "complaint_resolved", {
            "client_name": complaint.client.name if complaint.client else "",
            "complaint_title": complaint.title,
            "resolver_name": resolver.name if resolver else "Support",
            "resolution_comment": comment,
        })
        return complaint

    # ── Client decision on a resolution ───────────────────────────────────

    def respond_to_resolution(self, complaint_id, caller_id, action, feedback=None):
        """
        Client approves (→ CLOSED) or rejects (→ IN_PROGRESS) a resolution.
        """
        decision = parse_enum(ResolutionAction, action)
        if decision is None:
            raise ValidationError(
                "Action must be APPROVE or REJECT", details={"action": "invalid"},
            )

        complaint = get_complaint_or_404(self.session, complaint_id)
        can_respond_to_resolution(complaint, caller_id)

        approved = decision == ResolutionAction.APPROVE
        event = "approve_resolution" if approved else "reject_resolution"
        target = require_transition(complaint, event)

        feedback = feedback.strip() if isinstance(feedback, str) and feedback.strip() else None
        previous_status = complaint.status
        recipient_id = complaint.assignee_id or self._last_resolver_id(complaint)

        if approved:
            response_text = "I approve this resolution."
            if feedback:
                response_text += f" Comments: {feedback}"
            assignee_message = f'Client approved resolution for complaint "{complaint.title}"'
        else:
            response_text = (
                f"I reject this resolution. Reason: {feedback}" if feedback
                else "I reject this resolution. Please revisit this issue."
            )
            assignee_message = (
                f'Client rejected resolution for complaint "{complaint.title}". Please revisit.'
            )

        with atomic(self.session):
            complaint.status = target
            record_history(
                self.session, complaint, target,
                f"Client {'approved' if approved else 'rejected'} resolution: "
                f"{feedback or 'No additional feedback'}",
                user_id=caller_id,
            )
            self.session.add(Response(
                complaint_id=complaint.id,
                user_id=caller_id,
                message=response_text,
            ))
            if recipient_id:
                self.notifications.notify(
                    recipient_id,
                    assignee_message,
                    NotificationType.STATUS_UPDATED,
                    StatusChangeMetadata(
                        complaint_id=complaint.id,
                        complaint_title=complaint.title,
                        previous_status=previous_status.value,
                        new_status=target.value,
                        feedback=feedback,
                    ),
                )

        logger.info(
            "Complaint %s resolution %s by client=%s",
            complaint.id, decision.value, caller_id,
        )
        return complaint

    def _last_resolver_id(self, complaint):
        """User behind the most recent RESOLVED history row, if any."""
        return self.session.execute(
            select(ComplaintHistory.user_id)
            .where(
                ComplaintHistory.complaint_id == complaint.id,
                ComplaintHistory.status == ComplaintStatus.RESOLVED,
                ComplaintHistory.user_id.is_not(None),
            )
            .order_by(ComplaintHistory.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    # ── Delete ────────────────────────────────────────────────────────────

    def delete(self, complaint_id, caller_id, caller_role):
        """
        Remove a complaint with its attachments, responses, history and
        related notifications.
        """
        complaint = get_complaint_or_404(self.session, complaint_id)
        can_delete(complaint, caller_id, caller_role)

        involved = {uid for uid in (complaint.client_id, complaint.assignee_id) if uid}
        response_ids = [r.id for r in complaint.responses]

        with atomic(self.session):
            if response_ids:
                self.session.execute(
                    delete(Attachment)
                    .where(Attachment.response_id.in_(response_ids))
                    .execution_options(synchronize_session="fetch")
                )
            # Notifications tagged with the id, plus older ones that only
            # mention the title.
            self.session.execute(
                delete(Notification)
                .where(or_(
                    Notification.complaint_id == complaint.id,
                    Notification.user_id.in_(involved)
                    & Notification.complaint_id.is_(None)
                    & Notification.message.contains(complaint.title, autoescape=True),
                ))
                .execution_options(synchronize_session="fetch")
            )
            self.session.delete(complaint)

        logger.info("Complaint %s deleted by user=%s", complaint_id, caller_id)
