"""
Studio Portal
Notification Service.

Central service for creating, broadcasting and querying in-app
notifications. Registers the default phase-transition listener: whenever a
project advances, its client and the studio team are told.
"""

from studio_portal.core.exceptions import NotFoundError
from studio_portal.core.phase_registry import get_phase
from studio_portal.models import db
from studio_portal.models.notification import STAFF_RECIPIENT, Notification
from studio_portal.models.project import Project
from studio_portal.services.phase_engine import on_phase_advanced


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, title, message="", category="system", severity="info",
               recipient=STAFF_RECIPIENT, project_id=None, entity_type="", entity_id=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (already committed).
        """
        notif = Notification(
            project_id=project_id,
            recipient=recipient,
            title=title,
            message=message,
            category=category,
            severity=severity,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    @staticmethod
    def broadcast(*, title, message="", category="system", severity="info",
                  project_id=None, entity_type="", entity_id=None, recipients=None):
        """
        Send a notification to several recipients (the studio team if none given).

        Returns:
            List of created Notification instances.
        """
        targets = recipients or [STAFF_RECIPIENT]
        notifications = []
        for r in dict.fromkeys(targets):
            notif = Notification(
                project_id=project_id,
                recipient=r,
                title=title,
                message=message,
                category=category,
                severity=severity,
                entity_type=entity_type,
                entity_id=entity_id,
            )
            db.session.add(notif)
            notifications.append(notif)
        db.session.commit()
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def recipients_for(ctx):
        """A client reads their own inbox; staff also read the shared team inbox."""
        names = [ctx.user_id]
        if ctx.is_staff:
            names.append(STAFF_RECIPIENT)
        return names

    @staticmethod
    def list_for_actor(ctx, project_id=None, unread_only=False, limit=50, offset=0):
        """Notifications visible to ``ctx``, newest first."""
        q = Notification.query.filter(Notification.recipient.in_(NotificationService.recipients_for(ctx)))
        if project_id is not None:
            q = q.filter(Notification.project_id == project_id)
        if unread_only:
            q = q.filter(Notification.is_read.is_(False))
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return {"items": [n.to_dict() for n in items], "total": total}

    @staticmethod
    def unread_count(ctx):
        return Notification.query.filter(
            Notification.recipient.in_(NotificationService.recipients_for(ctx)),
            Notification.is_read.is_(False),
        ).count()

    # ── Update ────────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(ctx, notification_id):
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.recipient not in NotificationService.recipients_for(ctx):
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        if not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif


# ── Phase-transition listener ────────────────────────────────────────────────


@on_phase_advanced
def notify_phase_advanced(event):
    project = db.session.get(Project, event.project_id)
    if project is None:
        return
    phase = get_phase(event.to_phase)
    if phase.is_terminal:
        title = f"{project.name} has launched"
        severity = "success"
    else:
        title = f"{project.name} moved to {phase.display_name}"
        severity = "info"
    NotificationService.broadcast(
        title=title,
        message=f"Phase {get_phase(event.from_phase).display_name} is complete. "
                f"Progress is now {event.progress_percent}%.",
        category="phase",
        severity=severity,
        project_id=project.id,
        entity_type="phase",
        entity_id=phase.key.value,
        recipients=[project.client_id, STAFF_RECIPIENT],
    )
