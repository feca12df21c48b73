"""
Studio Portal: payment webhook ledger.

Every verified webhook event is recorded once, keyed by the processor's
event id. A redelivered event finds its row and is acknowledged without
touching any requirement.
"""

from datetime import datetime, timezone

from studio_portal.models import db

PAYMENT_EVENT_STATUSES = frozenset({"processed", "ignored", "failed"})


class PaymentEvent(db.Model):
    __tablename__ = "payment_events"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.String(255), nullable=False, unique=True, comment="Processor event id (evt_...)")
    event_type = db.Column(db.String(100), nullable=False)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    requirement_id = db.Column(db.String(64), nullable=True)
    status = db.Column(
        db.String(20),
        nullable=False,
        default="processed",
        comment="processed | ignored | failed",
    )
    received_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "event_type": self.event_type,
            "project_id": self.project_id,
            "requirement_id": self.requirement_id,
            "status": self.status,
            "received_at": self.received_at.isoformat() if self.received_at else None,
        }

    def __repr__(self):
        return f"<PaymentEvent {self.event_id} {self.event_type} {self.status}>"
