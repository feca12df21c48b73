"""
Agreement signatures and requirement approvals: SignoffRecord model.

Every signature or approval appends a record; records are never mutated or
deleted, giving a full audit trail next to the completion row the action
produced.
"""

from datetime import datetime, timezone

from studio_portal.models import db

VALID_ACTIONS = frozenset({"signed", "approved"})


class SignoffRecord(db.Model):
    """
    Immutable sign-off record for a document or approval requirement.

    Business rules:
    - Records are NEVER deleted or updated: append-only log.
    - signer_name is the name typed by the signer at signing time.
    """

    __tablename__ = "signoff_records"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    requirement_id = db.Column(db.String(64), nullable=False)
    action = db.Column(db.String(20), nullable=False, comment="signed | approved")

    signer_id = db.Column(db.String(64), nullable=False)
    signer_name = db.Column(db.String(255), nullable=True)
    comment = db.Column(db.Text, nullable=True)
    signer_ip = db.Column(
        db.String(45),
        nullable=True,
        comment="Client IP at signing time (X-Forwarded-For if behind load balancer)",
    )

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_signoff_project_requirement", "project_id", "requirement_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "requirement_id": self.requirement_id,
            "action": self.action,
            "signer_id": self.signer_id,
            "signer_name": self.signer_name,
            "comment": self.comment,
            "signer_ip": self.signer_ip,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<SignoffRecord #{self.id} project={self.project_id} {self.requirement_id} {self.action}>"
