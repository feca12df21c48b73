"""phase_workflow_tables

Creates the project phase workflow tables:
  - projects                               — client projects
  - project_phases                         — one current-phase row per project (lock row)
  - phase_requirements                     — seeded mirror of the requirement catalog
  - project_phase_requirement_completions  — per (project, requirement) completion, upserted
  - phase_transitions                      — append-only phase history
  - form_submissions                       — one row per (project, phase, module)
  - payment_events                         — webhook redelivery ledger
  - signoff_records                        — agreement signatures and approvals
  - notifications                          — in-app notifications

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: 5a1c9e7d2b40
Revises:
Create Date: 2026-10-16 09:12:40.118204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '5a1c9e7d2b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Projects ──────────────────────────────────────────────────────────
    if "projects" not in existing:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("client_id", sa.String(length=64), nullable=False,
                      comment="Owning client's user id (JWT sub)"),
            sa.Column("service_type", sa.String(length=50), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_client_id", "projects", ["client_id"])

    # ── Project phase state ───────────────────────────────────────────────
    if "project_phases" not in existing:
        op.create_table(
            "project_phases",
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("phase_key", sa.String(length=10), nullable=False,
                      comment="ONB | IDEA | DSGN | REV | PROD | PAY | SIGN | LAUNCH"),
            sa.Column("status", sa.String(length=20), nullable=False,
                      server_default="in_progress", comment="in_progress | launched"),
            sa.Column("entered_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("progress_percent", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint(
                "phase_key IN ('ONB','IDEA','DSGN','REV','PROD','PAY','SIGN','LAUNCH')",
                name="ck_project_phases_phase_key",
            ),
            sa.CheckConstraint(
                "progress_percent >= 0 AND progress_percent <= 100",
                name="ck_project_phases_progress",
            ),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("project_id"),
        )
        op.create_index("ix_project_phases_phase_key", "project_phases", ["phase_key"])

    # ── Requirement catalog mirror ────────────────────────────────────────
    if "phase_requirements" not in existing:
        op.create_table(
            "phase_requirements",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("phase_key", sa.String(length=10), nullable=False),
            sa.Column("requirement_text", sa.String(length=255), nullable=False),
            sa.Column("is_mandatory", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("requirement_type", sa.String(length=20), nullable=False),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_phase_requirements_phase_key", "phase_requirements", ["phase_key"])

    # ── Requirement completions ───────────────────────────────────────────
    if "project_phase_requirement_completions" not in existing:
        op.create_table(
            "project_phase_requirement_completions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("requirement_id", sa.String(length=64), nullable=False),
            sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("completed_by", sa.String(length=64), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("source", sa.String(length=20), nullable=False, server_default="manual",
                      comment="manual | form | payment | signature | approval"),
            sa.Column("details", sa.JSON(), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["requirement_id"], ["phase_requirements.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "requirement_id", name="uq_completion_project_requirement"),
        )
        op.create_index(
            "ix_project_phase_requirement_completions_project_id",
            "project_phase_requirement_completions",
            ["project_id"],
        )

    # ── Phase transitions ─────────────────────────────────────────────────
    if "phase_transitions" not in existing:
        op.create_table(
            "phase_transitions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("from_phase", sa.String(length=10), nullable=False),
            sa.Column("to_phase", sa.String(length=10), nullable=False),
            sa.Column("trigger", sa.String(length=30), nullable=False),
            sa.Column("actor_id", sa.String(length=64), nullable=True),
            sa.Column("transitioned_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_phase_transitions_project_id", "phase_transitions", ["project_id"])

    # ── Form submissions ──────────────────────────────────────────────────
    if "form_submissions" not in existing:
        op.create_table(
            "form_submissions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("phase_key", sa.String(length=10), nullable=False),
            sa.Column("module_id", sa.String(length=64), nullable=False),
            sa.Column("payload", sa.JSON(), nullable=False),
            sa.Column("submitted_by", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "phase_key", "module_id", name="uq_form_submission_module"),
        )
        op.create_index("ix_form_submissions_project_id", "form_submissions", ["project_id"])

    # ── Payment events ────────────────────────────────────────────────────
    if "payment_events" not in existing:
        op.create_table(
            "payment_events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("event_id", sa.String(length=255), nullable=False),
            sa.Column("event_type", sa.String(length=100), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("requirement_id", sa.String(length=64), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="processed"),
            sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("event_id"),
        )
        op.create_index("ix_payment_events_project_id", "payment_events", ["project_id"])

    # ── Sign-off records ──────────────────────────────────────────────────
    if "signoff_records" not in existing:
        op.create_table(
            "signoff_records",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("requirement_id", sa.String(length=64), nullable=False),
            sa.Column("action", sa.String(length=20), nullable=False, comment="signed | approved"),
            sa.Column("signer_id", sa.String(length=64), nullable=False),
            sa.Column("signer_name", sa.String(length=255), nullable=True),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("signer_ip", sa.String(length=45), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_signoff_records_project_id", "signoff_records", ["project_id"])
        op.create_index("ix_signoff_project_requirement", "signoff_records", ["project_id", "requirement_id"])

    # ── Notifications ─────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("recipient", sa.String(length=64), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=True),
            sa.Column("entity_id", sa.String(length=64), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_project_id", "notifications", ["project_id"])
        op.create_index("ix_notifications_recipient", "notifications", ["recipient"])


def downgrade():
    for table in (
        "notifications",
        "signoff_records",
        "payment_events",
        "form_submissions",
        "phase_transitions",
        "project_phase_requirement_completions",
        "phase_requirements",
        "project_phases",
        "projects",
    ):
        op.drop_table(table)
