"""initial booking schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
from sqlalchemy import inspect
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_BOOKING = sa.text("status = 'booked'")


def upgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)
    tables = set(inspector.get_table_names())

    if "appointments" not in tables:
        op.create_table(
            "appointments",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("patient_key", sa.String(length=320), nullable=False),
            sa.Column("appointment_date", sa.Date(), nullable=False),
            sa.Column("start_time", sa.Time(), nullable=False),
            sa.Column("duration_minutes", sa.Integer(), nullable=False),
            sa.Column("buffer_minutes", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("service_name", sa.String(length=200), nullable=True),
            sa.Column(
                "status",
                sa.Enum("booked", "completed", "cancelled", name="appointment_status"),
                nullable=False,
                server_default="booked",
            ),
            sa.Column("status_updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column(
                "cancellation_reason",
                sa.Enum(
                    "no-show",
                    "patient-cancelled",
                    "clinic-cancelled",
                    "stock-shortage",
                    "emergency",
                    "other",
                    name="cancellation_reason",
                ),
                nullable=True,
            ),
            sa.Column("cancellation_notes", sa.Text(), nullable=True),
            sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("cancelled_by", sa.String(length=320), nullable=True),
            sa.Column("service_details", sa.JSON(), nullable=True),
            sa.Column("completion_notes", sa.Text(), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_by", sa.String(length=320), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_appointments_patient_key", "appointments", ["patient_key"])
        op.create_index(
            "ix_appointments_date_status", "appointments", ["appointment_date", "status"]
        )
        # At most one booked appointment per patient.
        op.create_index(
            "uq_appointments_active_patient",
            "appointments",
            ["patient_key"],
            unique=True,
            postgresql_where=ACTIVE_BOOKING,
            sqlite_where=ACTIVE_BOOKING,
        )

    if "calendar_days" not in tables:
        op.create_table(
            "calendar_days",
            sa.Column("day", sa.Date(), primary_key=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        )

    if "audit_logs" not in tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column("actor", sa.String(length=320), nullable=True),
            sa.Column("action", sa.String(length=64), nullable=False),
            sa.Column("entity_type", sa.String(length=50), nullable=False),
            sa.Column("entity_id", sa.String(length=64), nullable=False),
            sa.Column("request_id", sa.String(length=120), nullable=True),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("before_json", sa.JSON(), nullable=True),
            sa.Column("after_json", sa.JSON(), nullable=True),
        )
        op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])

    if "practice_hours" not in tables:
        op.create_table(
            "practice_hours",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("day_of_week", sa.Integer(), nullable=False),
            sa.Column("start_time", sa.Time(), nullable=True),
            sa.Column("end_time", sa.Time(), nullable=True),
            sa.Column("break_start", sa.Time(), nullable=True),
            sa.Column("break_end", sa.Time(), nullable=True),
            sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        )
        op.create_index("ix_practice_hours_day_of_week", "practice_hours", ["day_of_week"])

    if "practice_closures" not in tables:
        op.create_table(
            "practice_closures",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=False),
            sa.Column("reason", sa.String(length=255), nullable=True),
        )

    if "practice_overrides" not in tables:
        op.create_table(
            "practice_overrides",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("start_time", sa.Time(), nullable=True),
            sa.Column("end_time", sa.Time(), nullable=True),
            sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("reason", sa.String(length=255), nullable=True),
        )
        op.create_index("ix_practice_overrides_date", "practice_overrides", ["date"])


def downgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)
    tables = set(inspector.get_table_names())

    if "practice_overrides" in tables:
        op.drop_index("ix_practice_overrides_date", table_name="practice_overrides")
        op.drop_table("practice_overrides")
    if "practice_closures" in tables:
        op.drop_table("practice_closures")
    if "practice_hours" in tables:
        op.drop_index("ix_practice_hours_day_of_week", table_name="practice_hours")
        op.drop_table("practice_hours")
    if "audit_logs" in tables:
        op.drop_index("ix_audit_logs_entity_id", table_name="audit_logs")
        op.drop_table("audit_logs")
    if "calendar_days" in tables:
        op.drop_table("calendar_days")
    if "appointments" in tables:
        op.drop_index("uq_appointments_active_patient", table_name="appointments")
        op.drop_index("ix_appointments_date_status", table_name="appointments")
        op.drop_index("ix_appointments_patient_key", table_name="appointments")
        op.drop_table("appointments")
        sa.Enum(name="cancellation_reason").drop(bind, checkfirst=True)
        sa.Enum(name="appointment_status").drop(bind, checkfirst=True)
