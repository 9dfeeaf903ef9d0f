"""Initial schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


role_enum = sa.Enum("student", "tutor", name="role_enum", native_enum=False)
booking_status_enum = sa.Enum(
    "pending",
    "confirmed",
    "completed",
    "cancelled",
    name="booking_status_enum",
    native_enum=False,
)
booking_payment_status_enum = sa.Enum("unpaid", "paid", name="booking_payment_status_enum", native_enum=False)
payment_method_enum = sa.Enum("stripe", "paypal", "cash", name="payment_method_enum", native_enum=False)
payment_status_enum = sa.Enum(
    "pending",
    "completed",
    "failed",
    "partially_refunded",
    "refunded",
    name="payment_status_enum",
    native_enum=False,
)
lesson_status_enum = sa.Enum("scheduled", "completed", "archived", name="lesson_status_enum", native_enum=False)
homework_status_enum = sa.Enum("submitted", "marked", name="homework_status_enum", native_enum=False)
meeting_status_enum = sa.Enum("pending", "active", "ended", name="meeting_status_enum", native_enum=False)
notification_status_enum = sa.Enum("pending", "sent", "read", name="notification_status_enum", native_enum=False)
outbox_status_enum = sa.Enum("pending", "processed", "failed", name="outbox_status_enum", native_enum=False)


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def _uuid(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), nullable=nullable)


def _profile_fk(table: str, column: str, ondelete: str) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        [column],
        ["profiles.id"],
        name=f"fk_{table}_{column}_profiles",
        ondelete=ondelete,
    )


def upgrade() -> None:
    op.create_table(
        "profiles",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("role", role_enum, nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone_number", sa.String(length=64), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("profile_picture_url", sa.String(length=1024), nullable=True),
        sa.Column("subjects", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("email", name="uq_profiles_email"),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"], unique=False)
    op.create_index("ix_profiles_role", "profiles", ["role"], unique=False)

    op.create_table(
        "availability_rules",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid("tutor_id"),
        sa.Column("day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False),
        _profile_fk("availability_rules", "tutor_id", "CASCADE"),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_rules_day_of_week_range"),
        sa.CheckConstraint(
            "end_time > start_time OR end_time = '00:00:00'",
            name="ck_availability_rules_time_order",
        ),
    )
    op.create_index("ix_availability_rules_tutor_id", "availability_rules", ["tutor_id"], unique=False)

    op.create_table(
        "blocked_intervals",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid("tutor_id"),
        sa.Column("start_datetime", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_datetime", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.String(length=512), nullable=True),
        _profile_fk("blocked_intervals", "tutor_id", "CASCADE"),
        sa.CheckConstraint("end_datetime > start_datetime", name="ck_blocked_intervals_interval_order"),
    )
    op.create_index("ix_blocked_intervals_tutor_id", "blocked_intervals", ["tutor_id"], unique=False)
    op.create_index("ix_blocked_intervals_start_datetime", "blocked_intervals", ["start_datetime"], unique=False)

    op.create_table(
        "bookings",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid("student_id"),
        _uuid("tutor_id"),
        _uuid("created_by_id", nullable=True),
        sa.Column("lesson_date", sa.Date(), nullable=False),
        sa.Column("lesson_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("notes", sa.String(length=1024), nullable=True),
        sa.Column("status", booking_status_enum, nullable=False),
        sa.Column("payment_status", booking_payment_status_enum, nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=512), nullable=True),
        _profile_fk("bookings", "student_id", "CASCADE"),
        _profile_fk("bookings", "tutor_id", "CASCADE"),
        _profile_fk("bookings", "created_by_id", "SET NULL"),
    )
    op.create_index("ix_bookings_student_id", "bookings", ["student_id"], unique=False)
    op.create_index("ix_bookings_tutor_id", "bookings", ["tutor_id"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)
    op.create_index("ix_bookings_tutor_date", "bookings", ["tutor_id", "lesson_date"], unique=False)
    op.create_index(
        "uq_bookings_tutor_active_slot",
        "bookings",
        ["tutor_id", "lesson_date", "lesson_time"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'confirmed')"),
    )

    op.create_table(
        "payments",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid("booking_id"),
        _uuid("student_id"),
        _uuid("tutor_id"),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("payment_method", payment_method_enum, nullable=False),
        sa.Column("provider_transaction_id", sa.String(length=128), nullable=True),
        sa.Column("status", payment_status_enum, nullable=False),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("refunded_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("refund_reference", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.String(length=512), nullable=True),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], name="fk_payments_booking_id_bookings", ondelete="RESTRICT"),
        _profile_fk("payments", "student_id", "RESTRICT"),
        _profile_fk("payments", "tutor_id", "RESTRICT"),
    )
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"], unique=False)
    op.create_index("ix_payments_student_id", "payments", ["student_id"], unique=False)
    op.create_index("ix_payments_tutor_id", "payments", ["tutor_id"], unique=False)
    op.create_index("ix_payments_status", "payments", ["status"], unique=False)
    op.create_index(
        "uq_payments_provider_transaction",
        "payments",
        ["payment_method", "provider_transaction_id"],
        unique=True,
        postgresql_where=sa.text("provider_transaction_id IS NOT NULL"),
    )

    op.create_table(
        "lessons",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid("booking_id", nullable=True),
        _uuid("student_id"),
        _uuid("tutor_id"),
        sa.Column("lesson_date", sa.Date(), nullable=False),
        sa.Column("lesson_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("covered_in_previous_lesson", sa.Text(), nullable=True),
        sa.Column("covered_in_current_lesson", sa.Text(), nullable=True),
        sa.Column("next_lesson_description", sa.Text(), nullable=True),
        sa.Column("status", lesson_status_enum, nullable=False),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], name="fk_lessons_booking_id_bookings", ondelete="SET NULL"),
        _profile_fk("lessons", "student_id", "CASCADE"),
        _profile_fk("lessons", "tutor_id", "CASCADE"),
        sa.UniqueConstraint("booking_id", name="uq_lessons_booking_id"),
    )
    op.create_index("ix_lessons_student_id", "lessons", ["student_id"], unique=False)
    op.create_index("ix_lessons_tutor_id", "lessons", ["tutor_id"], unique=False)
    op.create_index("ix_lessons_status", "lessons", ["status"], unique=False)

    op.create_table(
        "lesson_activities",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid("lesson_id"),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("file_url", sa.String(length=1024), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        _uuid("uploaded_by", nullable=True),
        sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"], name="fk_lesson_activities_lesson_id_lessons", ondelete="CASCADE"),
        _profile_fk("lesson_activities", "uploaded_by", "SET NULL"),
    )
    op.create_index("ix_lesson_activities_lesson_id", "lesson_activities", ["lesson_id"], unique=False)

    op.create_table(
        "homework_submissions",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid("lesson_id"),
        _uuid("student_id"),
        sa.Column("submission_file_url", sa.String(length=1024), nullable=False),
        sa.Column("submission_file_name", sa.String(length=255), nullable=False),
        sa.Column("submission_file_size", sa.BigInteger(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", homework_status_enum, nullable=False),
        sa.Column("tutor_feedback", sa.Text(), nullable=True),
        sa.Column("marked_at", sa.DateTime(timezone=True), nullable=True),
        _uuid("marked_by", nullable=True),
        sa.ForeignKeyConstraint(
            ["lesson_id"],
            ["lessons.id"],
            name="fk_homework_submissions_lesson_id_lessons",
            ondelete="CASCADE",
        ),
        _profile_fk("homework_submissions", "student_id", "CASCADE"),
        _profile_fk("homework_submissions", "marked_by", "SET NULL"),
    )
    op.create_index("ix_homework_submissions_lesson_id", "homework_submissions", ["lesson_id"], unique=False)
    op.create_index("ix_homework_submissions_student_id", "homework_submissions", ["student_id"], unique=False)
    op.create_index("ix_homework_submissions_status", "homework_submissions", ["status"], unique=False)

    op.create_table(
        "video_meetings",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("meeting_id", sa.String(length=32), nullable=False),
        sa.Column("passcode", sa.String(length=6), nullable=False),
        _uuid("booking_id"),
        _uuid("host_id"),
        sa.Column("status", meeting_status_enum, nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], name="fk_video_meetings_booking_id_bookings", ondelete="CASCADE"),
        _profile_fk("video_meetings", "host_id", "CASCADE"),
        sa.UniqueConstraint("meeting_id", name="uq_video_meetings_meeting_id"),
    )
    op.create_index("ix_video_meetings_meeting_id", "video_meetings", ["meeting_id"], unique=False)
    op.create_index("ix_video_meetings_booking_id", "video_meetings", ["booking_id"], unique=False)
    op.create_index("ix_video_meetings_status", "video_meetings", ["status"], unique=False)

    op.create_table(
        "video_participants",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid("meeting_pk"),
        _uuid("user_id"),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("session_id", sa.String(length=128), nullable=False),
        sa.Column("is_audio_on", sa.Boolean(), nullable=False),
        sa.Column("is_video_on", sa.Boolean(), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("left_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["meeting_pk"],
            ["video_meetings.id"],
            name="fk_video_participants_meeting_pk_video_meetings",
            ondelete="CASCADE",
        ),
        _profile_fk("video_participants", "user_id", "CASCADE"),
        sa.UniqueConstraint("session_id", name="uq_video_participants_session_id"),
    )
    op.create_index("ix_video_participants_meeting_pk", "video_participants", ["meeting_pk"], unique=False)
    op.create_index("ix_video_participants_user_id", "video_participants", ["user_id"], unique=False)

    op.create_table(
        "audit_logs",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid("actor_id", nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=128), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _profile_fk("audit_logs", "actor_id", "SET NULL"),
    )
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"], unique=False)
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)

    op.create_table(
        "outbox_events",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("aggregate_type", sa.String(length=128), nullable=False),
        sa.Column("aggregate_id", sa.String(length=128), nullable=False),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", outbox_status_enum, nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retries", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_outbox_events_aggregate_type", "outbox_events", ["aggregate_type"], unique=False)
    op.create_index("ix_outbox_events_aggregate_id", "outbox_events", ["aggregate_id"], unique=False)
    op.create_index("ix_outbox_events_event_type", "outbox_events", ["event_type"], unique=False)
    op.create_index("ix_outbox_events_status", "outbox_events", ["status"], unique=False)

    op.create_table(
        "notifications",
        _id_col(),
        _created_col(),
        _updated_col(),
        _uuid("user_id"),
        _uuid("event_id", nullable=True),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("status", notification_status_enum, nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _profile_fk("notifications", "user_id", "CASCADE"),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["outbox_events.id"],
            name="fk_notifications_event_id_outbox_events",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
    op.create_index("ix_notifications_event_id", "notifications", ["event_id"], unique=False)
    op.create_index("ix_notifications_status", "notifications", ["status"], unique=False)


def downgrade() -> None:
    # Dropping a table drops its indexes and constraints with it.
    for table in (
        "notifications",
        "outbox_events",
        "audit_logs",
        "video_participants",
        "video_meetings",
        "homework_submissions",
        "lesson_activities",
        "lessons",
        "payments",
        "bookings",
        "blocked_intervals",
        "availability_rules",
        "profiles",
    ):
        op.drop_table(table)
