"""Initial FieldGate schema."""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create tasks, assignees, the event ledger and payments."""
    bind = op.get_bind()

    task_status = sa.Enum("READY", "IN_PROGRESS", "COMPLETED", name="task_status")
    task_status.create(bind, checkfirst=True)

    op.create_table(
        "tasks",
        sa.Column("task_id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(length=255), nullable=False, server_default=""),
        sa.Column(
            "status",
            postgresql.ENUM(name="task_status", create_type=False),
            nullable=False,
            server_default="READY",
        ),
        sa.Column("expected_revenue", sa.Numeric(14, 2), nullable=True),
        sa.Column("geo_lat", sa.Float(), nullable=True),
        sa.Column("geo_lng", sa.Float(), nullable=True),
        sa.Column("geo_address", sa.Text(), nullable=True),
        sa.Column("geo_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_tasks_status_completed", "tasks", ["status", "completed_at"])

    op.create_table(
        "task_assignees",
        sa.Column(
            "task_id",
            sa.BigInteger(),
            sa.ForeignKey("tasks.task_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("worker_id", sa.String(length=255), primary_key=True),
    )
    op.create_index(
        "idx_task_assignees_worker", "task_assignees", ["worker_id", "task_id"]
    )

    op.create_table(
        "events",
        sa.Column("seq", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Uuid(), nullable=False, unique=True),
        sa.Column("topic", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=True),
        sa.Column(
            "payload",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_events_topic_created", "events", ["topic", "created_at", "seq"])
    op.create_index(
        "idx_events_action_actor_created", "events", ["action", "actor_id", "created_at"]
    )

    # The ledger is append-only at the database level too
    op.execute(
        sa.text(
            """
            CREATE OR REPLACE FUNCTION events_refuse_mutation() RETURNS trigger AS $$
            BEGIN
                RAISE EXCEPTION 'events are append-only';
            END;
            $$ LANGUAGE plpgsql
            """
        )
    )
    op.execute(
        sa.text(
            "CREATE TRIGGER events_append_only BEFORE UPDATE OR DELETE ON events "
            "FOR EACH ROW EXECUTE FUNCTION events_refuse_mutation()"
        )
    )

    op.create_table(
        "payments",
        sa.Column("payment_id", sa.Uuid(), primary_key=True),
        sa.Column(
            "task_id",
            sa.BigInteger(),
            sa.ForeignKey("tasks.task_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("collected_by", sa.String(length=255), nullable=False),
        sa.Column("collected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("invoice_attachment_ref", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_payments_task", "payments", ["task_id", "collected_at"])


def downgrade() -> None:
    """Drop all tables and enums."""
    op.drop_index("idx_payments_task", table_name="payments")
    op.drop_table("payments")

    op.execute(sa.text("DROP TRIGGER IF EXISTS events_append_only ON events"))
    op.execute(sa.text("DROP FUNCTION IF EXISTS events_refuse_mutation()"))
    op.drop_index("idx_events_action_actor_created", table_name="events")
    op.drop_index("idx_events_topic_created", table_name="events")
    op.drop_table("events")

    op.drop_index("idx_task_assignees_worker", table_name="task_assignees")
    op.drop_table("task_assignees")

    op.drop_index("idx_tasks_status_completed", table_name="tasks")
    op.drop_table("tasks")

    sa.Enum(name="task_status").drop(op.get_bind(), checkfirst=True)
