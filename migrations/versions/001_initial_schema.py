"""Initial schema: dispatch tables and the driver trip procedures.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


# Returns the driver's projects; raises P0002 for an unknown driver.
GET_DRIVER_PROJECTS = """
CREATE OR REPLACE FUNCTION get_driver_projects_with_context(driver_uuid varchar)
RETURNS SETOF projects
LANGUAGE plpgsql
STABLE
SECURITY DEFINER
AS $$
BEGIN
    IF NOT EXISTS (SELECT 1 FROM drivers WHERE id = driver_uuid) THEN
        RAISE EXCEPTION 'driver % not found', driver_uuid USING ERRCODE = 'P0002';
    END IF;

    RETURN QUERY
        SELECT * FROM projects
        WHERE driver_id = driver_uuid
        ORDER BY date, time;
END;
$$;
"""

# Applies one driver event atomically.  Returns the updated row, or no row
# when the trip is not the driver's or is not in the event's source state.
UPDATE_DRIVER_PROJECT_STATUS = """
CREATE OR REPLACE FUNCTION update_driver_project_status(
    project_uuid varchar,
    driver_uuid varchar,
    new_status varchar
)
RETURNS SETOF projects
LANGUAGE plpgsql
SECURITY DEFINER
AS $$
BEGIN
    IF new_status = 'accepted' THEN
        RETURN QUERY
            WITH updated AS (
            UPDATE projects
               SET acceptance_status = 'accepted', accepted_at = now(), accepted_by = driver_uuid
             WHERE id = project_uuid AND driver_id = driver_uuid
               AND status = 'active' AND acceptance_status = 'pending'
            RETURNING *
            )
            SELECT * FROM updated;
    ELSIF new_status = 'declined' THEN
        RETURN QUERY
            WITH updated AS (
            UPDATE projects
               SET acceptance_status = 'declined'
             WHERE id = project_uuid AND driver_id = driver_uuid
               AND status = 'active' AND acceptance_status = 'pending'
            RETURNING *
            )
            SELECT * FROM updated;
    ELSIF new_status = 'started' THEN
        RETURN QUERY
            WITH updated AS (
            UPDATE projects
               SET acceptance_status = 'started', started_at = now()
             WHERE id = project_uuid AND driver_id = driver_uuid
               AND status = 'active' AND acceptance_status = 'accepted'
            RETURNING *
            )
            SELECT * FROM updated;
    ELSIF new_status = 'completed' THEN
        RETURN QUERY
            WITH updated AS (
            UPDATE projects
               SET status = 'completed', completed_at = now(), completed_by = driver_uuid
             WHERE id = project_uuid AND driver_id = driver_uuid
               AND status = 'active' AND acceptance_status = 'started'
            RETURNING *
            )
            SELECT * FROM updated;
    ELSE
        RAISE EXCEPTION 'unknown status %', new_status USING ERRCODE = '22023';
    END IF;
END;
$$;
"""


def upgrade() -> None:
    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("license", sa.String(64), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("auth_token", sa.String(64), unique=True, nullable=True),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── companies ─────────────────────────────────────────────────────
    op.create_table(
        "companies",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── car_types ─────────────────────────────────────────────────────
    op.create_table(
        "car_types",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("capacity", sa.Integer, default=4, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
    )

    # ── projects ──────────────────────────────────────────────────────
    op.create_table(
        "projects",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "company_id", sa.String(36), sa.ForeignKey("companies.id"), nullable=True
        ),
        sa.Column(
            "car_type_id", sa.String(36), sa.ForeignKey("car_types.id"), nullable=True
        ),
        sa.Column(
            "driver_id", sa.String(36), sa.ForeignKey("drivers.id"), nullable=True
        ),
        sa.Column("client_name", sa.String(200), nullable=False, server_default=""),
        sa.Column("client_phone", sa.String(32), nullable=False, server_default=""),
        sa.Column("pickup_location", sa.Text, nullable=False, server_default=""),
        sa.Column("dropoff_location", sa.Text, nullable=False, server_default=""),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("time", sa.Time, nullable=False),
        sa.Column("passengers", sa.Integer, nullable=False, server_default="1"),
        sa.Column("price", sa.Float, nullable=False, server_default="0"),
        sa.Column("driver_fee", sa.Float, nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("booking_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column(
            "payment_status", sa.String(20), nullable=False, server_default="charge"
        ),
        sa.Column(
            "acceptance_status",
            sa.String(20),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_by", sa.String(36), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.String(36), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('active', 'completed')", name="ck_projects_status"
        ),
        sa.CheckConstraint(
            "acceptance_status IN ('pending', 'accepted', 'started', 'declined')",
            name="ck_projects_acceptance_status",
        ),
        sa.CheckConstraint("price >= 0", name="ck_projects_price"),
    )
    op.create_index("idx_projects_driver", "projects", ["driver_id"])
    op.create_index("idx_projects_schedule", "projects", ["date", "time"])
    op.create_index("idx_projects_status", "projects", ["status"])

    # ── procedures ────────────────────────────────────────────────────
    op.execute(GET_DRIVER_PROJECTS)
    op.execute(UPDATE_DRIVER_PROJECT_STATUS)


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS update_driver_project_status(varchar, varchar, varchar)")
    op.execute("DROP FUNCTION IF EXISTS get_driver_projects_with_context(varchar)")
    op.drop_table("projects")
    op.drop_table("car_types")
    op.drop_table("companies")
    op.drop_table("drivers")
