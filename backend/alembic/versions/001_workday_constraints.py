"""workday_constraints

Revision ID: 001_workday_constraints
Revises:
Create Date: 2026-10-18

Brings databases created before the trainer rollout up to the current model:
- users.designation (drives the trainer activity catalog and daily cap)
- one daily report and one KPI entry per (user_id, date)
- lookup indexes for tasks-by-due-date and work-logs-by-day

All DDL checks information_schema first so the migration is idempotent and
safe to run after Base.metadata.create_all() already built the tables.
"""
import logging
from alembic import op
import sqlalchemy as sa
from sqlalchemy import text

revision = '001_workday_constraints'
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger("alembic.001")

_UNIQUE_CONSTRAINTS = [
    ('daily_reports', 'uq_daily_reports_user_date', ['user_id', 'date']),
    ('kpi_entries', 'uq_kpi_entries_user_date', ['user_id', 'date']),
]

_INDEXES = [
    ('tasks', 'ix_tasks_assignee_due', ['assignee_id', 'due_date']),
    ('task_work_logs', 'ix_task_work_logs_user_date', ['user_id', 'work_date']),
]


def _table_exists(conn, table_name: str) -> bool:
    result = conn.execute(
        text(
            "SELECT EXISTS("
            "  SELECT 1 FROM information_schema.tables"
            "  WHERE table_name = :tname"
            ")"
        ),
        {"tname": table_name},
    )
    return bool(result.scalar())


def _column_exists(conn, table_name: str, column_name: str) -> bool:
    result = conn.execute(
        text(
            "SELECT EXISTS("
            "  SELECT 1 FROM information_schema.columns"
            "  WHERE table_name = :tname AND column_name = :cname"
            ")"
        ),
        {"tname": table_name, "cname": column_name},
    )
    return bool(result.scalar())


def _constraint_exists(conn, name: str) -> bool:
    result = conn.execute(
        text(
            "SELECT EXISTS("
            "  SELECT 1 FROM information_schema.table_constraints"
            "  WHERE constraint_name = :cname"
            ")"
        ),
        {"cname": name},
    )
    return bool(result.scalar())


def _index_exists(conn, name: str) -> bool:
    result = conn.execute(
        text("SELECT EXISTS(SELECT 1 FROM pg_indexes WHERE indexname = :iname)"),
        {"iname": name},
    )
    return bool(result.scalar())


def upgrade() -> None:
    conn = op.get_bind()

    # ── users.designation ─────────────────────────────────────────────────────
    if _table_exists(conn, 'users'):
        if not _column_exists(conn, 'users', 'designation'):
            op.add_column('users', sa.Column('designation', sa.String(100), nullable=True))
            logger.info("Added column users.designation")
    else:
        logger.warning("Table users does not exist — skipping column addition")

    # ── one record per person per day ─────────────────────────────────────────
    for table, name, columns in _UNIQUE_CONSTRAINTS:
        if not _table_exists(conn, table):
            logger.warning(f"Table {table} does not exist — skipping {name}")
        elif _constraint_exists(conn, name):
            logger.info(f"Constraint {name} already exists — skipping create")
        else:
            op.create_unique_constraint(name, table, columns)
            logger.info(f"Created constraint: {name}")

    # ── lookup indexes ────────────────────────────────────────────────────────
    for table, name, columns in _INDEXES:
        if not _table_exists(conn, table):
            logger.warning(f"Table {table} does not exist — skipping {name}")
        elif _index_exists(conn, name):
            logger.info(f"Index {name} already exists — skipping create")
        else:
            op.create_index(name, table, columns)
            logger.info(f"Created index: {name}")


def downgrade() -> None:
    conn = op.get_bind()

    for table, name, _ in _INDEXES:
        if _index_exists(conn, name):
            op.drop_index(name, table_name=table)

    for table, name, _ in _UNIQUE_CONSTRAINTS:
        if _constraint_exists(conn, name):
            op.drop_constraint(name, table, type_='unique')

    if _table_exists(conn, 'users') and _column_exists(conn, 'users', 'designation'):
        op.drop_column('users', 'designation')
