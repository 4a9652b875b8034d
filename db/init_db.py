"""
db/init_db.py
-------------
Creates the database schema (tables, indexes and the realtime trigger) if
they do not already exist. Run this module directly to initialize a fresh
database:
    python -m db.init_db
"""

from config import PAYMENTS_CHANNEL
from db.connection import get_connection, release_connection
from utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
-- Projects: the owners of payments (lookup only for the payment core)
CREATE TABLE IF NOT EXISTS projects (
    id              SERIAL PRIMARY KEY,
    name            VARCHAR(120) NOT NULL,
    client_name     VARCHAR(120),
    status          VARCHAR(20) NOT NULL DEFAULT 'Active'
                    CHECK (status IN ('Active', 'Maintenance', 'Legacy')),
    created_at      TIMESTAMPTZ DEFAULT NOW()
);

-- Project payments: one-off or monthly-recurring obligations
CREATE TABLE IF NOT EXISTS project_payments (
    id              SERIAL PRIMARY KEY,
    project_id      INT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    title           VARCHAR(200) NOT NULL CHECK (length(trim(title)) > 0),
    due_date        DATE NOT NULL,
    amount          NUMERIC(12,2),
    currency        VARCHAR(5) DEFAULT 'BRL',
    is_recurring    BOOLEAN NOT NULL DEFAULT FALSE,
    recurring_day   SMALLINT CHECK (recurring_day BETWEEN 1 AND 31),
    status          VARCHAR(10) NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'paid', 'overdue')),
    paid_at         TIMESTAMPTZ,
    notes           TEXT,
    created_at      TIMESTAMPTZ DEFAULT NOW(),
    CHECK (NOT is_recurring OR recurring_day IS NOT NULL),
    CHECK (status <> 'paid' OR paid_at IS NOT NULL)
);

CREATE INDEX IF NOT EXISTS idx_payments_project_due ON project_payments(project_id, due_date);
"""

TRIGGER_SQL = f"""
-- Realtime push: every change to project_payments notifies listeners
CREATE OR REPLACE FUNCTION notify_project_payments_change() RETURNS trigger AS $$
BEGIN
    PERFORM pg_notify(
        '{PAYMENTS_CHANNEL}',
        json_build_object(
            'project_id', COALESCE(NEW.project_id, OLD.project_id),
            'op', TG_OP
        )::text
    );
    RETURN NULL;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS trg_project_payments_notify ON project_payments;
CREATE TRIGGER trg_project_payments_notify
    AFTER INSERT OR UPDATE OR DELETE ON project_payments
    FOR EACH ROW EXECUTE FUNCTION notify_project_payments_change();
"""


def create_tables() -> None:
    """
    Execute the schema SQL to create all tables and the notify trigger.
    Safe to call multiple times (uses IF NOT EXISTS / OR REPLACE).
    """
    conn = get_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
            cur.execute(TRIGGER_SQL)
        conn.commit()
        logger.info("Database schema initialized successfully.")
    except Exception as e:
        conn.rollback()
        logger.error(f"Failed to initialize schema: {e}")
        raise
    finally:
        release_connection(conn)


if __name__ == "__main__":
    from db.connection import init_pool
    init_pool()
    create_tables()
    print("✅ Database schema created successfully.")
