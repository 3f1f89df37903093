import contextlib
import logging

import psycopg2
from psycopg2 import pool
from mysterybox import config

logger = logging.getLogger("mysterybox.db")

_connection_pool: pool.SimpleConnectionPool | None = None


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT UNIQUE,
        name TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS payments (
        id BIGSERIAL PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id),
        stripe_session_id TEXT UNIQUE,
        stripe_payment_intent_id TEXT,
        amount INTEGER NOT NULL,
        currency TEXT NOT NULL,
        status TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_payments_user_created ON payments (user_id, created_at DESC)",
    """
    CREATE TABLE IF NOT EXISTS prize_types (
        id BIGSERIAL PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        description TEXT,
        value INTEGER NOT NULL DEFAULT 0,
        glow TEXT NOT NULL DEFAULT 'green',
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS prize_claims (
        id BIGSERIAL PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id),
        payment_id BIGINT REFERENCES payments(id),
        prize_type_id BIGINT REFERENCES prize_types(id),
        status TEXT NOT NULL DEFAULT 'PENDING_ADMIN_OPEN'
            CHECK (status IN ('PENDING_ADMIN_OPEN', 'OPENED', 'DELIVERED', 'CANCELLED')),
        box_number INTEGER,
        direct_opening BOOLEAN NOT NULL DEFAULT FALSE,
        notes TEXT,
        opened_by TEXT,
        opened_at TIMESTAMPTZ,
        delivered_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        CONSTRAINT prize_claims_opened_has_prize CHECK (
            status NOT IN ('OPENED', 'DELIVERED')
            OR (prize_type_id IS NOT NULL AND opened_at IS NOT NULL)
        )
    )
    """,
    "ALTER TABLE prize_claims ADD COLUMN IF NOT EXISTS direct_opening BOOLEAN NOT NULL DEFAULT FALSE",
    "CREATE INDEX IF NOT EXISTS idx_prize_claims_status ON prize_claims (status, created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_prize_claims_payment ON prize_claims (payment_id)",
    "CREATE INDEX IF NOT EXISTS idx_prize_claims_user_status ON prize_claims (user_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_prize_claims_box_number ON prize_claims (box_number) WHERE box_number IS NOT NULL",
    """
    CREATE TABLE IF NOT EXISTS admin_notifications (
        id BIGSERIAL PRIMARY KEY,
        type TEXT NOT NULL,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        user_id TEXT REFERENCES users(id),
        prize_claim_id BIGINT REFERENCES prize_claims(id),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notification_outbox (
        id BIGSERIAL PRIMARY KEY,
        event_type TEXT NOT NULL,
        payload JSONB NOT NULL DEFAULT '{}'::jsonb,
        status TEXT NOT NULL DEFAULT 'PENDING',
        retry_count INTEGER NOT NULL DEFAULT 0,
        next_retry_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        last_error TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_notification_outbox_due ON notification_outbox (status, next_retry_at)",
    """
    CREATE TABLE IF NOT EXISTS idempotency_keys (
        key TEXT NOT NULL,
        scope TEXT NOT NULL,
        endpoint TEXT NOT NULL,
        request_hash TEXT NOT NULL,
        status TEXT NOT NULL,
        response_status INTEGER,
        response_body JSONB,
        expires_at TIMESTAMPTZ NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        PRIMARY KEY (key, scope, endpoint)
    )
    """,
]


def init_pool():
    global _connection_pool
    if _connection_pool is None:
        _connection_pool = psycopg2.pool.SimpleConnectionPool(
            minconn=1,
            maxconn=5,
            dsn=config.DATABASE_URL,
        )
    return _connection_pool


def close_pool():
    global _connection_pool
    if _connection_pool:
        _connection_pool.closeall()
        _connection_pool = None


@contextlib.contextmanager
def get_conn():
    if _connection_pool is None:
        raise RuntimeError("DB pool not initialized")
    conn = _connection_pool.getconn()
    try:
        yield conn
    finally:
        # Ensure no transaction remains open; pending locks can block tests/truncates.
        try:
            conn.rollback()
        except psycopg2.Error:
            logger.warning("rollback_failed on pooled connection", exc_info=True)
        _connection_pool.putconn(conn)


def ensure_schema(conn):
    """Create tables and indexes if missing. Safe to run repeatedly."""
    cur = conn.cursor()
    for statement in SCHEMA_STATEMENTS:
        cur.execute(statement)
    conn.commit()
