import os
import sys
from pathlib import Path

import jwt
import psycopg2
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from psycopg2 import OperationalError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("APP_ENV", "test")

from mysterybox import config, db  # noqa: E402
from mysterybox.config import AccessControlConfig  # noqa: E402
from mysterybox.errors import setup_error_handlers  # noqa: E402
from mysterybox.routers import admin_claims, boxes, health, payments  # noqa: E402

ADMIN_ID = "user_admin"
ADMIN_EMAIL = "admin@example.com"


def _running_in_docker() -> bool:
    # Common indicator inside Linux containers.
    if os.path.exists("/.dockerenv"):
        return True
    cgroup_path = "/proc/1/cgroup"
    if os.path.exists(cgroup_path):
        try:
            with open(cgroup_path, "r", encoding="utf-8") as f:
                content = f.read()
            return "docker" in content or "containerd" in content
        except OSError:
            return False
    return False


def _with_connect_timeout(url: str, seconds: int = 3) -> str:
    # For libpq/psycopg2, connect_timeout can be specified as a URI query param.
    if "connect_timeout=" in url:
        return url
    joiner = "&" if "?" in url else "?"
    return f"{url}{joiner}connect_timeout={seconds}"


def make_token(user_id: str, email: str | None = None, name: str | None = None) -> str:
    claims = {"sub": user_id}
    if email:
        claims["email"] = email
    if name:
        claims["name"] = name
    return jwt.encode(claims, config.SESSION_JWT_SECRET, algorithm=config.SESSION_JWT_ALGORITHM)


def auth_headers(user_id: str, email: str | None = None, name: str | None = None) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, email, name)}"}


def build_app() -> FastAPI:
    """App with every router but no startup hooks (no DB pool)."""
    app = FastAPI()
    setup_error_handlers(app)
    app.include_router(health.router)
    app.include_router(admin_claims.router)
    app.include_router(payments.router)
    app.include_router(boxes.router)
    app.state.access_control = AccessControlConfig(
        enabled=True, authorized_email=ADMIN_EMAIL, authorized_user_id=None
    )
    return app


@pytest.fixture(scope="session")
def db_url():
    """Database URL for tests.

    - If DATABASE_URL is set, always respect it.
    - If running inside Docker, default to the compose service host `db`.
    - Otherwise (local machine), default to `localhost` (compose publishes 5432).
    """
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return _with_connect_timeout(env_url)
    host = "db" if _running_in_docker() else "localhost"
    return _with_connect_timeout(f"postgresql://mysterybox:boxpass@{host}:5432/mysterybox")


@pytest.fixture(scope="session")
def db_available(db_url):
    """Apply the schema once; False when Postgres is unreachable."""
    try:
        conn = psycopg2.connect(db_url, connect_timeout=3)
    except OperationalError:  # pragma: no cover
        return False
    try:
        db.ensure_schema(conn)
    finally:
        conn.close()
    return True


@pytest.fixture(scope="session")
def db_conn(db_url, db_available):
    if not db_available:
        pytest.skip("database not reachable")
    conn = psycopg2.connect(db_url, connect_timeout=3)
    yield conn
    conn.close()


@pytest.fixture(scope="session")
def client(db_url, db_available):
    if not db_available:
        pytest.skip("database not reachable")
    config.DATABASE_URL = db_url
    app = build_app()
    app.add_event_handler("startup", db.init_pool)
    app.add_event_handler("shutdown", db.close_pool)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def offline_client():
    """Client for paths that must fail before any database access."""
    with TestClient(build_app(), raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def admin_headers():
    return auth_headers(ADMIN_ID, ADMIN_EMAIL, "Admin")


@pytest.fixture
def user_headers():
    return auth_headers("user_alice", "alice@example.com", "Alice")


@pytest.fixture(autouse=True)
def _reset_db_state(request, db_url):
    """Truncate persistent state before each test that touches the database."""
    if not {"client", "db_conn"} & set(request.fixturenames):
        yield
        return
    if not request.getfixturevalue("db_available"):
        yield
        return

    conn = psycopg2.connect(db_url, connect_timeout=3)
    conn.autocommit = True
    try:
        with conn.cursor() as cur:
            # Avoid hanging forever if the worker holds locks.
            cur.execute("SET lock_timeout = '2s'")
            cur.execute("SET statement_timeout = '10s'")
            cur.execute(
                """
                TRUNCATE TABLE
                    admin_notifications,
                    notification_outbox,
                    idempotency_keys,
                    prize_claims,
                    payments,
                    prize_types,
                    users
                RESTART IDENTITY CASCADE
                """
            )
    except psycopg2.Error as exc:  # pragma: no cover
        conn.close()
        pytest.skip(f"database reset skipped (DB busy/locked): {exc}")
    conn.close()
    yield


def seed_user(conn, user_id: str, email: str | None = None, name: str | None = None):
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO users (id, email, name) VALUES (%s, %s, %s) ON CONFLICT (id) DO NOTHING",
        (user_id, email, name),
    )
    conn.commit()


def seed_paid_claim(conn, user_id: str, email: str | None = None, name: str | None = None, amount: int = 500):
    """A paid payment with its pending claim, as the webhook would record it."""
    seed_user(conn, user_id, email, name)
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO payments (user_id, stripe_session_id, amount, currency, status)
        VALUES (%s, %s, %s, 'usd', 'paid')
        RETURNING id
        """,
        (user_id, f"cs_test_{user_id}_{amount}", amount),
    )
    payment_id = cur.fetchone()[0]
    cur.execute(
        "INSERT INTO prize_claims (user_id, payment_id, status) VALUES (%s, %s, 'PENDING_ADMIN_OPEN') RETURNING id",
        (user_id, payment_id),
    )
    claim_id = cur.fetchone()[0]
    conn.commit()
    return payment_id, claim_id
