import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://mysterybox:boxpass@db:5432/mysterybox")
APP_ENV = os.getenv("APP_ENV", "local")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Session tokens are issued by the identity provider and verified here.
# In prod/stage the secret must come from env; test/local fall back to a dev secret.
SESSION_JWT_ALGORITHM = os.getenv("SESSION_JWT_ALGORITHM", "HS256")
SESSION_JWT_SECRET = os.getenv("SESSION_JWT_SECRET")
if SESSION_JWT_SECRET is None:
	if APP_ENV in {"test", "local"}:
		SESSION_JWT_SECRET = "dev-session-secret"
	else:
		raise RuntimeError("SESSION_JWT_SECRET is required")

# Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_WEBHOOK_TOLERANCE_SECONDS = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE_SECONDS", "300"))

# One-time unlock fee (minor currency units)
UNLOCK_FEE_AMOUNT = int(os.getenv("UNLOCK_FEE_AMOUNT", "500"))
UNLOCK_FEE_CURRENCY = os.getenv("UNLOCK_FEE_CURRENCY", "usd")
UNLOCK_PRODUCT_NAME = os.getenv("UNLOCK_PRODUCT_NAME", "Prize Unlock")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000")

# Weighted-random allocation: weight = max(1, PRIZE_WEIGHT_CONSTANT // (value + 1))
PRIZE_WEIGHT_CONSTANT = int(os.getenv("PRIZE_WEIGHT_CONSTANT", "1000"))

# Outbound notifications (Discord webhook)
DISCORD_WEBHOOK_URL = os.getenv("DISCORD_WEBHOOK_URL", "")
DISCORD_TIMEOUT_SECONDS = float(os.getenv("DISCORD_TIMEOUT_SECONDS", "10"))
DISCORD_USERNAME = os.getenv("DISCORD_USERNAME", "Prize Bot")

# Notification retry policy
NOTIFY_MAX_RETRIES = int(os.getenv("NOTIFY_MAX_RETRIES", "5"))
NOTIFY_BACKOFF_SECONDS = [1, 5, 30, 300, 900]
NOTIFY_POLL_INTERVAL_SECONDS = float(os.getenv("NOTIFY_POLL_INTERVAL_SECONDS", "5"))

# Idempotency TTL (hours)
IDEMPOTENCY_TTL_HOURS = int(os.getenv("IDEMPOTENCY_TTL_HOURS", "24"))

# Admin query timeouts (ms)
JOB_LOCK_TIMEOUT_MS = int(os.getenv("JOB_LOCK_TIMEOUT_MS", "2000"))
JOB_STATEMENT_TIMEOUT_MS = int(os.getenv("JOB_STATEMENT_TIMEOUT_MS", "20000"))


@dataclass(frozen=True)
class AccessControlConfig:
	"""Admin gate settings, built once at startup and injected per request."""

	enabled: bool
	authorized_email: str | None
	authorized_user_id: str | None


def load_access_control() -> AccessControlConfig:
	return AccessControlConfig(
		enabled=os.getenv("ENABLE_ACCESS_CONTROL", "true").lower() != "false",
		authorized_email=os.getenv("AUTHORIZED_USER_EMAIL") or None,
		authorized_user_id=os.getenv("AUTHORIZED_USER_ID") or None,
	)
