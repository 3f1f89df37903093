import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mysterybox import config, db
from mysterybox.errors import setup_error_handlers
from mysterybox.routers import admin_claims, boxes, health, payments

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("mysterybox.app")

app = FastAPI(title="Mystery Box Prize API", version="0.1.0")
app.state.access_control = config.load_access_control()

# Allow local/dev origins for FE preview and Docker usage.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_error_handlers(app)

app.include_router(health.router)
app.include_router(admin_claims.router)
app.include_router(payments.router)
app.include_router(boxes.router)


@app.on_event("startup")
def _startup():
    db.init_pool()
    # In tests the schema is applied by the test fixtures.
    if config.APP_ENV != "test":
        with db.get_conn() as conn:
            db.ensure_schema(conn)
    access = app.state.access_control
    if not access.enabled:
        logger.warning("access_control_disabled every authenticated user is an admin")
    elif not (access.authorized_email or access.authorized_user_id):
        logger.warning("access_control_unconfigured no administrator will be admitted")


@app.on_event("shutdown")
def _shutdown():
    db.close_pool()
