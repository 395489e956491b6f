import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import CORS_ORIGINS, DATABASE_URL, ENVIRONMENT
from app.core.database import Base, SessionLocal, engine
from app.core.logging_setup import configure_logging
from app.core.startup_checks import ensure_migrations_applied, validate_database_environment
from app.middleware.admin_session import AdminSessionMiddleware
from app.middleware.observability import ObservabilityMiddleware
from app.middleware.rate_limit import CouponRateLimitMiddleware
import app.models  # noqa: F401  models must be registered before create_all

from app.models.admin_user import AdminUser
from app.routers.admin_auth import router as admin_auth_router
from app.routers.admin_discounts import router as admin_discounts_router
from app.routers.admin_permissions import router as admin_permissions_router
from app.routers.coupons import MISSING_FIELDS_MESSAGE, router as coupons_router
from app.routers.internal_metrics import router as internal_metrics_router
from app.services.admin_bootstrap import upsert_admin_user

configure_logging()

logger = logging.getLogger(__name__)
BOOTSTRAP_PREFIX = "[ADMIN_BOOTSTRAP]"
DEFAULT_ADMIN_EMAIL = "admin@example.com"
DEFAULT_ADMIN_NAME = "Admin"
DEFAULT_ADMIN_ROLE = "owner"
COUPON_VALIDATE_PATH = "/api/coupons/validate"
INVALID_BODY_MESSAGE = "Invalid request body"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Storefront Coupons API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CouponRateLimitMiddleware)
app.add_middleware(AdminSessionMiddleware)
app.add_middleware(ObservabilityMiddleware)


@app.exception_handler(RequestValidationError)
async def coupon_request_validation_handler(request: Request, exc: RequestValidationError):
    # The public coupon endpoint answers with {"error": ...} like the storefront expects.
    if request.url.path != COUPON_VALIDATE_PATH:
        return await request_validation_exception_handler(request, exc)

    missing_body = any(
        error.get("type") == "missing" and tuple(error.get("loc", ())) == ("body",)
        for error in exc.errors()
    )
    message = MISSING_FIELDS_MESSAGE if missing_body else INVALID_BODY_MESSAGE
    return JSONResponse(status_code=400, content={"error": message})


def _bootstrap_initial_admin() -> None:
    dev_admin_password = os.getenv("DEV_ADMIN_PASSWORD", "").strip()
    if not dev_admin_password:
        logger.info("%s skipped: configure DEV_ADMIN_PASSWORD.", BOOTSTRAP_PREFIX)
        return

    dev_admin_email = (os.getenv("DEV_ADMIN_EMAIL", DEFAULT_ADMIN_EMAIL).strip() or DEFAULT_ADMIN_EMAIL).lower()
    dev_admin_name = os.getenv("DEV_ADMIN_NAME", DEFAULT_ADMIN_NAME).strip() or DEFAULT_ADMIN_NAME

    db = SessionLocal()
    try:
        existing_admin = db.query(AdminUser).filter(AdminUser.email == dev_admin_email).first()
        if existing_admin:
            logger.info("%s exists id=%s email=%s", BOOTSTRAP_PREFIX, existing_admin.id, existing_admin.email)
            return

        admin, _ = upsert_admin_user(
            db,
            email=dev_admin_email,
            name=dev_admin_name,
            role=DEFAULT_ADMIN_ROLE,
            password=dev_admin_password,
        )
        logger.info("%s created id=%s email=%s", BOOTSTRAP_PREFIX, admin.id, admin.email)
    except Exception:
        logger.exception("%s bootstrap failed", BOOTSTRAP_PREFIX)
        raise
    finally:
        db.close()


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        # Development databases only; everything else goes through alembic.
        if DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
        _bootstrap_initial_admin()
    except Exception:
        logger.exception("startup failed env=%s", ENVIRONMENT)
        raise


app.include_router(coupons_router)
app.include_router(admin_auth_router)
app.include_router(admin_discounts_router)
app.include_router(admin_permissions_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
