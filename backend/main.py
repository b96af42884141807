import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Load env from backend/.env
backend_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(backend_dir, ".env"))

from backend.core.config import settings, validate_config  # noqa: E402
from backend.core.logging import configure_logging  # noqa: E402
from backend.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from backend.core.middleware.metrics import MetricsMiddleware  # noqa: E402
from backend.core.validation import validate_env  # noqa: E402
from backend.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from backend.core.database import create_all_tables  # noqa: E402
from backend.api import cron, groups, health, metrics, posts, streaks  # noqa: E402

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("gymbro")
    logger.info("Starting GymBro backend...")
    if settings.ENV.lower() != "production":
        # Production schemas are managed out of band; dev and test create on boot.
        try:
            create_all_tables()
        except Exception as e:
            logger.warning(f"Could not create tables on startup: {e}")
    try:
        yield
    finally:
        logging.getLogger("gymbro").info("Stopping GymBro backend...")


app = FastAPI(title="GymBro - Backend", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(MetricsMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(groups.router, tags=["groups"])
app.include_router(posts.router, tags=["posts"])
app.include_router(streaks.router, tags=["streaks"])
app.include_router(cron.router, tags=["cron"])
app.include_router(health.root_router, tags=["health"])
app.include_router(metrics.router, tags=["metrics"])
