"""Campus Notes Hub – signup verification API (FastAPI application)."""
# Load .env before any app code that might read config
from dotenv import load_dotenv
from pathlib import Path
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.database import Base, engine
# Import models so Base.metadata has all tables before create_all (schema source of truth)
from app.models import User, PendingRegistration, AuthAttempt, AuditLog  # noqa: F401
from app.routers import auth
from app.services.errors import AuthServiceError

log = logging.getLogger("uvicorn.error")

settings = get_settings()
app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)


@app.exception_handler(AuthServiceError)
async def auth_service_error_handler(request: Request, exc: AuthServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.on_event("startup")
def startup():
    if settings.mailgun_api_key and settings.mailgun_domain:
        log.info("[Mailgun] Using domain=%s for verification emails", settings.mailgun_domain)
    elif settings.sendgrid_api_key:
        log.info("[SendGrid] Using SendGrid for verification emails")
    else:
        log.warning("No email provider configured - signup codes cannot be sent; set MAILGUN_API_KEY and MAILGUN_DOMAIN in .env")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        log.warning("Database startup failed (tables skipped). Check DATABASE_URL and network. Error: %s", e)

    if settings.cleanup_cron_enabled:
        from apscheduler.schedulers.background import BackgroundScheduler
        from app.services.otp_cleanup import run_otp_cleanup_job

        scheduler = BackgroundScheduler()
        scheduler.add_job(run_otp_cleanup_job, "interval", minutes=settings.cleanup_interval_minutes)
        scheduler.start()
        app.state.scheduler = scheduler


@app.on_event("shutdown")
def shutdown():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown(wait=False)


@app.get("/")
def root():
    return {"app": settings.app_name, "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
