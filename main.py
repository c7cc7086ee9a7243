from __future__ import annotations

import logging
import os

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from database import Base, engine
from routers.auth import router as auth_router
from services.exceptions import AuthServiceError, ValidationError
from utils.otp_service import get_otp_store


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

OTP_SWEEP_SECONDS = int(os.getenv("OTP_SWEEP_SECONDS", "60"))

app = FastAPI(title="Accounts Backend")

# Create tables (simple projects; for production use migrations).
Base.metadata.create_all(bind=engine)

app.include_router(auth_router)


@app.exception_handler(AuthServiceError)
def _auth_service_error(request: Request, exc: AuthServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
def _request_validation_error(request: Request, exc: RequestValidationError):
    # Malformed bodies are reported like any other invalid input.
    logger.debug("Rejected body on %s %s: %s", request.method, request.url.path, exc.errors())
    error = ValidationError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
def _unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"kind": "internal", "message": "Server error"})


def _sweep_expired_otps() -> int:
    """Drop expired codes from the process OTP store."""
    return get_otp_store().sweep()


@app.on_event("startup")
def _start_scheduler():
    sched = BackgroundScheduler(timezone=os.getenv("TZ", "UTC"))
    sched.add_job(
        _sweep_expired_otps,
        "interval",
        seconds=OTP_SWEEP_SECONDS,
        id="sweep_expired_otps",
        replace_existing=True,
    )
    sched.start()
    app.state._scheduler = sched


@app.on_event("shutdown")
def _stop_scheduler():
    sched = getattr(app.state, "_scheduler", None)
    if sched:
        sched.shutdown(wait=False)


@app.get("/")
def root():
    return {"status": "Backend running"}
