import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from dental_booking.core.settings import settings, validate_settings
from dental_booking.db.session import engine
from dental_booking.models import Base
from dental_booking.routers.appointments import router as appointments_router
from dental_booking.routers.settings import router as settings_router
from dental_booking.services.errors import SchedulingError

app = FastAPI(title="Dental Booking API", version="0.1.0")
logger = logging.getLogger("dental_booking.startup")


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s",
            exc.code,
            request.method,
            request.url.path,
            exc.detail,
            extra={"request_id": request.headers.get("request-id")},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request", "code": "validation_error", "errors": errors},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = request.headers.get("request-id")
    logger.exception("Unhandled server error", extra={"request_id": request_id})
    payload = {"detail": "Internal server error"}
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=500, content=payload)


@app.on_event("startup")
def startup():
    validate_settings(settings)
    Base.metadata.create_all(bind=engine)
    logger.info(
        "Booking engine ready (timezone %s, hours %s-%s, step %s min).",
        settings.clinic_timezone,
        settings.business_open.strftime("%H:%M"),
        settings.business_close.strftime("%H:%M"),
        settings.slot_step_minutes,
    )


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(appointments_router)
app.include_router(settings_router)
