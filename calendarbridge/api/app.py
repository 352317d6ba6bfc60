"""
HTTP endpoints the voice assistant calls as tools.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..domain.exceptions import CalendarBridgeError, InvalidRequest
from ..services.booking_service import BookingDetails, BookingService

logger = logging.getLogger(__name__)


class CreateBookingRequest(BaseModel):
    business_id: str
    program_id: Optional[str] = None
    date: str
    time: str
    duration_minutes: Optional[int] = None
    patient_name: Optional[str] = None
    service: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None


class CheckAvailabilityRequest(BaseModel):
    business_id: str
    program_id: Optional[str] = None
    date: str
    time: str
    duration_minutes: Optional[int] = None


class RescheduleBookingRequest(BaseModel):
    business_id: str
    program_id: Optional[str] = None
    event_id: str
    new_date: str
    new_time: str
    duration_minutes: Optional[int] = None


class CancelBookingRequest(BaseModel):
    business_id: str
    program_id: Optional[str] = None
    event_id: str
    reason: Optional[str] = None


def _error_response(status_code: int, error: str, details: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "details": details})


def build_router(service: BookingService) -> APIRouter:
    """Create the ``/api/calendar`` routes bound to ``service``."""
    router = APIRouter(prefix="/api/calendar", tags=["calendar"])

    @router.post("/create-booking")
    def create_booking(data: CreateBookingRequest) -> Dict[str, Any]:
        """Create a new event in the connected calendar."""
        result = service.create_booking(
            business_id=data.business_id,
            program_id=data.program_id,
            date=data.date,
            time=data.time,
            duration_minutes=data.duration_minutes,
            details=BookingDetails(
                patient_name=data.patient_name,
                service=data.service,
                phone=data.phone,
                email=data.email,
                notes=data.notes,
            ),
        )
        return {"success": True, **result.to_dict()}

    @router.post("/check-availability")
    def check_availability(data: CheckAvailabilityRequest) -> Dict[str, Any]:
        """Check a slot and offer up to three alternatives when it is taken."""
        result = service.check_availability(
            business_id=data.business_id,
            program_id=data.program_id,
            date=data.date,
            time=data.time,
            duration_minutes=data.duration_minutes,
        )
        return result.to_dict()

    @router.post("/reschedule-booking")
    def reschedule_booking(data: RescheduleBookingRequest) -> Dict[str, Any]:
        """Move an existing event to a new date/time."""
        result = service.reschedule_booking(
            business_id=data.business_id,
            program_id=data.program_id,
            event_id=data.event_id,
            new_date=data.new_date,
            new_time=data.new_time,
            duration_minutes=data.duration_minutes,
        )
        body = result.to_dict()
        return {
            "success": True,
            "event_id": body["event_id"],
            "event_link": body["event_link"],
            "new_start_time": body["start_time"],
            "new_end_time": body["end_time"],
            "provider": body["provider"],
        }

    @router.post("/cancel-booking")
    def cancel_booking(data: CancelBookingRequest) -> Dict[str, Any]:
        """Cancel an event, marking it cancelled where the provider allows."""
        result = service.cancel_booking(
            business_id=data.business_id,
            program_id=data.program_id,
            event_id=data.event_id,
            reason=data.reason,
        )
        return {"success": True, **result.to_dict()}

    return router


def create_app(service: BookingService) -> FastAPI:
    """Build the FastAPI application around a configured booking service."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        service.close()

    app = FastAPI(title="calendarbridge", version=__version__, lifespan=lifespan)
    app.include_router(build_router(service))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        missing = [
            ".".join(str(part) for part in error["loc"] if part != "body")
            for error in exc.errors()
        ]
        return _error_response(400, InvalidRequest.error, f"Invalid or missing fields: {', '.join(missing)}")

    @app.exception_handler(CalendarBridgeError)
    async def calendar_error_handler(request: Request, exc: CalendarBridgeError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error_response(exc.status_code, exc.error, exc.message)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unexpected error handling %s %s", request.method, request.url.path)
        return _error_response(500, CalendarBridgeError.error, str(exc))

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok", "version": __version__}

    return app
