"""
Scheduling Exceptions

Custom exceptions for scheduling operations and the DRF handler that renders
them. Expected empty results (no occurrences, no slots, unknown booking ids on
cancel/reschedule) are never reported through these.
"""

import logging
from typing import Any, Dict, Optional

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class SchedulingError(Exception):
    """Base exception for scheduling errors."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        code: str = "SCHEDULING_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ServiceNotFoundError(SchedulingError):
    """Raised when a (kind, id) reference does not resolve to a catalog item."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, kind: str, service_id: int):
        super().__init__(
            message=f"No {kind} with id {service_id}",
            code="SERVICE_NOT_FOUND",
            details={"service_type": str(kind), "service_id": service_id}
        )


class ServiceUnavailableError(SchedulingError):
    """Raised when booking a catalog item that is paused."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, kind: str, service_id: int):
        super().__init__(
            message=f"The {kind} with id {service_id} is not currently bookable",
            code="SERVICE_UNAVAILABLE",
            details={"service_type": str(kind), "service_id": service_id}
        )


class SlotUnavailableError(SchedulingError):
    """Raised when the requested appointment slot is no longer open."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, service_id: int, event_date, slot_label: str):
        super().__init__(
            message=f"Slot {slot_label} on {event_date} is not available",
            code="SLOT_UNAVAILABLE",
            details={
                "service_id": service_id,
                "event_date": str(event_date),
                "slot": slot_label,
            }
        )


class DateNotOfferedError(SchedulingError):
    """Raised when a session or class is booked on a date it is not held."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, kind: str, service_id: int, event_date, message: str = None):
        super().__init__(
            message=message or f"The {kind} with id {service_id} is not held on {event_date}",
            code="DATE_NOT_OFFERED",
            details={
                "service_type": str(kind),
                "service_id": service_id,
                "event_date": str(event_date),
            }
        )


class ReschedulePolicyError(SchedulingError):
    """Raised by callers that refuse a reschedule outside the policy window."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, booking_id: int, message: str = None):
        super().__init__(
            message=message or f"Booking {booking_id} can no longer be rescheduled",
            code="RESCHEDULE_NOT_ALLOWED",
            details={"booking_id": booking_id}
        )


class InvalidDateRangeError(SchedulingError):
    """Raised when a date range ends before it starts."""

    def __init__(self, start, end):
        super().__init__(
            message="Range start must not be after range end",
            code="INVALID_DATE_RANGE",
            details={"start": str(start), "end": str(end)}
        )


def scheduling_exception_handler(exc, context) -> Optional[Response]:
    """
    DRF exception handler.

    Renders SchedulingError subclasses with their own status code and
    defers everything else to DRF's default handler.
    """
    if isinstance(exc, SchedulingError):
        logger.info(f"Request rejected: {exc.code} ({exc.message})")
        return Response(exc.to_dict(), status=exc.status_code)

    return exception_handler(exc, context)
