import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from workspace_booking.db import get_db
from workspace_booking.models.booking import BookingStatus
from workspace_booking.schemas.booking import (
    AvailabilityRequest,
    AvailabilityResponse,
    BookingCancel,
    BookingCreate,
    BookingResponse,
    BookingSearchRequest,
    BookingUpdate,
    NoShowSweepResult,
)
from workspace_booking.schemas.common import ApiResponse, PagedResponse
from workspace_booking.services.bookings import BookingService
from workspace_booking.services.no_show import NoShowSweeper
from workspace_booking.utils.auth import CurrentUser, get_current_user, require_roles
from workspace_booking.utils.clock import get_clock

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/bookings",
    tags=["bookings"],
)


def get_booking_service(db: Session = Depends(get_db), clock=Depends(get_clock)):
    return BookingService(db, clock=clock)


@router.post(
    "/",
    response_model=ApiResponse[BookingResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a new booking",
    description="Book a desk or a meeting room for a time window on one date. Requires authentication.",
)
def create_booking(
    booking: BookingCreate,
    service: BookingService = Depends(get_booking_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Create a new booking.

    - **desk_id** / **meeting_room_id**: exactly one resource to book.
    - **booking_date**: calendar date of the booking.
    - **start_time**, **end_time**: time window, end after start.
    - **purpose**: optional free text.

    The booking is confirmed immediately when the resource is free.
    """
    logger.debug(f"Creating booking for user: {current_user.user_id}, tenant: {current_user.tenant_id}")
    created = service.create_booking(current_user.tenant_id, current_user.user_id, booking)
    return ApiResponse[BookingResponse].ok(created, "Booking created successfully")


@router.get(
    "/my-bookings",
    response_model=ApiResponse[PagedResponse[BookingResponse]],
    summary="List my bookings",
    description="Paginated list of the caller's bookings, newest date first.",
)
def get_my_bookings(
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    desk_id: Optional[str] = None,
    meeting_room_id: Optional[str] = None,
    booking_status: Optional[BookingStatus] = Query(default=None, alias="status"),
    page_number: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    service: BookingService = Depends(get_booking_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    search = BookingSearchRequest(
        from_date=from_date,
        to_date=to_date,
        desk_id=desk_id,
        meeting_room_id=meeting_room_id,
        status=booking_status,
        page_number=page_number,
        page_size=page_size,
    )
    page = service.get_user_bookings(current_user.tenant_id, current_user.user_id, search)
    return ApiResponse[PagedResponse[BookingResponse]].ok(page)


@router.get(
    "/upcoming",
    response_model=ApiResponse[List[BookingResponse]],
    summary="List upcoming bookings",
    description="The caller's active bookings from today for the next given number of days.",
)
def get_upcoming_bookings(
    days: int = Query(default=7, ge=1, le=365),
    service: BookingService = Depends(get_booking_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    bookings = service.get_upcoming_bookings(current_user.tenant_id, current_user.user_id, days)
    return ApiResponse[List[BookingResponse]].ok(bookings)


@router.post(
    "/search",
    response_model=ApiResponse[PagedResponse[BookingResponse]],
    summary="Search bookings",
    description="Search all bookings of the tenant. Requires the admin or manager role.",
)
def search_bookings(
    search: BookingSearchRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: CurrentUser = Depends(require_roles("admin", "manager")),
):
    page = service.search_bookings(current_user.tenant_id, search)
    return ApiResponse[PagedResponse[BookingResponse]].ok(page)


@router.post(
    "/check-availability",
    response_model=ApiResponse[AvailabilityResponse],
    summary="Check availability",
    description="Check one desk or meeting room, or list the free resources of a floor, for a time window.",
)
def check_availability(
    request: AvailabilityRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    - **desk_id**, **meeting_room_id** or **floor_id**: exactly one target.
    - **resource_type**: for floor queries, `desk` (default) or `meeting_room`.
    """
    result = service.check_availability(current_user.tenant_id, request)
    return ApiResponse[AvailabilityResponse].ok(result, result.message)


@router.post(
    "/no-show-sweep",
    response_model=ApiResponse[NoShowSweepResult],
    summary="Run the no-show sweep",
    description="Mark today's overdue confirmed bookings as no-show. Requires the admin role.",
)
def run_no_show_sweep(
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
    current_user: CurrentUser = Depends(require_roles("admin")),
):
    logger.info(f"No-show sweep triggered by {current_user.user_id}")
    result = NoShowSweeper(db, clock=clock).run()
    message = "Sweep already running" if result.skipped else f"Marked {result.marked} bookings as no-show"
    return ApiResponse[NoShowSweepResult].ok(result, message)


@router.get(
    "/{booking_id}",
    response_model=ApiResponse[BookingResponse],
    summary="Get a booking by ID",
    description="Retrieve a booking of the caller's tenant.",
)
def get_booking(
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    booking = service.get_booking(booking_id, current_user.tenant_id)
    return ApiResponse[BookingResponse].ok(booking)


@router.put(
    "/{booking_id}",
    response_model=ApiResponse[BookingResponse],
    summary="Update a booking",
    description="Change the date, time window or purpose of one of the caller's bookings.",
)
def update_booking(
    booking_id: str,
    booking_update: BookingUpdate,
    service: BookingService = Depends(get_booking_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Only the fields present in the request are changed. A new date or time
    window is checked against the resource's other bookings.
    """
    updated = service.update_booking(
        booking_id, current_user.tenant_id, current_user.user_id, booking_update
    )
    return ApiResponse[BookingResponse].ok(updated, "Booking updated successfully")


@router.post(
    "/{booking_id}/cancel",
    response_model=ApiResponse[BookingResponse],
    summary="Cancel a booking",
    description="Cancel one of the caller's bookings, optionally with a reason.",
)
def cancel_booking(
    booking_id: str,
    request: Optional[BookingCancel] = Body(default=None),
    service: BookingService = Depends(get_booking_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    reason = request.reason if request else None
    cancelled = service.cancel_booking(
        booking_id, current_user.tenant_id, current_user.user_id, reason
    )
    return ApiResponse[BookingResponse].ok(cancelled, "Booking cancelled successfully")


@router.post(
    "/{booking_id}/check-in",
    response_model=ApiResponse[BookingResponse],
    summary="Check in",
    description="Check in to a confirmed booking on its date.",
)
def check_in(
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    booking = service.check_in(booking_id, current_user.tenant_id, current_user.user_id)
    return ApiResponse[BookingResponse].ok(booking, "Checked in successfully")


@router.post(
    "/{booking_id}/check-out",
    response_model=ApiResponse[BookingResponse],
    summary="Check out",
    description="Check out of a booking the caller has checked in to.",
)
def check_out(
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    booking = service.check_out(booking_id, current_user.tenant_id, current_user.user_id)
    return ApiResponse[BookingResponse].ok(booking, "Checked out successfully")
