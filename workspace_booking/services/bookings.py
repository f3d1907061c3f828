"""
Booking lifecycle: create, update, cancel, check-in and check-out, plus the
tenant-scoped read projections.

Every mutation runs as one unit of work: the booking (and, for time window
changes, the resource) is loaded under lock, guards are checked, the change
is committed. Any rejection rolls the session back so the stored booking is
left exactly as it was.
"""
import logging
import math
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from workspace_booking.config import Settings, settings
from workspace_booking.db import begin_write
from workspace_booking.errors import (
    BookingError,
    ConflictError,
    InfrastructureError,
    NotFoundError,
    StateError,
    ValidationError,
)
from workspace_booking.models.booking import RELEASED_STATUSES, Booking, BookingStatus
from workspace_booking.models.space import Desk, Floor, MeetingRoom
from workspace_booking.models.user import User  # noqa: F401  (mapper for Booking.user)
from workspace_booking.schemas.booking import (
    AvailabilityRequest,
    AvailabilityResponse,
    BookingCreate,
    BookingResponse,
    BookingSearchRequest,
    BookingUpdate,
)
from workspace_booking.schemas.common import PagedResponse
from workspace_booking.services.availability import AvailabilityChecker
from workspace_booking.utils.clock import utcnow
from workspace_booking.utils.resource_ref import resource_ref_from_ids
from workspace_booking.utils.validation_helpers import validate_date_range, validate_time_window

logger = logging.getLogger(__name__)

CANNOT_UPDATE = {
    BookingStatus.CANCELLED: "Cannot update cancelled booking",
    BookingStatus.CHECKED_OUT: "Cannot update completed booking",
    BookingStatus.NO_SHOW: "Cannot update booking marked as no-show",
}

CANNOT_CANCEL = {
    BookingStatus.CANCELLED: "Booking is already cancelled",
    BookingStatus.CHECKED_OUT: "Cannot cancel completed booking",
    BookingStatus.NO_SHOW: "Cannot cancel booking marked as no-show",
}


def _with_display_data(query):
    return query.options(
        joinedload(Booking.desk).joinedload(Desk.floor).joinedload(Floor.building),
        joinedload(Booking.meeting_room).joinedload(MeetingRoom.floor).joinedload(Floor.building),
        joinedload(Booking.user),
    )


def to_response(booking: Booking) -> BookingResponse:
    """Project a booking with the desk, room, floor, building and requester names."""
    response = BookingResponse.model_validate(booking)
    resource = booking.desk or booking.meeting_room
    floor = resource.floor if resource is not None else None
    response.desk_number = booking.desk.desk_number if booking.desk else None
    response.meeting_room_name = booking.meeting_room.name if booking.meeting_room else None
    response.floor_name = floor.name if floor else None
    response.building_name = floor.building.name if floor and floor.building else None
    if booking.user is not None:
        response.user_name = booking.user.full_name
        response.user_email = booking.user.email
    return response


class BookingService:
    def __init__(self, db: Session, clock=utcnow, config: Settings = settings):
        self.db = db
        self.clock = clock
        self.settings = config
        self.availability = AvailabilityChecker(db)

    @contextmanager
    def _unit_of_work(self, action: str, read_only: bool = False):
        try:
            if not read_only:
                begin_write(self.db)
            yield
            if read_only:
                # end the read transaction so the snapshot is not kept
                self.db.rollback()
            else:
                self.db.commit()
        except BookingError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception(f"Database error while {action}")
            raise InfrastructureError(f"An error occurred while {action}") from exc

    def _owned_booking(self, booking_id: str, tenant_id: str, user_id: str) -> Booking:
        booking = (
            self.db.query(Booking)
            .filter(
                Booking.id == booking_id,
                Booking.tenant_id == tenant_id,
                Booking.user_id == user_id,
            )
            .with_for_update()
            .first()
        )
        if booking is None:
            logger.debug(f"Booking {booking_id} not found for user {user_id} in tenant {tenant_id}")
            raise NotFoundError("Booking not found")
        return booking

    # -- mutations -----------------------------------------------------------

    def create_booking(self, tenant_id: str, user_id: str, request: BookingCreate) -> BookingResponse:
        resource = resource_ref_from_ids(request.desk_id, request.meeting_room_id)
        validate_time_window(request.start_time, request.end_time)

        with self._unit_of_work("creating the booking"):
            self.availability.ensure_available(
                tenant_id, resource, request.booking_date, request.start_time, request.end_time
            )
            now = self.clock()
            booking = Booking(
                tenant_id=tenant_id,
                user_id=user_id,
                booking_date=request.booking_date,
                start_time=request.start_time,
                end_time=request.end_time,
                purpose=request.purpose,
                status=BookingStatus.CONFIRMED,
                created_at=now,
                updated_at=now,
                **resource.columns(),
            )
            self.db.add(booking)
            self.db.flush()
            booking_id = booking.id

        logger.info(f"Booking created: {booking_id} for user {user_id} on {resource.kind} {resource.id}")
        return self.get_booking(booking_id, tenant_id)

    def update_booking(
        self, booking_id: str, tenant_id: str, user_id: str, request: BookingUpdate
    ) -> BookingResponse:
        changes = request.model_dump(exclude_unset=True)

        with self._unit_of_work("updating the booking"):
            booking = self._owned_booking(booking_id, tenant_id, user_id)
            if booking.status in CANNOT_UPDATE:
                raise StateError(CANNOT_UPDATE[booking.status])

            booking_date = changes.get("booking_date") or booking.booking_date
            start_time = changes.get("start_time") or booking.start_time
            end_time = changes.get("end_time") or booking.end_time
            validate_time_window(start_time, end_time)

            window_changed = (
                booking_date != booking.booking_date
                or start_time != booking.start_time
                or end_time != booking.end_time
            )
            if window_changed:
                self.availability.ensure_available(
                    tenant_id,
                    booking.resource,
                    booking_date,
                    start_time,
                    end_time,
                    exclude_booking_id=booking.id,
                )

            booking.booking_date = booking_date
            booking.start_time = start_time
            booking.end_time = end_time
            if changes.get("purpose") is not None:
                booking.purpose = changes["purpose"]
            booking.updated_at = self.clock()

        logger.info(f"Booking updated: {booking_id}")
        return self.get_booking(booking_id, tenant_id)

    def cancel_booking(
        self, booking_id: str, tenant_id: str, user_id: str, reason: Optional[str] = None
    ) -> BookingResponse:
        with self._unit_of_work("cancelling the booking"):
            booking = self._owned_booking(booking_id, tenant_id, user_id)
            if booking.status in CANNOT_CANCEL:
                raise StateError(CANNOT_CANCEL[booking.status])

            now = self.clock()
            booking.status = BookingStatus.CANCELLED
            booking.cancellation_reason = reason
            booking.cancelled_at = now
            booking.updated_at = now

        logger.info(f"Booking cancelled: {booking_id}")
        return self.get_booking(booking_id, tenant_id)

    def check_in(self, booking_id: str, tenant_id: str, user_id: str) -> BookingResponse:
        with self._unit_of_work("checking in"):
            booking = self._owned_booking(booking_id, tenant_id, user_id)
            if booking.status != BookingStatus.CONFIRMED:
                raise StateError(f"Cannot check in. Booking status is {booking.status.value}")

            now = self.clock()
            if booking.booking_date != now.date():
                raise StateError("Can only check in on the booking date")
            self._check_in_window(booking, now)

            booking.status = BookingStatus.CHECKED_IN
            booking.check_in_time = now
            booking.updated_at = now

        logger.info(f"User checked in: {booking_id}")
        return self.get_booking(booking_id, tenant_id)

    def _check_in_window(self, booking: Booking, now: datetime):
        if not self.settings.checkin_window_enforced:
            return
        starts_at = datetime.combine(booking.booking_date, booking.start_time)
        opens_at = starts_at - timedelta(minutes=self.settings.checkin_early_minutes)
        closes_at = starts_at + timedelta(minutes=self.settings.checkin_late_minutes)
        if now < opens_at:
            raise StateError(
                f"Check-in opens {self.settings.checkin_early_minutes} minutes before the booking starts"
            )
        if now > closes_at:
            raise StateError(
                f"Check-in closed {self.settings.checkin_late_minutes} minutes after the booking started"
            )

    def check_out(self, booking_id: str, tenant_id: str, user_id: str) -> BookingResponse:
        with self._unit_of_work("checking out"):
            booking = self._owned_booking(booking_id, tenant_id, user_id)
            if booking.status != BookingStatus.CHECKED_IN:
                raise StateError(
                    f"Can only check out after checking in. Booking status is {booking.status.value}"
                )

            now = self.clock()
            # clock may not have moved since check-in
            if booking.check_in_time is not None and now <= booking.check_in_time:
                now = booking.check_in_time + timedelta(microseconds=1)
            booking.status = BookingStatus.CHECKED_OUT
            booking.check_out_time = now
            booking.updated_at = now

        logger.info(f"User checked out: {booking_id}")
        return self.get_booking(booking_id, tenant_id)

    # -- reads ---------------------------------------------------------------

    def get_booking(self, booking_id: str, tenant_id: str) -> BookingResponse:
        with self._unit_of_work("retrieving the booking", read_only=True):
            booking = (
                _with_display_data(self.db.query(Booking))
                .filter(Booking.id == booking_id, Booking.tenant_id == tenant_id)
                .first()
            )
            if booking is None:
                raise NotFoundError("Booking not found")
            return to_response(booking)

    def _filtered(self, query, search: BookingSearchRequest):
        validate_date_range(search.from_date, search.to_date)
        if search.from_date:
            query = query.filter(Booking.booking_date >= search.from_date)
        if search.to_date:
            query = query.filter(Booking.booking_date <= search.to_date)
        if search.desk_id:
            query = query.filter(Booking.desk_id == search.desk_id)
        if search.meeting_room_id:
            query = query.filter(Booking.meeting_room_id == search.meeting_room_id)
        if search.user_id:
            query = query.filter(Booking.user_id == search.user_id)
        if search.status:
            query = query.filter(Booking.status == search.status)
        return query

    def _paged(self, query, search: BookingSearchRequest) -> PagedResponse[BookingResponse]:
        total_count = query.count()
        bookings = (
            _with_display_data(query)
            .order_by(Booking.booking_date.desc(), Booking.start_time.asc(), Booking.id.asc())
            .offset((search.page_number - 1) * search.page_size)
            .limit(search.page_size)
            .all()
        )
        logger.debug(
            f"Page {search.page_number} of {math.ceil(total_count / search.page_size)}: "
            f"{len(bookings)} bookings"
        )
        return PagedResponse[BookingResponse](
            items=[to_response(b) for b in bookings],
            page_number=search.page_number,
            page_size=search.page_size,
            total_count=total_count,
        )

    def get_user_bookings(
        self, tenant_id: str, user_id: str, search: BookingSearchRequest
    ) -> PagedResponse[BookingResponse]:
        with self._unit_of_work("retrieving bookings", read_only=True):
            query = self.db.query(Booking).filter(
                Booking.tenant_id == tenant_id, Booking.user_id == user_id
            )
            return self._paged(self._filtered(query, search), search)

    def search_bookings(self, tenant_id: str, search: BookingSearchRequest) -> PagedResponse[BookingResponse]:
        with self._unit_of_work("searching bookings", read_only=True):
            query = self.db.query(Booking).filter(Booking.tenant_id == tenant_id)
            return self._paged(self._filtered(query, search), search)

    def get_upcoming_bookings(self, tenant_id: str, user_id: str, days: int = 7) -> List[BookingResponse]:
        if days < 1:
            raise ValidationError("days must be at least 1")
        start_date = self.clock().date()
        end_date = start_date + timedelta(days=days)

        with self._unit_of_work("retrieving upcoming bookings", read_only=True):
            bookings = (
                _with_display_data(self.db.query(Booking))
                .filter(
                    Booking.tenant_id == tenant_id,
                    Booking.user_id == user_id,
                    Booking.booking_date >= start_date,
                    Booking.booking_date < end_date,
                    Booking.status.notin_(RELEASED_STATUSES),
                )
                .order_by(Booking.booking_date.asc(), Booking.start_time.asc(), Booking.id.asc())
                .all()
            )
            return [to_response(b) for b in bookings]

    def check_availability(self, tenant_id: str, request: AvailabilityRequest) -> AvailabilityResponse:
        targets = [request.desk_id, request.meeting_room_id, request.floor_id]
        if sum(target is not None for target in targets) != 1:
            raise ValidationError("Must specify exactly one of desk_id, meeting_room_id or floor_id")
        validate_time_window(request.start_time, request.end_time)

        with self._unit_of_work("checking availability", read_only=True):
            if request.floor_id is not None:
                free = self.availability.available_on_floor(
                    tenant_id,
                    request.floor_id,
                    request.booking_date,
                    request.start_time,
                    request.end_time,
                    request.resource_type,
                )
                noun = "desks" if request.resource_type == "desk" else "meeting rooms"
                return AvailabilityResponse(
                    is_available=bool(free),
                    available_resource_ids=free,
                    message=f"{len(free)} {noun} available",
                )

            resource = resource_ref_from_ids(request.desk_id, request.meeting_room_id)
            try:
                self.availability.ensure_available(
                    tenant_id,
                    resource,
                    request.booking_date,
                    request.start_time,
                    request.end_time,
                    for_update=False,
                )
            except ConflictError as exc:
                if exc.code == ConflictError.NOT_FOUND:
                    raise
                return AvailabilityResponse(is_available=False, message=exc.message)
            return AvailabilityResponse(
                is_available=True,
                available_resource_ids=[resource.id],
                message=f"{resource.label} is available",
            )
