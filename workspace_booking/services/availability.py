"""
Availability checks for desks and meeting rooms.

A window is free when no booking of the same tenant, resource and date that
still holds its slot overlaps it. Windows are half-open, so 09:00-10:00 and
10:00-11:00 do not conflict.
"""
import logging
from datetime import date, time
from typing import List, Optional

from sqlalchemy.orm import Session

from workspace_booking.errors import ConflictError
from workspace_booking.models.booking import RELEASED_STATUSES, Booking
from workspace_booking.models.space import RESOURCE_MODELS, Floor
from workspace_booking.utils.resource_ref import ResourceRef

logger = logging.getLogger(__name__)


def _resource_column(resource_type):
    return Booking.desk_id if resource_type == "desk" else Booking.meeting_room_id


class AvailabilityChecker:
    """Read-only conflict detection; callers own the transaction."""

    def __init__(self, db: Session):
        self.db = db

    def _overlapping(self, tenant_id: str, booking_date: date, start_time: time, end_time: time):
        return self.db.query(Booking).filter(
            Booking.tenant_id == tenant_id,
            Booking.booking_date == booking_date,
            Booking.status.notin_(RELEASED_STATUSES),
            Booking.start_time < end_time,
            Booking.end_time > start_time,
        )

    def find_conflicts(
        self,
        tenant_id: str,
        resource: ResourceRef,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        query = self._overlapping(tenant_id, booking_date, start_time, end_time).filter(
            _resource_column(resource.kind) == resource.id
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.order_by(Booking.start_time).all()

    def lock_resource(self, tenant_id: str, resource: ResourceRef, for_update: bool = True):
        """Load the resource row, locking it for the rest of the transaction."""
        model = RESOURCE_MODELS[resource.kind]
        query = self.db.query(model).filter(model.id == resource.id, model.tenant_id == tenant_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def ensure_available(
        self,
        tenant_id: str,
        resource: ResourceRef,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
        for_update: bool = True,
    ):
        """Raise ConflictError unless the resource can take the window."""
        record = self.lock_resource(tenant_id, resource, for_update=for_update)
        if record is None:
            raise ConflictError(f"{resource.label} not found", ConflictError.NOT_FOUND)
        if not record.is_available:
            raise ConflictError(f"{resource.label} is not available", ConflictError.UNAVAILABLE)

        conflicts = self.find_conflicts(
            tenant_id, resource, booking_date, start_time, end_time, exclude_booking_id
        )
        if conflicts:
            logger.debug(
                f"{resource.label} {resource.id} on {booking_date} {start_time}-{end_time} "
                f"overlaps bookings {[b.id for b in conflicts]}"
            )
            raise ConflictError(
                "Resource is already booked for the selected time slot",
                ConflictError.TIME_SLOT_TAKEN,
            )
        return record

    def is_available(
        self,
        tenant_id: str,
        resource: ResourceRef,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        try:
            self.ensure_available(
                tenant_id,
                resource,
                booking_date,
                start_time,
                end_time,
                exclude_booking_id,
                for_update=False,
            )
        except ConflictError:
            return False
        return True

    def available_on_floor(
        self,
        tenant_id: str,
        floor_id: str,
        booking_date: date,
        start_time: time,
        end_time: time,
        resource_type: str = "desk",
    ) -> List[str]:
        """Ids of enabled resources on the floor that are free for the whole window."""
        floor = self.db.query(Floor).filter(Floor.id == floor_id, Floor.tenant_id == tenant_id).first()
        if floor is None:
            raise ConflictError("Floor not found", ConflictError.NOT_FOUND)

        column = _resource_column(resource_type)
        booked_ids = {
            row[0]
            for row in self._overlapping(tenant_id, booking_date, start_time, end_time)
            .filter(column.isnot(None))
            .with_entities(column)
            .all()
        }

        model = RESOURCE_MODELS[resource_type]
        candidates = (
            self.db.query(model.id)
            .filter(
                model.tenant_id == tenant_id,
                model.floor_id == floor_id,
                model.is_available.is_(True),
            )
            .order_by(model.id)
            .all()
        )
        free = [row[0] for row in candidates if row[0] not in booked_ids]
        logger.debug(f"{len(free)} of {len(candidates)} {resource_type}s free on floor {floor_id}")
        return free

