import enum
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Time,
)
from sqlalchemy.orm import relationship

from workspace_booking.db import Base
from workspace_booking.utils.clock import utcnow
from workspace_booking.utils.resource_ref import DeskRef, MeetingRoomRef


class BookingStatus(str, enum.Enum):
    """
    Booking lifecycle states.

    Create -> CONFIRMED -> CHECKED_IN -> CHECKED_OUT, with CANCELLED reachable
    from any non-terminal state and NO_SHOW set by the sweep on CONFIRMED
    bookings nobody checked into. PENDING is reserved for an approval step
    and never produced by the API.
    """

    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CHECKED_IN = "CheckedIn"
    CHECKED_OUT = "CheckedOut"
    CANCELLED = "Cancelled"
    NO_SHOW = "NoShow"

    @property
    def is_terminal(self):
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {BookingStatus.CANCELLED, BookingStatus.CHECKED_OUT, BookingStatus.NO_SHOW}
)

# bookings in these states no longer hold their slot
RELEASED_STATUSES = (BookingStatus.CANCELLED, BookingStatus.NO_SHOW)


def _new_id():
    return str(uuid.uuid4())


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    desk_id = Column(String(36), ForeignKey("desks.id"), nullable=True, index=True)
    meeting_room_id = Column(String(36), ForeignKey("meeting_rooms.id"), nullable=True, index=True)
    booking_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(
        Enum(
            BookingStatus,
            native_enum=False,
            length=20,
            validate_strings=True,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )
    purpose = Column(String(500), nullable=True)
    check_in_time = Column(DateTime, nullable=True)
    check_out_time = Column(DateTime, nullable=True)
    is_no_show = Column(Boolean, nullable=False, default=False)
    cancellation_reason = Column(String(500), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    desk = relationship("Desk", back_populates="bookings")
    meeting_room = relationship("MeetingRoom", back_populates="bookings")
    # users live in the identity provider's directory, so no foreign key
    user = relationship(
        "User",
        primaryjoin="foreign(Booking.user_id) == User.id",
        viewonly=True,
        uselist=False,
    )

    __table_args__ = (
        CheckConstraint(
            "(desk_id IS NULL) <> (meeting_room_id IS NULL)",
            name="ck_booking_single_resource",
        ),
        CheckConstraint("end_time > start_time", name="ck_booking_time_window"),
        Index("ix_bookings_date_status", "booking_date", "status"),
    )

    @property
    def resource(self):
        if self.desk_id is not None:
            return DeskRef(self.desk_id)
        return MeetingRoomRef(self.meeting_room_id)

    def __repr__(self):
        return f"<Booking(id={self.id}, status={self.status}, date={self.booking_date})>"
