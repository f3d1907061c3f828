"""
Resource directory tables.

Buildings, floors, desks and meeting rooms are maintained by the space
management service; the booking service only reads them.
"""
import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from workspace_booking.db import Base


def _new_id():
    return str(uuid.uuid4())


class Building(Base):
    __tablename__ = "buildings"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    name = Column(String(200), nullable=False, index=True)
    address = Column(String(500), nullable=True)

    floors = relationship("Floor", back_populates="building")


class Floor(Base):
    __tablename__ = "floors"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    building_id = Column(String(36), ForeignKey("buildings.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    floor_number = Column(Integer, nullable=False, default=0)

    building = relationship("Building", back_populates="floors")
    desks = relationship("Desk", back_populates="floor")
    meeting_rooms = relationship("MeetingRoom", back_populates="floor")


class Desk(Base):
    __tablename__ = "desks"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    floor_id = Column(String(36), ForeignKey("floors.id"), nullable=False, index=True)
    desk_number = Column(String(50), nullable=False, index=True)
    is_available = Column(Boolean, nullable=False, default=True, index=True)

    floor = relationship("Floor", back_populates="desks")
    bookings = relationship("Booking", back_populates="desk")


class MeetingRoom(Base):
    __tablename__ = "meeting_rooms"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    floor_id = Column(String(36), ForeignKey("floors.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    room_number = Column(String(50), nullable=False, index=True)
    capacity = Column(Integer, nullable=False, default=1)
    is_available = Column(Boolean, nullable=False, default=True, index=True)

    floor = relationship("Floor", back_populates="meeting_rooms")
    bookings = relationship("Booking", back_populates="meeting_room")


RESOURCE_MODELS = {"desk": Desk, "meeting_room": MeetingRoom}
