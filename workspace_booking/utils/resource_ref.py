from dataclasses import dataclass
from typing import Optional, Union

from workspace_booking.errors import ValidationError


@dataclass(frozen=True)
class DeskRef:
    id: str

    kind = "desk"
    label = "Desk"

    def columns(self):
        return {"desk_id": self.id, "meeting_room_id": None}


@dataclass(frozen=True)
class MeetingRoomRef:
    id: str

    kind = "meeting_room"
    label = "Meeting room"

    def columns(self):
        return {"desk_id": None, "meeting_room_id": self.id}


ResourceRef = Union[DeskRef, MeetingRoomRef]


def resource_ref_from_ids(desk_id: Optional[str], meeting_room_id: Optional[str]) -> ResourceRef:
    """Build the reference for a booking request; exactly one id must be given."""
    if desk_id is None and meeting_room_id is None:
        raise ValidationError("Either desk_id or meeting_room_id must be provided")
    if desk_id is not None and meeting_room_id is not None:
        raise ValidationError("Cannot book both desk and meeting room")
    if desk_id is not None:
        return DeskRef(desk_id)
    return MeetingRoomRef(meeting_room_id)
