from datetime import date, datetime, time
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from workspace_booking.models.booking import BookingStatus


class BookingCreate(BaseModel):
    desk_id: Optional[str] = None
    meeting_room_id: Optional[str] = None
    booking_date: date
    start_time: time
    end_time: time
    purpose: Optional[str] = Field(default=None, max_length=500)


class BookingUpdate(BaseModel):
    booking_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    purpose: Optional[str] = Field(default=None, max_length=500)


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class BookingSearchRequest(BaseModel):
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    desk_id: Optional[str] = None
    meeting_room_id: Optional[str] = None
    user_id: Optional[str] = None
    status: Optional[BookingStatus] = None
    page_number: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class AvailabilityRequest(BaseModel):
    booking_date: date
    start_time: time
    end_time: time
    desk_id: Optional[str] = None
    meeting_room_id: Optional[str] = None
    floor_id: Optional[str] = None
    resource_type: Literal["desk", "meeting_room"] = "desk"


class AvailabilityResponse(BaseModel):
    is_available: bool
    message: Optional[str] = None
    available_resource_ids: List[str] = Field(default_factory=list)


class BookingResponse(BaseModel):
    id: str
    user_id: str
    desk_id: Optional[str] = None
    meeting_room_id: Optional[str] = None
    booking_date: date
    start_time: time
    end_time: time
    status: BookingStatus
    purpose: Optional[str] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    is_no_show: bool = False
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    # denormalized for display
    desk_number: Optional[str] = None
    meeting_room_name: Optional[str] = None
    floor_name: Optional[str] = None
    building_name: Optional[str] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class NoShowSweepResult(BaseModel):
    marked: int = 0
    tenants_processed: int = 0
    failed_tenants: List[str] = Field(default_factory=list)
    skipped: bool = False
