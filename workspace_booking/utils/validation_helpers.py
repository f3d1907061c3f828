from workspace_booking.errors import ValidationError


def validate_time_window(start_time, end_time):
    if start_time is None or end_time is None:
        raise ValidationError("Start time and end time are required")
    if end_time <= start_time:
        raise ValidationError("End time must be after start time")
    return start_time, end_time


def validate_date_range(from_date, to_date):
    if from_date and to_date and to_date < from_date:
        raise ValidationError("to_date must not be before from_date")
    return from_date, to_date
