"""Core business logic: availability engine plus Supabase-backed data access."""

from .errors import (
    AvailabilityError,
    InvalidRange,
    InvalidDay,
    InvalidParameter,
)

from .availability import (
    ScheduleType,
    CoverageNote,
    Interval,
    FreeWindow,
    WeeklyCalendar,
    AvailabilityResult,
    overlaps,
    parse_time_of_day,
    format_time_of_day,
    interval_from_row,
    resolve,
    compute_mutual_availability,
)

from .schemas import (
    ConnectionStatus,
    TravelMode,
    PublicProfile,
    UserProfile,
    ProfileUpdate,
    Connection,
    ConnectionView,
    ScheduleEntry,
    ScheduleEntryInput,
    TravelPlan,
    TravelPlanInput,
    TravelSearchRequest,
    TravelEstimateRequest,
    TravelEstimate,
)

__all__ = [
    # Errors
    "AvailabilityError",
    "InvalidRange",
    "InvalidDay",
    "InvalidParameter",
    # Availability engine
    "ScheduleType",
    "CoverageNote",
    "Interval",
    "FreeWindow",
    "WeeklyCalendar",
    "AvailabilityResult",
    "overlaps",
    "parse_time_of_day",
    "format_time_of_day",
    "interval_from_row",
    "resolve",
    "compute_mutual_availability",
    # Schemas
    "ConnectionStatus",
    "TravelMode",
    "PublicProfile",
    "UserProfile",
    "ProfileUpdate",
    "Connection",
    "ConnectionView",
    "ScheduleEntry",
    "ScheduleEntryInput",
    "TravelPlan",
    "TravelPlanInput",
    "TravelSearchRequest",
    "TravelEstimateRequest",
    "TravelEstimate",
]
