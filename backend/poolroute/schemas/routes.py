"""
Route generation, field execution and dispatch view schemas.
"""
from datetime import date, datetime, timedelta
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from poolroute.models.assignment import DayOfWeek
from poolroute.models.route import RouteStatus, StopStatus


# ============================================================
# Generation
# ============================================================


class GenerateRoutesRequest(BaseModel):
    """
    Request for materializing routes.

    Either an explicit inclusive range or ``week_start`` (seven days from that date).
    """
    date_range_start: Optional[date] = Field(None, description="First date to generate")
    date_range_end: Optional[date] = Field(None, description="Last date to generate (inclusive)")
    week_start: Optional[date] = Field(None, description="Generate seven days starting here")
    technician_id: Optional[UUID] = Field(None, description="Limit generation to one technician")

    @model_validator(mode="after")
    def resolve_range(self) -> "GenerateRoutesRequest":
        if self.date_range_start is None and self.week_start is None:
            raise ValueError("date_range_start or week_start is required")
        if self.date_range_start is None:
            self.date_range_start = self.week_start
            self.date_range_end = self.week_start + timedelta(days=6)
        elif self.date_range_end is None:
            self.date_range_end = self.date_range_start
        return self


class GenerationError(BaseModel):
    date: date
    technician_id: Optional[UUID] = None
    error: str


class GenerateRoutesResponse(BaseModel):
    """Outcome of a generation run; ``skipped`` counts routes that already existed."""
    start: date
    end: date
    dates: int
    created: int
    skipped: int
    errors: list[GenerationError]
    created_instance_ids: list[UUID]


# ============================================================
# Views
# ============================================================


class ProgressResponse(BaseModel):
    """Completed stops over all stops; skipped stops count only in the total."""
    total: int
    completed: int
    skipped: int
    percentage: int


class RouteStopResponse(BaseModel):
    """Stop with client fields denormalized for field display."""
    id: UUID
    route_instance_id: UUID
    client_id: UUID
    sequence_order: int
    status: StopStatus
    skip_reason: Optional[str] = None
    notes: Optional[str] = None
    actual_arrival: Optional[datetime] = None
    actual_departure: Optional[datetime] = None
    service_record_id: Optional[UUID] = None

    client_name: str
    company_name: Optional[str] = None
    phone: Optional[str] = None
    address: str
    city: Optional[str] = None
    gate_code: Optional[str] = None
    access_notes: Optional[str] = None


class RouteInstanceResponse(BaseModel):
    id: UUID
    technician_id: UUID
    technician_name: Optional[str] = None
    route_date: date
    day_of_week: DayOfWeek
    status: RouteStatus
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    version: int
    progress: ProgressResponse


class RouteViewResponse(BaseModel):
    """A technician's route for one date; ``route`` is null when nothing was generated."""
    date: date
    technician_id: UUID
    route: Optional[RouteInstanceResponse] = None
    stops: list[RouteStopResponse]
    message: Optional[str] = None


class RouteSummaryResponse(BaseModel):
    """Route without stop detail."""
    id: UUID
    technician_id: UUID
    technician_name: Optional[str] = None
    route_date: date
    day_of_week: DayOfWeek
    status: RouteStatus
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_stops: int
    completed_stops: int
    skipped_stops: int


class RouteHistoryResponse(BaseModel):
    items: list[RouteSummaryResponse]
    total: int
    limit: int


class RouteListResponse(BaseModel):
    items: list[RouteSummaryResponse]
    total: int
    start: Optional[date] = None
    end: Optional[date] = None


class WeekDaySummary(BaseModel):
    date: date
    day_of_week: DayOfWeek
    route_instance_id: Optional[UUID] = None
    status: Optional[RouteStatus] = None
    total_stops: int
    completed_stops: int


class WeekSummaryResponse(BaseModel):
    technician_id: UUID
    week_start: date
    days: list[WeekDaySummary]


class ClientVisitResponse(BaseModel):
    """One past or planned visit to a client."""
    stop_id: UUID
    route_instance_id: UUID
    route_date: date
    route_status: RouteStatus
    technician_id: UUID
    technician_name: Optional[str] = None
    status: StopStatus
    skip_reason: Optional[str] = None
    actual_arrival: Optional[datetime] = None
    actual_departure: Optional[datetime] = None


class ClientHistoryResponse(BaseModel):
    client_id: UUID
    items: list[ClientVisitResponse]
    total: int


# ============================================================
# Field actions
# ============================================================


class CompleteStopRequest(BaseModel):
    notes: Optional[str] = None
    service_record_id: Optional[UUID] = Field(None, description="Visit record created by the service app")


class SkipStopRequest(BaseModel):
    skip_reason: str = Field(..., max_length=500, description="Why the visit did not happen")
    notes: Optional[str] = None


class StopActionResponse(BaseModel):
    """``changed`` is false when the request was already satisfied (e.g. starting a started stop)."""
    stop: RouteStopResponse
    route_status: RouteStatus
    changed: bool


class ReorderStopsRequest(BaseModel):
    ordered_stop_ids: list[UUID] = Field(..., description="Every stop of the route, in visit order")
    expected_version: Optional[int] = Field(None, ge=0, description="Reject if the route changed since this version")


class ReorderStopsResponse(BaseModel):
    route_instance_id: UUID
    version: int
    stops: list[RouteStopResponse]


class RouteNotesUpdate(BaseModel):
    notes: Optional[str] = None
