"""
Schedule (weekly template) schemas.
"""
from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from pydantic import BaseModel, BeforeValidator, Field

from poolroute.models.assignment import AssignmentState, DayOfWeek


def normalize_day(value):
    """Accept day names in any case and with surrounding whitespace."""
    if isinstance(value, str):
        return value.strip().lower()
    return value


# Annotated type for day-of-week fields and query parameters
DayName = Annotated[DayOfWeek, BeforeValidator(normalize_day)]


class AssignmentCreate(BaseModel):
    """Request for adding a client to a technician's weekly route."""
    technician_id: UUID = Field(..., description="Technician ID")
    client_id: UUID = Field(..., description="Client ID")
    day_of_week: DayName = Field(..., description="Day of week (monday..sunday)")


class AssignmentResponse(BaseModel):
    """Schedule assignment response."""
    id: UUID
    technician_id: UUID
    client_id: UUID
    day_of_week: DayOfWeek
    route_order: int
    state: AssignmentState
    disabled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AssignmentReorderRequest(BaseModel):
    """Full new order for one (technician, day) group."""
    technician_id: UUID
    day_of_week: DayName
    ordered_ids: list[UUID] = Field(..., description="Every active assignment id of the group, in visit order")


class AssignmentReorderResponse(BaseModel):
    technician_id: UUID
    day_of_week: DayOfWeek
    items: list[AssignmentResponse]


class ClientSummary(BaseModel):
    """Client directory fields shown in scheduling screens."""
    id: UUID
    name: str
    company_name: Optional[str] = None
    phone: Optional[str] = None
    address: str
    city: Optional[str] = None
    service_day: Optional[DayOfWeek] = None


class AvailableClientsResponse(BaseModel):
    day_of_week: DayOfWeek
    clients: list[ClientSummary]
    total: int


class ScheduledClient(BaseModel):
    """Client slot inside a technician's day."""
    assignment_id: UUID
    client_id: UUID
    client_name: str
    company_name: Optional[str] = None
    phone: Optional[str] = None
    address: str
    city: Optional[str] = None
    route_order: int


class TechnicianDaySchedule(BaseModel):
    technician_id: UUID
    technician_name: str
    clients: list[ScheduledClient]


class DaySchedule(BaseModel):
    day_of_week: DayOfWeek
    technicians: list[TechnicianDaySchedule]


class ScheduleResponse(BaseModel):
    """Active weekly template grouped day -> technician -> ordered clients."""
    days: list[DaySchedule]
    total_assignments: int
