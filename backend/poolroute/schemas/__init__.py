"""
Pydantic schemas for API request/response models.
"""

from poolroute.schemas.routes import (
    ClientHistoryResponse,
    CompleteStopRequest,
    GenerateRoutesRequest,
    GenerateRoutesResponse,
    ProgressResponse,
    ReorderStopsRequest,
    ReorderStopsResponse,
    RouteHistoryResponse,
    RouteInstanceResponse,
    RouteListResponse,
    RouteNotesUpdate,
    RouteStopResponse,
    RouteSummaryResponse,
    RouteViewResponse,
    SkipStopRequest,
    StopActionResponse,
    WeekSummaryResponse,
)
from poolroute.schemas.schedule import (
    AssignmentCreate,
    AssignmentReorderRequest,
    AssignmentReorderResponse,
    AssignmentResponse,
    AvailableClientsResponse,
    ClientSummary,
    ScheduleResponse,
)

__all__ = [
    "AssignmentCreate",
    "AssignmentReorderRequest",
    "AssignmentReorderResponse",
    "AssignmentResponse",
    "AvailableClientsResponse",
    "ClientSummary",
    "ScheduleResponse",
    "ClientHistoryResponse",
    "CompleteStopRequest",
    "GenerateRoutesRequest",
    "GenerateRoutesResponse",
    "ProgressResponse",
    "ReorderStopsRequest",
    "ReorderStopsResponse",
    "RouteHistoryResponse",
    "RouteInstanceResponse",
    "RouteListResponse",
    "RouteNotesUpdate",
    "RouteStopResponse",
    "RouteSummaryResponse",
    "RouteViewResponse",
    "SkipStopRequest",
    "StopActionResponse",
    "WeekSummaryResponse",
]
