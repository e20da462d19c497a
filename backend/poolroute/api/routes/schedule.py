"""
Schedule API routes: the weekly template office staff maintain.
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from poolroute.core.database import get_db
from poolroute.core.rate_limit import RateLimits, limiter
from poolroute.core.security import Identity, require_admin
from poolroute.schemas.schedule import (
    AssignmentCreate,
    AssignmentReorderRequest,
    AssignmentReorderResponse,
    AssignmentResponse,
    AvailableClientsResponse,
    ClientSummary,
    DayName,
    DaySchedule,
    ScheduledClient,
    ScheduleResponse,
    TechnicianDaySchedule,
)
from poolroute.services.schedule_store import ScheduleStore

router = APIRouter(prefix="/schedule", tags=["schedule"])


def get_schedule_store(db: AsyncSession = Depends(get_db)) -> ScheduleStore:
    return ScheduleStore(db)


@router.get("", response_model=ScheduleResponse)
async def get_schedule(
    technician_id: Optional[UUID] = Query(None, description="Only this technician"),
    identity: Identity = Depends(require_admin),
    store: ScheduleStore = Depends(get_schedule_store),
) -> ScheduleResponse:
    """
    Active weekly template.

    Grouped by day (Monday first), then by technician, with clients in
    route order.
    """
    grouped = await store.list_schedule(identity, technician_id)

    days = []
    total = 0
    for day, technicians in grouped.items():
        technician_schedules = []
        for rows in technicians.values():
            technician = rows[0][2]
            technician_schedules.append(TechnicianDaySchedule(
                technician_id=technician.id,
                technician_name=technician.display_name,
                clients=[
                    ScheduledClient(
                        assignment_id=assignment.id,
                        client_id=client.id,
                        client_name=client.display_name,
                        company_name=client.company_name,
                        phone=client.phone,
                        address=client.address,
                        city=client.city,
                        route_order=assignment.route_order,
                    )
                    for assignment, client, _ in rows
                ],
            ))
            total += len(rows)
        days.append(DaySchedule(day_of_week=day, technicians=technician_schedules))

    return ScheduleResponse(days=days, total_assignments=total)


@router.post("/assignment", response_model=AssignmentResponse, status_code=201)
@limiter.limit(RateLimits.SCHEDULE_WRITE)
async def add_assignment(
    request: Request,
    payload: AssignmentCreate,
    identity: Identity = Depends(require_admin),
    store: ScheduleStore = Depends(get_schedule_store),
) -> AssignmentResponse:
    """
    Add a client to the end of a technician's day.

    Re-adding a previously removed assignment reactivates it.
    """
    assignment = await store.add_assignment(
        identity,
        technician_id=payload.technician_id,
        client_id=payload.client_id,
        day_of_week=payload.day_of_week,
    )
    return AssignmentResponse.model_validate(assignment)


@router.delete("/assignment/{assignment_id}", response_model=AssignmentResponse)
@limiter.limit(RateLimits.SCHEDULE_WRITE)
async def remove_assignment(
    request: Request,
    assignment_id: UUID,
    hard: bool = Query(False, description="Delete the row instead of disabling it"),
    identity: Identity = Depends(require_admin),
    store: ScheduleStore = Depends(get_schedule_store),
) -> AssignmentResponse:
    """Remove an assignment from the template; routes already generated are kept."""
    assignment = await store.remove_assignment(identity, assignment_id, hard=hard)
    return AssignmentResponse.model_validate(assignment)


@router.put("/assignment/reorder", response_model=AssignmentReorderResponse)
@limiter.limit(RateLimits.SCHEDULE_WRITE)
async def reorder_assignments(
    request: Request,
    payload: AssignmentReorderRequest,
    identity: Identity = Depends(require_admin),
    store: ScheduleStore = Depends(get_schedule_store),
) -> AssignmentReorderResponse:
    """Set the visit order of one technician's day."""
    items = await store.reorder_assignments(
        identity,
        technician_id=payload.technician_id,
        day_of_week=payload.day_of_week,
        ordered_ids=payload.ordered_ids,
    )
    return AssignmentReorderResponse(
        technician_id=payload.technician_id,
        day_of_week=payload.day_of_week,
        items=[AssignmentResponse.model_validate(item) for item in items],
    )


@router.get("/available-clients", response_model=AvailableClientsResponse)
async def available_clients(
    day: DayName = Query(..., description="Day of week (monday..sunday), any case"),
    identity: Identity = Depends(require_admin),
    store: ScheduleStore = Depends(get_schedule_store),
) -> AvailableClientsResponse:
    """Active clients preferring ``day`` that nobody visits on that day yet."""
    clients = await store.list_available_clients(identity, day)
    return AvailableClientsResponse(
        day_of_week=day,
        clients=[
            ClientSummary(
                id=client.id,
                name=client.display_name,
                company_name=client.company_name,
                phone=client.phone,
                address=client.address,
                city=client.city,
                service_day=client.service_day,
            )
            for client in clients
        ],
        total=len(clients),
    )
