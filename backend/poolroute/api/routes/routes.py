"""
Route API routes: generation, dispatch views and field actions.

Static paths are declared before ``/{route_date}`` so they are not captured
by the date parameter.
"""
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from poolroute.core.config import settings
from poolroute.core.database import get_db
from poolroute.core.rate_limit import RateLimits, limiter
from poolroute.core.rate_limiter import field_action_limit
from poolroute.core.security import Identity, get_identity, require_admin
from poolroute.schemas.routes import (
    ClientHistoryResponse,
    CompleteStopRequest,
    GenerateRoutesRequest,
    GenerateRoutesResponse,
    GenerationError,
    ReorderStopsRequest,
    ReorderStopsResponse,
    RouteHistoryResponse,
    RouteListResponse,
    RouteNotesUpdate,
    RouteViewResponse,
    SkipStopRequest,
    StopActionResponse,
    WeekSummaryResponse,
)
from poolroute.services.dispatch import DispatchQueryService, stop_view
from poolroute.services.materializer import RouteMaterializer
from poolroute.services.reordering import RouteReorderingService
from poolroute.services.stop_state import StopStateMachine, TransitionResult

router = APIRouter(prefix="/routes", tags=["routes"])


def get_dispatch_service(db: AsyncSession = Depends(get_db)) -> DispatchQueryService:
    return DispatchQueryService(db)


def get_state_machine(db: AsyncSession = Depends(get_db)) -> StopStateMachine:
    return StopStateMachine(db)


def _action_response(result: TransitionResult) -> StopActionResponse:
    return StopActionResponse(
        stop=stop_view(result.stop, result.client),
        route_status=result.instance_status,
        changed=result.changed,
    )


# ============================================================
# Generation
# ============================================================


@router.post("/generate", response_model=GenerateRoutesResponse)
@limiter.limit(RateLimits.GENERATE_ROUTES)
async def generate_routes(
    request: Request,
    payload: GenerateRoutesRequest,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> GenerateRoutesResponse:
    """
    Materialize dated routes from the weekly template.

    Safe to repeat: routes that already exist are counted as ``skipped`` and
    left untouched. Failures for individual (technician, date) pairs are
    reported in ``errors`` without undoing the rest.
    """
    report = await RouteMaterializer(db).generate(
        identity,
        start=payload.date_range_start,
        end=payload.date_range_end,
        technician_id=payload.technician_id,
    )
    return GenerateRoutesResponse(
        start=report.start,
        end=report.end,
        dates=report.dates,
        created=report.created,
        skipped=report.skipped,
        errors=[
            GenerationError(date=e.date, technician_id=e.technician_id, error=e.error)
            for e in report.errors
        ],
        created_instance_ids=report.created_instance_ids,
    )


# ============================================================
# Views
# ============================================================


@router.get("/today", response_model=RouteViewResponse)
@limiter.limit(RateLimits.DISPATCH_READ)
async def todays_route(
    request: Request,
    technician_id: Optional[UUID] = Query(None, description="Required for admins"),
    identity: Identity = Depends(get_identity),
    service: DispatchQueryService = Depends(get_dispatch_service),
) -> RouteViewResponse:
    """Today's route in the company timezone; empty when not generated yet."""
    return await service.todays_route(identity, technician_id)


@router.get("/history", response_model=RouteHistoryResponse)
@limiter.limit(RateLimits.DISPATCH_READ)
async def route_history(
    request: Request,
    limit: int = Query(settings.HISTORY_DEFAULT_LIMIT, description="Number of routes"),
    technician_id: Optional[UUID] = Query(None),
    identity: Identity = Depends(get_identity),
    service: DispatchQueryService = Depends(get_dispatch_service),
) -> RouteHistoryResponse:
    """Most recent routes first, with stop counts."""
    items = await service.history(identity, technician_id=technician_id, limit=limit)
    return RouteHistoryResponse(items=items, total=len(items), limit=limit)


@router.get("/week", response_model=WeekSummaryResponse)
@limiter.limit(RateLimits.DISPATCH_READ)
async def week_summary(
    request: Request,
    start: Optional[date] = Query(None, description="First day (default: this week's Monday)"),
    technician_id: Optional[UUID] = Query(None, description="Required for admins"),
    identity: Identity = Depends(get_identity),
    service: DispatchQueryService = Depends(get_dispatch_service),
) -> WeekSummaryResponse:
    """Seven days of stop counts for one technician."""
    return await service.week_summary(identity, technician_id=technician_id, start=start)


@router.get("/instances", response_model=RouteListResponse)
async def list_instances(
    start: date = Query(...),
    end: date = Query(...),
    technician_id: Optional[UUID] = Query(None),
    identity: Identity = Depends(require_admin),
    service: DispatchQueryService = Depends(get_dispatch_service),
) -> RouteListResponse:
    """Company route calendar between two dates."""
    items = await service.list_instances(identity, start, end, technician_id)
    return RouteListResponse(items=items, total=len(items), start=start, end=end)


@router.get("/instances/{instance_id}", response_model=RouteViewResponse)
async def get_instance(
    instance_id: UUID,
    identity: Identity = Depends(get_identity),
    service: DispatchQueryService = Depends(get_dispatch_service),
) -> RouteViewResponse:
    """One route with its ordered stops."""
    return await service.instance_detail(identity, instance_id)


@router.patch("/instances/{instance_id}", response_model=RouteViewResponse)
async def update_instance_notes(
    instance_id: UUID,
    payload: RouteNotesUpdate,
    identity: Identity = Depends(get_identity),
    service: DispatchQueryService = Depends(get_dispatch_service),
) -> RouteViewResponse:
    """Replace the route's notes."""
    return await service.update_instance_notes(identity, instance_id, payload.notes)


@router.get("/clients/{client_id}/history", response_model=ClientHistoryResponse)
async def client_history(
    client_id: UUID,
    limit: int = Query(settings.CLIENT_HISTORY_LIMIT, ge=1, le=settings.HISTORY_MAX_LIMIT),
    identity: Identity = Depends(require_admin),
    service: DispatchQueryService = Depends(get_dispatch_service),
) -> ClientHistoryResponse:
    """Every visit generated for a client, newest first."""
    items = await service.client_history(identity, client_id, limit)
    return ClientHistoryResponse(client_id=client_id, items=items, total=len(items))


# ============================================================
# Field actions
# ============================================================


@router.post("/stops/{stop_id}/start", response_model=StopActionResponse)
async def start_stop(
    stop_id: UUID,
    identity: Identity = Depends(field_action_limit),
    machine: StopStateMachine = Depends(get_state_machine),
) -> StopActionResponse:
    """Arrive at a stop. Repeating the call on a started stop changes nothing."""
    return _action_response(await machine.start(identity, stop_id))


@router.post("/stops/{stop_id}/complete", response_model=StopActionResponse)
async def complete_stop(
    stop_id: UUID,
    payload: Optional[CompleteStopRequest] = None,
    identity: Identity = Depends(field_action_limit),
    machine: StopStateMachine = Depends(get_state_machine),
) -> StopActionResponse:
    """Finish a started stop."""
    payload = payload or CompleteStopRequest()
    result = await machine.complete(
        identity,
        stop_id,
        notes=payload.notes,
        service_record_id=payload.service_record_id,
    )
    return _action_response(result)


@router.post("/stops/{stop_id}/skip", response_model=StopActionResponse)
async def skip_stop(
    stop_id: UUID,
    payload: SkipStopRequest,
    identity: Identity = Depends(field_action_limit),
    machine: StopStateMachine = Depends(get_state_machine),
) -> StopActionResponse:
    """Record a visit that did not happen; a reason is required."""
    result = await machine.skip(identity, stop_id, payload.skip_reason, notes=payload.notes)
    return _action_response(result)


@router.put("/{instance_id}/stops/reorder", response_model=ReorderStopsResponse)
async def reorder_stops(
    instance_id: UUID,
    payload: ReorderStopsRequest,
    identity: Identity = Depends(field_action_limit),
    db: AsyncSession = Depends(get_db),
) -> ReorderStopsResponse:
    """
    Change the visit order of one route.

    ``ordered_stop_ids`` must contain every stop of the route exactly once.
    Pass ``expected_version`` to be rejected if someone else reordered first.
    """
    instance, stops = await RouteReorderingService(db).reorder(
        identity,
        instance_id,
        payload.ordered_stop_ids,
        expected_version=payload.expected_version,
    )
    return ReorderStopsResponse(
        route_instance_id=instance.id,
        version=instance.version,
        stops=[stop_view(stop, client) for stop, client in stops],
    )


# ============================================================
# Date view (keep last)
# ============================================================


@router.get("/{route_date}", response_model=RouteViewResponse)
@limiter.limit(RateLimits.DISPATCH_READ)
async def route_for_date(
    request: Request,
    route_date: date,
    technician_id: Optional[UUID] = Query(None, description="Required for admins"),
    identity: Identity = Depends(get_identity),
    service: DispatchQueryService = Depends(get_dispatch_service),
) -> RouteViewResponse:
    """Route for a specific date (YYYY-MM-DD)."""
    return await service.route_for_date(identity, technician_id, route_date)
