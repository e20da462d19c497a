"""
Dispatch queries: what a technician runs today, on a given date, or ran before.

Reads never generate routes; a date without a RouteInstance is reported as an
empty view so the caller can decide whether to trigger generation.
"""
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import Select, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from poolroute.core.config import settings
from poolroute.core.database import commit
from poolroute.core.exceptions import (
    ClientNotFoundException,
    PermissionDeniedException,
    RouteInstanceNotFoundException,
    ValidationException,
)
from poolroute.core.security import Identity
from poolroute.models.assignment import DayOfWeek
from poolroute.models.client import Client
from poolroute.models.route import RouteInstance, RouteStop, StopStatus
from poolroute.models.technician import Technician
from poolroute.schemas.routes import (
    ClientVisitResponse,
    ProgressResponse,
    RouteInstanceResponse,
    RouteStopResponse,
    RouteSummaryResponse,
    RouteViewResponse,
    WeekDaySummary,
    WeekSummaryResponse,
)
from poolroute.services.stop_state import RouteProgress

logger = logging.getLogger(__name__)

NO_ROUTE_MESSAGE = "No route has been generated for this date"


def company_today() -> date:
    """Current date in the company's configured timezone."""
    return datetime.now(ZoneInfo(settings.TIMEZONE)).date()


# ============================================================
# View builders
# ============================================================


def stop_view(stop: RouteStop, client: Client) -> RouteStopResponse:
    return RouteStopResponse(
        id=stop.id,
        route_instance_id=stop.route_instance_id,
        client_id=stop.client_id,
        sequence_order=stop.sequence_order,
        status=stop.status,
        skip_reason=stop.skip_reason,
        notes=stop.notes,
        actual_arrival=stop.actual_arrival,
        actual_departure=stop.actual_departure,
        service_record_id=stop.service_record_id,
        client_name=client.display_name,
        company_name=client.company_name,
        phone=client.phone,
        address=client.address,
        city=client.city,
        gate_code=client.gate_code,
        access_notes=client.access_notes,
    )


def instance_view(
    instance: RouteInstance,
    progress: RouteProgress,
    technician: Optional[Technician] = None,
) -> RouteInstanceResponse:
    return RouteInstanceResponse(
        id=instance.id,
        technician_id=instance.technician_id,
        technician_name=technician.display_name if technician is not None else None,
        route_date=instance.route_date,
        day_of_week=instance.day_of_week,
        status=instance.status,
        started_at=instance.started_at,
        completed_at=instance.completed_at,
        notes=instance.notes,
        version=instance.version,
        progress=ProgressResponse(
            total=progress.total,
            completed=progress.completed,
            skipped=progress.skipped,
            percentage=progress.percentage,
        ),
    )


def _display_name(first_name: str, last_name: Optional[str]) -> str:
    return f"{first_name} {last_name or ''}".strip()


def _check_limit(limit: Optional[int], default: int) -> int:
    limit = default if limit is None else limit
    if not 1 <= limit <= settings.HISTORY_MAX_LIMIT:
        raise ValidationException(
            f"limit must be between 1 and {settings.HISTORY_MAX_LIMIT}",
            field="limit",
        )
    return limit


class DispatchQueryService:
    """Read side of routes, scoped to the caller's company and technician."""

    def __init__(self, db: AsyncSession, today: Optional[Callable[[], date]] = None):
        self.db = db
        self.today = today or company_today

    # ---------------------------------------------------------------
    # Single route views
    # ---------------------------------------------------------------

    async def todays_route(
        self,
        identity: Identity,
        technician_id: Optional[uuid.UUID] = None,
    ) -> RouteViewResponse:
        return await self.route_for_date(identity, technician_id, self.today())

    async def route_for_date(
        self,
        identity: Identity,
        technician_id: Optional[uuid.UUID],
        route_date: date,
    ) -> RouteViewResponse:
        """
        Route with ordered stops for one technician and date.

        Returns a view with ``route`` unset when nothing was generated.
        """
        tech_id = identity.scope_technician(technician_id)

        row = (
            await self.db.execute(
                select(RouteInstance, Technician)
                .join(Technician, Technician.id == RouteInstance.technician_id)
                .where(
                    RouteInstance.company_id == identity.company_id,
                    RouteInstance.technician_id == tech_id,
                    RouteInstance.route_date == route_date,
                )
            )
        ).first()

        if row is None:
            return RouteViewResponse(
                date=route_date,
                technician_id=tech_id,
                route=None,
                stops=[],
                message=NO_ROUTE_MESSAGE,
            )
        return await self._view(row[0], row[1])

    async def instance_detail(self, identity: Identity, instance_id: uuid.UUID) -> RouteViewResponse:
        instance, technician = await self._load_instance(identity, instance_id)
        return await self._view(instance, technician)

    async def update_instance_notes(
        self,
        identity: Identity,
        instance_id: uuid.UUID,
        notes: Optional[str],
    ) -> RouteViewResponse:
        """Replace the free-text notes of a route."""
        instance, technician = await self._load_instance(identity, instance_id)
        instance.notes = notes
        await commit(self.db)
        logger.info("Route notes updated", extra={"route_instance_id": str(instance.id)})
        return await self._view(instance, technician)

    # ---------------------------------------------------------------
    # Lists
    # ---------------------------------------------------------------

    async def history(
        self,
        identity: Identity,
        technician_id: Optional[uuid.UUID] = None,
        limit: Optional[int] = None,
    ) -> list[RouteSummaryResponse]:
        """
        Most recent routes first, without stop detail.

        Technicians see their own routes only; admins see the whole company
        unless ``technician_id`` narrows it.
        """
        limit = _check_limit(limit, settings.HISTORY_DEFAULT_LIMIT)

        query = self._summary_query(identity.company_id)
        scoped = technician_id if identity.is_admin else identity.scope_technician(technician_id)
        if scoped is not None:
            query = query.where(RouteInstance.technician_id == scoped)

        query = query.order_by(RouteInstance.route_date.desc(), Technician.first_name).limit(limit)
        return await self._summaries(query)

    async def list_instances(
        self,
        identity: Identity,
        start: date,
        end: date,
        technician_id: Optional[uuid.UUID] = None,
    ) -> list[RouteSummaryResponse]:
        """Company calendar: every route between ``start`` and ``end`` inclusive."""
        if not identity.is_admin:
            raise PermissionDeniedException("Only owners and admins can list company routes")
        if end < start:
            raise ValidationException("end must not be before start", field="end")

        query = self._summary_query(identity.company_id).where(
            RouteInstance.route_date >= start,
            RouteInstance.route_date <= end,
        )
        if technician_id is not None:
            query = query.where(RouteInstance.technician_id == technician_id)

        query = query.order_by(RouteInstance.route_date.desc(), Technician.first_name)
        return await self._summaries(query)

    async def week_summary(
        self,
        identity: Identity,
        technician_id: Optional[uuid.UUID] = None,
        start: Optional[date] = None,
    ) -> WeekSummaryResponse:
        """
        Seven days of stop counts starting at ``start`` (default: this week's Monday).

        Days without a generated route are included with zero counts.
        """
        tech_id = identity.scope_technician(technician_id)
        if start is None:
            today = self.today()
            start = today - timedelta(days=today.weekday())
        end = start + timedelta(days=6)

        query = self._summary_query(identity.company_id).where(
            RouteInstance.technician_id == tech_id,
            RouteInstance.route_date >= start,
            RouteInstance.route_date <= end,
        )
        by_date = {summary.route_date: summary for summary in await self._summaries(query)}

        days = []
        for offset in range(7):
            current = start + timedelta(days=offset)
            summary = by_date.get(current)
            days.append(
                WeekDaySummary(
                    date=current,
                    day_of_week=DayOfWeek.from_date(current),
                    route_instance_id=summary.id if summary else None,
                    status=summary.status if summary else None,
                    total_stops=summary.total_stops if summary else 0,
                    completed_stops=summary.completed_stops if summary else 0,
                )
            )
        return WeekSummaryResponse(technician_id=tech_id, week_start=start, days=days)

    async def client_history(
        self,
        identity: Identity,
        client_id: uuid.UUID,
        limit: Optional[int] = None,
    ) -> list[ClientVisitResponse]:
        """Every stop ever generated for a client, newest route first."""
        if not identity.is_admin:
            raise PermissionDeniedException("Only owners and admins can view client history")
        limit = _check_limit(limit, settings.CLIENT_HISTORY_LIMIT)

        client = await self.db.scalar(
            select(Client.id).where(Client.id == client_id, Client.company_id == identity.company_id)
        )
        if client is None:
            raise ClientNotFoundException(client_id)

        rows = (
            await self.db.execute(
                select(
                    RouteStop,
                    RouteInstance.route_date,
                    RouteInstance.status,
                    RouteInstance.technician_id,
                    Technician.first_name,
                    Technician.last_name,
                )
                .join(RouteInstance, RouteInstance.id == RouteStop.route_instance_id)
                .join(Technician, Technician.id == RouteInstance.technician_id)
                .where(
                    RouteStop.client_id == client_id,
                    RouteInstance.company_id == identity.company_id,
                )
                .order_by(RouteInstance.route_date.desc())
                .limit(limit)
            )
        ).all()

        return [
            ClientVisitResponse(
                stop_id=stop.id,
                route_instance_id=stop.route_instance_id,
                route_date=route_date,
                route_status=route_status,
                technician_id=tech_id,
                technician_name=_display_name(first_name, last_name),
                status=stop.status,
                skip_reason=stop.skip_reason,
                actual_arrival=stop.actual_arrival,
                actual_departure=stop.actual_departure,
            )
            for stop, route_date, route_status, tech_id, first_name, last_name in rows
        ]

    # ---------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------

    async def ordered_stops(self, instance_id: uuid.UUID) -> list[tuple[RouteStop, Client]]:
        rows = await self.db.execute(
            select(RouteStop, Client)
            .join(Client, Client.id == RouteStop.client_id)
            .where(RouteStop.route_instance_id == instance_id)
            .order_by(RouteStop.sequence_order)
        )
        return [(stop, client) for stop, client in rows.all()]

    async def _view(self, instance: RouteInstance, technician: Optional[Technician]) -> RouteViewResponse:
        stops = await self.ordered_stops(instance.id)
        progress = RouteProgress.from_statuses(stop.status for stop, _ in stops)
        return RouteViewResponse(
            date=instance.route_date,
            technician_id=instance.technician_id,
            route=instance_view(instance, progress, technician),
            stops=[stop_view(stop, client) for stop, client in stops],
        )

    async def _load_instance(
        self,
        identity: Identity,
        instance_id: uuid.UUID,
    ) -> tuple[RouteInstance, Technician]:
        query = (
            select(RouteInstance, Technician)
            .join(Technician, Technician.id == RouteInstance.technician_id)
            .where(
                RouteInstance.id == instance_id,
                RouteInstance.company_id == identity.company_id,
            )
        )
        if not identity.is_admin:
            query = query.where(RouteInstance.technician_id == identity.technician_id)

        row = (await self.db.execute(query)).first()
        if row is None:
            raise RouteInstanceNotFoundException(instance_id)
        return row[0], row[1]

    @staticmethod
    def _summary_query(company_id: uuid.UUID) -> Select:
        total = func.count(RouteStop.id)
        completed = func.coalesce(func.sum(case((RouteStop.status == StopStatus.COMPLETED, 1), else_=0)), 0)
        skipped = func.coalesce(func.sum(case((RouteStop.status == StopStatus.SKIPPED, 1), else_=0)), 0)
        return (
            select(
                RouteInstance.id,
                RouteInstance.technician_id,
                RouteInstance.route_date,
                RouteInstance.day_of_week,
                RouteInstance.status,
                RouteInstance.started_at,
                RouteInstance.completed_at,
                Technician.first_name,
                Technician.last_name,
                total.label("total_stops"),
                completed.label("completed_stops"),
                skipped.label("skipped_stops"),
            )
            .join(Technician, Technician.id == RouteInstance.technician_id)
            .outerjoin(RouteStop, RouteStop.route_instance_id == RouteInstance.id)
            .where(RouteInstance.company_id == company_id)
            .group_by(
                RouteInstance.id,
                RouteInstance.technician_id,
                RouteInstance.route_date,
                RouteInstance.day_of_week,
                RouteInstance.status,
                RouteInstance.started_at,
                RouteInstance.completed_at,
                Technician.first_name,
                Technician.last_name,
            )
        )

    async def _summaries(self, query: Select) -> list[RouteSummaryResponse]:
        rows = (await self.db.execute(query)).all()
        return [
            RouteSummaryResponse(
                id=row.id,
                technician_id=row.technician_id,
                technician_name=_display_name(row.first_name, row.last_name),
                route_date=row.route_date,
                day_of_week=row.day_of_week,
                status=row.status,
                started_at=row.started_at,
                completed_at=row.completed_at,
                total_stops=row.total_stops,
                completed_stops=row.completed_stops,
                skipped_stops=row.skipped_stops,
            )
            for row in rows
        ]
