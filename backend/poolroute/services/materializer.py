"""
Route materialization: turn the weekly template into dated routes.

For every date in the requested range and every technician with active
assignments on that weekday, one RouteInstance is created with one RouteStop
per assignment, in template order. A (technician, date) that already has a
route is left alone, which makes generation safe to repeat and safe to run
from several callers at once; the unique constraint on route_instances is
what finally decides a race.

Each (technician, date) is written in its own transaction, so one failing
route never rolls back routes already created in the same run.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from poolroute.core.config import settings
from poolroute.core.database import is_store_unavailable
from poolroute.core.exceptions import StoreUnavailableException, ValidationException
from poolroute.core.metrics import record_generation
from poolroute.core.security import Identity
from poolroute.models.assignment import AssignmentState, DayOfWeek, RecurringAssignment
from poolroute.models.client import Client
from poolroute.models.route import RouteInstance, RouteStatus, RouteStop, StopStatus
from poolroute.models.technician import Technician

logger = logging.getLogger(__name__)


@dataclass
class GenerationFailure:
    """A (technician, date) that could not be written."""
    date: date
    technician_id: Optional[uuid.UUID]
    error: str


@dataclass
class GenerationReport:
    """Outcome of one generation run."""
    start: date
    end: date
    dates: int = 0
    created: int = 0
    skipped: int = 0
    errors: list[GenerationFailure] = field(default_factory=list)
    created_instance_ids: list[uuid.UUID] = field(default_factory=list)


@dataclass(frozen=True)
class TemplateSlot:
    """One active assignment as read for generation."""
    assignment_id: uuid.UUID
    client_id: uuid.UUID
    route_order: int
    created_at: datetime


def iter_dates(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def validate_range(start: date, end: date) -> None:
    if end < start:
        raise ValidationException(
            "date_range_end must not be before date_range_start",
            field="date_range_end",
        )
    days = (end - start).days + 1
    if days > settings.MAX_GENERATION_DAYS:
        raise ValidationException(
            f"Cannot generate more than {settings.MAX_GENERATION_DAYS} days at once",
            field="date_range_end",
            days=days,
        )


class RouteMaterializer:
    """Creates RouteInstances and RouteStops from active assignments."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def generate(
        self,
        identity: Identity,
        start: date,
        end: date,
        technician_id: Optional[uuid.UUID] = None,
    ) -> GenerationReport:
        """
        Materialize every date in ``[start, end]``.

        Args:
            identity: Caller; only its company's template is read
            start: First date (inclusive)
            end: Last date (inclusive)
            technician_id: Restrict generation to one technician

        Returns:
            GenerationReport with created/skipped counts and per-route errors

        Raises:
            ValidationException: Range is inverted or too long
            StoreUnavailableException: The database could not be reached
        """
        validate_range(start, end)
        report = GenerationReport(start=start, end=end)

        for target in iter_dates(start, end):
            report.dates += 1
            await self._generate_date(identity.company_id, target, technician_id, report)

        record_generation(report.created, report.skipped, len(report.errors))
        logger.info(
            f"Generated routes {start} - {end}: created={report.created} "
            f"skipped={report.skipped} errors={len(report.errors)}",
            extra={
                "start": start.isoformat(),
                "end": end.isoformat(),
                "technician_id": str(technician_id) if technician_id else None,
            },
        )
        return report

    async def _generate_date(
        self,
        company_id: uuid.UUID,
        target: date,
        technician_id: Optional[uuid.UUID],
        report: GenerationReport,
    ) -> None:
        day = DayOfWeek.from_date(target)
        try:
            templates = await self._load_templates(company_id, day, technician_id)
            existing = set(
                (
                    await self.db.scalars(
                        select(RouteInstance.technician_id).where(
                            RouteInstance.company_id == company_id,
                            RouteInstance.route_date == target,
                        )
                    )
                ).all()
            )
        except SQLAlchemyError as e:
            await self.db.rollback()
            if is_store_unavailable(e):
                raise StoreUnavailableException() from e
            logger.error(f"Failed to read templates for {target}: {e}")
            report.errors.append(GenerationFailure(target, technician_id, str(e)))
            return

        for tech_id, slots in templates.items():
            if tech_id in existing:
                report.skipped += 1
                continue
            await self._materialize(company_id, tech_id, target, day, slots, report)

    async def _load_templates(
        self,
        company_id: uuid.UUID,
        day: DayOfWeek,
        technician_id: Optional[uuid.UUID],
    ) -> dict[uuid.UUID, list[TemplateSlot]]:
        """Active assignments for ``day`` whose technician and client are both active."""
        query = (
            select(
                RecurringAssignment.id,
                RecurringAssignment.technician_id,
                RecurringAssignment.client_id,
                RecurringAssignment.route_order,
                RecurringAssignment.created_at,
            )
            .join(Technician, Technician.id == RecurringAssignment.technician_id)
            .join(Client, Client.id == RecurringAssignment.client_id)
            .where(
                RecurringAssignment.company_id == company_id,
                RecurringAssignment.day_of_week == day,
                RecurringAssignment.state == AssignmentState.ACTIVE,
                Technician.is_active.is_(True),
                Client.is_active.is_(True),
            )
            .order_by(
                RecurringAssignment.technician_id,
                RecurringAssignment.route_order,
                RecurringAssignment.created_at,
            )
        )
        if technician_id is not None:
            query = query.where(RecurringAssignment.technician_id == technician_id)

        templates: dict[uuid.UUID, list[TemplateSlot]] = {}
        for row in (await self.db.execute(query)).all():
            templates.setdefault(row.technician_id, []).append(
                TemplateSlot(
                    assignment_id=row.id,
                    client_id=row.client_id,
                    route_order=row.route_order,
                    created_at=row.created_at,
                )
            )
        return templates

    async def _materialize(
        self,
        company_id: uuid.UUID,
        technician_id: uuid.UUID,
        target: date,
        day: DayOfWeek,
        slots: list[TemplateSlot],
        report: GenerationReport,
    ) -> None:
        instance = RouteInstance(
            company_id=company_id,
            technician_id=technician_id,
            route_date=target,
            day_of_week=day,
            status=RouteStatus.SCHEDULED,
            version=0,
            # Stop order is dense from 0 even if the template has gaps
            stops=[
                RouteStop(
                    client_id=slot.client_id,
                    assignment_id=slot.assignment_id,
                    sequence_order=position,
                    status=StopStatus.PENDING,
                )
                for position, slot in enumerate(slots)
            ],
        )
        self.db.add(instance)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if await self._route_exists(company_id, technician_id, target):
                logger.info(
                    f"Route for {technician_id} on {target} created concurrently, skipping"
                )
                report.skipped += 1
            else:
                logger.error(f"Failed to create route for {technician_id} on {target}: {e}")
                report.errors.append(GenerationFailure(target, technician_id, str(e.orig)))
            return
        except SQLAlchemyError as e:
            await self.db.rollback()
            if is_store_unavailable(e):
                raise StoreUnavailableException() from e
            logger.error(f"Failed to create route for {technician_id} on {target}: {e}")
            report.errors.append(GenerationFailure(target, technician_id, str(e)))
            return

        report.created += 1
        report.created_instance_ids.append(instance.id)

    async def _route_exists(self, company_id: uuid.UUID, technician_id: uuid.UUID, target: date) -> bool:
        found = await self.db.scalar(
            select(RouteInstance.id).where(
                RouteInstance.company_id == company_id,
                RouteInstance.technician_id == technician_id,
                RouteInstance.route_date == target,
            )
        )
        return found is not None
