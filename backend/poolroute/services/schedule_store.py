"""
Schedule store: the recurring weekly template.

Each active RecurringAssignment places one client on one technician's route for
one day of the week. ``route_order`` is dense (0..N-1) inside every
(company, technician, day) group of active rows; disabled rows keep their last
order but are ignored by every read and by generation.
"""
import logging
import uuid
from collections import defaultdict
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from poolroute.core.database import commit
from poolroute.core.exceptions import (
    AssignmentNotFoundException,
    ClientNotFoundException,
    DuplicateAssignmentException,
    InvalidOrderSetException,
    TechnicianNotFoundException,
)
from poolroute.core.metrics import record_reorder
from poolroute.core.security import Identity
from poolroute.models.assignment import AssignmentState, DayOfWeek, RecurringAssignment
from poolroute.models.base import utcnow
from poolroute.models.client import Client
from poolroute.models.technician import Technician
from poolroute.services.reordering import check_order_set

logger = logging.getLogger(__name__)


class ScheduleStore:
    """
    Reads and writes the weekly template for one company.

    Every query is filtered by the caller's company; rows of other companies
    behave as if they did not exist.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ---------------------------------------------------------------
    # Writes
    # ---------------------------------------------------------------

    async def add_assignment(
        self,
        identity: Identity,
        technician_id: uuid.UUID,
        client_id: uuid.UUID,
        day_of_week: DayOfWeek,
    ) -> RecurringAssignment:
        """
        Append a client to the end of a technician's day.

        A previously disabled assignment for the same triple is reactivated
        (moved to the end of the group) instead of inserting a second row.
        """
        company_id = identity.company_id
        await self._require_technician(company_id, technician_id)
        await self._require_client(company_id, client_id)

        existing = await self._find_assignment(company_id, technician_id, client_id, day_of_week)
        if existing is not None and existing.is_active:
            raise DuplicateAssignmentException(existing.id, technician_id, client_id, day_of_week.value)

        route_order = await self._next_route_order(company_id, technician_id, day_of_week)

        if existing is not None:
            existing.state = AssignmentState.ACTIVE
            existing.disabled_at = None
            existing.route_order = route_order
            assignment = existing
        else:
            assignment = RecurringAssignment(
                company_id=company_id,
                technician_id=technician_id,
                client_id=client_id,
                day_of_week=day_of_week,
                route_order=route_order,
                state=AssignmentState.ACTIVE,
            )
            self.db.add(assignment)

        try:
            await commit(self.db)
        except IntegrityError:
            # Another request inserted the same triple first
            winner = await self._find_assignment(company_id, technician_id, client_id, day_of_week)
            raise DuplicateAssignmentException(
                winner.id if winner is not None else None,
                technician_id,
                client_id,
                day_of_week.value,
            )

        logger.info(
            "Assignment added",
            extra={
                "assignment_id": str(assignment.id),
                "technician_id": str(technician_id),
                "client_id": str(client_id),
                "day_of_week": day_of_week.value,
                "route_order": route_order,
            },
        )
        return assignment

    async def remove_assignment(
        self,
        identity: Identity,
        assignment_id: uuid.UUID,
        hard: bool = False,
    ) -> RecurringAssignment:
        """
        Take an assignment off the template.

        The default is a soft disable so the row stays available for
        reactivation and audit. ``hard`` deletes it; stops already generated
        from it keep their data and lose only the provenance link.
        Remaining active orders in the group are compacted back to 0..N-1.
        """
        assignment = await self.db.scalar(
            select(RecurringAssignment).where(
                RecurringAssignment.id == assignment_id,
                RecurringAssignment.company_id == identity.company_id,
            )
        )
        if assignment is None:
            raise AssignmentNotFoundException(assignment_id)

        group = (assignment.company_id, assignment.technician_id, assignment.day_of_week)

        if hard:
            await self.db.delete(assignment)
        elif assignment.is_active:
            assignment.state = AssignmentState.DISABLED
            assignment.disabled_at = utcnow()

        await self.db.flush()
        await self._compact_group(*group)
        await commit(self.db)

        logger.info(
            "Assignment removed",
            extra={"assignment_id": str(assignment_id), "hard": hard},
        )
        return assignment

    async def reorder_assignments(
        self,
        identity: Identity,
        technician_id: uuid.UUID,
        day_of_week: DayOfWeek,
        ordered_ids: Sequence[uuid.UUID],
    ) -> list[RecurringAssignment]:
        """
        Rewrite ``route_order`` for one (technician, day) group.

        ``ordered_ids`` must name every active assignment of the group exactly
        once. Does not touch routes that were already generated.
        """
        await self._require_technician(identity.company_id, technician_id)

        result = await self.db.scalars(
            select(RecurringAssignment)
            .where(
                RecurringAssignment.company_id == identity.company_id,
                RecurringAssignment.technician_id == technician_id,
                RecurringAssignment.day_of_week == day_of_week,
                RecurringAssignment.state == AssignmentState.ACTIVE,
            )
            .order_by(RecurringAssignment.route_order)
            .with_for_update()
        )
        members = list(result.all())

        try:
            check_order_set([m.id for m in members], ordered_ids)
        except InvalidOrderSetException:
            await self.db.rollback()
            record_reorder("schedule", "rejected")
            raise

        by_id = {m.id: m for m in members}
        for position, assignment_id in enumerate(ordered_ids):
            by_id[assignment_id].route_order = position

        await commit(self.db)
        record_reorder("schedule", "ok")

        logger.info(
            "Schedule reordered",
            extra={
                "technician_id": str(technician_id),
                "day_of_week": day_of_week.value,
                "count": len(members),
            },
        )
        return [by_id[assignment_id] for assignment_id in ordered_ids]

    # ---------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------

    async def list_available_clients(self, identity: Identity, day_of_week: DayOfWeek) -> list[Client]:
        """
        Active clients whose preferred service day is ``day_of_week`` and who
        have no active assignment on that day with any technician.
        """
        assigned = select(RecurringAssignment.client_id).where(
            RecurringAssignment.company_id == identity.company_id,
            RecurringAssignment.day_of_week == day_of_week,
            RecurringAssignment.state == AssignmentState.ACTIVE,
        )
        result = await self.db.scalars(
            select(Client)
            .where(
                Client.company_id == identity.company_id,
                Client.is_active.is_(True),
                Client.service_day == day_of_week,
                Client.id.not_in(assigned),
            )
            .order_by(Client.first_name, Client.last_name)
        )
        return list(result.all())

    async def list_schedule(
        self,
        identity: Identity,
        technician_id: Optional[uuid.UUID] = None,
    ) -> dict[DayOfWeek, dict[uuid.UUID, list[tuple[RecurringAssignment, Client, Technician]]]]:
        """
        Active template grouped day -> technician -> ordered rows.

        Days come out Monday first; technicians keep first-seen order, which
        is sorted by name.
        """
        query = (
            select(RecurringAssignment, Client, Technician)
            .join(Client, Client.id == RecurringAssignment.client_id)
            .join(Technician, Technician.id == RecurringAssignment.technician_id)
            .where(
                RecurringAssignment.company_id == identity.company_id,
                RecurringAssignment.state == AssignmentState.ACTIVE,
            )
            .order_by(
                Technician.first_name,
                Technician.last_name,
                Technician.id,
                RecurringAssignment.route_order,
            )
        )
        if technician_id is not None:
            query = query.where(RecurringAssignment.technician_id == technician_id)

        rows = (await self.db.execute(query)).all()

        grouped: dict[DayOfWeek, dict[uuid.UUID, list]] = defaultdict(dict)
        for assignment, client, technician in rows:
            grouped[assignment.day_of_week].setdefault(technician.id, []).append(
                (assignment, client, technician)
            )

        return {day: grouped[day] for day in DayOfWeek if day in grouped}

    # ---------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------

    async def _require_technician(self, company_id: uuid.UUID, technician_id: uuid.UUID) -> Technician:
        technician = await self.db.scalar(
            select(Technician).where(
                Technician.id == technician_id,
                Technician.company_id == company_id,
            )
        )
        if technician is None:
            raise TechnicianNotFoundException(technician_id)
        return technician

    async def _require_client(self, company_id: uuid.UUID, client_id: uuid.UUID) -> Client:
        client = await self.db.scalar(
            select(Client).where(
                Client.id == client_id,
                Client.company_id == company_id,
            )
        )
        if client is None:
            raise ClientNotFoundException(client_id)
        return client

    async def _find_assignment(
        self,
        company_id: uuid.UUID,
        technician_id: uuid.UUID,
        client_id: uuid.UUID,
        day_of_week: DayOfWeek,
    ) -> Optional[RecurringAssignment]:
        return await self.db.scalar(
            select(RecurringAssignment).where(
                RecurringAssignment.company_id == company_id,
                RecurringAssignment.technician_id == technician_id,
                RecurringAssignment.client_id == client_id,
                RecurringAssignment.day_of_week == day_of_week,
            )
        )

    async def _next_route_order(
        self,
        company_id: uuid.UUID,
        technician_id: uuid.UUID,
        day_of_week: DayOfWeek,
    ) -> int:
        current_max = await self.db.scalar(
            select(func.max(RecurringAssignment.route_order)).where(
                RecurringAssignment.company_id == company_id,
                RecurringAssignment.technician_id == technician_id,
                RecurringAssignment.day_of_week == day_of_week,
                RecurringAssignment.state == AssignmentState.ACTIVE,
            )
        )
        return 0 if current_max is None else current_max + 1

    async def _compact_group(
        self,
        company_id: uuid.UUID,
        technician_id: uuid.UUID,
        day_of_week: DayOfWeek,
    ) -> None:
        result = await self.db.scalars(
            select(RecurringAssignment)
            .where(
                RecurringAssignment.company_id == company_id,
                RecurringAssignment.technician_id == technician_id,
                RecurringAssignment.day_of_week == day_of_week,
                RecurringAssignment.state == AssignmentState.ACTIVE,
            )
            .order_by(RecurringAssignment.route_order, RecurringAssignment.created_at)
        )
        for position, assignment in enumerate(result.all()):
            if assignment.route_order != position:
                assignment.route_order = position
