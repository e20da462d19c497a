"""
Field execution: stop state transitions and the route status they drive.

Stop lifecycle::

    pending -> in_progress -> completed
    pending | in_progress -> skipped

completed and skipped are terminal. The owning route moves
scheduled -> in_progress on the first start or skip and -> completed once
every stop is terminal.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from poolroute.core.database import commit
from poolroute.core.exceptions import (
    InvalidTransitionException,
    RouteStopNotFoundException,
    ValidationException,
)
from poolroute.core.metrics import record_stop_transition
from poolroute.core.security import Identity
from poolroute.models.base import utcnow
from poolroute.models.client import Client
from poolroute.models.route import RouteInstance, RouteStatus, RouteStop, StopStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteProgress:
    """
    Completion of a route.

    Only completed stops count as done; skipped stops stay in the total and
    are reported on their own.
    """
    total: int
    completed: int
    skipped: int

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        return round(self.completed * 100 / self.total)

    @classmethod
    def from_statuses(cls, statuses: Iterable[StopStatus]) -> "RouteProgress":
        statuses = list(statuses)
        return cls(
            total=len(statuses),
            completed=sum(1 for s in statuses if s == StopStatus.COMPLETED),
            skipped=sum(1 for s in statuses if s == StopStatus.SKIPPED),
        )


@dataclass
class TransitionResult:
    """Stop after a transition; ``changed`` is False for an accepted no-op."""
    stop: RouteStop
    client: Client
    instance: RouteInstance
    changed: bool = True

    @property
    def instance_status(self) -> RouteStatus:
        return self.instance.status


class StopStateMachine:
    """
    Applies field actions to stops.

    Each call loads the stop together with its route under row locks on both,
    so two stops of the same route finishing at once still produce exactly
    one route completion.
    """

    def __init__(self, db: AsyncSession, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self._now = clock or utcnow

    async def start(self, identity: Identity, stop_id: uuid.UUID) -> TransitionResult:
        """Mark arrival at a stop. Starting a started stop is accepted unchanged."""
        stop, client, instance = await self._load(identity, stop_id)

        if stop.status == StopStatus.IN_PROGRESS:
            # Nothing to write; commit only to release the route lock
            await commit(self.db)
            record_stop_transition("start", "noop")
            return TransitionResult(stop, client, instance, changed=False)
        if stop.status != StopStatus.PENDING:
            await self._reject(stop, "start")

        now = self._now()
        stop.status = StopStatus.IN_PROGRESS
        stop.actual_arrival = now
        self._mark_started(instance, now)

        await commit(self.db)
        self._log(stop, instance, "start")
        return TransitionResult(stop, client, instance)

    async def complete(
        self,
        identity: Identity,
        stop_id: uuid.UUID,
        notes: Optional[str] = None,
        service_record_id: Optional[uuid.UUID] = None,
    ) -> TransitionResult:
        """Finish a started stop and close the route if it was the last open one."""
        stop, client, instance = await self._load(identity, stop_id)

        if stop.status != StopStatus.IN_PROGRESS:
            await self._reject(stop, "complete")

        now = self._now()
        stop.status = StopStatus.COMPLETED
        stop.actual_departure = now
        if notes is not None:
            stop.notes = notes
        if service_record_id is not None:
            stop.service_record_id = service_record_id
        self._mark_started(instance, now)
        await self._complete_if_finished(instance, now)

        await commit(self.db)
        self._log(stop, instance, "complete")
        return TransitionResult(stop, client, instance)

    async def skip(
        self,
        identity: Identity,
        stop_id: uuid.UUID,
        skip_reason: Optional[str],
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """Record that a visit did not happen. A non-blank reason is required."""
        reason = (skip_reason or "").strip()
        if not reason:
            raise ValidationException("skip_reason is required", field="skip_reason")

        stop, client, instance = await self._load(identity, stop_id)

        if stop.status.is_terminal:
            await self._reject(stop, "skip")

        now = self._now()
        stop.status = StopStatus.SKIPPED
        stop.skip_reason = reason
        stop.actual_departure = now
        if notes is not None:
            stop.notes = notes
        self._mark_started(instance, now)
        await self._complete_if_finished(instance, now)

        await commit(self.db)
        self._log(stop, instance, "skip")
        return TransitionResult(stop, client, instance)

    async def _load(
        self,
        identity: Identity,
        stop_id: uuid.UUID,
    ) -> tuple[RouteStop, Client, RouteInstance]:
        query = (
            select(RouteStop, Client, RouteInstance)
            .join(RouteInstance, RouteInstance.id == RouteStop.route_instance_id)
            .join(Client, Client.id == RouteStop.client_id)
            .where(
                RouteStop.id == stop_id,
                RouteInstance.company_id == identity.company_id,
            )
            .with_for_update(of=[RouteStop, RouteInstance])
        )
        if not identity.is_admin:
            query = query.where(RouteInstance.technician_id == identity.technician_id)

        row = (await self.db.execute(query)).first()
        if row is None:
            raise RouteStopNotFoundException(stop_id)
        return row[0], row[1], row[2]

    async def _reject(self, stop: RouteStop, action: str) -> None:
        stop_id, current = stop.id, stop.status.value
        await self.db.rollback()
        record_stop_transition(action, "rejected")
        raise InvalidTransitionException("stop", stop_id, current, action)

    @staticmethod
    def _mark_started(instance: RouteInstance, now: datetime) -> None:
        if instance.status == RouteStatus.SCHEDULED:
            instance.status = RouteStatus.IN_PROGRESS
        if instance.started_at is None:
            instance.started_at = now

    async def _complete_if_finished(self, instance: RouteInstance, now: datetime) -> None:
        await self.db.flush()
        statuses = (
            await self.db.scalars(
                select(RouteStop.status).where(RouteStop.route_instance_id == instance.id)
            )
        ).all()
        if statuses and all(s.is_terminal for s in statuses) and instance.status != RouteStatus.COMPLETED:
            instance.status = RouteStatus.COMPLETED
            instance.completed_at = now
            logger.info(
                "Route completed",
                extra={"route_instance_id": str(instance.id), "stops": len(statuses)},
            )

    @staticmethod
    def _log(stop: RouteStop, instance: RouteInstance, action: str) -> None:
        record_stop_transition(action, "ok")
        logger.info(
            f"Stop {action}",
            extra={
                "stop_id": str(stop.id),
                "route_instance_id": str(instance.id),
                "stop_status": stop.status.value,
                "route_status": instance.status.value,
            },
        )
