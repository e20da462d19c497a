"""
Resequencing of stops inside an already generated route.

Changes here affect one dated route only; the weekly template is untouched.
"""
import logging
import uuid
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from poolroute.core.database import commit
from poolroute.core.exceptions import (
    ConcurrentModificationException,
    InstanceLockedException,
    InvalidOrderSetException,
    RouteInstanceNotFoundException,
)
from poolroute.core.metrics import record_reorder
from poolroute.core.security import Identity
from poolroute.models.client import Client
from poolroute.models.route import RouteInstance, RouteStatus, RouteStop

logger = logging.getLogger(__name__)


def check_order_set(current_ids: Iterable[uuid.UUID], ordered_ids: Sequence[uuid.UUID]) -> None:
    """
    Require ``ordered_ids`` to be a permutation of ``current_ids``.

    Raises:
        InvalidOrderSetException: listing missing, unexpected and repeated ids
    """
    current = list(current_ids)
    current_set = set(current)

    seen: set[uuid.UUID] = set()
    duplicates: list[uuid.UUID] = []
    unexpected: list[uuid.UUID] = []
    for item in ordered_ids:
        if item in seen:
            if item not in duplicates:
                duplicates.append(item)
            continue
        seen.add(item)
        if item not in current_set:
            unexpected.append(item)

    missing = [item for item in current if item not in seen]

    if missing or unexpected or duplicates:
        raise InvalidOrderSetException(missing, unexpected, duplicates)


class RouteReorderingService:
    """Applies a full new visit order to one route instance."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def reorder(
        self,
        identity: Identity,
        instance_id: uuid.UUID,
        ordered_stop_ids: Sequence[uuid.UUID],
        expected_version: Optional[int] = None,
    ) -> tuple[RouteInstance, list[tuple[RouteStop, Client]]]:
        """
        Rewrite ``sequence_order`` of every stop to its position in ``ordered_stop_ids``.

        The route row is locked for the duration so concurrent reorders of the
        same route serialize; each successful call bumps ``version``.

        Returns:
            The route and its stops (with clients) in the new order
        """
        query = (
            select(RouteInstance)
            .where(
                RouteInstance.id == instance_id,
                RouteInstance.company_id == identity.company_id,
            )
            .with_for_update()
        )
        if not identity.is_admin:
            query = query.where(RouteInstance.technician_id == identity.technician_id)

        instance = await self.db.scalar(query)
        if instance is None:
            raise RouteInstanceNotFoundException(instance_id)

        try:
            if instance.status == RouteStatus.COMPLETED:
                raise InstanceLockedException(instance.id, instance.status.value)
            if expected_version is not None and expected_version != instance.version:
                raise ConcurrentModificationException(instance.id, expected_version, instance.version)

            rows = (
                await self.db.execute(
                    select(RouteStop, Client)
                    .join(Client, Client.id == RouteStop.client_id)
                    .where(RouteStop.route_instance_id == instance.id)
                    .order_by(RouteStop.sequence_order)
                )
            ).all()
            check_order_set([stop.id for stop, _ in rows], ordered_stop_ids)
        except (InstanceLockedException, ConcurrentModificationException, InvalidOrderSetException):
            await self.db.rollback()
            record_reorder("route", "rejected")
            raise

        by_id = {stop.id: (stop, client) for stop, client in rows}

        # Park every stop on a negative order first so no intermediate state
        # collides with the (route, sequence_order) unique constraint.
        for position, (stop, _) in enumerate(rows):
            stop.sequence_order = -(position + 1)
        await self.db.flush()

        for position, stop_id in enumerate(ordered_stop_ids):
            by_id[stop_id][0].sequence_order = position
        instance.version += 1

        await commit(self.db)
        record_reorder("route", "ok")

        logger.info(
            "Route reordered",
            extra={
                "route_instance_id": str(instance.id),
                "version": instance.version,
                "stops": len(rows),
            },
        )
        return instance, [by_id[stop_id] for stop_id in ordered_stop_ids]
