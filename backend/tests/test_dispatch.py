"""
Tests for dispatch read queries.
"""
from datetime import date, timedelta
from uuid import uuid4

import pytest

from poolroute.core.exceptions import (
    ClientNotFoundException,
    PermissionDeniedException,
    RouteInstanceNotFoundException,
    TechnicianNotFoundException,
    ValidationException,
)
from poolroute.models import DayOfWeek, RouteStatus, StopStatus
from poolroute.services.dispatch import NO_ROUTE_MESSAGE, DispatchQueryService
from poolroute.services.materializer import RouteMaterializer
from poolroute.services.schedule_store import ScheduleStore
from poolroute.services.stop_state import StopStateMachine

MONDAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)
NEXT_MONDAY = date(2026, 10, 26)


def dispatch(db, today=MONDAY):
    return DispatchQueryService(db, today=lambda: today)


class TestRouteViews:
    """Single-route views."""

    @pytest.mark.asyncio
    async def test_today_includes_client_details(self, db_session, monday_route, alice):
        """Stops carry the client's address and access details."""
        view = await dispatch(db_session).todays_route(alice)

        assert view.date == MONDAY
        assert view.message is None
        assert view.route.id == monday_route.id
        assert view.route.status == RouteStatus.SCHEDULED
        assert view.route.technician_name == "Alice Tech"
        assert [stop.client_id for stop in view.stops] == monday_route.client_ids
        first = view.stops[0]
        assert first.client_name == "Anna Pool"
        assert first.address == "Anna Street 1"
        assert first.gate_code == "1234"
        assert first.status == StopStatus.PENDING

    @pytest.mark.asyncio
    async def test_missing_route_is_an_empty_view(self, db_session, monday_route, alice):
        """Dates without a generated route return no stops and a message."""
        view = await dispatch(db_session, today=TUESDAY).todays_route(alice)

        assert view.route is None
        assert view.stops == []
        assert view.message == NO_ROUTE_MESSAGE

    @pytest.mark.asyncio
    async def test_reads_never_generate(self, db_session, company, admin, alice):
        """An assigned but ungenerated day stays empty."""
        await ScheduleStore(db_session).add_assignment(
            admin, company.alice, company.pool_a, DayOfWeek.MONDAY
        )

        view = await dispatch(db_session).todays_route(alice)

        assert view.route is None
        assert view.message == NO_ROUTE_MESSAGE

    @pytest.mark.asyncio
    async def test_progress_reflects_field_work(self, db_session, monday_route, alice):
        machine = StopStateMachine(db_session)
        await machine.start(alice, monday_route.stop_ids[0])
        await machine.complete(alice, monday_route.stop_ids[0])

        view = await dispatch(db_session).route_for_date(alice, None, MONDAY)

        assert view.route.status == RouteStatus.IN_PROGRESS
        assert view.route.progress.total == 3
        assert view.route.progress.completed == 1
        assert view.route.progress.percentage == 33

    @pytest.mark.asyncio
    async def test_admin_must_name_technician(self, db_session, monday_route, admin, company):
        service = dispatch(db_session)

        with pytest.raises(ValidationException) as exc_info:
            await service.todays_route(admin)
        assert exc_info.value.details["field"] == "technician_id"

        view = await service.todays_route(admin, company.alice)
        assert view.route.id == monday_route.id

    @pytest.mark.asyncio
    async def test_technician_cannot_read_colleague(self, db_session, monday_route, bob, company):
        with pytest.raises(TechnicianNotFoundException):
            await dispatch(db_session).todays_route(bob, company.alice)

    @pytest.mark.asyncio
    async def test_instance_detail_is_scoped(self, db_session, monday_route, alice, bob):
        detail = await dispatch(db_session).instance_detail(alice, monday_route.id)
        assert len(detail.stops) == 3

        with pytest.raises(RouteInstanceNotFoundException):
            await dispatch(db_session).instance_detail(bob, monday_route.id)

    @pytest.mark.asyncio
    async def test_update_notes(self, db_session, monday_route, alice):
        view = await dispatch(db_session).update_instance_notes(alice, monday_route.id, "Truck in shop")

        assert view.route.notes == "Truck in shop"
        again = await dispatch(db_session).instance_detail(alice, monday_route.id)
        assert again.route.notes == "Truck in shop"


class TestHistory:
    """Recent routes, newest first."""

    @pytest.mark.asyncio
    async def test_newest_first_with_counts(self, db_session, monday_route, admin, alice):
        await RouteMaterializer(db_session).generate(admin, NEXT_MONDAY, NEXT_MONDAY)
        machine = StopStateMachine(db_session)
        await machine.skip(alice, monday_route.stop_ids[2], "rain")

        items = await dispatch(db_session).history(alice)

        assert [item.route_date for item in items] == [NEXT_MONDAY, MONDAY]
        assert items[1].total_stops == 3
        assert items[1].skipped_stops == 1
        assert items[1].completed_stops == 0

    @pytest.mark.asyncio
    async def test_limit_bounds(self, db_session, monday_route, alice):
        service = dispatch(db_session)

        assert len(await service.history(alice, limit=1)) == 1
        for bad in (0, 101):
            with pytest.raises(ValidationException) as exc_info:
                await service.history(alice, limit=bad)
            assert exc_info.value.details["field"] == "limit"

    @pytest.mark.asyncio
    async def test_technician_sees_only_own_routes(self, db_session, monday_route, company, admin, bob):
        await ScheduleStore(db_session).add_assignment(admin, company.bob, company.pool_d, DayOfWeek.MONDAY)
        await RouteMaterializer(db_session).generate(admin, MONDAY, MONDAY)

        bob_items = await dispatch(db_session).history(bob)
        company_items = await dispatch(db_session).history(admin)

        assert [item.technician_id for item in bob_items] == [company.bob]
        assert len(company_items) == 2


class TestCalendar:
    """Company calendar and weekly summary."""

    @pytest.mark.asyncio
    async def test_list_instances_is_admin_only(self, db_session, monday_route, admin, alice):
        service = dispatch(db_session)

        items = await service.list_instances(admin, MONDAY, MONDAY + timedelta(days=6))
        assert [item.id for item in items] == [monday_route.id]

        with pytest.raises(PermissionDeniedException):
            await service.list_instances(alice, MONDAY, MONDAY)

    @pytest.mark.asyncio
    async def test_list_instances_rejects_inverted_range(self, db_session, admin):
        with pytest.raises(ValidationException) as exc_info:
            await dispatch(db_session).list_instances(admin, TUESDAY, MONDAY)
        assert exc_info.value.details["field"] == "end"

    @pytest.mark.asyncio
    async def test_week_summary_has_seven_days(self, db_session, monday_route, alice):
        """Default week starts on Monday; empty days have zero counts."""
        summary = await dispatch(db_session, today=MONDAY + timedelta(days=3)).week_summary(alice)

        assert summary.week_start == MONDAY
        assert len(summary.days) == 7
        assert summary.days[0].route_instance_id == monday_route.id
        assert summary.days[0].total_stops == 3
        assert summary.days[0].day_of_week == DayOfWeek.MONDAY
        assert summary.days[1].route_instance_id is None
        assert summary.days[1].total_stops == 0
        assert summary.days[6].day_of_week == DayOfWeek.SUNDAY


class TestClientHistory:
    """Per-client visit log."""

    @pytest.mark.asyncio
    async def test_lists_every_visit(self, db_session, monday_route, company, admin, alice):
        await RouteMaterializer(db_session).generate(admin, NEXT_MONDAY, NEXT_MONDAY)
        await StopStateMachine(db_session).skip(alice, monday_route.stop_ids[0], "pump broken")

        visits = await dispatch(db_session).client_history(admin, company.pool_a)

        assert [visit.route_date for visit in visits] == [NEXT_MONDAY, MONDAY]
        assert visits[1].status == StopStatus.SKIPPED
        assert visits[1].skip_reason == "pump broken"
        assert visits[1].technician_name == "Alice Tech"

    @pytest.mark.asyncio
    async def test_admin_only_and_company_scoped(self, db_session, company, other_company, admin, alice):
        service = dispatch(db_session)

        with pytest.raises(PermissionDeniedException):
            await service.client_history(alice, company.pool_a)
        with pytest.raises(ClientNotFoundException):
            await service.client_history(admin, other_company.pool_a)
        with pytest.raises(ClientNotFoundException):
            await service.client_history(admin, uuid4())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, 101])
    async def test_rejects_limit_out_of_range(self, db_session, company, admin, limit):
        with pytest.raises(ValidationException) as exc_info:
            await dispatch(db_session).client_history(admin, company.pool_a, limit=limit)
        assert exc_info.value.details["field"] == "limit"

    @pytest.mark.asyncio
    async def test_explicit_limit_caps_visits(self, db_session, monday_route, company, admin):
        await RouteMaterializer(db_session).generate(admin, NEXT_MONDAY, NEXT_MONDAY)

        visits = await dispatch(db_session).client_history(admin, company.pool_a, limit=1)

        assert [visit.route_date for visit in visits] == [NEXT_MONDAY]
