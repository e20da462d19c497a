"""
Route scheduling and dispatch services.
"""
from poolroute.services.dispatch import DispatchQueryService
from poolroute.services.materializer import GenerationReport, RouteMaterializer
from poolroute.services.reordering import RouteReorderingService, check_order_set
from poolroute.services.schedule_store import ScheduleStore
from poolroute.services.stop_state import RouteProgress, StopStateMachine, TransitionResult

__all__ = [
    "DispatchQueryService",
    "GenerationReport",
    "RouteMaterializer",
    "RouteReorderingService",
    "check_order_set",
    "ScheduleStore",
    "RouteProgress",
    "StopStateMachine",
    "TransitionResult",
]
