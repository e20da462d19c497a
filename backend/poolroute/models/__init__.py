"""
Database models.
"""
from poolroute.models.base import TimestampMixin, UUIDMixin
from poolroute.models.assignment import AssignmentState, DayOfWeek, RecurringAssignment
from poolroute.models.client import Client
from poolroute.models.technician import Technician
from poolroute.models.route import RouteInstance, RouteStatus, RouteStop, StopStatus

__all__ = [
    "TimestampMixin",
    "UUIDMixin",
    "AssignmentState",
    "DayOfWeek",
    "RecurringAssignment",
    "Client",
    "Technician",
    "RouteInstance",
    "RouteStatus",
    "RouteStop",
    "StopStatus",
]
