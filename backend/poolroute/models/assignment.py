"""
Recurring weekly assignment (schedule template) model.
"""

import enum
import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from poolroute.core.database import Base
from poolroute.models.base import TimestampMixin, UUIDMixin, enum_values

if TYPE_CHECKING:
    from poolroute.models.client import Client
    from poolroute.models.technician import Technician


class DayOfWeek(str, enum.Enum):
    """Day of week, in ``date.weekday()`` order."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, value: date) -> "DayOfWeek":
        return list(cls)[value.weekday()]


class AssignmentState(str, enum.Enum):
    """Assignments are disabled rather than deleted so history stays readable."""

    ACTIVE = "active"
    DISABLED = "disabled"


class RecurringAssignment(Base, UUIDMixin, TimestampMixin):
    """
    One client visited by one technician on one day of the week.

    ``route_order`` positions the client within the (technician, day) group.
    Values need not be contiguous; only their relative order matters.
    """

    __tablename__ = "route_assignments"

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
    )
    technician_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("technicians.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    day_of_week: Mapped[DayOfWeek] = mapped_column(
        Enum(DayOfWeek, native_enum=False, length=16, values_callable=enum_values),
        nullable=False,
    )
    route_order: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    state: Mapped[AssignmentState] = mapped_column(
        Enum(AssignmentState, native_enum=False, length=16, values_callable=enum_values),
        default=AssignmentState.ACTIVE,
        nullable=False,
    )
    disabled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    technician: Mapped["Technician"] = relationship("Technician")
    client: Mapped["Client"] = relationship("Client")

    __table_args__ = (
        UniqueConstraint(
            "company_id", "technician_id", "client_id", "day_of_week",
            name="uq_assignment_company_tech_client_day",
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.state == AssignmentState.ACTIVE

    def __repr__(self) -> str:
        return f"<RecurringAssignment {self.technician_id} -> {self.client_id} on {self.day_of_week.value}>"
