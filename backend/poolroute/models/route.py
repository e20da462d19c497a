"""
Materialized route models: one dated run per technician and its ordered stops.
"""
import enum
import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from poolroute.core.database import Base
from poolroute.models.assignment import DayOfWeek
from poolroute.models.base import TimestampMixin, UUIDMixin, enum_values

if TYPE_CHECKING:
    from poolroute.models.client import Client
    from poolroute.models.technician import Technician


class RouteStatus(str, enum.Enum):
    """Route instance status."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class StopStatus(str, enum.Enum):
    """Route stop status."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StopStatus.COMPLETED, StopStatus.SKIPPED)


class RouteInstance(Base, UUIDMixin, TimestampMixin):
    """
    A technician's route for one date.

    Created once per (company, technician, date) by the materializer; the unique
    constraint is what makes concurrent generation idempotent.
    """

    __tablename__ = "route_instances"

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

    route_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )
    day_of_week: Mapped[DayOfWeek] = mapped_column(
        Enum(DayOfWeek, native_enum=False, length=16, values_callable=enum_values),
        nullable=False,
    )

    status: Mapped[RouteStatus] = mapped_column(
        Enum(RouteStatus, native_enum=False, length=20, values_callable=enum_values),
        default=RouteStatus.SCHEDULED,
        nullable=False,
    )

    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    # Bumped on every stop reorder
    version: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    # Relationships
    technician: Mapped["Technician"] = relationship("Technician")
    stops: Mapped[list["RouteStop"]] = relationship(
        "RouteStop",
        back_populates="route_instance",
        order_by="RouteStop.sequence_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("company_id", "technician_id", "route_date", name="uq_route_company_tech_date"),
    )

    def __repr__(self) -> str:
        return f"<RouteInstance {self.technician_id} on {self.route_date} ({self.status.value})>"


class RouteStop(Base, UUIDMixin, TimestampMixin):
    """
    One client visit within a route instance.

    ``sequence_order`` is copied from the assignment at generation time and is
    independent of the template afterwards.
    """

    __tablename__ = "route_stops"

    route_instance_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("route_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Template the stop was copied from; provenance only
    assignment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("route_assignments.id", ondelete="SET NULL"),
        nullable=True,
    )

    # 0 = first visit of the day
    sequence_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    status: Mapped[StopStatus] = mapped_column(
        Enum(StopStatus, native_enum=False, length=20, values_callable=enum_values),
        default=StopStatus.PENDING,
        nullable=False,
    )
    skip_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    actual_arrival: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    actual_departure: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Opaque link to the visit record kept by the service execution subsystem
    service_record_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
    )

    # Relationships
    route_instance: Mapped["RouteInstance"] = relationship(
        "RouteInstance",
        back_populates="stops",
    )
    client: Mapped["Client"] = relationship("Client")

    __table_args__ = (
        UniqueConstraint("route_instance_id", "sequence_order", name="uq_stop_instance_sequence"),
        UniqueConstraint("route_instance_id", "client_id", name="uq_stop_instance_client"),
    )

    def __repr__(self) -> str:
        return f"<RouteStop #{self.sequence_order} in route {self.route_instance_id}>"
