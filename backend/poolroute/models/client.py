"""
Client directory model.

Rows are owned by the client management service; dispatch only reads them.
"""
import uuid
from typing import Optional

from sqlalchemy import Boolean, Enum, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from poolroute.core.database import Base
from poolroute.models.assignment import DayOfWeek
from poolroute.models.base import TimestampMixin, UUIDMixin, enum_values


class Client(Base, UUIDMixin, TimestampMixin):
    """
    Pool service client.
    """

    __tablename__ = "clients"

    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    # Names
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Contact and service address
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Access
    gate_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    access_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Preferred service day, set by the office independently of any schedule
    service_day: Mapped[Optional[DayOfWeek]] = mapped_column(
        Enum(DayOfWeek, native_enum=False, length=16, values_callable=enum_values),
        nullable=True,
        index=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Client {self.display_name}>"

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()
