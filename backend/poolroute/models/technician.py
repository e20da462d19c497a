"""
Technician directory model.

Rows are owned by the staff management service; dispatch only reads them.
"""
import uuid
from typing import Optional

from sqlalchemy import Boolean, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from poolroute.core.database import Base
from poolroute.models.base import TimestampMixin, UUIDMixin


class Technician(Base, UUIDMixin, TimestampMixin):
    """
    Field technician who runs daily routes.
    """

    __tablename__ = "technicians"

    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Technician {self.display_name}>"

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()
