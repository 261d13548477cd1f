from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Boolean, Numeric, ForeignKey, DateTime, Index, text

from .authz import Base
from repairdesk.utils import clock


class TimeLog(Base):
    __tablename__ = 'time_logs'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id'), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False, index=True)
    technician_name: Mapped[str] = mapped_column(String(128), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime)
    duration: Mapped[Optional[int]] = mapped_column(Integer)  # whole seconds, set on stop
    description: Mapped[Optional[str]] = mapped_column(Text)
    billable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    labor_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())

    # At most one open session per technician per ticket
    __table_args__ = (
        Index(
            'uq_time_logs_active',
            'ticket_id', 'technician_name',
            unique=True,
            sqlite_where=text('end_time IS NULL'),
            postgresql_where=text('end_time IS NULL'),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.end_time is None

__all__ = ['TimeLog']
