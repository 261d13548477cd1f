from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Boolean, ForeignKey, DateTime

from .authz import Base
from repairdesk.utils import clock


class Reminder(Base):
    __tablename__ = 'reminders'
    ALL_TYPES = ('follow_up', 'warranty_expiry', 'maintenance', 'custom')
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[Optional[int]] = mapped_column(ForeignKey('tickets.id'), nullable=True, index=True)
    client_id: Mapped[Optional[int]] = mapped_column(ForeignKey('clients.id'), nullable=True, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    due_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())

__all__ = ['Reminder']
