from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Numeric, ForeignKey, DateTime

from .authz import Base
from repairdesk.utils import clock


class PartsOrder(Base):
    __tablename__ = 'parts_orders'
    # Status flow: ordered -> in_transit -> delivered -> installed (not enforced)
    STATUS_ORDERED = 'ordered'
    STATUS_IN_TRANSIT = 'in_transit'
    STATUS_DELIVERED = 'delivered'
    STATUS_INSTALLED = 'installed'
    ALL_STATUSES = (STATUS_ORDERED, STATUS_IN_TRANSIT, STATUS_DELIVERED, STATUS_INSTALLED)
    PENDING_STATUSES = (STATUS_ORDERED, STATUS_IN_TRANSIT)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id'), nullable=False, index=True)
    part_name: Mapped[str] = mapped_column(String(200), nullable=False)
    supplier: Mapped[Optional[str]] = mapped_column(String(128))
    order_number: Mapped[Optional[str]] = mapped_column(String(64))
    cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_ORDERED, index=True)
    order_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())
    expected_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    received_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    notes: Mapped[Optional[str]] = mapped_column(Text)

__all__ = ['PartsOrder']
