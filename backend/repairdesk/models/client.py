from __future__ import annotations
from datetime import datetime
from typing import Optional, List
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, ForeignKey, DateTime

from .authz import Base
from repairdesk.utils import clock


class Client(Base):
    __tablename__ = 'clients'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(128))
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    address: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())

    devices: Mapped[List['Device']] = relationship('Device', back_populates='client', order_by='Device.id')


class Device(Base):
    __tablename__ = 'devices'
    # Common device types; free text is accepted for anything else
    TYPE_LAPTOP = 'laptop'
    TYPE_DESKTOP = 'desktop'
    TYPE_SMARTPHONE = 'smartphone'
    TYPE_TABLET = 'tablet'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey('clients.id'), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    brand: Mapped[str] = mapped_column(String(64), nullable=False)
    model: Mapped[str] = mapped_column(String(64), nullable=False)
    serial_number: Mapped[Optional[str]] = mapped_column(String(64))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())

    client: Mapped['Client'] = relationship('Client', back_populates='devices')

__all__ = ['Client', 'Device']
