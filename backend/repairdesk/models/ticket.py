from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, Numeric, JSON, ForeignKey, DateTime

from .authz import Base
from repairdesk.utils import clock


class Ticket(Base):
    __tablename__ = 'tickets'
    # Status constants
    STATUS_RECEIVED = 'received'
    STATUS_DIAGNOSED = 'diagnosed'
    STATUS_AWAITING_PARTS = 'awaiting_parts'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_READY_FOR_PICKUP = 'ready_for_pickup'
    STATUS_COMPLETED = 'completed'
    ALL_STATUSES = (
        STATUS_RECEIVED,
        STATUS_DIAGNOSED,
        STATUS_AWAITING_PARTS,
        STATUS_IN_PROGRESS,
        STATUS_READY_FOR_PICKUP,
        STATUS_COMPLETED,
    )
    PRIORITY_LOW = 'low'
    PRIORITY_MEDIUM = 'medium'
    PRIORITY_HIGH = 'high'
    PRIORITY_URGENT = 'urgent'
    ALL_PRIORITIES = (PRIORITY_LOW, PRIORITY_MEDIUM, PRIORITY_HIGH, PRIORITY_URGENT)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    client_id: Mapped[int] = mapped_column(ForeignKey('clients.id'), nullable=False, index=True)
    device_id: Mapped[int] = mapped_column(ForeignKey('devices.id'), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_RECEIVED, index=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=PRIORITY_MEDIUM)
    estimated_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    final_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(32))
    payment_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    estimated_completion_time: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now(), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())
    # Stamped on every update that sets status=completed; never cleared by later status changes.
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    client = relationship('Client')
    device = relationship('Device')


class ActivityLog(Base):
    """Append-only history entry for a ticket."""
    __tablename__ = 'activity_logs'
    TYPE_TICKET_CREATED = 'ticket_created'
    TYPE_STATUS_CHANGE = 'status_change'
    TYPE_NOTE_ADDED = 'note_added'
    TYPE_PART_ORDERED = 'part_ordered'
    TYPE_INVOICE_GENERATED = 'invoice_generated'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id'), nullable=False, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False, default='System')
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())


class RepairNote(Base):
    __tablename__ = 'repair_notes'
    ALL_TYPES = ('diagnostic', 'test_result', 'repair_step', 'observation', 'issue_found')
    ALL_PRIORITIES = ('low', 'normal', 'high', 'critical')
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id'), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    technician_name: Mapped[str] = mapped_column(String(128), nullable=False)
    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default='normal')
    tags: Mapped[List[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())


class Attachment(Base):
    """Metadata for an uploaded image or document; the file itself lives on disk."""
    __tablename__ = 'attachments'
    ALL_TYPES = ('device_photo', 'repair_photo', 'document')
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id'), nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mimetype: Mapped[str] = mapped_column(String(64), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(32), nullable=False, default='device_photo')
    uploaded_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())

__all__ = ['Ticket', 'ActivityLog', 'RepairNote', 'Attachment']
