"""Status-driven side effects for tickets, parts orders and reminders."""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from flask import abort

from repairdesk import transaction, get_db
from repairdesk.models.client import Client, Device
from repairdesk.models.ticket import Ticket, ActivityLog
from repairdesk.models.parts_order import PartsOrder
from repairdesk.models.reminder import Reminder
from repairdesk.services.activity import add_activity
from repairdesk.services.store import get_or_404, apply_fields, REMINDER_FIELDS, PARTS_FIELDS
from repairdesk.utils import clock
from repairdesk.utils.fsm import TransitionValidator

log = logging.getLogger(__name__)

# Every status may currently follow every other; narrow the sets here to enforce a workflow.
TICKET_TRANSITIONS = TransitionValidator.permissive(Ticket.ALL_STATUSES)
PARTS_TRANSITIONS = TransitionValidator.permissive(PartsOrder.ALL_STATUSES)

TICKET_UPDATE_FIELDS = (
    'title', 'description', 'status', 'priority', 'estimated_cost', 'final_cost', 'is_paid',
    'payment_method', 'payment_date', 'estimated_completion_time', 'device_id',
)


def update_ticket(ticket_id: int, fields: Dict[str, Any], user_id: Optional[int] = None,
                  created_by: Optional[str] = None) -> Ticket:
    """Apply a partial update to a ticket.

    ``updated_at`` is always re-stamped. Setting status to completed stamps
    ``completed_at`` (moving away from completed leaves it in place). A status
    that differs from the stored one appends a single status_change entry.
    """
    with transaction():
        t = get_or_404(Ticket, ticket_id)
        previous = t.status
        new_status = fields.get('status')
        if new_status is not None:
            TICKET_TRANSITIONS.assert_can_transition(previous, new_status)
        if fields.get('device_id') is not None:
            device = get_or_404(Device, fields['device_id'])
            if device.client_id != t.client_id:
                abort(400, description='device_id does not belong to the ticket client')
        apply_fields(t, fields, TICKET_UPDATE_FIELDS)
        now = clock.now()
        t.updated_at = now
        if new_status == Ticket.STATUS_COMPLETED:
            t.completed_at = now
        if new_status is not None and new_status != previous:
            add_activity(ticket_id, ActivityLog.TYPE_STATUS_CHANGE, f'Status changed from {previous} to {new_status}',
                         {'from': previous, 'to': new_status}, user_id=user_id, created_by=created_by)
    if new_status is not None and new_status != previous:
        log.info('Ticket %s status %s -> %s', t.ticket_number, previous, new_status)
    return t


def update_parts_order(order_id: int, fields: Dict[str, Any]) -> PartsOrder:
    """Partial update; moving to delivered stamps ``received_date`` unless one is supplied."""
    p = get_or_404(PartsOrder, order_id, 'Parts order')
    new_status = fields.get('status')
    if new_status is not None:
        PARTS_TRANSITIONS.assert_can_transition(p.status, new_status)
    apply_fields(p, fields, PARTS_FIELDS)
    if new_status == PartsOrder.STATUS_DELIVERED and 'received_date' not in fields:
        p.received_date = clock.now()
    get_db().commit()
    return p


def update_reminder(reminder_id: int, fields: Dict[str, Any]) -> Reminder:
    """Partial update; completing stamps ``completed_at`` and reopening clears it."""
    r = get_or_404(Reminder, reminder_id)
    if fields.get('ticket_id') is not None:
        get_or_404(Ticket, fields['ticket_id'])
    if fields.get('client_id') is not None:
        get_or_404(Client, fields['client_id'])
    apply_fields(r, fields, REMINDER_FIELDS)
    if 'is_completed' in fields:
        if not fields['is_completed']:
            r.completed_at = None
        elif r.completed_at is None:
            r.completed_at = clock.now()
    get_db().commit()
    return r

__all__ = ['TICKET_TRANSITIONS', 'PARTS_TRANSITIONS', 'update_ticket', 'update_parts_order', 'update_reminder']
