"""Entity store: CRUD for the repair-shop records and the cascading deletes.

Single-row writes commit immediately. Multi-statement work (ticket creation,
ticket and client cascades) runs inside ``transaction()`` so a failure part
way through leaves nothing behind.
"""
from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
from flask import abort
from sqlalchemy import select, delete, or_, func
from sqlalchemy.exc import IntegrityError

from repairdesk import get_db, transaction
from repairdesk.models.client import Client, Device
from repairdesk.models.ticket import Ticket, ActivityLog, RepairNote, Attachment
from repairdesk.models.parts_order import PartsOrder
from repairdesk.models.reminder import Reminder
from repairdesk.models.time_log import TimeLog
from repairdesk.models.billing import BillableItem, Invoice, SalesTransaction
from repairdesk.services.activity import add_activity
from repairdesk.services.numbering import generate_ticket_number, MAX_ATTEMPTS
from repairdesk.utils import clock

log = logging.getLogger(__name__)


def get_or_404(model, obj_id: int, label: Optional[str] = None):
    obj = get_db().get(model, obj_id)
    if obj is None:
        abort(404, description=f'{label or model.__name__} {obj_id} not found')
    return obj


def apply_fields(obj, fields: Dict[str, Any], allowed: Iterable[str]):
    for key in allowed:
        if key in fields:
            setattr(obj, key, fields[key])
    return obj


def _save(obj):
    session = get_db()
    session.add(obj)
    session.commit()
    return obj


# Clients / devices -----------------------------------------------------------

CLIENT_FIELDS = ('name', 'email', 'phone', 'address', 'notes')
DEVICE_FIELDS = ('client_id', 'type', 'brand', 'model', 'serial_number', 'notes')


def query_clients(search: Optional[str] = None):
    q = get_db().query(Client)
    if search:
        like = f'%{search}%'
        q = q.filter(or_(Client.name.ilike(like), Client.email.ilike(like), Client.phone.ilike(like)))
    return q


def create_client(fields: Dict[str, Any]) -> Client:
    c = apply_fields(Client(), fields, CLIENT_FIELDS)
    return _save(c)


def update_client(client_id: int, fields: Dict[str, Any]) -> Client:
    c = get_or_404(Client, client_id)
    apply_fields(c, fields, CLIENT_FIELDS)
    get_db().commit()
    return c


def query_devices(client_id: Optional[int] = None):
    q = get_db().query(Device)
    if client_id is not None:
        q = q.filter(Device.client_id == client_id)
    return q


def create_device(fields: Dict[str, Any]) -> Device:
    get_or_404(Client, fields['client_id'])
    return _save(apply_fields(Device(), fields, DEVICE_FIELDS))


def update_device(device_id: int, fields: Dict[str, Any]) -> Device:
    d = get_or_404(Device, device_id)
    if 'client_id' in fields:
        get_or_404(Client, fields['client_id'])
    apply_fields(d, fields, DEVICE_FIELDS)
    get_db().commit()
    return d


def delete_device(device_id: int):
    session = get_db()
    d = get_or_404(Device, device_id)
    in_use = session.execute(select(func.count()).select_from(Ticket).where(Ticket.device_id == device_id)).scalar_one()
    if in_use:
        abort(409, description=f'Device {device_id} is referenced by {in_use} ticket(s)')
    session.delete(d)
    session.commit()


def _delete_ticket_dependents(session, ticket_ids: List[int]):
    """Remove every row hanging off the given tickets (children before parents)."""
    invoiced = session.execute(select(func.count()).select_from(Invoice).where(Invoice.ticket_id.in_(ticket_ids))).scalar_one()
    if invoiced:
        abort(409, description='Ticket has invoices and cannot be deleted')
    for model in (TimeLog, RepairNote, PartsOrder, ActivityLog, Attachment, Reminder):
        session.execute(delete(model).where(model.ticket_id.in_(ticket_ids)))
    session.execute(delete(BillableItem).where(BillableItem.ticket_id.in_(ticket_ids), BillableItem.invoice_id.is_(None)))


def delete_client(client_id: int):
    """Delete a client with its devices, their tickets and everything under those tickets."""
    with transaction() as session:
        client = get_or_404(Client, client_id)
        sales = session.execute(select(func.count()).select_from(SalesTransaction).where(SalesTransaction.client_id == client_id)).scalar_one()
        if sales:
            abort(409, description='Client has sales transactions and cannot be deleted')
        device_ids = list(session.execute(select(Device.id).where(Device.client_id == client_id)).scalars())
        cond = Ticket.client_id == client_id
        if device_ids:
            cond = or_(cond, Ticket.device_id.in_(device_ids))
        ticket_ids = list(session.execute(select(Ticket.id).where(cond)).scalars())
        if ticket_ids:
            _delete_ticket_dependents(session, ticket_ids)
            session.execute(delete(Ticket).where(Ticket.id.in_(ticket_ids)))
        session.execute(delete(Device).where(Device.client_id == client_id))
        session.execute(delete(Reminder).where(Reminder.client_id == client_id))
        session.delete(client)
    log.info('Deleted client %s with %d device(s) and %d ticket(s)', client_id, len(device_ids), len(ticket_ids))


# Tickets -------------------------------------------------------------------

TICKET_CREATE_FIELDS = (
    'client_id', 'device_id', 'title', 'description', 'status', 'priority', 'estimated_cost',
    'final_cost', 'is_paid', 'payment_method', 'payment_date', 'estimated_completion_time',
)


def query_tickets(status: Optional[str] = None, client_id: Optional[int] = None, device_id: Optional[int] = None,
                  priority: Optional[str] = None, search: Optional[str] = None):
    q = get_db().query(Ticket)
    if status:
        q = q.filter(Ticket.status == status)
    if priority:
        q = q.filter(Ticket.priority == priority)
    if client_id is not None:
        q = q.filter(Ticket.client_id == client_id)
    if device_id is not None:
        q = q.filter(Ticket.device_id == device_id)
    if search:
        like = f'%{search}%'
        q = q.filter(or_(Ticket.ticket_number.ilike(like), Ticket.title.ilike(like), Ticket.description.ilike(like)))
    return q


def search_tickets(text: str) -> List[Ticket]:
    return query_tickets(search=text).order_by(Ticket.created_at.desc(), Ticket.id.desc()).all()


def get_ticket_by_number(ticket_number: str) -> Ticket:
    t = get_db().execute(select(Ticket).where(Ticket.ticket_number == ticket_number)).scalar_one_or_none()
    if t is None:
        abort(404, description=f'Ticket {ticket_number} not found')
    return t


def create_ticket(fields: Dict[str, Any], user_id: Optional[int] = None, created_by: Optional[str] = None) -> Ticket:
    """Insert a ticket with a fresh number and its ``ticket_created`` history entry.

    A unique-violation on ticket_number (a concurrent insert took the number)
    rolls back and retries with a newly generated one.
    """
    session = get_db()
    get_or_404(Client, fields['client_id'])
    device = get_or_404(Device, fields['device_id'])
    if device.client_id != fields['client_id']:
        abort(400, description='device_id does not belong to client_id')
    for attempt in range(MAX_ATTEMPTS):
        now = clock.now()
        t = apply_fields(Ticket(), fields, TICKET_CREATE_FIELDS)
        t.ticket_number = generate_ticket_number(session)
        t.created_at = now
        t.updated_at = now
        if t.status == Ticket.STATUS_COMPLETED:
            t.completed_at = now
        session.add(t)
        try:
            session.flush()
            add_activity(t.id, ActivityLog.TYPE_TICKET_CREATED, 'Ticket created',
                         {'ticket_number': t.ticket_number}, user_id=user_id, created_by=created_by)
            session.commit()
        except IntegrityError:
            session.rollback()
            log.warning('Ticket number %s collided, retrying (attempt %d)', t.ticket_number, attempt + 1)
            continue
        log.info('Created ticket %s (id=%s)', t.ticket_number, t.id)
        return t
    abort(409, description='Could not allocate a unique ticket number')


def delete_ticket(ticket_id: int):
    """Delete a ticket and its time logs, notes, parts orders, activity, attachments, reminders and unbilled items."""
    with transaction() as session:
        t = get_or_404(Ticket, ticket_id)
        _delete_ticket_dependents(session, [ticket_id])
        session.delete(t)
    log.info('Deleted ticket %s (id=%s)', t.ticket_number, ticket_id)


# Parts orders --------------------------------------------------------------

PARTS_FIELDS = ('part_name', 'supplier', 'order_number', 'cost', 'quantity', 'status',
                'order_date', 'expected_date', 'received_date', 'notes')


def query_parts_orders(ticket_id: Optional[int] = None, status: Optional[str] = None):
    q = get_db().query(PartsOrder)
    if ticket_id is not None:
        q = q.filter(PartsOrder.ticket_id == ticket_id)
    if status:
        q = q.filter(PartsOrder.status == status)
    return q


def create_parts_order(ticket_id: int, fields: Dict[str, Any], user_id: Optional[int] = None,
                       created_by: Optional[str] = None) -> PartsOrder:
    get_or_404(Ticket, ticket_id)
    with transaction() as session:
        p = apply_fields(PartsOrder(ticket_id=ticket_id), fields, PARTS_FIELDS)
        if p.status == PartsOrder.STATUS_DELIVERED and p.received_date is None:
            p.received_date = clock.now()
        session.add(p)
        session.flush()
        add_activity(ticket_id, ActivityLog.TYPE_PART_ORDERED, f'Part ordered: {p.part_name}',
                     {'parts_order_id': p.id, 'supplier': p.supplier}, user_id=user_id, created_by=created_by)
    return p


def delete_parts_order(order_id: int):
    session = get_db()
    session.delete(get_or_404(PartsOrder, order_id, 'Parts order'))
    session.commit()


# Repair notes --------------------------------------------------------------

NOTE_FIELDS = ('type', 'title', 'content', 'technician_name', 'is_resolved', 'priority', 'tags')


def list_repair_notes(ticket_id: int) -> List[RepairNote]:
    get_or_404(Ticket, ticket_id)
    stmt = select(RepairNote).where(RepairNote.ticket_id == ticket_id).order_by(RepairNote.created_at.desc(), RepairNote.id.desc())
    return list(get_db().execute(stmt).scalars())


def create_repair_note(ticket_id: int, user_id: int, fields: Dict[str, Any]) -> RepairNote:
    get_or_404(Ticket, ticket_id)
    with transaction() as session:
        now = clock.now()
        n = apply_fields(RepairNote(ticket_id=ticket_id, user_id=user_id, created_at=now, updated_at=now), fields, NOTE_FIELDS)
        if n.tags is None:
            n.tags = []
        session.add(n)
        session.flush()
        add_activity(ticket_id, ActivityLog.TYPE_NOTE_ADDED, f'{n.technician_name} added a {n.type} note: {n.title}',
                     {'note_id': n.id, 'note_type': n.type}, user_id=user_id, created_by=n.technician_name)
    return n


def update_repair_note(note_id: int, fields: Dict[str, Any]) -> RepairNote:
    n = get_or_404(RepairNote, note_id, 'Repair note')
    apply_fields(n, fields, NOTE_FIELDS)
    n.updated_at = clock.now()
    get_db().commit()
    return n


def delete_repair_note(note_id: int):
    session = get_db()
    session.delete(get_or_404(RepairNote, note_id, 'Repair note'))
    session.commit()


# Attachments ---------------------------------------------------------------

ATTACHMENT_FIELDS = ('filename', 'original_name', 'mimetype', 'size', 'description', 'type', 'uploaded_by')


def list_attachments(ticket_id: int) -> List[Attachment]:
    get_or_404(Ticket, ticket_id)
    stmt = select(Attachment).where(Attachment.ticket_id == ticket_id).order_by(Attachment.created_at.desc(), Attachment.id.desc())
    return list(get_db().execute(stmt).scalars())


def create_attachment(ticket_id: int, fields: Dict[str, Any]) -> Attachment:
    get_or_404(Ticket, ticket_id)
    return _save(apply_fields(Attachment(ticket_id=ticket_id), fields, ATTACHMENT_FIELDS))


def delete_attachment(attachment_id: int):
    session = get_db()
    session.delete(get_or_404(Attachment, attachment_id))
    session.commit()


# Reminders -----------------------------------------------------------------

REMINDER_FIELDS = ('ticket_id', 'client_id', 'type', 'title', 'description', 'due_date', 'is_completed')


def query_reminders(ticket_id: Optional[int] = None, client_id: Optional[int] = None, is_completed: Optional[bool] = None):
    q = get_db().query(Reminder)
    if ticket_id is not None:
        q = q.filter(Reminder.ticket_id == ticket_id)
    if client_id is not None:
        q = q.filter(Reminder.client_id == client_id)
    if is_completed is not None:
        q = q.filter(Reminder.is_completed == is_completed)
    return q


def create_reminder(fields: Dict[str, Any]) -> Reminder:
    if fields.get('ticket_id') is not None:
        get_or_404(Ticket, fields['ticket_id'])
    if fields.get('client_id') is not None:
        get_or_404(Client, fields['client_id'])
    r = apply_fields(Reminder(), fields, REMINDER_FIELDS)
    if r.is_completed:
        r.completed_at = clock.now()
    return _save(r)


def upcoming_reminders(now: Optional[datetime] = None) -> List[Reminder]:
    """Incomplete reminders due within the next 24 hours, overdue ones included."""
    horizon = (now or clock.now()) + timedelta(days=1)
    stmt = select(Reminder).where(Reminder.is_completed.is_(False), Reminder.due_date <= horizon).order_by(Reminder.due_date.asc(), Reminder.id.asc())
    return list(get_db().execute(stmt).scalars())


def overdue_reminders(now: Optional[datetime] = None) -> List[Reminder]:
    stmt = select(Reminder).where(Reminder.is_completed.is_(False), Reminder.due_date < (now or clock.now())).order_by(Reminder.due_date.asc(), Reminder.id.asc())
    return list(get_db().execute(stmt).scalars())


def delete_reminder(reminder_id: int):
    session = get_db()
    session.delete(get_or_404(Reminder, reminder_id))
    session.commit()


# Activity ------------------------------------------------------------------

def list_activity(ticket_id: int) -> List[ActivityLog]:
    get_or_404(Ticket, ticket_id)
    stmt = select(ActivityLog).where(ActivityLog.ticket_id == ticket_id).order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    return list(get_db().execute(stmt).scalars())
