from __future__ import annotations
from decimal import Decimal
from flask import Blueprint, request, abort
from repairdesk.decorators.auth import require_permissions
from repairdesk.models.ticket import Ticket, RepairNote, Attachment, ActivityLog
from repairdesk.services import store, lifecycle, notifier
from repairdesk.services.policy import current_user_id, current_username
from repairdesk.utils.listing import list_response, resource_response
from repairdesk.utils.sorting import apply_multi_sort
from repairdesk.utils.filters import apply_filters
from repairdesk.utils.serialize import iso, money
from repairdesk.utils.validation import (
    require_fields, reject_blank, collect, choice, parse_str, parse_int, parse_bool, parse_decimal, parse_datetime,
    parse_str_list,
)

tickets_bp = Blueprint('tickets', __name__)

_NON_NEGATIVE = {'minimum': Decimal('0')}
TICKET_SCHEMA = {
    'client_id': parse_int,
    'device_id': parse_int,
    'title': parse_str,
    'description': parse_str,
    'status': choice(Ticket.ALL_STATUSES),
    'priority': choice(Ticket.ALL_PRIORITIES),
    'estimated_cost': (parse_decimal, _NON_NEGATIVE),
    'final_cost': (parse_decimal, _NON_NEGATIVE),
    'is_paid': parse_bool,
    'payment_method': parse_str,
    'payment_date': parse_datetime,
    'estimated_completion_time': parse_datetime,
}
NOTE_SCHEMA = {
    'type': choice(RepairNote.ALL_TYPES),
    'title': parse_str,
    'content': parse_str,
    'technician_name': parse_str,
    'is_resolved': parse_bool,
    'priority': choice(RepairNote.ALL_PRIORITIES),
    'tags': parse_str_list,
}
ATTACHMENT_SCHEMA = {
    'filename': parse_str,
    'original_name': parse_str,
    'mimetype': parse_str,
    'size': parse_int,
    'description': parse_str,
    'type': choice(Attachment.ALL_TYPES),
}
_TICKET_SORT = {
    'created_at': Ticket.created_at,
    'updated_at': Ticket.updated_at,
    'status': Ticket.status,
    'priority': Ticket.priority,
    'ticket_number': Ticket.ticket_number,
    'id': Ticket.id,
}


def _publish(t: Ticket):
    notifier.notify_ticket_update(_ticket_json(t))


@tickets_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('TICKET.READ')
def list_tickets():
    q = store.query_tickets(search=request.args.get('q'))
    q = apply_filters(q, {
        'status': {'op': lambda q, v: q.filter(Ticket.status == v), 'choices': Ticket.ALL_STATUSES},
        'priority': {'op': lambda q, v: q.filter(Ticket.priority == v), 'choices': Ticket.ALL_PRIORITIES},
        'client_id': {'op': lambda q, v: q.filter(Ticket.client_id == v), 'coerce': int},
        'device_id': {'op': lambda q, v: q.filter(Ticket.device_id == v), 'coerce': int},
    }, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), _TICKET_SORT, Ticket.id, default=[Ticket.created_at.desc()])
    return list_response(q, _ticket_json, latest_attr='updated_at')


@tickets_bp.get('/search')
@require_permissions('TICKET.READ')
def search_tickets():
    text = (request.args.get('q') or '').strip()
    if not text:
        abort(400, description='q required')
    return {'data': [_ticket_json(t) for t in store.search_tickets(text)]}


@tickets_bp.get('/by-number/<ticket_number>')
@require_permissions('TICKET.READ')
def get_ticket_by_number(ticket_number: str):
    t = store.get_ticket_by_number(ticket_number)
    return resource_response(_ticket_json(t, detail=True), t.id, t.updated_at)


@tickets_bp.post('')
@require_permissions('TICKET.MANAGE')
def create_ticket():
    data = request.json or {}
    require_fields(data, 'client_id', 'device_id', 'title', 'description')
    t = store.create_ticket(collect(data, TICKET_SCHEMA), user_id=current_user_id(), created_by=current_username())
    _publish(t)
    return _ticket_json(t), 201


@tickets_bp.route('/<int:ticket_id>', methods=['GET', 'HEAD'])
@require_permissions('TICKET.READ')
def get_ticket(ticket_id: int):
    t = store.get_or_404(Ticket, ticket_id)
    return resource_response(_ticket_json(t, detail=True), t.id, t.updated_at)


@tickets_bp.patch('/<int:ticket_id>')
@require_permissions('TICKET.MANAGE')
def update_ticket(ticket_id: int):
    data = request.json or {}
    if 'client_id' in data or 'ticket_number' in data:
        abort(400, description='client_id and ticket_number cannot be changed')
    fields = collect(data, TICKET_SCHEMA)
    reject_blank(fields, 'title', 'description', 'status', 'priority', 'device_id', 'is_paid')
    t = lifecycle.update_ticket(ticket_id, fields, user_id=current_user_id(), created_by=current_username())
    _publish(t)
    return _ticket_json(t)


@tickets_bp.delete('/<int:ticket_id>')
@require_permissions('TICKET.DELETE')
def delete_ticket(ticket_id: int):
    store.delete_ticket(ticket_id)
    notifier.notify_ticket_update({'id': ticket_id, 'deleted': True})
    return '', 204


@tickets_bp.get('/<int:ticket_id>/activity')
@require_permissions('TICKET.READ')
def list_activity(ticket_id: int):
    return {'data': [_activity_json(a) for a in store.list_activity(ticket_id)]}


@tickets_bp.get('/<int:ticket_id>/notes')
@require_permissions('TICKET.READ')
def list_notes(ticket_id: int):
    return {'data': [_note_json(n) for n in store.list_repair_notes(ticket_id)]}


@tickets_bp.post('/<int:ticket_id>/notes')
@require_permissions('TICKET.MANAGE')
def create_note(ticket_id: int):
    data = request.json or {}
    require_fields(data, 'type', 'title', 'content')
    fields = collect(data, NOTE_SCHEMA)
    fields.setdefault('technician_name', current_username())
    n = store.create_repair_note(ticket_id, current_user_id(), fields)
    return _note_json(n), 201


@tickets_bp.patch('/notes/<int:note_id>')
@require_permissions('TICKET.MANAGE')
def update_note(note_id: int):
    fields = collect(request.json or {}, NOTE_SCHEMA)
    reject_blank(fields, 'type', 'title', 'content', 'technician_name', 'is_resolved', 'priority')
    return _note_json(store.update_repair_note(note_id, fields))


@tickets_bp.delete('/notes/<int:note_id>')
@require_permissions('TICKET.MANAGE')
def delete_note(note_id: int):
    store.delete_repair_note(note_id)
    return '', 204


@tickets_bp.get('/<int:ticket_id>/attachments')
@require_permissions('TICKET.READ')
def list_attachments(ticket_id: int):
    return {'data': [_attachment_json(a) for a in store.list_attachments(ticket_id)]}


@tickets_bp.post('/<int:ticket_id>/attachments')
@require_permissions('TICKET.MANAGE')
def create_attachment(ticket_id: int):
    data = request.json or {}
    require_fields(data, 'filename', 'original_name', 'mimetype', 'size')
    fields = collect(data, ATTACHMENT_SCHEMA)
    if fields['size'] < 0:
        abort(400, description='size must be >= 0')
    fields['uploaded_by'] = current_username()
    a = store.create_attachment(ticket_id, fields)
    return _attachment_json(a), 201


@tickets_bp.delete('/attachments/<int:attachment_id>')
@require_permissions('TICKET.MANAGE')
def delete_attachment(attachment_id: int):
    store.delete_attachment(attachment_id)
    return '', 204


def _ticket_json(t: Ticket, detail: bool = False):
    body = {
        'id': t.id,
        'ticket_number': t.ticket_number,
        'client_id': t.client_id,
        'device_id': t.device_id,
        'title': t.title,
        'description': t.description,
        'status': t.status,
        'priority': t.priority,
        'estimated_cost': money(t.estimated_cost),
        'final_cost': money(t.final_cost),
        'is_paid': t.is_paid,
        'payment_method': t.payment_method,
        'payment_date': iso(t.payment_date),
        'estimated_completion_time': iso(t.estimated_completion_time),
        'created_at': iso(t.created_at),
        'updated_at': iso(t.updated_at),
        'completed_at': iso(t.completed_at),
    }
    if detail:
        body['client'] = {'id': t.client.id, 'name': t.client.name, 'phone': t.client.phone, 'email': t.client.email}
        body['device'] = {'id': t.device.id, 'type': t.device.type, 'brand': t.device.brand, 'model': t.device.model,
                          'serial_number': t.device.serial_number}
    return body


def _activity_json(a: ActivityLog):
    return {
        'id': a.id,
        'ticket_id': a.ticket_id,
        'user_id': a.user_id,
        'type': a.type,
        'description': a.description,
        'details': a.details or {},
        'created_by': a.created_by,
        'created_at': iso(a.created_at),
    }


def _note_json(n: RepairNote):
    return {
        'id': n.id,
        'ticket_id': n.ticket_id,
        'user_id': n.user_id,
        'type': n.type,
        'title': n.title,
        'content': n.content,
        'technician_name': n.technician_name,
        'is_resolved': n.is_resolved,
        'priority': n.priority,
        'tags': n.tags or [],
        'created_at': iso(n.created_at),
        'updated_at': iso(n.updated_at),
    }


def _attachment_json(a: Attachment):
    return {
        'id': a.id,
        'ticket_id': a.ticket_id,
        'filename': a.filename,
        'original_name': a.original_name,
        'mimetype': a.mimetype,
        'size': a.size,
        'description': a.description,
        'type': a.type,
        'uploaded_by': a.uploaded_by,
        'created_at': iso(a.created_at),
    }
