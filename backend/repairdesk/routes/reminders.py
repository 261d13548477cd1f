from __future__ import annotations
from flask import Blueprint, request
from repairdesk.decorators.auth import require_permissions
from repairdesk.models.reminder import Reminder
from repairdesk.services import store, lifecycle
from repairdesk.utils.listing import list_response, resource_response
from repairdesk.utils.sorting import apply_multi_sort
from repairdesk.utils.filters import apply_filters, as_bool
from repairdesk.utils.serialize import iso
from repairdesk.utils.validation import require_fields, reject_blank, collect, choice, parse_str, parse_int, parse_bool, parse_datetime

reminders_bp = Blueprint('reminders', __name__)

REMINDER_SCHEMA = {
    'ticket_id': parse_int,
    'client_id': parse_int,
    'type': choice(Reminder.ALL_TYPES),
    'title': parse_str,
    'description': parse_str,
    'due_date': parse_datetime,
    'is_completed': parse_bool,
}


@reminders_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('TICKET.READ')
def list_reminders():
    q = store.query_reminders()
    q = apply_filters(q, {
        'ticket_id': {'op': lambda q, v: q.filter(Reminder.ticket_id == v), 'coerce': int},
        'client_id': {'op': lambda q, v: q.filter(Reminder.client_id == v), 'coerce': int},
        'is_completed': {'op': lambda q, v: q.filter(Reminder.is_completed.is_(v)), 'coerce': as_bool},
        'type': {'op': lambda q, v: q.filter(Reminder.type == v), 'choices': Reminder.ALL_TYPES},
    }, request.args)
    allowed = {'due_date': Reminder.due_date, 'created_at': Reminder.created_at, 'id': Reminder.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Reminder.id, default=[Reminder.due_date.asc()])
    return list_response(q, _reminder_json)


@reminders_bp.get('/upcoming')
@require_permissions('TICKET.READ')
def upcoming():
    return {'data': [_reminder_json(r) for r in store.upcoming_reminders()]}


@reminders_bp.get('/overdue')
@require_permissions('TICKET.READ')
def overdue():
    return {'data': [_reminder_json(r) for r in store.overdue_reminders()]}


@reminders_bp.post('')
@require_permissions('TICKET.MANAGE')
def create_reminder():
    data = request.json or {}
    require_fields(data, 'type', 'title', 'due_date')
    r = store.create_reminder(collect(data, REMINDER_SCHEMA))
    return _reminder_json(r), 201


@reminders_bp.route('/<int:reminder_id>', methods=['GET', 'HEAD'])
@require_permissions('TICKET.READ')
def get_reminder(reminder_id: int):
    r = store.get_or_404(Reminder, reminder_id)
    return resource_response(_reminder_json(r), r.id, r.completed_at or r.created_at)


@reminders_bp.patch('/<int:reminder_id>')
@require_permissions('TICKET.MANAGE')
def update_reminder(reminder_id: int):
    fields = collect(request.json or {}, REMINDER_SCHEMA)
    reject_blank(fields, 'type', 'title', 'due_date', 'is_completed')
    return _reminder_json(lifecycle.update_reminder(reminder_id, fields))


@reminders_bp.delete('/<int:reminder_id>')
@require_permissions('TICKET.MANAGE')
def delete_reminder(reminder_id: int):
    store.delete_reminder(reminder_id)
    return '', 204


def _reminder_json(r: Reminder):
    return {
        'id': r.id,
        'ticket_id': r.ticket_id,
        'client_id': r.client_id,
        'type': r.type,
        'title': r.title,
        'description': r.description,
        'due_date': iso(r.due_date),
        'is_completed': r.is_completed,
        'completed_at': iso(r.completed_at),
        'created_at': iso(r.created_at),
    }
