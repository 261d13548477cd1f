from __future__ import annotations
from decimal import Decimal
from flask import Blueprint, request, abort
from repairdesk.decorators.auth import require_permissions
from repairdesk.models.time_log import TimeLog
from repairdesk.services import time_tracking, notifier
from repairdesk.services.store import get_or_404
from repairdesk.services.policy import current_user_id, current_username
from repairdesk.utils.listing import list_response, resource_response
from repairdesk.utils.sorting import apply_multi_sort
from repairdesk.utils.filters import apply_filters, as_bool
from repairdesk.utils.serialize import iso, money
from repairdesk.utils.validation import require_fields, reject_blank, collect, parse_str, parse_int, parse_bool, parse_decimal, parse_datetime

time_bp = Blueprint('time_logs', __name__)

_RATE = (parse_decimal, {'minimum': Decimal('0')})
UPDATE_SCHEMA = {
    'description': parse_str,
    'billable': parse_bool,
    'hourly_rate': _RATE,
    'duration': parse_int,
    'start_time': parse_datetime,
    'end_time': parse_datetime,
}


def _own_log(time_log_id: int) -> TimeLog:
    tl = get_or_404(TimeLog, time_log_id, 'Time log')
    if tl.user_id != current_user_id():
        abort(403, description='Time log belongs to another user')
    return tl


def _publish(tl: TimeLog):
    notifier.notify_timer_update(tl.user_id, _time_log_json(tl))


@time_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('TIME.READ')
def list_time_logs():
    q = time_tracking.query_time_logs()
    q = apply_filters(q, {
        'ticket_id': {'op': lambda q, v: q.filter(TimeLog.ticket_id == v), 'coerce': int},
        'user_id': {'op': lambda q, v: q.filter(TimeLog.user_id == v), 'coerce': int},
        'active': {'op': lambda q, v: q.filter(TimeLog.end_time.is_(None) if v else TimeLog.end_time.is_not(None)), 'coerce': as_bool},
    }, request.args)
    allowed = {'start_time': TimeLog.start_time, 'duration': TimeLog.duration, 'id': TimeLog.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, TimeLog.id, default=[TimeLog.start_time.desc()])
    return list_response(q, _time_log_json, latest_attr='updated_at')


@time_bp.get('/active')
@require_permissions('TIME.READ')
def active_time_logs():
    """Open sessions of the calling technician, optionally for one ticket."""
    ticket_id = request.args.get('ticket_id')
    if ticket_id:
        tl = time_tracking.get_active_time_log(parse_int(ticket_id, 'ticket_id'), current_username())
        return {'data': [_time_log_json(tl)] if tl else []}
    return {'data': [_time_log_json(tl) for tl in time_tracking.active_logs_for_user(current_user_id())]}


@time_bp.get('/stats')
@require_permissions('TIME.READ')
def time_stats():
    start = request.args.get('start_date')
    end = request.args.get('end_date')
    stats = time_tracking.get_time_stats(
        current_user_id(),
        start=parse_datetime(start, 'start_date') if start else None,
        end=parse_datetime(end, 'end_date') if end else None,
    )
    stats.update({
        'start': iso(stats['start']),
        'end': iso(stats['end']),
        'total_hours': str(stats['total_hours']),
        'total_cost': money(stats['total_cost']),
    })
    return stats


@time_bp.post('/start')
@require_permissions('TIME.TRACK')
def start_timer():
    data = request.json or {}
    require_fields(data, 'ticket_id')
    fields = collect(data, {'hourly_rate': _RATE, 'description': parse_str, 'billable': parse_bool, 'start_time': parse_datetime})
    tl = time_tracking.create_time_log(
        parse_int(data['ticket_id'], 'ticket_id'),
        current_user_id(),
        current_username(),
        start_time=fields.get('start_time'),
        hourly_rate=fields.get('hourly_rate'),
        description=fields.get('description'),
        billable=fields.get('billable', True) is not False,
    )
    _publish(tl)
    return _time_log_json(tl), 201


@time_bp.post('/<int:time_log_id>/stop')
@require_permissions('TIME.TRACK')
def stop_timer(time_log_id: int):
    _own_log(time_log_id)
    data = request.json or {}
    end = parse_datetime(data['end_time'], 'end_time') if data.get('end_time') else None
    tl = time_tracking.stop_time_log(time_log_id, end)
    if data.get('description'):
        tl = time_tracking.update_time_log(time_log_id, {'description': parse_str(data['description'], 'description')})
    _publish(tl)
    return _time_log_json(tl)


@time_bp.route('/<int:time_log_id>', methods=['GET', 'HEAD'])
@require_permissions('TIME.READ')
def get_time_log(time_log_id: int):
    tl = get_or_404(TimeLog, time_log_id, 'Time log')
    return resource_response(_time_log_json(tl), tl.id, tl.updated_at)


@time_bp.patch('/<int:time_log_id>')
@require_permissions('TIME.TRACK')
def update_time_log(time_log_id: int):
    _own_log(time_log_id)
    fields = collect(request.json or {}, UPDATE_SCHEMA)
    reject_blank(fields, 'billable', 'start_time')
    tl = time_tracking.update_time_log(time_log_id, fields)
    _publish(tl)
    return _time_log_json(tl)


@time_bp.delete('/<int:time_log_id>')
@require_permissions('TIME.TRACK')
def delete_time_log(time_log_id: int):
    tl = _own_log(time_log_id)
    user_id = tl.user_id
    time_tracking.delete_time_log(time_log_id)
    notifier.notify_timer_update(user_id, {'id': time_log_id, 'deleted': True})
    return '', 204


def _time_log_json(tl: TimeLog):
    return {
        'id': tl.id,
        'ticket_id': tl.ticket_id,
        'user_id': tl.user_id,
        'technician_name': tl.technician_name,
        'start_time': iso(tl.start_time),
        'end_time': iso(tl.end_time),
        'is_active': tl.is_active,
        'duration': tl.duration,
        'description': tl.description,
        'billable': tl.billable,
        'hourly_rate': money(tl.hourly_rate),
        'labor_cost': money(tl.labor_cost),
        'created_at': iso(tl.created_at),
        'updated_at': iso(tl.updated_at),
    }
