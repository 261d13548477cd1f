from __future__ import annotations
import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
from flask import abort, current_app, has_app_context
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from repairdesk import get_db
from repairdesk.models.ticket import Ticket
from repairdesk.models.time_log import TimeLog
from repairdesk.services.store import get_or_404, apply_fields
from repairdesk.utils import clock

log = logging.getLogger(__name__)

CENT = Decimal('0.01')
STATS_WINDOW = timedelta(days=30)


def labor_cost(hourly_rate: Optional[Decimal], duration_seconds: Optional[int]) -> Optional[Decimal]:
    """hourly_rate * seconds / 3600, rounded half-up to cents. None when no rate is set."""
    if hourly_rate is None:
        return None
    seconds = Decimal(duration_seconds or 0)
    return (Decimal(hourly_rate) * seconds / Decimal(3600)).quantize(CENT, rounding=ROUND_HALF_UP)


def _default_rate() -> Optional[Decimal]:
    if has_app_context():
        return current_app.config.get('DEFAULT_HOURLY_RATE')
    return None


def get_active_time_log(ticket_id: int, technician_name: str) -> Optional[TimeLog]:
    stmt = select(TimeLog).where(
        TimeLog.ticket_id == ticket_id,
        TimeLog.technician_name == technician_name,
        TimeLog.end_time.is_(None),
    )
    return get_db().execute(stmt).scalars().first()


def create_time_log(ticket_id: int, user_id: int, technician_name: str, start_time: Optional[datetime] = None,
                    hourly_rate: Optional[Decimal] = None, description: Optional[str] = None,
                    billable: bool = True) -> TimeLog:
    """Open a work session. A technician can hold one open session per ticket (409 otherwise)."""
    session = get_db()
    get_or_404(Ticket, ticket_id)
    if get_active_time_log(ticket_id, technician_name) is not None:
        abort(409, description=f'{technician_name} already has an active timer on ticket {ticket_id}')
    now = clock.now()
    tl = TimeLog(
        ticket_id=ticket_id,
        user_id=user_id,
        technician_name=technician_name,
        start_time=start_time or now,
        end_time=None,
        duration=None,
        description=description,
        billable=billable,
        hourly_rate=hourly_rate if hourly_rate is not None else _default_rate(),
        created_at=now,
        updated_at=now,
    )
    session.add(tl)
    try:
        session.commit()
    except IntegrityError:
        # lost a race against a concurrent start; the partial unique index caught it
        session.rollback()
        abort(409, description=f'{technician_name} already has an active timer on ticket {ticket_id}')
    log.info('Timer started: ticket=%s technician=%s log=%s', ticket_id, technician_name, tl.id)
    return tl


def stop_time_log(time_log_id: int, end_time: Optional[datetime] = None) -> TimeLog:
    """Close a session, storing whole elapsed seconds (floored) and the labor cost."""
    tl = get_or_404(TimeLog, time_log_id, 'Time log')
    if tl.end_time is not None:
        abort(409, description=f'Time log {time_log_id} already stopped')
    end = end_time or clock.now()
    if end < tl.start_time:
        abort(400, description='end_time must not precede start_time')
    tl.end_time = end
    tl.duration = (end - tl.start_time) // timedelta(seconds=1)
    tl.labor_cost = labor_cost(tl.hourly_rate, tl.duration)
    tl.updated_at = clock.now()
    get_db().commit()
    log.info('Timer stopped: log=%s duration=%ss cost=%s', tl.id, tl.duration, tl.labor_cost)
    return tl


def query_time_logs(ticket_id: Optional[int] = None, user_id: Optional[int] = None, active: Optional[bool] = None):
    q = get_db().query(TimeLog)
    if ticket_id is not None:
        q = q.filter(TimeLog.ticket_id == ticket_id)
    if user_id is not None:
        q = q.filter(TimeLog.user_id == user_id)
    if active is True:
        q = q.filter(TimeLog.end_time.is_(None))
    elif active is False:
        q = q.filter(TimeLog.end_time.is_not(None))
    return q


def active_logs_for_user(user_id: int) -> List[TimeLog]:
    return query_time_logs(user_id=user_id, active=True).order_by(TimeLog.start_time.asc(), TimeLog.id.asc()).all()


TIME_LOG_FIELDS = ('description', 'billable', 'hourly_rate', 'duration', 'start_time', 'end_time')


def update_time_log(time_log_id: int, fields: Dict[str, Any]) -> TimeLog:
    """Manual correction of a session; cost follows any change to rate or duration."""
    tl = get_or_404(TimeLog, time_log_id, 'Time log')
    if 'end_time' in fields and fields['end_time'] is None and tl.end_time is not None:
        abort(409, description=f'Time log {time_log_id} is stopped and cannot be reopened')
    apply_fields(tl, fields, TIME_LOG_FIELDS)
    if ('start_time' in fields or 'end_time' in fields) and 'duration' not in fields and tl.end_time is not None:
        if tl.end_time < tl.start_time:
            abort(400, description='end_time must not precede start_time')
        tl.duration = (tl.end_time - tl.start_time) // timedelta(seconds=1)
    if tl.duration is not None and tl.duration < 0:
        abort(400, description='duration must be >= 0')
    if tl.end_time is not None and any(k in fields for k in ('hourly_rate', 'duration', 'start_time', 'end_time')):
        tl.labor_cost = labor_cost(tl.hourly_rate, tl.duration)
    tl.updated_at = clock.now()
    get_db().commit()
    return tl


def delete_time_log(time_log_id: int):
    session = get_db()
    session.delete(get_or_404(TimeLog, time_log_id, 'Time log'))
    session.commit()


def get_time_stats(user_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
    """Totals over the user's stopped sessions that started within [start, end] (default: last 30 days)."""
    end = end or clock.now()
    start = start or end - STATS_WINDOW
    logs = query_time_logs(user_id=user_id, active=False).filter(TimeLog.start_time >= start, TimeLog.start_time <= end).all()
    total_seconds = sum(tl.duration or 0 for tl in logs)
    total_cost = sum((Decimal(tl.labor_cost) for tl in logs if tl.labor_cost is not None), Decimal('0'))
    return {
        'start': start,
        'end': end,
        'total_seconds': total_seconds,
        'total_hours': (Decimal(total_seconds) / Decimal(3600)).quantize(CENT, rounding=ROUND_HALF_UP),
        'total_cost': total_cost.quantize(CENT, rounding=ROUND_HALF_UP),
        'sessions_count': len(logs),
        'average_session_seconds': round(total_seconds / len(logs)) if logs else 0,
        'tickets_worked': len({tl.ticket_id for tl in logs}),
    }

__all__ = [
    'labor_cost', 'get_active_time_log', 'create_time_log', 'stop_time_log', 'query_time_logs',
    'active_logs_for_user', 'update_time_log', 'delete_time_log', 'get_time_stats',
]
