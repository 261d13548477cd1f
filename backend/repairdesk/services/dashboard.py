from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy import select, func

from repairdesk import get_db
from repairdesk.models.ticket import Ticket
from repairdesk.models.parts_order import PartsOrder
from repairdesk.utils import clock


def _count(session, model, *conds) -> int:
    return session.execute(select(func.count()).select_from(model).where(*conds)).scalar_one()


def _revenue(session, *conds) -> Decimal:
    total = session.execute(select(func.coalesce(func.sum(Ticket.final_cost), 0)).where(Ticket.is_paid.is_(True), *conds)).scalar_one()
    return Decimal(str(total)).quantize(Decimal('0.01'))


def get_dashboard_stats(now: Optional[datetime] = None) -> Dict[str, Any]:
    """Shop summary; "today" is the server-local day containing ``now``."""
    session = get_db()
    start, end = clock.day_window(now)
    return {
        'active_tickets': _count(session, Ticket, Ticket.status != Ticket.STATUS_COMPLETED),
        'pending_parts': _count(session, PartsOrder, PartsOrder.status.in_(PartsOrder.PENDING_STATUSES)),
        'ready_for_pickup': _count(session, Ticket, Ticket.status == Ticket.STATUS_READY_FOR_PICKUP),
        'revenue': _revenue(session),
        'completed_today': _count(session, Ticket, Ticket.status == Ticket.STATUS_COMPLETED,
                                  Ticket.completed_at >= start, Ticket.completed_at < end),
        'new_today': _count(session, Ticket, Ticket.created_at >= start, Ticket.created_at < end),
        'parts_received_today': _count(session, PartsOrder, PartsOrder.status == PartsOrder.STATUS_DELIVERED,
                                       PartsOrder.received_date >= start, PartsOrder.received_date < end),
        'revenue_today': _revenue(session, Ticket.payment_date >= start, Ticket.payment_date < end),
        'window': {'start': start, 'end': end},
    }

__all__ = ['get_dashboard_stats']
