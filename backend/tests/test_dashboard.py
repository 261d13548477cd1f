from datetime import datetime, timedelta
from decimal import Decimal
from repairdesk import get_db
from repairdesk.models.parts_order import PartsOrder
from repairdesk.models.ticket import Ticket
from repairdesk.services.dashboard import get_dashboard_stats
from repairdesk.utils import clock
from tests.test_utils_seed import create_ticket, paid_ticket
from tests.test_lifecycle_helpers import staff_headers

NOW = datetime(2026, 7, 15, 14, 0, 0)
MIDNIGHT = datetime(2026, 7, 15)
JUST_BEFORE = MIDNIGHT - timedelta(seconds=1)


def _freeze(monkeypatch):
    monkeypatch.setattr(clock, 'now', lambda: NOW)


def test_day_window_is_local_calendar_day():
    start, end = clock.day_window(NOW)
    assert start == MIDNIGHT
    assert end == MIDNIGHT + timedelta(days=1)


def test_today_counters_exclude_yesterday_235959(app_context, monkeypatch):
    _freeze(monkeypatch)
    create_ticket(number='TF-2026-001', status=Ticket.STATUS_COMPLETED, completed_at=MIDNIGHT)
    create_ticket(number='TF-2026-002', status=Ticket.STATUS_COMPLETED, completed_at=JUST_BEFORE, created_at=JUST_BEFORE)
    create_ticket(number='TF-2026-003', status=Ticket.STATUS_READY_FOR_PICKUP)
    create_ticket(number='TF-2026-004', status=Ticket.STATUS_IN_PROGRESS)

    stats = get_dashboard_stats()
    assert stats['completed_today'] == 1
    assert stats['new_today'] == 3
    assert stats['active_tickets'] == 2
    assert stats['ready_for_pickup'] == 1
    assert stats['window'] == {'start': MIDNIGHT, 'end': MIDNIGHT + timedelta(days=1)}


def test_revenue_counts_paid_tickets_only(app_context, monkeypatch):
    _freeze(monkeypatch)
    paid_ticket('120.50', payment_date=NOW, number='TF-2026-010')
    paid_ticket('79.50', payment_date=JUST_BEFORE, number='TF-2026-011')
    create_ticket(number='TF-2026-012', final_cost=Decimal('500'))

    stats = get_dashboard_stats()
    assert stats['revenue'] == Decimal('200.00')
    assert stats['revenue_today'] == Decimal('120.50')


def test_parts_counters(app_context, monkeypatch):
    _freeze(monkeypatch)
    t = create_ticket()
    session = get_db()
    session.add_all([
        PartsOrder(ticket_id=t.id, part_name='A', status=PartsOrder.STATUS_ORDERED),
        PartsOrder(ticket_id=t.id, part_name='B', status=PartsOrder.STATUS_IN_TRANSIT),
        PartsOrder(ticket_id=t.id, part_name='C', status=PartsOrder.STATUS_DELIVERED, received_date=NOW - timedelta(hours=3)),
        PartsOrder(ticket_id=t.id, part_name='D', status=PartsOrder.STATUS_DELIVERED, received_date=JUST_BEFORE),
        PartsOrder(ticket_id=t.id, part_name='E', status=PartsOrder.STATUS_INSTALLED, received_date=NOW),
    ])
    session.commit()
    stats = get_dashboard_stats()
    assert stats['pending_parts'] == 2
    assert stats['parts_received_today'] == 1


def test_empty_shop_over_http(app_instance, client, monkeypatch):
    _freeze(monkeypatch)
    _, headers = staff_headers(app_instance, perms=['RPT.READ'])
    body = client.get('/dashboard/stats', headers=headers).get_json()
    assert body['active_tickets'] == 0
    assert body['revenue'] == '0.00'
    assert body['revenue_today'] == '0.00'
    assert body['window'] == {'start': '2026-07-15T00:00:00', 'end': '2026-07-16T00:00:00'}
    _, no_perm = staff_headers(app_instance, username='nobody', perms=[])
    assert client.get('/dashboard/stats', headers=no_perm).status_code == 403
