from datetime import datetime
from decimal import Decimal
import pytest
from werkzeug.exceptions import Conflict
from repairdesk.services import time_tracking, notifier
from tests.test_utils_seed import create_ticket, ensure_user
from tests.test_lifecycle_helpers import staff_headers, create_client_device_ticket

START = '2026-03-10T10:00:00'


def _start(client, headers, ticket_id, **extra):
    return client.post('/time-logs/start', json={'ticket_id': ticket_id, 'start_time': START, **extra}, headers=headers)


def test_labor_cost_rounding():
    assert time_tracking.labor_cost(Decimal('60'), 1845) == Decimal('30.75')
    assert time_tracking.labor_cost(Decimal('45.50'), 600) == Decimal('7.58')
    assert time_tracking.labor_cost(None, 3600) is None
    assert time_tracking.labor_cost(Decimal('80'), 0) == Decimal('0.00')


def test_start_stop_records_floored_duration_and_cost(app_instance, client):
    _, headers = staff_headers(app_instance)
    _, _, t = create_client_device_ticket(client, headers)
    started = _start(client, headers, t['id'], hourly_rate='60')
    assert started.status_code == 201, started.get_json()
    log = started.get_json()
    assert log['is_active'] is True
    assert log['technician_name'] == 'tech'
    assert log['duration'] is None

    stopped = client.post(f"/time-logs/{log['id']}/stop", json={'end_time': '2026-03-10T10:30:45.900000'}, headers=headers)
    assert stopped.status_code == 200
    body = stopped.get_json()
    assert body['duration'] == 1845
    assert body['labor_cost'] == '30.75'
    assert body['is_active'] is False


def test_second_active_timer_on_same_ticket_conflicts(app_instance, client):
    _, headers = staff_headers(app_instance)
    _, _, t = create_client_device_ticket(client, headers)
    first = _start(client, headers, t['id']).get_json()
    again = _start(client, headers, t['id'])
    assert again.status_code == 409
    active = client.get(f"/time-logs/active?ticket_id={t['id']}", headers=headers).get_json()['data']
    assert [a['id'] for a in active] == [first['id']]
    # another technician may time the same ticket
    _, other_headers = staff_headers(app_instance, username='other')
    assert _start(client, other_headers, t['id']).status_code == 201


def test_stop_twice_and_stop_before_start(app_instance, client):
    _, headers = staff_headers(app_instance)
    _, _, t = create_client_device_ticket(client, headers)
    log = _start(client, headers, t['id']).get_json()
    early = client.post(f"/time-logs/{log['id']}/stop", json={'end_time': '2026-03-10T09:59:59'}, headers=headers)
    assert early.status_code == 400
    ok = client.post(f"/time-logs/{log['id']}/stop", json={'end_time': '2026-03-10T11:00:00'}, headers=headers)
    assert ok.status_code == 200
    twice = client.post(f"/time-logs/{log['id']}/stop", json={'end_time': '2026-03-10T12:00:00'}, headers=headers)
    assert twice.status_code == 409
    assert client.post('/time-logs/9999/stop', json={}, headers=headers).status_code == 404


def test_only_owner_can_stop_edit_or_delete(app_instance, client):
    _, headers = staff_headers(app_instance)
    _, _, t = create_client_device_ticket(client, headers)
    log = _start(client, headers, t['id']).get_json()
    _, intruder = staff_headers(app_instance, username='intruder')
    assert client.post(f"/time-logs/{log['id']}/stop", json={}, headers=intruder).status_code == 403
    assert client.patch(f"/time-logs/{log['id']}", json={'description': 'x'}, headers=intruder).status_code == 403
    assert client.delete(f"/time-logs/{log['id']}", headers=intruder).status_code == 403
    assert client.delete(f"/time-logs/{log['id']}", headers=headers).status_code == 204


def test_manual_correction_recomputes_duration_and_cost(app_instance, client):
    _, headers = staff_headers(app_instance)
    _, _, t = create_client_device_ticket(client, headers)
    log = _start(client, headers, t['id'], hourly_rate='40').get_json()
    client.post(f"/time-logs/{log['id']}/stop", json={'end_time': '2026-03-10T10:15:00'}, headers=headers)
    fixed = client.patch(f"/time-logs/{log['id']}", json={'end_time': '2026-03-10T11:30:00'}, headers=headers).get_json()
    assert fixed['duration'] == 5400
    assert fixed['labor_cost'] == '60.00'
    bad = client.patch(f"/time-logs/{log['id']}", json={'end_time': '2026-03-10T09:00:00'}, headers=headers)
    assert bad.status_code == 400
    # the rejected correction must not leak into the next committed write
    client.patch(f"/time-logs/{log['id']}", json={'description': 'Board repair'}, headers=headers)
    current = client.get(f"/time-logs/{log['id']}", headers=headers).get_json()
    assert current['end_time'] == '2026-03-10T11:30:00'
    assert current['description'] == 'Board repair'


def test_stopped_log_cannot_be_reopened(app_instance, client):
    _, headers = staff_headers(app_instance)
    _, _, t = create_client_device_ticket(client, headers)
    log = _start(client, headers, t['id'], hourly_rate='60').get_json()
    client.post(f"/time-logs/{log['id']}/stop", json={'end_time': '2026-03-10T11:00:00'}, headers=headers)

    alone = client.patch(f"/time-logs/{log['id']}", json={'end_time': None}, headers=headers)
    assert alone.status_code == 409
    # with another timer running on the same ticket the answer is the same
    assert _start(client, headers, t['id'], start_time='2026-03-10T12:00:00').status_code == 201
    crowded = client.patch(f"/time-logs/{log['id']}", json={'end_time': None}, headers=headers)
    assert crowded.status_code == 409

    current = client.get(f"/time-logs/{log['id']}", headers=headers).get_json()
    assert current['is_active'] is False
    assert current['end_time'] == '2026-03-10T11:00:00'
    assert current['duration'] == 3600
    assert current['labor_cost'] == '60.00'


def test_stats_over_window(app_instance, client):
    _, headers = staff_headers(app_instance)
    c, d, t = create_client_device_ticket(client, headers)
    a = _start(client, headers, t['id'], hourly_rate='60').get_json()
    client.post(f"/time-logs/{a['id']}/stop", json={'end_time': '2026-03-10T10:30:45'}, headers=headers)
    b = _start(client, headers, t['id'], hourly_rate='60', start_time='2026-03-12T08:00:00').get_json()
    client.post(f"/time-logs/{b['id']}/stop", json={'end_time': '2026-03-12T08:29:15'}, headers=headers)
    # still running; excluded from totals
    _start(client, headers, t['id'], start_time='2026-03-13T08:00:00')

    stats = client.get('/time-logs/stats?start_date=2026-03-01T00:00:00&end_date=2026-03-31T00:00:00', headers=headers).get_json()
    assert stats['total_seconds'] == 1845 + 1755
    assert stats['sessions_count'] == 2
    assert stats['average_session_seconds'] == 1800
    assert stats['tickets_worked'] == 1
    assert stats['total_cost'] == '60.00'
    assert stats['total_hours'] == '1.00'

    empty = client.get('/time-logs/stats?start_date=2025-01-01T00:00:00&end_date=2025-01-31T00:00:00', headers=headers).get_json()
    assert empty['sessions_count'] == 0
    assert empty['average_session_seconds'] == 0


def test_timer_updates_reach_only_the_owner(app_instance, client):
    owner, headers = staff_headers(app_instance)
    other = ensure_user('bystander')
    mine, theirs = [], []
    notifier.subscribe(owner.id, mine.append)
    notifier.subscribe(other.id, theirs.append)
    _, _, t = create_client_device_ticket(client, headers)
    mine.clear(); theirs.clear()
    log = _start(client, headers, t['id']).get_json()
    assert [m['type'] for m in mine] == ['timer_update']
    assert mine[0]['data']['id'] == log['id']
    assert theirs == []


def test_service_rejects_duplicate_active_log(app_context):
    user = ensure_user('svc')
    t = create_ticket()
    time_tracking.create_time_log(t.id, user.id, 'svc', start_time=datetime(2026, 3, 1, 9, 0))
    with pytest.raises(Conflict):
        time_tracking.create_time_log(t.id, user.id, 'svc')
    assert time_tracking.get_active_time_log(t.id, 'svc') is not None
    assert time_tracking.get_active_time_log(t.id, 'someone-else') is None
