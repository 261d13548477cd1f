from repairdesk.services import notifier
from tests.test_lifecycle_helpers import staff_headers, create_client_device_ticket


def test_ticket_updates_broadcast_to_everyone():
    a, b = [], []
    notifier.subscribe(1, a.append)
    notifier.subscribe(2, b.append)
    delivered = notifier.notify_ticket_update({'id': 7, 'status': 'diagnosed'})
    assert delivered == 2
    assert a == b == [{'type': 'ticket_update', 'data': {'id': 7, 'status': 'diagnosed'}}]


def test_timer_updates_are_private():
    a, b = [], []
    notifier.subscribe(1, a.append)
    notifier.subscribe(2, b.append)
    assert notifier.notify_timer_update(2, {'id': 3}) == 1
    assert a == []
    assert b == [{'type': 'timer_update', 'data': {'id': 3}}]


def test_failing_subscriber_is_dropped(caplog):
    good = []

    def broken(message):
        raise ConnectionError('socket closed')
    notifier.subscribe(1, broken)
    notifier.subscribe(1, good.append)
    with caplog.at_level('WARNING', logger='repairdesk.services.notifier'):
        assert notifier.notify_ticket_update({'id': 1}) == 1
    assert notifier.subscriber_count(1) == 1
    assert len(good) == 1
    assert 'Dropping subscriber' in caplog.text


def test_unsubscribe_and_counts():
    fn = notifier.subscribe(5, lambda m: None)
    assert notifier.subscriber_count() == 1
    notifier.unsubscribe(5, fn)
    assert notifier.subscriber_count(5) == 0
    assert notifier.notify_timer_update(5, {}) == 0


def test_ticket_routes_publish_after_commit(app_instance, client):
    _, headers = staff_headers(app_instance)
    seen = []
    notifier.subscribe(99, seen.append)
    _, _, t = create_client_device_ticket(client, headers)
    client.patch(f"/tickets/{t['id']}", json={'status': 'in_progress'}, headers=headers)
    client.delete(f"/tickets/{t['id']}", headers=headers)
    assert [m['type'] for m in seen] == ['ticket_update'] * 3
    assert seen[1]['data']['status'] == 'in_progress'
    assert seen[2]['data'] == {'id': t['id'], 'deleted': True}
