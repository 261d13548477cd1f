import re
from datetime import datetime
import pytest
from werkzeug.exceptions import Conflict
from repairdesk import get_db
from repairdesk.models.ticket import Ticket, ActivityLog
from repairdesk.services import numbering, store
from tests.test_utils_seed import create_client, create_device, create_ticket

NOW = datetime(2026, 2, 14, 10, 0, 0)


def _seed_numbers(*numbers):
    c = create_client()
    d = create_device(c)
    for n in numbers:
        create_ticket(c, d, number=n)


def test_first_number_of_the_year(app_context):
    assert numbering.generate_ticket_number(now=NOW) == 'TF-2026-001'


def test_sequence_counts_only_current_year(app_context):
    _seed_numbers('TF-2025-001', 'TF-2025-002', 'TF-2026-001')
    assert numbering.generate_ticket_number(now=NOW) == 'TF-2026-002'


def test_probes_past_numbers_left_by_deletions(app_context):
    # 002 was deleted: count says 3rd, but 003 is taken
    _seed_numbers('TF-2026-001', 'TF-2026-003')
    assert numbering.generate_ticket_number(now=NOW) == 'TF-2026-004'


def test_falls_back_to_timestamp_suffix(app_context, monkeypatch, caplog):
    _seed_numbers('TF-2026-002')
    monkeypatch.setattr(numbering, 'MAX_ATTEMPTS', 1)
    with caplog.at_level('WARNING', logger='repairdesk.services.numbering'):
        number = numbering.generate_ticket_number(now=NOW)
    assert re.fullmatch(r'TF-2026-\d{6}', number)
    assert number != 'TF-2026-002'
    assert 'No free TF sequence' in caplog.text


def test_prefixes_come_from_config(app_context, monkeypatch):
    monkeypatch.setitem(app_context.config, 'TICKET_NUMBER_PREFIX', 'RD')
    assert numbering.generate_ticket_number(now=NOW) == 'RD-2026-001'
    assert numbering.generate_invoice_number(now=NOW) == 'INV-2026-001'


def test_create_ticket_retries_after_number_collision(app_context, monkeypatch, caplog):
    c = create_client()
    d = create_device(c)
    create_ticket(c, d, number='TF-2026-001')
    client_id, device_id = c.id, d.id
    numbers = iter(['TF-2026-001', 'TF-2026-002'])
    monkeypatch.setattr(store, 'generate_ticket_number', lambda session=None: next(numbers))
    with caplog.at_level('WARNING', logger='repairdesk.services.store'):
        t = store.create_ticket({'client_id': client_id, 'device_id': device_id, 'title': 'No power', 'description': 'Dead on arrival'})
    assert t.ticket_number == 'TF-2026-002'
    assert 'TF-2026-001 collided' in caplog.text
    assert get_db().query(Ticket).count() == 2
    created = get_db().query(ActivityLog).filter_by(ticket_id=t.id, type=ActivityLog.TYPE_TICKET_CREATED).count()
    assert created == 1


def test_create_ticket_gives_up_after_repeated_collisions(app_context, monkeypatch):
    c = create_client()
    d = create_device(c)
    create_ticket(c, d, number='TF-2026-001')
    client_id, device_id = c.id, d.id
    monkeypatch.setattr(store, 'generate_ticket_number', lambda session=None: 'TF-2026-001')
    with pytest.raises(Conflict):
        store.create_ticket({'client_id': client_id, 'device_id': device_id, 'title': 'No power', 'description': 'Dead on arrival'})
    assert get_db().query(Ticket).count() == 1
