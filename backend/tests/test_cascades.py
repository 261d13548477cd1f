from datetime import datetime
from decimal import Decimal
import pytest
from werkzeug.exceptions import Conflict, NotFound
from repairdesk import get_db
from repairdesk.models.client import Client, Device
from repairdesk.models.ticket import Ticket, ActivityLog, RepairNote, Attachment
from repairdesk.models.parts_order import PartsOrder
from repairdesk.models.reminder import Reminder
from repairdesk.models.time_log import TimeLog
from repairdesk.models.billing import BillableItem, Invoice, SalesTransaction
from repairdesk.services import store
from tests.test_utils_seed import create_client, create_device, create_ticket, ensure_user

DEPENDENTS = (TimeLog, RepairNote, PartsOrder, ActivityLog, Attachment, Reminder, BillableItem)


def _populate(ticket: Ticket, user_id: int):
    """Hang one row of every dependent kind off ``ticket``."""
    session = get_db()
    start = datetime(2026, 1, 5, 9, 0, 0)
    session.add_all([
        TimeLog(ticket_id=ticket.id, user_id=user_id, technician_name='tech', start_time=start),
        RepairNote(ticket_id=ticket.id, user_id=user_id, type='diagnostic', title='t', content='c', technician_name='tech'),
        PartsOrder(ticket_id=ticket.id, part_name='Fan'),
        ActivityLog(ticket_id=ticket.id, type=ActivityLog.TYPE_TICKET_CREATED, description='Ticket created'),
        Attachment(ticket_id=ticket.id, filename='a.jpg', original_name='a.jpg', mimetype='image/jpeg', size=1, uploaded_by='tech'),
        Reminder(ticket_id=ticket.id, type='follow_up', title='Call back', due_date=start),
        BillableItem(ticket_id=ticket.id, type='labor', description='Diag', unit_price=Decimal('50'), line_total=Decimal('50')),
    ])
    session.commit()


def _count(model, **by):
    return get_db().query(model).filter_by(**by).count()


def test_delete_ticket_removes_every_dependent(app_context):
    user = ensure_user('tech')
    keep = create_ticket()
    gone = create_ticket(number='TF-2026-900')
    _populate(keep, user.id)
    _populate(gone, user.id)

    store.delete_ticket(gone.id)

    assert get_db().get(Ticket, gone.id) is None
    for model in DEPENDENTS:
        assert _count(model, ticket_id=gone.id) == 0, model.__name__
        assert _count(model, ticket_id=keep.id) == 1, model.__name__


def test_delete_ticket_with_invoice_conflicts(app_context):
    t = create_ticket()
    session = get_db()
    session.add(Invoice(invoice_number='INV-2026-001', ticket_id=t.id, client_id=t.client_id,
                        subtotal=Decimal('1'), tax_amount=Decimal('0'), total=Decimal('1')))
    session.commit()
    with pytest.raises(Conflict):
        store.delete_ticket(t.id)
    assert get_db().get(Ticket, t.id) is not None


def test_delete_missing_ticket_is_404(app_context):
    with pytest.raises(NotFound):
        store.delete_ticket(12345)


def test_delete_client_cascades_devices_tickets_and_time_logs(app_context):
    user = ensure_user('tech')
    c = create_client('Cascade Client')
    d1 = create_device(c)
    d2 = create_device(c, brand='Apple', model='MacBook Air')
    t1 = create_ticket(c, d1, number='TF-2026-101')
    t2 = create_ticket(c, d2, number='TF-2026-102')
    _populate(t1, user.id)
    _populate(t2, user.id)
    session = get_db()
    session.add(Reminder(client_id=c.id, type='maintenance', title='Yearly clean', due_date=datetime(2026, 6, 1)))
    session.commit()
    bystander = create_ticket(number='TF-2026-200')
    _populate(bystander, user.id)

    store.delete_client(c.id)

    assert get_db().get(Client, c.id) is None
    assert _count(Device, client_id=c.id) == 0
    assert _count(Ticket, client_id=c.id) == 0
    assert _count(Reminder, client_id=c.id) == 0
    for t in (t1, t2):
        for model in DEPENDENTS:
            assert _count(model, ticket_id=t.id) == 0, model.__name__
    assert _count(TimeLog, ticket_id=bystander.id) == 1


def test_delete_client_with_sales_conflicts(app_context):
    user = ensure_user('tech')
    c = create_client()
    session = get_db()
    session.add(SalesTransaction(client_id=c.id, subtotal=Decimal('0'), tax_amount=Decimal('0'),
                                 total_amount=Decimal('0'), created_by_user_id=user.id))
    session.commit()
    with pytest.raises(Conflict):
        store.delete_client(c.id)
    assert get_db().get(Client, c.id) is not None


def test_delete_device_in_use_conflicts(app_context):
    t = create_ticket()
    with pytest.raises(Conflict):
        store.delete_device(t.device_id)
    spare = create_device(get_db().get(Client, t.client_id), brand='HP', model='Spare')
    store.delete_device(spare.id)
    assert get_db().get(Device, spare.id) is None


def test_delete_client_over_http_needs_ticket_delete(app_instance, client):
    from tests.test_lifecycle_helpers import staff_headers, create_client_device_ticket
    _, headers = staff_headers(app_instance)
    c, _, t = create_client_device_ticket(client, headers)
    assert client.delete(f"/clients/{c['id']}", headers=headers).status_code == 204
    assert client.get(f"/tickets/{t['id']}", headers=headers).status_code == 404
