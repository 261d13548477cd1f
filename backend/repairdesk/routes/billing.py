from __future__ import annotations
from decimal import Decimal
from flask import Blueprint, request, abort
from repairdesk.decorators.auth import require_permissions
from repairdesk.models.billing import BillableItem, Invoice, SalesTransaction, SaleItem, Payment
from repairdesk.services import billing
from repairdesk.services.store import get_or_404
from repairdesk.services.policy import current_user_id, current_username
from repairdesk.utils.listing import list_response, resource_response
from repairdesk.utils.sorting import apply_multi_sort
from repairdesk.utils.filters import apply_filters
from repairdesk.utils.serialize import iso, money
from repairdesk.utils.validation import (
    require_fields, reject_blank, collect, choice, parse_str, parse_int, parse_bool, parse_decimal, parse_datetime,
)

billing_bp = Blueprint('billing', __name__)

_AMOUNT = (parse_decimal, {'minimum': Decimal('0')})
_QUANTITY = (parse_decimal, {'minimum': Decimal('0')})
_TAX_RATE = (parse_decimal, {'minimum': Decimal('0'), 'maximum': Decimal('100')})
ITEM_SCHEMA = {
    'type': choice(BillableItem.ALL_TYPES),
    'description': parse_str,
    'quantity': _QUANTITY,
    'unit_price': _AMOUNT,
    'tax_rate': _TAX_RATE,
    'tax_inclusive': parse_bool,
    'line_total': _AMOUNT,
    'billing_status': choice((BillableItem.STATUS_PENDING, BillableItem.STATUS_VOID)),
}
SALE_ITEM_SCHEMA = {
    'description': parse_str,
    'quantity': _QUANTITY,
    'unit_price': _AMOUNT,
    'tax_rate': _TAX_RATE,
    'tax_inclusive': parse_bool,
    'line_total': _AMOUNT,
}
PAYMENT_SCHEMA = {
    'amount': (parse_decimal, {'minimum': Decimal('0.01')}),
    'payment_method': parse_str,
    'payment_date': parse_datetime,
    'reference': parse_str,
    'notes': parse_str,
}


# Billable items --------------------------------------------------------------

@billing_bp.route('/items', methods=['GET', 'HEAD'])
@require_permissions('BILL.READ')
def list_items():
    q = billing.query_billable_items()
    q = apply_filters(q, {
        'ticket_id': {'op': lambda q, v: q.filter(BillableItem.ticket_id == v), 'coerce': int},
        'billing_status': {'op': lambda q, v: q.filter(BillableItem.billing_status == v), 'choices': BillableItem.ALL_STATUSES},
        'type': {'op': lambda q, v: q.filter(BillableItem.type == v), 'choices': BillableItem.ALL_TYPES},
    }, request.args)
    allowed = {'created_at': BillableItem.created_at, 'line_total': BillableItem.line_total, 'id': BillableItem.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, BillableItem.id)
    return list_response(q, _item_json)


@billing_bp.get('/items/unbilled')
@require_permissions('BILL.READ')
def unbilled_items():
    ticket_id = request.args.get('ticket_id')
    items = billing.get_unbilled_items(parse_int(ticket_id, 'ticket_id') if ticket_id else None)
    return {'data': [_item_json(i) for i in items], 'totals': _totals_json(billing.calculate_totals(items))}


@billing_bp.post('/items')
@require_permissions('BILL.MANAGE')
def create_item():
    data = request.json or {}
    require_fields(data, 'ticket_id', 'type', 'description', 'unit_price')
    fields = collect(data, ITEM_SCHEMA)
    item = billing.create_billable_item(parse_int(data['ticket_id'], 'ticket_id'), fields)
    return _item_json(item), 201


@billing_bp.patch('/items/<int:item_id>')
@require_permissions('BILL.MANAGE')
def update_item(item_id: int):
    fields = collect(request.json or {}, ITEM_SCHEMA)
    reject_blank(fields, 'type', 'description', 'quantity', 'unit_price', 'tax_rate', 'tax_inclusive', 'billing_status')
    return _item_json(billing.update_billable_item(item_id, fields))


@billing_bp.delete('/items/<int:item_id>')
@require_permissions('BILL.MANAGE')
def delete_item(item_id: int):
    billing.delete_billable_item(item_id)
    return '', 204


@billing_bp.post('/items/mark-billed')
@require_permissions('BILL.MANAGE')
def mark_billed():
    data = request.json or {}
    ids = data.get('item_ids')
    if not isinstance(ids, list) or not ids:
        abort(400, description='item_ids must be a non-empty list')
    item_ids = [parse_int(i, 'item_ids') for i in ids]
    invoice_id = None
    if data.get('invoice_id') is not None:
        invoice_id = get_or_404(Invoice, parse_int(data['invoice_id'], 'invoice_id')).id
    updated = billing.mark_items_as_billed(item_ids, invoice_id)
    return {'updated': updated}


# Invoices ------------------------------------------------------------------

@billing_bp.post('/invoices/generate/<int:ticket_id>')
@require_permissions('BILL.MANAGE')
def generate_invoice(ticket_id: int):
    invoice = billing.generate_invoice_for_ticket(ticket_id, user_id=current_user_id(), created_by=current_username())
    return _invoice_json(invoice, with_items=True), 201


@billing_bp.route('/invoices', methods=['GET', 'HEAD'])
@require_permissions('BILL.READ')
def list_invoices():
    q = billing.query_invoices()
    q = apply_filters(q, {
        'ticket_id': {'op': lambda q, v: q.filter(Invoice.ticket_id == v), 'coerce': int},
        'client_id': {'op': lambda q, v: q.filter(Invoice.client_id == v), 'coerce': int},
        'status': {'op': lambda q, v: q.filter(Invoice.status == v), 'choices': Invoice.ALL_STATUSES},
    }, request.args)
    allowed = {'created_at': Invoice.created_at, 'total': Invoice.total, 'invoice_number': Invoice.invoice_number, 'id': Invoice.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Invoice.id, default=[Invoice.created_at.desc()])
    return list_response(q, _invoice_json)


@billing_bp.route('/invoices/<int:invoice_id>', methods=['GET', 'HEAD'])
@require_permissions('BILL.READ')
def get_invoice(invoice_id: int):
    invoice = get_or_404(Invoice, invoice_id)
    return resource_response(_invoice_json(invoice, with_items=True), invoice.id, invoice.created_at)


@billing_bp.patch('/invoices/<int:invoice_id>')
@require_permissions('BILL.MANAGE')
def update_invoice(invoice_id: int):
    data = request.json or {}
    require_fields(data, 'status')
    status = choice(Invoice.ALL_STATUSES)(data['status'], 'status')
    return _invoice_json(billing.set_invoice_status(invoice_id, status))


# Sales ---------------------------------------------------------------------

@billing_bp.route('/sales', methods=['GET', 'HEAD'])
@require_permissions('BILL.READ')
def list_sales():
    q = billing.query_sales()
    q = apply_filters(q, {
        'client_id': {'op': lambda q, v: q.filter(SalesTransaction.client_id == v), 'coerce': int},
        'payment_status': {'op': lambda q, v: q.filter(SalesTransaction.payment_status == v),
                           'choices': SalesTransaction.ALL_PAYMENT_STATUSES},
    }, request.args)
    allowed = {'sale_date': SalesTransaction.sale_date, 'total_amount': SalesTransaction.total_amount, 'id': SalesTransaction.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, SalesTransaction.id, default=[SalesTransaction.sale_date.desc()])
    return list_response(q, _sale_json)


@billing_bp.post('/sales')
@require_permissions('BILL.MANAGE')
def create_sale():
    data = request.json or {}
    require_fields(data, 'client_id', 'items')
    if not isinstance(data['items'], list):
        abort(400, description='items must be a list')
    items = []
    for raw in data['items']:
        if not isinstance(raw, dict):
            abort(400, description='items must be objects')
        require_fields(raw, 'description', 'unit_price')
        fields = collect(raw, SALE_ITEM_SCHEMA)
        items.append(fields)
    notes = parse_str(data['notes'], 'notes') if data.get('notes') else None
    tx = billing.create_sales_transaction(parse_int(data['client_id'], 'client_id'), items, current_user_id(), notes)
    return _sale_json(tx, detail=True), 201


@billing_bp.route('/sales/<int:transaction_id>', methods=['GET', 'HEAD'])
@require_permissions('BILL.READ')
def get_sale(transaction_id: int):
    tx = get_or_404(SalesTransaction, transaction_id, 'Sales transaction')
    return resource_response(_sale_json(tx, detail=True), tx.id, tx.created_at)


@billing_bp.patch('/sales/<int:transaction_id>')
@require_permissions('BILL.MANAGE')
def update_sale(transaction_id: int):
    fields = collect(request.json or {}, {'notes': parse_str, 'sale_date': parse_datetime})
    reject_blank(fields, 'sale_date')
    return _sale_json(billing.update_sales_transaction(transaction_id, fields), detail=True)


@billing_bp.delete('/sales/<int:transaction_id>')
@require_permissions('BILL.MANAGE')
def delete_sale(transaction_id: int):
    billing.delete_sales_transaction(transaction_id)
    return '', 204


@billing_bp.post('/sales/<int:transaction_id>/items')
@require_permissions('BILL.MANAGE')
def add_sale_item(transaction_id: int):
    data = request.json or {}
    require_fields(data, 'description', 'unit_price')
    fields = collect(data, SALE_ITEM_SCHEMA)
    return _sale_json(billing.add_sale_item(transaction_id, fields), detail=True), 201


@billing_bp.patch('/sale-items/<int:item_id>')
@require_permissions('BILL.MANAGE')
def update_sale_item(item_id: int):
    fields = collect(request.json or {}, SALE_ITEM_SCHEMA)
    reject_blank(fields, 'description', 'quantity', 'unit_price', 'tax_rate', 'tax_inclusive')
    return _sale_json(billing.update_sale_item(item_id, fields), detail=True)


@billing_bp.delete('/sale-items/<int:item_id>')
@require_permissions('BILL.MANAGE')
def delete_sale_item(item_id: int):
    return _sale_json(billing.delete_sale_item(item_id), detail=True)


@billing_bp.post('/sales/<int:transaction_id>/payments')
@require_permissions('BILL.MANAGE')
def record_payment(transaction_id: int):
    data = request.json or {}
    require_fields(data, 'amount', 'payment_method')
    tx = billing.record_payment(transaction_id, collect(data, PAYMENT_SCHEMA))
    return _sale_json(tx, detail=True), 201


def _totals_json(totals):
    return {k: money(v) for k, v in totals.items()}


def _item_json(i: BillableItem):
    return {
        'id': i.id,
        'ticket_id': i.ticket_id,
        'type': i.type,
        'description': i.description,
        'quantity': str(i.quantity),
        'unit_price': money(i.unit_price),
        'tax_rate': str(i.tax_rate),
        'tax_inclusive': i.tax_inclusive,
        'line_total': money(i.line_total),
        'billing_status': i.billing_status,
        'billed_date': iso(i.billed_date),
        'invoice_id': i.invoice_id,
        'created_at': iso(i.created_at),
    }


def _invoice_json(inv: Invoice, with_items: bool = False):
    body = {
        'id': inv.id,
        'invoice_number': inv.invoice_number,
        'ticket_id': inv.ticket_id,
        'client_id': inv.client_id,
        'subtotal': money(inv.subtotal),
        'tax_amount': money(inv.tax_amount),
        'total': money(inv.total),
        'status': inv.status,
        'created_at': iso(inv.created_at),
    }
    if with_items:
        body['items'] = [_item_json(i) for i in inv.items]
    return body


def _sale_item_json(i: SaleItem):
    return {
        'id': i.id,
        'description': i.description,
        'quantity': str(i.quantity),
        'unit_price': money(i.unit_price),
        'tax_rate': str(i.tax_rate),
        'tax_inclusive': i.tax_inclusive,
        'line_total': money(i.line_total),
    }


def _payment_json(p: Payment):
    return {
        'id': p.id,
        'amount': money(p.amount),
        'payment_method': p.payment_method,
        'payment_date': iso(p.payment_date),
        'reference': p.reference,
        'notes': p.notes,
    }


def _sale_json(tx: SalesTransaction, detail: bool = False):
    body = {
        'id': tx.id,
        'client_id': tx.client_id,
        'sale_date': iso(tx.sale_date),
        'subtotal': money(tx.subtotal),
        'tax_amount': money(tx.tax_amount),
        'total_amount': money(tx.total_amount),
        'payment_status': tx.payment_status,
        'notes': tx.notes,
        'created_by_user_id': tx.created_by_user_id,
        'created_at': iso(tx.created_at),
    }
    if detail:
        body['items'] = [_sale_item_json(i) for i in tx.items]
        body['payments'] = [_payment_json(p) for p in tx.payments]
        body['balance'] = money(billing.outstanding_balance(tx))
    return body
