"""Billing aggregation: billable items, invoices and point-of-sale transactions.

All amounts are ``Decimal``. Per-item pre-tax and tax components accumulate
unrounded; the subtotal and tax sums are each rounded half-up to cents and the
total is the sum of those two rounded figures, so ``subtotal + tax == total``
always holds exactly.
"""
from __future__ import annotations
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional
from flask import abort, current_app, has_app_context
from sqlalchemy import select, update

from repairdesk import get_db, transaction
from repairdesk.models.billing import BillableItem, Invoice, SalesTransaction, SaleItem, Payment
from repairdesk.models.client import Client
from repairdesk.models.ticket import Ticket, ActivityLog
from repairdesk.services.activity import add_activity
from repairdesk.services.numbering import generate_invoice_number
from repairdesk.services.store import get_or_404, apply_fields
from repairdesk.utils import clock

log = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0')
HUNDRED = Decimal('100')


def _money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _field(item, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name)


def default_tax_rate() -> Decimal:
    if has_app_context() and current_app.config.get('DEFAULT_TAX_RATE') is not None:
        return Decimal(current_app.config['DEFAULT_TAX_RATE'])
    return Decimal('10.00')


def item_components(item):
    """Return ``(pre_tax, tax)`` for one billable or sale item, unrounded.

    Tax-inclusive items back the tax out of ``line_total``; exclusive items add
    it on top of ``unit_price * quantity``.
    """
    rate = Decimal(_field(item, 'tax_rate') or 0)
    if _field(item, 'tax_inclusive'):
        gross = Decimal(_field(item, 'line_total'))
        divisor = 1 + rate / HUNDRED
        if divisor == 0:
            raise ZeroDivisionError('tax_rate of -100 has no pre-tax base')
        base = gross / divisor
        return base, gross - base
    pre_tax = Decimal(_field(item, 'unit_price')) * Decimal(_field(item, 'quantity'))
    return pre_tax, pre_tax * rate / HUNDRED


def calculate_totals(items: Iterable[Any]) -> Dict[str, Decimal]:
    subtotal = ZERO
    tax = ZERO
    for item in items:
        pre_tax, item_tax = item_components(item)
        subtotal += pre_tax
        tax += item_tax
    subtotal = _money(subtotal)
    tax = _money(tax)
    return {'subtotal': subtotal, 'tax_amount': tax, 'total': subtotal + tax}


def default_line_total(unit_price: Decimal, quantity: Decimal) -> Decimal:
    return _money(Decimal(unit_price) * Decimal(quantity))


# Billable items ------------------------------------------------------------

ITEM_FIELDS = ('type', 'description', 'quantity', 'unit_price', 'tax_rate', 'tax_inclusive', 'line_total', 'billing_status')


def query_billable_items(ticket_id: Optional[int] = None, billing_status: Optional[str] = None):
    q = get_db().query(BillableItem)
    if ticket_id is not None:
        q = q.filter(BillableItem.ticket_id == ticket_id)
    if billing_status:
        q = q.filter(BillableItem.billing_status == billing_status)
    return q


def get_unbilled_items(ticket_id: Optional[int] = None) -> List[BillableItem]:
    """Pending items not yet attached to an invoice, oldest first."""
    stmt = select(BillableItem).where(
        BillableItem.billing_status == BillableItem.STATUS_PENDING,
        BillableItem.invoice_id.is_(None),
    )
    if ticket_id is not None:
        stmt = stmt.where(BillableItem.ticket_id == ticket_id)
    return list(get_db().execute(stmt.order_by(BillableItem.id.asc())).scalars())


def create_billable_item(ticket_id: int, fields: Dict[str, Any]) -> BillableItem:
    get_or_404(Ticket, ticket_id)
    item = apply_fields(BillableItem(ticket_id=ticket_id), fields, ITEM_FIELDS)
    if item.quantity is None:
        item.quantity = Decimal('1')
    if item.tax_rate is None:
        item.tax_rate = default_tax_rate()
    if item.line_total is None:
        item.line_total = default_line_total(item.unit_price, item.quantity)
    session = get_db()
    session.add(item)
    session.commit()
    return item


def update_billable_item(item_id: int, fields: Dict[str, Any]) -> BillableItem:
    item = get_or_404(BillableItem, item_id, 'Billable item')
    if item.invoice_id is not None:
        abort(409, description=f'Billable item {item_id} is already invoiced')
    apply_fields(item, fields, ITEM_FIELDS)
    if 'line_total' not in fields and ('unit_price' in fields or 'quantity' in fields):
        item.line_total = default_line_total(item.unit_price, item.quantity)
    get_db().commit()
    return item


def delete_billable_item(item_id: int):
    session = get_db()
    item = get_or_404(BillableItem, item_id, 'Billable item')
    if item.invoice_id is not None:
        abort(409, description=f'Billable item {item_id} is already invoiced')
    session.delete(item)
    session.commit()


def mark_items_as_billed(item_ids: List[int], invoice_id: Optional[int] = None, session=None) -> int:
    """Flip a batch of items to billed in a single UPDATE; returns the affected row count.

    Without ``session`` the update commits on its own; inside a caller's
    transaction pass the session and let the caller commit. Items already
    attached to an invoice are refused with 409.
    """
    if not item_ids:
        return 0
    own = session is None
    session = session or get_db()
    invoiced = session.execute(
        select(BillableItem.id).where(BillableItem.id.in_(item_ids), BillableItem.invoice_id.is_not(None))
    ).scalars().all()
    if invoiced:
        abort(409, description=f'Billable items already invoiced: {sorted(invoiced)}')
    result = session.execute(
        update(BillableItem)
        .where(BillableItem.id.in_(item_ids), BillableItem.invoice_id.is_(None))
        .values(billing_status=BillableItem.STATUS_BILLED, billed_date=clock.now(), invoice_id=invoice_id)
        .execution_options(synchronize_session='fetch')
    )
    if own:
        session.commit()
    return result.rowcount


# Invoices ------------------------------------------------------------------

def generate_invoice_for_ticket(ticket_id: int, user_id: Optional[int] = None, created_by: Optional[str] = None) -> Invoice:
    """Invoice every unbilled item on the ticket in one transaction (400 when there is nothing to bill)."""
    with transaction() as session:
        ticket = get_or_404(Ticket, ticket_id)
        items = get_unbilled_items(ticket_id)
        if not items:
            abort(400, description=f'Ticket {ticket_id} has no unbilled items')
        totals = calculate_totals(items)
        invoice = Invoice(
            invoice_number=generate_invoice_number(session),
            ticket_id=ticket_id,
            client_id=ticket.client_id,
            **totals,
        )
        session.add(invoice)
        session.flush()
        mark_items_as_billed([i.id for i in items], invoice.id, session=session)
        add_activity(ticket_id, ActivityLog.TYPE_INVOICE_GENERATED, f'Invoice {invoice.invoice_number} generated',
                     {'invoice_id': invoice.id, 'total': str(invoice.total), 'items': len(items)},
                     user_id=user_id, created_by=created_by)
    log.info('Generated invoice %s for ticket %s total=%s', invoice.invoice_number, ticket.ticket_number, invoice.total)
    return invoice


def query_invoices(ticket_id: Optional[int] = None, client_id: Optional[int] = None, status: Optional[str] = None):
    q = get_db().query(Invoice)
    if ticket_id is not None:
        q = q.filter(Invoice.ticket_id == ticket_id)
    if client_id is not None:
        q = q.filter(Invoice.client_id == client_id)
    if status:
        q = q.filter(Invoice.status == status)
    return q


def set_invoice_status(invoice_id: int, status: str) -> Invoice:
    invoice = get_or_404(Invoice, invoice_id)
    invoice.status = status
    get_db().commit()
    return invoice


# Sales ---------------------------------------------------------------------

SALE_ITEM_FIELDS = ('description', 'quantity', 'unit_price', 'tax_rate', 'tax_inclusive', 'line_total')


def _build_sale_item(fields: Dict[str, Any]) -> SaleItem:
    item = apply_fields(SaleItem(), fields, SALE_ITEM_FIELDS)
    if item.quantity is None:
        item.quantity = Decimal('1')
    if item.tax_rate is None:
        item.tax_rate = default_tax_rate()
    if item.line_total is None:
        item.line_total = default_line_total(item.unit_price, item.quantity)
    return item


def _paid_sum(tx: SalesTransaction) -> Decimal:
    return sum((Decimal(p.amount) for p in tx.payments), ZERO)


def _refresh_sale(tx: SalesTransaction):
    """Recompute totals from the items and payment status from the payments."""
    totals = calculate_totals(tx.items)
    tx.subtotal = totals['subtotal']
    tx.tax_amount = totals['tax_amount']
    tx.total_amount = totals['total']
    paid = _paid_sum(tx)
    if paid <= 0:
        tx.payment_status = SalesTransaction.PAYMENT_PENDING
    elif paid < tx.total_amount:
        tx.payment_status = SalesTransaction.PAYMENT_PARTIAL
    else:
        tx.payment_status = SalesTransaction.PAYMENT_PAID


def create_sales_transaction(client_id: int, items: List[Dict[str, Any]], user_id: int,
                             notes: Optional[str] = None) -> SalesTransaction:
    get_or_404(Client, client_id)
    if not items:
        abort(400, description='items required')
    with transaction() as session:
        tx = SalesTransaction(client_id=client_id, notes=notes, created_by_user_id=user_id)
        tx.items = [_build_sale_item(f) for f in items]
        _refresh_sale(tx)
        session.add(tx)
    log.info('Recorded sale %s for client %s total=%s', tx.id, client_id, tx.total_amount)
    return tx


def query_sales(client_id: Optional[int] = None, payment_status: Optional[str] = None):
    q = get_db().query(SalesTransaction)
    if client_id is not None:
        q = q.filter(SalesTransaction.client_id == client_id)
    if payment_status:
        q = q.filter(SalesTransaction.payment_status == payment_status)
    return q


def update_sales_transaction(transaction_id: int, fields: Dict[str, Any]) -> SalesTransaction:
    tx = get_or_404(SalesTransaction, transaction_id, 'Sales transaction')
    apply_fields(tx, fields, ('notes', 'sale_date'))
    get_db().commit()
    return tx


def delete_sales_transaction(transaction_id: int):
    session = get_db()
    session.delete(get_or_404(SalesTransaction, transaction_id, 'Sales transaction'))
    session.commit()


def add_sale_item(transaction_id: int, fields: Dict[str, Any]) -> SalesTransaction:
    with transaction():
        tx = get_or_404(SalesTransaction, transaction_id, 'Sales transaction')
        tx.items.append(_build_sale_item(fields))
        _refresh_sale(tx)
    return tx


def update_sale_item(item_id: int, fields: Dict[str, Any]) -> SalesTransaction:
    with transaction():
        item = get_or_404(SaleItem, item_id, 'Sale item')
        apply_fields(item, fields, SALE_ITEM_FIELDS)
        if 'line_total' not in fields and ('unit_price' in fields or 'quantity' in fields):
            item.line_total = default_line_total(item.unit_price, item.quantity)
        tx = item.transaction
        _refresh_sale(tx)
    return tx


def delete_sale_item(item_id: int) -> SalesTransaction:
    with transaction():
        item = get_or_404(SaleItem, item_id, 'Sale item')
        tx = item.transaction
        tx.items.remove(item)
        _refresh_sale(tx)
    return tx


def record_payment(transaction_id: int, fields: Dict[str, Any]) -> SalesTransaction:
    with transaction():
        tx = get_or_404(SalesTransaction, transaction_id, 'Sales transaction')
        outstanding = Decimal(tx.total_amount) - _paid_sum(tx)
        if Decimal(fields['amount']) > outstanding:
            abort(400, description=f'amount exceeds outstanding balance {outstanding}')
        tx.payments.append(apply_fields(Payment(), fields, ('amount', 'payment_method', 'payment_date', 'reference', 'notes')))
        _refresh_sale(tx)
    return tx


def outstanding_balance(tx: SalesTransaction) -> Decimal:
    return Decimal(tx.total_amount) - _paid_sum(tx)

__all__ = [
    'calculate_totals', 'item_components', 'get_unbilled_items', 'create_billable_item', 'update_billable_item',
    'delete_billable_item', 'mark_items_as_billed', 'generate_invoice_for_ticket', 'query_invoices',
    'set_invoice_status', 'create_sales_transaction', 'query_sales', 'update_sales_transaction',
    'delete_sales_transaction', 'add_sale_item', 'update_sale_item', 'delete_sale_item', 'record_payment',
    'outstanding_balance', 'query_billable_items',
]
