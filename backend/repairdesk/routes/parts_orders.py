from __future__ import annotations
from decimal import Decimal
from flask import Blueprint, request, abort
from repairdesk.decorators.auth import require_permissions
from repairdesk.models.parts_order import PartsOrder
from repairdesk.services import store, lifecycle
from repairdesk.services.policy import current_user_id, current_username
from repairdesk.utils.listing import list_response, resource_response
from repairdesk.utils.sorting import apply_multi_sort
from repairdesk.utils.filters import apply_filters, as_bool
from repairdesk.utils.serialize import iso, money
from repairdesk.utils.validation import require_fields, reject_blank, collect, choice, parse_str, parse_int, parse_decimal, parse_datetime

parts_bp = Blueprint('parts_orders', __name__)

PARTS_SCHEMA = {
    'part_name': parse_str,
    'supplier': parse_str,
    'order_number': parse_str,
    'cost': (parse_decimal, {'minimum': Decimal('0')}),
    'quantity': parse_int,
    'status': choice(PartsOrder.ALL_STATUSES),
    'order_date': parse_datetime,
    'expected_date': parse_datetime,
    'received_date': parse_datetime,
    'notes': parse_str,
}


def _check_quantity(fields):
    if 'quantity' in fields and fields['quantity'] is not None and fields['quantity'] < 1:
        abort(400, description='quantity must be >= 1')


@parts_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('PARTS.READ')
def list_parts_orders():
    q = store.query_parts_orders()
    q = apply_filters(q, {
        'ticket_id': {'op': lambda q, v: q.filter(PartsOrder.ticket_id == v), 'coerce': int},
        'status': {'op': lambda q, v: q.filter(PartsOrder.status == v), 'choices': PartsOrder.ALL_STATUSES},
        'pending': {'op': lambda q, v: q.filter(PartsOrder.status.in_(PartsOrder.PENDING_STATUSES)) if v else q,
                    'coerce': as_bool},
    }, request.args)
    allowed = {
        'order_date': PartsOrder.order_date,
        'expected_date': PartsOrder.expected_date,
        'status': PartsOrder.status,
        'part_name': PartsOrder.part_name,
        'id': PartsOrder.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, PartsOrder.id, default=[PartsOrder.order_date.desc()])
    return list_response(q, _parts_json, latest_attr='order_date')


@parts_bp.post('')
@require_permissions('PARTS.MANAGE')
def create_parts_order():
    data = request.json or {}
    require_fields(data, 'ticket_id', 'part_name')
    ticket_id = parse_int(data['ticket_id'], 'ticket_id')
    fields = collect(data, PARTS_SCHEMA)
    _check_quantity(fields)
    p = store.create_parts_order(ticket_id, fields, user_id=current_user_id(), created_by=current_username())
    return _parts_json(p), 201


@parts_bp.route('/<int:order_id>', methods=['GET', 'HEAD'])
@require_permissions('PARTS.READ')
def get_parts_order(order_id: int):
    p = store.get_or_404(PartsOrder, order_id, 'Parts order')
    return resource_response(_parts_json(p), p.id, p.received_date or p.order_date)


@parts_bp.patch('/<int:order_id>')
@require_permissions('PARTS.MANAGE')
def update_parts_order(order_id: int):
    fields = collect(request.json or {}, PARTS_SCHEMA)
    reject_blank(fields, 'part_name', 'status', 'quantity', 'order_date')
    _check_quantity(fields)
    return _parts_json(lifecycle.update_parts_order(order_id, fields))


@parts_bp.delete('/<int:order_id>')
@require_permissions('PARTS.MANAGE')
def delete_parts_order(order_id: int):
    store.delete_parts_order(order_id)
    return '', 204


def _parts_json(p: PartsOrder):
    return {
        'id': p.id,
        'ticket_id': p.ticket_id,
        'part_name': p.part_name,
        'supplier': p.supplier,
        'order_number': p.order_number,
        'cost': money(p.cost),
        'quantity': p.quantity,
        'status': p.status,
        'order_date': iso(p.order_date),
        'expected_date': iso(p.expected_date),
        'received_date': iso(p.received_date),
        'notes': p.notes,
    }
