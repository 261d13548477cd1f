from __future__ import annotations
from flask import Blueprint, request
from repairdesk.decorators.auth import require_permissions
from repairdesk.models.client import Client, Device
from repairdesk.services import store
from repairdesk.utils.listing import list_response, resource_response
from repairdesk.utils.sorting import apply_multi_sort
from repairdesk.utils.filters import apply_filters
from repairdesk.utils.serialize import iso
from repairdesk.utils.validation import require_fields, reject_blank, collect, parse_str, parse_int

clients_bp = Blueprint('clients', __name__)
devices_bp = Blueprint('devices', __name__)

CLIENT_SCHEMA = {'name': parse_str, 'email': parse_str, 'phone': parse_str, 'address': parse_str, 'notes': parse_str}
DEVICE_SCHEMA = {
    'client_id': parse_int, 'type': parse_str, 'brand': parse_str, 'model': parse_str,
    'serial_number': parse_str, 'notes': parse_str,
}
_DEVICE_SORT = {'brand': Device.brand, 'model': Device.model, 'type': Device.type, 'created_at': Device.created_at, 'id': Device.id}


@clients_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('CLIENT.READ')
def list_clients():
    q = store.query_clients(request.args.get('q'))
    allowed = {'name': Client.name, 'created_at': Client.created_at, 'id': Client.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Client.id, default=[Client.name.asc()])
    return list_response(q, _client_json)


@clients_bp.post('')
@require_permissions('CLIENT.MANAGE')
def create_client():
    data = request.json or {}
    require_fields(data, 'name')
    c = store.create_client(collect(data, CLIENT_SCHEMA))
    return _client_json(c), 201


@clients_bp.route('/<int:client_id>', methods=['GET', 'HEAD'])
@require_permissions('CLIENT.READ')
def get_client(client_id: int):
    c = store.get_or_404(Client, client_id)
    return resource_response(_client_json(c, with_devices=True), c.id, c.created_at)


@clients_bp.patch('/<int:client_id>')
@require_permissions('CLIENT.MANAGE')
def update_client(client_id: int):
    fields = collect(request.json or {}, CLIENT_SCHEMA)
    reject_blank(fields, 'name')
    return _client_json(store.update_client(client_id, fields))


@clients_bp.delete('/<int:client_id>')
@require_permissions('CLIENT.MANAGE', 'TICKET.DELETE')
def delete_client(client_id: int):
    store.delete_client(client_id)
    return '', 204


@clients_bp.get('/<int:client_id>/devices')
@require_permissions('CLIENT.READ')
def list_client_devices(client_id: int):
    store.get_or_404(Client, client_id)
    q = store.query_devices(client_id)
    q = apply_multi_sort(q, request.args.get('sort'), _DEVICE_SORT, Device.id)
    return list_response(q, _device_json)


@devices_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('CLIENT.READ')
def list_devices():
    q = store.query_devices()
    q = apply_filters(q, {
        'client_id': {'op': lambda q, v: q.filter(Device.client_id == v), 'coerce': int},
        'type': {'op': lambda q, v: q.filter(Device.type == v)},
    }, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), _DEVICE_SORT, Device.id, default=[Device.brand.asc(), Device.model.asc()])
    return list_response(q, _device_json)


@devices_bp.post('')
@require_permissions('CLIENT.MANAGE')
def create_device():
    data = request.json or {}
    require_fields(data, 'client_id', 'type', 'brand', 'model')
    d = store.create_device(collect(data, DEVICE_SCHEMA))
    return _device_json(d), 201


@devices_bp.route('/<int:device_id>', methods=['GET', 'HEAD'])
@require_permissions('CLIENT.READ')
def get_device(device_id: int):
    d = store.get_or_404(Device, device_id)
    return resource_response(_device_json(d), d.id, d.created_at)


@devices_bp.patch('/<int:device_id>')
@require_permissions('CLIENT.MANAGE')
def update_device(device_id: int):
    fields = collect(request.json or {}, DEVICE_SCHEMA)
    reject_blank(fields, 'client_id', 'type', 'brand', 'model')
    return _device_json(store.update_device(device_id, fields))


@devices_bp.delete('/<int:device_id>')
@require_permissions('CLIENT.MANAGE')
def delete_device(device_id: int):
    store.delete_device(device_id)
    return '', 204


def _client_json(c: Client, with_devices: bool = False):
    body = {
        'id': c.id,
        'name': c.name,
        'email': c.email,
        'phone': c.phone,
        'address': c.address,
        'notes': c.notes,
        'created_at': iso(c.created_at),
    }
    if with_devices:
        body['devices'] = [_device_json(d) for d in c.devices]
    return body


def _device_json(d: Device):
    return {
        'id': d.id,
        'client_id': d.client_id,
        'type': d.type,
        'brand': d.brand,
        'model': d.model,
        'serial_number': d.serial_number,
        'notes': d.notes,
        'created_at': iso(d.created_at),
    }
