"""Test seeding utilities to reduce duplication.

These helpers centralize creation of users, roles and permissions plus the
client -> device -> ticket chain most domain tests start from.
"""
from typing import Iterable, Dict, Optional
from decimal import Decimal
from repairdesk import get_db
from repairdesk.models.authz import User, Role, Permission, RolePermission, UserRole
from repairdesk.models.client import Client, Device
from repairdesk.models.ticket import Ticket
from repairdesk.utils import clock


def ensure_permissions(codes: Iterable[str]):
    """Ensure each permission code exists; return dict code->Permission."""
    session = get_db()
    out: Dict[str, Permission] = {}
    for code in codes:
        obj = session.query(Permission).filter_by(code=code).one_or_none()
        if not obj:
            if '.' not in code:
                raise ValueError(f"Permission code '{code}' missing SERVICE.ACTION pattern")
            service, action = code.split('.', 1)
            obj = Permission(code=code, service=service, action=action, description=code)
            session.add(obj); session.flush()
        out[code] = obj
    session.commit()
    return out


def ensure_user(username: str, password: str = 'pw', first_name: Optional[str] = None) -> User:
    session = get_db()
    u = session.query(User).filter_by(username=username).one_or_none()
    if not u:
        u = User(username=username, first_name=first_name, password_hash='')
        u.set_password(password)
        session.add(u); session.commit(); session.refresh(u)
    return u


def ensure_role(name: str, perm_codes: Iterable[str] = ()) -> Role:
    session = get_db()
    role = session.query(Role).filter_by(name=name).one_or_none()
    perms = ensure_permissions(perm_codes) if perm_codes else {}
    if not role:
        role = Role(name=name, is_system=False)
        session.add(role); session.flush()
    # attach any missing permissions
    existing_perm_ids = {rp.permission_id for rp in session.query(RolePermission).filter_by(role_id=role.id)}
    for p in perms.values():
        if p.id not in existing_perm_ids:
            session.add(RolePermission(role_id=role.id, permission_id=p.id))
    session.commit()
    return role


def ensure_user_role_assignment(user: User, role: Role):
    session = get_db()
    if not session.query(UserRole).filter_by(user_id=user.id, role_id=role.id).one_or_none():
        session.add(UserRole(user_id=user.id, role_id=role.id)); session.commit()


def seed_user_with_role(username: str, role_name: str, perm_codes: Iterable[str], password: str = 'pw'):
    """High level convenience: user + role(with perms) + assignment."""
    user = ensure_user(username, password)
    role = ensure_role(role_name, perm_codes)
    ensure_user_role_assignment(user, role)
    return user, role


# ---------------- Domain helpers (clients / devices / tickets) ---------------- #
def create_client(name: str = 'Alice Example', **kw) -> Client:
    session = get_db()
    c = Client(name=name, **kw)
    session.add(c); session.commit()
    return c


def create_device(client: Client, brand: str = 'Lenovo', model: str = 'T480', type_: str = Device.TYPE_LAPTOP) -> Device:
    session = get_db()
    d = Device(client_id=client.id, type=type_, brand=brand, model=model)
    session.add(d); session.commit()
    return d


def create_ticket(client: Optional[Client] = None, device: Optional[Device] = None, number: Optional[str] = None,
                  status: str = Ticket.STATUS_RECEIVED, **kw) -> Ticket:
    """Insert a ticket row directly (no numbering service, no activity entry)."""
    session = get_db()
    client = client or create_client()
    device = device or create_device(client)
    if number is None:
        number = f'TF-{clock.now().year}-{session.query(Ticket).count() + 1:03d}'
    t = Ticket(ticket_number=number, client_id=client.id, device_id=device.id, title=kw.pop('title', 'Screen flicker'),
               description=kw.pop('description', 'Display flickers on boot'), status=status, **kw)
    session.add(t); session.commit()
    return t


def paid_ticket(final_cost: str, payment_date, **kw) -> Ticket:
    return create_ticket(final_cost=Decimal(final_cost), is_paid=True, payment_date=payment_date, **kw)


__all__ = [
    'ensure_permissions', 'ensure_user', 'ensure_role', 'ensure_user_role_assignment', 'seed_user_with_role',
    'create_client', 'create_device', 'create_ticket', 'paid_ticket',
]
