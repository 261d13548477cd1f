from __future__ import annotations
from typing import Set
from flask_jwt_extended import get_jwt, get_jwt_identity
from sqlalchemy import select
from repairdesk.models.authz import UserRole, RolePermission, Permission, Role
from repairdesk import get_db


def current_permissions() -> Set[str]:
    claims = get_jwt()
    return set(claims.get('perms', []))


def current_user_id() -> int:
    # JWT identity is stored as a string
    return int(get_jwt_identity())


def current_username() -> str:
    return get_jwt().get('username') or str(get_jwt_identity())


def compute_effective_permissions(user_id: int):
    session = get_db()
    role_ids = {r.role_id for r in session.execute(select(UserRole).where(UserRole.user_id==user_id)).scalars()}
    perm_codes = set()
    if role_ids:
        role_perms = session.execute(select(RolePermission).where(RolePermission.role_id.in_(role_ids))).scalars().all()
        perm_ids = [rp.permission_id for rp in role_perms]
        if perm_ids:
            for p in session.execute(select(Permission).where(Permission.id.in_(perm_ids))).scalars():
                perm_codes.add(p.code)
    # Owner role expands to every known permission
    owner_role = session.execute(select(Role).where(Role.name=='Owner')).scalar_one_or_none()
    if owner_role and owner_role.id in role_ids:
        for p in session.execute(select(Permission)).scalars():
            perm_codes.add(p.code)
    return {
        'roles': sorted(role_ids),
        'perms': sorted(perm_codes),
    }
