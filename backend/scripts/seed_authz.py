#!/usr/bin/env python
"""Idempotent seed script for permissions, roles and the first shop owner account.

Usage:
    python backend/scripts/seed_authz.py               # seed normally
    python backend/scripts/seed_authz.py --show-roles  # print role -> permission counts (after ensuring seed)
    python backend/scripts/seed_authz.py --dry-run     # run logic then rollback (no DB changes)
    python backend/scripts/seed_authz.py --dry-run --show-roles
"""
from __future__ import annotations
import os, sys, argparse, textwrap, logging
from sqlalchemy import select

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from repairdesk import create_app, get_db  # type: ignore
from repairdesk.models.authz import Base, Permission, Role, RolePermission, User, UserRole
from repairdesk.constants.permissions import SERVICE_ACTIONS, ROLE_PRESETS, build_all_permission_codes

logger = logging.getLogger('repairdesk.seed')


def ensure_permissions(session):
    existing = {p.code for p in session.execute(select(Permission)).scalars().all()}
    created = 0
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            code = f"{svc}.{act}"
            if code not in existing:
                session.add(Permission(code=code, service=svc, action=act, description=code.replace('.', ' - ')))
                created += 1
    session.flush()
    return created


def ensure_roles(session):
    existing_roles = {r.name: r for r in session.execute(select(Role)).scalars().all()}
    created = 0
    for role_name in ROLE_PRESETS:
        if role_name not in existing_roles:
            role = Role(name=role_name, is_system=True)
            session.add(role)
            existing_roles[role_name] = role
            created += 1
    session.flush()

    all_codes = set(build_all_permission_codes())
    for role_name, role in existing_roles.items():
        raw_codes = ROLE_PRESETS.get(role_name)
        if raw_codes is None:
            # custom role created through the API; leave it alone
            continue
        desired_codes = all_codes if '*' in raw_codes else set(raw_codes)
        current_codes = {rp.permission.code for rp in role.permissions}
        to_add = desired_codes - current_codes
        if to_add:
            perms_map = {p.code: p for p in session.execute(select(Permission).where(Permission.code.in_(list(to_add)))).scalars()}
            for code in to_add:
                if code not in perms_map:
                    logger.warning('Missing permission referenced by role %s: %s', role_name, code)
                    continue
                session.add(RolePermission(role=role, permission=perms_map[code]))
    session.flush()
    return created


def ensure_initial_admin(session):
    """Create the owner account named by SEED_ADMIN_USERNAME if it does not exist yet."""
    owner_role = session.execute(select(Role).where(Role.name=='Owner')).scalar_one_or_none()
    if not owner_role:
        logger.warning('Owner role missing; skipping admin user creation')
        return None
    username = os.getenv('SEED_ADMIN_USERNAME', 'admin')
    existing_admin = session.execute(select(User).where(User.username==username)).scalar_one_or_none()
    if existing_admin:
        return existing_admin
    user = User(username=username, first_name='Shop', last_name='Owner', password_hash='')
    user.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
    session.add(user)
    session.flush()
    session.add(UserRole(user_id=user.id, role_id=owner_role.id))
    session.flush()
    logger.info('Created initial admin user %s with temporary password', username)
    return user


def summarize_roles(session):
    rows = []
    for role in session.execute(select(Role).order_by(Role.name)).scalars().all():
        perms = [rp.permission.code for rp in role.permissions]
        rows.append((role.name, len(perms), sorted(perms)[:8]))
    return rows


def print_role_summary(session):
    rows = summarize_roles(session)
    if not rows:
        print("No roles present.")
        return
    name_w = max(len(r[0]) for r in rows)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 8)")
    print('-' * (name_w + 40))
    for name, cnt, sample in rows:
        print(f"{name.ljust(name_w)} | {str(cnt).rjust(5)} | {', '.join(sample)}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Seed RBAC permissions, roles and the initial owner account",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_authz.py\n  dry run: seed_authz.py --dry-run\n  show roles: seed_authz.py --show-roles\n""")
    )
    p.add_argument('--show-roles', action='store_true', help='Print role permission counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format='[%(levelname)s] %(message)s')
    app = create_app()
    with app.app_context():
        session = get_db()
        # Bootstrap the schema when migrations have not been run yet; prefer `alembic upgrade head`
        Base.metadata.create_all(session.get_bind(), checkfirst=True)
        try:
            created_p = ensure_permissions(session)
            created_r = ensure_roles(session)
            ensure_initial_admin(session)
            if args.dry_run:
                session.rollback()
                logger.info('[DRY-RUN] (rolled back) Permissions would create: %s, Roles would create: %s', created_p, created_r)
            else:
                session.commit()
                logger.info('Permissions created: %s, Roles created: %s', created_p, created_r)
            if args.show_roles:
                print('\nRole Permission Summary:')
                print_role_summary(session)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

if __name__ == '__main__':
    main()
