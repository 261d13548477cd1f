from repairdesk import get_db
from repairdesk.models.authz import Permission, Role, User
from repairdesk.constants.permissions import ALL_PERMISSION_CODES, ROLE_PRESETS
from scripts import seed_authz


def test_seed_is_idempotent_and_creates_owner(app_context, client, monkeypatch):
    monkeypatch.setenv('SEED_ADMIN_USERNAME', 'owner')
    monkeypatch.setenv('SEED_ADMIN_PASSWORD', 'initial-pw')
    session = get_db()
    assert seed_authz.ensure_permissions(session) == len(ALL_PERMISSION_CODES)
    assert seed_authz.ensure_roles(session) == len(ROLE_PRESETS)
    seed_authz.ensure_initial_admin(session)
    session.commit()

    assert seed_authz.ensure_permissions(session) == 0
    assert seed_authz.ensure_roles(session) == 0
    seed_authz.ensure_initial_admin(session)
    session.commit()
    assert session.query(Permission).count() == len(ALL_PERMISSION_CODES)
    assert session.query(User).filter_by(username='owner').count() == 1

    summary = {name: count for name, count, _ in seed_authz.summarize_roles(session)}
    assert summary['Owner'] == len(ALL_PERMISSION_CODES)
    assert summary['Manager'] == len([c for c in ALL_PERMISSION_CODES if not c.startswith('ADMIN.')])
    assert session.query(Role).filter_by(name='Technician').one().is_system is True

    token = client.post('/auth/login', json={'username': 'owner', 'password': 'initial-pw'}).get_json()['access_token']
    users = client.get('/auth/users', headers={'Authorization': f'Bearer {token}'})
    assert users.status_code == 200
