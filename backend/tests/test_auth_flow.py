from repairdesk import get_db
from repairdesk.models.authz import User
from tests.test_utils_seed import seed_user_with_role, ensure_user, ensure_permissions, ensure_role


def _login(client, username, password='pw'):
    resp = client.post('/auth/login', json={'username': username, 'password': password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()['access_token']


def test_login_and_me(client):
    session = get_db()
    u = User(username='tina', first_name='Tina', last_name='Tech', password_hash='')
    u.set_password('pw')
    session.add(u)
    session.commit()

    token = _login(client, 'tina')
    me = client.get('/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert me.status_code == 200
    body = me.get_json()
    assert body['username'] == 'tina'
    assert body['display_name'] == 'Tina Tech'
    assert body['perms'] == []


def test_login_rejects_bad_password_and_unknown_user(client):
    ensure_user('sam')
    resp = client.post('/auth/login', json={'username': 'sam', 'password': 'wrong'})
    assert resp.status_code == 401
    assert resp.get_json()['error']['detail'] == 'invalid credentials'
    resp = client.post('/auth/login', json={'username': 'nobody', 'password': 'pw'})
    assert resp.status_code == 401
    resp = client.post('/auth/login', json={'username': 'sam'})
    assert resp.status_code == 400


def test_role_permissions_flow_into_token(client):
    seed_user_with_role('frontdesk1', 'Frontdesk', ['CLIENT.READ', 'CLIENT.MANAGE'])
    token = _login(client, 'frontdesk1')
    headers = {'Authorization': f'Bearer {token}'}
    assert client.get('/clients', headers=headers).status_code == 200
    # no ticket permission on this role
    denied = client.get('/tickets', headers=headers)
    assert denied.status_code == 403
    assert denied.get_json()['error']['detail'] == 'Missing permission: TICKET.READ'


def test_owner_role_expands_to_all_permissions(client):
    ensure_permissions(['CLIENT.READ', 'BILL.MANAGE', 'ADMIN.USER.MANAGE'])
    seed_user_with_role('boss', 'Owner', [])
    token = _login(client, 'boss')
    me = client.get('/auth/me', headers={'Authorization': f'Bearer {token}'}).get_json()
    assert {'CLIENT.READ', 'BILL.MANAGE', 'ADMIN.USER.MANAGE'} <= set(me['perms'])


def test_missing_token_is_rejected(client):
    resp = client.get('/clients')
    assert resp.status_code == 401


def test_user_admin_endpoints(client):
    seed_user_with_role('admin', 'Admins', ['ADMIN.USER.MANAGE'])
    ensure_role('Technician', ['TICKET.READ'])
    headers = {'Authorization': f'Bearer {_login(client, "admin")}'}

    created = client.post('/auth/users', json={'username': 'newtech', 'password': 'secret', 'roles': ['Technician']}, headers=headers)
    assert created.status_code == 201, created.get_json()
    body = created.get_json()
    assert body['roles'] == ['Technician']

    dup = client.post('/auth/users', json={'username': 'newtech', 'password': 'x'}, headers=headers)
    assert dup.status_code == 409

    unknown = client.put(f"/auth/users/{body['id']}/roles", json={'roles': ['Nope']}, headers=headers)
    assert unknown.status_code == 400

    cleared = client.put(f"/auth/users/{body['id']}/roles", json={'roles': []}, headers=headers)
    assert cleared.status_code == 200
    assert cleared.get_json()['roles'] == []

    listing = client.get('/auth/users', headers=headers)
    assert listing.status_code == 200
    assert {u['username'] for u in listing.get_json()['data']} == {'admin', 'newtech'}

    tech_token = _login(client, 'newtech', 'secret')
    forbidden = client.get('/auth/users', headers={'Authorization': f'Bearer {tech_token}'})
    assert forbidden.status_code == 403
