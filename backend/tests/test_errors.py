from tests.test_lifecycle_helpers import staff_headers


def test_unknown_path_returns_error_json(client):
    resp = client.get('/non-existent-path')
    # Flask default 404 should be wrapped by error handler
    assert resp.status_code == 404
    body = resp.get_json()
    assert body['error']['status'] == 404
    assert body['error']['title'] == 'Not Found'
    assert 'detail' in body['error']


def test_missing_resource_detail_names_the_entity(app_instance, client):
    _, headers = staff_headers(app_instance)
    resp = client.get('/tickets/999', headers=headers)
    assert resp.status_code == 404
    assert resp.get_json()['error']['detail'] == 'Ticket 999 not found'


def test_validation_errors_are_400_with_field_detail(app_instance, client):
    _, headers = staff_headers(app_instance)
    resp = client.post('/clients', json={'email': 'x@example.com'}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'name required'
    resp = client.post('/reminders', json={'type': 'follow_up', 'title': 'Call', 'due_date': 'tomorrow'}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'due_date must be an ISO 8601 datetime'


def test_internal_error_shape(app_instance, client, monkeypatch):
    _, headers = staff_headers(app_instance)
    from repairdesk.services import store

    def boom(*a, **k):
        raise RuntimeError('explode')
    monkeypatch.setattr(store, 'query_clients', boom)
    resp = client.get('/clients', headers=headers)
    assert resp.status_code == 500
    body = resp.get_json()
    assert body['error']['status'] == 500
    assert body['error']['title'] == 'Internal Server Error'
    assert body['error']['detail'] == 'Unexpected error'


def test_blank_update_is_rejected_and_record_unchanged(app_instance, client):
    _, headers = staff_headers(app_instance)
    c = client.post('/clients', json={'name': 'Kept'}, headers=headers).get_json()
    bad = client.patch(f"/clients/{c['id']}", json={'name': ''}, headers=headers)
    assert bad.status_code == 400
    # a later successful write must not carry anything from the failed request
    client.post('/clients', json={'name': 'Other'}, headers=headers)
    assert client.get(f"/clients/{c['id']}", headers=headers).get_json()['name'] == 'Kept'
