"""HTTP surface: identity headers, JSON error shape and a full order through the API."""

from datetime import datetime

from backoffice.services import discount_service


def test_health(client, db_session):
    response = client.get('/api/health')
    assert response.status_code == 200
    data = response.get_json()
    assert data['status'] == 'healthy'
    assert data['base_currency'] == 'EUR'


def test_missing_identity_is_401(client, business):
    response = client.get('/api/orders/')
    assert response.status_code == 401


def test_unknown_role_is_401(client, business):
    response = client.get('/api/orders/', headers={
        'X-Actor-Id': '4', 'X-Actor-Role': 'Janitor', 'X-Business-Id': str(business.id),
    })
    assert response.status_code == 401


def test_non_admin_needs_business_header(client, business):
    response = client.get('/api/orders/', headers={'X-Actor-Id': '4', 'X-Actor-Role': 'Employee'})
    assert response.status_code == 401


def test_cors_header_for_allowed_origin(client, db_session):
    response = client.get('/api/health', headers={'Origin': 'http://localhost:5173'})
    assert response.headers['Access-Control-Allow-Origin'] == 'http://localhost:5173'

    response = client.get('/api/health', headers={'Origin': 'http://evil.example'})
    assert 'Access-Control-Allow-Origin' not in response.headers


def test_full_order_flow(client, headers, employee, manager, business, single, espresso_stock):
    discount_service.create_discount(
        manager,
        business_id=business.id,
        code='TEN',
        discount_type='Percent',
        scope='Order',
        value='10',
        starts_at=datetime(2020, 1, 1),
    )

    response = client.post('/api/orders/', json={'table_or_area': 'T4'}, headers=headers(employee))
    assert response.status_code == 201
    order_id = response.get_json()['order']['id']

    response = client.post(
        f'/api/orders/{order_id}/lines', json={'option_id': single.id, 'qty': '2'}, headers=headers(employee),
    )
    assert response.status_code == 201
    line = response.get_json()['line']
    assert line['unit_price_snapshot'] == '3.50'
    assert line['line_total'] == '8.40'

    response = client.post(f'/api/discounts/orders/{order_id}', json={'code': 'TEN'}, headers=headers(employee))
    assert response.status_code == 200

    response = client.put(f'/api/orders/{order_id}/tip', json={'tip_amount': '1.00'}, headers=headers(employee))
    assert response.get_json()['due_total'] == '8.56'

    response = client.post(
        '/api/payments/', json={'order_id': order_id, 'method': 'Cash', 'amount': '5.00'}, headers=headers(employee),
    )
    assert response.status_code == 201
    assert response.get_json()['summary']['remaining'] == '3.56'

    response = client.post(f'/api/payments/orders/{order_id}/close', headers=headers(employee))
    assert response.status_code == 402
    body = response.get_json()
    assert body['code'] == 'INSUFFICIENT_PAYMENT'
    assert set(body) == {'error', 'code', 'details'}

    client.post(
        '/api/payments/',
        json={'order_id': order_id, 'method': 'CardCredit', 'amount': '3.56', 'external_reference': 'AUTH-9'},
        headers=headers(employee),
    )
    response = client.post(f'/api/payments/orders/{order_id}/close', headers=headers(employee))
    assert response.status_code == 200
    assert response.get_json()['order']['status'] == 'Closed'

    response = client.get(f'/api/inventory/items/{espresso_stock.id}', headers=headers(manager))
    assert response.get_json()['item']['qty_on_hand'] == '38'


def test_other_business_order_is_404(client, headers, employee, outsider, business):
    response = client.post('/api/orders/', json={}, headers=headers(employee))
    order_id = response.get_json()['order']['id']

    response = client.get(f'/api/orders/{order_id}', headers=headers(outsider))
    assert response.status_code == 404
    assert response.get_json()['code'] == 'NOT_FOUND'


def test_invalid_payment_method_is_400(client, headers, employee, business):
    order_id = client.post('/api/orders/', json={}, headers=headers(employee)).get_json()['order']['id']
    response = client.post(
        '/api/payments/', json={'order_id': order_id, 'method': 'Cheque', 'amount': '1'}, headers=headers(employee),
    )
    assert response.status_code == 400


def test_reservation_conflict_is_409(client, headers, employee, business):
    payload = {
        'customer_name': 'Ana',
        'appointment_start': '2024-06-01T14:00:00Z',
        'planned_duration_min': 60,
        'employee_id': 7,
    }
    assert client.post('/api/reservations/', json=payload, headers=headers(employee)).status_code == 201

    payload['appointment_start'] = '2024-06-01T14:30:00Z'
    response = client.post('/api/reservations/', json=payload, headers=headers(employee))
    assert response.status_code == 409
    assert response.get_json()['code'] == 'RESERVATION_CONFLICT'
