"""
HTTP surface tests (Flask test client).

- Business context headers
- Domain errors rendered with status + code
- Sale, refund, register lifecycle and reports over the API
"""

import pytest

from conftest import context_headers, OTHER_BUSINESS_ID


class TestBusinessContext:
    def test_missing_headers(self, client, db_session):
        response = client.get('/api/pos/sales')
        assert response.status_code == 401

    def test_non_numeric_headers(self, client, db_session):
        response = client.get('/api/cash-register', headers={'X-Business-Id': 'abc', 'X-Actor-Id': '1'})
        assert response.status_code == 401


class TestSalesApi:
    def test_create_and_fetch_sale(self, client, db_session, products, services):
        response = client.post('/api/pos/sales', headers=context_headers(), json={
            'items': [
                {'type': 'service', 'item_id': services['haircut'], 'discount': 20},
                {'type': 'product', 'item_id': products['shampoo'], 'quantity': 2},
                {'type': 'service', 'name': 'Beard trim', 'price': 8},
            ],
            'payment_method': 'card',
            'tip': 3,
            'client': {'id': 5, 'name': 'Bruno'},
        })
        assert response.status_code == 201
        sale = response.json['sale']
        assert sale['final_total'] == pytest.approx(20 + 30 + 8 + 3)
        assert sale['client']['id'] == 5
        assert [line['item_id'] is None for line in sale['lines']] == [False, False, True]

        detail = client.get(f"/api/pos/sales/{sale['id']}", headers=context_headers())
        assert detail.status_code == 200
        assert detail.json['sale']['id'] == sale['id']

        foreign = client.get(f"/api/pos/sales/{sale['id']}", headers=context_headers(OTHER_BUSINESS_ID))
        assert foreign.status_code == 404
        assert foreign.json['code'] == 'SALE_NOT_FOUND'

    def test_validation_error(self, client, db_session):
        response = client.post('/api/pos/sales', headers=context_headers(), json={
            'items': [{'type': 'service', 'name': 'Cut', 'price': 10, 'quantity': 0}],
            'payment_method': 'card',
        })
        assert response.status_code == 400
        assert response.json['code'] == 'VALIDATION_ERROR'

    def test_register_closed(self, client, db_session, services):
        response = client.post('/api/pos/sales', headers=context_headers(), json={
            'items': [{'type': 'service', 'item_id': services['haircut']}],
            'payment_method': 'cash',
        })
        assert response.status_code == 409
        assert response.json['code'] == 'REGISTER_CLOSED'

    def test_insufficient_stock(self, client, db_session, products):
        response = client.post('/api/pos/sales', headers=context_headers(), json={
            'items': [{'type': 'product', 'item_id': products['wax'], 'quantity': 3}],
            'payment_method': 'card',
        })
        assert response.status_code == 409
        assert response.json['code'] == 'INSUFFICIENT_STOCK'
        assert response.json['available'] == 1

    def test_payment_mismatch(self, client, db_session):
        response = client.post('/api/pos/sales', headers=context_headers(), json={
            'items': [{'type': 'service', 'name': 'Treatment', 'price': 100}],
            'payment_method': 'mixed',
            'payments': [{'method': 'card', 'amount': 50}, {'method': 'transfer', 'amount': 40}],
        })
        assert response.status_code == 400
        assert response.json['code'] == 'PAYMENT_MISMATCH'
        assert response.json['payments_total'] == 90.0
        assert response.json['sale_total'] == 100.0

    def test_quick_sale_and_listing(self, client, db_session, open_register):
        response = client.post('/api/pos/quick-sale', headers=context_headers(), json={
            'amount': 22.5, 'description': 'Walk-in cut',
        })
        assert response.status_code == 201

        listing = client.get('/api/pos/sales?limit=10', headers=context_headers())
        assert listing.status_code == 200
        assert listing.json['summary']['count'] == 1
        assert listing.json['summary']['total_sales'] == 22.5
        assert listing.json['pagination']['total'] == 1

    def test_quick_sale_invalid_amount(self, client, db_session, open_register):
        response = client.post('/api/pos/quick-sale', headers=context_headers(), json={'amount': 0})
        assert response.status_code == 400
        assert response.json['code'] == 'INVALID_AMOUNT'


class TestRefundApi:
    def _sale(self, client, products):
        response = client.post('/api/pos/sales', headers=context_headers(), json={
            'items': [{'type': 'product', 'item_id': products['shampoo'], 'quantity': 2}],
            'payment_method': 'card',
        })
        return response.json['sale']['id']

    def test_partial_then_exceeding(self, client, db_session, products):
        sale_id = self._sale(client, products)

        response = client.post(f'/api/pos/sales/{sale_id}/refund', headers=context_headers(), json={
            'reason': 'Leaking cap', 'refund_method': 'card', 'items': [{'item_index': 0, 'quantity': 1}],
        })
        assert response.status_code == 200
        assert response.json['refund_amount'] == 15.0
        assert response.json['sale']['status'] == 'partial_refund'
        assert response.json['refund_transaction']['related_transaction_id'] == sale_id

        response = client.post(f'/api/pos/sales/{sale_id}/refund', headers=context_headers(), json={
            'reason': 'Again', 'refund_method': 'card', 'items': [{'item_index': 0, 'quantity': 2}],
        })
        assert response.status_code == 400
        assert response.json['code'] == 'EXCEEDS_AVAILABLE'

    def test_reason_required(self, client, db_session, products):
        sale_id = self._sale(client, products)
        response = client.post(f'/api/pos/sales/{sale_id}/refund', headers=context_headers(), json={
            'refund_method': 'card',
        })
        assert response.status_code == 400

    def test_unknown_sale(self, client, db_session):
        response = client.post('/api/pos/sales/9999/refund', headers=context_headers(), json={
            'reason': 'x', 'refund_method': 'card',
        })
        assert response.status_code == 404


class TestCashRegisterApi:
    def test_lifecycle(self, client, db_session):
        status = client.get('/api/cash-register', headers=context_headers())
        assert status.json == {'is_open': False, 'session': None}

        opened = client.post('/api/cash-register/open', headers=context_headers(), json={'initial_amount': 1000})
        assert opened.status_code == 201
        session_id = opened.json['session']['id']

        again = client.post('/api/cash-register/open', headers=context_headers(), json={'initial_amount': 10})
        assert again.status_code == 409
        assert again.json['code'] == 'ALREADY_OPEN'

        for body in ({'type': 'in', 'amount': 200, 'reason': 'Change fund'},
                     {'type': 'out', 'amount': 50, 'reason': 'Supplies'}):
            moved = client.post(f'/api/cash-register/{session_id}/movements', headers=context_headers(), json=body)
            assert moved.status_code == 201

        sale = client.post('/api/pos/quick-sale', headers=context_headers(), json={'amount': 300})
        assert sale.status_code == 201

        closed = client.post(f'/api/cash-register/{session_id}/close', headers=context_headers(), json={
            'final_amount': 1450, 'notes': 'Balanced',
        })
        assert closed.status_code == 200
        assert closed.json['session']['status'] == 'closed'
        assert closed.json['session']['expected_amount'] == pytest.approx(1450.0)
        assert closed.json['summary']['difference'] == pytest.approx(0.0)

        late = client.post(f'/api/cash-register/{session_id}/movements', headers=context_headers(), json={
            'type': 'in', 'amount': 5, 'reason': 'Late',
        })
        assert late.status_code == 409
        assert late.json['code'] == 'NOT_OPEN'

        history = client.get('/api/cash-register/history', headers=context_headers())
        assert [s['id'] for s in history.json['sessions']] == [session_id]

        detail = client.get(f'/api/cash-register/{session_id}', headers=context_headers())
        assert len(detail.json['session']['movements']) == 2

    def test_movement_bad_type(self, client, db_session, open_register):
        response = client.post(f'/api/cash-register/{open_register}/movements', headers=context_headers(), json={
            'type': 'sideways', 'amount': 5, 'reason': 'x',
        })
        assert response.status_code == 400

    def test_unknown_session(self, client, db_session):
        response = client.get('/api/cash-register/404', headers=context_headers())
        assert response.status_code == 404
        assert response.json['code'] == 'SESSION_NOT_FOUND'


class TestReportsApi:
    def test_daily_summary(self, client, db_session, open_register):
        client.post('/api/pos/quick-sale', headers=context_headers(), json={'amount': 40})
        response = client.get('/api/pos/summary/daily', headers=context_headers())

        assert response.status_code == 200
        assert response.json['overview']['total_sales'] == 40.0
        assert response.json['by_payment_method'][0]['method'] == 'cash'

    def test_daily_summary_bad_date(self, client, db_session):
        response = client.get('/api/pos/summary/daily?date=not-a-date', headers=context_headers())
        assert response.status_code == 400

    def test_sales_report_range(self, client, db_session, open_register):
        client.post('/api/pos/quick-sale', headers=context_headers(), json={'amount': 40, 'payment_method': 'card'})
        response = client.get(
            '/api/pos/reports/sales?start_date=2000-01-01&end_date=2999-12-31', headers=context_headers(),
        )
        assert response.status_code == 200
        assert response.json['total_sales'] == 40.0
        assert response.json['total_transactions'] == 1

    def test_sales_report_bad_range(self, client, db_session):
        response = client.get('/api/pos/reports/sales?start_date=garbage', headers=context_headers())
        assert response.status_code == 400
