import json
import os
import unittest
from unittest import mock

import admin_server
from mock_store import InMemoryMockInvoiceStore
from test_inventory_service import FakeOdoo, sample_order


class AdminServerTest(unittest.TestCase):
    def setUp(self):
        admin_server.app.config['TESTING'] = True
        self._orig_store = admin_server.app.config['MOCK_INVOICE_STORE']
        admin_server.app.config['MOCK_INVOICE_STORE'] = InMemoryMockInvoiceStore()
        self.odoo = FakeOdoo()
        self._patch = mock.patch.object(admin_server, 'create_odoo_client', side_effect=lambda: self.odoo)
        self._patch.start()
        self.client = admin_server.app.test_client()

    def tearDown(self):
        self._patch.stop()
        admin_server.app.config['MOCK_INVOICE_STORE'] = self._orig_store

    def test_responses_are_not_cacheable(self):
        self.odoo.responses[('product.category', 'search')] = []
        resp = self.client.get('/api/categories')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers['Cache-Control'], 'no-cache, no-store, must-revalidate')
        self.assertEqual(resp.headers['Pragma'], 'no-cache')
        self.assertEqual(resp.headers['Expires'], '0')
        self.assertEqual(resp.get_json(), {'success': True, 'data': {'categories': []}, 'message': ''})

    def test_connection_failure_is_500_for_every_verb(self):
        self.odoo = FakeOdoo(connected=False)
        for method in ('get', 'post', 'put', 'delete'):
            resp = getattr(self.client, method)('/api/products', json={})
            self.assertEqual(resp.status_code, 500)
            body = resp.get_json()
            self.assertFalse(body['success'])
            self.assertTrue(body['message'].startswith('Failed to connect to Odoo'))

    def test_unexpected_exception_becomes_500_envelope(self):
        def explode(args):
            raise RuntimeError('boom')

        self.odoo.responses[('product.product', 'search_read')] = explode
        resp = self.client.get('/api/products')
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.get_json()['message'], 'An error occurred: boom')

    def test_validation_error_is_400(self):
        resp = self.client.get('/api/products?limit=0')
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.get_json()['success'])

    def test_unsupported_method_is_405_envelope(self):
        resp = self.client.patch('/api/products')
        self.assertEqual(resp.status_code, 405)
        self.assertEqual(resp.get_json(), {'success': False, 'data': None, 'message': 'Method not allowed'})
        self.assertEqual(self.client.delete('/api/dashboard').status_code, 405)

    def test_unknown_api_path_is_404_envelope(self):
        resp = self.client.get('/api/nothing-here')
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json()['message'], 'Not found')

    def test_legacy_paths_redirect(self):
        resp = self.client.get('/API/products.php?page=2')
        self.assertEqual(resp.status_code, 307)
        self.assertTrue(resp.headers['Location'].endswith('/api/products?page=2'))

    def test_put_accepts_urlencoded_body(self):
        self.odoo.responses[('product.product', 'write')] = True
        resp = self.client.put('/api/products', data='id=5&name=Bolt+M8',
                               content_type='application/x-www-form-urlencoded')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.odoo.calls_for('product.product', 'write'), [[[5], {'name': 'Bolt M8'}]])

    def test_put_accepts_json_body(self):
        self.odoo.responses[('product.product', 'write')] = True
        resp = self.client.put('/api/products', json={'id': 5, 'cost': '2'})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.odoo.calls_for('product.product', 'write'), [[[5], {'standard_price': 2.0}]])

    def test_delete_reads_query_id(self):
        self.odoo.responses[('product.product', 'unlink')] = True
        resp = self.client.delete('/api/products?id=5')
        self.assertEqual(resp.get_json()['message'], 'Product deleted successfully')

    def test_stock_post(self):
        self.odoo.responses.update({
            ('product.product', 'read'): [{'name': 'Bolt', 'qty_available': 10}],
            ('product.product', 'write'): True,
            ('stock.move', 'create'): 77,
        })
        resp = self.client.post('/api/stock', json={'product_id': 5, 'quantity': 5, 'action': 'in'})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['data']['new_quantity'], 15.0)

    def test_mock_invoices_follow_the_browser_session(self):
        form = {'action': 'createPurchaseOrder', 'orderData': json.dumps(sample_order())}
        first = self.client.post('/api/purchase', data=form)
        self.assertEqual(first.status_code, 200)
        self.assertTrue(first.get_json()['data']['mock'])
        self.client.post('/api/purchase', json={'action': 'createPurchaseOrder', 'orderData': sample_order()})

        listed = self.client.get('/api/purchase?action=getPurchaseOrders').get_json()
        self.assertEqual(len(listed['data']), 2)
        invoice_id = first.get_json()['data']['id']
        detail = self.client.get(f'/api/purchase?action=getPurchaseOrderDetails&orderId={invoice_id}')
        self.assertEqual(detail.get_json()['data']['id'], invoice_id)

        other = admin_server.app.test_client()
        self.assertEqual(other.get('/api/purchase?action=getPurchaseOrders').get_json()['data'], [])

    def test_dashboard(self):
        self.odoo.responses[('product.product', 'search')] = []
        resp = self.client.get('/api/dashboard')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['data']['totalProducts'], 0)

    def test_index_page(self):
        resp = self.client.get('/')
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'js/admin.js', resp.data)

    def test_index_offers_invoice_customer_and_edit_views(self):
        page = self.client.get('/').get_data(as_text=True)
        for element in ('invoiceForm', 'invoiceLineRows', 'invoiceDetailsModal', 'customerForm',
                        'productEditForm', 'historyRows'):
            self.assertIn(f'id="{element}"', page)

    def test_script_calls_every_endpoint_action(self):
        resp = self.client.get('/static/js/admin.js')
        try:
            self.assertEqual(resp.status_code, 200)
            script = resp.get_data(as_text=True)
        finally:
            resp.close()
        for needle in ("action: 'createPurchaseOrder'", 'orderData: JSON.stringify',
                       "action: 'createSupplier'", 'supplierData: JSON.stringify',
                       "action: 'getPurchaseOrderDetails'", "action: 'getSuppliers'",
                       "action: 'getProducts'", "'/api/products', 'PUT'", 'history: 1',
                       '(local only)'):
            self.assertIn(needle, script)


class SessionSecretTest(unittest.TestCase):
    def test_generated_key_is_logged(self):
        with mock.patch.dict(os.environ, {'ADMIN_SECRET_KEY': ''}):
            with self.assertLogs(admin_server.app.logger, 'WARNING') as logs:
                first = admin_server._session_secret()
            second = admin_server._session_secret()
        self.assertEqual(len(first), 64)
        self.assertNotEqual(first, second)
        self.assertIn('ADMIN_SECRET_KEY is not set', logs.output[0])

    def test_configured_key_is_used(self):
        with mock.patch.dict(os.environ, {'ADMIN_SECRET_KEY': ' s3cret '}):
            self.assertEqual(admin_server._session_secret(), 's3cret')


if __name__ == '__main__':
    unittest.main()
