from flask import Flask, jsonify, redirect, render_template, request, session
from dotenv import load_dotenv
import logging
import os
import secrets
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qs
from uuid import uuid4

from api_utils import NO_CACHE_HEADERS, Envelope, error
from mock_store import InMemoryMockInvoiceStore, MockInvoiceStore
from odoo_api import DEFAULT_TIMEOUT, OdooAPI
import inventory_service as svc

# Load environment variables
load_dotenv()


def _env_string(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return trimmed string-valued env vars, normalizing empty strings to None."""
    raw = os.getenv(name, default)
    if raw is None:
        return default
    if isinstance(raw, str):
        clean = raw.strip()
        return clean if clean else default
    return raw


_LOG_LEVEL_NAME = (os.getenv('ADMIN_LOG_LEVEL') or 'INFO').strip().upper()
_LOG_LEVEL = getattr(logging, _LOG_LEVEL_NAME, logging.INFO)
logging.basicConfig(level=_LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s %(message)s')

app = Flask(__name__)
app.logger.setLevel(_LOG_LEVEL)
logging.getLogger('werkzeug').setLevel(_LOG_LEVEL)


def _session_secret() -> str:
    """Key signing the session cookie that carries the mock-invoice token."""
    key = _env_string('ADMIN_SECRET_KEY')
    if key:
        return key
    app.logger.warning(
        'ADMIN_SECRET_KEY is not set; using a per-process key. Sessions and local-only invoices '
        'will not survive restarts or be shared between worker processes.'
    )
    return secrets.token_hex(32)


app.secret_key = _session_secret()

# Odoo JSON-RPC configuration
ODOO_URL = _env_string('ODOO_URL', '')
ODOO_DB = _env_string('ODOO_DB', '')
ODOO_USERNAME = _env_string('ODOO_USERNAME', '')
ODOO_API_KEY = _env_string('ODOO_API_KEY', '')
# Certificate checks stay on unless explicitly disabled
ODOO_VERIFY_SSL = _env_string('ODOO_VERIFY_SSL', '1') != '0'
try:
    ODOO_TIMEOUT = float(_env_string('ODOO_TIMEOUT', str(DEFAULT_TIMEOUT)))
except ValueError:
    ODOO_TIMEOUT = DEFAULT_TIMEOUT
try:
    MOCK_STORE_TTL_SECONDS = int(_env_string('ADMIN_MOCK_TTL_SECONDS', '86400'))
except ValueError:
    MOCK_STORE_TTL_SECONDS = 86400

app.config['MOCK_INVOICE_STORE'] = InMemoryMockInvoiceStore(ttl_seconds=MOCK_STORE_TTL_SECONDS)

_MOCK_TOKEN_KEY = 'mock_invoice_token'


def create_odoo_client() -> OdooAPI:
    """Open one authenticated Odoo session for the current request."""
    return OdooAPI(
        ODOO_URL,
        ODOO_DB,
        ODOO_USERNAME,
        ODOO_API_KEY,
        verify_ssl=ODOO_VERIFY_SSL,
        timeout=ODOO_TIMEOUT,
    )


def _mock_store() -> MockInvoiceStore:
    return app.config['MOCK_INVOICE_STORE']


def _session_token() -> str:
    token = session.get(_MOCK_TOKEN_KEY)
    if not token:
        token = uuid4().hex
        session[_MOCK_TOKEN_KEY] = token
    return token


def _respond(envelope: Envelope):
    body, status = envelope
    return jsonify(body), status


def _json_body() -> Any:
    return request.get_json(force=True, silent=True)


def _request_payload() -> Dict[str, Any]:
    """JSON body first, then form fields, then a raw urlencoded body."""
    data = _json_body()
    if isinstance(data, dict):
        return data
    if request.form:
        return request.form.to_dict()
    raw = request.get_data(as_text=True) or ''
    if raw.strip():
        return {key: values[-1] for key, values in parse_qs(raw, keep_blank_values=True).items()}
    return {}


def _with_odoo(handler: Callable[..., Envelope], *args):
    """Connect, run ``handler(odoo, *args)`` and render its envelope."""
    try:
        odoo = create_odoo_client()
        if not odoo.is_connected():
            app.logger.error('Odoo connection failed: %s', odoo.get_last_error())
            return _respond(error(f'Failed to connect to Odoo: {odoo.get_last_error()}', 500))
        return _respond(handler(odoo, *args))
    except Exception as exc:
        app.logger.exception('Unhandled error in %s %s', request.method, request.path)
        return _respond(error(f'An error occurred: {exc}', 500))


# Responses proxy live ERP data; never let the browser cache them
@app.after_request
def add_no_cache_headers(response):
    for name, value in NO_CACHE_HEADERS.items():
        response.headers[name] = value
    response.headers['X-Content-Type-Options'] = 'nosniff'
    return response


@app.errorhandler(404)
def not_found(exc):
    if request.path.startswith('/api/'):
        return _respond(error('Not found', 404))
    return exc


@app.errorhandler(405)
def method_not_allowed(exc):
    return _respond(error('Method not allowed', 405))


@app.route('/')
def index():
    """Render the admin panel"""
    return render_template('index.html')


@app.route('/API/<path:name>', methods=['GET', 'POST', 'PUT', 'DELETE'])
def legacy_api_redirect(name: str):
    """Old clients used an uppercase API folder and .php scripts."""
    target = name[:-4] if name.endswith('.php') else name
    url = f'/api/{target}'
    if request.query_string:
        url += '?' + request.query_string.decode('utf-8', errors='ignore')
    return redirect(url, code=307)


@app.route('/api/products', methods=['GET', 'POST', 'PUT', 'DELETE'])
def api_products():
    """List, create, update and archive products"""
    app.logger.info('Products API called with method: %s', request.method)
    if request.method == 'GET':
        return _with_odoo(svc.list_products, request.args)
    if request.method == 'POST':
        return _with_odoo(svc.create_product, _request_payload())
    if request.method == 'PUT':
        return _with_odoo(svc.update_product, _request_payload())
    return _with_odoo(svc.delete_product, request.args)


@app.route('/api/categories')
def api_categories():
    """Flat list of product categories with parent linkage"""
    return _with_odoo(svc.list_categories)


@app.route('/api/stock', methods=['GET', 'POST'])
def api_stock():
    """Stock snapshots, movement history and stock in/out"""
    app.logger.info('Stock API called with method: %s', request.method)
    if request.method == 'GET':
        return _with_odoo(svc.get_stock, request.args)
    return _with_odoo(svc.update_stock, _request_payload())


@app.route('/api/purchase', methods=['GET', 'POST'])
def api_purchase():
    """Suppliers, purchasable products and customer invoices"""
    store = _mock_store()
    token = _session_token()
    if request.method == 'GET':
        return _with_odoo(svc.handle_purchase_get, request.args, store, token)
    body = _json_body()
    form = request.form.to_dict() if request.form else {}
    return _with_odoo(svc.handle_purchase_post, request.args, form, body, store, token)


@app.route('/api/dashboard')
def api_dashboard():
    """Aggregated stock and order metrics"""
    return _with_odoo(svc.dashboard_summary)


if __name__ == '__main__':
    app.run(debug=True)
