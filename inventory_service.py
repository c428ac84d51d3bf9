"""
Resource handlers for the inventory admin API.

Each public handler takes already-parsed request parameters plus an
authenticated :class:`odoo_api.OdooAPI` and returns an envelope tuple
``(body, status)``. Flask wiring lives in admin_server.py.
"""
import copy
import json
import logging
import random
import time
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from api_utils import (
    Envelope, ValidationError, as_bool, error, is_blank, page_count,
    parse_number, parse_pagination, relation_label, returns_envelope,
    split_relation, success,
)
from mock_store import MockInvoiceStore
from odoo_api import OdooAPI
from odoo_schema import InvoiceSchema, detect_customer_flag, detect_invoice_schema

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_ID = 1
DEFAULT_MIN_STOCK = 5
LOW_STOCK_THRESHOLD = 5
PRODUCT_PAGE_LIMIT = 100
PURCHASE_LIST_LIMIT = 100
STOCK_HISTORY_LIMIT = 20
RECENT_ACTIVITY_LIMIT = 10
PENDING_SALE_STATES = ('draft', 'sent', 'sale')
PENDING_PURCHASE_STATES = ('draft', 'sent', 'purchase')

PRODUCT_LIST_FIELDS = ['id', 'name', 'description', 'list_price', 'standard_price', 'qty_available', 'categ_id']
SUPPLIER_FIELDS = ['id', 'name', 'email', 'phone', 'street', 'city', 'zip']
PURCHASE_PRODUCT_FIELDS = ['id', 'name', 'description', 'description_purchase', 'list_price',
                           'standard_price', 'qty_available']
MOVE_HISTORY_FIELDS = ['date', 'product_id', 'product_uom_qty', 'state', 'reference', 'create_uid',
                       'location_id', 'location_dest_id']

# Frontend key -> product.product field for partial updates
PRODUCT_UPDATE_FIELDS = (
    ('name', 'name'),
    ('category_id', 'categ_id'),
    ('price', 'list_price'),
    ('cost', 'standard_price'),
    ('description', 'description'),
)


def _now_str() -> str:
    return datetime.now().strftime('%Y-%m-%d %H:%M:%S')


def _positive_id(value: Any, message: str) -> int:
    if is_blank(value) or isinstance(value, bool):
        raise ValidationError(message)
    # JSON clients may send 7.0 for 7
    try:
        number = float(str(value).strip())
    except ValueError:
        raise ValidationError(message)
    if not number.is_integer() or number <= 0:
        raise ValidationError(message)
    return int(number)


def _timestamp_key(value: Any) -> datetime:
    """Sort key for ERP date strings; unparseable values sort as oldest."""
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = None
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            for fmt in ('%d/%m/%Y %H:%M:%S', '%d/%m/%Y', '%m/%d/%Y %H:%M:%S'):
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is not None:
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            return parsed
    return datetime.min


def sort_newest_first(rows: List[Dict[str, Any]], key: str = 'date') -> List[Dict[str, Any]]:
    return sorted(rows, key=lambda row: _timestamp_key(row.get(key)), reverse=True)


def _classify_movement(label: Any, default: str = 'Stock Movement') -> str:
    text = str(label or '').lower()
    if 'out' in text:
        return 'Stock Out'
    if 'in' in text:
        return 'Stock In'
    return default


def _read_after_search(odoo: OdooAPI, model: str, fields: List[str], domain=(),
                       offset: int = 0, limit: Optional[int] = None,
                       order: Optional[str] = None) -> Optional[List[Dict[str, Any]]]:
    """search then read; None when either call fails."""
    ids = odoo.search(model, domain, offset, limit, order)
    if not ids.ok:
        logger.warning('Search on %s failed: %s', model, ids.error)
        return None
    if not ids.value:
        return []
    rows = odoo.read(model, ids.value, fields)
    if not rows.ok:
        logger.warning('Read on %s failed: %s', model, rows.error)
        return None
    return rows.value or []


# ---------- PRODUCTS ----------

def _product_row(product: Dict[str, Any]) -> Dict[str, Any]:
    category_id, category = split_relation(product.get('categ_id'), 'Uncategorized')
    return {
        'id': product.get('id'),
        'name': product.get('name'),
        'description': product.get('description') or '',
        'price': product.get('list_price') or 0,
        'cost': product.get('standard_price') or 0,
        'stock': product.get('qty_available') or 0,
        'min_stock': DEFAULT_MIN_STOCK,
        'category_id': category_id,
        'category': category,
    }


@returns_envelope
def list_products(odoo: OdooAPI, params: Mapping[str, Any]) -> Envelope:
    page, limit, offset = parse_pagination(params, PRODUCT_PAGE_LIMIT)
    search = (params.get('search') or '').strip()
    domain = [['name', 'ilike', search]] if search else []

    res = odoo.search_read('product.product', domain, PRODUCT_LIST_FIELDS, offset, limit)
    if not res.ok:
        logger.warning('Error retrieving products: %s', res.error)
        return success({
            'products': [],
            'pagination': {'total': 0, 'page': page, 'limit': limit, 'pages': 0},
        })
    products = res.value or []
    total = odoo.search_count('product.product', domain).value_or(None)
    if not isinstance(total, int):
        total = len(products)
    return success({
        'products': [_product_row(p) for p in products],
        'pagination': {'total': total, 'page': page, 'limit': limit, 'pages': page_count(total, limit)},
    })


def _validated_price(data: Mapping[str, Any], key: str, label: str) -> float:
    value = parse_number(data.get(key), f'Please enter a valid {label} price')
    if value < 0:
        raise ValidationError(f'{label.capitalize()} price cannot be negative')
    return value


def _seed_initial_stock(odoo: OdooAPI, product_id: int, quantity: float) -> bool:
    """Best effort: set on-hand quantity, falling back to a stock.quant in the main warehouse."""
    res = odoo.write('product.product', [product_id], {'qty_available': quantity})
    if res.ok and res.value:
        logger.info('Initial stock %s set on product %s', quantity, product_id)
        return True
    logger.warning('Direct stock write failed for product %s: %s', product_id, res.error or 'rejected')

    warehouses = _read_after_search(odoo, 'stock.warehouse', ['lot_stock_id'], limit=1)
    if not warehouses:
        logger.warning('No warehouse found; initial stock for product %s skipped', product_id)
        return False
    location_id, _ = split_relation(warehouses[0].get('lot_stock_id'), default_id=None)
    if not location_id:
        logger.warning('Warehouse has no stock location; initial stock for product %s skipped', product_id)
        return False
    quant = odoo.create('stock.quant', {
        'product_id': product_id,
        'location_id': location_id,
        'inventory_quantity': quantity,
        'quantity': quantity,
    })
    if not quant.ok:
        logger.warning('Initial stock quant for product %s failed: %s', product_id, quant.error)
        return False
    return True


@returns_envelope
def create_product(odoo: OdooAPI, data: Mapping[str, Any]) -> Envelope:
    if is_blank(data.get('name')):
        raise ValidationError('Product name is required')
    price = _validated_price(data, 'price', 'sale')
    cost = _validated_price(data, 'cost', 'cost')
    category_id = DEFAULT_CATEGORY_ID
    if not is_blank(data.get('category_id')):
        category_id = _positive_id(data.get('category_id'), 'Invalid category')
    track_inventory = as_bool(data.get('track_inventory'), default=True)

    values: Dict[str, Any] = {
        'name': str(data['name']).strip(),
        'categ_id': category_id,
        'list_price': price,
        'standard_price': cost,
        'sale_ok': True,
        'purchase_ok': True,
    }
    if track_inventory:
        values['tracking'] = 'none'
    if not is_blank(data.get('description')):
        values['description'] = data['description']

    template = odoo.create('product.template', values)
    if not template.ok:
        return error(f'Failed to create product: {template.error}', 500)
    template_id = template.value
    logger.info('Product template created with ID %s', template_id)

    variants = odoo.search('product.product', [['product_tmpl_id', '=', template_id]])
    if not variants.ok or not variants.value:
        logger.error('Variant lookup failed for template %s: %s', template_id, variants.error)
        return error('Product template created but failed to find product variant', 500)
    product_id = variants.value[0]

    initial_stock = data.get('initial_stock')
    if track_inventory and not is_blank(initial_stock):
        try:
            quantity = float(initial_stock)
        except (TypeError, ValueError):
            logger.warning('Ignoring non-numeric initial stock %r', initial_stock)
            quantity = 0
        if quantity > 0:
            _seed_initial_stock(odoo, product_id, quantity)

    return success({'product_id': product_id}, 'Product created successfully')


@returns_envelope
def update_product(odoo: OdooAPI, data: Mapping[str, Any]) -> Envelope:
    product_id = _positive_id(data.get('id'), 'Product ID is required')
    values: Dict[str, Any] = {}
    for key, field in PRODUCT_UPDATE_FIELDS:
        if key not in data or data[key] is None:
            continue
        raw = data[key]
        if key == 'name':
            if not is_blank(raw):
                values[field] = str(raw).strip()
        elif key == 'category_id':
            if not is_blank(raw):
                values[field] = _positive_id(raw, 'Invalid category')
        elif key in ('price', 'cost'):
            if isinstance(raw, str) and not raw.strip():
                continue
            values[field] = _validated_price(data, key, 'sale' if key == 'price' else 'cost')
        else:
            values[field] = raw
    if not values:
        raise ValidationError('No fields to update')

    res = odoo.write('product.product', [product_id], values)
    if not res.ok:
        return error(f'Failed to update product: {res.error}', 500)
    return success(None, 'Product updated successfully')


@returns_envelope
def delete_product(odoo: OdooAPI, params: Mapping[str, Any]) -> Envelope:
    product_id = _positive_id(params.get('id'), 'Product ID is required')

    product = odoo.read('product.product', [product_id], ['product_tmpl_id'])
    if product.ok and product.value:
        template_id, _ = split_relation(product.value[0].get('product_tmpl_id'), default_id=None)
        if template_id:
            archived = odoo.write('product.template', [template_id], {'active': False})
            if archived.ok and archived.value:
                return success(None, 'Product archived successfully')
            logger.warning('Archiving template %s failed: %s', template_id, archived.error)

    removed = odoo.unlink('product.product', [product_id])
    if removed.ok:
        return success(None, 'Product deleted successfully')
    logger.warning('Failed to delete product %s: %s', product_id, removed.error)

    archived = odoo.write('product.product', [product_id], {'active': False})
    if archived.ok and archived.value:
        return success(None, 'Product archived successfully')
    return error(f'Failed to delete product: {removed.error}', 500)


# ---------- CATEGORIES ----------

def list_categories(odoo: OdooAPI) -> Envelope:
    categories = _read_after_search(odoo, 'product.category', ['id', 'name', 'parent_id'])
    mapped = []
    for category in categories or []:
        parent_id, parent_name = split_relation(category.get('parent_id'))
        mapped.append({
            'id': category.get('id'),
            'name': category.get('name'),
            'parent_id': parent_id,
            'parent_name': parent_name,
        })
    return success({'categories': mapped})


# ---------- STOCK ----------

@returns_envelope
def get_stock(odoo: OdooAPI, params: Mapping[str, Any]) -> Envelope:
    if str(params.get('history') or '') == '1':
        product_id = None
        if not is_blank(params.get('product_id')):
            product_id = _positive_id(params.get('product_id'), 'Invalid product ID')
        return _stock_history(odoo, product_id)
    if params.get('product_id') is not None:
        return _product_stock(odoo, _positive_id(params.get('product_id'), 'Invalid product ID'))

    products = _read_after_search(odoo, 'product.product', ['id', 'name', 'categ_id', 'qty_available'])
    stamp = _now_str()
    stock = []
    for product in products or []:
        category_id, category = split_relation(product.get('categ_id'), 'N/A')
        stock.append({
            'product_id': product.get('id'),
            'product_name': product.get('name'),
            'quantity': product.get('qty_available') or 0,
            'category': category,
            'category_id': category_id,
            'min_stock': DEFAULT_MIN_STOCK,
            'last_updated': stamp,
        })
    return success({'stock': stock})


def _product_stock(odoo: OdooAPI, product_id: int) -> Envelope:
    res = odoo.read('product.product', [product_id], ['name', 'default_code', 'categ_id', 'qty_available'])
    if not res.ok:
        return error(f'Failed to get product information: {res.error}', 500)
    if not res.value:
        return error('Product not found', 404)
    product = res.value[0]
    return success({
        'product': product,
        'stock': {'quantity': product.get('qty_available') or 0},
    })


def _stock_history(odoo: OdooAPI, product_id: Optional[int]) -> Envelope:
    product_name = 'Unknown Product'
    if product_id:
        product = odoo.read('product.product', [product_id], ['name'])
        if product.ok and product.value:
            product_name = product.value[0].get('name') or product_name

    domain = [['product_id', '=', product_id]] if product_id else []
    moves = _read_after_search(odoo, 'stock.move', MOVE_HISTORY_FIELDS, domain,
                               limit=STOCK_HISTORY_LIMIT, order='date desc')
    history = []
    for move in moves or []:
        if move.get('state') != 'done':
            continue
        reference = move.get('reference') or ''
        move_product_id, move_product = split_relation(move.get('product_id'), product_name, product_id)
        history.append({
            'date': move.get('date'),
            'product': move_product,
            'product_id': move_product_id,
            'quantity': move.get('product_uom_qty') or 0,
            'type': 'out' if 'out' in reference.lower() else 'in',
            'reference': reference,
            'user': relation_label(move.get('create_uid'), 'System'),
        })
    return success({'history': sort_newest_first(history)})


def apply_stock_action(current: float, quantity: float, action: str) -> float:
    """New on-hand quantity; stock never goes below zero."""
    if action == 'in':
        return current + quantity
    return max(0.0, current - quantity)


@returns_envelope
def update_stock(odoo: OdooAPI, data: Mapping[str, Any]) -> Envelope:
    for field in ('product_id', 'quantity', 'action'):
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"Field '{field}' is required")
    product_id = _positive_id(data.get('product_id'), 'Invalid product ID')
    quantity = parse_number(data.get('quantity'), 'Quantity must be a number')
    if quantity <= 0:
        raise ValidationError('Quantity must be greater than zero')
    action = str(data.get('action')).strip().lower()
    if action not in ('in', 'out'):
        raise ValidationError("Action must be 'in' or 'out'")

    product = odoo.read('product.product', [product_id], ['name', 'qty_available'])
    if not product.ok:
        return error(f'Failed to get product information: {product.error}', 500)
    if not product.value:
        return error('Product not found', 404)
    current = float(product.value[0].get('qty_available') or 0)
    new_qty = apply_stock_action(current, quantity, action)

    reference = str(data.get('reference') or '').strip()
    notes = str(data.get('notes') or '').strip()
    if notes:
        reference = f'{reference} - {notes}' if reference else notes
    label = 'Stock In' if action == 'in' else 'Stock Out'
    move_values = {
        'name': label,
        'product_id': product_id,
        'product_uom_qty': quantity,
        'state': 'done',
        'reference': f'{reference or label} (Admin)',
    }

    written = odoo.write('product.product', [product_id], {'qty_available': new_qty})
    if not written.ok:
        logger.warning('Failed to update product quantity for %s: %s', product_id, written.error)
        move = odoo.create('stock.move', move_values)
        if not move.ok:
            return error(f'Failed to update stock: {move.error}', 500)
        return success({'move_id': move.value}, 'Stock updated successfully via stock movement')

    # Quantity is already written; a failed audit move is not rolled back.
    move = odoo.create('stock.move', move_values)
    if not move.ok:
        logger.warning('Stock move for product %s not recorded: %s', product_id, move.error)
    return success({
        'product_id': product_id,
        'old_quantity': current,
        'new_quantity': new_qty,
        'move_id': move.value if move.ok else None,
    }, 'Stock updated successfully')


# ---------- PURCHASE / INVOICES ----------

def _decode_json(raw: Any) -> Optional[Any]:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode('utf-8', errors='replace')
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def extract_payload(form: Mapping[str, Any], body: Any, key: str,
                    marker: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Find a JSON object posted as form field ``key``, nested in a JSON body, or as the body itself."""
    decoded = _decode_json(form.get(key)) if form else None
    if isinstance(decoded, dict) and decoded:
        return decoded
    if not isinstance(body, dict):
        return None
    nested = body.get(key)
    if isinstance(nested, dict) and nested:
        return nested
    nested = _decode_json(nested)
    if isinstance(nested, dict) and nested:
        return nested
    if marker is not None and marker not in body:
        return None
    direct = {k: v for k, v in body.items() if k not in ('action', key)}
    return direct or None


def _validate_order(order: Mapping[str, Any]) -> Dict[str, Any]:
    partner_id = _positive_id(order.get('partner_id'), 'Customer (partner_id) is required')
    raw_date = order.get('date_order')
    if is_blank(raw_date):
        raise ValidationError('Invoice date is required')
    try:
        parsed = datetime.strptime(str(raw_date), '%Y-%m-%d')
    except ValueError:
        parsed = None
    if parsed is None or parsed.strftime('%Y-%m-%d') != raw_date:
        raise ValidationError('Invalid date format. Please use YYYY-MM-DD')
    lines = order.get('order_line')
    if not isinstance(lines, list) or not lines:
        raise ValidationError('Invoice lines are required')
    clean_lines = []
    for index, line in enumerate(lines, start=1):
        if not isinstance(line, dict):
            raise ValidationError(f'Invoice line {index} is invalid')
        clean = dict(line)
        clean['product_id'] = _positive_id(line.get('product_id'), f'Invoice line {index}: product is required')
        clean['product_qty'] = parse_number(line.get('product_qty'), f'Invoice line {index}: invalid quantity')
        clean['price_unit'] = parse_number(line.get('price_unit'), f'Invoice line {index}: invalid unit price')
        clean_lines.append(clean)
    validated = dict(order)
    validated.update({'partner_id': partner_id, 'date_order': raw_date, 'order_line': clean_lines})
    if not is_blank(order.get('currency_id')):
        validated['currency_id'] = _positive_id(order.get('currency_id'), 'Invalid currency')
    return validated


def build_mock_invoice(order: Mapping[str, Any]) -> Dict[str, Any]:
    partner_id = int(order['partner_id'])
    lines = []
    total = 0.0
    for line in order['order_line']:
        total += float(line['product_qty']) * float(line['price_unit'])
        mock_line = copy.deepcopy(dict(line))
        mock_line['tax_ids'] = [[1, 'VAT 10%']]
        lines.append(mock_line)
    return {
        'id': int(f'{int(time.time())}{random.randint(100, 999)}'),
        'name': f'INV{date.today():%Y%m%d}{random.randint(1000, 9999)}',
        'date_order': f"{order['date_order']} {datetime.now():%H:%M:%S}",
        'partner_id': [partner_id, f'Customer {partner_id}'],
        'amount_total': total,
        'state': 'draft',
        'mock': True,
        'order_line': lines,
    }


def _mock_fallback(order: Mapping[str, Any], store: MockInvoiceStore, token: str, reason: str) -> Envelope:
    logger.warning('Creating mock invoice: %s', reason)
    record = build_mock_invoice(order)
    store.add(token, record)
    return success(record, f'Invoice saved locally only ({reason})')


def _create_invoice(odoo: OdooAPI, schema: InvoiceSchema, order: Mapping[str, Any]) -> Tuple[Optional[int], str]:
    """Create the invoice and its lines; returns (invoice_id, failure_reason)."""
    journals = odoo.search_read('account.journal', [['type', '=', 'sale']], ['id'], 0, 1)
    if not journals.ok or not journals.value:
        return None, 'no sale journal found'
    journal_id = journals.value[0]['id']

    values: Dict[str, Any] = {
        'partner_id': order['partner_id'],
        schema.date_field: order['date_order'],
        schema.type_field: schema.type_value,
        'journal_id': journal_id,
        'state': 'draft',
    }
    if order.get('currency_id'):
        values['currency_id'] = order['currency_id']
    invoice = odoo.create(schema.model, values)
    if not invoice.ok:
        return None, f'invoice creation failed: {invoice.error}'
    invoice_id = invoice.value

    for line in order['order_line']:
        line_values: Dict[str, Any] = {
            schema.line_link_field: invoice_id,
            'product_id': line['product_id'],
            schema.quantity_field: line['product_qty'],
            'price_unit': line['price_unit'],
        }
        product = odoo.read('product.product', [line['product_id']], ['name', 'taxes_id'])
        if product.ok and product.value:
            line_values['name'] = product.value[0].get('name')
            taxes = product.value[0].get('taxes_id')
            if taxes:
                line_values[schema.tax_field] = [[6, 0, taxes]]
        created = odoo.create(schema.line_model, line_values)
        if not created.ok:
            # the draft invoice is left in place for inspection
            return None, f'invoice line creation failed: {created.error}'

    for action in schema.compute_actions:
        res = odoo.execute(schema.model, action, [[invoice_id]])
        if not res.ok:
            logger.warning('Could not run %s on invoice %s: %s', action, invoice_id, res.error)
    return invoice_id, ''


@returns_envelope
def create_purchase_order(odoo: OdooAPI, order_data: Optional[Mapping[str, Any]],
                          store: MockInvoiceStore, token: str) -> Envelope:
    if not order_data:
        raise ValidationError('Order data is required')
    order = _validate_order(order_data)

    try:
        schema = detect_invoice_schema(odoo)
        if schema is None:
            return _mock_fallback(order, store, token, 'no invoice model available')
        logger.info('Using invoice model %s', schema.model)
        invoice_id, reason = _create_invoice(odoo, schema, order)
    except Exception as exc:
        logger.exception('Unexpected error while creating invoice')
        return _mock_fallback(order, store, token, f'unexpected error: {exc}')
    if invoice_id is None:
        return _mock_fallback(order, store, token, reason)
    return success({'invoice_id': invoice_id, 'model': schema.model}, 'Invoice created successfully')


@returns_envelope
def create_supplier(odoo: OdooAPI, partner_data: Optional[Mapping[str, Any]]) -> Envelope:
    if not partner_data:
        raise ValidationError('Supplier data is required')
    if is_blank(partner_data.get('name')):
        raise ValidationError('Name is required')
    email = str(partner_data.get('email') or '').strip()

    if email:
        existing = odoo.search_read('res.partner', [['email', '=', email]], ['id'])
        if existing.ok and existing.value:
            logger.info('Partner with email %s already exists', email)
            return error('A partner with this email already exists', 400)

    values: Dict[str, Any] = {'name': str(partner_data['name']).strip()}
    if email:
        values['email'] = email
    flag = detect_customer_flag(odoo)
    if flag:
        values[flag[0]] = flag[1]
    for key in ('phone', 'street'):
        if not is_blank(partner_data.get(key)):
            values[key] = partner_data[key]

    res = odoo.create('res.partner', values)
    if not res.ok:
        return error(f'Failed to create customer: {res.error}', 500)
    logger.info('Created partner %s', res.value)
    return success({'partner_id': res.value}, 'Customer created successfully')


def list_suppliers(odoo: OdooAPI) -> Envelope:
    # no supplier filter: the flag field differs between Odoo versions
    res = odoo.search_read('res.partner', [], SUPPLIER_FIELDS, 0, PURCHASE_LIST_LIMIT)
    if not res.ok:
        logger.warning('Failed to get suppliers: %s', res.error)
    return success(res.value_or([]) or [])


def list_purchase_products(odoo: OdooAPI) -> Envelope:
    res = odoo.search_read('product.product', [], PURCHASE_PRODUCT_FIELDS, 0, PURCHASE_LIST_LIMIT)
    if not res.ok:
        logger.warning('Failed to get products: %s', res.error)
    return success(res.value_or([]) or [])


def list_purchase_orders(odoo: OdooAPI, store: MockInvoiceStore, token: str) -> Envelope:
    mocks = store.list(token)
    schema = detect_invoice_schema(odoo)
    if schema is None:
        return success(mocks, 'No invoice model available')
    fields = ['id', 'name', 'partner_id', 'amount_total', 'state', schema.date_field]
    res = odoo.search_read(schema.model, schema.invoice_domain(), fields, 0, PURCHASE_LIST_LIMIT,
                           f'{schema.date_field} desc')
    if not res.ok:
        logger.warning('Failed to get invoices: %s', res.error)
        return success(mocks)
    orders = res.value or []
    for order in orders:
        order['date_order'] = order.get(schema.date_field)
    return success(orders + mocks)


@returns_envelope
def get_purchase_order_details(odoo: OdooAPI, params: Mapping[str, Any],
                               store: MockInvoiceStore, token: str) -> Envelope:
    raw_id = params.get('orderId')
    if is_blank(raw_id):
        raise ValidationError('Order ID is required')
    mock = store.get(token, str(raw_id).strip())
    if mock is not None:
        return success(mock)
    order_id = _positive_id(raw_id, 'Order ID is required')

    schema = detect_invoice_schema(odoo)
    if schema is None:
        return error('Failed to get invoice details: No suitable invoice model found', 500)
    fields = ['id', 'name', 'partner_id', schema.date_field, 'amount_total', 'state',
              schema.line_ids_field, 'currency_id', 'journal_id']
    res = odoo.read(schema.model, [order_id], fields)
    if not res.ok or not res.value:
        logger.warning('Failed to get invoice %s: %s', order_id, res.error)
        return error('Invoice not found or access denied', 404)
    order = res.value[0]
    order['date_order'] = order.get(schema.date_field)

    line_ids = order.get(schema.line_ids_field) or []
    order['order_line'] = []
    if line_ids:
        line_fields = ['id', 'product_id', schema.quantity_field, 'price_unit', 'price_subtotal', 'name',
                       schema.tax_field]
        lines = odoo.read(schema.line_model, line_ids, line_fields)
        if not lines.ok:
            logger.error('Failed to get invoice lines: %s', lines.error)
            return error('Failed to get invoice line details', 500)
        for line in lines.value or []:
            line['product_qty'] = line.get(schema.quantity_field)
        order['order_line'] = lines.value or []
    return success(order)


@returns_envelope
def handle_purchase_get(odoo: OdooAPI, params: Mapping[str, Any],
                        store: MockInvoiceStore, token: str) -> Envelope:
    action = params.get('action') or ''
    if action == 'getSuppliers':
        return list_suppliers(odoo)
    if action == 'getProducts':
        return list_purchase_products(odoo)
    if action == 'getPurchaseOrders':
        return list_purchase_orders(odoo, store, token)
    if action == 'getPurchaseOrderDetails':
        return get_purchase_order_details(odoo, params, store, token)
    raise ValidationError('Invalid action')


@returns_envelope
def handle_purchase_post(odoo: OdooAPI, params: Mapping[str, Any], form: Mapping[str, Any], body: Any,
                         store: MockInvoiceStore, token: str) -> Envelope:
    action = form.get('action') or (body.get('action') if isinstance(body, dict) else None) \
        or params.get('action') or ''
    logger.info('Purchase POST action received: %s', action)
    if action == 'createPurchaseOrder':
        order = extract_payload(form, body, 'orderData', marker='partner_id')
        return create_purchase_order(odoo, order, store, token)
    if action == 'createSupplier':
        return create_supplier(odoo, extract_payload(form, body, 'supplierData'))
    raise ValidationError('Invalid action')


# ---------- DASHBOARD ----------

def _count_pending(odoo: OdooAPI) -> int:
    """Open sale orders; purchase orders only when sale.order cannot be searched."""
    model, states = 'sale.order', PENDING_SALE_STATES
    ids = odoo.search(model)
    if not ids.ok:
        logger.info('sale.order unavailable (%s); counting purchase orders', ids.error)
        model, states = 'purchase.order', PENDING_PURCHASE_STATES
        ids = odoo.search(model)
        if not ids.ok:
            return 0
    if not ids.value:
        return 0
    orders = odoo.read(model, ids.value, ['id', 'state'])
    if not orders.ok:
        logger.warning('Read on %s failed: %s', model, orders.error)
        return 0
    return sum(1 for order in orders.value or [] if order.get('state') in states)


def _recent_move_activities(odoo: OdooAPI) -> List[Dict[str, Any]]:
    moves = _read_after_search(
        odoo, 'stock.move',
        ['date', 'product_id', 'product_uom_qty', 'reference', 'create_uid', 'state', 'origin'],
        [['state', '=', 'done']], limit=RECENT_ACTIVITY_LIMIT, order='date desc')
    activities = []
    for move in moves or []:
        if move.get('state') != 'done':
            continue
        activities.append({
            'date': move.get('date') or _now_str(),
            'product': relation_label(move.get('product_id'), 'Unknown Product'),
            'action': _classify_movement(move.get('reference')),
            'quantity': move.get('product_uom_qty') or 0,
            'user': relation_label(move.get('create_uid'), 'System'),
        })
    return activities


def _recent_picking_activities(odoo: OdooAPI) -> List[Dict[str, Any]]:
    pickings = _read_after_search(
        odoo, 'stock.picking',
        ['date', 'name', 'partner_id', 'state', 'scheduled_date', 'origin', 'create_uid'],
        [['state', '=', 'done']], limit=RECENT_ACTIVITY_LIMIT, order='date desc')
    activities = []
    for picking in pickings or []:
        if picking.get('state') != 'done':
            continue
        activities.append({
            'date': picking.get('date') or picking.get('scheduled_date') or _now_str(),
            'product': picking.get('origin') or picking.get('name') or 'Stock Movement',
            'action': _classify_movement(picking.get('name')),
            'quantity': 0,
            'user': relation_label(picking.get('create_uid'), 'System'),
        })
    return activities


def dashboard_summary(odoo: OdooAPI) -> Envelope:
    product_ids = odoo.search('product.product').value_or([]) or []
    products = []
    if product_ids:
        res = odoo.read('product.product', product_ids, ['id', 'name', 'qty_available', 'type'])
        if not res.ok:
            logger.warning('Dashboard product read failed: %s', res.error)
        products = res.value_or([]) or []
    total_stock = 0
    low_stock = []
    for product in products:
        try:
            qty = int(product.get('qty_available') or 0)
        except (TypeError, ValueError):
            qty = 0
        total_stock += qty
        if 0 < qty <= LOW_STOCK_THRESHOLD:
            low_stock.append({'id': product.get('id'), 'name': product.get('name'), 'stock': qty})

    activities = _recent_move_activities(odoo) or _recent_picking_activities(odoo)
    return success({
        'totalProducts': len(product_ids),
        'totalStock': total_stock,
        'lowStockItems': len(low_stock),
        'lowStockProducts': low_stock,
        'pendingOrders': _count_pending(odoo),
        'recentActivities': sort_newest_first(activities)[:RECENT_ACTIVITY_LIMIT],
    })
