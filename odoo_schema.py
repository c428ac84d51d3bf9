"""
Schema capability detection for the invoicing models.

Odoo 13+ stores customer invoices in ``account.move``; older releases use
``account.invoice``. The two disagree on model names and field names, so a
request checks once and carries the resulting :class:`InvoiceSchema` through
every later call.
"""
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from odoo_api import OdooAPI

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvoiceSchema:
    kind: str
    model: str
    date_field: str
    type_field: str
    type_value: str
    line_model: str
    line_link_field: str
    line_ids_field: str
    quantity_field: str
    tax_field: str
    compute_actions: Tuple[str, ...]

    def invoice_domain(self) -> List[List[Any]]:
        return [[self.type_field, '=', self.type_value]]


LEGACY_SCHEMA = InvoiceSchema(
    kind='legacy',
    model='account.invoice',
    date_field='date_invoice',
    type_field='type',
    type_value='out_invoice',
    line_model='account.invoice.line',
    line_link_field='invoice_id',
    line_ids_field='invoice_line_ids',
    quantity_field='quantity',
    tax_field='invoice_line_tax_ids',
    compute_actions=('button_reset_taxes',),
)

MODERN_SCHEMA = InvoiceSchema(
    kind='modern',
    model='account.move',
    date_field='invoice_date',
    type_field='move_type',
    type_value='out_invoice',
    line_model='account.move.line',
    line_link_field='move_id',
    line_ids_field='invoice_line_ids',
    quantity_field='quantity',
    tax_field='tax_ids',
    # post to compute taxes and totals, then return to draft
    compute_actions=('action_post', 'button_draft'),
)

CUSTOMER_FLAG_FIELDS = (
    ('customer', True),
    ('is_customer', True),
    ('customer_rank', 1),
)


def _model_installed(odoo: OdooAPI, model: str) -> bool:
    res = odoo.execute('ir.model', 'search_read', [
        [['model', '=', model]],
        ['id', 'name', 'model'],
    ])
    return res.ok and bool(res.value)


def _fields_with(odoo: OdooAPI, model: str, required: Tuple[str, ...]) -> Optional[Dict[str, Any]]:
    res = odoo.get_fields(model)
    if not res.ok or not isinstance(res.value, dict):
        return None
    if all(name in res.value for name in required):
        return res.value
    return None


def detect_invoice_schema(odoo: OdooAPI) -> Optional[InvoiceSchema]:
    """Return the invoicing schema installed on the server, or None."""
    if _fields_with(odoo, 'account.move', ('move_type', 'invoice_date')) is not None \
            and _model_installed(odoo, 'account.move'):
        logger.info('Found modern invoice model: account.move')
        return MODERN_SCHEMA

    legacy_fields = _fields_with(odoo, 'account.invoice', ('type', 'date_invoice'))
    if legacy_fields is not None and _model_installed(odoo, 'account.invoice'):
        logger.info('Found legacy invoice model: account.invoice')
        # Odoo 8 names the one2many 'invoice_line'
        if 'invoice_line_ids' not in legacy_fields and 'invoice_line' in legacy_fields:
            return replace(LEGACY_SCHEMA, line_ids_field='invoice_line')
        return LEGACY_SCHEMA

    logger.warning('No suitable invoice models found in Odoo')
    return None


def detect_customer_flag(odoo: OdooAPI) -> Optional[Tuple[str, Any]]:
    """Return the (field, value) pair that marks a partner as customer, if any."""
    res = odoo.get_fields('res.partner')
    if not res.ok or not isinstance(res.value, dict):
        return None
    for name, value in CUSTOMER_FLAG_FIELDS:
        if name in res.value:
            logger.info("Using '%s' field for res.partner", name)
            return name, value
    logger.info('No customer field found in res.partner')
    return None
