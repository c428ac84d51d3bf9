"""
Odoo JSON-RPC client used by the admin panel.

One instance holds one authenticated session (the uid returned by
``common.login``). Every call returns an :class:`RpcResult` instead of raising,
so handlers decide per call whether a failure degrades or aborts.
"""
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
FIELD_ATTRIBUTES = ['string', 'help', 'type']


@dataclass(frozen=True)
class RpcResult:
    """Outcome of one JSON-RPC exchange: a value or an error message, never both."""
    ok: bool
    value: Any = None
    error: str = ''

    @classmethod
    def success(cls, value: Any) -> 'RpcResult':
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, message: str) -> 'RpcResult':
        return cls(ok=False, error=message)

    def value_or(self, default: Any) -> Any:
        return self.value if self.ok else default


class OdooAPI:
    """Thin wrapper over the ``/jsonrpc`` endpoint of an Odoo server."""

    def __init__(self, url: str, db: str, username: str, api_key: str,
                 verify_ssl: bool = True, timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.url = (url or '').rstrip('/')
        self.db = db
        self.username = username
        self.api_key = api_key
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.last_error = ''
        self._http = session or requests.Session()
        if not verify_ssl:
            logger.warning('TLS certificate verification disabled for %s', self.url)
        self.uid = self._authenticate()

    def get_last_error(self) -> str:
        return self.last_error

    def is_connected(self) -> bool:
        return bool(self.uid)

    def _fail(self, message: str) -> RpcResult:
        self.last_error = message
        return RpcResult.failure(message)

    def _json_rpc(self, service: str, method: str, args: Sequence[Any]) -> RpcResult:
        payload = {
            'jsonrpc': '2.0',
            'method': 'call',
            'params': {'service': service, 'method': method, 'args': list(args)},
            'id': random.randint(1, 999999),
        }
        status = 0
        try:
            resp = self._http.post(
                f"{self.url}/jsonrpc",
                json=payload,
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout,
                verify=self.verify_ssl,
            )
            status = resp.status_code
            resp.raise_for_status()
        except requests.RequestException as exc:
            return self._fail(f'HTTP error: {exc} (Code: {status})')
        try:
            body = resp.json()
        except ValueError:
            return self._fail('Invalid JSON response')
        if not isinstance(body, dict) or not body:
            return self._fail('Invalid JSON response')
        err = body.get('error')
        if err is not None:
            message = 'Odoo error: '
            if isinstance(err, dict):
                message += str(err.get('message') or '')
                data = err.get('data')
                if isinstance(data, dict) and data.get('message'):
                    message += ' - ' + str(data['message'])
            else:
                message += str(err)
            return self._fail(message)
        if 'result' not in body:
            return self._fail('Invalid JSON response: missing result')
        return RpcResult.success(body['result'])

    def _authenticate(self):
        res = self._json_rpc('common', 'login', [self.db, self.username, self.api_key])
        if not res.ok:
            logger.warning('Odoo login failed for %s@%s: %s', self.username, self.db, res.error)
            return False
        if not res.value:
            self.last_error = 'Authentication failed: invalid database, username or API key'
            logger.warning('Odoo login rejected for %s@%s', self.username, self.db)
            return False
        return res.value

    def execute(self, model: str, method: str, args: Iterable[Any] = ()) -> RpcResult:
        """Call ``object.execute`` for ``model.method`` with positional ``args``."""
        if not self.is_connected():
            return self._fail(self.last_error or 'Not authenticated')
        call_args: List[Any] = [self.db, self.uid, self.api_key, model, method]
        call_args.extend(args)
        logger.debug('execute %s.%s', model, method)
        return self._json_rpc('object', 'execute', call_args)

    def search(self, model: str, domain: Sequence[Any] = (), offset: int = 0,
               limit: Optional[int] = None, order: Optional[str] = None) -> RpcResult:
        args: List[Any] = [list(domain)]
        if offset or limit or order:
            args.extend([offset, limit, order])
        return self.execute(model, 'search', args)

    def read(self, model: str, ids: Sequence[int], fields: Sequence[str] = ()) -> RpcResult:
        return self.execute(model, 'read', [list(ids), list(fields)])

    def search_read(self, model: str, domain: Sequence[Any] = (), fields: Sequence[str] = (),
                    offset: int = 0, limit: int = 0, order: Optional[str] = None) -> RpcResult:
        args: List[Any] = [list(domain), list(fields), offset, limit]
        if order:
            args.append(order)
        return self.execute(model, 'search_read', args)

    def search_count(self, model: str, domain: Sequence[Any] = ()) -> RpcResult:
        return self.execute(model, 'search_count', [list(domain)])

    def create(self, model: str, values: Dict[str, Any]) -> RpcResult:
        res = self.execute(model, 'create', [values])
        if not res.ok:
            logger.error('Failed to create record in %s: %s', model, res.error)
        return res

    def write(self, model: str, ids: Sequence[int], values: Dict[str, Any]) -> RpcResult:
        return self.execute(model, 'write', [list(ids), values])

    def unlink(self, model: str, ids: Sequence[int]) -> RpcResult:
        return self.execute(model, 'unlink', [list(ids)])

    def get_fields(self, model: str) -> RpcResult:
        return self.execute(model, 'fields_get', [[], FIELD_ATTRIBUTES])
