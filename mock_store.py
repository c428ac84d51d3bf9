"""Session-scoped store for mock invoices created when the ERP cannot take them."""
import abc
import copy
import threading
import time
from typing import Any, Dict, List, Optional


class MockInvoiceStore(abc.ABC):
    """Mock invoices grouped by browser-session token."""

    @abc.abstractmethod
    def add(self, token: str, record: Dict[str, Any]) -> None:
        """Append a record to the session's list."""

    @abc.abstractmethod
    def list(self, token: str) -> List[Dict[str, Any]]:
        """Copies of the session's records, oldest first."""

    def get(self, token: str, record_id: Any) -> Optional[Dict[str, Any]]:
        for record in self.list(token):
            if str(record.get('id')) == str(record_id):
                return record
        return None


class InMemoryMockInvoiceStore(MockInvoiceStore):
    """Process-local store; sessions idle longer than ``ttl_seconds`` are dropped."""

    def __init__(self, ttl_seconds: float = 86400):
        self.ttl_seconds = ttl_seconds
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _purge_expired_locked(self, now_ts: float) -> None:
        expired = [token for token, meta in self._sessions.items()
                   if now_ts - meta['last_seen'] > self.ttl_seconds]
        for token in expired:
            self._sessions.pop(token, None)

    def add(self, token: str, record: Dict[str, Any]) -> None:
        if not token:
            raise ValueError('session token required')
        now_ts = time.time()
        with self._lock:
            self._purge_expired_locked(now_ts)
            meta = self._sessions.setdefault(token, {'records': [], 'last_seen': now_ts})
            meta['records'].append(copy.deepcopy(record))
            meta['last_seen'] = now_ts

    def list(self, token: str) -> List[Dict[str, Any]]:
        if not token:
            return []
        now_ts = time.time()
        with self._lock:
            self._purge_expired_locked(now_ts)
            meta = self._sessions.get(token)
            if not meta:
                return []
            meta['last_seen'] = now_ts
            return copy.deepcopy(meta['records'])

    def session_count(self) -> int:
        with self._lock:
            self._purge_expired_locked(time.time())
            return len(self._sessions)
