"""HTTP client for the external sheet store that owns every field report.

The store exposes one endpoint.  Sheets are read with ``GET`` and a ``sheet``
query parameter; writes are JSON ``POST`` bodies carrying an ``action``.  This
module only talks to the store: it never interprets or reorders the rows it
receives.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import requests
from django.conf import settings

from fieldreports.records import FieldRecord, RecordKind, ReferenceData

logger = logging.getLogger(__name__)

MOSQUES_SHEET = 'Mosques'
DAYS_SHEET = 'Days'


class RecordStoreError(Exception):
    """Raised when the sheet store cannot be reached or rejects a request."""


class RecordStore:
    """Thin wrapper around a ``requests.Session`` bound to the store URL."""

    def __init__(
        self,
        base_url: str,
        token: str = '',
        *,
        timeout: int = 30,
        verify: Any = True,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise RecordStoreError('RECORD_STORE_URL setting is not configured.')
        self.base_url = base_url
        self.timeout = timeout
        self.verify = verify
        self.session = session or requests.Session()
        self.session.headers.update({'Accept': 'application/json'})
        if token:
            self.session.headers.update({'Authorization': f'Token {token}'})

    def _read_json(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise RecordStoreError(f'Record store returned a non-JSON response: {exc}')

    def _get_sheet(self, sheet: str) -> List[Dict[str, Any]]:
        try:
            response = self.session.get(
                self.base_url,
                params={'sheet': sheet},
                timeout=self.timeout,
                verify=self.verify,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise RecordStoreError(f'Failed to download sheet {sheet}: {exc}')
        payload = self._read_json(response)
        if isinstance(payload, list):
            rows = payload
        elif isinstance(payload, dict):
            rows = payload.get('data') or payload.get('records') or payload.get('results') or []
        else:
            rows = None
        if not isinstance(rows, list):
            raise RecordStoreError(f'Unexpected data format received for sheet {sheet}.')
        return [row for row in rows if isinstance(row, dict)]

    def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(
                self.base_url,
                json=body,
                timeout=self.timeout,
                verify=self.verify,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise RecordStoreError(f"Record store rejected {body.get('action')}: {exc}")
        payload = self._read_json(response)
        if not isinstance(payload, dict):
            payload = {'ok': True, 'result': payload}
        if payload.get('ok') is False or payload.get('status') == 'error':
            message = payload.get('error') or payload.get('message') or 'unknown error'
            raise RecordStoreError(f"Record store rejected {body.get('action')}: {message}")
        return payload

    def load_records(self, kind: RecordKind | str) -> List[Dict[str, Any]]:
        """Return the raw rows of the sheet holding ``kind`` records."""

        return self._get_sheet(RecordKind(kind).sheet)

    def load_reference_data(self) -> ReferenceData:
        return ReferenceData.from_rows(self._get_sheet(MOSQUES_SHEET), self._get_sheet(DAYS_SHEET))

    def save(self, record: FieldRecord) -> Dict[str, Any]:
        """Create or overwrite ``record`` (matched on ``record_id``)."""

        logger.info("Saving %s record %s", record.kind.value, record.record_id)
        return self._post({
            'action': 'save',
            'sheet': record.kind.sheet,
            'record': record.to_payload(),
        })

    def update_status(self, kind: RecordKind | str, ids: Sequence[str], status: str) -> Dict[str, Any]:
        """Apply ``status`` to every record in ``ids`` with a single request."""

        kind = RecordKind(kind)
        logger.info("Updating %d %s records to %s", len(ids), kind.value, status)
        return self._post({
            'action': 'updateStatus',
            'sheet': kind.sheet,
            'ids': list(ids),
            'status': status,
        })


def get_record_store() -> RecordStore:
    """Build a :class:`RecordStore` from Django settings."""

    verify = getattr(settings, 'RECORD_STORE_TLS_CERT', None) or getattr(settings, 'RECORD_STORE_VERIFY_TLS', True)
    return RecordStore(
        getattr(settings, 'RECORD_STORE_URL', ''),
        getattr(settings, 'RECORD_STORE_TOKEN', ''),
        timeout=getattr(settings, 'RECORD_STORE_TIMEOUT', 30),
        verify=verify,
    )


__all__ = ['RecordStore', 'RecordStoreError', 'get_record_store']
