"""Background delivery of saves and status changes to the record store.

Screens hand a write to the dispatcher and move on: the selection or form is
cleared straight away and the page never waits for the store.  Each write
runs on a worker thread and resolves a ``Future`` with a
:class:`DispatchResult`, so callers that do care about the outcome (tests, the
management command) can still read it.  A successful write also refreshes the
affected snapshot so the next page load reflects the store.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from django.conf import settings

from fieldreports.records import FieldRecord, RecordKind
from fieldreports.services.record_cache import RecordCacheError, refresh_snapshot
from fieldreports.services.record_store import RecordStore, RecordStoreError, get_record_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    action: str
    kind: RecordKind
    record_ids: List[str]
    ok: bool
    error: str = ''

    @property
    def count(self) -> int:
        return len(self.record_ids)


class StatusDispatcher:
    """Runs store writes on a small thread pool."""

    def __init__(
        self,
        store_factory: Callable[[], RecordStore] = get_record_store,
        *,
        max_workers: int = 2,
        refresh_after_write: bool = True,
    ) -> None:
        self.store_factory = store_factory
        self.refresh_after_write = refresh_after_write
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='fieldreports-dispatch')

    def _run(self, action: str, kind: RecordKind, ids: List[str], call: Callable[[RecordStore], object]) -> DispatchResult:
        try:
            store = self.store_factory()
            call(store)
        except RecordStoreError as exc:
            logger.error("%s of %s records %s failed: %s", action, kind.value, ids, exc)
            return DispatchResult(action=action, kind=kind, record_ids=ids, ok=False, error=str(exc))
        logger.info("%s of %d %s records delivered", action, len(ids), kind.value)
        if self.refresh_after_write:
            try:
                refresh_snapshot(kind, store)
            except (RecordStoreError, RecordCacheError) as exc:
                logger.warning("Snapshot refresh after %s of %s failed: %s", action, kind.value, exc)
        return DispatchResult(action=action, kind=kind, record_ids=ids, ok=True)

    def update_status(self, kind: RecordKind | str, ids: Sequence[str], status: str) -> 'Future[DispatchResult]':
        kind = RecordKind(kind)
        id_list = list(ids)
        return self._executor.submit(
            self._run, 'updateStatus', kind, id_list,
            lambda store: store.update_status(kind, id_list, status),
        )

    def save(self, record: FieldRecord) -> 'Future[DispatchResult]':
        return self._executor.submit(
            self._run, 'save', record.kind, [record.record_id],
            lambda store: store.save(record),
        )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


_dispatcher: Optional[StatusDispatcher] = None
_dispatcher_lock = threading.Lock()


def get_dispatcher() -> StatusDispatcher:
    """Return the process-wide dispatcher, creating it on first use."""

    global _dispatcher
    with _dispatcher_lock:
        if _dispatcher is None:
            _dispatcher = StatusDispatcher(
                max_workers=getattr(settings, 'FIELD_REPORTS_DISPATCH_WORKERS', 2),
            )
        return _dispatcher


__all__ = ['DispatchResult', 'StatusDispatcher', 'get_dispatcher']
