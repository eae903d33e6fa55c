"""Local JSON snapshots of the store's sheets.

Pages read records from these snapshots instead of hitting the store on every
request.  A refresh downloads the sheet and merges it into the previous
snapshot keyed on ``record_id``, so rows keep a stable order and the refresh
can report how many rows were added or changed.  Snapshots live under the
``FIELD_REPORTS_CACHE_ROOT`` setting, one file per record kind plus
``reference.json`` for the mosque and day lists.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from django.conf import settings
from django.utils import timezone

from fieldreports.records import FieldRecord, RecordKind, ReferenceData, records_from_rows
from fieldreports.services.record_store import RecordStore

logger = logging.getLogger(__name__)

REFERENCE_FILENAME = 'reference.json'

# One lock per snapshot file; dispatcher workers and requests refresh concurrently.
_refresh_locks: Dict[str, threading.Lock] = {}
_refresh_locks_guard = threading.Lock()


class RecordCacheError(Exception):
    """Raised when a cached snapshot cannot be read."""


@dataclass
class SheetSnapshot:
    """Cached rows of one record kind."""

    kind: RecordKind
    path: Path
    rows: List[Dict[str, Any]]
    synced_at: Optional[str]
    stats: Dict[str, int]

    @property
    def records(self) -> List[FieldRecord]:
        return records_from_rows(self.kind, self.rows)

    @property
    def is_synced(self) -> bool:
        return self.synced_at is not None


@dataclass
class SnapshotSyncResult:
    path: Path
    added: int
    updated: int
    total: int
    snapshot: SheetSnapshot


def get_cache_root() -> Path:
    """Return the root directory used for cached sheets."""

    root = getattr(settings, 'FIELD_REPORTS_CACHE_ROOT', settings.BASE_DIR / 'media' / 'sheet_cache')
    root_path = Path(root)
    root_path.mkdir(parents=True, exist_ok=True)
    return root_path


def get_snapshot_path(kind: RecordKind | str) -> Path:
    return get_cache_root() / f"{RecordKind(kind).value}.json"


def _refresh_lock(name: str) -> threading.Lock:
    with _refresh_locks_guard:
        return _refresh_locks.setdefault(name, threading.Lock())


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        with path.open('r', encoding='utf-8') as fh:
            data = json.load(fh)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise RecordCacheError(f'Failed to parse cached snapshot {path.name}: {exc}')
    if not isinstance(data, dict):
        raise RecordCacheError(f'Cached snapshot {path.name} is not a JSON object.')
    return data


def _write_json(path: Path, payload: Dict[str, Any]) -> None:
    """Write ``payload`` to a sibling temp file and swap it into place.

    Readers see either the previous snapshot or the new one, never a partial
    file.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix='.tmp', dir=path.parent)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as fh:
            json.dump(payload, fh, ensure_ascii=False, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def load_snapshot(kind: RecordKind | str) -> SheetSnapshot:
    """Load the cached rows for ``kind``; an empty snapshot if never synced."""

    kind = RecordKind(kind)
    path = get_snapshot_path(kind)
    if not path.exists():
        return SheetSnapshot(
            kind=kind,
            path=path,
            rows=[],
            synced_at=None,
            stats={'total': 0, 'added': 0, 'updated': 0},
        )
    data = _read_json(path)
    records = data.get('records')
    rows = [row for row in records if isinstance(row, dict)] if isinstance(records, list) else []
    stats = data.get('stats')
    stats = dict(stats) if isinstance(stats, dict) else {}
    stats.setdefault('total', len(rows))
    stats.setdefault('added', 0)
    stats.setdefault('updated', 0)
    return SheetSnapshot(kind=kind, path=path, rows=rows, synced_at=data.get('synced_at'), stats=stats)


def write_snapshot(
    kind: RecordKind | str,
    rows: List[Dict[str, Any]],
    *,
    added: int = 0,
    updated: int = 0,
    synced_at: Optional[str] = None,
) -> SheetSnapshot:
    kind = RecordKind(kind)
    stamp = synced_at or timezone.now().isoformat()
    stats = {'added': added, 'updated': updated, 'total': len(rows)}
    payload = {
        'kind': kind.value,
        'sheet': kind.sheet,
        'records': rows,
        'record_count': len(rows),
        'stats': stats,
        'synced_at': stamp,
    }
    path = get_snapshot_path(kind)
    _write_json(path, payload)
    return SheetSnapshot(kind=kind, path=path, rows=rows, synced_at=stamp, stats=stats)


def delete_snapshot(kind: RecordKind | str) -> None:
    try:
        get_snapshot_path(kind).unlink()
    except FileNotFoundError:
        return


def refresh_snapshot(kind: RecordKind | str, store: RecordStore) -> SnapshotSyncResult:
    """Download the sheet for ``kind`` and merge it into the cached snapshot."""

    kind = RecordKind(kind)
    incoming = store.load_records(kind)
    with _refresh_lock(kind.value):
        previous = load_snapshot(kind)
        merged, added, updated = _merge_rows(previous.rows, incoming)
        snapshot = write_snapshot(kind, merged, added=added, updated=updated)
    logger.info(
        "Refreshed %s snapshot: %d rows (added %d, updated %d)",
        kind.value, len(merged), added, updated,
    )
    return SnapshotSyncResult(
        path=snapshot.path,
        added=added,
        updated=updated,
        total=len(merged),
        snapshot=snapshot,
    )


def _merge_rows(
    existing: Iterable[Dict[str, Any]],
    incoming: Iterable[Dict[str, Any]],
) -> Tuple[List[Dict[str, Any]], int, int]:
    """Merge downloaded rows into the cached ones, keyed on ``record_id``.

    The store is authoritative: rows missing from the download are dropped.
    """

    def row_key(row: Dict[str, Any], fallback: str) -> str:
        value = row.get('record_id')
        text = str(value).strip() if value is not None else ''
        return text or fallback

    previous: Dict[str, Dict[str, Any]] = {}
    for index, row in enumerate(existing):
        previous.setdefault(row_key(row, f"_idx_{index}"), row)

    merged: Dict[str, Dict[str, Any]] = {}
    added = 0
    updated = 0
    for index, row in enumerate(incoming):
        key = row_key(row, f"_auto_{index}")
        if key in merged:
            merged[key] = row
            continue
        if key not in previous:
            added += 1
        elif previous[key] != row:
            updated += 1
        merged[key] = row
    return list(merged.values()), added, updated


def load_reference() -> ReferenceData:
    path = get_cache_root() / REFERENCE_FILENAME
    if not path.exists():
        return ReferenceData()
    data = _read_json(path)
    mosques = data.get('mosques')
    days = data.get('days')
    return ReferenceData.from_rows(
        mosques if isinstance(mosques, list) else [],
        days if isinstance(days, list) else [],
    )


def write_reference(reference: ReferenceData) -> Path:
    path = get_cache_root() / REFERENCE_FILENAME
    payload = dict(reference.to_rows())
    payload['synced_at'] = timezone.now().isoformat()
    _write_json(path, payload)
    return path


def refresh_reference(store: RecordStore) -> ReferenceData:
    reference = store.load_reference_data()
    with _refresh_lock(REFERENCE_FILENAME):
        write_reference(reference)
    logger.info(
        "Refreshed reference data: %d mosques, %d days",
        len(reference.mosques), len(reference.days),
    )
    return reference


__all__ = [
    'RecordCacheError',
    'SheetSnapshot',
    'SnapshotSyncResult',
    'delete_snapshot',
    'get_cache_root',
    'get_snapshot_path',
    'load_reference',
    'load_snapshot',
    'refresh_reference',
    'refresh_snapshot',
    'write_reference',
    'write_snapshot',
]
