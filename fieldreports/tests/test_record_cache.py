"""Tests for the local sheet snapshots."""

from __future__ import annotations

import json
import shutil
import tempfile
import threading
from typing import Any, Dict, List
from unittest import mock

from django.test import SimpleTestCase

from fieldreports.records import Day, Mosque, RecordKind, ReferenceData
from fieldreports.services.record_cache import (
    RecordCacheError,
    delete_snapshot,
    get_snapshot_path,
    load_reference,
    load_snapshot,
    refresh_reference,
    refresh_snapshot,
    write_snapshot,
)


class FakeStore:
    def __init__(self, rows: List[Dict[str, Any]], reference: ReferenceData | None = None) -> None:
        self.rows = rows
        self.reference = reference or ReferenceData()

    def load_records(self, kind):
        return list(self.rows)

    def load_reference_data(self):
        return self.reference


class RecordCacheTests(SimpleTestCase):
    """Snapshot reads, writes and merges under a temporary cache root."""

    def setUp(self) -> None:
        super().setUp()
        self._cache_root = tempfile.mkdtemp()
        self.addCleanup(lambda: shutil.rmtree(self._cache_root, ignore_errors=True))
        overrider = self.settings(FIELD_REPORTS_CACHE_ROOT=self._cache_root)
        overrider.enable()
        self.addCleanup(overrider.disable)

    def test_missing_snapshot_is_empty_and_unsynced(self) -> None:
        snapshot = load_snapshot(RecordKind.ATTENDANCE)

        self.assertEqual(snapshot.rows, [])
        self.assertFalse(snapshot.is_synced)

    def test_written_snapshot_round_trips_records(self) -> None:
        write_snapshot(RecordKind.MAINTENANCE, [{'record_id': 'MNT-1', 'mosque_code': 'M1'}])

        snapshot = load_snapshot('maintenance')

        self.assertTrue(snapshot.is_synced)
        self.assertEqual([record.record_id for record in snapshot.records], ['MNT-1'])
        self.assertEqual(snapshot.stats['total'], 1)

    def test_refresh_counts_added_and_updated_rows(self) -> None:
        write_snapshot(RecordKind.FAST_EVAL, [
            {'record_id': 'FEV-1', 'الرز': 3},
            {'record_id': 'FEV-2', 'الرز': 4},
        ])
        store = FakeStore([
            {'record_id': 'FEV-1', 'الرز': 5},
            {'record_id': 'FEV-2', 'الرز': 4},
            {'record_id': 'FEV-3', 'الرز': 1},
        ])

        result = refresh_snapshot(RecordKind.FAST_EVAL, store)

        self.assertEqual((result.added, result.updated, result.total), (1, 1, 3))
        self.assertEqual(load_snapshot(RecordKind.FAST_EVAL).rows[0]['الرز'], 5)

    def test_rows_missing_from_store_are_dropped(self) -> None:
        write_snapshot(RecordKind.ATTENDANCE, [{'record_id': 'ATT-1'}, {'record_id': 'ATT-2'}])

        result = refresh_snapshot(RecordKind.ATTENDANCE, FakeStore([{'record_id': 'ATT-2'}]))

        self.assertEqual(result.total, 1)
        self.assertEqual([row['record_id'] for row in result.snapshot.rows], ['ATT-2'])

    def test_corrupt_snapshot_raises(self) -> None:
        get_snapshot_path(RecordKind.ATTENDANCE).write_text('{not json', encoding='utf-8')

        with self.assertRaises(RecordCacheError):
            load_snapshot(RecordKind.ATTENDANCE)

    def test_delete_snapshot_is_silent_when_missing(self) -> None:
        delete_snapshot(RecordKind.ATTENDANCE)
        self.assertFalse(get_snapshot_path(RecordKind.ATTENDANCE).exists())

    def test_reference_refresh_is_persisted(self) -> None:
        reference = ReferenceData(mosques=[Mosque('M1', 'مسجد النور', 'مسجد')], days=[Day('D1', 'اليوم الأول')])

        refresh_reference(FakeStore([], reference))
        loaded = load_reference()

        self.assertEqual(loaded.mosques, reference.mosques)
        self.assertEqual(loaded.days, reference.days)

    def test_invalid_utf8_snapshot_raises_cache_error(self) -> None:
        get_snapshot_path(RecordKind.FAST_EVAL).write_bytes(b'{"records": ["\xff\xfe"]}')

        with self.assertRaises(RecordCacheError):
            load_snapshot(RecordKind.FAST_EVAL)

    def test_malformed_stats_and_records_fall_back_to_defaults(self) -> None:
        get_snapshot_path(RecordKind.MAINTENANCE).write_text(
            json.dumps({'records': 'oops', 'stats': [1, 2], 'synced_at': '2024-03-01T00:00:00Z'}),
            encoding='utf-8',
        )

        snapshot = load_snapshot(RecordKind.MAINTENANCE)

        self.assertEqual(snapshot.rows, [])
        self.assertEqual(snapshot.stats, {'total': 0, 'added': 0, 'updated': 0})

    def test_rows_without_record_id_are_not_exposed(self) -> None:
        write_snapshot(RecordKind.ATTENDANCE, [{'mosque_code': 'M1'}, {'record_id': 'ATT-1'}])

        self.assertEqual([record.record_id for record in load_snapshot(RecordKind.ATTENDANCE).records], ['ATT-1'])

    def test_failed_write_keeps_previous_snapshot(self) -> None:
        write_snapshot(RecordKind.FAST_EVAL, [{'record_id': 'FEV-1'}])

        with mock.patch('fieldreports.services.record_cache.json.dump', side_effect=OSError('disk full')):
            with self.assertRaises(OSError):
                write_snapshot(RecordKind.FAST_EVAL, [{'record_id': 'FEV-2'}])

        path = get_snapshot_path(RecordKind.FAST_EVAL)
        self.assertEqual([row['record_id'] for row in load_snapshot(RecordKind.FAST_EVAL).rows], ['FEV-1'])
        self.assertEqual(sorted(p.name for p in path.parent.iterdir()), ['fast_eval.json'])

    def test_concurrent_refreshes_leave_a_readable_snapshot(self) -> None:
        rows = [{'record_id': f'FEV-{index}', 'ملاحظات_عامة': 'x' * 200} for index in range(200)]
        store = FakeStore(rows)
        errors: List[BaseException] = []

        def refresh() -> None:
            try:
                for _ in range(5):
                    refresh_snapshot(RecordKind.FAST_EVAL, store)
                    load_snapshot(RecordKind.FAST_EVAL)
            except BaseException as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=refresh) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(len(load_snapshot(RecordKind.FAST_EVAL).rows), 200)
