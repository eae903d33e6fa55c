"""Tests for the ``sync_field_reports`` management command."""

import shutil
import tempfile
from io import StringIO
from unittest import mock

from django.core.management import CommandError, call_command
from django.test import SimpleTestCase

from fieldreports.records import Mosque, RecordKind, ReferenceData
from fieldreports.services.record_cache import load_reference, load_snapshot
from fieldreports.services.record_store import RecordStoreError


class SyncFieldReportsCommandTests(SimpleTestCase):
    def setUp(self) -> None:
        super().setUp()
        self._cache_root = tempfile.mkdtemp()
        self.addCleanup(lambda: shutil.rmtree(self._cache_root, ignore_errors=True))
        overrider = self.settings(FIELD_REPORTS_CACHE_ROOT=self._cache_root)
        overrider.enable()
        self.addCleanup(overrider.disable)

    def test_single_kind_snapshot_and_reference_are_written(self) -> None:
        store = mock.Mock()
        store.load_reference_data.return_value = ReferenceData(mosques=[Mosque('M1', 'مسجد النور')])
        store.load_records.return_value = [{'record_id': 'ATT-1', 'mosque_code': 'M1'}]
        stdout = StringIO()

        with mock.patch('fieldreports.management.commands.sync_field_reports.get_record_store', return_value=store):
            call_command('sync_field_reports', '--kind', 'attendance', stdout=stdout)

        store.load_records.assert_called_once_with(RecordKind.ATTENDANCE)
        self.assertEqual([row['record_id'] for row in load_snapshot(RecordKind.ATTENDANCE).rows], ['ATT-1'])
        self.assertEqual(load_reference().mosque_name('M1'), 'مسجد النور')
        self.assertIn('Cached 1 records (added 1, updated 0).', stdout.getvalue())

    def test_failed_sheet_makes_command_fail(self) -> None:
        store = mock.Mock()
        store.load_reference_data.return_value = ReferenceData()
        store.load_records.side_effect = RecordStoreError('timeout')

        with mock.patch('fieldreports.management.commands.sync_field_reports.get_record_store', return_value=store):
            with self.assertRaises(CommandError):
                call_command('sync_field_reports', stdout=StringIO(), stderr=StringIO())
