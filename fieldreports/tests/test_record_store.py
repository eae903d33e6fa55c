"""Tests for the HTTP client of the sheet store."""

from unittest import mock

import requests
from django.test import SimpleTestCase, override_settings

from fieldreports.records import ApprovalStatus, FieldRecord, RecordKind
from fieldreports.services.record_store import RecordStore, RecordStoreError, get_record_store


def _response(payload, status_code: int = 200) -> mock.Mock:
    response = mock.Mock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f'{status_code} error')
    return response


class RecordStoreTests(SimpleTestCase):
    """Request shapes and error handling of :class:`RecordStore`."""

    def setUp(self) -> None:
        self.session = mock.Mock(spec=requests.Session)
        self.session.headers = {}
        self.store = RecordStore('https://store.example/exec', 'secret', timeout=5, session=self.session)

    def test_token_header_is_sent(self) -> None:
        self.assertEqual(self.session.headers['Authorization'], 'Token secret')

    def test_load_records_reads_the_kind_sheet(self) -> None:
        self.session.get.return_value = _response({'data': [{'record_id': 'ATT-1'}, 'junk']})

        rows = self.store.load_records(RecordKind.ATTENDANCE)

        self.assertEqual(rows, [{'record_id': 'ATT-1'}])
        self.session.get.assert_called_once_with(
            'https://store.example/exec',
            params={'sheet': 'Records'},
            timeout=5,
            verify=True,
        )

    def test_plain_list_payload_is_accepted(self) -> None:
        self.session.get.return_value = _response([{'record_id': 'FEV-1'}])

        self.assertEqual(self.store.load_records('fast_eval'), [{'record_id': 'FEV-1'}])

    def test_unexpected_payload_raises(self) -> None:
        self.session.get.return_value = _response('nope')

        with self.assertRaises(RecordStoreError):
            self.store.load_records(RecordKind.MAINTENANCE)

    def test_network_failure_raises_store_error(self) -> None:
        self.session.get.side_effect = requests.ConnectionError('down')

        with self.assertRaises(RecordStoreError):
            self.store.load_records(RecordKind.MAINTENANCE)

    def test_reference_data_reads_mosques_and_days(self) -> None:
        self.session.get.side_effect = [
            _response([{'mosque_code': 'M1', 'المسجد': 'مسجد النور'}]),
            _response([{'code_day': 'D1', 'label': 'اليوم الأول'}]),
        ]

        reference = self.store.load_reference_data()

        self.assertEqual(reference.mosque_name('M1'), 'مسجد النور')
        self.assertEqual(reference.day_label('D1'), 'اليوم الأول')

    def test_update_status_sends_one_request_for_all_ids(self) -> None:
        self.session.post.return_value = _response({'ok': True, 'updated': 2})

        self.store.update_status(RecordKind.FAST_EVAL, ['FEV-1', 'FEV-2'], ApprovalStatus.APPROVE.value)

        self.session.post.assert_called_once()
        body = self.session.post.call_args.kwargs['json']
        self.assertEqual(body, {
            'action': 'updateStatus',
            'sheet': 'Fast_eval',
            'ids': ['FEV-1', 'FEV-2'],
            'status': ApprovalStatus.APPROVE.value,
        })

    def test_save_posts_the_record_row(self) -> None:
        self.session.post.return_value = _response({'ok': True})
        record = FieldRecord(kind=RecordKind.MAINTENANCE, record_id='MNT-1', mosque_code='M1')

        self.store.save(record)

        body = self.session.post.call_args.kwargs['json']
        self.assertEqual(body['action'], 'save')
        self.assertEqual(body['sheet'], 'Maintenance')
        self.assertEqual(body['record']['record_id'], 'MNT-1')

    def test_rejected_write_raises(self) -> None:
        self.session.post.return_value = _response({'ok': False, 'error': 'locked'})

        with self.assertRaisesMessage(RecordStoreError, 'locked'):
            self.store.update_status(RecordKind.FAST_EVAL, ['FEV-1'], ApprovalStatus.REJECTED.value)

    def test_http_error_raises(self) -> None:
        self.session.post.return_value = _response({}, status_code=500)

        with self.assertRaises(RecordStoreError):
            self.store.save(FieldRecord(kind=RecordKind.ATTENDANCE, record_id='ATT-1'))

    @override_settings(RECORD_STORE_URL='')
    def test_missing_url_is_reported(self) -> None:
        with self.assertRaises(RecordStoreError):
            get_record_store()
