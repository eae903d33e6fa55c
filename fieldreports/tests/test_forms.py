"""Tests for report form validation and record construction."""

from datetime import datetime, timezone as dt_timezone

from django.test import SimpleTestCase

from fieldreports.forms import (
    DAY_REQUIRED,
    EVALUATOR_REQUIRED,
    MOSQUE_REQUIRED,
    AttendanceForm,
    FastEvalForm,
    MaintenanceForm,
    validate_submission,
)
from fieldreports.records import (
    MOSQUE_NAME_FIELD,
    STATUS_FIELD,
    ApprovalStatus,
    Day,
    FieldRecord,
    Mosque,
    RecordKind,
    ReferenceData,
    generate_record_id,
)


class ValidateSubmissionTests(SimpleTestCase):
    """Required-field messages per record kind."""

    def test_missing_mosque_is_the_only_error(self) -> None:
        errors = validate_submission(RecordKind.FAST_EVAL, {'mosque_code': '', 'evaluator_name': 'Ali'})

        self.assertEqual(errors, {'mosque_code': MOSQUE_REQUIRED})

    def test_whitespace_counts_as_blank(self) -> None:
        errors = validate_submission('fast_eval', {'mosque_code': 'M1', 'evaluator_name': '   '})

        self.assertEqual(errors, {'evaluator_name': EVALUATOR_REQUIRED})

    def test_day_required_for_attendance_and_maintenance(self) -> None:
        for kind in (RecordKind.ATTENDANCE, RecordKind.MAINTENANCE):
            with self.subTest(kind=kind):
                self.assertEqual(validate_submission(kind, {'mosque_code': 'M1'}), {'code_day': DAY_REQUIRED})

    def test_complete_submission_has_no_errors(self) -> None:
        self.assertEqual(validate_submission(RecordKind.ATTENDANCE, {'mosque_code': 'M1', 'code_day': 'D1'}), {})


class FieldReportFormTests(SimpleTestCase):
    """Django form integration of the required-field rules."""

    def setUp(self) -> None:
        self.reference = ReferenceData(
            mosques=[Mosque('M1', 'مسجد النور', 'مسجد')],
            days=[Day('D1', 'الليلة الأولى')],
        )

    def test_form_reports_missing_mosque(self) -> None:
        form = FastEvalForm(
            {'record_id': 'FEV-1', 'mosque_code': '', 'evaluator_name': 'Ali'},
            reference=self.reference,
        )

        self.assertFalse(form.is_valid())
        self.assertEqual(form.error_map, {'mosque_code': MOSQUE_REQUIRED})

    def test_fast_eval_record_maps_fields_to_sheet_columns(self) -> None:
        form = FastEvalForm(
            {
                'record_id': 'FEV-1',
                'mosque_code': 'M1',
                'evaluator_name': 'علي',
                'meal_temperature': '4',
                'general_notes': 'جيد',
            },
            reference=self.reference,
        )

        self.assertTrue(form.is_valid(), form.errors)
        record = form.to_record()

        self.assertEqual(record.kind, RecordKind.FAST_EVAL)
        self.assertEqual(record.record_id, 'FEV-1')
        self.assertEqual(record.get('الاسم_الكريم'), 'علي')
        self.assertEqual(record.get('حرارة_الوجبة'), 4)
        self.assertEqual(record.get('الرز'), 0)
        self.assertEqual(record.get(MOSQUE_NAME_FIELD), 'مسجد النور')
        self.assertEqual(record.get('ملاحظات_عامة'), 'جيد')
        self.assertTrue(record.created_at)
        self.assertEqual(record.effective_status, ApprovalStatus.PENDING.value)

    def test_attendance_form_requires_day(self) -> None:
        form = AttendanceForm({'record_id': 'ATT-1', 'mosque_code': 'M1'}, reference=self.reference)

        self.assertFalse(form.is_valid())
        self.assertEqual(form.error_map, {'code_day': DAY_REQUIRED})

    def test_status_field_only_for_reviewers(self) -> None:
        self.assertNotIn('status', MaintenanceForm(reference=self.reference).fields)
        self.assertIn('status', MaintenanceForm(reference=self.reference, can_edit_status=True).fields)

    def test_editing_keeps_existing_payload_and_applies_status(self) -> None:
        existing = FieldRecord.from_payload(RecordKind.MAINTENANCE, {
            'record_id': 'MNT-1',
            'mosque_code': 'M1',
            'code_day': 'D1',
            'created_at': '2024-03-01T10:00:00Z',
            'extra_column': 'kept',
        })
        form = MaintenanceForm(
            {
                'record_id': 'MNT-1',
                'mosque_code': 'M1',
                'code_day': 'D1',
                'maintenance_count': '3',
                'status': ApprovalStatus.APPROVED.value,
            },
            reference=self.reference,
            can_edit_status=True,
        )

        self.assertTrue(form.is_valid(), form.errors)
        record = form.to_record(existing=existing)

        self.assertEqual(record.get('extra_column'), 'kept')
        self.assertEqual(record.get('أعمال_الصيانة_عدد'), 3)
        self.assertEqual(record.created_at, '2024-03-01T10:00:00Z')
        self.assertEqual(record.to_payload()[STATUS_FIELD], ApprovalStatus.APPROVED.value)
        self.assertEqual(record.get('label_day'), 'الليلة الأولى')


class GenerateRecordIdTests(SimpleTestCase):
    def test_prefix_and_millisecond_suffix(self) -> None:
        moment = datetime(2024, 3, 1, tzinfo=dt_timezone.utc)

        self.assertEqual(generate_record_id(RecordKind.FAST_EVAL, moment), f"FEV-{int(moment.timestamp() * 1000)}")
        self.assertTrue(generate_record_id('maintenance').startswith('MNT-'))
        self.assertTrue(generate_record_id('attendance').startswith('ATT-'))


class InitialFromRecordTests(SimpleTestCase):
    """Stored numbers must survive a round trip through the edit form."""

    def test_ratings_stored_as_arabic_digits_or_floats_stay_selected(self) -> None:
        record = FieldRecord.from_payload(RecordKind.FAST_EVAL, {
            'record_id': 'FEV-1',
            'mosque_code': 'M1',
            'الرز': '٤',
            'الدجاج': 4.0,
            'السمبوسة': 'n/a',
        })

        initial = FastEvalForm.initial_from_record(record)
        form = FastEvalForm(initial=initial)

        self.assertEqual(initial['rice'], 4)
        self.assertEqual(initial['chicken'], 4)
        self.assertNotIn('samosa', initial)
        self.assertIn('checked', str(form['rice']))
        self.assertIn('checked', str(form['chicken']))

    def test_counts_stored_as_arabic_digits_are_normalised(self) -> None:
        record = FieldRecord.from_payload(RecordKind.MAINTENANCE, {
            'record_id': 'MNT-1',
            'mosque_code': 'M1',
            'code_day': 'D1',
            'أعمال_الصيانة_عدد': '٣',
            'أعمال_النظافة_عدد': 2.0,
            'ملاحظات': 'تم',
        })

        initial = MaintenanceForm.initial_from_record(record)

        self.assertEqual(initial['maintenance_count'], 3)
        self.assertEqual(initial['cleaning_count'], 2)
        self.assertEqual(initial['notes'], 'تم')
