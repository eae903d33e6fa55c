"""Forms used by the field reports application.

Each record kind has its own form.  Form fields use plain identifiers while
the sheet stores Arabic column names, so every form declares the mapping from
its fields to sheet columns and builds the :class:`FieldRecord` itself.
Required-field checks live in :func:`validate_submission` so the same messages
are produced for HTML posts and for any other caller.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

from django import forms
from django.utils import timezone

from fieldreports.records import (
    DAY_LABEL_FIELD,
    MOSQUE_NAME_FIELD,
    SITE_TYPE_FIELD,
    STATUS_FIELD,
    ApprovalStatus,
    FieldRecord,
    RecordKind,
    ReferenceData,
    coerce_number,
)
from fieldreports.services.aggregation import EVALUATOR_FIELD, NOTES_FIELD

MOSQUE_REQUIRED = 'يجب اختيار المسجد'
EVALUATOR_REQUIRED = 'يجب إدخال اسم المُقيّم'
DAY_REQUIRED = 'يجب اختيار اليوم'
RECORD_ID_TAKEN = 'رقم التقرير مستخدم مسبقاً، تم إنشاء رقم جديد. أعد الإرسال.'

REQUIRED_FIELDS: Dict[RecordKind, List[Tuple[str, str]]] = {
    RecordKind.FAST_EVAL: [
        ('mosque_code', MOSQUE_REQUIRED),
        ('evaluator_name', EVALUATOR_REQUIRED),
    ],
    RecordKind.MAINTENANCE: [
        ('mosque_code', MOSQUE_REQUIRED),
        ('code_day', DAY_REQUIRED),
    ],
    RecordKind.ATTENDANCE: [
        ('mosque_code', MOSQUE_REQUIRED),
        ('code_day', DAY_REQUIRED),
    ],
}

RATING_CHOICES = [(0, '—')] + [(value, str(value)) for value in range(1, 6)]


def validate_submission(kind: RecordKind | str, data: Mapping[str, Any]) -> Dict[str, str]:
    """Return ``{field: message}`` for required fields left blank."""

    errors: Dict[str, str] = {}
    for field_name, message in REQUIRED_FIELDS[RecordKind(kind)]:
        value = data.get(field_name)
        if value is None or not str(value).strip():
            errors[field_name] = message
    return errors


def _rating_field(label: str, low: str, high: str) -> forms.TypedChoiceField:
    return forms.TypedChoiceField(
        label=label,
        choices=RATING_CHOICES,
        coerce=int,
        empty_value=0,
        required=False,
        help_text=f'{low} ← → {high}',
        widget=forms.RadioSelect(attrs={'class': 'rating-scale'}),
    )


class FieldReportForm(forms.Form):
    """Shared fields and record construction for every record kind."""

    kind: RecordKind = RecordKind.FAST_EVAL

    # form field -> sheet column, for kind-specific fields
    sheet_columns: Dict[str, str] = {}

    record_id = forms.CharField(widget=forms.HiddenInput())
    mosque_code = forms.ChoiceField(label='المسجد / الموقع', required=False)

    def __init__(
        self,
        *args: Any,
        reference: Optional[ReferenceData] = None,
        can_edit_status: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.reference = reference or ReferenceData()
        self.fields['mosque_code'].choices = [('', 'اختر من القائمة...')] + [
            (mosque.mosque_code, mosque.name) for mosque in self.reference.mosques
        ]
        if 'code_day' in self.fields:
            self.fields['code_day'].choices = [('', 'اختر اليوم...')] + [
                (day.code_day, day.label) for day in self.reference.days
            ]
        if can_edit_status:
            self.fields['status'] = forms.ChoiceField(
                label='حالة الاعتماد',
                choices=ApprovalStatus.choices,
                required=False,
                initial=ApprovalStatus.PENDING,
            )

    def clean(self) -> Dict[str, Any]:
        cleaned_data = super().clean()
        for field_name, message in validate_submission(self.kind, cleaned_data).items():
            if field_name not in self.errors:
                self.add_error(field_name, message)
        return cleaned_data

    @property
    def error_map(self) -> Dict[str, str]:
        """First error message per field, as shown next to each input."""

        return {field_name: messages[0] for field_name, messages in self.errors.items() if messages}

    @classmethod
    def initial_from_record(cls, record: FieldRecord) -> Dict[str, Any]:
        initial: Dict[str, Any] = {
            'record_id': record.record_id,
            'mosque_code': record.mosque_code,
            'status': record.effective_status,
        }
        if 'code_day' in cls.base_fields:
            initial['code_day'] = record.code_day
        for field_name, column in cls.sheet_columns.items():
            value = record.get(column)
            if value in (None, ''):
                continue
            if isinstance(cls.base_fields[field_name], (forms.TypedChoiceField, forms.IntegerField)):
                # Sheet numbers may arrive as floats or Arabic-Indic digit strings.
                number = coerce_number(value)
                if number is None:
                    continue
                value = int(number)
            initial[field_name] = value
        return initial

    def to_record(self, existing: Optional[FieldRecord] = None) -> FieldRecord:
        """Build the record to save from validated data."""

        data = self.cleaned_data
        payload: Dict[str, Any] = dict(existing.payload) if existing else {}
        for field_name, column in self.sheet_columns.items():
            value = data.get(field_name)
            payload[column] = '' if value is None else value

        mosque_code = data.get('mosque_code') or ''
        mosque = self.reference.find_mosque(mosque_code)
        if mosque is not None:
            payload[MOSQUE_NAME_FIELD] = mosque.name
            payload[SITE_TYPE_FIELD] = mosque.site_type

        code_day = data.get('code_day') or (existing.code_day if existing else '')
        day = self.reference.find_day(code_day) if code_day else None
        if day is not None:
            payload[DAY_LABEL_FIELD] = day.label

        status = data.get('status') or (existing.status if existing else '')
        if status:
            payload[STATUS_FIELD] = status

        created_at = existing.created_at if existing and existing.created_at else timezone.now().isoformat()
        return FieldRecord(
            kind=self.kind,
            record_id=data['record_id'],
            mosque_code=mosque_code,
            code_day=code_day,
            status=status,
            created_at=created_at,
            payload=payload,
        )


class FastEvalForm(FieldReportForm):
    """Meal quality evaluation filled in at the mosque."""

    kind = RecordKind.FAST_EVAL
    sheet_columns = {
        'evaluator_name': EVALUATOR_FIELD,
        'phone': 'رقم_الجوال',
        'meal_temperature': 'حرارة_الوجبة',
        'rice': 'الرز',
        'chicken': 'الدجاج',
        'samosa': 'السمبوسة',
        'soup': 'الشوربة',
        'variety': 'تنوع_أصناف_الوجبة',
        'packaging': 'التغليف',
        'transport': 'النقل_والتعبئة',
        'punctuality': 'الالتزام_في_الوقت',
        'recommendation': 'التوصية_بتكرار_التعامل_في_الأعوام_القادمة',
        'general_notes': NOTES_FIELD,
    }

    evaluator_name = forms.CharField(label='الاسم الكريم', max_length=255, required=False)
    phone = forms.CharField(label='رقم الجوال', max_length=20, required=False)
    meal_temperature = _rating_field('حرارة الوجبة', 'باردة', 'ساخنة')
    rice = _rating_field('جودة الأرز', 'سيئة', 'ممتازة')
    chicken = _rating_field('جودة الدجاج', 'سيئة', 'ممتازة')
    samosa = _rating_field('جودة السمبوسة', 'سيئة', 'ممتازة')
    soup = _rating_field('جودة الشوربة', 'سيئة', 'ممتازة')
    variety = _rating_field('تنوع الأصناف', 'قليل جداً', 'متنوع جداً')
    packaging = _rating_field('جودة التغليف', 'سيئة', 'ممتازة')
    transport = _rating_field('النقل والتعبئة', 'سيئة', 'ممتازة')
    punctuality = _rating_field('الالتزام بالوقت', 'متأخر دائماً', 'في الموعد')
    recommendation = _rating_field('توصي بالتعامل معه مستقبلاً؟', 'لا أوصي', 'أوصي بشدة')
    general_notes = forms.CharField(label='ملاحظات عامة', widget=forms.Textarea(attrs={'rows': 4}), required=False)


class MaintenanceForm(FieldReportForm):
    """Daily maintenance and cleaning report for a site."""

    kind = RecordKind.MAINTENANCE
    sheet_columns = {
        'maintenance_count': 'أعمال_الصيانة_عدد',
        'cleaning_count': 'أعمال_النظافة_عدد',
        'report_date': 'التاريخ',
        'notes': 'ملاحظات',
    }

    code_day = forms.ChoiceField(label='اليوم', required=False)
    report_date = forms.DateField(label='التاريخ', required=False, widget=forms.DateInput(attrs={'type': 'date'}))
    maintenance_count = forms.IntegerField(label='أعمال الصيانة (عدد)', min_value=0, required=False)
    cleaning_count = forms.IntegerField(label='أعمال النظافة (عدد)', min_value=0, required=False)
    notes = forms.CharField(label='ملاحظات', widget=forms.Textarea(attrs={'rows': 3}), required=False)

    def clean_report_date(self) -> str:
        value = self.cleaned_data.get('report_date')
        return value.isoformat() if value else ''


class AttendanceForm(FieldReportForm):
    """Worshipper head count for one mosque on one day / night."""

    kind = RecordKind.ATTENDANCE
    sheet_columns = {
        'men_count': 'عدد_المصلين_رجال',
        'women_count': 'عدد_المصلين_نساء',
        'notes': 'ملاحظات',
    }

    code_day = forms.ChoiceField(label='اليوم / الليلة', required=False)
    men_count = forms.IntegerField(label='عدد المصلين (رجال)', min_value=0, required=False)
    women_count = forms.IntegerField(label='عدد المصلين (نساء)', min_value=0, required=False)
    notes = forms.CharField(label='ملاحظات', widget=forms.Textarea(attrs={'rows': 3}), required=False)


FORM_CLASSES: Dict[RecordKind, type] = {
    RecordKind.FAST_EVAL: FastEvalForm,
    RecordKind.MAINTENANCE: MaintenanceForm,
    RecordKind.ATTENDANCE: AttendanceForm,
}


class LoginForm(forms.Form):
    """Simple login form requesting username and password."""

    username = forms.CharField(label='اسم المستخدم', max_length=150, widget=forms.TextInput(attrs={
        'class': 'form-control',
    }))
    password = forms.CharField(label='كلمة المرور', widget=forms.PasswordInput(attrs={
        'class': 'form-control',
        'placeholder': '••••••••',
    }))
