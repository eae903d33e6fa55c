"""Flat field-report records and the reference data they point at.

Every report submitted from a mosque site (meal evaluation, maintenance and
cleaning report, attendance count) is a single row in an external sheet.  The
row is kept verbatim in :attr:`FieldRecord.payload`; the handful of columns
shared by every kind (id, mosque code, day code, approval status and creation
time) are lifted onto the dataclass so filtering and selection can work on any
kind without knowing its columns.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from django.db import models
from django.utils import timezone

logger = logging.getLogger(__name__)

UNSPECIFIED_LABEL = 'غير محدد'

_DIGIT_TABLE = str.maketrans('٠١٢٣٤٥٦٧٨٩۰۱۲۳۴۵۶۷۸۹', '01234567890123456789')

# Sheet columns shared by all record kinds.
STATUS_FIELD = 'الاعتماد'
MOSQUE_NAME_FIELD = 'المسجد'
SITE_TYPE_FIELD = 'نوع الموقع'
DATE_FIELD = 'التاريخ'
DAY_LABEL_FIELD = 'label_day'


class RecordKind(models.TextChoices):
    FAST_EVAL = 'fast_eval', 'تقييم الوجبات'
    MAINTENANCE = 'maintenance', 'الصيانة والنظافة'
    ATTENDANCE = 'attendance', 'سجلات الحضور'

    @property
    def sheet(self) -> str:
        return _SHEETS[self]

    @property
    def id_prefix(self) -> str:
        return _ID_PREFIXES[self]


_SHEETS = {
    RecordKind.FAST_EVAL: 'Fast_eval',
    RecordKind.MAINTENANCE: 'Maintenance',
    RecordKind.ATTENDANCE: 'Records',
}

_ID_PREFIXES = {
    RecordKind.FAST_EVAL: 'FEV',
    RecordKind.MAINTENANCE: 'MNT',
    RecordKind.ATTENDANCE: 'ATT',
}


class ApprovalStatus(models.TextChoices):
    PENDING = 'قيد المراجعة', 'قيد المراجعة'
    APPROVE = 'يعتمد', 'يعتمد'
    REJECTED = 'مرفوض', 'مرفوض'
    APPROVED = 'معتمد', 'معتمد'
    RETURNED = 'يعاد التقرير', 'يعاد التقرير'


# A record without a status is pending everywhere it is shown or filtered.
DEFAULT_STATUS = ApprovalStatus.PENDING.value

BULK_STATUSES = (ApprovalStatus.APPROVE.value, ApprovalStatus.REJECTED.value)

# Statuses offered by the list filter.
FILTER_STATUSES = (
    ApprovalStatus.PENDING.value,
    ApprovalStatus.APPROVE.value,
    ApprovalStatus.REJECTED.value,
)

_STATUS_TONES = {
    ApprovalStatus.APPROVE.value: 'approved',
    ApprovalStatus.APPROVED.value: 'approved',
    ApprovalStatus.REJECTED.value: 'rejected',
    ApprovalStatus.RETURNED.value: 'returned',
}


def status_tone(status: Optional[str]) -> str:
    """Return the display tone used to colour a status badge."""

    return _STATUS_TONES.get(status or '', 'pending')


def _text(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip()


@dataclass
class FieldRecord:
    """A single report row tagged with its kind."""

    kind: RecordKind
    record_id: str
    mosque_code: str = ''
    code_day: str = ''
    status: str = ''
    created_at: str = ''
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, kind: RecordKind | str, row: Mapping[str, Any]) -> 'FieldRecord':
        kind = RecordKind(kind)
        return cls(
            kind=kind,
            record_id=_text(row.get('record_id')),
            mosque_code=_text(row.get('mosque_code')),
            code_day=_text(row.get('code_day')),
            status=_text(row.get(STATUS_FIELD)),
            # Older maintenance rows only carry the report date.
            created_at=_text(row.get('created_at') or row.get(DATE_FIELD)),
            payload=dict(row),
        )

    @property
    def effective_status(self) -> str:
        return self.status or DEFAULT_STATUS

    @property
    def status_tone(self) -> str:
        return status_tone(self.status)

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)

    def to_payload(self) -> Dict[str, Any]:
        """Return the sheet row, with the shared columns written back."""

        row = dict(self.payload)
        row['record_id'] = self.record_id
        row['mosque_code'] = self.mosque_code
        row['code_day'] = self.code_day
        if self.status:
            row[STATUS_FIELD] = self.status
        if self.created_at:
            row['created_at'] = self.created_at
        row['sheet'] = self.kind.sheet
        return row


def records_from_rows(kind: RecordKind | str, rows: Iterable[Mapping[str, Any]]) -> List[FieldRecord]:
    """Wrap raw sheet rows, skipping non-mappings and rows without a ``record_id``."""

    records: List[FieldRecord] = []
    skipped = 0
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        record = FieldRecord.from_payload(kind, row)
        if not record.record_id:
            skipped += 1
            continue
        records.append(record)
    if skipped:
        logger.warning("Skipped %d %s rows without a record_id", skipped, RecordKind(kind).value)
    return records


def generate_record_id(kind: RecordKind | str, now: Optional[datetime] = None) -> str:
    """Return ``<PREFIX>-<epoch millis>`` for a new record of ``kind``."""

    moment = now or timezone.now()
    return f"{RecordKind(kind).id_prefix}-{int(moment.timestamp() * 1000)}"


@dataclass(frozen=True)
class Mosque:
    mosque_code: str
    name: str
    site_type: str = ''


@dataclass(frozen=True)
class Day:
    code_day: str
    label: str


@dataclass
class ReferenceData:
    """Immutable mosque and day lists loaded from the store."""

    mosques: List[Mosque] = field(default_factory=list)
    days: List[Day] = field(default_factory=list)

    @classmethod
    def from_rows(
        cls,
        mosque_rows: Iterable[Mapping[str, Any]],
        day_rows: Iterable[Mapping[str, Any]],
    ) -> 'ReferenceData':
        mosques = [
            Mosque(
                mosque_code=_text(row.get('mosque_code')),
                name=_text(row.get(MOSQUE_NAME_FIELD) or row.get('name')),
                site_type=_text(row.get(SITE_TYPE_FIELD)),
            )
            for row in mosque_rows
            if isinstance(row, Mapping) and _text(row.get('mosque_code'))
        ]
        days = [
            Day(code_day=_text(row.get('code_day')), label=_text(row.get('label') or row.get(DAY_LABEL_FIELD)))
            for row in day_rows
            if isinstance(row, Mapping) and _text(row.get('code_day'))
        ]
        return cls(mosques=mosques, days=days)

    def to_rows(self) -> Dict[str, List[Dict[str, str]]]:
        return {
            'mosques': [
                {'mosque_code': m.mosque_code, MOSQUE_NAME_FIELD: m.name, SITE_TYPE_FIELD: m.site_type}
                for m in self.mosques
            ],
            'days': [{'code_day': d.code_day, 'label': d.label} for d in self.days],
        }

    def find_mosque(self, code: str) -> Optional[Mosque]:
        for mosque in self.mosques:
            if mosque.mosque_code == code:
                return mosque
        return None

    def find_day(self, code: str) -> Optional[Day]:
        for day in self.days:
            if day.code_day == code:
                return day
        return None

    def mosque_name(self, code: str) -> str:
        mosque = self.find_mosque(code)
        return mosque.name if mosque and mosque.name else UNSPECIFIED_LABEL

    def day_label(self, code: str) -> str:
        day = self.find_day(code)
        return day.label if day and day.label else UNSPECIFIED_LABEL


def record_mosque_label(record: FieldRecord, reference: Optional[ReferenceData] = None) -> str:
    """Mosque name for display: row column, then reference list, then placeholder."""

    name = _text(record.get(MOSQUE_NAME_FIELD))
    if name:
        return name
    if reference is not None:
        return reference.mosque_name(record.mosque_code)
    return UNSPECIFIED_LABEL


def record_day_label(record: FieldRecord, reference: Optional[ReferenceData] = None) -> str:
    label = _text(record.get(DAY_LABEL_FIELD))
    if label:
        return label
    if reference is not None and reference.find_day(record.code_day):
        return reference.day_label(record.code_day)
    return record.code_day or UNSPECIFIED_LABEL


def coerce_number(value: Any) -> Optional[float]:
    """Coerce a sheet cell to a float, handling Arabic-Indic digits.

    Returns ``None`` for blanks, booleans and anything that does not parse.
    """

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    normalised = str(value).strip()
    if not normalised:
        return None
    normalised = normalised.translate(_DIGIT_TABLE)
    normalised = normalised.replace("\u066c", "").replace(",", "").replace("\u066b", ".")
    try:
        number = float(normalised)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _as_number(value: Any) -> float:
    number = coerce_number(value)
    return number if number is not None else 0.0


def total_worshippers(record: FieldRecord) -> int:
    """Men plus women counted on an attendance record."""

    men = _as_number(record.get('عدد_المصلين_رجال'))
    women = _as_number(record.get('عدد_المصلين_نساء'))
    return int(men + women)


def work_count(record: FieldRecord, column: str) -> int:
    """Numeric count column of a maintenance record, 0 when missing."""

    return int(_as_number(record.get(column)))
