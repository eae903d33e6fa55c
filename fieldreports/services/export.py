"""Excel export of a filtered record list."""

from __future__ import annotations

import json
from io import BytesIO
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font

from fieldreports.records import (
    STATUS_FIELD,
    FieldRecord,
    ReferenceData,
    record_day_label,
    record_mosque_label,
)

_LEADING_COLUMNS = ['record_id', 'mosque_code', 'code_day', 'created_at', STATUS_FIELD]
_SKIPPED_COLUMNS = {'sheet'}


def _normalise_cell(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if value is None:
        return ''
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return str(value)


def infer_columns(records: Iterable[FieldRecord]) -> List[str]:
    """Ordered union of payload columns, shared columns first."""

    seen: List[str] = []
    for record in records:
        for key in record.payload.keys():
            if key not in seen and key not in _SKIPPED_COLUMNS:
                seen.append(key)
    ordered = list(_LEADING_COLUMNS)
    ordered.extend(key for key in seen if key not in _LEADING_COLUMNS)
    return ordered


def build_workbook_bytes(
    records: Sequence[FieldRecord],
    reference: Optional[ReferenceData] = None,
    *,
    title: str = 'Records',
) -> bytes:
    """Render ``records`` into an RTL worksheet and return the xlsx bytes."""

    columns = infer_columns(records)
    headers = columns + ['اسم المسجد', 'اليوم']
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = title[:31] or 'Records'
    worksheet.sheet_view.rightToLeft = True
    worksheet.append(headers)
    for cell in worksheet[1]:
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal='center')
    for record in records:
        values: Dict[str, Any] = record.to_payload()
        values[STATUS_FIELD] = record.effective_status
        row = [_normalise_cell(values.get(column, '')) for column in columns]
        row.append(record_mosque_label(record, reference))
        row.append(record_day_label(record, reference))
        worksheet.append(row)
    stream = BytesIO()
    workbook.save(stream)
    return stream.getvalue()


__all__ = ['build_workbook_bytes', 'infer_columns']
