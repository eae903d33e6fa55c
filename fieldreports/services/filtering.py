"""Filtering and ordering of record lists.

The list screens narrow the raw sheet rows by exact-match dimensions (mosque,
day and approval status) and then order what is left newest first.  Both steps
are pure: they return new lists and never touch the records they are given.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time, timezone as dt_timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from django.utils.dateparse import parse_date, parse_datetime

from fieldreports.records import MOSQUE_NAME_FIELD, FieldRecord, ReferenceData

logger = logging.getLogger(__name__)

EPOCH = 0.0


@dataclass(frozen=True)
class FilterState:
    """Selected value per filter dimension; ``''`` means unconstrained."""

    mosque: str = ''
    day: str = ''
    status: str = ''

    @classmethod
    def from_query(cls, params: Mapping[str, Any]) -> 'FilterState':
        def _value(key: str) -> str:
            raw = params.get(key)
            return str(raw).strip() if raw is not None else ''

        return cls(mosque=_value('mosque'), day=_value('day'), status=_value('status'))

    @property
    def is_empty(self) -> bool:
        return not (self.mosque or self.day or self.status)

    def as_query(self) -> Dict[str, str]:
        return {key: value for key, value in (
            ('mosque', self.mosque),
            ('day', self.day),
            ('status', self.status),
        ) if value}


def matches_filter(record: FieldRecord, state: FilterState) -> bool:
    if state.mosque and record.mosque_code != state.mosque:
        return False
    if state.day and record.code_day != state.day:
        return False
    if state.status and record.effective_status != state.status:
        return False
    return True


def filter_records(records: Iterable[FieldRecord], state: FilterState) -> List[FieldRecord]:
    """Return the records matching every non-empty dimension of ``state``."""

    if state.is_empty:
        return list(records)
    return [record for record in records if matches_filter(record, state)]


def record_timestamp(value: Optional[str]) -> float:
    """Epoch seconds for an ISO-ish timestamp or date; ``EPOCH`` when unusable."""

    text = (value or '').strip()
    if not text:
        return EPOCH
    try:
        moment: Optional[datetime] = parse_datetime(text.replace('Z', '+00:00'))
        if moment is None:
            day = parse_date(text)
            if day is None:
                return EPOCH
            moment = datetime.combine(day, time.min)
    except ValueError:
        logger.debug("Unparseable record timestamp %r treated as epoch", text)
        return EPOCH
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=dt_timezone.utc)
    return moment.timestamp()


def sort_by_recency(records: Sequence[FieldRecord]) -> List[FieldRecord]:
    """Order records newest first; ties keep their input order."""

    return sorted(records, key=lambda record: record_timestamp(record.created_at), reverse=True)


def search_records(
    records: Iterable[FieldRecord],
    term: str,
    reference: Optional[ReferenceData] = None,
) -> List[FieldRecord]:
    """Keep records whose mosque name contains ``term`` (case-insensitive).

    Only real names count: a record whose mosque is unknown never matches,
    even when the search term is part of the placeholder label.
    """

    needle = (term or '').strip().casefold()
    if not needle:
        return list(records)
    return [
        record for record in records
        if needle in _mosque_name(record, reference).casefold()
    ]


def _mosque_name(record: FieldRecord, reference: Optional[ReferenceData]) -> str:
    name = record.get(MOSQUE_NAME_FIELD)
    if name is not None and str(name).strip():
        return str(name).strip()
    mosque = reference.find_mosque(record.mosque_code) if reference is not None else None
    return mosque.name if mosque is not None else ''


__all__ = [
    'FilterState',
    'filter_records',
    'matches_filter',
    'record_timestamp',
    'search_records',
    'sort_by_recency',
]
