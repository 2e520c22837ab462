# licitahub/services/filters.py
from datetime import datetime, timezone
from typing import Iterable, List

from licitahub.models.schemas import ProcurementRecord, SearchCriteria


def _contains(haystack: str, needle: str) -> bool:
    """Case-insensitive substring test"""
    return needle.casefold() in (haystack or "").casefold()


def matches_keyword(record: ProcurementRecord, keyword: str) -> bool:
    return (
        _contains(record.description, keyword)
        or _contains(record.title, keyword)
        or _contains(record.organization, keyword)
    )


def matches_criteria(record: ProcurementRecord, criteria: SearchCriteria) -> bool:
    """True when the record satisfies every active filter. Absent filters always pass."""
    if criteria.keyword and not matches_keyword(record, criteria.keyword):
        return False

    # Organization name stands in for location; PNCP search results carry no reliable jurisdiction field
    if criteria.locality and not _contains(record.organization, criteria.locality):
        return False

    if criteria.value_min is not None and criteria.value_min > 0 and record.estimated_value < criteria.value_min:
        return False

    if criteria.value_max is not None and criteria.value_max > 0 and record.estimated_value > criteria.value_max:
        return False

    return True


def apply_filters(records: Iterable[ProcurementRecord], criteria: SearchCriteria) -> List[ProcurementRecord]:
    return [record for record in records if matches_criteria(record, criteria)]


def cap_results(records: List[ProcurementRecord], limit: int) -> List[ProcurementRecord]:
    """First `limit` records in accumulation order"""
    return records[:max(limit, 0)]


def deduplicate(records: Iterable[ProcurementRecord]) -> List[ProcurementRecord]:
    """
    Drop repeats of the (taxId, year, sequenceNumber) natural key, keeping the first.
    Records without a complete key are always kept.
    """
    seen = set()
    unique = []
    for record in records:
        key = record.natural_key
        if key is not None:
            if key in seen:
                continue
            seen.add(key)
        unique.append(record)
    return unique


def _as_naive_utc(value: datetime) -> datetime:
    # Naive timestamps are already UTC
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def sort_by_opening_date(records: Iterable[ProcurementRecord]) -> List[ProcurementRecord]:
    """Newest opening date first, comparing offset-aware timestamps in UTC"""
    return sorted(records, key=lambda r: _as_naive_utc(r.opening_date), reverse=True)
