### advanced_export/exports/filters.py

"""
Filter Normalization

Turns heterogeneous raw filter state (scalars, multi-selects, date ranges,
nested objects) into a canonical filter set. An entry that normalizes to
"empty" never appears in the result: absence of a filter is represented by the
name not being in the set.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol, Sequence, Union

from advanced_export.utils.logger import get_logger

logger = get_logger(__name__)


# Range bound keys, canonical pair first
RANGE_KEY_ALIASES = (
    ("from", "until"),
    ("created_from", "created_until"),
    ("date_from", "date_until"),
    ("start", "end"),
)


class FilterKind(str, Enum):
    """Shape of a canonical filter value"""
    SCALAR = "scalar"
    LIST = "list"
    RANGE = "range"
    MAPPING = "mapping"


@dataclass(frozen=True)
class DateRange:
    """Inclusive range; either bound may be missing but never both."""
    start: Any = None
    end: Any = None

    def to_dict(self) -> dict:
        return {"from": _json_safe(self.start), "until": _json_safe(self.end)}


@dataclass(frozen=True)
class CanonicalFilter:
    """A normalized, non-empty filter condition ready for query compilation."""
    name: str
    kind: FilterKind
    value: Any

    def to_payload(self) -> Any:
        if self.kind == FilterKind.RANGE:
            return self.value.to_dict()
        if self.kind == FilterKind.LIST:
            return [_json_safe(v) for v in self.value]
        if self.kind == FilterKind.MAPPING:
            return {k: _json_safe(v) for k, v in self.value.items()}
        return _json_safe(self.value)


FilterSet = Dict[str, CanonicalFilter]


class FilterSource(Protocol):
    """Where raw filter state is read from (a table's filter form, a request body...)."""

    def filter_names(self) -> Iterable[str]:
        ...

    def get_state(self, name: str) -> Any:
        ...


class MappingFilterSource:
    """Filter source backed by a plain mapping of name -> raw state."""

    def __init__(self, raw: Optional[Mapping[str, Any]]):
        self.raw = raw if raw is not None else {}

    def filter_names(self) -> Iterable[str]:
        return list(self.raw.keys())

    def get_state(self, name: str) -> Any:
        return self.raw.get(name)


def is_empty(value: Any) -> bool:
    """
    Emptiness as understood by the export filters.

    None, blank strings, empty containers and containers whose every member is
    empty are all empty. False and 0 are real values.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, Mapping):
        return all(is_empty(v) for v in value.values())
    if isinstance(value, (list, tuple, set, frozenset)):
        return all(is_empty(v) for v in value)
    return False


def _json_safe(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(v) for v in value]
    return value


def _clean_list(values: Iterable[Any]) -> tuple:
    """Drop empty members, flatten one level of nesting and de-duplicate."""
    cleaned = []
    seen = []
    for item in values:
        items = item if isinstance(item, (list, tuple, set, frozenset)) else [item]
        for member in items:
            # Keyed on type too: 1 == True and 0 == False
            key = (type(member), member)
            if is_empty(member) or key in seen:
                continue
            seen.append(key)
            cleaned.append(member)
    return tuple(cleaned)


def _extract_range(state: Mapping[str, Any]) -> Optional[DateRange]:
    for start_key, end_key in RANGE_KEY_ALIASES:
        if start_key in state or end_key in state:
            start = state.get(start_key)
            end = state.get(end_key)
            start = None if is_empty(start) else start
            end = None if is_empty(end) else end
            if start is not None or end is not None:
                return DateRange(start=start, end=end)
    return None


def normalize_filter(name: str, state: Any) -> Optional[CanonicalFilter]:
    """
    Normalize a single raw filter state.

    Returns None when the state is empty and the filter should be dropped.
    """
    if is_empty(state):
        return None

    if isinstance(state, Mapping):
        # Multi-select filters
        values = state.get("values")
        if not is_empty(values):
            if not isinstance(values, (list, tuple, set, frozenset)):
                values = [values]
            cleaned = _clean_list(values)
            if cleaned:
                return CanonicalFilter(name, FilterKind.LIST, cleaned)

        # Single select filters
        value = state.get("value")
        if not is_empty(value) and not isinstance(value, (Mapping, list, tuple, set)):
            return CanonicalFilter(name, FilterKind.SCALAR, value)

        # Date range filters (and their aliases)
        date_range = _extract_range(state)
        if date_range is not None:
            return CanonicalFilter(name, FilterKind.RANGE, date_range)

        # Anything else: keep the non-empty members
        remainder = {k: v for k, v in state.items() if not is_empty(v)}
        if remainder:
            return CanonicalFilter(name, FilterKind.MAPPING, remainder)
        return None

    if isinstance(state, (list, tuple, set, frozenset)):
        cleaned = _clean_list(state)
        return CanonicalFilter(name, FilterKind.LIST, cleaned) if cleaned else None

    return CanonicalFilter(name, FilterKind.SCALAR, state)


def extract_active_filters(
    source: FilterSource,
    fallback_filters: Sequence[str] = (),
) -> FilterSet:
    """
    Read every filter from the source and normalize it.

    A failure on one entry is logged and that entry skipped. If the source
    cannot even be enumerated, the well-known ``fallback_filters`` are read
    directly instead.
    """
    active: FilterSet = {}

    try:
        names = list(source.filter_names())
    except Exception as e:
        logger.error("Error extracting active filters, using fallback filters", error=str(e))
        return _extract_fallback_filters(source, fallback_filters)

    for name in names:
        try:
            canonical = normalize_filter(name, source.get_state(name))
        except Exception as e:
            logger.warning("Error accessing filter state, skipping", filter=name, error=str(e))
            continue
        if canonical is not None:
            active[name] = canonical

    return active


def _extract_fallback_filters(source: FilterSource, fallback_filters: Sequence[str]) -> FilterSet:
    active: FilterSet = {}
    for name in fallback_filters:
        try:
            canonical = normalize_filter(name, source.get_state(name))
        except Exception:
            logger.debug("Fallback filter not readable", filter=name)
            continue
        if canonical is not None:
            active[name] = canonical
    return active


def normalize_filters(
    raw: Union[Mapping[str, Any], FilterSource, None],
    fallback_filters: Sequence[str] = (),
) -> FilterSet:
    """Normalize a raw filter mapping (or any filter source) into a canonical set."""
    source = raw if hasattr(raw, "filter_names") else MappingFilterSource(raw)
    filters = extract_active_filters(source, fallback_filters)
    logger.debug("Normalized export filters", filters=list(filters.keys()))
    return filters


def serialize_filters(filters: FilterSet) -> Dict[str, Any]:
    """JSON-safe payload of a canonical filter set; normalizes back to the same set."""
    return {name: f.to_payload() for name, f in filters.items()}
