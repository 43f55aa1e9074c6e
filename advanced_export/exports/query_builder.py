### advanced_export/exports/query_builder.py

"""
Export Query Builder

Compiles a canonical filter set, sort settings and the entity's eager-load
declarations into a SQLAlchemy ``Select`` plan, WITHOUT pagination, for use by
the record streamer.

Unknown filter names are dropped with a warning; building a plan never fails
because of a filter.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy import Date, DateTime, Select, func, select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import selectinload

from advanced_export.exports.entities import EntityDescriptor
from advanced_export.exports.filters import CanonicalFilter, DateRange, FilterKind, FilterSet
from advanced_export.utils.logger import get_logger

logger = get_logger(__name__)

SORT_DIRECTIONS = ("asc", "desc")


@dataclass(frozen=True)
class QueryPlan:
    """
    A compiled export query.

    ``filtered`` carries only the WHERE clause (used for counting); ``statement``
    adds eager loads and ordering. ``limit`` caps the streamed result set.
    """
    entity: EntityDescriptor
    filtered: Select
    statement: Select
    applied_filters: Tuple[str, ...] = ()
    dropped_filters: Tuple[str, ...] = ()
    sort_field: str = "created_at"
    sort_direction: str = "desc"
    eager_loads: Tuple[str, ...] = ()
    limit: Optional[int] = None
    warnings: Tuple[str, ...] = field(default=())

    def limited(self, limit: Optional[int]) -> "QueryPlan":
        return replace(self, limit=limit)

    def select(self) -> Select:
        """The statement to stream, with the record cap applied."""
        if self.limit is not None:
            return self.statement.limit(self.limit)
        return self.statement

    def count_statement(self) -> Select:
        """Cheap COUNT(*) over the filtered plan, ignoring the record cap."""
        return select(func.count()).select_from(self.filtered.order_by(None).subquery())


def resolve_column_name(entity: EntityDescriptor, name: str) -> Optional[str]:
    """
    Map a filter or sort name to a mapped column attribute.

    Tries the name directly, then the ``<name>_id`` foreign-key convention.
    """
    columns = set(entity.column_names())
    if name in columns:
        return name
    relationship_column = f"{name}_id"
    if relationship_column in columns:
        return relationship_column
    return None


def _parse_bound(value: Any, end_of_day: bool, date_column: bool):
    """Turn a range bound into the value compared against the column."""
    if isinstance(value, datetime):
        parsed, has_time = value, True
    elif isinstance(value, date):
        parsed, has_time = value, False
    else:
        text = str(value).strip()
        if len(text) == 10:
            parsed, has_time = date.fromisoformat(text), False
        else:
            parsed, has_time = datetime.fromisoformat(text), True

    if date_column:
        return parsed.date() if isinstance(parsed, datetime) else parsed
    if has_time:
        return parsed
    return datetime.combine(parsed, datetime.max.time() if end_of_day else datetime.min.time())


def _is_date_column(column_attr) -> bool:
    column_type = column_attr.property.columns[0].type
    return isinstance(column_type, Date) and not isinstance(column_type, DateTime)


def _scalar_members(values) -> List[Any]:
    members = []
    for value in values:
        if isinstance(value, (list, tuple, set)):
            members.extend(v for v in value if v is not None and v != "")
        elif isinstance(value, dict):
            continue
        elif value is not None and value != "":
            members.append(value)
    return members


def compile_filter(stmt: Select, column_attr, canonical: CanonicalFilter) -> Select:
    """Add the predicate for one canonical filter."""
    if canonical.kind == FilterKind.RANGE:
        date_range: DateRange = canonical.value
        date_column = _is_date_column(column_attr)
        if date_range.start is not None:
            stmt = stmt.where(column_attr >= _parse_bound(date_range.start, False, date_column))
        if date_range.end is not None:
            stmt = stmt.where(column_attr <= _parse_bound(date_range.end, True, date_column))
        return stmt

    if canonical.kind == FilterKind.LIST:
        return stmt.where(column_attr.in_(list(canonical.value)))

    if canonical.kind == FilterKind.MAPPING:
        members = _scalar_members(canonical.value.values())
        if members:
            return stmt.where(column_attr.in_(members))
        return stmt

    return stmt.where(column_attr == canonical.value)


def _eager_load_option(model, path: str):
    option = None
    current = model
    for part in path.split("."):
        attr = getattr(current, part, None)
        if attr is None or not hasattr(attr.property, "mapper"):
            raise AttributeError(f"'{current.__name__}' has no relationship '{part}'")
        option = selectinload(attr) if option is None else option.selectinload(attr)
        current = attr.property.mapper.class_
    return option


def apply_ordering(
    stmt: Select,
    entity: EntityDescriptor,
    sort_field: str,
    sort_direction: str,
    warnings: List[str],
) -> Tuple[Select, str]:
    """
    ORDER BY the sort field, then by primary key so chunk boundaries are stable.
    """
    model = entity.model
    primary_keys = list(sa_inspect(model).primary_key)

    if entity.ordering is not None:
        stmt = entity.ordering(stmt, sort_field, sort_direction)
        resolved = sort_field
        sort_is_pk = False
    else:
        resolved = resolve_column_name(entity, sort_field) if sort_field else None
        if resolved is None:
            fallback = "created_at" if "created_at" in entity.column_names() else primary_keys[0].key
            message = f"Sort field '{sort_field}' not found, ordering by '{fallback}'"
            logger.warning(message, entity=entity.name)
            warnings.append(message)
            resolved = fallback

        sort_column = getattr(model, resolved)
        stmt = stmt.order_by(sort_column.asc() if sort_direction == "asc" else sort_column.desc())
        sort_is_pk = len(primary_keys) == 1 and primary_keys[0].key == resolved

    # Deterministic tiebreaker
    if not sort_is_pk:
        stmt = stmt.order_by(*[pk.asc() for pk in primary_keys])

    return stmt, resolved


def build_export_query(
    entity: EntityDescriptor,
    filters: FilterSet,
    sort_field: str = "created_at",
    sort_direction: str = "desc",
    eager_loads: Optional[Sequence[str]] = None,
    generic_filters: Sequence[str] = (),
) -> QueryPlan:
    """
    Build the export query plan for an entity.

    Args:
        entity: Registered entity descriptor
        filters: Canonical filter set
        sort_field: Field to order by (resolved like filter names)
        sort_direction: "asc" or "desc"
        eager_loads: Relationships to preload; defaults to the entity declaration
        generic_filters: Filter names dropped without a warning when the entity
            has no matching column

    Returns:
        QueryPlan ready for counting and streaming
    """
    model = entity.model
    warnings: List[str] = []
    applied: List[str] = []
    dropped: List[str] = []

    logger.info("Building export query", entity=entity.name, filters=len(filters))

    direction = (sort_direction or "desc").lower()
    if direction not in SORT_DIRECTIONS:
        message = f"Invalid sort direction '{sort_direction}', using 'desc'"
        logger.warning(message, entity=entity.name)
        warnings.append(message)
        direction = "desc"

    # ==================================================================
    # STEP 1: Apply filters
    # ==================================================================
    filtered = select(model)

    for name, canonical in filters.items():
        handler = entity.filter_handlers.get(name)
        if handler is not None:
            filtered = handler(filtered, canonical)
            applied.append(name)
            continue

        column_name = resolve_column_name(entity, name)
        if column_name is None and name in generic_filters:
            logger.debug("Generic filter does not apply to entity", entity=entity.name, filter=name)
            dropped.append(name)
            continue
        if column_name is None:
            message = f"Column not found for filter '{name}', skipping"
            logger.warning(message, entity=entity.name, filter=name)
            warnings.append(message)
            dropped.append(name)
            continue

        try:
            filtered = compile_filter(filtered, getattr(model, column_name), canonical)
        except (TypeError, ValueError) as e:
            message = f"Invalid value for filter '{name}', skipping: {e}"
            logger.warning(message, entity=entity.name, filter=name)
            warnings.append(message)
            dropped.append(name)
            continue
        applied.append(name)

    # ==================================================================
    # STEP 2: Eager loading
    # ==================================================================
    loads = tuple(entity.eager_loads if eager_loads is None else eager_loads)
    statement = filtered
    for path in loads:
        try:
            statement = statement.options(_eager_load_option(model, path))
        except AttributeError as e:
            message = f"Cannot eager load '{path}': {e}"
            logger.warning(message, entity=entity.name)
            warnings.append(message)

    # ==================================================================
    # STEP 3: Apply sorting (NO PAGINATION)
    # ==================================================================
    statement, resolved_sort = apply_ordering(statement, entity, sort_field, direction, warnings)

    logger.info(
        "Export query built",
        entity=entity.name,
        applied=applied,
        dropped=dropped,
        sort=f"{resolved_sort} {direction}",
    )

    return QueryPlan(
        entity=entity,
        filtered=filtered,
        statement=statement,
        applied_filters=tuple(applied),
        dropped_filters=tuple(dropped),
        sort_field=resolved_sort,
        sort_direction=direction,
        eager_loads=loads,
        warnings=tuple(warnings),
    )
