### advanced_export/exports/columns.py

"""
Column Resolution

Validates requested export columns against the entity's exportable fields and
falls back to the entity defaults when nothing was selected.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from advanced_export.exports.config import ExportConfig
from advanced_export.exports.entities import EntityDescriptor
from advanced_export.exports.exceptions import ColumnSelectionError
from advanced_export.exports.messages import get_message
from advanced_export.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ColumnSpec:
    """A rendered column: the record field and its header title."""
    field: str
    title: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "title": self.title}


def humanize(field_name: str) -> str:
    """``billing_address.zip_code`` -> ``Billing Address Zip Code``"""
    words = field_name.replace(".", " ").replace("_", " ").split()
    return " ".join(word.capitalize() for word in words)


def column_title(
    field_name: Optional[str],
    title: Optional[str],
    labels: Mapping[str, str],
    locale: str = "en",
) -> str:
    """Explicit title, then the declared label, then the humanized field name."""
    if title and str(title).strip():
        return str(title).strip()
    if field_name and labels.get(field_name):
        return labels[field_name]
    if field_name and humanize(field_name):
        return humanize(field_name)
    return get_message("undefined_title", locale)


def _coerce(column: Union[ColumnSpec, Mapping[str, Any], Any]) -> Dict[str, Any]:
    if isinstance(column, ColumnSpec):
        return column.to_dict()
    if isinstance(column, Mapping):
        return {"field": column.get("field"), "title": column.get("title")}
    return {"field": getattr(column, "field", None), "title": getattr(column, "title", None)}


def default_columns(entity: EntityDescriptor, config: ExportConfig) -> List[ColumnSpec]:
    """
    Columns used when the request selects none.

    Entities declaring export metadata get their default selection capped at
    ``columns.max_default``; the others get the configured fallback set.
    """
    if not entity.declares_columns:
        return [
            ColumnSpec(field=field_name, title=title)
            for field_name, title in config.fallback_columns.items()
        ]

    labels = entity.columns
    selection = entity.default_columns
    if not selection:
        selection = [{"field": f, "title": t} for f, t in labels.items()]

    resolved = []
    for column in selection[: config.columns.max_default]:
        data = _coerce(column)
        resolved.append(
            ColumnSpec(
                field=data["field"],
                title=column_title(data["field"], data["title"], labels, config.locale),
            )
        )
    return resolved


def simple_columns(entity: EntityDescriptor, config: ExportConfig) -> List[ColumnSpec]:
    """Every exportable field with its declared label."""
    return [
        ColumnSpec(field=field_name, title=column_title(field_name, title, {}, config.locale))
        for field_name, title in entity.exportable_fields(config.fallback_columns).items()
    ]


def resolve_columns(
    entity: EntityDescriptor,
    requested: Optional[Iterable[Any]],
    config: ExportConfig,
) -> List[ColumnSpec]:
    """
    Resolve the requested column selection.

    Raises ColumnSelectionError when the selection size is out of bounds or a
    field is not exportable; nothing is silently truncated.
    """
    requested = list(requested or [])

    if not requested:
        columns = default_columns(entity, config)
        logger.debug("Using default export columns", entity=entity.name, count=len(columns))
        return columns

    bounds = config.columns
    if len(requested) < bounds.min_required:
        raise ColumnSelectionError(
            f"At least {bounds.min_required} column(s) must be selected, got {len(requested)}."
        )
    if len(requested) > bounds.max_selectable:
        raise ColumnSelectionError(
            f"At most {bounds.max_selectable} columns can be selected, got {len(requested)}."
        )

    labels = entity.exportable_fields(config.fallback_columns)
    resolved = []
    for column in requested:
        data = _coerce(column)
        field_name = data["field"]
        if not field_name or field_name not in labels:
            raise ColumnSelectionError(
                f"Field '{field_name}' is not exportable for '{entity.name}'."
            )
        resolved.append(
            ColumnSpec(
                field=field_name,
                title=column_title(field_name, data["title"], labels, config.locale),
            )
        )
    return resolved
