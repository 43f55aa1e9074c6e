### advanced_export/exports/renderer.py

"""
Export Renderer

Writes record batches to a spreadsheet file incrementally:
- openpyxl write-only workbooks for xlsx
- csv.writer for csv

Rows are written as batches arrive, so a caller streaming from the database
never holds more than one batch in memory.
"""

import csv
import io
import json
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, BinaryIO, Callable, Dict, Iterable, List, Mapping

from openpyxl import Workbook
from openpyxl.cell import WriteOnlyCell
from openpyxl.styles import Alignment, Font

from advanced_export.exports.columns import ColumnSpec
from advanced_export.exports.config import ExportConfig
from advanced_export.exports.entities import EntityDescriptor
from advanced_export.exports.exceptions import ExportExecutionError, UnknownTemplateError
from advanced_export.exports.messages import get_message
from advanced_export.utils.logger import get_logger

logger = get_logger(__name__)

SIMPLE_TEMPLATE = "default-simple"
ADVANCED_TEMPLATE = "default-advanced"

MEDIA_TYPES = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv",
}


class CellFormatter:
    """Formats record values for spreadsheet cells."""

    def __init__(self, date_format: str, date_only_format: str, locale: str = "en"):
        self.date_format = date_format
        self.date_only_format = date_only_format
        self.yes = get_message("yes", locale)
        self.no = get_message("no", locale)

    @classmethod
    def from_config(cls, config: ExportConfig) -> "CellFormatter":
        return cls(config.date_format, config.date_only_format, config.locale)

    def format(self, value: Any) -> Any:
        if value is None:
            return "-"
        # bool before numbers: bool is an int subclass
        if isinstance(value, bool):
            return self.yes if value else self.no
        if isinstance(value, datetime):
            return value.strftime(self.date_format)
        if isinstance(value, date):
            return value.strftime(self.date_only_format)
        if isinstance(value, time):
            return value.isoformat()
        if isinstance(value, Decimal):
            return float(value)
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, (Mapping, list, tuple, set)):
            return json.dumps(_plain(value), default=str, ensure_ascii=False)
        if isinstance(value, (int, float, str)):
            return value
        return str(value)


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_plain(v) for v in value]
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    return value


def get_field_value(record: Any, path: str) -> Any:
    """
    Read a possibly dotted field from a record (``customer.address.city``).

    Collections along the path yield a list of the nested values.
    """
    current = record
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, (list, tuple)):
            return [get_field_value(item, part) for item in current]
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


HeaderBuilder = Callable[[List[ColumnSpec], str], List[str]]
RowBuilder = Callable[[Any, List[ColumnSpec], CellFormatter], List[Any]]


def default_header(columns: List[ColumnSpec], locale: str) -> List[str]:
    return [column.title or get_message("undefined_title", locale) for column in columns]


def default_row(record: Any, columns: List[ColumnSpec], formatter: CellFormatter) -> List[Any]:
    return [formatter.format(get_field_value(record, column.field)) for column in columns]


@dataclass(frozen=True)
class ExportTemplate:
    """How header and data rows are produced for a sheet."""
    name: str
    header: HeaderBuilder = default_header
    row: RowBuilder = default_row


class TemplateRegistry:
    """Render templates by identifier."""

    def __init__(self):
        self._templates: Dict[str, ExportTemplate] = {}
        self.register(ExportTemplate(SIMPLE_TEMPLATE))
        self.register(ExportTemplate(ADVANCED_TEMPLATE))

    def register(self, template: ExportTemplate) -> ExportTemplate:
        self._templates[template.name] = template
        return template

    def get(self, name: str, config: ExportConfig) -> ExportTemplate:
        template = self._templates.get(name)
        if template is not None:
            return template

        # Entity-specific names fall back to the package templates
        views = config.views
        if name.startswith(f"{views.path}."):
            fallback = ADVANCED_TEMPLATE if name.endswith(views.advanced_suffix) else SIMPLE_TEMPLATE
            logger.debug("Template not registered, using package template", template=name, fallback=fallback)
            return self._templates[fallback]

        raise UnknownTemplateError(name)


template_registry = TemplateRegistry()


def template_name(entity: EntityDescriptor, export_type: str, config: ExportConfig) -> str:
    """
    Render-template identifier for an entity and export type (simple/advanced).
    """
    advanced = export_type == "advanced"
    views = config.views
    if views.use_package_views:
        return ADVANCED_TEMPLATE if advanced else SIMPLE_TEMPLATE
    suffix = views.advanced_suffix if advanced else views.simple_suffix
    return f"{views.path}.{entity.table_name}{suffix}"


class ExportRenderer:
    """Converts record batches and a column spec into spreadsheet bytes."""

    def __init__(self, config: ExportConfig, templates: TemplateRegistry = None):
        self.config = config
        self.templates = templates or template_registry
        self.formatter = CellFormatter.from_config(config)

    def render(
        self,
        batches: Iterable[List[Any]],
        columns: List[ColumnSpec],
        template: str,
        file_format: str = "xlsx",
        sheet_title: str = "Export",
    ) -> bytes:
        """Render every batch and return the file content."""
        buffer = io.BytesIO()
        self.render_to(buffer, batches, columns, template, file_format, sheet_title)
        return buffer.getvalue()

    def render_to(
        self,
        fileobj: BinaryIO,
        batches: Iterable[List[Any]],
        columns: List[ColumnSpec],
        template: str,
        file_format: str = "xlsx",
        sheet_title: str = "Export",
    ) -> int:
        """
        Render into a binary file object.

        Returns:
            Number of data rows written
        """
        export_template = self.templates.get(template, self.config)
        header = export_template.header(columns, self.config.locale)

        try:
            if file_format == "xlsx":
                return self._render_excel(fileobj, batches, columns, export_template, header, sheet_title)
            elif file_format == "csv":
                return self._render_csv(fileobj, batches, columns, export_template, header)
        except (UnknownTemplateError, ExportExecutionError):
            raise
        except Exception as e:
            logger.error("Error rendering export", template=template, format=file_format, error=str(e), exc_info=True)
            raise ExportExecutionError(f"Rendering failed: {e}") from e

        raise ExportExecutionError(f"Unsupported export format: {file_format}")

    def _render_excel(self, fileobj, batches, columns, export_template, header, sheet_title) -> int:
        """
        Stream rows into an openpyxl write-only workbook.
        """
        workbook = Workbook(write_only=True)
        sheet = workbook.create_sheet(title=sheet_title[:31] or "Export")

        header_font = Font(bold=True)
        header_alignment = Alignment(horizontal="center", vertical="center")
        header_cells = []
        for title in header:
            cell = WriteOnlyCell(sheet, value=title)
            cell.font = header_font
            cell.alignment = header_alignment
            header_cells.append(cell)
        sheet.append(header_cells)

        record_count = 0
        for batch in batches:
            for record in batch:
                sheet.append(export_template.row(record, columns, self.formatter))
                record_count += 1

        workbook.save(fileobj)
        logger.info("Excel export rendered", rows=record_count, template=export_template.name)
        return record_count

    def _render_csv(self, fileobj, batches, columns, export_template, header) -> int:
        """
        Stream rows to CSV, flushing after each batch.
        """
        text = io.TextIOWrapper(fileobj, encoding="utf-8", newline="")
        record_count = 0
        try:
            writer = csv.writer(text)
            writer.writerow(header)
            for batch in batches:
                for record in batch:
                    writer.writerow(export_template.row(record, columns, self.formatter))
                    record_count += 1
                text.flush()
            text.flush()
        finally:
            text.detach()

        logger.info("CSV export rendered", rows=record_count, template=export_template.name)
        return record_count
