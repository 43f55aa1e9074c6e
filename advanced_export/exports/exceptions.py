# advanced_export/exports/exceptions.py

class ExportError(Exception):
    """Base exception for all export processing errors."""
    pass


class ExportValidationError(ExportError):
    """Raised when an export request is rejected before any query runs."""
    pass


class UnknownEntityError(ExportValidationError):
    """Raised when the requested entity type is not registered for export."""
    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"Entity type '{entity_type}' is not exportable.")


class ColumnSelectionError(ExportValidationError):
    """Raised when the requested column selection is out of bounds or unknown."""
    pass


class UnknownTemplateError(ExportValidationError):
    """Raised when a render template cannot be found."""
    def __init__(self, template: str):
        self.template = template
        super().__init__(f"Export template '{template}' is not registered.")


class NoDataError(ExportError):
    """Raised when the export query matches no records."""
    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"No records found to export for '{entity_type}'.")


class ExportExecutionError(ExportError):
    """Raised when querying, rendering or storing an export fails."""
    pass


class ExportStorageError(ExportExecutionError):
    """Raised when the generated file cannot be written to its disk."""
    def __init__(self, disk: str, path: str, reason: str):
        self.disk = disk
        self.path = path
        self.reason = reason
        super().__init__(f"Could not store export '{path}' on disk '{disk}': {reason}")


class ExportJobNotFoundError(ExportError):
    """Raised when a specific export job cannot be found."""
    def __init__(self, export_id: int):
        self.export_id = export_id
        super().__init__(f"Export job {export_id} not found.")
