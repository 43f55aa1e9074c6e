"""
Advanced Export

Filtered, column-configurable spreadsheet exports for SQLAlchemy models,
executed inline for small result sets and through Celery for large ones.
"""

__version__ = "1.0.0"
