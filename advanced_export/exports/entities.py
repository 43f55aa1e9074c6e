### advanced_export/exports/entities.py

"""
Exportable entity registry.

Models opt into rich export metadata by subclassing ``ExportableMixin``. Every
model that can be exported is registered once; registration decides whether it
is an ``ExportableEntity`` (declares its own columns) or a ``DefaultEntity``
(falls back to the configured global column set).

    @export_registry.register("customers", eager_loads=["orders"])
    class Customer(ExportableMixin, Base):
        ...
"""

import importlib
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import Select
from sqlalchemy import inspect as sa_inspect

from advanced_export.exports.exceptions import UnknownEntityError
from advanced_export.exports.filters import CanonicalFilter
from advanced_export.utils.logger import get_logger

logger = get_logger(__name__)

FilterHandler = Callable[[Select, CanonicalFilter], Select]
OrderingHandler = Callable[[Select, str, str], Select]


class ExportableMixin:
    """
    Mixin for models that declare their own export metadata.

    Override ``export_columns`` (field -> label) and optionally
    ``default_export_columns`` (pre-selected ``{field, title}`` entries).
    """

    @classmethod
    def export_columns(cls) -> Dict[str, str]:
        raise NotImplementedError

    @classmethod
    def default_export_columns(cls) -> List[Dict[str, str]]:
        return [
            {"field": field_name, "title": title}
            for field_name, title in cls.export_columns().items()
        ]

    @classmethod
    def export_column_fields(cls) -> List[str]:
        return list(cls.export_columns().keys())

    @classmethod
    def is_exportable_field(cls, field_name: str) -> bool:
        return field_name in cls.export_columns()

    @classmethod
    def export_field_title(cls, field_name: str) -> Optional[str]:
        return cls.export_columns().get(field_name)


@dataclass(frozen=True)
class EntityDescriptor:
    """
    Registration record for an exportable model.

    ``columns`` is None for entities without export metadata; the column
    resolver then uses the configured fallback set.
    """
    name: str
    model: Any
    columns: Optional[Dict[str, str]] = None
    default_columns: Optional[List[Dict[str, str]]] = None
    eager_loads: Sequence[str] = ()
    filter_handlers: Dict[str, FilterHandler] = field(default_factory=dict)
    ordering: Optional[OrderingHandler] = None

    @property
    def declares_columns(self) -> bool:
        return self.columns is not None

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    def column_names(self) -> List[str]:
        """Names of the model's mapped table columns."""
        return [prop.key for prop in sa_inspect(self.model).column_attrs]

    def exportable_fields(self, fallback_columns: Dict[str, str]) -> Dict[str, str]:
        return dict(self.columns) if self.columns is not None else dict(fallback_columns)


class ExportableEntity(EntityDescriptor):
    """Entity declaring its own export columns and defaults."""


class DefaultEntity(EntityDescriptor):
    """Entity without export metadata; uses the global fallback columns."""


class EntityRegistry:
    """Maps entity type identifiers to their export descriptors."""

    def __init__(self):
        self._entities: Dict[str, EntityDescriptor] = {}

    def register(
        self,
        name: str,
        model: Any = None,
        eager_loads: Sequence[str] = (),
        filter_handlers: Optional[Dict[str, FilterHandler]] = None,
        ordering: Optional[OrderingHandler] = None,
    ):
        """
        Register a model for export. Usable directly or as a class decorator.
        """

        def decorator(model_cls):
            if name in self._entities:
                raise ValueError(f"Duplicate export entity registration for '{name}'")

            handlers = dict(filter_handlers or {})
            if isinstance(model_cls, type) and issubclass(model_cls, ExportableMixin):
                descriptor = ExportableEntity(
                    name=name,
                    model=model_cls,
                    columns=dict(model_cls.export_columns()),
                    default_columns=list(model_cls.default_export_columns()),
                    eager_loads=tuple(eager_loads),
                    filter_handlers=handlers,
                    ordering=ordering,
                )
            else:
                descriptor = DefaultEntity(
                    name=name,
                    model=model_cls,
                    eager_loads=tuple(eager_loads),
                    filter_handlers=handlers,
                    ordering=ordering,
                )

            self._entities[name] = descriptor
            logger.info(
                "Registered export entity",
                entity=name,
                kind=type(descriptor).__name__,
                eager_loads=list(eager_loads),
            )
            return model_cls

        if model is not None:
            decorator(model)
            return self._entities[name]
        return decorator

    def get(self, name: str) -> EntityDescriptor:
        try:
            return self._entities[name]
        except KeyError as e:
            raise UnknownEntityError(name) from e

    def unregister(self, name: str) -> None:
        self._entities.pop(name, None)

    def names(self) -> List[str]:
        return sorted(self._entities.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._entities


export_registry = EntityRegistry()


def load_entity_modules(modules: Sequence[str]) -> List[str]:
    """
    Import the modules that register exportable models.

    Registration happens at import time, so the API and the worker both call
    this on startup with the configured module list.
    """
    loaded = []
    for module_name in modules:
        importlib.import_module(module_name)
        loaded.append(module_name)
    if loaded:
        logger.info("Loaded export entity modules", modules=loaded, entities=export_registry.names())
    return loaded
