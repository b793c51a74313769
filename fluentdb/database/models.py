"""
Model declarations and the factory handing out builders for them.

Models declare their relation descriptor as class keywords::

    class UserEventModel(Model, table='user_events',
                         foreign_keys={'users': 'user_id', 'events': 'event_id'}):
        pass

Each foreign key maps a related table to the key column on the declaring
table. The descriptor is built once, when the class is defined.
"""

import logging
from typing import Any, ClassVar, Dict, Optional, Type

from .connection import ConnectionContext, default_context
from .query_builder import QueryBuilder
from .relations import ModelDescriptor

logger = logging.getLogger(__name__)


class Model:
    """Base class for declared models"""

    descriptor: ClassVar[ModelDescriptor]

    def __init_subclass__(cls, table: Optional[str] = None,
                          foreign_keys: Optional[Dict[str, str]] = None,
                          primary_key: Optional[str] = None, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        inherited = getattr(cls, 'descriptor', None)

        if table is None:
            if inherited is None:
                raise TypeError(f"Model {cls.__name__} must declare a table")
            table = inherited.table
        if foreign_keys is None:
            foreign_keys = dict(inherited.foreign_keys) if inherited is not None else {}
        if primary_key is None:
            primary_key = inherited.primary_key if inherited is not None else 'id'

        cls.descriptor = ModelDescriptor(table, foreign_keys, primary_key)


class ModelFactory:
    """Creates a fresh builder bound to a model's descriptor for every request"""

    def __init__(self, context: Optional[ConnectionContext] = None):
        self.context = context or default_context()

    def get(self, model: Type[Model]) -> QueryBuilder:
        if not (isinstance(model, type) and issubclass(model, Model)) or model is Model:
            raise TypeError(f"{model!r} is not a declared Model subclass")
        logger.debug(f"Building query builder for {model.__name__} ({model.descriptor.table})")
        return QueryBuilder(model.descriptor, self.context)
