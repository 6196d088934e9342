from __future__ import annotations

from collections import abc
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Optional

from entityql.exc import ValidationMessage
from entityql.search import SortingDirection
from entityql.typing import FilterDict, RawRow, SAInstance


@dataclass(frozen=True)
class JoinSpec:
    """ A model to join into a query

    Example:
        # JOIN employees AS "Employee" ON employees.id = managers.id
        JoinSpec('Employee', on=('Manager', 'id', 'id'))
    """
    # Registry name of the model to join
    model: str

    # Join condition: (left model key, left field, field of the joined model)
    on: tuple[str, str, str]

    # LEFT OUTER JOIN?
    outer: bool = False

    # The name of the joined sub-record in composite rows. Default: the model name
    name: Optional[str] = None

    @property
    def key(self) -> str:
        return self.name or self.model


@dataclass(frozen=True)
class QuerySpec:
    """ A description of a query the engine needs executed

    When `joins` are given, every row is a composite row: the queried model first, then every joined model,
    each available under its key. Without joins, every row is a model instance.
    """
    # Registry name of the model to query
    model: str

    # Filter: field => value. See `FilterDict`
    filters: FilterDict = field(default_factory=dict)

    # Models to join
    joins: tuple[JoinSpec, ...] = ()

    # Sorting: (field, direction) on the queried model. Default: by primary key
    sort: tuple[tuple[str, SortingDirection], ...] = ()

    # Pagination
    limit: Optional[int] = None
    offset: Optional[int] = None


class Storage:
    """ Storage query executor

    Executes queries, loads and persists records.
    Implementations must be request-scoped: no sharing between concurrent requests.
    """

    def fetch(self, query: QuerySpec) -> list[RawRow]:
        """ Execute a query, return raw rows: model instances, or composite rows when joins are used """
        raise NotImplementedError

    def count(self, query: QuerySpec) -> int:
        """ Count the rows matching the query. Ignores limit, offset, sort """
        raise NotImplementedError

    def get(self, model: str, id: Any) -> Optional[SAInstance]:
        """ Load one instance by primary key """
        raise NotImplementedError

    def new(self, model: str) -> SAInstance:
        """ Create a fresh instance of a model """
        raise NotImplementedError

    def transaction(self) -> AbstractContextManager:
        """ Group writes: commit on success, roll back everything if an exception escapes """
        raise NotImplementedError

    def save(self, instance: SAInstance) -> list[ValidationMessage]:
        """ Persist an instance within the current transaction

        Generated primary keys must be available on the instance when this method returns.

        Returns:
            Validation messages. An empty list means success
        """
        raise NotImplementedError

    def delete(self, instance: SAInstance) -> list[ValidationMessage]:
        """ Delete an instance within the current transaction

        Returns:
            Error messages. An empty list means success
        """
        raise NotImplementedError


def is_multiple_values(value: Any) -> bool:
    """ Does this filter value mean "IN"? """
    return isinstance(value, (list, tuple, set, frozenset, abc.KeysView))
