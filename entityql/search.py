""" Search Specification: what the client asked for

Pagination, the requested relations selector, filters, sorting.
Constructed once per request, read-only during resolution.
"""

from __future__ import annotations

from collections import abc
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, TYPE_CHECKING

from entityql import exc


if TYPE_CHECKING:
    from entityql.engine.settings import EntitySettings


# Special values for the `with_` selector
WITH_NONE = 'none'
WITH_ALL = 'all'


@dataclass
class SearchSpec:
    """ Search Specification

    Example:
        SearchSpec(limit=20, offset=40, with_='comments,tags', search_fields={'status': 'published'})
    """
    # Pagination
    limit: Optional[int] = None
    offset: int = 0

    # Produce pagination metadata?
    is_pager: bool = True

    # Requested relations: "none", "all", or a comma-separated list of table or model names
    with_: str = WITH_NONE

    # Only count the records: do not load them
    is_count: bool = False

    # Filters: field => value. Lists, tuples and sets mean "IN"
    search_fields: dict[str, Any] = field(default_factory=dict)

    # Sorting: "field", "field+", "field-"
    sort: list[str] = field(default_factory=list)

    # Set by the entity for single-record lookups. Override `limit` and `search_fields`
    entity_limit: Optional[int] = None
    entity_search_fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, params: abc.Mapping[str, Any]) -> SearchSpec:
        """ Build a SearchSpec from parsed request parameters

        Known keys: limit, offset, with, count, pager, sort. Everything else is a search field.

        Raises:
            exc.SearchSpecError
        """
        params = dict(params)

        limit = params.pop('limit', None)
        if limit is not None and not isinstance(limit, int):
            raise exc.SearchSpecError('"limit" must be an integer')
        if limit is not None and limit <= 0:
            raise exc.SearchSpecError('"limit" must be positive')

        offset = params.pop('offset', 0)
        if not isinstance(offset, int) or offset < 0:
            raise exc.SearchSpecError('"offset" must be a non-negative integer')

        with_ = params.pop('with', WITH_NONE)
        if not isinstance(with_, str):
            raise exc.SearchSpecError('"with" must be a string')

        sort = params.pop('sort', [])
        if isinstance(sort, str):
            sort = [name for name in sort.split(',') if name]
        if not isinstance(sort, list):
            raise exc.SearchSpecError('"sort" must be a list or a comma-separated string')

        return cls(
            limit=limit,
            offset=offset,
            with_=with_,
            is_count=_parse_bool('count', params.pop('count', False)),
            is_pager=_parse_bool('pager', params.pop('pager', True)),
            sort=sort,
            search_fields=params,
        )

    def get_with(self) -> str:
        return self.with_.strip() or WITH_NONE

    def get_limit(self, settings: Optional[EntitySettings] = None) -> Optional[int]:
        """ Get the effective limit

        `entity_limit` wins; otherwise, the requested limit is fine-tuned by the settings
        """
        if self.entity_limit is not None:
            return self.entity_limit
        if settings is not None:
            return settings.get_final_limit(self.limit)
        return self.limit

    def get_filters(self) -> dict[str, Any]:
        """ Get the effective filters """
        return {**self.search_fields, **self.entity_search_fields}

    def get_sort(self) -> list[tuple[str, SortingDirection]]:
        """ Parse sorting fields into (name, direction) pairs """
        return [_parse_sort_field(name) for name in self.sort]


class SortingDirection(Enum):
    ASC = '+'
    DESC = '-'


def _parse_sort_field(name: str) -> tuple[str, SortingDirection]:
    """ Parse a "field", "field+", "field-" string """
    end_c = name[-1:]
    if end_c == '-' or end_c == '+':
        return name[:-1], SortingDirection(end_c)
    else:
        return name, SortingDirection.ASC


_TRUE_STRINGS = frozenset(('1', 'true', 'yes', 'on'))
_FALSE_STRINGS = frozenset(('0', 'false', 'no', 'off', ''))


def _parse_bool(name: str, value: Any) -> bool:
    """ Parse a flag: a bool, 0/1, or a query string value like "true"/"false" """
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        if value.strip().lower() in _TRUE_STRINGS:
            return True
        if value.strip().lower() in _FALSE_STRINGS:
            return False
    raise exc.SearchSpecError(f'"{name}" must be a boolean')
