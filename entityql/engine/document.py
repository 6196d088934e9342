""" Response Document: records grouped by resource type, plus metadata """

from __future__ import annotations

import math
from collections import abc
from typing import Any, Optional

from entityql.typing import RecordDict


# The key for the metadata entry
META = 'meta'


class ResponseDocument(dict):
    """ Response Document: { type name => [record, ...], 'meta': {...} }

    Records are only ever appended. Side-loaded records may repeat across primary records.

    Example:
        {
            'articles': [{'id': 1, 'author_id': 7, 'comment_ids': [1, 2]}],
            'users': [{'id': 7, ...}],
            'comments': [{'id': 1, ...}, {'id': 2, ...}],
            'meta': {'total_pages': 1, 'total_record_count': 1, 'returned_record_count': 1},
        }
    """

    def update_type(self, table: str, records: abc.Iterable[RecordDict]):
        """ Append records to a type bucket; create the bucket if missing """
        self.setdefault(table, []).extend(records)

    def records(self, table: str) -> list[RecordDict]:
        return self.get(table, [])

    def has_record(self, table: str, match_fields: abc.Sequence[str], value: Any) -> bool:
        """ Is there a record in the bucket whose match field equals the value?

        The match field is the first of `match_fields` that the bucket's records have a value for.
        The last one is used as a fallback.
        """
        records = self.records(table)
        if not records:
            return False

        match_field = pick_match_field(records[0], match_fields)
        return any(record.get(match_field) == value for record in records)

    @property
    def meta(self) -> dict[str, Any]:
        return self.setdefault(META, {})

    def append_meta(self, found_set: int, record_count: int, limit: Optional[int], *,
                    query_count: Optional[int] = None, query_timer_ms: Optional[float] = None):
        """ Add pagination metadata

        Args:
            found_set: The number of primary records returned
            record_count: The number of records matching the search, before limit
            limit: The page size
            query_count: Diagnostics: the number of database queries
            query_timer_ms: Diagnostics: time spent in the database
        """
        meta = self.meta
        meta['total_pages'] = total_pages(record_count, limit)
        meta['total_record_count'] = record_count
        meta['returned_record_count'] = found_set

        if query_count is not None:
            meta['database_query_count'] = query_count
        if query_timer_ms is not None:
            meta['database_query_timer'] = f'{query_timer_ms:.2f} ms'


def total_pages(record_count: int, limit: Optional[int]) -> int:
    """ Count pages

    Without a limit, everything fits on one page
    """
    if not limit:
        return 1 if record_count else 0
    return math.ceil(record_count / limit)


def pick_match_field(record: RecordDict, match_fields: abc.Sequence[str]) -> str:
    """ Pick the first field that has a value in the record, fall back to the last one """
    for name in match_fields[:-1]:
        if record.get(name) is not None:
            return name
    return match_fields[-1]
