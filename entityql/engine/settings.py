from __future__ import annotations

import dataclasses
from typing import Optional


# Policies for unknown relation names in the "with" selector
UNKNOWN_RELATIONS_IGNORE = 'ignore'
UNKNOWN_RELATIONS_WARN = 'warn'
UNKNOWN_RELATIONS_ERROR = 'error'


@dataclasses.dataclass
class EntitySettings:
    """ Settings for Entity

    This object defines how relations are resolved and what goes into the response metadata
    """
    # Load has-many relations with one query per relation, for all primary records at once.
    # When disabled, every primary record gets its own query
    batch_has_many: bool = True

    # Expect belongs-to records to be joined into the primary query, and reuse them.
    # When disabled, every belongs-to record gets its own query
    embed_belongs_to: bool = False

    # Diagnostics: add query count & time to the metadata, log timing laps
    debug: bool = False

    # The `limit` you get by default, if not specified
    default_limit: Optional[int] = 10

    # The max number of items you get, regardless of the limit
    max_limit: Optional[int] = None

    # What to do with relation names that the model does not have: "ignore", "warn", "error"
    unknown_relations: str = UNKNOWN_RELATIONS_IGNORE

    def __post_init__(self):
        assert self.unknown_relations in (UNKNOWN_RELATIONS_IGNORE, UNKNOWN_RELATIONS_WARN, UNKNOWN_RELATIONS_ERROR), \
            f'Invalid `unknown_relations` policy: {self.unknown_relations!r}'

    def get_final_limit(self, limit: Optional[int]) -> Optional[int]:
        """ Callback that fine-tunes the `limit` of a query by applying default and max limits """
        # Apply default limit
        if not limit:
            limit = self.default_limit

        # Apply max limit
        if limit and self.max_limit:
            limit = min(limit, self.max_limit)

        # Done
        return limit
