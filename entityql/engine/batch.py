""" Batched has-many resolution: one query per relation instead of one per primary record

While primary rows are processed, every has-many relation registers the local key of every record.
Once all rows are processed, `BatchedHasManyResolver` loads related records for all keys at once,
and fans them out to the primary records already in the document.
"""

from __future__ import annotations

import collections
import logging
from itertools import chain
from typing import Any, Optional, TYPE_CHECKING

from entityql.relation import Relation, RelationType
from entityql.typing import RecordDict

from .extractor import joined_sub_records, load_relation_record, main_instance
from .queries import field_owner, related_filter_key, related_query


if TYPE_CHECKING:
    from .entity import Entity


logger = logging.getLogger(__name__)


class HasManyRegistry:
    """ Local keys collected for every has-many relation

    Created for one request, consumed once by BatchedHasManyResolver
    """

    def __init__(self):
        # Relation key => local key values
        self._keys: dict[str, list[Any]] = {}

    def register(self, relation: Relation, value: Any):
        self._keys.setdefault(relation.key, []).append(value)

    def is_registered(self, relation: Relation) -> bool:
        return relation.key in self._keys

    def registered(self, relation: Relation) -> list[Any]:
        """ Get collected values in the order of registration, one per registration, no `None`s """
        return [value for value in self._keys.get(relation.key, ()) if value is not None]

    def keys(self, relation: Relation) -> list[Any]:
        """ Get collected values: de-duplicated, in the order of registration, no `None`s """
        return list(dict.fromkeys(self.registered(relation)))


class BatchedHasManyResolver:
    """ Executes deferred has-many requests, one query per relation """

    def __init__(self, entity: Entity, has_many_registry: HasManyRegistry):
        self.entity = entity
        self.registry = entity.registry
        self.has_many_registry = has_many_registry

    def process_delayed_relationships(self, primary_table: str):
        """ Load related records for every registered has-many relation

        Args:
            primary_table: The document bucket with primary records to link related records to
        """
        for relation in self.entity.active_relations.values():  # type: ignore[union-attr]
            if relation.type == RelationType.HAS_MANY and self.has_many_registry.is_registered(relation):
                self.process_relation(relation, primary_table)

    def process_relation(self, relation: Relation, primary_table: str):
        keys = self.has_many_registry.keys(relation)

        # The foreign key may be stored on an inheritance parent of the referenced model
        owner = field_owner(self.registry, relation.referenced_model, relation.referenced_fields)

        # Load, group by the foreign key
        grouped: dict[Any, list[RecordDict]] = collections.defaultdict(list)
        if keys:
            query = related_query(self.registry, relation, {related_filter_key(self.registry, relation): keys})
            for row in self.entity.storage.fetch(query):
                owner_instance = main_instance(row) if owner == relation.referenced_model else joined_sub_records(row)[owner]
                foreign_key_value = getattr(owner_instance, relation.referenced_fields)
                grouped[foreign_key_value].append(load_relation_record(self.registry, row, relation))
        logger.debug('Batch-loaded %s for %d keys', relation.key, len(keys))

        # Fan out: link to every primary record
        pk_name = self.registry.get(relation.referenced_model).primary_key_name
        primary_pk_name = self.entity.model_info.primary_key_name
        for record in self.entity.document.records(primary_table):
            local_value = local_key_value(relation, record, record.get(primary_pk_name))  # type: ignore[arg-type]
            record[relation.ids_field] = [related.get(pk_name) for related in grouped.get(local_value, ())]  # type: ignore[arg-type]

        # Side-load once per registration, as if every primary record had fetched its own
        self.entity.document.update_type(relation.table_name, chain.from_iterable(
            grouped.get(key, ()) for key in self.has_many_registry.registered(relation)
        ))


def local_key_value(relation: Relation, record: RecordDict, fallback: Optional[Any]) -> Any:
    """ Get the local key of a relation: the local field's value, or the primary key value as a fallback """
    value = record.get(relation.fields)
    return value if value is not None else fallback
