""" Relationship Resolver: fetch related records for every primary record

Every active relation is dispatched by its type through a strategy table:

* BELONGS_TO: one referenced record. Skipped if the document already has it; reused if it's embedded into the row
* HAS_ONE: nothing to do: already merged into the base record by RowExtractor
* HAS_MANY: fetch now, or register for the batched pass (see `batch.py`)
* HAS_MANY_TO_MANY: fetch now, through the intermediate model
"""

from __future__ import annotations

import logging
from collections import abc
from typing import Any, Union, TYPE_CHECKING

from entityql.relation import Relation, RelationType
from entityql.typing import RawRow, RecordDict

from .batch import HasManyRegistry, local_key_value
from .extractor import load_relation_records
from .queries import related_query, related_filter_key, many_to_many_query


if TYPE_CHECKING:
    from .entity import Entity


logger = logging.getLogger(__name__)


class RelationshipResolver:
    """ Resolves active relations of one primary record at a time

    Created for one request: writes into `entity.document`, `entity.base_record`,
    and registers deferred has-many requests into the `has_many_registry`.
    """

    def __init__(self, entity: Entity, has_many_registry: HasManyRegistry):
        self.entity = entity
        self.registry = entity.registry
        self.storage = entity.storage
        self.settings = entity.settings
        self.has_many_registry = has_many_registry

        # Inheritance parents: their relations are skipped because parents are merged into the base record
        self.parent_models = frozenset(self.registry.parent_models(entity.model_info.name))  # type: ignore[arg-type]

        # Strategy table: relation type => handler
        self.strategies: dict[RelationType, abc.Callable[[Relation, RawRow, RecordDict], None]] = {
            RelationType.BELONGS_TO: self.process_belongs_to,
            RelationType.HAS_ONE: self.process_has_one,
            RelationType.HAS_MANY: self.process_has_many,
            RelationType.HAS_MANY_TO_MANY: self.process_has_many_to_many,
        }
        assert set(self.strategies) == set(RelationType), 'Every relation type must have a strategy'

    def process_relationships(self, raw_row: RawRow):
        """ Resolve every active relation for the current base record, in activation order """
        base_record = self.entity.base_record
        for relation in self.entity.active_relations.values():  # type: ignore[union-attr]
            if relation.custom_processing:
                self.entity.hooks.process_custom_relationship(self.entity, relation, raw_row)
            elif relation.referenced_model in self.parent_models:
                continue
            else:
                self.strategies[relation.type](relation, raw_row, base_record)

    # region Strategies

    def process_belongs_to(self, relation: Relation, raw_row: RawRow, base_record: RecordDict):
        foreign_key_value = base_record.get(relation.fields)
        if foreign_key_value is None:
            return

        # Shortcut: the referenced record is already in the document
        pk_name = self.registry.get(relation.referenced_model).primary_key_name
        match_fields = (relation.referenced_fields, pk_name, 'id')
        if self.entity.document.has_record(relation.table_name, match_fields, foreign_key_value):  # type: ignore[arg-type]
            logger.debug('Skipping %s #%s: already loaded', relation.key, foreign_key_value)
            return

        # Reuse the record if it's been joined into the primary row; fetch otherwise
        embedded = self.entity.extractor.embedded_record(raw_row, relation) if self.settings.embed_belongs_to else None
        if embedded is not None:
            related_records = load_relation_records(self.registry, [embedded], relation)
        else:
            related_records = self.fetch_related_records(relation, foreign_key_value)

        if related_records:
            self.normalize_related_records(base_record, related_records, relation)

    def process_has_one(self, relation: Relation, raw_row: RawRow, base_record: RecordDict):
        # Has-one records are merged into the base record
        pass

    def process_has_many(self, relation: Relation, raw_row: RawRow, base_record: RecordDict):
        local_value = self.local_key_value(relation, base_record)

        # Batching: register the key, fetch later
        if self.settings.batch_has_many:
            self.has_many_registry.register(relation, local_value)
            return

        if local_value is None:
            related_records = []
        else:
            related_records = self.fetch_related_records(relation, local_value)
        self.normalize_related_records(base_record, related_records, relation)

    def process_has_many_to_many(self, relation: Relation, raw_row: RawRow, base_record: RecordDict):
        local_value = self.local_key_value(relation, base_record)

        if local_value is None:
            related_records = []
        else:
            rows = self.storage.fetch(many_to_many_query(self.registry, relation, local_value))
            related_records = load_relation_records(self.registry, rows, relation)
        self.normalize_related_records(base_record, related_records, relation)

    # endregion

    def fetch_related_records(self, relation: Relation, value: Any) -> list[RecordDict]:
        """ Query related records by `relation.referenced_fields`, flatten them """
        filters = {related_filter_key(self.registry, relation): value}
        rows = self.storage.fetch(related_query(self.registry, relation, filters))
        return load_relation_records(self.registry, rows, relation)

    def local_key_value(self, relation: Relation, base_record: RecordDict) -> Any:
        """ Get the key to look related records up by """
        return local_key_value(relation, base_record, self.entity.primary_key_value)

    def normalize_related_records(self, base_record: RecordDict, related_records: Union[RecordDict, list[RecordDict]],
                                  relation: Relation) -> Union[Any, list[Any]]:
        """ Put related records into the document and link them to the base record

        Belongs-to linkage is the foreign key that is already in the base record.
        To-many linkage is the "<singular table name>_ids" list of primary keys.

        Returns:
            Linkage: a primary key (to-one), or a list of primary keys (to-many)
        """
        pk_name = self.registry.get(relation.referenced_model).primary_key_name

        # A bare record and a one-element list are the same thing
        if isinstance(related_records, dict):
            related_records = [related_records]

        linkage: Union[Any, list[Any]]
        if relation.is_to_many:
            linkage = [record.get(pk_name) for record in related_records]  # type: ignore[arg-type]
            base_record[relation.ids_field] = linkage
        else:
            linkage = related_records[0].get(pk_name) if related_records else None  # type: ignore[arg-type]

        self.entity.document.update_type(relation.table_name, related_records)
        return linkage

