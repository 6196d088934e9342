""" Row Extractor: flatten raw rows into records

A raw row is either a model instance (flat row), or a composite row: an `sa.Row` that bundles
the primary instance with instances of joined models (inheritance parents, has-one relations, embedded belongs-to).
"""

from __future__ import annotations

from collections import abc
from typing import Optional

import sqlalchemy as sa

from entityql.model import ModelInfo, ModelRegistry
from entityql.relation import Relation, RelationType
from entityql.typing import RawRow, RecordDict, SAInstance

from .columns import load_allowed_columns


class RowExtractor:
    """ Builds the Base Record for every primary row

    Merges into one record:
    * The primary model's allowed columns. These win on conflicts.
    * Allowed columns of every inheritance parent
    * Allowed columns of every active has-one relation. Has-one records are always inlined, never side-loaded.
    """

    def __init__(self, registry: ModelRegistry, model_info: ModelInfo, active_relations: abc.Mapping[str, Relation]):
        self.registry = registry
        self.model_info = model_info

        # Sub-records merged into the base record: join name => model. Parents are joined by model name.
        self.merged_models: dict[str, ModelInfo] = {
            parent.name: parent  # type: ignore[misc]
            for parent in registry.parent_chain(model_info.name)  # type: ignore[arg-type]
        }
        for relation in active_relations.values():
            if relation.type == RelationType.HAS_ONE:
                self.merged_models[relation.key] = registry.get(relation.referenced_model)

    def extract_main_row(self, raw_row: RawRow) -> RecordDict:
        """ Flatten a primary row into the Base Record """
        if not is_composite_row(raw_row):
            return load_allowed_columns(raw_row, self.model_info)

        # The primary instance is always the first one: joined models may be of the same class
        record = load_allowed_columns(main_instance(raw_row), self.model_info)
        others = [
            load_allowed_columns(instance, self.merged_models[name])
            for name, instance in joined_sub_records(raw_row).items()
            if instance is not None and name in self.merged_models
        ]
        return merge_records(record, *others)

    def embedded_record(self, raw_row: RawRow, relation: Relation) -> Optional[SAInstance]:
        """ Get the sub-record of a relation that was joined into the primary row

        The sub-record is looked up by the relation key, and then by the referenced model name.

        Returns:
            The instance, or `None` if it's not there
        """
        if not is_composite_row(raw_row):
            return None

        sub_records = joined_sub_records(raw_row)
        for name in (relation.key, relation.referenced_model):
            if name in sub_records:
                return sub_records[name]
        return None


def load_relation_records(registry: ModelRegistry, rows: abc.Iterable[RawRow], relation: Relation) -> list[RecordDict]:
    """ Flatten related rows into records

    Composite rows get all their sub-records merged: the referenced model wins on conflicts.
    For many-to-many relations, the intermediate model is left out.
    """
    return [
        load_relation_record(registry, row, relation)
        for row in rows
    ]


def load_relation_record(registry: ModelRegistry, row: RawRow, relation: Relation) -> RecordDict:
    if not is_composite_row(row):
        return load_allowed_columns(row, registry.for_model(type(row)))

    records = []
    for instance in row:
        if instance is None:
            continue

        info = registry.for_model(type(instance))
        if relation.type == RelationType.HAS_MANY_TO_MANY and info.name == relation.intermediate_model:
            continue
        records.append(load_allowed_columns(instance, info))

    return merge_records(*records)


def main_instance(row: RawRow) -> SAInstance:
    """ Get the instance of the queried model: the first one in a composite row """
    return row[0] if is_composite_row(row) else row


def is_composite_row(row: RawRow) -> bool:
    return isinstance(row, sa.Row)


def row_sub_records(row: sa.Row) -> dict[str, Optional[SAInstance]]:
    """ Get sub-records of a composite row by name """
    return dict(zip(row._fields, row))


def joined_sub_records(row: sa.Row) -> dict[str, Optional[SAInstance]]:
    """ Get sub-records of a composite row by name, except for the primary instance """
    return dict(zip(row._fields[1:], row[1:]))


def merge_records(*records: RecordDict) -> RecordDict:
    """ Merge records into one; the earlier ones win on conflicts """
    merged: RecordDict = {}
    for record in records:
        for name, value in record.items():
            merged.setdefault(name, value)
    return merged
