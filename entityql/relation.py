""" Relation Descriptor: metadata that describes one relationship of a model """

from __future__ import annotations

from collections import abc
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional

from entityql import exc
from entityql.sainfo.names import singular_name


class RelationType(Enum):
    """ Relationship kinds """
    BELONGS_TO = 0
    HAS_ONE = 1
    HAS_MANY = 2
    HAS_MANY_TO_MANY = 4


@dataclass(frozen=True)
class Relation:
    """ Relation Descriptor: describes one relationship of a model

    Created once from model metadata, shared by all requests for that model.

    Example:
        Relation.has_many('Comment', 'comments', fields='id', referenced_fields='article_id')
    """
    # Relationship kind
    type: RelationType

    # The name of the referenced model as a client may request it.
    # Usually the same as `referenced_model`
    model_name: str

    # Registry name of the referenced model
    referenced_model: str

    # Local field on the owning model
    fields: str

    # The field on the referenced model
    referenced_fields: str

    # External resource name of the referenced model: plural and singular form
    table_name: str
    singular_table_name: str

    # Disambiguating key, when two relations target the same model
    alias: Optional[str] = None

    # HasManyToMany only: the intermediate model and its two fields
    # `intermediate_fields` refers to the owning model; `intermediate_referenced_fields` refers to the referenced model
    intermediate_model: Optional[str] = None
    intermediate_fields: Optional[str] = None
    intermediate_referenced_fields: Optional[str] = None

    # A parent model of the referenced model, joined in when related records are loaded.
    # Inheritance parents registered for the referenced model are joined anyway: this one is for extra parents
    parent: Optional[str] = None

    # Named behavior flags. Known flag: `custom_processing`
    options: abc.Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Make `options` read-only
        object.__setattr__(self, 'options', MappingProxyType(dict(self.options)))

        intermediate = (self.intermediate_model, self.intermediate_fields, self.intermediate_referenced_fields)
        if self.type == RelationType.HAS_MANY_TO_MANY:
            if not all(intermediate):
                raise exc.ModelConfigurationError(
                    f'Relation "{self.key}": many-to-many requires an intermediate model and both intermediate fields'
                )
        elif any(intermediate):
            raise exc.ModelConfigurationError(
                f'Relation "{self.key}": only many-to-many relations can have an intermediate model'
            )

    @property
    def key(self) -> str:
        """ The key this relation is stored under in the Active-Relation Map """
        return self.alias or self.model_name

    @property
    def ids_field(self) -> str:
        """ Linkage field name set on the owning record: "<singular table name>_ids" """
        return f'{self.singular_table_name}_ids'

    @property
    def custom_processing(self) -> bool:
        """ Is this relation handed over to the custom processing hook? """
        return self.options.get('custom_processing', False) is True

    @property
    def is_to_many(self) -> bool:
        return self.type in (RelationType.HAS_MANY, RelationType.HAS_MANY_TO_MANY)

    def matches(self, requested: abc.Container[str]) -> bool:
        """ Is this relation mentioned in a list of lowercased names?

        Clients request relations by table name (= resource name) or by model name.
        The alias is used to store an active relation, but is not a valid way to request it.
        """
        return self.table_name.lower() in requested or self.model_name.lower() in requested

    # region Constructors

    @classmethod
    def belongs_to(cls, referenced_model: str, table_name: str, *, fields: str, referenced_fields: str = 'id', **kwargs) -> Relation:
        """ The owning model has a foreign key `fields` that refers to `referenced_model.referenced_fields` """
        return cls._make(RelationType.BELONGS_TO, referenced_model, table_name, fields=fields, referenced_fields=referenced_fields, **kwargs)

    @classmethod
    def has_one(cls, referenced_model: str, table_name: str, *, referenced_fields: str, fields: str = 'id', **kwargs) -> Relation:
        """ The referenced model has a foreign key `referenced_fields` that refers to us; at most one record """
        return cls._make(RelationType.HAS_ONE, referenced_model, table_name, fields=fields, referenced_fields=referenced_fields, **kwargs)

    @classmethod
    def has_many(cls, referenced_model: str, table_name: str, *, referenced_fields: str, fields: str = 'id', **kwargs) -> Relation:
        """ The referenced model has a foreign key `referenced_fields` that refers to us """
        return cls._make(RelationType.HAS_MANY, referenced_model, table_name, fields=fields, referenced_fields=referenced_fields, **kwargs)

    @classmethod
    def has_many_to_many(cls, referenced_model: str, table_name: str, *,
                         intermediate_model: str, intermediate_fields: str, intermediate_referenced_fields: str,
                         fields: str = 'id', referenced_fields: str = 'id', **kwargs) -> Relation:
        """ Both models are linked through rows of `intermediate_model` """
        return cls._make(
            RelationType.HAS_MANY_TO_MANY, referenced_model, table_name,
            fields=fields,
            referenced_fields=referenced_fields,
            intermediate_model=intermediate_model,
            intermediate_fields=intermediate_fields,
            intermediate_referenced_fields=intermediate_referenced_fields,
            **kwargs
        )

    @classmethod
    def _make(cls, type: RelationType, referenced_model: str, table_name: str, **kwargs) -> Relation:
        kwargs.setdefault('model_name', referenced_model)
        kwargs.setdefault('singular_table_name', singular_name(table_name))
        return cls(type=type, referenced_model=referenced_model, table_name=table_name, **kwargs)

    # endregion
