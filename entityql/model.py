""" Model metadata provider

Every model that takes part in materialization is described by a `ModelInfo`:
its SqlAlchemy class, external names, exposed columns, relations, and the inheritance parent.
`ModelRegistry` holds them all and answers questions about inheritance chains.
"""

from __future__ import annotations

from collections import abc, Counter
from dataclasses import dataclass, field
from typing import Optional

from entityql import exc
from entityql.relation import Relation, RelationType
from entityql.sainfo.columns import column_names
from entityql.sainfo.names import table_name, singular_name
from entityql.sainfo.primary_key import primary_key_names
from entityql.typing import SAModel


@dataclass
class ModelInfo:
    """ Metadata for one model

    Only `Model` is required: everything else is read from the SqlAlchemy mapper when not given.

    Example:
        ModelInfo(Employee,
                  parent_model='Person',
                  blocked_columns=('salary',),
                  relations=[
                      Relation.belongs_to('Department', 'departments', fields='department_id'),
                  ])
    """
    # The SqlAlchemy model class
    Model: SAModel

    # Registry name. Default: class name
    name: Optional[str] = None

    # External resource names: plural and singular. Default: the table name
    table_name: Optional[str] = None
    singular_table_name: Optional[str] = None

    # Primary key field. Default: the one from the mapper
    primary_key_name: Optional[str] = None

    # Columns that may be exposed to the client. Default: all columns
    allowed_columns: Optional[tuple[str, ...]] = None

    # Columns that must never be exposed. Removed from `allowed_columns`
    blocked_columns: tuple[str, ...] = ()

    # Declared relations
    relations: list[Relation] = field(default_factory=list)

    # Inheritance parent: registry name of the model this one extends
    parent_model: Optional[str] = None

    # The field that holds the parent's primary key value. Default: our primary key
    parent_link_field: Optional[str] = None

    def __post_init__(self):
        self.name = self.name or self.Model.__name__
        self.table_name = self.table_name or table_name(self.Model)
        self.singular_table_name = self.singular_table_name or singular_name(self.table_name)

        if self.primary_key_name is None:
            pk_names = primary_key_names(self.Model)
            if len(pk_names) != 1:
                raise exc.ModelConfigurationError(f'Model "{self.name}" must have exactly one primary key column; got {pk_names}')
            self.primary_key_name = pk_names[0]

        if self.allowed_columns is None:
            self.allowed_columns = column_names(self.Model)
        self.allowed_columns = tuple(
            name
            for name in self.allowed_columns
            if name not in self.blocked_columns
        )

        if self.parent_model and self.parent_link_field is None:
            self.parent_link_field = self.primary_key_name

        self._check_relation_keys()

    @property
    def column_map(self) -> tuple[str, ...]:
        """ Every column of the model: used when loading submitted values into an instance """
        return column_names(self.Model)

    def _check_relation_keys(self):
        """ Relations that point to the same model must have distinct aliases """
        targets = Counter(relation.referenced_model for relation in self.relations)
        for relation in self.relations:
            if targets[relation.referenced_model] > 1 and not relation.alias:
                raise exc.ModelConfigurationError(
                    f'Model "{self.name}" has multiple relations to "{relation.referenced_model}": each must declare an alias'
                )

        keys = Counter(relation.key for relation in self.relations)
        duplicates = [key for key, n in keys.items() if n > 1]
        if duplicates:
            raise exc.ModelConfigurationError(f'Model "{self.name}" has duplicate relation keys: {duplicates}')


class ModelRegistry:
    """ Metadata provider: a collection of ModelInfo, looked up by name or by model class """

    def __init__(self, *infos: ModelInfo):
        self._models: dict[str, ModelInfo] = {}
        self._by_class: dict[SAModel, ModelInfo] = {}

        for info in infos:
            self.add(info)

    def add(self, info: ModelInfo) -> ModelInfo:
        """ Add a model to the registry """
        if info.name in self._models:
            raise exc.ModelConfigurationError(f'Model "{info.name}" is already registered')

        self._models[info.name] = info  # type: ignore[index]
        self._by_class[info.Model] = info
        return info

    def register(self, Model: SAModel, **kwargs) -> ModelInfo:
        """ Describe a model and add it to the registry

        Example:
            registry.register(User, relations=[...])
        """
        return self.add(ModelInfo(Model, **kwargs))

    def get(self, name: str) -> ModelInfo:
        try:
            return self._models[name]
        except KeyError as e:
            raise exc.ModelConfigurationError(f'Unknown model: "{name}"') from e

    def for_model(self, Model: SAModel) -> ModelInfo:
        try:
            return self._by_class[Model]
        except KeyError as e:
            raise exc.ModelConfigurationError(f'Model class {Model} is not registered') from e

    def __contains__(self, name: str):
        return name in self._models

    def __iter__(self) -> abc.Iterator[ModelInfo]:
        return iter(self._models.values())

    def parent_models(self, name: str) -> list[str]:
        """ Get names of all inheritance parents: the nearest parent first

        Example:
            Manager -> ['Employee', 'Person']
        """
        names = []
        info = self.get(name)
        while info.parent_model:
            if info.parent_model in names or info.parent_model == name:
                raise exc.ModelConfigurationError(f'Model "{name}" has a cycle in its parent chain')
            names.append(info.parent_model)
            info = self.get(info.parent_model)
        return names

    def parent_chain(self, name: str) -> list[ModelInfo]:
        """ Get all inheritance parents: the root first

        Example:
            Manager -> [Person, Employee]
        """
        return [self.get(parent) for parent in reversed(self.parent_models(name))]

    def relations(self, name: str) -> list[Relation]:
        """ Get all relations of a model, including a relation for every inheritance parent

        Parents that the model does not declare a relation for get a belongs-to relation,
        so that the inheritance chain is always represented.
        """
        info = self.get(name)
        relations = list(info.relations)
        declared = {relation.referenced_model for relation in relations}

        for parent in self.parent_chain(name):
            if parent.name not in declared:
                relations.append(Relation(
                    type=RelationType.BELONGS_TO,
                    model_name=parent.name,  # type: ignore[arg-type]
                    referenced_model=parent.name,  # type: ignore[arg-type]
                    fields=info.parent_link_field,  # type: ignore[arg-type]
                    referenced_fields=parent.primary_key_name,  # type: ignore[arg-type]
                    table_name=parent.table_name,  # type: ignore[arg-type]
                    singular_table_name=parent.singular_table_name,  # type: ignore[arg-type]
                ))
        return relations

    def check(self):
        """ Make sure that every model mentioned by relations and parent links is registered

        Raises:
            exc.ModelConfigurationError
        """
        for info in self:
            self.parent_models(info.name)  # type: ignore[arg-type]
            for relation in info.relations:
                mentioned = (relation.referenced_model, relation.intermediate_model, relation.parent)
                for name in filter(None, mentioned):
                    self.get(name)
