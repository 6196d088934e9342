""" Query descriptions: the queries the engine needs, described with QuerySpec & JoinSpec """

from __future__ import annotations

from collections import abc
from typing import Union

from entityql import exc
from entityql.model import ModelRegistry
from entityql.relation import Relation, RelationType
from entityql.storage import JoinSpec, QuerySpec
from entityql.typing import FilterDict


def parent_joins(registry: ModelRegistry, model: str) -> list[JoinSpec]:
    """ Joins for the whole inheritance chain of a model: the nearest parent first

    Example:
        Manager -> JOIN Employee ON Manager.id = Employee.id JOIN Person ON Employee.id = Person.id
    """
    joins = []
    child = registry.get(model)
    for parent_name in registry.parent_models(model):
        parent = registry.get(parent_name)
        joins.append(JoinSpec(
            parent.name,  # type: ignore[arg-type]
            on=(child.name, child.parent_link_field, parent.primary_key_name),  # type: ignore[arg-type]
        ))
        child = parent
    return joins


def field_owner(registry: ModelRegistry, model: str, field_name: str) -> str:
    """ Find the model in the inheritance chain that has the column

    A child model inherits its parents' fields: a foreign key may live on any level.
    """
    for name in (model, *registry.parent_models(model)):
        if field_name in registry.get(name).column_map:
            return name
    raise exc.ModelConfigurationError(f'Model "{model}" and its parents have no field "{field_name}"')


def relation_joins(registry: ModelRegistry, model: str, relations: abc.Iterable[Relation], *, outer: bool = True) -> list[JoinSpec]:
    """ Joins that embed related records of to-one relations: has-one, belongs-to

    Every joined model gets the relation key as its name
    """
    return [
        JoinSpec(
            relation.referenced_model,
            on=(field_owner(registry, model, relation.fields), relation.fields, relation.referenced_fields),
            outer=outer,
            name=relation.key,
        )
        for relation in relations
    ]


def has_one_relations(registry: ModelRegistry, model: str, relations: abc.Iterable[Relation]) -> list[Relation]:
    """ Pick has-one relations, except those to inheritance parents """
    parents = set(registry.parent_models(model))
    return [
        relation
        for relation in relations
        if relation.type == RelationType.HAS_ONE and relation.referenced_model not in parents
    ]


def related_query(registry: ModelRegistry, relation: Relation, filters: FilterDict, *, joins: abc.Iterable[JoinSpec] = ()) -> QuerySpec:
    """ A query that loads related records of a relation

    Related records come complete: the referenced model is joined with its inheritance chain,
    with the extra `relation.parent`, and with every has-one relation it declares.
    """
    model = relation.referenced_model
    info = registry.get(model)

    all_joins = [*joins, *parent_joins(registry, model)]

    # An extra parent: joined by primary key
    if relation.parent and relation.parent not in registry.parent_models(model):
        parent_info = registry.get(relation.parent)
        all_joins.append(JoinSpec(relation.parent, on=(model, info.primary_key_name, parent_info.primary_key_name)))  # type: ignore[arg-type]

    all_joins.extend(relation_joins(registry, model, has_one_relations(registry, model, info.relations)))

    return QuerySpec(model=model, filters=filters, joins=tuple(all_joins))


def many_to_many_query(registry: ModelRegistry, relation: Relation, local_value) -> QuerySpec:
    """ A query that loads related records through the intermediate model """
    assert relation.type == RelationType.HAS_MANY_TO_MANY
    intermediate = JoinSpec(
        relation.intermediate_model,  # type: ignore[arg-type]
        on=(relation.referenced_model, relation.referenced_fields, relation.intermediate_referenced_fields),  # type: ignore[arg-type]
    )
    return related_query(
        registry, relation,
        {(relation.intermediate_model, relation.intermediate_fields): local_value},  # type: ignore[dict-item]
        joins=[intermediate],
    )


def related_filter_key(registry: ModelRegistry, relation: Relation) -> Union[str, tuple[str, str]]:
    """ The filter key to look related records up by `relation.referenced_fields`

    The column may live on an inheritance parent of the referenced model: then the key names the parent.
    """
    owner = field_owner(registry, relation.referenced_model, relation.referenced_fields)
    if owner == relation.referenced_model:
        return relation.referenced_fields
    return owner, relation.referenced_fields
