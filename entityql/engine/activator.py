""" Relationship Activator: decide which relations are active for a request """

from __future__ import annotations

import logging
from collections import abc

from entityql import exc
from entityql.relation import Relation
from entityql.search import WITH_ALL, WITH_NONE
from .settings import EntitySettings, UNKNOWN_RELATIONS_WARN, UNKNOWN_RELATIONS_ERROR


logger = logging.getLogger(__name__)


def activate_relations(model_name: str, relations: abc.Iterable[Relation], requested: str, parent_models: abc.Collection[str],
                       settings: EntitySettings) -> dict[str, Relation]:
    """ Build the Active-Relation Map

    Selector values:
    * "none": only the inheritance parents
    * "all": every relation
    * "a,b,c": relations mentioned by table name or model name, case-insensitive; plus the inheritance parents

    Every relation is stored under its alias, if it has one; otherwise, under its model name.

    Args:
        model_name: The model, for error messages
        relations: All relations of the model, including the inheritance parents
        requested: The "with" selector
        parent_models: Names of all inheritance parents
        settings: Decides what to do with unknown relation names

    Raises:
        exc.UnknownRelationError: unknown relation names in "error" mode
    """
    relations = list(relations)
    requested = requested.strip()

    load_all = requested.lower() == WITH_ALL
    if load_all or requested.lower() == WITH_NONE:
        names = set()
    else:
        names = {name.strip() for name in requested.lower().split(',') if name.strip()}

    active: dict[str, Relation] = {}
    for relation in relations:
        if load_all or relation.referenced_model in parent_models or relation.matches(names):
            active[relation.key] = relation

    # Names that did not match anything
    unknown = sorted(names - {
        name
        for relation in relations
        for name in (relation.table_name.lower(), relation.model_name.lower())
    })
    if unknown:
        _report_unknown_relations(model_name, unknown, settings)

    return active


def _report_unknown_relations(model_name: str, unknown: list[str], settings: EntitySettings):
    if settings.unknown_relations == UNKNOWN_RELATIONS_ERROR:
        raise exc.UnknownRelationError(model_name, unknown)
    elif settings.unknown_relations == UNKNOWN_RELATIONS_WARN:
        logger.warning('Unknown relations requested for %s: %s', model_name, ', '.join(unknown))
    else:
        logger.debug('Ignoring unknown relations requested for %s: %s', model_name, ', '.join(unknown))
