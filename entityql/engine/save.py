""" Save/Cascade Pipeline: write a record together with its inheritance parents

A model may extend another model: a Manager is an Employee, and an Employee is a Person.
Saving a Manager writes a row on every level. The chain is an explicit root-first list:
parents are saved first so that their generated primary keys can be linked into their children.
"""

from __future__ import annotations

import logging
from collections import abc
from dataclasses import dataclass
from typing import Any, Optional

from entityql import exc
from entityql.model import ModelInfo, ModelRegistry
from entityql.storage import Storage
from entityql.typing import SAInstance

from .columns import load_model_values


logger = logging.getLogger(__name__)


@dataclass
class ChainLevel:
    """ One level of the inheritance chain: a model and the instance to save """
    info: ModelInfo
    instance: SAInstance


class SavePipeline:
    """ Save a record and its inheritance parents as one transaction """

    def __init__(self, registry: ModelRegistry, storage: Storage):
        self.registry = registry
        self.storage = storage

    def save(self, model: str, payload: abc.Mapping[str, Any], id: Optional[Any] = None) -> Any:
        """ Insert (`id` is None) or update a record with all its parents

        Returns:
            The primary key of the saved record

        Raises:
            exc.NotFound: updating a record that does not exist (on any level)
            exc.ValidationError: saving failed on some level. Nothing is saved.
        """
        levels = self.load_chain(model, payload, id)

        with self.storage.transaction():
            parent: Optional[ChainLevel] = None
            for level in levels:
                # Link to the parent: its primary key may have just been generated
                if parent is not None:
                    setattr(level.instance, level.info.parent_link_field, getattr(parent.instance, parent.info.primary_key_name))  # type: ignore[arg-type]

                messages = self.storage.save(level.instance)
                if messages:
                    logger.debug('Failed to save %s: %r', level.info.name, messages)
                    raise exc.ValidationError(f'Validation errors encountered while saving {level.info.name}', messages=messages)

                parent = level

        leaf = levels[-1]
        return getattr(leaf.instance, leaf.info.primary_key_name)  # type: ignore[arg-type]

    def load_chain(self, model: str, payload: abc.Mapping[str, Any], id: Optional[Any] = None) -> list[ChainLevel]:
        """ Prepare instances for every level, root first, with submitted values loaded into them

        Insert: fresh instances.
        Update: the record is loaded by primary key; every parent is loaded by the child's parent link.
        """
        infos = [*self.registry.parent_chain(model), self.registry.get(model)]

        if id is None:
            instances = [self.storage.new(info.name) for info in infos]  # type: ignore[arg-type]
            keys: list[Any] = [None] * len(infos)
        else:
            instances, keys = [], []
            key = id
            for info in reversed(infos):
                instance = self.storage.get(info.name, key)  # type: ignore[arg-type]
                if instance is None:
                    raise exc.NotFound(info.name, key, action='update')  # type: ignore[arg-type]
                instances.append(instance)
                keys.append(key)

                if info.parent_link_field:
                    key = getattr(instance, info.parent_link_field)
            instances.reverse()
            keys.reverse()

        levels = []
        for info, instance, key in zip(infos, instances, keys):
            load_model_values(instance, info, payload)

            # Every level keeps the key it was loaded by: the payload's primary key belongs to the leaf
            if key is not None:
                setattr(instance, info.primary_key_name, key)  # type: ignore[arg-type]

            levels.append(ChainLevel(info, instance))

        return levels
