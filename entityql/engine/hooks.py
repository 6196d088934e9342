""" Override points for Entity

Subclass `EntityHooks` and override the methods you need; pass the instance to `Entity(hooks=...)`.
Every default implementation does nothing.

Example:
    class ArticleHooks(EntityHooks):
        def before_save(self, entity, payload, id):
            return {**payload, 'slug': slugify(payload['title'])}
"""

from __future__ import annotations

from collections import abc
from typing import Any, Optional, TYPE_CHECKING

from entityql.relation import Relation
from entityql.typing import RawRow, SAInstance


if TYPE_CHECKING:
    from .entity import Entity
    from entityql.search import SearchSpec


class EntityHooks:
    """ Hooks: customize the behavior of an Entity without subclassing it """

    def configure_search(self, entity: Entity, search: SearchSpec):
        """ Hook: set entity-specific search defaults. Called once, on construction """

    def after_load_active_relationships(self, entity: Entity, active_relations: dict[str, Relation]):
        """ Hook: called once the Active-Relation Map is built. May modify it """

    def before_process_relationships(self, entity: Entity, raw_row: RawRow) -> RawRow:
        """ Hook: called for every primary row before its relations are resolved

        `entity.base_record` is available. Returns the raw row that relations are resolved against
        """
        return raw_row

    def after_process_relationships(self, entity: Entity, raw_row: RawRow):
        """ Hook: called for every primary row after its relations are resolved

        Modify `entity.base_record` to change what goes into the response
        """

    def process_custom_relationship(self, entity: Entity, relation: Relation, raw_row: RawRow):
        """ Hook: resolve a relation flagged with `custom_processing`

        Fully responsible for modifying `entity.document` and `entity.base_record`
        """

    def before_save(self, entity: Entity, payload: abc.Mapping[str, Any], id: Optional[Any]) -> abc.Mapping[str, Any]:
        """ Hook: called before saving. Returns the payload to save; may modify it

        Args:
            id: The primary key of the record to update; `None` on insert
        """
        return payload

    def after_save(self, entity: Entity, payload: abc.Mapping[str, Any], id: Any):
        """ Hook: called once the record and its parents are saved, before any relations are saved """

    def save_relations(self, entity: Entity, payload: abc.Mapping[str, Any], id: Any):
        """ Hook: save related records submitted along with the payload. Runs after `after_save()` """

    def after_save_relations(self, entity: Entity, payload: abc.Mapping[str, Any], id: Any):
        """ Hook: called once relation-specific saving has completed as well """

    def before_delete(self, entity: Entity, instance: Optional[SAInstance]):
        """ Hook: called before deleting. `instance` is `None` when the record is not found """

    def after_delete(self, entity: Entity, instance: SAInstance):
        """ Hook: called after the record is deleted """
