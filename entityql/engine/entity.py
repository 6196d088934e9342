""" Entity: pulls together one or more models to represent a resource

This is the high-level interface: find records with their relations, save, delete.
"""

from __future__ import annotations

import logging
from collections import abc
from contextlib import nullcontext
from functools import partial
from typing import Any, Optional, Union

from entityql import exc
from entityql.diagnostics import QueryCounter
from entityql.model import ModelInfo, ModelRegistry
from entityql.relation import Relation, RelationType
from entityql.search import SearchSpec
from entityql.storage import QuerySpec, Storage
from entityql.typing import FilterDict, RawRow, RecordDict, SAModel
from entityql.util.profile import timeit

from .activator import activate_relations
from .batch import HasManyRegistry, BatchedHasManyResolver
from .document import ResponseDocument
from .extractor import RowExtractor, main_instance
from .hooks import EntityHooks
from .queries import parent_joins, relation_joins, has_one_relations
from .resolver import RelationshipResolver
from .save import SavePipeline
from .settings import EntitySettings


logger = logging.getLogger(__name__)


class Entity:
    """ Entity: a model with its related records, as one resource

    Example:
        with Session(engine) as ssn:
            entity = Entity('Article', registry, SAStorage(ssn, registry), SearchSpec(with_='comments,users'))
            document = entity.find()

    An Entity serves one request: it keeps the state of that request.
    Create a new Entity for every request.
    """
    # The model that drives the entity
    model_info: ModelInfo

    # Metadata provider
    registry: ModelRegistry

    # Storage query executor
    storage: Storage

    # What the client asked for
    search: SearchSpec

    settings: EntitySettings
    hooks: EntityHooks

    # Diagnostics collector. Only read when `settings.debug` is on
    diagnostics: Optional[QueryCounter]

    # Relations selected for this request: relation key => Relation
    active_relations: Optional[dict[str, Relation]]

    # The response being built
    document: ResponseDocument

    # The primary record currently being processed
    base_record: RecordDict

    # The primary key of the record currently being processed (or saved)
    primary_key_value: Optional[Any]

    # The total number of records found by the search (before limit)
    record_count: Optional[int]

    # Save mode: "insert", "update", or None when not saving
    save_mode: Optional[str]

    def __init__(self, model: Union[str, SAModel], registry: ModelRegistry, storage: Storage, search: SearchSpec = None, *,
                 settings: EntitySettings = None, hooks: EntityHooks = None, diagnostics: QueryCounter = None):
        """ Prepare an entity for the model

        Args:
            model: The model name, or the model class
            registry: Metadata for all models
            storage: The storage to load records from
            search: The search specification of the request
            settings: Entity settings
            hooks: Customization hooks
            diagnostics: Query counter for the metadata

        Raises:
            exc.ModelConfigurationError: unknown model
            exc.UnknownRelationError: unknown relation requested (only with `unknown_relations="error"`)
        """
        self.registry = registry
        self.model_info = registry.get(model) if isinstance(model, str) else registry.for_model(model)
        self.storage = storage
        self.search = search or SearchSpec()
        self.settings = settings or self.DEFAULT_SETTINGS
        self.hooks = hooks or EntityHooks()
        self.diagnostics = diagnostics

        # Request state
        self.active_relations = None
        self.document = ResponseDocument()
        self.base_record = {}
        self.primary_key_value = None
        self.record_count = None
        self.save_mode = None

        # Hook to configure entity-specific search defaults
        self.hooks.configure_search(self, self.search)

        # Load since it is nearly always needed
        self.load_active_relationships()
        self.extractor = RowExtractor(registry, self.model_info, self.active_relations)  # type: ignore[arg-type]

    # Default settings object
    DEFAULT_SETTINGS = EntitySettings()

    @classmethod
    def prepare(cls, model: Union[str, SAModel], registry: ModelRegistry, **kwargs):
        """ Prepare to make Entities for the provided model

        Example:
            article_entity = Entity.prepare('Article', registry, settings=settings)
            entity = article_entity(storage, search)
        """
        return partial(cls, model, registry, **kwargs)

    @property
    def model_name(self) -> str:
        return self.model_info.name  # type: ignore[return-value]

    # region Find

    def find(self, supplied_parameters: FilterDict = None) -> ResponseDocument:
        """ Search for records, load their related records

        Args:
            supplied_parameters: A plain filter. When given, the search specification is ignored:
                no count, no pagination, no sorting

        Returns:
            The document. The primary bucket is keyed by the plural table name
        """
        raw_rows = self.run_search(supplied_parameters)

        primary_table = self.model_info.table_name
        found_set = self.process_records(raw_rows, primary_table)  # type: ignore[arg-type]

        self.append_meta(found_set)
        return self.document

    def find_one(self, id: Any) -> ResponseDocument:
        """ Load one record by primary key, including related records

        Returns:
            The document. The primary bucket is keyed by the singular table name

        Raises:
            exc.NotFound
        """
        # Store for future reference
        self.primary_key_value = id

        # Prep for a special kind of search
        self.search.entity_limit = 1
        self.search.entity_search_fields = {self.model_info.primary_key_name: id}  # type: ignore[dict-item]

        raw_rows = self.run_search()

        primary_table = self.model_info.singular_table_name
        found_set = self.process_records(raw_rows, primary_table)  # type: ignore[arg-type]

        # No records found on a find_one? That's a 404
        if found_set == 0:
            raise exc.NotFound(self.model_name, id)

        self.append_meta(found_set)
        return self.document

    def run_search(self, supplied_parameters: FilterDict = None) -> list[RawRow]:
        """ Run the search: a count query and the real query

        When `supplied_parameters` are given, runs a simple filtered query instead
        """
        if supplied_parameters is not None:
            return self.storage.fetch(self.primary_query(filters=supplied_parameters, paginate=False))

        query = self.primary_query()

        # Run this once for the count
        self.record_count = self.storage.count(query)

        if self.search.is_count:
            return []

        # Now run the real query
        return self.storage.fetch(query)

    def primary_query(self, filters: FilterDict = None, *, paginate: bool = True) -> QuerySpec:
        """ Describe the primary query

        Joins: the inheritance parents, active has-one relations, and, with `settings.embed_belongs_to`,
        active belongs-to relations
        """
        name = self.model_name
        relations = list(self.active_relations.values())  # type: ignore[union-attr]
        parents = set(self.registry.parent_models(name))

        joins = [
            *parent_joins(self.registry, name),
            *relation_joins(self.registry, name, has_one_relations(self.registry, name, relations)),
        ]
        if self.settings.embed_belongs_to:
            joins.extend(relation_joins(self.registry, name, [
                relation
                for relation in relations
                if relation.type == RelationType.BELONGS_TO and relation.referenced_model not in parents and not relation.custom_processing
            ]))

        return QuerySpec(
            model=name,
            filters=self.search.get_filters() if filters is None else filters,
            joins=tuple(joins),
            sort=tuple(self.search.get_sort()) if paginate else (),
            limit=self.search.get_limit(self.settings) if paginate else None,
            offset=self.search.offset if paginate else None,
        )

    def process_records(self, raw_rows: abc.Iterable[RawRow], primary_table: str) -> int:
        """ Build the document: every primary record with its related records

        Returns:
            The number of primary records
        """
        # A fresh document & registry for every run
        self.document = ResponseDocument()
        self.document[primary_table] = []
        has_many_registry = HasManyRegistry()
        resolver = RelationshipResolver(self, has_many_registry)

        found_set = 0
        with self._lap('Gather Records'):
            for raw_row in raw_rows:
                # Normalize results, pull out join fields
                self.base_record = self.extractor.extract_main_row(raw_row)
                self.primary_key_value = getattr(main_instance(raw_row), self.model_info.primary_key_name)  # type: ignore[arg-type]

                # Hook for manipulating the row before processing relationships
                raw_row = self.hooks.before_process_relationships(self, raw_row)

                # Store related records in the document, or register them for batched loading
                resolver.process_relationships(raw_row)

                # Hook for manipulating the base record after processing relationships
                self.hooks.after_process_relationships(self, raw_row)

                self.document[primary_table].append(self.base_record)
                found_set += 1

        with self._lap('Formatting Output'):
            BatchedHasManyResolver(self, has_many_registry).process_delayed_relationships(primary_table)

        logger.debug('Loaded %d %s records', found_set, self.model_name)
        return found_set

    def append_meta(self, found_set: int):
        """ Add pagination metadata, if the client wants it """
        if not self.search.is_pager:
            return

        diagnostics = self.diagnostics if self.settings.debug else None
        self.document.append_meta(
            found_set,
            self.record_count if self.record_count is not None else found_set,
            self.search.get_limit(self.settings),
            query_count=diagnostics.count if diagnostics else None,
            query_timer_ms=diagnostics.timer_ms if diagnostics else None,
        )

    # endregion

    # region Relationships

    def load_active_relationships(self) -> dict[str, Relation]:
        """ Build the Active-Relation Map for this request

        Runs once: further calls return the same map
        """
        # No need to run this multiple times
        if self.active_relations is not None:
            return self.active_relations

        self.active_relations = activate_relations(
            self.model_name,
            self.registry.relations(self.model_name),
            self.search.get_with(),
            self.registry.parent_models(self.model_name),
            self.settings,
        )

        self.hooks.after_load_active_relationships(self, self.active_relations)
        return self.active_relations

    # endregion

    # region Save, Delete

    def save(self, payload: abc.Mapping[str, Any], id: Any = None) -> Any:
        """ Insert a new record (`id` is None) or update an existing one, with all its inheritance parents

        Returns:
            The primary key of the record

        Raises:
            exc.NotFound: the record to update does not exist
            exc.ValidationError: saving failed. Nothing has been saved
        """
        self.save_mode = 'insert' if id is None else 'update'
        try:
            # Pre-save hook placed after save_mode
            payload = self.hooks.before_save(self, payload, id)

            # Make sure that the primary key is always in the payload
            if id is not None:
                payload = {**payload, self.model_info.primary_key_name: id}  # type: ignore[dict-item]
                self.primary_key_value = id

            result = SavePipeline(self.registry, self.storage).save(self.model_name, payload, id)

            # Inserted? Use the generated primary key
            if id is None:
                self.primary_key_value = id = result

            # Post-save hook that is called before relations have been saved
            self.hooks.after_save(self, payload, id)

            # Relations are saved, then the hook that is called after they're saved
            self.hooks.save_relations(self, payload, id)
            self.hooks.after_save_relations(self, payload, id)
        finally:
            self.save_mode = None

        logger.debug('Saved %s #%s', self.model_name, self.primary_key_value)
        return self.primary_key_value

    def delete(self, id: Any) -> bool:
        """ Delete a record by primary key

        Only the record itself is deleted: rows of inheritance parents are left to the database cascade rules

        Raises:
            exc.NotFound: no such record
            exc.DeleteError: storage failed to delete the record
        """
        instance = self.storage.get(self.model_name, id)
        self.hooks.before_delete(self, instance)

        if instance is None:
            raise exc.NotFound(self.model_name, id, action='delete')

        with self.storage.transaction():
            messages = self.storage.delete(instance)
            if messages:
                raise exc.DeleteError(f'Error deleting {self.model_name} record #{id}', messages=messages)

        self.hooks.after_delete(self, instance)
        logger.debug('Deleted %s #%s', self.model_name, id)
        return True

    # endregion

    def _lap(self, name: str):
        """ Time a stage, when debugging """
        return timeit(f'{self.model_name}: {name}') if self.settings.debug else nullcontext()
