""" SAStorage: execute queries with an SqlAlchemy Session """

from __future__ import annotations

import logging
from collections import abc
from contextlib import contextmanager
from typing import Any, Optional, Union

import sqlalchemy as sa
import sqlalchemy.exc
import sqlalchemy.orm

from entityql import exc
from entityql.exc import ValidationMessage
from entityql.model import ModelRegistry
from entityql.search import SortingDirection
from entityql.sainfo.columns import column_names
from entityql.typing import RawRow, SAInstance

from .base import Storage, QuerySpec, is_multiple_values


logger = logging.getLogger(__name__)


class SAStorage(Storage):
    """ Storage implemented with an SqlAlchemy ORM Session

    Composite rows are `sa.Row` objects of ORM instances: the queried model first, then every joined model
    under its join key. A joined model that has no matching row (outer join) comes out as `None`.

    Example:
        with Session(engine) as ssn:
            storage = SAStorage(ssn, registry)
            entity = Entity('Article', registry, storage)
    """
    # Statement customization handlers: functions to alter `sa.Select` statements.
    # This is your last chance to make changes to the statement.
    #
    # Mutable list: you can append your own custom handlers.
    # NOTE: your function will be called for primary and related queries alike!
    #   Inspect `query.model` to find out where you are.
    #
    # Example usage: provide additional filtering, e.g. for security
    #   @storage.customize_statements.append
    #   def security_filter(storage: SAStorage, query: QuerySpec, stmt: sa.Select) -> sa.Select:
    #       if query.model == 'Article':
    #           return stmt.where(Article.owner_id == current_user.id)
    #       return stmt
    customize_statements: list[CustomizeStatementCallable]

    def __init__(self, session: sa.orm.Session, registry: ModelRegistry, customize_statements: abc.Iterable[CustomizeStatementCallable] = ()):
        self.session = session
        self.registry = registry
        self.customize_statements = list(customize_statements)

    def fetch(self, query: QuerySpec) -> list[RawRow]:
        stmt = self.statement(query)
        res = self.session.execute(stmt)

        # Composite rows: keep Row objects. Flat rows: unwrap instances
        if query.joins:
            rows = list(res)
        else:
            rows = list(res.scalars())

        logger.debug('Fetched %d rows of %s', len(rows), query.model)
        return rows

    def count(self, query: QuerySpec) -> int:
        stmt = self.statement(query, paginate=False)
        count_stmt = sa.select(sa.func.count()).select_from(stmt.order_by(None).subquery())
        return self.session.execute(count_stmt).scalar_one()

    def get(self, model: str, id: Any) -> Optional[SAInstance]:
        Model = self.registry.get(model).Model
        return self.session.get(Model, id)

    def new(self, model: str) -> SAInstance:
        Model = self.registry.get(model).Model
        return Model()

    @contextmanager
    def transaction(self):
        try:
            yield self
        except BaseException:
            self.session.rollback()
            raise
        else:
            self.session.commit()

    def save(self, instance: SAInstance) -> list[ValidationMessage]:
        # Model-level validation first
        messages = validation_messages(instance)
        if messages:
            return messages

        # Flush: this gives us the generated primary key.
        # A failed flush puts the session into a "needs rollback" state: `transaction()` takes care of it
        self.session.add(instance)
        try:
            self.session.flush()
        except sa.exc.StatementError as e:
            logger.debug('Failed to save %r: %s', instance, e)
            return [ValidationMessage(None, _error_message(e))]

        return []

    def delete(self, instance: SAInstance) -> list[ValidationMessage]:
        try:
            self.session.delete(instance)
            self.session.flush()
        except sa.exc.StatementError as e:
            logger.debug('Failed to delete %r: %s', instance, e)
            return [ValidationMessage(None, _error_message(e))]

        return []

    def statement(self, query: QuerySpec, *, paginate: bool = True) -> sa.Select:
        """ Build an SQL SELECT statement for the query

        Args:
            paginate: Apply sorting, limit and offset?
        """
        info = self.registry.get(query.model)

        # Entities by key. Joined models are aliased by their key: this is how rows name them
        entities: dict[str, Any] = {query.model: info.Model}

        stmt = sa.select(info.Model)
        for join in query.joins:
            joined_info = self.registry.get(join.model)
            target = sa.orm.aliased(joined_info.Model, name=join.key)

            left_key, left_field, right_field = join.on
            try:
                left = entities[left_key]
            except KeyError as e:
                raise exc.ModelConfigurationError(f'Join of "{join.key}" refers to "{left_key}" which is not in the query') from e

            onclause = getattr(left, left_field) == getattr(target, right_field)
            stmt = stmt.join(target, onclause, isouter=join.outer).add_columns(target)
            entities[join.key] = target

        # Filter
        for key, value in query.filters.items():
            column = self._resolve_field(entities, query.model, key)
            if is_multiple_values(value):
                stmt = stmt.where(column.in_(list(value)))
            elif value is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(column == value)

        # Customization handlers: apply before pagination
        for handler in self.customize_statements:
            stmt = handler(self, query, stmt)

        if not paginate:
            return stmt

        # Sort. Always finish with the primary key to have a stable order
        Model = entities[query.model]
        for name, direction in query.sort:
            column = self._resolve_field(entities, query.model, name)
            stmt = stmt.order_by(column.desc() if direction == SortingDirection.DESC else column.asc())
        stmt = stmt.order_by(getattr(Model, info.primary_key_name))  # type: ignore[arg-type]

        # Paginate
        if query.offset:
            stmt = stmt.offset(query.offset)
        if query.limit:
            stmt = stmt.limit(query.limit)

        return stmt

    def _resolve_field(self, entities: dict[str, Any], default_model: str, key: Union[str, tuple[str, str]]) -> sa.ColumnElement:
        """ Get a column by "field" or ("model key", "field") """
        if isinstance(key, tuple):
            model_key, field_name = key
        else:
            model_key, field_name = default_model, key

        try:
            entity = entities[model_key]
        except KeyError as e:
            raise exc.ModelConfigurationError(f'Field "{field_name}" refers to "{model_key}" which is not in the query') from e

        if field_name not in column_names(sa.inspect(entity).mapper.class_):
            raise exc.SearchSpecError(f'Invalid field "{field_name}" for "{model_key}"')

        return getattr(entity, field_name)


def validation_messages(instance: SAInstance) -> list[ValidationMessage]:
    """ Run the model's own validation, if it has any

    A model validates itself by defining `validation()` that returns (field, message) pairs.
    """
    validation = getattr(instance, 'validation', None)
    if not callable(validation):
        return []

    return [ValidationMessage(*message) for message in validation() or ()]


def _error_message(e: sa.exc.StatementError) -> str:
    """ Get a readable error message from a database error """
    return str(e.orig) if e.orig is not None else str(e)


# A callable that customizes a statement
CustomizeStatementCallable = abc.Callable[[SAStorage, QuerySpec, sa.Select], sa.Select]
