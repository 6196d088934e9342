import pytest
import sqlalchemy as sa
import sqlalchemy.orm

from entityql import exc
from entityql import ModelRegistry, Relation, SAStorage, QuerySpec, JoinSpec
from entityql.search import SortingDirection
from entityql.engine.queries import parent_joins, related_query, many_to_many_query
from entityql.engine.extractor import is_composite_row, row_sub_records

from .util.models import Article, Manager, Employee, Person, Tag


def test_fetch_flat(ssn: sa.orm.Session, data, registry: ModelRegistry):
    """ Test SAStorage.fetch(): no joins, model instances """
    storage = SAStorage(ssn, registry)

    # IN
    rows = storage.fetch(QuerySpec('Article', filters={'id': [3, 1]}))
    assert all(isinstance(row, Article) for row in rows)
    assert [row.id for row in rows] == [1, 3]

    # IS NULL
    rows = storage.fetch(QuerySpec('Article', filters={'editor_id': None}))
    assert [row.id for row in rows] == [3]

    # Equality
    rows = storage.fetch(QuerySpec('Article', filters={'user_id': 1}))
    assert [row.id for row in rows] == [1, 2]

    # Sorting, pagination
    rows = storage.fetch(QuerySpec('Article', sort=(('title', SortingDirection.DESC),)))
    assert [row.title for row in rows] == ['Third', 'Second', 'First']

    rows = storage.fetch(QuerySpec('Article', limit=1, offset=1))
    assert [row.id for row in rows] == [2]

    # Count: ignores pagination
    assert storage.count(QuerySpec('Article', limit=1, offset=1)) == 3
    assert storage.count(QuerySpec('Article', filters={'user_id': 2})) == 1


def test_fetch_composite(ssn: sa.orm.Session, data, registry: ModelRegistry):
    """ Test SAStorage.fetch(): joined models, composite rows """
    storage = SAStorage(ssn, registry)

    query = QuerySpec('Manager', joins=tuple(parent_joins(registry, 'Manager')))
    assert query.joins == (
        JoinSpec('Employee', on=('Manager', 'id', 'id')),
        JoinSpec('Person', on=('Employee', 'id', 'id')),
    )

    rows = storage.fetch(query)
    assert len(rows) == 2
    assert all(is_composite_row(row) for row in rows)

    manager, employee, person = rows[0]
    assert (type(manager), type(employee), type(person)) == (Manager, Employee, Person)
    assert (manager.id, employee.title, person.name) == (2, 'lead', 'Ben')
    assert set(row_sub_records(rows[0])) == {'Manager', 'Employee', 'Person'}

    # Filter on a joined model
    rows = storage.fetch(QuerySpec('Manager', filters={('Person', 'name'): 'Cid'}, joins=query.joins))
    assert [row[0].id for row in rows] == [3]

    # Count with joins
    assert storage.count(query) == 2


def test_related_queries(ssn: sa.orm.Session, data, registry: ModelRegistry):
    """ Test the queries for related records """
    storage = SAStorage(ssn, registry)
    relations = {relation.key: relation for relation in registry.relations('Article')}

    # Belongs-to User: has-one Profile is joined
    query = related_query(registry, relations['author'], {'id': 1})
    assert query.joins == (JoinSpec('Profile', on=('User', 'id', 'user_id'), outer=True, name='Profile'),)
    (user, profile), = storage.fetch(query)
    assert (user.name, profile.bio) == ('alice', 'Alice bio')

    # Many-to-many: through the intermediate model
    query = many_to_many_query(registry, relations['Tag'], 1)
    rows = storage.fetch(query)
    assert [row[0].name for row in rows] == ['python', 'sql']

    # Has-many Employee: joined with its parent
    department_relations = {relation.key: relation for relation in registry.relations('Department')}
    query = related_query(registry, department_relations['Employee'], {'department_id': [1]})
    rows = storage.fetch(query)
    assert [(row[0].id, row[1].name) for row in rows] == [(1, 'Ann'), (2, 'Ben')]


def test_fetch_errors(ssn: sa.orm.Session, tables, registry: ModelRegistry):
    """ Test SAStorage: invalid fields """
    storage = SAStorage(ssn, registry)

    with pytest.raises(exc.SearchSpecError, match='Invalid field "nonsense"'):
        storage.fetch(QuerySpec('Article', filters={'nonsense': 1}))

    with pytest.raises(exc.SearchSpecError):
        storage.fetch(QuerySpec('Article', sort=(('nonsense', SortingDirection.ASC),)))

    with pytest.raises(exc.ModelConfigurationError):
        storage.fetch(QuerySpec('Article', filters={('Tag', 'id'): 1}))


def test_customize_statements(ssn: sa.orm.Session, data, registry: ModelRegistry):
    """ Test SAStorage.customize_statements: security filters """
    storage = SAStorage(ssn, registry)

    @storage.customize_statements.append
    def security(storage: SAStorage, query: QuerySpec, stmt: sa.Select) -> sa.Select:
        if query.model == 'Article':
            return stmt.where(Article.user_id == 2)
        return stmt

    assert [row.id for row in storage.fetch(QuerySpec('Article'))] == [3]
    assert storage.count(QuerySpec('Article')) == 1
    assert len(storage.fetch(QuerySpec('Tag'))) == 2


def test_get_new(ssn: sa.orm.Session, data, registry: ModelRegistry):
    """ Test SAStorage.get(), SAStorage.new() """
    storage = SAStorage(ssn, registry)

    assert storage.get('Tag', 1).name == 'python'
    assert storage.get('Tag', 99) is None
    assert isinstance(storage.new('Tag'), Tag)


def test_related_query_extra_parent(registry: ModelRegistry):
    """ Test related_query(): an extra parent of the referenced model is joined by primary key """
    relation = Relation.belongs_to('Tag', 'tags', fields='tag_id', parent='Department')
    query = related_query(registry, relation, {'id': 1})
    assert query == QuerySpec('Tag', filters={'id': 1}, joins=(
        JoinSpec('Department', on=('Tag', 'id', 'id')),
    ))

    # A registered inheritance parent is not joined twice
    relation = Relation.belongs_to('Manager', 'managers', fields='manager_id', parent='Person')
    query = related_query(registry, relation, {'id': 1})
    assert [join.model for join in query.joins] == ['Employee', 'Person']
