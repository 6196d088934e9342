from types import SimpleNamespace

import sqlalchemy as sa
import sqlalchemy.orm

from entityql import ModelRegistry, Relation, SAStorage, QuerySpec
from entityql.engine.batch import HasManyRegistry, local_key_value
from entityql.engine.columns import load_allowed_columns, load_model_values
from entityql.engine.extractor import RowExtractor, merge_records, main_instance, load_relation_records
from entityql.engine.queries import relation_joins, many_to_many_query

from .util.models import Employee


def test_load_allowed_columns(registry: ModelRegistry):
    """ Test load_allowed_columns(): every allowed column, missing ones are `None` """
    info = registry.get('Article')
    assert load_allowed_columns(SimpleNamespace(id=1, title='First', extra='x'), info) == {
        'id': 1, 'user_id': None, 'editor_id': None, 'title': 'First',
    }

    # Blocked columns are never read
    info = registry.get('Employee')
    assert load_allowed_columns(Employee(id=1, title='dev', salary=100), info) == {
        'id': 1, 'department_id': None, 'title': 'dev',
    }


def test_load_model_values(registry: ModelRegistry):
    """ Test load_model_values(): own columns only, blocked columns included """
    info = registry.get('Employee')
    employee = load_model_values(Employee(), info, {'title': 'dev', 'salary': 100, 'name': 'Ann'})
    assert (employee.title, employee.salary) == ('dev', 100)
    assert not hasattr(employee, 'name')


def test_merge_records():
    """ Test merge_records(): earlier records win """
    assert merge_records({'id': 1, 'a': 1}, {'id': 2, 'b': 2}, {'b': 3, 'c': 3}) == {'id': 1, 'a': 1, 'b': 2, 'c': 3}
    assert merge_records() == {}


def test_extract_main_row(ssn: sa.orm.Session, data, registry: ModelRegistry):
    """ Test RowExtractor: flat rows, composite rows """
    storage = SAStorage(ssn, registry)

    # Flat
    extractor = RowExtractor(registry, registry.get('Article'), {})
    row, = storage.fetch(QuerySpec('Article', filters={'id': 1}))
    assert main_instance(row) is row
    assert extractor.extract_main_row(row) == {'id': 1, 'user_id': 1, 'editor_id': 2, 'title': 'First'}

    # Composite: parents, has-one
    relations = {relation.key: relation for relation in registry.relations('User')}
    extractor = RowExtractor(registry, registry.get('User'), {'Profile': relations['Profile']})
    query = QuerySpec('User', joins=tuple(relation_joins(registry, 'User', [relations['Profile']])))
    rows = storage.fetch(query)
    assert [extractor.extract_main_row(row) for row in rows] == [
        {'id': 1, 'name': 'alice', 'user_id': 1, 'bio': 'Alice bio'},
        {'id': 2, 'name': 'bob', 'user_id': 2, 'bio': 'Bob bio'},
        {'id': 3, 'name': 'carol'},
    ]

    # Embedded record: looked up by the relation key
    assert extractor.embedded_record(rows[0], relations['Profile']).bio == 'Alice bio'
    assert extractor.embedded_record(rows[2], relations['Profile']) is None
    assert extractor.embedded_record(rows[0], relations['Article']) is None


def test_load_relation_records(ssn: sa.orm.Session, data, registry: ModelRegistry):
    """ Test load_relation_records(): the intermediate model is left out """
    storage = SAStorage(ssn, registry)
    relation = {relation.key: relation for relation in registry.relations('Article')}['Tag']

    rows = storage.fetch(many_to_many_query(registry, relation, 1))
    assert load_relation_records(registry, rows, relation) == [
        {'id': 1, 'name': 'python'},
        {'id': 2, 'name': 'sql'},
    ]


def test_has_many_registry():
    """ Test HasManyRegistry: de-duplicated keys for the query, every registration for side-loading """
    comments = Relation.has_many('Comment', 'comments', referenced_fields='article_id')
    tags = Relation.has_many('Tag', 'tags', referenced_fields='article_id')

    registry = HasManyRegistry()
    for value in (3, 1, None, 3, 2):
        registry.register(comments, value)

    assert registry.is_registered(comments)
    assert not registry.is_registered(tags)
    assert registry.keys(comments) == [3, 1, 2]
    assert registry.keys(tags) == []
    assert registry.registered(comments) == [3, 1, 3, 2]
    assert registry.registered(tags) == []

    # Local key: the field value, or the fallback
    assert local_key_value(comments, {'id': 5}, 7) == 5
    assert local_key_value(comments, {'id': None}, 7) == 7
