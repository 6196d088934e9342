import os
import pytest
import sqlalchemy as sa
import sqlalchemy.orm

from entityql import ModelRegistry
from entityql.testing import created_tables

from .util.models import Base, make_registry
from .util.data import insert_staff, insert_blog, insert_odd_shapes


# URL of the database to connect to
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite://')


@pytest.fixture(scope='function')
def engine() -> sa.engine.Engine:
    # SQLite in-memory: every connection must see the same database
    if DATABASE_URL.startswith('sqlite'):
        kwargs = dict(poolclass=sa.pool.StaticPool, connect_args={'check_same_thread': False})
    else:
        kwargs = dict()

    engine = sa.create_engine(DATABASE_URL, **kwargs)
    yield engine
    engine.dispose()


@pytest.fixture(scope='function')
def tables(engine: sa.engine.Engine):
    with created_tables(engine, Base):
        yield


@pytest.fixture(scope='function')
def data(engine: sa.engine.Engine, tables):
    """ Tables with the standard data set """
    with engine.begin() as connection:
        insert_staff(connection)
        insert_blog(connection)
        insert_odd_shapes(connection)


@pytest.fixture(scope='function')
def ssn(engine: sa.engine.Engine, tables) -> sa.orm.Session:
    with sa.orm.Session(engine) as ssn:
        yield ssn


@pytest.fixture(scope='session')
def registry() -> ModelRegistry:
    return make_registry()
