from functools import cache

import sqlalchemy as sa
import sqlalchemy.orm

from entityql.typing import SAModel


@cache
def primary_key_names(Model: SAModel) -> tuple[str, ...]:
    """ Get the list of primary key attribute names """
    mapper = sa.orm.class_mapper(Model)
    return tuple(mapper.get_property_by_column(c).key for c in mapper.primary_key)


@cache
def primary_key_columns(Model: SAModel) -> tuple[sa.Column, ...]:
    """ Get the list of primary key columns """
    return tuple(c for c in sa.orm.class_mapper(Model).primary_key)
