from functools import cache

import sqlalchemy as sa
import sqlalchemy.orm
from sqlalchemy.orm import ColumnProperty

from entityql.typing import SAModel


@cache
def column_names(Model: SAModel) -> tuple[str, ...]:
    """ Get the names of all column attributes of a model, in the order they're declared

    Only real columns: no column expressions, no relationships
    """
    mapper = sa.orm.class_mapper(Model)
    return tuple(
        prop.key
        for prop in mapper.iterate_properties
        if is_column_property(prop)
    )


def is_column_property(prop: sa.orm.MapperProperty) -> bool:
    """ Is it a property that maps a real table column? """
    return (
        isinstance(prop, ColumnProperty) and
        isinstance(prop.expression, sa.Column)  # not an expression, but a real column
    )
