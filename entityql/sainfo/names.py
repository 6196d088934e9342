from functools import cache

import sqlalchemy as sa
import sqlalchemy.orm

from entityql.typing import SAModel


@cache
def table_name(Model: SAModel) -> str:
    """ Get the name of the table this model is mapped to """
    return sa.orm.class_mapper(Model).local_table.name


def singular_name(plural: str) -> str:
    """ Get a naive singular form of a table name

    Example:
        users -> user
        addresses -> address
        categories -> category
    """
    if plural.endswith('ies'):
        return plural[:-3] + 'y'
    elif plural.endswith(('sses', 'shes', 'ches', 'xes')):
        return plural[:-2]
    elif plural.endswith('s') and not plural.endswith('ss'):
        return plural[:-1]
    else:
        return plural
