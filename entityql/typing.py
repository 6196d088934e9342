from collections import abc
from typing import Any, Union

import sqlalchemy as sa
import sqlalchemy.orm


# Annotation for SqlAlchemy models
SAModel = type

# Annotation for SqlAlchemy instances (objects)
SAInstance = object

# A flattened record: column name => value
RecordDict = dict[str, Any]

# A raw row as returned by storage: an instance (flat row), or a Row of several instances (composite row)
RawRow = Union[SAInstance, sa.Row]

# Filter predicate: field => value. A value that is a list/tuple/set means "IN"
# Keys are either field names of the queried model, or (model name, field name) tuples
FilterDict = abc.Mapping[Union[str, tuple[str, str]], Any]
