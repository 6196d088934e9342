""" SqlAlchemy model introspection """

from . import names
from . import columns
from . import primary_key
