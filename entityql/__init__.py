from .engine import Entity, EntitySettings, EntityHooks, ResponseDocument
from .model import ModelInfo, ModelRegistry
from .relation import Relation, RelationType
from .search import SearchSpec
from .storage import Storage, SAStorage, QuerySpec, JoinSpec
from .diagnostics import QueryCounter

from . import exc
