""" Storage: the collaborator that executes queries described by the engine

Overview:

* `Storage` is the interface the engine talks to
* `QuerySpec` and `JoinSpec` describe what the engine needs, not how to build it
* `SAStorage` implements it with an SqlAlchemy Session
"""

from .base import Storage, QuerySpec, JoinSpec
from .sqlalchemy import SAStorage, CustomizeStatementCallable
