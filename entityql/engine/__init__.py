""" The engine: builds response documents, saves and deletes records

Overview:

* Entity is the high-level interface: find(), find_one(), save(), delete()
* RelationshipResolver resolves relations of one primary record at a time
* BatchedHasManyResolver loads has-many relations for all primary records at once
* SavePipeline writes a record with its inheritance parents
"""

from .entity import Entity
from .settings import EntitySettings
from .hooks import EntityHooks
from .document import ResponseDocument

from .activator import activate_relations
from .extractor import RowExtractor
from .resolver import RelationshipResolver
from .batch import HasManyRegistry, BatchedHasManyResolver
from .save import SavePipeline
