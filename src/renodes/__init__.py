"""renodes: ordered node collections over a key-value store."""

__version__ = "0.1.0"

from renodes.adapters import EntityAdapter, NodeCodec, TaskCodec, node_adapter, task_adapter
from renodes.arena import ArenaNode, NodeArena
from renodes.conditions import attr, record_absent, record_exists
from renodes.config import RenodesConfig
from renodes.driver import ChainReport, OrderedCollectionDriver
from renodes.errors import (
    BrokenChainError,
    CollectionMismatchError,
    ConditionFailedError,
    DuplicateKeyError,
    InsertConflictError,
    MetadataMissingError,
    ModelConflictError,
    ModelError,
    ModelNotFoundError,
    ModelStateUnknownError,
    NotFoundError,
    OrphanRecordError,
    PartialFailureError,
    RenodesError,
    StorageBackendError,
    WriteConflictError,
)
from renodes.materializer import HierarchyMaterializer
from renodes.models import Node, NodeMeta, NodePatch, Task, TaskMeta, TaskPatch
from renodes.records import TAIL, Record, head_key
from renodes.storage import SqliteRecordStore, open_record_store

__all__ = [
    "__version__",
    "Record",
    "TAIL",
    "head_key",
    "attr",
    "record_exists",
    "record_absent",
    "SqliteRecordStore",
    "open_record_store",
    "OrderedCollectionDriver",
    "ChainReport",
    "EntityAdapter",
    "NodeCodec",
    "TaskCodec",
    "node_adapter",
    "task_adapter",
    "HierarchyMaterializer",
    "NodeArena",
    "ArenaNode",
    "Node",
    "NodeMeta",
    "NodePatch",
    "Task",
    "TaskMeta",
    "TaskPatch",
    "RenodesConfig",
    "RenodesError",
    "StorageBackendError",
    "ConditionFailedError",
    "MetadataMissingError",
    "NotFoundError",
    "DuplicateKeyError",
    "OrphanRecordError",
    "CollectionMismatchError",
    "BrokenChainError",
    "WriteConflictError",
    "InsertConflictError",
    "PartialFailureError",
    "ModelError",
    "ModelNotFoundError",
    "ModelConflictError",
    "ModelStateUnknownError",
]
