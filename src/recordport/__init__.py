"""recordport: export typed-record subgraphs to portable documents and import them back."""

from recordport.bundle import Bundle, Record, RecordGroup, UnresolvedReference
from recordport.config import PorterConfig, load_config
from recordport.errors import (
    BundleFormatError,
    InvalidInputError,
    RecordPortError,
    SchemaError,
    StoreError,
    UnknownFieldError,
    UnknownTypeError,
)
from recordport.policy import FieldRef, TraversalPolicy
from recordport.porter import RecordPorter
from recordport.rehydrate import Rehydrator
from recordport.schema import (
    ChildRelationship,
    FieldDescriptor,
    SchemaOracle,
    StaticSchemaCatalog,
    TypeDescriptor,
)
from recordport.store import InMemoryRecordStore, RecordStore
from recordport.walker import GraphWalker

__version__ = "0.3.0"

__all__ = [
    "Bundle",
    "BundleFormatError",
    "ChildRelationship",
    "FieldDescriptor",
    "FieldRef",
    "GraphWalker",
    "InMemoryRecordStore",
    "InvalidInputError",
    "PorterConfig",
    "Record",
    "RecordGroup",
    "RecordPortError",
    "RecordPorter",
    "RecordStore",
    "Rehydrator",
    "SchemaError",
    "SchemaOracle",
    "StaticSchemaCatalog",
    "StoreError",
    "TypeDescriptor",
    "UnknownFieldError",
    "UnknownTypeError",
    "UnresolvedReference",
    "__version__",
    "load_config",
]
