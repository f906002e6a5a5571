"""context_store — scoped key/value persistence for flow runtimes.

Every scope (a flow, a node, ``"global"``) maps to its own collection in a
document store.  Values may be anything serializable, including plain
function literals, which are stored as source text and rebuilt on read.
"""

from context_store.config import ContextConfig, build_connection_uri
from context_store.exceptions import (
    BulkWriteError,
    ContextStoreError,
    InvalidArgumentError,
    StoreOperationError,
    StoreUnavailableError,
)
from context_store.store import ContextStore, create_store

__all__ = [
    "BulkWriteError",
    "ContextConfig",
    "ContextStore",
    "ContextStoreError",
    "InvalidArgumentError",
    "StoreOperationError",
    "StoreUnavailableError",
    "build_connection_uri",
    "create_store",
]
