"""portal_engine_core: pure-stdlib infrastructure for the portal engine."""

__version__ = "0.1.0"

from .pool import (
    ConnectionPool, PoolTimeout,
    get_pool, set_pool, close_pool,
    _set_pool_for_testing, _reset_pool,
)
from .storage import LocalFileStorage, StorageError
