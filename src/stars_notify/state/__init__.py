"""
State storage for GitHub Stars Notify.

This package provides the abstract state store and its file backend.
"""

from .manager import (
    EntitySnapshot,
    FileStateStore,
    StateStore,
    StateStoreFactory,
    create_state_store,
)

__all__ = [
    "EntitySnapshot",
    "StateStore",
    "FileStateStore",
    "StateStoreFactory",
    "create_state_store",
]
