"""Checkpoint and interrupt persistence."""

from trip_agents.persistence.checkpoint_store import (
    Checkpoint,
    CheckpointStore,
    InMemoryCheckpointStore,
    SQLiteCheckpointStore,
    create_checkpoint_store,
)

__all__ = [
    "Checkpoint",
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "SQLiteCheckpointStore",
    "create_checkpoint_store",
]
