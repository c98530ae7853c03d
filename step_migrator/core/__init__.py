"""Core migration engine: connection, checkpoints, batching and the step runner."""

__all__ = [
    "batches",
    "checkpoint",
    "config",
    "connection",
    "results",
    "runner",
    "verification",
]
