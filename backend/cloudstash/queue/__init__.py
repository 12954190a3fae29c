"""Job queue interface and the in-process backend."""

from .base import JobQueue
from .memory_queue import InMemoryJobQueue

__all__ = ["JobQueue", "InMemoryJobQueue"]
