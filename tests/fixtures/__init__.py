"""Test fixtures for in-memory implementations."""

from .fake_chain import FakeChannelContract, SubmittedClaim
from .in_memory_storage import InMemoryKeyValueStore

__all__ = [
    "FakeChannelContract",
    "InMemoryKeyValueStore",
    "SubmittedClaim",
]
