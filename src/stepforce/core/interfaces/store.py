"""
Keyed store protocol.

The coordinator's active-execution set and the broker's pending-approval
set are injected through this interface so the in-process map can be
replaced without touching control flow.
"""

from typing import Iterator, Optional, Protocol, TypeVar

V = TypeVar("V")


class KeyedStore(Protocol[V]):
    def get(self, key: str) -> Optional[V]:
        ...

    def put(self, key: str, value: V) -> None:
        ...

    def delete(self, key: str) -> Optional[V]:
        """Remove and return the entry, or None if absent."""
        ...

    def values(self) -> Iterator[V]:
        ...

    def __len__(self) -> int:
        ...
