"""In-process implementation of the KeyedStore protocol."""

from typing import Generic, Iterator, Optional, TypeVar

V = TypeVar("V")


class InMemoryStore(Generic[V]):
    """Dictionary-backed store. Not shared across processes."""

    def __init__(self) -> None:
        self._items: dict[str, V] = {}

    def get(self, key: str) -> Optional[V]:
        return self._items.get(key)

    def put(self, key: str, value: V) -> None:
        self._items[key] = value

    def delete(self, key: str) -> Optional[V]:
        return self._items.pop(key, None)

    def values(self) -> Iterator[V]:
        # Snapshot so callers may delete while iterating
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: str) -> bool:
        return key in self._items
