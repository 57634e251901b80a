"""
Small pieces of in-process state shared between tool calls.
"""

import asyncio
from typing import Awaitable, Callable, Generic, Optional, TypeVar


T = TypeVar("T")


class SingleSlotCache(Generic[T]):
    """
    Holds at most one lazily loaded value until it is explicitly invalidated.

    Concurrent callers of ``get`` share a single in-flight load.
    """

    def __init__(self, loader: Callable[[], Awaitable[T]]):
        self._loader = loader
        self._value: Optional[T] = None
        self._populated = False
        self._lock = asyncio.Lock()

    @property
    def is_populated(self) -> bool:
        return self._populated

    async def get(self) -> T:
        if self._populated:
            return self._value
        async with self._lock:
            if not self._populated:
                self._value = await self._loader()
                self._populated = True
        return self._value

    def peek(self) -> Optional[T]:
        return self._value if self._populated else None

    def set(self, value: T) -> None:
        self._value = value
        self._populated = True

    def invalidate(self) -> Optional[T]:
        """Empty the slot and return what it held"""
        previous = self.peek()
        self._value = None
        self._populated = False
        return previous


class SelectionState:
    """The currently selected resource id, optionally locked by configuration"""

    def __init__(self, label: str = "resource"):
        self.label = label
        self.selected_id: Optional[str] = None
        self.locked = False

    def select(self, resource_id: str, locked: bool = False) -> None:
        if self.locked and self.selected_id != resource_id:
            raise RuntimeError(
                f'Cannot change {self.label}: current selection is locked to "{self.selected_id}"'
            )
        self.selected_id = resource_id
        self.locked = self.locked or locked

    def clear(self) -> None:
        if self.locked:
            raise RuntimeError(f"Cannot clear {self.label}: selection is locked")
        self.selected_id = None

    def reset(self) -> None:
        self.selected_id = None
        self.locked = False
