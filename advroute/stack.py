"""Ordered handler list with an optional anchor that always stays last."""

import logging
from typing import Any, Iterator, List, Optional

from .exceptions import StackConsistencyError

logger = logging.getLogger(__name__)

_UNSET = object()


class HandlerStack:
    """An ordered sequence of layers with one optional trailing anchor.

    Once ``lock_anchor()`` has been called, the element that was last at that
    moment stays last: every later ``append`` is inserted right before it.
    Routes use this so the response-flushing handler registered by the first
    ``then``/``catch`` still runs after handlers chained afterwards.
    """

    def __init__(self, items: Optional[List[Any]] = None):
        self._items: List[Any] = list(items or [])
        self._anchor: Any = _UNSET

    @property
    def anchor(self) -> Any:
        """The locked element, or None when nothing is locked."""
        return None if self._anchor is _UNSET else self._anchor

    @property
    def locked(self) -> bool:
        return self._anchor is not _UNSET

    def append(self, item: Any) -> int:
        """Add an item, keeping the anchor last. Returns the new length."""
        if self._anchor is _UNSET:
            self._items.append(item)
            return len(self._items)

        index = self._index_of_anchor()
        if index == -1:
            raise StackConsistencyError("HandlerStack: locked item was removed")

        self._items.insert(index, item)
        return len(self._items)

    def lock_anchor(self) -> None:
        """Designate the current last element as the anchor."""
        if not self._items:
            raise StackConsistencyError("HandlerStack: cannot lock an empty stack")
        self._anchor = self._items[-1]
        logger.debug(f"Anchored {self._anchor!r} at position {len(self._items) - 1}")

    def remove(self, item: Any) -> None:
        for index, existing in enumerate(self._items):
            if existing is item:
                del self._items[index]
                return
        raise ValueError(f"{item!r} is not in the stack")

    def _index_of_anchor(self) -> int:
        # Identity, not equality: two layers wrapping the same handler are distinct.
        for index in range(len(self._items) - 1, -1, -1):
            if self._items[index] is self._anchor:
                return index
        return -1

    def __delitem__(self, index: int) -> None:
        del self._items[index]

    def __getitem__(self, index):
        return self._items[index]

    def __iter__(self) -> Iterator[Any]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"HandlerStack({self._items!r}, anchor={self.anchor!r})"
