"""
Retry Queue

Holds remote mutations that could not be delivered and replays them when
drained. Draining is triggered from outside (e.g. on a fixed interval); there
is no backoff and no limit on how many times an item is retried.
"""

from collections import deque
from typing import Awaitable, Callable, Generic, Optional, TypeVar
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryQueue(Generic[T]):
    """
    FIFO of pending items, each delivered by the same async mutation.

    Only ever touched from the event loop, so no lock is needed; a drain
    works on the length at its start and never iterates the live deque.
    """

    def __init__(
        self,
        mutation: Callable[[T], Awaitable[Optional[bool]]],
        max_items: Optional[int] = None
    ):
        """
        Args:
            mutation: Delivers one item; raising or returning False means failure
            max_items: Memory bound; the oldest item is dropped when exceeded
        """
        self._mutation = mutation
        self._items: deque = deque()
        self.max_items = max_items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

    def enqueue(self, item: T) -> None:
        """Add an item to the end of the queue."""
        if self.max_items is not None and len(self._items) >= self.max_items:
            dropped = self._items.popleft()
            logger.warning(f"Retry queue full ({self.max_items}), dropping oldest item: {dropped!r}")
        self._items.append(item)

    async def drain(self) -> bool:
        """
        Attempt every item present when the drain starts, in FIFO order.

        Failed items go back to the tail for a later drain; items enqueued
        during this drain wait for the next one.

        Returns:
            True if every attempted item was delivered
        """
        all_delivered = True
        for _ in range(len(self._items)):
            item = self._items.popleft()
            try:
                delivered = await self._mutation(item)
            except Exception as e:
                logger.debug(f"Retry of {item!r} failed: {e}")
                delivered = False

            if delivered is False:
                all_delivered = False
                self._items.append(item)

        return all_delivered
