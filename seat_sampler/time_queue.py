"""
Priority time queue of pending sample tasks.

A binary min-heap on the task trigger time, kept in a flat list with
:mod:`heapq`. The queue is a derived view of the store: it is rebuilt on
every sync pass, so nothing here is persisted.
"""

import heapq
import itertools
from typing import Iterable
from typing import List
from typing import Optional
from typing import Tuple

from seat_sampler.models import SampleTask


class PriorityTimeQueue:
    """Min-heap of :class:`SampleTask` ordered by ``trigger``."""

    def __init__(self, tasks: Iterable[SampleTask] = ()) -> None:
        # The counter keeps heap entries comparable when triggers tie.
        self._counter = itertools.count()
        self._heap: List[Tuple[float, int, SampleTask]] = [
            self._entry(task) for task in tasks
        ]
        heapq.heapify(self._heap)

    def _entry(self, task: SampleTask) -> Tuple[float, int, SampleTask]:
        return (task.trigger.timestamp(), next(self._counter), task)

    def push(self, task: SampleTask) -> None:
        heapq.heappush(self._heap, self._entry(task))

    def peek(self) -> Optional[SampleTask]:
        if not self._heap:
            return None
        return self._heap[0][2]

    def pop(self) -> Optional[SampleTask]:
        if not self._heap:
            return None
        return heapq.heappop(self._heap)[2]

    def replace_all(self, tasks: Iterable[SampleTask]) -> None:
        """Swap the queue contents for a freshly computed task set."""
        heap = [self._entry(task) for task in tasks]
        heapq.heapify(heap)
        self._heap = heap

    def clear(self) -> None:
        self._heap = []

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)
