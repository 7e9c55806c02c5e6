from heapq import heappush, heapreplace
from typing import Generator, Optional

from alnlib.core.match import Match


# Classes --------------------------------------------------------------------------------------------------------------
class TopMatches:
    """
    Bounded container keeping the K best matches seen for one query.

    Matches are ranked by bit score (descending), then ordinal (ascending). Once full, a newcomer is admitted only if
    its bit score is strictly greater than the weakest retained one, so an equal-scoring later match never displaces
    an earlier one. The weakest match sits at the root of a binary min-heap, giving O(log K) per offer.

    Examples:
        >>> top = TopMatches(2)
        >>> for m in matches: top.offer(m)
        >>> best = list(top)
    """
    __slots__ = ('_capacity', '_heap')

    def __init__(self, capacity: int):
        """
        Args:
            capacity: Maximum number of matches kept (K), at least 1.
        """
        if capacity < 1: raise ValueError(f'Retention capacity must be at least 1, got {capacity}')
        self._capacity = capacity
        self._heap: list[Match] = []

    @property
    def capacity(self) -> int: return self._capacity
    @property
    def weakest(self) -> Optional[Match]: return self._heap[0] if self._heap else None
    def __len__(self) -> int: return len(self._heap)
    def clear(self): self._heap.clear()

    def offer(self, match: Match) -> bool:
        """
        Offers a candidate match.

        Returns:
            True if the match was retained.
        """
        if len(self._heap) < self._capacity:
            heappush(self._heap, match)
            return True
        if match.bit_score > self._heap[0].bit_score:
            heapreplace(self._heap, match)
            return True
        return False

    def __iter__(self) -> Generator[Match, None, None]:
        """Yields retained matches best first."""
        yield from sorted(self._heap, key=lambda m: m.sort_key)
