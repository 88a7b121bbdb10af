"""
Priority Bid List - Per-course bids kept in strict priority order.

Ordering:
---------
Bids are ordered by amount, highest first. Among equal amounts the bid
inserted earlier ranks higher (first-come priority on ties).

Layout:
-------
Nodes live in an arena (a Python list) and are addressed by stable integer
handles. Each node stores the handle of its successor; `head` is the handle
of the highest bid. Freed handles are recycled through a free list. An
index maps claimant -> handle for O(1) membership checks.

Insertion scans from the head and places the new node immediately before
the first node with a strictly lower amount, so ties keep arrival order and
the list is always settlement-ready without a separate sort.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from seatbid.core.errors import DuplicateBid, NoSuchBid

# Sentinel handle for "no node"
NIL = -1


@dataclass
class BidNode:
    """A single arena slot."""
    claimant: Optional[str]
    amount: int
    next: int = NIL


class PriorityBidList:
    """
    Sorted bid collection for one course.

    Attributes:
        head: Handle of the highest bid (NIL when empty)
    """

    def __init__(self):
        self._nodes: List[BidNode] = []
        self._free: List[int] = []
        self._index: Dict[str, int] = {}
        self.head: int = NIL

    # =========================================================================
    # Queries
    # =========================================================================

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, claimant: str) -> bool:
        return claimant in self._index

    def __iter__(self) -> Iterator[Tuple[str, int]]:
        return iter(self.entries())

    def contains(self, claimant: str) -> bool:
        return claimant in self._index

    def get(self, claimant: str) -> int:
        """
        Amount bid by a claimant.

        Raises:
            NoSuchBid: claimant has no bid in this list
        """
        handle = self._index.get(claimant)
        if handle is None:
            raise NoSuchBid(f"No bid from {claimant}")
        return self._nodes[handle].amount

    def entries(self) -> List[Tuple[str, int]]:
        """
        Snapshot of (claimant, amount) pairs, highest bid first.

        Built fresh on every call.
        """
        result = []
        handle = self.head
        while handle != NIL:
            node = self._nodes[handle]
            result.append((node.claimant, node.amount))
            handle = node.next
        return result

    def claimants(self) -> List[str]:
        return [claimant for claimant, _ in self.entries()]

    # =========================================================================
    # Mutations
    # =========================================================================

    def insert(self, claimant: str, amount: int) -> None:
        """
        Insert a bid in priority order.

        Raises:
            DuplicateBid: claimant already has a bid in this list
        """
        if claimant in self._index:
            raise DuplicateBid(f"{claimant} already has a bid")

        handle = self._allocate(claimant, amount)

        # Walk past every node with amount >= new amount
        prev = NIL
        cursor = self.head
        while cursor != NIL and self._nodes[cursor].amount >= amount:
            prev = cursor
            cursor = self._nodes[cursor].next

        self._nodes[handle].next = cursor
        if prev == NIL:
            self.head = handle
        else:
            self._nodes[prev].next = handle

        self._index[claimant] = handle

    def remove(self, claimant: str) -> bool:
        """
        Remove a claimant's bid.

        Returns:
            True if a bid was removed, False if the claimant had none
        """
        handle = self._index.pop(claimant, None)
        if handle is None:
            return False

        prev = NIL
        cursor = self.head
        while cursor != handle:
            prev = cursor
            cursor = self._nodes[cursor].next

        successor = self._nodes[handle].next
        if prev == NIL:
            self.head = successor
        else:
            self._nodes[prev].next = successor

        self._release(handle)
        return True

    def update(self, claimant: str, amount: int) -> None:
        """
        Change a claimant's bid amount, repositioning it.

        The bid is removed and reinserted, so it ranks after any existing
        bids of the same new amount.

        Raises:
            NoSuchBid: claimant has no bid in this list
        """
        if claimant not in self._index:
            raise NoSuchBid(f"No bid from {claimant}")
        self.remove(claimant)
        self.insert(claimant, amount)

    def clear(self) -> None:
        self._nodes.clear()
        self._free.clear()
        self._index.clear()
        self.head = NIL

    # =========================================================================
    # Arena
    # =========================================================================

    def _allocate(self, claimant: str, amount: int) -> int:
        if self._free:
            handle = self._free.pop()
            node = self._nodes[handle]
            node.claimant = claimant
            node.amount = amount
            node.next = NIL
            return handle
        self._nodes.append(BidNode(claimant=claimant, amount=amount))
        return len(self._nodes) - 1

    def _release(self, handle: int) -> None:
        node = self._nodes[handle]
        node.claimant = None
        node.amount = 0
        node.next = NIL
        self._free.append(handle)

    def __repr__(self) -> str:
        return f"PriorityBidList(bids={len(self)})"
