import threading
from multiprocessing import Pipe

from .exceptions import MembershipInvariantError


class TreeNetworkNode:
    """
    One node of the communication tree over which workers aggregate.

    Child links are registered as pending additions or removals by any
    number of threads and only become visible in `children` once a
    coordinating thread calls `commit`. Links may be any hashable object,
    typically the node's end of a `multiprocessing.Pipe`.
    """

    def __init__(self, name="node"):
        self.name = name
        self._parent = None
        self._children = frozenset()
        self._new_children = set()
        self._old_children = set()
        self._lock = threading.Lock()

    def __repr__(self):
        return f"TreeNetworkNode({self.name!r}, children={len(self._children)})"

    @property
    def parent(self):
        return self._parent

    @property
    def children(self):
        # snapshot replaced wholesale by commit, so no lock is needed
        return self._children

    def set_parent(self, link):
        self._parent = link

    def add_child(self, link):
        """
        Registers a child link. Returns the membership size before the insert.
        """
        with self._lock:
            n = len(self._children) + len(self._new_children)
            self._new_children.add(link)
        return n

    def remove_child(self, link):
        """Registers the intent to drop a child link, known or not."""
        with self._lock:
            self._old_children.add(link)

    def commit(self):
        """
        Applies all pending additions, then all pending removals.

        Returns:
            int: number of active child links after the commit.
        """
        with self._lock:
            children = set(self._children)
            children.update(self._new_children)
            self._new_children.clear()
            children.difference_update(self._old_children)
            self._old_children.clear()
            self._children = frozenset(children)
            n = len(self._children)

            # post-conditions
            if self._new_children or self._old_children:
                raise MembershipInvariantError(
                    self.name, len(self._new_children), len(self._old_children)
                )
        return n

    def close(self):
        """Closes every link this node holds."""
        links = list(self._children)
        if self._parent is not None:
            links.append(self._parent)
        for link in links:
            close = getattr(link, 'close', None)
            if close is not None:
                close()


def build_tree(size, fanout=2):
    """
    Builds a tree of `size` nodes linked by pipes.

    Rank r hangs below rank (r - 1) // fanout, so rank 0 is the root.

    Returns:
        list: TreeNetworkNode per rank, with children already committed.
    """
    if size < 1:
        raise ValueError(f"tree size must be positive, got {size}")
    if fanout < 1:
        raise ValueError(f"fanout must be positive, got {fanout}")

    nodes = [TreeNetworkNode(name=f"rank {r}") for r in range(size)]
    for r in range(1, size):
        parent_end, child_end = Pipe(duplex=True)
        nodes[(r - 1) // fanout].add_child(parent_end)
        nodes[r].set_parent(child_end)
    for node in nodes:
        node.commit()
    return nodes
