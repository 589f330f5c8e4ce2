"""
Cross-worker aggregation of diagnostic counts.

The sampler only ever needs a sum over all cooperating workers (accepted
moves, total moves). Workers are arranged in a tree of `TreeNetworkNode`s;
a reduction sends partial sums up to the root and the total back down.
Every worker must enter each reduction in the same order, otherwise the
tree hangs. Each message is tagged with the round number so that a worker
that skipped or repeated a round is detected as soon as its neighbour
reads the message.
"""
import numpy as np
from joblib import Parallel, delayed

from .exceptions import CollectiveMismatchError, CollectiveTimeoutError
from .tree_network import build_tree


class LocalContext:
    """Execution context of a single, stand-alone worker."""

    rank = 0
    size = 1

    def all_reduce(self, values):
        return np.asarray(values)

    def __repr__(self):
        return "LocalContext()"


class TreeAggregator:
    """Sum-reduction over the links of one tree node."""

    def __init__(self, node, timeout=None):
        self.node = node
        self.timeout = timeout
        self.round = 0

    def _recv(self, link, tag):
        if self.timeout is not None and not link.poll(self.timeout):
            raise CollectiveTimeoutError(
                f"{self.node.name}: no message after {self.timeout}s in round {tag}"
            )
        their_tag, values = link.recv()
        if their_tag != tag:
            raise CollectiveMismatchError(
                f"{self.node.name}: expected round {tag}, neighbour sent round {their_tag}"
            )
        return values

    def all_reduce(self, values):
        self.round += 1
        tag = self.round
        total = np.array(values, copy=True)

        # snapshot once so that up and down phases see the same children
        children = list(self.node.children)
        for link in children:
            total = total + self._recv(link, tag)

        if self.node.parent is not None:
            self.node.parent.send((tag, total))
            total = self._recv(self.node.parent, tag)

        for link in children:
            link.send((tag, total))
        return total


class TreeContext:
    """Execution context of one worker in a tree of workers."""

    def __init__(self, node, rank, size, timeout=None):
        self.node = node
        self.rank = rank
        self.size = size
        self.aggregator = TreeAggregator(node, timeout=timeout)

    def all_reduce(self, values):
        return self.aggregator.all_reduce(values)

    def __repr__(self):
        return f"TreeContext(rank={self.rank}, size={self.size})"


def tree_contexts(size, fanout=2, timeout=None):
    """One TreeContext per rank over a freshly built pipe tree."""
    nodes = build_tree(size, fanout=fanout)
    return [TreeContext(node, rank, size, timeout=timeout) for rank, node in enumerate(nodes)]


def run_tree(fn, size, fanout=2, timeout=None):
    """
    Runs fn(context) for every rank of a local tree, concurrently.

    Each rank gets its own thread so that the collectives inside fn can
    meet. Returns the list of results indexed by rank.
    """
    contexts = tree_contexts(size, fanout=fanout, timeout=timeout)
    try:
        # batch_size=1 keeps every rank on its own thread
        results = Parallel(n_jobs=size, backend="threading", batch_size=1)(
            delayed(fn)(context) for context in contexts
        )
    finally:
        for context in contexts:
            context.node.close()
    return results
