import threading

import numpy as np
import pytest

from smc_square import (
    CollectiveMismatchError,
    CollectiveTimeoutError,
    LocalContext,
    run_tree,
    tree_contexts,
)


def test_local_context_is_identity():
    context = LocalContext()
    assert context.rank == 0 and context.size == 1
    np.testing.assert_array_equal(context.all_reduce([3, 4]), [3, 4])


@pytest.mark.parametrize("size", [1, 3, 5])
def test_all_reduce_sums_over_every_rank(size):
    def fn(context):
        return context.all_reduce([context.rank, 1])

    results = run_tree(fn, size, timeout=10.0)
    expected = [sum(range(size)), size]
    assert len(results) == size
    for r in results:
        np.testing.assert_array_equal(r, expected)


def test_repeated_rounds_with_wide_fanout():
    def fn(context):
        return [context.all_reduce([k * context.rank])[0] for k in range(3)]

    results = run_tree(fn, 4, fanout=3, timeout=10.0)
    for r in results:
        assert r == [0, 6, 12]


def test_timeout_when_a_child_never_reports():
    contexts = tree_contexts(2, timeout=0.2)
    try:
        with pytest.raises(CollectiveTimeoutError):
            contexts[0].all_reduce([1])
    finally:
        for c in contexts:
            c.node.close()


def test_round_mismatch_is_detected():
    contexts = tree_contexts(2, timeout=2.0)
    # the child believes it already took part in a reduction
    contexts[1].aggregator.round = 5
    errors = {}

    def run(context):
        try:
            context.all_reduce([1])
        except Exception as e:
            errors[context.rank] = e

    threads = [threading.Thread(target=run, args=(c,)) for c in contexts]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    for c in contexts:
        c.node.close()

    assert isinstance(errors[0], CollectiveMismatchError)
    # the root never answers, so the child gives up waiting
    assert isinstance(errors[1], CollectiveTimeoutError)
