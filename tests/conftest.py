import threading

import pytest

import worker_pool


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow running")


@pytest.fixture
def pool_factory():
    """Build pools and make sure every one of them is drained after the test."""
    pools = []

    def make(num_workers=None):
        pool = worker_pool.WorkerPool(num_workers)
        pools.append(pool)
        return pool

    yield make
    for pool in pools:
        pool.wait()


@pytest.fixture
def default_pool_reset():
    worker_pool.shutdown()
    yield
    worker_pool.shutdown()


@pytest.fixture
def gate(pool_factory):
    """Event that tasks can block on; released before the pools are drained."""
    event = threading.Event()
    yield event
    event.set()
