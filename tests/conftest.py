import pytest

from forkpool import ForkPool
from forkpool.process import manager

from helpers import ChildExited, ScriptedBackend


@pytest.fixture
def tempdir(tmp_path):
    return str(tmp_path)


@pytest.fixture
def scripted_pool(tempdir):
    """Factory for pools driven by a ScriptedBackend."""

    pools = []

    def factory(capacity, pids, **kwargs):
        backend = ScriptedBackend(pids)
        pool = ForkPool(
            capacity,
            tempdir=tempdir,
            process_backend=backend,
            blocking_sleep=0.001,
            **kwargs,
        )
        pools.append(pool)
        return pool, backend

    yield factory
    for pool in pools:
        pool.close()


@pytest.fixture
def no_exit(monkeypatch):
    """Turn the child's hard exit into an exception the test can catch."""

    def fake_exit(code):
        raise ChildExited(code)

    monkeypatch.setattr(manager, "_hard_exit", fake_exit)
