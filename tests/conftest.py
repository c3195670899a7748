import copy
import os
from contextlib import contextmanager

os.environ.setdefault("CHECKIN_ENV", "dev")

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.util.checkin import get_clock
from app.util.settings import CheckinConfig
from app.util.sheets import get_store

T = 1_700_000_000_000


class MemoryStore:
    """
    Keeps ranges in a dict and records every call made against it.
    """

    def __init__(self):
        self.ranges = {}
        self.reads = []
        self.writes = []
        self.transactions = []
        self.read_error = None
        self.write_error = None

    def read_range(self, range_spec):
        self.reads.append(range_spec)
        if self.read_error is not None:
            raise self.read_error
        return copy.deepcopy(self.ranges.get(range_spec, []))

    def write_range(self, range_spec, rows):
        self.writes.append(range_spec)
        if self.write_error is not None:
            raise self.write_error
        self.ranges[range_spec] = copy.deepcopy(rows)

    @contextmanager
    def transaction(self, range_spec):
        self.transactions.append(range_spec)
        yield self


class Clock:
    def __init__(self, now=T):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture(name="store")
def store_fixture():
    return MemoryStore()


@pytest.fixture(name="clock")
def clock_fixture():
    return Clock()


@pytest.fixture(name="config")
def config_fixture():
    return CheckinConfig(allowed_domain="d.edu")


@pytest.fixture(name="client")
def client_fixture(store: MemoryStore, clock: Clock):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
