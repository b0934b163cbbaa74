"""Shared fixtures for the promprogress test suite."""

import threading

import pytest
from prometheus_client import CollectorRegistry

OWNER_UID = "1111-1111-111"


class RecordingSink:
    """In-memory sink keeping every value published per owner."""

    def __init__(self):
        self.values = {}
        self.calls = []
        self._lock = threading.Lock()

    def set(self, owner_id, value):
        with self._lock:
            self.values[owner_id] = value
            self.calls.append((owner_id, value))

    def value(self, owner_id):
        return self.values.get(owner_id)

    @property
    def call_count(self):
        with self._lock:
            return len(self.calls)


class FailingStream:
    """Stream returning some data, then raising on the next read."""

    def __init__(self, data, error):
        self.data = data
        self.error = error
        self.reads = 0

    def read(self, size=-1):
        self.reads += 1
        if self.reads == 1:
            return self.data
        raise self.error


@pytest.fixture
def owner_uid():
    return OWNER_UID


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def registry():
    return CollectorRegistry()
