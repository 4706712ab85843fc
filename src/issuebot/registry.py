"""Installation id -> GitHubClient cache.

Clients are created on first lookup and kept for the life of the process.
Lookups take a shared read lock; only the creation of a client for a new
installation takes the write lock.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from .github_rest import GitHubClient
from .logging import get_logger

ClientFactory = Callable[[str], GitHubClient]


class ReadWriteLock:
    """Many concurrent readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class InstallationRegistry:
    def __init__(self, factory: ClientFactory):
        self._factory = factory
        self._clients: dict[str, GitHubClient] = {}
        self._lock = ReadWriteLock()
        self.logger = get_logger()

    def get_client(self, installation_id: str | int) -> GitHubClient:
        key = str(installation_id)
        with self._lock.read():
            client = self._clients.get(key)
        if client is not None:
            return client
        with self._lock.write():
            # Another writer may have won the race while we waited.
            client = self._clients.get(key)
            if client is None:
                client = self._factory(key)
                self._clients[key] = client
                self.logger.log_operation("client_created", installation_id=key)
        return client

    def __contains__(self, installation_id: object) -> bool:
        with self._lock.read():
            return str(installation_id) in self._clients

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._clients)


__all__ = ["ClientFactory", "InstallationRegistry", "ReadWriteLock"]
