"""Shared fixtures for pinstore tests."""

from collections import Counter
from pathlib import Path

import pytest

from pinstore import BoardConfig, PinBoard
from pinstore.cache import CacheConfig, CacheManager
from pinstore.errors import RemoteNotFound
from pinstore.remote import RemoteEntry, RemoteStore


class MemoryRemoteStore(RemoteStore):
    """In-memory remote store that records every call."""

    def __init__(self):
        self.files = {}
        self.dirs = set()
        self.calls = Counter()
        self.gets = []

    def path_exists(self, path):
        self.calls["path_exists"] += 1
        path = path.strip("/")
        if path in self.files or path in self.dirs:
            return True
        prefix = f"{path}/"
        return any(p.startswith(prefix) for p in list(self.files) + list(self.dirs))

    def list_dir(self, path):
        self.calls["list_dir"] += 1
        path = path.strip("/")
        prefix = f"{path}/" if path else ""
        entries = set()
        for p in self.files:
            if p.startswith(prefix):
                rest = p[len(prefix) :]
                head, _, tail = rest.partition("/")
                entries.add(RemoteEntry(head, not tail))
        for d in self.dirs:
            if d.startswith(prefix) and d != path:
                entries.add(RemoteEntry(d[len(prefix) :].split("/")[0], False))
        return entries

    def get_file(self, path):
        self.calls["get_file"] += 1
        self.gets.append(path)
        if path not in self.files:
            raise RemoteNotFound(path)
        return self.files[path]

    def put_file(self, path, data):
        self.calls["put_file"] += 1
        self.files[path] = bytes(data)

    def delete_file(self, path):
        self.calls["delete_file"] += 1
        if path not in self.files:
            raise RemoteNotFound(path)
        del self.files[path]

    def mkdir(self, path):
        self.calls["mkdir"] += 1
        self.dirs.add(path.strip("/"))

    def delete_tree(self, path):
        self.calls["delete_tree"] += 1
        prefix = f"{path}/"
        for p in [p for p in self.files if p.startswith(prefix)]:
            del self.files[p]
        self.dirs = {d for d in self.dirs if d != path and not d.startswith(prefix)}


@pytest.fixture
def remote():
    """Empty in-memory remote store."""
    return MemoryRemoteStore()


@pytest.fixture
def cache_dir(tmp_path):
    """Temporary cache directory."""
    return tmp_path / "cache"


@pytest.fixture
def cache_manager(cache_dir):
    """Cache manager on a temporary directory."""
    return CacheManager(CacheConfig(cache_dir=cache_dir))


@pytest.fixture
def board(remote, cache_dir):
    """Versioned board on the in-memory remote store."""
    config = BoardConfig("mem://test", cache_dir=cache_dir)
    return PinBoard(config, remote=remote)


@pytest.fixture
def mtcars_csv(tmp_path) -> Path:
    """Small CSV file to pin."""
    path = tmp_path / "src" / "mtcars.csv"
    path.parent.mkdir(parents=True)
    path.write_text(
        "model,mpg,cyl\n"
        "Mazda RX4,21.0,6\n"
        "Datsun 710,22.8,4\n"
        "Hornet 4 Drive,21.4,6\n"
    )
    return path
