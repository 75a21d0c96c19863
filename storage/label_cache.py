# storage/label_cache.py
import threading
from contextlib import contextmanager
from types import MappingProxyType


class ReadWriteLock:
    """
    Shared/exclusive lock.

    Any number of readers may hold the lock at once; a writer holds it alone.
    A waiting writer blocks new readers, so a long read cannot starve the
    next rebuild.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self):
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self):
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class CacheView:
    """Read-only view over one generation of the cache."""

    def __init__(self, labels, vpc_ids):
        self._labels = labels
        self._vpc_ids = vpc_ids

    def labels_for(self, instance_id):
        """Tag-derived labels recorded for instance_id, or None."""
        if instance_id is None:
            return None
        labels = self._labels.get(instance_id)
        return MappingProxyType(labels) if labels is not None else None

    def is_vpc(self, instance_id):
        return instance_id is not None and instance_id in self._vpc_ids

    def __len__(self):
        return len(self._labels)


class LabelCache:
    """
    Instance id -> tag-derived labels, plus the set of VPC instance ids.

    Written by the instance fetcher, read by the spot fetcher. The writer
    always swaps in complete new collections under the exclusive lock, so a
    reader sees either the previous generation or the new one.
    """

    def __init__(self):
        self.lock = ReadWriteLock()
        self._labels = {}
        self._vpc_ids = frozenset()

    def replace(self, labels, vpc_ids):
        labels = {iid: dict(frag) for iid, frag in labels.items()}
        vpc_ids = frozenset(vpc_ids)
        with self.lock.write_locked():
            self._labels = labels
            self._vpc_ids = vpc_ids

    def clear(self):
        self.replace({}, ())

    @contextmanager
    def read(self):
        with self.lock.read_locked():
            yield CacheView(self._labels, self._vpc_ids)
