"""In-memory blob store and directory, mostly for tests."""

import collections
import shutil
import tempfile
import threading

from blobdir.directory import BlobNotFoundError, BlobStoreError
from blobdir.directory.blob_store import BlobStore
from blobdir.directory.directory import BlobDirectory


class DummyBlobStore(BlobStore):
    """A dummy blob store which keeps objects in memory.

       Cool for testing, but beware --- do not try to store too much.

       ``page_size`` makes :meth:`list_keys` fetch keys in pages of that
       size, the way real stores truncate listings. ``downloads`` counts
       :meth:`get_stream` calls per key. Setting ``fail`` to ``True`` makes
       every call raise :class:`BlobStoreError`, as if the network was down;
       ``fail_puts`` does the same for uploads only.
    """

    def __init__(self, page_size=None):
        self.data = {}
        self.page_size = page_size
        self.downloads = collections.Counter()
        self.list_requests = 0
        self.fail = False
        self.fail_puts = False
        self._lock = threading.Lock()

    def _check_network(self):
        if self.fail:
            raise BlobStoreError("Simulated network failure")

    def _list_page(self, prefix, marker):
        with self._lock:
            self.list_requests += 1
            keys = sorted(k for k in self.data
                          if k.startswith(prefix)
                          and (marker is None or k > marker))
        if self.page_size and len(keys) > self.page_size:
            return keys[:self.page_size], True
        return keys, False

    def list_keys(self, prefix):
        self._check_network()
        result = []
        marker = None
        while True:
            page, truncated = self._list_page(prefix, marker)
            result.extend(page)
            if not truncated:
                return result
            marker = page[-1]

    def exists(self, key):
        self._check_network()
        with self._lock:
            return key in self.data

    def size(self, key):
        self._check_network()
        with self._lock:
            if key not in self.data:
                raise BlobNotFoundError("Object not found: %s" % key)
            return len(self.data[key])

    def get_stream(self, key):
        self._check_network()
        with self._lock:
            if key not in self.data:
                raise BlobNotFoundError("Object not found: %s" % key)
            self.downloads[key] += 1
            return _BytesStream(self.data[key])

    def put_stream(self, key, stream):
        self._check_network()
        if self.fail_puts:
            raise BlobStoreError("Simulated upload failure")
        data = b''
        while True:
            record = stream.read()
            if not record:
                break
            data += record
        with self._lock:
            self.data[key] = data

    def delete(self, key):
        self._check_network()
        with self._lock:
            self.data.pop(key, None)


class _BytesStream(object):
    def __init__(self, data):
        self.data = data
        self.offset = 0

    def read(self, size=-1):
        if size is None or size < 0:
            size = len(self.data) - self.offset
        result = self.data[self.offset:self.offset + size]
        self.offset += len(result)
        return result

    def close(self):
        pass


class DummyDirectory(BlobDirectory):
    """Blob directory which uses a dummy blob store and a temporary cache.

       The cache directory is removed on :meth:`close`.
    """

    def __init__(self, catalog=None, blob_store=None, **kwargs):
        if blob_store is None:
            blob_store = DummyBlobStore()
        self._temp_cache_dir = tempfile.mkdtemp(prefix='blobdir-')
        BlobDirectory.__init__(self, blob_store=blob_store, catalog=catalog,
                               cache_dir=self._temp_cache_dir, **kwargs)

    def close(self):
        try:
            BlobDirectory.close(self)
        finally:
            shutil.rmtree(self._temp_cache_dir, ignore_errors=True)
