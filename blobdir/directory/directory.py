"""The actual implementation of a blob directory."""

import logging
import os
import threading
from urllib.parse import urlparse

from blobdir.directory import BlobNotFoundError
from blobdir.directory.cache_store import LocalCacheStore
from blobdir.directory.http_blob_store import HttpBlobStore
from blobdir.directory.lease_lock import LeaseLock
from blobdir.directory.mutex_registry import MutexRegistry
from blobdir.directory.s3_blob_store import S3BlobStore
from blobdir.directory.streams import BlobInput, BlobOutput
from blobdir.settings import S3Settings
from blobdir.utils import blob_name, normalize_catalog, strip_prefix

logger = logging.getLogger('blobdir')


def open_blob_store(url=None, settings=None):
    """Builds the blob store described by ``url``.

    ``s3://bucket/folder`` gives an :class:`S3BlobStore` configured with
    ``settings``; ``http://`` and ``https://`` URLs give an
    :class:`HttpBlobStore`. Without a URL, an S3 store is built if
    ``settings`` name a bucket.

    Returns a pair ``(store, bucket_folder)``, where ``store`` may be
    ``None`` if nothing is configured.
    """
    if settings is None:
        settings = S3Settings()

    if not url:
        if settings.bucket_name:
            return S3BlobStore(settings=settings), settings.bucket_folder
        return None, None

    parsed = urlparse(url)
    if parsed.scheme == 's3':
        if not parsed.netloc:
            raise ValueError("Missing bucket name in %r" % url)
        folder = parsed.path.strip('/') or settings.bucket_folder
        return S3BlobStore(parsed.netloc, settings=settings), folder
    if parsed.scheme in ('http', 'https'):
        return HttpBlobStore(url), None
    raise ValueError("Unsupported blob store URL: %r" % url)


class BlobDirectory(object):
    """A directory of files kept in an object store.

       Files live in the store under ``<bucket folder>/<catalog>/<name>``
       and are read and written through a local cache: readers download the
       whole object when they are opened, writers upload the whole file when
       they are closed. Cross-process exclusion of writers is up to the
       caller, with locks from :meth:`make_lock`.

       The directory can be built from environment variables alone:

         ``BLOBDIR_URL``
           the store, ``s3://bucket/folder`` or ``http(s)://server/path``;

         ``BLOBDIR_S3_SETTINGS``
           S3 connection string (see :mod:`blobdir.settings`), which may
           also name the bucket instead of ``BLOBDIR_URL``;

         ``BLOBDIR_CATALOG``
           the catalog name, ``index`` if not specified;

         ``BLOBDIR_CACHE_DIR``
           the root of the local cache; if not specified,
           ``~/.blobdir-cache`` is used;

         ``BLOBDIR_LOCK_DURATION``
           lease duration of locks in seconds, 60 by default.

       Each of them may be passed as a constructor argument instead. A ready
       ``blob_store`` and ``cache_store`` may be passed too.

       Queries about the remote state (:meth:`list_all`,
       :meth:`file_exists`, :meth:`file_length`) never raise on network
       failures: they report an empty listing, ``False`` or 0, which callers
       cannot tell apart from a real answer.
    """

    DEFAULT_CACHE_DIR = os.path.expanduser(
        os.path.join('~', '.blobdir-cache'))

    DEFAULT_CATALOG = 'index'

    def __init__(self, blob_store='auto', catalog=None, cache_dir=None,
                 store_url=None, settings=None, cache_store=None,
                 lock_duration=None):
        if catalog is None:
            catalog = os.environ.get('BLOBDIR_CATALOG')
        if not catalog or not catalog.strip():
            catalog = self.DEFAULT_CATALOG
        if settings is None:
            settings = S3Settings.from_environment()
        if store_url is None:
            store_url = os.environ.get('BLOBDIR_URL')
        if lock_duration is None:
            lock_duration = os.environ.get('BLOBDIR_LOCK_DURATION')
        if lock_duration is None:
            lock_duration = LeaseLock.DEFAULT_DURATION

        bucket_folder = settings.bucket_folder
        if blob_store == 'auto':
            blob_store, bucket_folder = open_blob_store(store_url, settings)
        if blob_store is None:
            raise ValueError("No blob store has been configured")

        self.name = catalog.strip()
        self.sub_directory = normalize_catalog(bucket_folder, self.name)
        self.blob_store = blob_store
        self.lock_duration = float(lock_duration)

        if cache_store is None:
            if cache_dir is None:
                cache_dir = os.environ.get('BLOBDIR_CACHE_DIR')
            if cache_dir is None:
                cache_dir = self.DEFAULT_CACHE_DIR
            cache_store = LocalCacheStore(
                os.path.join(cache_dir, *self.sub_directory.split('/')))
        self.cache_store = cache_store

        self.mutexes = MutexRegistry()
        self._outputs = {}
        self._outputs_lock = threading.Lock()
        self._locks = {}
        self._locks_lock = threading.Lock()

    def blob_name(self, name):
        """Returns the object key of the file ``name``."""
        return blob_name(self.sub_directory, name)

    def list_all(self):
        """Returns a sorted list of the names of all files in the directory.

           An empty list is also returned if the store cannot be reached.
        """
        prefix = self.sub_directory + '/' if self.sub_directory else ''
        try:
            keys = self.blob_store.list_keys(prefix)
        except Exception:
            logger.warning("Error listing files of %s", self.name,
                           exc_info=True)
            return []

        names = set()
        for key in keys:
            name = strip_prefix(self.sub_directory, key)
            if name is not None:
                names.add(name)
        return sorted(names)

    def file_exists(self, name):
        """Asks the store whether the file exists. ``False`` on errors."""
        key = self.blob_name(name)
        try:
            return self.blob_store.exists(key)
        except Exception:
            logger.warning("Error checking existence of %s", key,
                           exc_info=True)
            return False

    def file_length(self, name):
        """Returns the length of the remote object, 0 on errors."""
        key = self.blob_name(name)
        try:
            return self.blob_store.size(key)
        except BlobNotFoundError:
            return 0
        except Exception:
            logger.warning("Error getting length of %s", key, exc_info=True)
            return 0

    def delete_file(self, name):
        """Deletes the file from the store and from the local cache.

           Deleting a missing file is not an error, and neither is failing
           to remove the cached copy.
        """
        self.blob_store.delete(self.blob_name(name))

        with self.mutexes.lock_for(name):
            try:
                if self.cache_store.exists(name):
                    self.cache_store.delete(name)
            except OSError:
                logger.warning("Error deleting cached copy of %s", name,
                               exc_info=True)

    def open_input(self, name):
        """Opens the file for reading, see :class:`BlobInput`."""
        return BlobInput(self, name)

    def create_output(self, name):
        """Creates the file (anew), see :class:`BlobOutput`.

           The new output replaces any earlier one of the same name as the
           output flushed by :meth:`sync`; the earlier one stays usable.
        """
        output = BlobOutput(self, name)
        with self._outputs_lock:
            self._outputs[name] = output
        return output

    def output_closed(self, output):
        """Stops tracking ``output`` once it has been published."""
        with self._outputs_lock:
            if self._outputs.get(output.name) is output:
                del self._outputs[output.name]

    def sync(self, names):
        """Flushes the open outputs of ``names`` to the local cache.

           Nothing is uploaded; files are published when closed.
        """
        with self._outputs_lock:
            outputs = [self._outputs[n] for n in names if n in self._outputs]
        for output in outputs:
            output.flush()

    def make_lock(self, name):
        """Returns the :class:`LeaseLock` of ``name``.

           Every call with the same name returns the same lock object.
        """
        with self._locks_lock:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = LeaseLock(
                    self.blob_store, self.blob_name(name),
                    duration=self.lock_duration)
            return lock

    def clear_lock(self, name):
        """Forcibly removes the lock ``name``, whoever holds it."""
        self.make_lock(name).break_lock()

    def clear_cache(self):
        """Removes every cached copy of this directory's files."""
        self.cache_store.clear()

    def close(self):
        """Releases all locks held through this directory."""
        with self._locks_lock:
            locks = list(self._locks.values())
        for lock in locks:
            lock.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def __repr__(self):
        return '<BlobDirectory %s in %r>' % (self.sub_directory,
                                             self.blob_store)
