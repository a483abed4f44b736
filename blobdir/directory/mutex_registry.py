"""Per-name mutual exclusion within one process."""

import threading

from blobdir.utils import check_name


class MutexRegistry(object):
    """A registry of mutexes, one per logical file name.

    The registry is owned by a single :class:`BlobDirectory`, so independent
    directories in one process never share mutexes. Entries are created on
    first use and kept for the lifetime of the registry; the set of names is
    bounded by the files ever touched by the directory.

    The returned mutexes only order operations of this process. Other
    processes working on the same catalog must be excluded with a
    :class:`blobdir.directory.lease_lock.LeaseLock`.
    """

    def __init__(self):
        self._registry_lock = threading.Lock()
        self._mutexes = {}

    def lock_for(self, name):
        """Returns the ``threading.Lock`` guarding ``name``.

        The same object is returned for every call with the same name.
        """
        check_name(name)
        with self._registry_lock:
            mutex = self._mutexes.get(name)
            if mutex is None:
                mutex = self._mutexes[name] = threading.Lock()
            return mutex

    def __len__(self):
        with self._registry_lock:
            return len(self._mutexes)
