"""Distributed locks built from object-store primitives.

A :class:`LeaseLock` is a single object whose body is
``"<expiryTicks>%<leaseId>"``. ``expiryTicks`` counts 100 ns intervals since
0001-01-01 UTC, so locks written by other tools using the same format are
understood. ``leaseId`` is a random alphanumeric token identifying the holder.

Locking is advisory: a holder that cannot renew its lease loses the lock once
the lease expires, and nothing stops it from continuing to write.
"""

import collections
import contextlib
import logging
import random
import string
import threading
import time

from blobdir.directory import (BlobNotFoundError, BlobStoreError,
                               LockObtainFailedError)

logger = logging.getLogger('blobdir')

# Ticks of the Unix epoch.
_EPOCH_TICKS = 621355968000000000
_TICKS_PER_SECOND = 10 ** 7

_LEASE_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase
_random = random.SystemRandom()


def to_ticks(timestamp):
    """Converts a Unix timestamp (seconds) to ticks."""
    return _EPOCH_TICKS + int(round(timestamp * _TICKS_PER_SECOND))


class LockInfo(collections.namedtuple('LockInfo', ['lease_id', 'expiry'])):
    """Content of a lock object.

    Fields:

    * ``lease_id`` the token of the holder, ``None`` if malformed
    * ``expiry`` expiry time in ticks, ``None`` if malformed
    """

    SEPARATOR = '%'

    @property
    def is_valid(self):
        return bool(self.lease_id) and bool(self.expiry)

    def dumps(self):
        return '%d%s%s' % (self.expiry, self.SEPARATOR, self.lease_id)

    @classmethod
    def loads(cls, content):
        idx = content.find(cls.SEPARATOR)
        if idx < 5:
            return cls(None, None)
        try:
            expiry = int(content[:idx])
        except ValueError:
            return cls(None, None)
        return cls(content[idx + 1:], expiry)


def new_lease_id(length=35):
    return ''.join(_random.choice(_LEASE_ALPHABET) for _ in range(length))


class DistributedLock(object):
    """An abstract class representing a lock shared by many processes."""

    def obtain(self):
        """Tries to take the lock without waiting.

        Returns ``True`` on success. Failing to get the lock is a normal
        outcome, not an error.
        """
        raise NotImplementedError

    def release(self):
        """Releases the lock. Returns ``False`` if someone else holds it."""
        raise NotImplementedError

    def is_locked(self):
        """Returns ``True`` if anybody holds the lock."""
        raise NotImplementedError

    def break_lock(self):
        """Removes the lock regardless of the holder."""
        raise NotImplementedError

    def close(self):
        """Releases the lock, logging instead of raising on failure."""
        try:
            self.release()
        except BlobStoreError:
            logger.warning('Could not release %s', self, exc_info=True)


class LeaseLock(DistributedLock):
    """A :class:`DistributedLock` stored as a single object at ``key``.

    A successful :meth:`obtain` starts a daemon thread which renews the lease
    every ``renew_interval`` seconds (half of ``duration`` by default) until
    the lock is released or broken.
    """

    DEFAULT_DURATION = 60
    LEASE_ID_LENGTH = 35

    def __init__(self, blob_store, key, duration=None, renew_interval=None,
                 clock=time.time):
        if duration is None:
            duration = self.DEFAULT_DURATION
        if renew_interval is None:
            renew_interval = duration / 2.0
        self.blob_store = blob_store
        self.key = key
        self.duration = duration
        self.renew_interval = renew_interval
        self.clock = clock

        self._lease_id = None
        self._lock = threading.RLock()
        self._renewal_thread = None
        self._renewal_stop = None

    @property
    def lease_id(self):
        return self._lease_id

    def _now_ticks(self):
        return to_ticks(self.clock())

    def _is_live(self, info):
        return info.is_valid and self._now_ticks() <= info.expiry

    def _read(self):
        try:
            content = self.blob_store.get_bytes(self.key)
        except BlobNotFoundError:
            return None
        return LockInfo.loads(content.decode('utf-8', 'replace'))

    def _write_verified(self, lease_id):
        """Writes a lease and reads it back.

        Returns ``True`` only if the stored value is exactly what was written,
        which detects a concurrent writer winning the race.
        """
        info = LockInfo(lease_id, to_ticks(self.clock() + self.duration))
        self.blob_store.put_bytes(self.key, info.dumps().encode('utf-8'))
        return self._read() == info

    def _is_ours(self, info):
        return (info is not None and self._is_live(info)
                and info.lease_id == self._lease_id)

    def obtain(self):
        """Takes the lock, or confirms that our stored lease is still live.

        A held lease which has lapsed in the store is dropped first, so a
        lease taken over by someone else is never reported as ours.
        """
        with self._lock:
            obtained, lapsed = self._obtain()
        _join(lapsed)
        return obtained

    def _obtain(self):
        lapsed = None
        try:
            current = self._read()
            if self._lease_id is not None:
                if self._is_ours(current):
                    return True, None
                logger.warning('Lease %s of lock %s has lapsed',
                               self._lease_id, self.key)
                self._lease_id = None
                lapsed = self._stop_renewal()

            if current is not None and self._is_live(current):
                logger.debug('Lock %s is held by %s', self.key,
                             current.lease_id)
                return False, lapsed
            lease_id = new_lease_id(self.LEASE_ID_LENGTH)
            if not self._write_verified(lease_id):
                logger.info('Lost the race for lock %s', self.key)
                return False, lapsed
        except BlobStoreError:
            logger.warning('Could not obtain lock %s', self.key,
                           exc_info=True)
            return False, lapsed

        self._lease_id = lease_id
        self._start_renewal()
        logger.debug('Obtained lock %s as %s', self.key, lease_id)
        return True, lapsed

    def renew(self):
        """Moves the expiry of the held lease forward.

        Returns ``False`` if the lease could not be renewed. A lease taken
        over by another holder is given up for good.
        """
        thread = None
        with self._lock:
            if self._lease_id is None:
                return False
            try:
                current = self._read()
                if (current is not None and self._is_live(current)
                        and current.lease_id != self._lease_id):
                    logger.warning('Lock %s was taken over by %s, giving up '
                                   'lease %s', self.key, current.lease_id,
                                   self._lease_id)
                    self._lease_id = None
                    thread = self._stop_renewal()
                elif not self._write_verified(self._lease_id):
                    logger.warning('Could not verify renewal of lock %s',
                                   self.key)
                    return False
            except BlobStoreError:
                logger.warning('Renewing lock %s failed', self.key,
                               exc_info=True)
                return False
        if thread is not None:
            _join(thread)
            return False
        logger.debug('Renewed lock %s', self.key)
        return True

    def is_locked(self):
        current = self._read()
        if current is None:
            return False
        if not self._is_live(current):
            try:
                self.blob_store.delete(self.key)
                logger.debug('Deleted stale lock %s', self.key)
            except BlobStoreError:
                logger.warning('Could not delete stale lock %s', self.key,
                               exc_info=True)
            return False
        return True

    def is_held(self):
        """Returns ``True`` if the stored, unexpired lease is ours."""
        if self._lease_id is None:
            return False
        return self._is_ours(self._read())

    def release(self):
        with self._lock:
            current = self._read()
            if (current is not None and self._is_live(current)
                    and current.lease_id != self._lease_id):
                logger.info('Not releasing lock %s held by %s', self.key,
                            current.lease_id)
                return False
            if current is not None:
                self.blob_store.delete(self.key)
            self._lease_id = None
            thread = self._stop_renewal()
        _join(thread)
        logger.debug('Released lock %s', self.key)
        return True

    def break_lock(self):
        with self._lock:
            logger.info('Breaking lock %s (lease %s)', self.key,
                        self._lease_id)
            self._lease_id = None
            thread = self._stop_renewal()
            self.blob_store.delete(self.key)
        _join(thread)

    def close(self):
        """Releases a held lease, logging instead of raising on failure."""
        if self._lease_id is None:
            return
        try:
            self.release()
        except BlobStoreError:
            logger.warning('Could not release lock %s', self.key,
                           exc_info=True)
        with self._lock:
            thread = self._stop_renewal()
        _join(thread)

    def _start_renewal(self):
        stop = threading.Event()
        thread = threading.Thread(target=self._renew_periodically,
                                  args=(stop,),
                                  name='blobdir-renew-%s' % self.key)
        thread.daemon = True
        self._renewal_stop = stop
        self._renewal_thread = thread
        thread.start()

    def _stop_renewal(self):
        thread = self._renewal_thread
        if self._renewal_stop is not None:
            self._renewal_stop.set()
        self._renewal_stop = None
        self._renewal_thread = None
        return thread

    def _renew_periodically(self, stop):
        while not stop.wait(self.renew_interval):
            try:
                self.renew()
            except Exception:
                logger.warning('Unexpected error renewing lock %s', self.key,
                               exc_info=True)

    def __str__(self):
        return 'LeaseLock@%s.%s' % (self.key, self._lease_id)


def _join(thread):
    if thread is not None and thread is not threading.current_thread():
        thread.join()


@contextlib.contextmanager
def hold(lock, timeout=None, poll_interval=1.0):
    """Obtains ``lock``, polling every ``poll_interval`` seconds.

    Raises :class:`LockObtainFailedError` if the lock could not be obtained
    within ``timeout`` seconds (``None`` waits forever). Time is measured with
    the clock of the lock if it has one. The lock is released on every exit
    from the ``with`` block; a failed release is logged, so it never hides
    an exception raised inside the block.
    """
    clock = getattr(lock, 'clock', time.time)
    deadline = None if timeout is None else clock() + timeout
    while not lock.obtain():
        if deadline is not None and clock() >= deadline:
            raise LockObtainFailedError(
                "Could not obtain %s within %s seconds" % (lock, timeout))
        time.sleep(poll_interval)
    try:
        yield lock
    finally:
        lock.close()
