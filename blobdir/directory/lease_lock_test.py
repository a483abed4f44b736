import time
import unittest

from blobdir.directory import LockObtainFailedError
from blobdir.directory.dummy import DummyBlobStore
from blobdir.directory.lease_lock import (LeaseLock, LockInfo, hold,
                                          new_lease_id, to_ticks)

_KEY = 'index/write.lock'


class _Clock(object):
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class _TickingClock(_Clock):
    """Clock which moves one second forward on every reading."""

    def __call__(self):
        self.now += 1
        return self.now


class _RacingBlobStore(DummyBlobStore):
    """Store in which another process overwrites every lease we write."""

    def put_stream(self, key, stream):
        DummyBlobStore.put_stream(self, key, stream)
        rival = LockInfo('R' * 35, to_ticks(5000))
        self.data[key] = rival.dumps().encode('utf-8')


class LockInfoTest(unittest.TestCase):
    def test_to_ticks_should_count_from_year_one(self):
        self.assertEqual(to_ticks(0), 621355968000000000)
        self.assertEqual(to_ticks(1.5), 621355968000000000 + 15000000)

    def test_loads_should_parse_dumps(self):
        info = LockInfo('abc', to_ticks(1000))
        self.assertEqual(info.dumps(), '%d%%abc' % to_ticks(1000))
        self.assertEqual(LockInfo.loads(info.dumps()), info)
        self.assertTrue(info.is_valid)

    def test_loads_should_reject_malformed_content(self):
        for content in ('', 'garbage', '123%abc', '12345x%abc', '%abc'):
            self.assertFalse(LockInfo.loads(content).is_valid, content)

    def test_new_lease_id_should_be_random_alphanumeric(self):
        lease_id = new_lease_id()
        self.assertEqual(len(lease_id), 35)
        self.assertTrue(lease_id.isalnum())
        self.assertNotEqual(lease_id, new_lease_id())


class LeaseLockTest(unittest.TestCase):
    def setUp(self):
        self.store = DummyBlobStore()
        self.clock = _Clock()

    def _make_lock(self, store=None):
        lock = LeaseLock(store or self.store, _KEY, duration=60,
                         renew_interval=3600, clock=self.clock)
        self.addCleanup(lock.close)
        return lock

    def _stored(self):
        return LockInfo.loads(self.store.data[_KEY].decode('utf-8'))

    def test_obtain_should_exclude_other_holders(self):
        a = self._make_lock()
        b = self._make_lock()

        self.assertTrue(a.obtain())
        self.assertFalse(b.obtain())
        self.assertTrue(a.is_held())
        self.assertFalse(b.is_held())
        self.assertTrue(b.is_locked())
        self.assertEqual(self._stored().lease_id, a.lease_id)

        self.assertTrue(a.release())
        self.assertFalse(b.is_locked())
        self.assertTrue(b.obtain())

    def test_obtain_should_write_expiry_in_ticks(self):
        a = self._make_lock()
        a.obtain()

        self.assertEqual(self._stored(), LockInfo(a.lease_id, to_ticks(1060)))

    def test_obtain_twice_should_keep_lease(self):
        a = self._make_lock()
        self.assertTrue(a.obtain())
        lease_id = a.lease_id
        self.assertTrue(a.obtain())
        self.assertEqual(a.lease_id, lease_id)

    def test_expired_lease_should_be_taken_over(self):
        a = self._make_lock()
        b = self._make_lock()
        self.assertTrue(a.obtain())

        self.clock.now += 61
        self.assertTrue(b.obtain())
        self.assertFalse(a.is_held())
        self.assertFalse(a.obtain())
        self.assertIsNone(a.lease_id)

        self.assertFalse(a.renew())
        self.assertIsNone(a.lease_id)
        self.assertFalse(a.release())
        self.assertEqual(self._stored().lease_id, b.lease_id)

    def test_obtain_should_replace_own_lapsed_lease(self):
        a = self._make_lock()
        a.obtain()
        lapsed = a.lease_id

        self.clock.now += 61
        self.assertTrue(a.obtain())
        self.assertNotEqual(a.lease_id, lapsed)
        self.assertEqual(self._stored(), LockInfo(a.lease_id, to_ticks(1121)))

    def test_is_locked_should_delete_stale_lock(self):
        a = self._make_lock()
        a.obtain()

        self.clock.now += 61
        self.assertFalse(self._make_lock().is_locked())
        self.assertNotIn(_KEY, self.store.data)

    def test_malformed_lock_should_not_block(self):
        self.store.data[_KEY] = b'not a lock'
        a = self._make_lock()

        self.assertFalse(a.is_locked())
        self.assertTrue(a.obtain())

    def test_renew_should_move_expiry_forward(self):
        a = self._make_lock()
        a.obtain()

        self.clock.now += 30
        self.assertTrue(a.renew())
        self.assertEqual(self._stored(), LockInfo(a.lease_id, to_ticks(1090)))

    def test_renew_without_lease_should_fail(self):
        self.assertFalse(self._make_lock().renew())

    def test_renewal_thread_should_renew_lease(self):
        a = LeaseLock(self.store, _KEY, duration=60, renew_interval=0.01,
                      clock=self.clock)
        self.addCleanup(a.close)
        a.obtain()
        self.clock.now += 30

        deadline = time.time() + 5
        while (self._stored().expiry != to_ticks(1090)
               and time.time() < deadline):
            time.sleep(0.01)
        self.assertEqual(self._stored().expiry, to_ticks(1090))

    def test_release_should_not_remove_foreign_lease(self):
        a = self._make_lock()
        b = self._make_lock()
        a.obtain()

        self.assertFalse(b.release())
        self.assertTrue(a.is_held())

    def test_break_lock_should_remove_any_lease(self):
        a = self._make_lock()
        b = self._make_lock()
        a.obtain()

        b.break_lock()
        self.assertNotIn(_KEY, self.store.data)
        self.assertTrue(b.obtain())
        self.assertFalse(a.is_held())

    def test_obtain_should_fail_if_verification_fails(self):
        a = self._make_lock(store=_RacingBlobStore())

        self.assertFalse(a.obtain())
        self.assertIsNone(a.lease_id)

    def test_obtain_should_fail_on_store_errors(self):
        a = self._make_lock()
        self.store.fail = True

        self.assertFalse(a.obtain())
        self.assertIsNone(a.lease_id)

    def test_close_should_release_lease(self):
        a = self._make_lock()
        a.obtain()

        a.close()
        self.assertNotIn(_KEY, self.store.data)
        self.assertIsNone(a.lease_id)


class HoldTest(unittest.TestCase):
    def setUp(self):
        self.store = DummyBlobStore()

    def test_hold_should_release_on_exit(self):
        lock = LeaseLock(self.store, _KEY, renew_interval=3600)

        with hold(lock, timeout=1) as held:
            self.assertIs(held, lock)
            self.assertTrue(lock.is_held())
        self.assertNotIn(_KEY, self.store.data)

    def test_hold_should_release_on_error(self):
        lock = LeaseLock(self.store, _KEY, renew_interval=3600)

        with self.assertRaises(KeyError):
            with hold(lock, timeout=1):
                raise KeyError('boom')
        self.assertNotIn(_KEY, self.store.data)

    def test_hold_should_time_out(self):
        owner = LeaseLock(self.store, _KEY, renew_interval=3600)
        self.addCleanup(owner.close)
        owner.obtain()

        other = LeaseLock(self.store, _KEY, renew_interval=3600)
        with self.assertRaises(LockObtainFailedError):
            with hold(other, timeout=0.05, poll_interval=0.01):
                pass

    def test_hold_should_measure_timeout_with_lock_clock(self):
        clock = _TickingClock()
        owner = LeaseLock(self.store, _KEY, renew_interval=3600, clock=clock)
        self.addCleanup(owner.close)
        owner.obtain()

        other = LeaseLock(self.store, _KEY, renew_interval=3600, clock=clock)
        with self.assertRaises(LockObtainFailedError):
            with hold(other, timeout=10, poll_interval=0):
                pass
        self.assertLess(clock.now, 1060)

    def test_failed_release_should_not_hide_error(self):
        lock = LeaseLock(self.store, _KEY, renew_interval=3600)
        self.addCleanup(lock.close)

        with self.assertRaises(KeyError):
            with hold(lock, timeout=1):
                self.store.fail = True
                raise KeyError('boom')
        self.store.fail = False
