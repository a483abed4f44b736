"""Common routines for naming blobs and local files."""

import errno
import functools
import logging
import os
import time

logger = logging.getLogger('blobdir')


def normalize_catalog(*parts):
    """Joins ``parts`` into a slash-delimited key prefix.

    Empty and whitespace-only segments are dropped and the remaining ones
    are stripped, so ``normalize_catalog(' folder/ ', '/a//b ')`` gives
    ``'folder/a/b'``. ``None`` parts are ignored.
    """
    segments = []
    for part in parts:
        if part is None:
            continue
        for segment in part.split('/'):
            if segment.strip():
                segments.append(segment.strip())
    return '/'.join(segments)


def check_name(name):
    if not isinstance(name, str):
        raise ValueError("Invalid blobdir file name: not string: %r" % (name,))
    if not name.strip():
        raise ValueError("Invalid blobdir file name: empty name")
    if '/' in name:
        raise ValueError("Invalid blobdir file name: / in name %r" % (name,))


def blob_name(sub_directory, name):
    """Maps a logical file name to the key of its object."""
    check_name(name)
    if sub_directory:
        return sub_directory + '/' + name
    return name


def strip_prefix(sub_directory, key):
    """Recovers the logical file name from a listed key.

    Returns ``None`` for keys which do not belong directly to the catalog
    (other prefixes or nested "sub-directories").
    """
    prefix = sub_directory + '/' if sub_directory else ''
    if not key.startswith(prefix):
        return None
    name = key[len(prefix):]
    if not name or '/' in name:
        return None
    return name


def mkdir(name):
    try:
        os.makedirs(name, 0o700)
    except OSError as e:
        if e.errno != errno.EEXIST:
            raise


def report_timing(name):
    def decorator(fn):
        @functools.wraps(fn)
        def wrapped(*args, **kwargs):
            t = time.time()
            logger.debug('    %s starting', name)
            ret = fn(*args, **kwargs)
            elapsed = time.time() - t
            logger.debug('    %s took %.2fs', name, elapsed)
            return ret
        return wrapped
    return decorator
