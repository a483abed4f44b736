"""Local file store used as the staging area of a blob directory."""

import logging
import os
import shutil
import tempfile

from blobdir.utils import check_name, mkdir

logger = logging.getLogger('blobdir')

# Prefix of partially downloaded files, never a valid logical name prefix
# as far as listing is concerned.
_TEMP_PREFIX = '.blobdir-'


class LocalCacheStore(object):
    """Cache store which keeps one plain file per logical name in ``dir``.

       Errors of the local filesystem are never swallowed here: they
       propagate as :class:`OSError`.
    """

    def __init__(self, dir):
        self.dir = dir
        mkdir(self.dir)

    def path(self, name):
        check_name(name)
        return os.path.join(self.dir, name)

    def open(self, name):
        """Opens the cached copy for random-access reading."""
        return open(self.path(name), 'rb')

    def create(self, name):
        """Creates (or truncates) the cached copy and opens it for writing."""
        return open(self.path(name), 'wb')

    def save_stream(self, name, stream):
        """Replaces the cached copy with the content of ``stream``.

           The content is written to a temporary file first, so a failed
           transfer never leaves a truncated copy behind.
        """
        path = self.path(name)
        fd, temp_path = tempfile.mkstemp(dir=self.dir, prefix=_TEMP_PREFIX)
        try:
            with os.fdopen(fd, 'wb') as f:
                shutil.copyfileobj(stream, f)
            os.replace(temp_path, path)
        except BaseException:
            os.unlink(temp_path)
            raise
        return os.stat(path).st_size

    def create_staging(self):
        """Creates a private temporary file for a writer.

           Returns a pair ``(file, path)``; the file is open for writing.
           Staging files are never listed and never replace a cached copy
           until :meth:`install` is called.
        """
        fd, temp_path = tempfile.mkstemp(dir=self.dir, prefix=_TEMP_PREFIX)
        return os.fdopen(fd, 'wb'), temp_path

    def install(self, temp_path, name):
        """Moves a staging file into place as the cached copy of ``name``."""
        os.replace(temp_path, self.path(name))

    def delete(self, name):
        os.remove(self.path(name))

    def exists(self, name):
        return os.path.isfile(self.path(name))

    def length(self, name):
        return os.stat(self.path(name)).st_size

    def list_names(self):
        return sorted(n for n in os.listdir(self.dir)
                      if not n.startswith(_TEMP_PREFIX)
                      and os.path.isfile(os.path.join(self.dir, n)))

    def clear(self):
        for name in self.list_names():
            self.delete(name)
        logger.debug('Cleared cache %s', self.dir)
