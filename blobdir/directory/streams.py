"""Readers and writers of blob directory files.

Both kinds of handles do all their I/O against the local cache. Only opening
a :class:`BlobInput` (which may download the object) and closing a
:class:`BlobOutput` (which uploads it) talk to the object store.
"""

import logging
import os

from blobdir.directory import BlobNotFoundError, BlobStoreError, PublishError
from blobdir.utils import check_name

logger = logging.getLogger('blobdir')


class ByteReader(object):
    """An abstract random-access reader of a file."""

    def read_byte(self):
        """Returns the next byte as an ``int``; raises :class:`EOFError`."""
        raise NotImplementedError

    def read_bytes(self, length):
        """Returns exactly ``length`` bytes; raises :class:`EOFError`."""
        raise NotImplementedError

    def seek(self, pos):
        raise NotImplementedError

    @property
    def position(self):
        raise NotImplementedError

    @property
    def length(self):
        raise NotImplementedError

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


class ByteWriter(object):
    """An abstract sequential writer of a file."""

    def write_byte(self, b):
        raise NotImplementedError

    def write_bytes(self, data):
        raise NotImplementedError

    @property
    def position(self):
        raise NotImplementedError

    @property
    def length(self):
        raise NotImplementedError

    def flush(self):
        pass

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


class BlobInput(ByteReader):
    """Reader of a file of a :class:`BlobDirectory`.

       Opening brings the cached copy up to date: if it is missing or its
       length differs from the length of the remote object, the whole object
       is downloaded. This happens under the mutex of the name, so concurrent
       opens of one name download it once. The length check is all the
       freshness checking there is; content replaced with different content
       of equal length is not noticed.

       Raises :class:`BlobNotFoundError` if the object cannot be downloaded.
    """

    def __init__(self, directory, name):
        self.directory = directory
        self.name = name
        cache = directory.cache_store

        with directory.mutexes.lock_for(name):
            if self._needs_download():
                self._download()
            self._file = cache.open(name)
        self._length = os.fstat(self._file.fileno()).st_size

    def _needs_download(self):
        cache = self.directory.cache_store
        if not cache.exists(self.name):
            return True
        cached_length = cache.length(self.name)
        remote_length = self.directory.file_length(self.name)
        if cached_length != remote_length:
            logger.debug('Cached copy of %s is stale (%d != %d bytes)',
                         self.name, cached_length, remote_length)
            return True
        return False

    def _download(self):
        key = self.directory.blob_name(self.name)
        try:
            stream = self.directory.blob_store.get_stream(key)
            try:
                size = self.directory.cache_store.save_stream(self.name,
                                                              stream)
            finally:
                stream.close()
        except BlobNotFoundError:
            raise
        except BlobStoreError as e:
            raise BlobNotFoundError("File not available: %s" % self.name) \
                from e
        logger.debug('%s GET %s retrieved %d bytes', self.directory.name,
                     self.name, size)

    def read_byte(self):
        data = self._file.read(1)
        if not data:
            raise EOFError("Read past end of file: %s" % self.name)
        return data[0]

    def read_bytes(self, length):
        data = self._file.read(length)
        if len(data) < length:
            raise EOFError("Read past end of file: %s" % self.name)
        return data

    def read(self, size=-1):
        return self._file.read(size)

    def seek(self, pos):
        self._file.seek(pos)

    @property
    def position(self):
        return self._file.tell()

    @property
    def length(self):
        return self._length

    @property
    def closed(self):
        return self._file.closed

    def clone(self):
        """Opens the file again, positioned where this reader is.

           The clone is an independent handle and runs the freshness check
           of the cached copy again.
        """
        clone = BlobInput(self.directory, self.name)
        clone.seek(self.position)
        return clone

    def close(self):
        self._file.close()

    def __repr__(self):
        return '<BlobInput %s>' % self.name


class BlobOutput(ByteWriter):
    """Writer of a file of a :class:`BlobDirectory`.

       Every output writes to its own staging file in the cache directory,
       so readers and other writers of the same name never see its bytes
       before it is closed. :meth:`close` uploads the complete staging file,
       replacing the previous object at once, and then moves it into place
       as the cached copy of the name.

       If the upload fails, :meth:`close` raises :class:`PublishError`. The
       staging file is already complete at that point, so calling
       :meth:`close` again only retries the upload.
    """

    def __init__(self, directory, name):
        self.directory = directory
        self.name = name
        self.published = False
        self._final_length = None

        check_name(name)
        self._file, self._staging_path = \
            directory.cache_store.create_staging()

    def write_byte(self, b):
        self._file.write(bytes((b,)))

    def write_bytes(self, data):
        self._file.write(data)

    def write(self, data):
        self._file.write(data)
        return len(data)

    @property
    def position(self):
        if self._final_length is not None:
            return self._final_length
        return self._file.tell()

    @property
    def length(self):
        return self.position

    @property
    def closed(self):
        return self._final_length is not None

    def flush(self):
        """Writes buffered bytes to the staging file. Publishes nothing."""
        if not self.closed:
            self._file.flush()

    def close(self):
        if self.published:
            return

        if self._final_length is None:
            self._file.flush()
            self._final_length = self._file.tell()
            self._file.close()

        directory = self.directory
        with directory.mutexes.lock_for(self.name):
            key = directory.blob_name(self.name)
            try:
                directory.blob_store.put_file(key, self._staging_path)
            except BlobStoreError as e:
                raise PublishError("Could not publish %s: %s"
                                   % (self.name, e)) from e
            directory.cache_store.install(self._staging_path, self.name)
            self.published = True

        directory.output_closed(self)
        logger.debug('%s PUT %s (%d bytes)', directory.name, self.name,
                     self._final_length)

    def __repr__(self):
        return '<BlobOutput %s>' % self.name
