"""An abstract definition of a remote object store."""

import io
import os
import shutil

from blobdir.utils import mkdir


class BlobStore(object):
    """An abstract base class giving access to a flat namespace of objects.

       Objects are addressed by keys, which are arbitrary strings (usually
       with ``/`` separated segments). Stores are expected to provide
       read-after-write consistency for a single key; listings may lag
       behind.

       Every failure of the underlying transport is raised as
       :class:`blobdir.directory.BlobStoreError`, and a missing object as
       :class:`blobdir.directory.BlobNotFoundError`.
    """

    def list_keys(self, prefix):
        """Returns a list of all keys starting with ``prefix``.

           Implementations must follow truncated listings until the whole
           key range has been returned.
        """
        raise NotImplementedError

    def exists(self, key):
        """Returns ``True`` if the object exists, ``False`` otherwise.

           This is always a round trip to the store.
        """
        raise NotImplementedError

    def size(self, key):
        """Returns the size of the object in bytes."""
        raise NotImplementedError

    def get_stream(self, key):
        """Retrieves an object as a readable binary stream."""
        raise NotImplementedError

    def get_bytes(self, key):
        stream = self.get_stream(key)
        try:
            return stream.read()
        finally:
            close = getattr(stream, 'close', None)
            if close is not None:
                close()

    def get_file(self, key, filename):
        """Saves the content of object ``key`` to ``filename``.

           Works like :meth:`get_stream`, but ``filename`` is the name of
           a file which will be created (or overwritten).
        """
        stream = self.get_stream(key)

        dir_path = os.path.dirname(filename)
        if dir_path:
            mkdir(dir_path)

        try:
            with open(filename, 'wb') as f:
                shutil.copyfileobj(stream, f)
        finally:
            close = getattr(stream, 'close', None)
            if close is not None:
                close()

    def put_stream(self, key, stream):
        """Saves the passed stream under ``key``, replacing the old object.

           The object becomes visible only after the whole stream has been
           transferred.
        """
        raise NotImplementedError

    def put_bytes(self, key, data):
        self.put_stream(key, io.BytesIO(data))

    def put_file(self, key, filename):
        """Works like :meth:`put_stream`, but ``filename`` is the name of
           an existing file in the filesystem.
        """
        with open(filename, 'rb') as f:
            self.put_stream(key, f)

    def delete(self, key):
        """Deletes the object. Deleting a missing object is not an error."""
        raise NotImplementedError
