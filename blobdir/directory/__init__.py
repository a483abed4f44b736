"""Blob directory implementation."""


class BlobDirError(Exception):
    pass


class BlobStoreError(BlobDirError):
    """A call to the remote object store failed."""


class BlobNotFoundError(BlobStoreError):
    """The object does not exist or could not be retrieved."""


class PublishError(BlobStoreError):
    """Uploading a closed output to the object store failed.

    The local cache already holds the complete content, so closing the
    output again retries only the upload.
    """


class LockObtainFailedError(BlobDirError):
    pass

# Reexport under shorter path.
from blobdir.directory.directory import BlobDirectory
