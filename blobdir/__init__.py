"""Blobdir is a module which makes a remote object store look like a shared
   directory of files.

   It was designed with the intent to be used as the storage of a search
   index kept in S3 (or any S3-compatible or WebDAV-style HTTP store), so
   that many machines can open, read and write the same set of files while
   the store itself only knows how to list, get, put and delete whole
   objects.

   -------------------------
   Catalogs, names and files
   -------------------------

   A directory holds the files of one *catalog*. Every file has a plain name
   (no slashes), which is stored as the object
   ``<bucket folder>/<catalog>/<name>``. The catalog may have several
   slash-separated segments itself, like ``indexes/products``.

   Reads and writes go through a local cache. Opening a file for reading
   downloads the whole object unless the cached copy has the same length as
   the object. Writing creates the cached copy anew, and the object is
   uploaded only when the output is closed, so nobody ever sees a partially
   written file.

   The store has no locking of its own, so directories hand out lease locks
   stored as objects next to the files. A lock is held for one minute at a
   time and renewed in the background every thirty seconds.

   -----------------------
   Configuration and usage
   -----------------------

   Probably the only class you'd like to know and use is
   :class:`blobdir.directory.BlobDirectory`.

   .. autoclass:: blobdir.directory.BlobDirectory
       :members:

   If you write tests, you may be also interested in
   :class:`blobdir.directory.dummy.DummyDirectory`.

   --------------------------------
   Using blobdir from the shell
   --------------------------------

   No programmer can live without a way to fiddle with blobdir from the
   shell::

     $ blobdir --help

   Whole local directories can be uploaded with::

     $ blobdir-upload --help

   ----------------------
   API Reference
   ----------------------

   .. autofunction:: blobdir.utils.normalize_catalog

   .. autofunction:: blobdir.utils.blob_name

   .. autoclass:: blobdir.settings.S3Settings
       :members:

   .. autoclass:: blobdir.directory.blob_store.BlobStore
       :members:

   .. autoclass:: blobdir.directory.s3_blob_store.S3BlobStore

   .. autoclass:: blobdir.directory.http_blob_store.HttpBlobStore

   .. autoclass:: blobdir.directory.cache_store.LocalCacheStore
       :members:

   .. autoclass:: blobdir.directory.mutex_registry.MutexRegistry
       :members:

   .. autoclass:: blobdir.directory.streams.BlobInput
       :members:

   .. autoclass:: blobdir.directory.streams.BlobOutput
       :members:

   .. autoclass:: blobdir.directory.lease_lock.LeaseLock
       :members:

   .. autofunction:: blobdir.directory.lease_lock.hold

   .. autoclass:: blobdir.directory.dummy.DummyBlobStore
"""
