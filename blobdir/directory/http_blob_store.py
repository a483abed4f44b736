"""BlobStore implementation that talks to a WebDAV-style HTTP server.

The server is expected to support ``PUT``, ``GET``, ``HEAD`` and ``DELETE``
on ``<base_url>/<key>``, creating intermediate collections on ``PUT``, and to
serve a JSON index of every collection. This is what nginx provides with::

    location /blobs/ {
        dav_methods PUT DELETE;
        create_full_put_path on;
        autoindex on;
        autoindex_format json;
    }
"""

import functools
import logging
from urllib.parse import quote

import requests

from blobdir.directory import BlobNotFoundError, BlobStoreError
from blobdir.directory.blob_store import BlobStore
from blobdir.utils import report_timing

logger = logging.getLogger('blobdir')

_CHUNK_SIZE = 16 * 1024


def _verbose_http_errors(fn):
    @functools.wraps(fn)
    def wrapped(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except requests.exceptions.RequestException as e:
            if e.response is None:
                raise BlobStoreError('Error making HTTP request: %s' % e) from e

            code = e.response.status_code
            if code == 404:
                raise BlobNotFoundError('Object not found: %s'
                                        % e.response.url) from e
            raise BlobStoreError('HTTP/%d: %s' % (code, e)) from e

    return wrapped


class HttpBlobStore(BlobStore):
    """Blob store which uses a WebDAV-style HTTP server."""

    def __init__(self, base_url, session=None):
        self.base_url = base_url.rstrip('/')
        if session is None:
            session = requests.Session()
        self.session = session

    def _url(self, key):
        return self.base_url + '/' + quote(key)

    @_verbose_http_errors
    def list_keys(self, prefix):
        if '/' in prefix:
            collection = prefix.rsplit('/', 1)[0]
        else:
            collection = ''
        return [key for key in self._walk(collection)
                if key.startswith(prefix)]

    def _walk(self, collection):
        url = self._url(collection + '/') if collection else self.base_url + '/'
        response = self.session.get(url, headers={'Accept': 'application/json'})
        if response.status_code == 404:
            return []
        response.raise_for_status()

        keys = []
        for entry in response.json():
            if collection:
                key = collection + '/' + entry['name']
            else:
                key = entry['name']
            if entry.get('type') == 'directory':
                keys.extend(self._walk(key))
            elif entry.get('type') == 'file':
                keys.append(key)
        return keys

    @_verbose_http_errors
    def exists(self, key):
        # The body is never read, the connection is closed right away.
        response = self.session.get(self._url(key), stream=True)
        try:
            if response.status_code == 404:
                return False
            response.raise_for_status()
            return True
        finally:
            response.close()

    @_verbose_http_errors
    def size(self, key):
        response = self.session.head(self._url(key), allow_redirects=True)
        response.raise_for_status()
        return int(response.headers.get('content-length', 0))

    @_verbose_http_errors
    def get_stream(self, key):
        response = self.session.get(self._url(key), stream=True)
        response.raise_for_status()
        return _FileLikeFromResponse(response)

    @report_timing('HttpBlobStore.put_stream')
    @_verbose_http_errors
    def put_stream(self, key, stream):
        # Important detail: this upload is streaming.
        response = self.session.put(self._url(key), data=stream)
        response.raise_for_status()

    @_verbose_http_errors
    def delete(self, key):
        response = self.session.delete(self._url(key))
        if response.status_code == 404:
            logger.debug('Object %s already deleted', key)
            return
        response.raise_for_status()

    def __repr__(self):
        return '<HttpBlobStore %s>' % self.base_url


class _FileLikeFromResponse(object):
    def __init__(self, response):
        self.response = response
        self.iter = response.iter_content(chunk_size=_CHUNK_SIZE)
        self.data = b''

    @_verbose_http_errors
    def read(self, size=None):
        if size is None or size < 0:
            # read all remaining data
            result = self.data + b''.join(c for c in self.iter)
            self.data = b''
            return result
        else:
            while len(self.data) < size:
                try:
                    self.data += next(self.iter)
                except StopIteration:
                    break
            result, self.data = self.data[:size], self.data[size:]
            return result

    def close(self):
        self.response.close()
