"""BlobStore implementation that keeps objects in an S3 bucket."""

import functools
import logging

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from blobdir.directory import BlobNotFoundError, BlobStoreError
from blobdir.directory.blob_store import BlobStore
from blobdir.settings import S3Settings
from blobdir.utils import report_timing

logger = logging.getLogger('blobdir')

_NOT_FOUND_CODES = {'NoSuchKey', '404', 'NotFound'}


def _is_not_found(e):
    if isinstance(e, ClientError):
        code = e.response.get('Error', {}).get('Code', '')
        return code in _NOT_FOUND_CODES
    return False


def _verbose_s3_errors(fn):
    @functools.wraps(fn)
    def wrapped(self, key, *args, **kwargs):
        try:
            return fn(self, key, *args, **kwargs)
        except (BotoCoreError, ClientError) as e:
            if _is_not_found(e):
                raise BlobNotFoundError('Object not found: s3://%s/%s'
                                        % (self.bucket, key)) from e
            raise BlobStoreError('S3 %s failed for s3://%s/%s: %s'
                                 % (fn.__name__, self.bucket, key, e)) from e

    return wrapped


class S3BlobStore(BlobStore):
    """Blob store which uses an S3 (or S3-compatible) bucket.

       The client is built from :class:`blobdir.settings.S3Settings`: explicit
       credentials, region and ``service_url`` (the endpoint of an
       S3-compatible server) are used when present. A ready boto3 client may
       be passed instead, which is mostly useful in tests.

       ``page_size`` limits the number of keys fetched by a single listing
       request.
    """

    def __init__(self, bucket=None, settings=None, client=None,
                 page_size=None, request_timeout=60):
        if settings is None:
            settings = S3Settings()
        if bucket is None:
            bucket = settings.bucket_name
        if not bucket:
            raise ValueError("S3BlobStore requires a bucket name")

        self.bucket = bucket
        self.settings = settings
        self.page_size = page_size

        if client is None:
            session = boto3.Session(region_name=settings.region,
                                    **settings.credentials())
            client = session.client(
                's3',
                region_name=settings.region,
                endpoint_url=settings.service_url,
                config=BotoConfig(
                    connect_timeout=request_timeout,
                    read_timeout=request_timeout,
                    retries={'max_attempts': 5, 'mode': 'standard'},
                ),
            )
        self._s3 = client

    @_verbose_s3_errors
    def list_keys(self, prefix):
        pagination = {}
        if self.page_size:
            pagination['PageSize'] = self.page_size

        paginator = self._s3.get_paginator('list_objects_v2')
        keys = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix,
                                       PaginationConfig=pagination):
            keys.extend(obj['Key'] for obj in page.get('Contents', ()))
        return keys

    def exists(self, key):
        try:
            self.get_stream(key).close()
        except BlobNotFoundError:
            return False
        return True

    @_verbose_s3_errors
    def size(self, key):
        response = self._s3.head_object(Bucket=self.bucket, Key=key)
        return int(response.get('ContentLength', 0))

    @_verbose_s3_errors
    def get_stream(self, key):
        response = self._s3.get_object(Bucket=self.bucket, Key=key)
        return _StreamingBody(response['Body'], self.bucket, key)

    @report_timing('S3BlobStore.put_stream')
    @_verbose_s3_errors
    def put_stream(self, key, stream):
        kwargs = {
            'Bucket': self.bucket,
            'Key': key,
            'Body': stream,
        }
        if self.settings.canned_acl:
            kwargs['ACL'] = self.settings.canned_acl
        self._s3.put_object(**kwargs)

    @_verbose_s3_errors
    def delete(self, key):
        try:
            self._s3.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if not _is_not_found(e):
                raise
            logger.debug('Object s3://%s/%s already deleted',
                         self.bucket, key)

    def __repr__(self):
        return '<S3BlobStore s3://%s>' % self.bucket


class _StreamingBody(object):
    """Wraps a botocore body so that read errors become BlobStoreError."""

    def __init__(self, body, bucket, key):
        self.body = body
        self.bucket = bucket
        self.key = key

    def read(self, size=None):
        try:
            if size is None or size < 0:
                return self.body.read()
            return self.body.read(size)
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError('Reading s3://%s/%s failed: %s'
                                 % (self.bucket, self.key, e)) from e

    def close(self):
        self.body.close()
