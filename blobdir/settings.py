"""Settings of an S3 connection and their connection-string form.

A connection string is a list of ``key=value`` pairs separated by
semicolons, for example::

    AccessKey=AKIA...;SecretKey=...;Region=eu-west-1;Bucket=indexes

Keys are case-insensitive and several spellings are accepted for each
setting (see :data:`_ALIASES`). Pairs without ``=`` are ignored, unknown keys
are rejected.
"""

import os

_ALIASES = {
    'access_key': ('accesskey', 'access key', 'accesskeyid', 'access key id',
                   'id'),
    'secret_key': ('secretkey', 'secret key', 'secretaccesskey',
                   'secret access key', 'secret'),
    'region': ('region', 'endpoint', 'end point'),
    'service_url': ('service', 'serviceurl', 'service url'),
    'bucket_name': ('bucket', 'bucketname', 'bucket name'),
    'bucket_folder': ('bucketfolder', 'bucket folder', 'folder'),
    'canned_acl': ('cannedacl', 'canned acl', 'acl'),
}

_FIELDS_BY_ALIAS = dict(
    (alias, field) for field, aliases in _ALIASES.items()
    for alias in aliases)


class S3Settings(object):
    """Everything needed to reach a bucket.

    Credentials left as ``None`` make boto3 fall back to its own lookup
    chain (environment, shared config, instance profile).
    """

    ENV_VARIABLE = 'BLOBDIR_S3_SETTINGS'

    def __init__(self, access_key=None, secret_key=None, region=None,
                 service_url=None, bucket_name=None, bucket_folder=None,
                 canned_acl=None):
        self.access_key = access_key
        self.secret_key = secret_key
        self.region = region
        self.service_url = service_url
        self.bucket_name = bucket_name
        self.bucket_folder = bucket_folder
        self.canned_acl = canned_acl

    @classmethod
    def parse(cls, connection_string):
        if not connection_string:
            raise ValueError("Empty S3 connection string")

        settings = cls()
        for option in connection_string.split(';'):
            if '=' not in option:
                continue
            key, value = option.split('=', 1)
            settings.set_option(key.strip(), value.strip())
        return settings

    @classmethod
    def from_environment(cls):
        """Returns settings from ``BLOBDIR_S3_SETTINGS`` or empty ones."""
        connection_string = os.environ.get(cls.ENV_VARIABLE)
        if connection_string:
            return cls.parse(connection_string)
        return cls()

    def set_option(self, key, value):
        field = _FIELDS_BY_ALIAS.get(key.lower())
        if field is None:
            raise ValueError("The option '%s' cannot be recognized in "
                             "connection string." % key)
        setattr(self, field, value)

    def credentials(self):
        """Returns keyword arguments for ``boto3.Session``."""
        if not self.access_key:
            return {}
        return {
            'aws_access_key_id': self.access_key,
            'aws_secret_access_key': self.secret_key,
        }

    def __eq__(self, other):
        return isinstance(other, S3Settings) and vars(self) == vars(other)

    def __ne__(self, other):
        return not self == other

    def __repr__(self):
        return '<S3Settings bucket=%r folder=%r region=%r service_url=%r>' % (
            self.bucket_name, self.bucket_folder, self.region,
            self.service_url)

    def __str__(self):
        connection_string = ''
        if self.access_key:
            connection_string += 'AccessKey=' + self.access_key + ';'
        if self.secret_key:
            connection_string += 'SecretKey=' + self.secret_key + ';'
        if self.region:
            connection_string += 'Region=' + self.region + ';'
        if self.service_url:
            connection_string += 'ServiceUrl=' + self.service_url + ';'
        return connection_string
