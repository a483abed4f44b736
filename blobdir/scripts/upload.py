"""Script to upload the files of a local directory into a catalog."""

import argparse
import contextlib
import os
import shutil
import sys

import progressbar

from blobdir.directory import BlobDirectory, BlobDirError
from blobdir.settings import S3Settings

# Value used for aligning printed action names
_ACTION_LENGTH = 25

_BUFFER_SIZE = 64 * 1024


_DESCRIPTION = """
Uploads files to a catalog of a blob directory.

Every regular file directly inside the given local directory becomes a file
of the catalog with the same name. Sub-directories are skipped, as catalog
file names cannot contain slashes.

The intention for this script is to seed a catalog from an index built
locally, or to move a catalog between stores.
"""


class _BarStub(object):
    def update(self, *args, **kwargs):
        pass


@contextlib.contextmanager
def _progress(show, **kwargs):
    """Yields a progress bar, or an object with a no-op update() method."""
    if show:
        with progressbar.ProgressBar(**kwargs) as bar:
            yield bar
    else:
        yield _BarStub()


def _local_files(path):
    return sorted(n for n in os.listdir(path)
                  if os.path.isfile(os.path.join(path, n)))


def upload(directory, path, silent=False):
    """Uploads every file of ``path`` into ``directory``.

    Returns the number of files which failed to upload.
    """
    names = _local_files(path)
    total_size = sum(os.path.getsize(os.path.join(path, n)) for n in names)

    widgets = [
            ' [', progressbar.Timer(format='Time: %(elapsed)s'), '] ',
            ' Uploading files '.ljust(_ACTION_LENGTH),
            ' ', progressbar.DataSize(), ' ',
            progressbar.Bar(),
            ' ', progressbar.Percentage(), ' ',
            ' (', progressbar.AdaptiveETA(), ') ',
    ]

    failures = 0
    processed_size = 0
    with _progress(show=not silent, max_value=total_size,
                   widgets=widgets) as bar:
        for name in names:
            file_path = os.path.join(path, name)
            try:
                with open(file_path, 'rb') as f:
                    with directory.create_output(name) as output:
                        shutil.copyfileobj(f, output, _BUFFER_SIZE)
            except BlobDirError as e:
                failures += 1
                print('ERROR when uploading {}:\n{}'.format(file_path, e),
                      file=sys.stderr)

            processed_size += os.path.getsize(file_path)
            bar.update(processed_size)

    return failures


def main(args=None):
    parser = argparse.ArgumentParser(description=_DESCRIPTION)
    parser.add_argument('files', help='local directory to be uploaded')
    parser.add_argument('url',
            help='URL of the object store (s3://bucket/folder or http://...)')
    parser.add_argument('-n', '--catalog', help='name of the catalog')
    parser.add_argument('--settings', help='S3 connection string')
    parser.add_argument('-s', '--silent', action='store_true',
            help='if set, progress bar is not printed')

    args = parser.parse_args(args)

    settings = None
    if args.settings:
        settings = S3Settings.parse(args.settings)

    directory = BlobDirectory(store_url=args.url, settings=settings,
                              catalog=args.catalog)
    try:
        failures = upload(directory, args.files, silent=args.silent)
    finally:
        directory.close()

    if failures:
        sys.exit(1)


if __name__ == '__main__':
    main()
