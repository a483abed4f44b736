from optparse import OptionParser
import logging
import os
import shutil

from blobdir.directory import BlobDirectory
from blobdir.settings import S3Settings


_BUFFER_SIZE = 64 * 1024


def _make_command_parser(cmd, extra_usage=''):
    usage = "usage: %prog [options] command [command-specific options] " \
            + extra_usage
    description = "Help for command '%s'" % cmd
    return OptionParser(usage=usage, description=description)


def _parse_names(cmd, args, *names):
    parser = _make_command_parser(cmd, ' '.join(names))
    options, args = parser.parse_args(list(args))
    if len(args) < len(names):
        parser.error("Missing %s" % names[len(args)])
    if len(args) > len(names):
        parser.error("Too many arguments")
    return args


def cmd_ls(directory, *args):
    _parse_names('ls', args)
    for name in directory.list_all():
        print(name)


def cmd_get(directory, *args):
    name, local_filename = _parse_names('get', args, 'name', 'local_filename')
    with directory.open_input(name) as source:
        with open(local_filename, 'wb') as f:
            shutil.copyfileobj(source, f, _BUFFER_SIZE)


def cmd_cat(directory, *args):
    name, = _parse_names('cat', args, 'name')
    with directory.open_input(name) as source:
        buf = source.read(_BUFFER_SIZE)
        while buf:
            os.write(1, buf)
            buf = source.read(_BUFFER_SIZE)


def cmd_put(directory, *args):
    local_filename, name = _parse_names('put', args, 'local_filename', 'name')
    with open(local_filename, 'rb') as f:
        with directory.create_output(name) as output:
            shutil.copyfileobj(f, output, _BUFFER_SIZE)
    print(directory.blob_name(name))


def cmd_rm(directory, *args):
    name, = _parse_names('rm', args, 'name')
    directory.delete_file(name)


def cmd_size(directory, *args):
    name, = _parse_names('size', args, 'name')
    print(directory.file_length(name))


def cmd_locked(directory, *args):
    name, = _parse_names('locked', args, 'lock_name')
    lock = directory.make_lock(name)
    print('locked' if lock.is_locked() else 'unlocked')


def cmd_unlock(directory, *args):
    name, = _parse_names('unlock', args, 'lock_name')
    directory.clear_lock(name)


def main(argv=None):
    usage = "usage: %prog [options] command [command-specific options]"
    commands = [s for s in globals() if s.startswith('cmd_')]
    commands = sorted([s[4:] for s in commands])
    epilog = """
Options specified above are filled from environment
(BLOBDIR_URL, BLOBDIR_S3_SETTINGS, BLOBDIR_CATALOG, BLOBDIR_CACHE_DIR)
if not specified on the command line.

Each command has its own --help text.

Supported commands: %s.""" % ', '.join(commands)
    parser = OptionParser(usage=usage, epilog=epilog)
    parser.disable_interspersed_args()

    parser.add_option('-u', '--url', dest='store_url', default=None,
            help="URL of the object store (s3://bucket/folder or http://...)")
    parser.add_option('-s', '--settings', dest='settings', default=None,
            help="S3 connection string")
    parser.add_option('-n', '--catalog', dest='catalog', default=None,
            help="Name of the catalog")
    parser.add_option('-c', '--cache-dir', dest='cache_dir', default=None,
            help="Path to the local cache directory")
    parser.add_option('-v', '--verbose', dest='verbose', default=0,
            action='count', help="Be verbose")

    options, args = parser.parse_args(argv)
    if not args:
        parser.error("Missing command. Try --help for list of available "
                "commands.")
    cmd = globals().get('cmd_' + args[0],
            lambda *a: parser.error("Unknown command: " + args[0]))

    level = logging.WARNING
    if options.verbose:
        level = logging.DEBUG
    logging.basicConfig(
            format="%(asctime)-15s %(name)s %(levelname)s: %(message)s",
            level=level)

    settings = None
    if options.settings:
        settings = S3Settings.parse(options.settings)

    directory = BlobDirectory(store_url=options.store_url, settings=settings,
                              catalog=options.catalog,
                              cache_dir=options.cache_dir)
    try:
        cmd(directory, *args[1:])
    finally:
        directory.close()


if __name__ == '__main__':
    main()
