from os import path
import io
from setuptools import setup, find_packages

with io.open(path.join(path.abspath(path.dirname(__file__)), 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name = 'blobdir',
    version = '1.0.0',
    author = 'Blobdir Developers',
    description = 'Object store backed directory with a local cache and lease locks',
    long_description=long_description,
    long_description_content_type='text/markdown',
    license = 'GPL',

    packages = find_packages(include=['blobdir', 'blobdir.*']),
    python_requires = '>=3.6',

    install_requires = [
        'boto3',
        'progressbar2',
        'requests',
    ],

    extras_require = {
        'test': [
            'pytest',
        ],
    },

    tests_require = [
        'pytest',
    ],

    entry_points = {
        'console_scripts': [
            'blobdir = blobdir.directory.shell:main',
            'blobdir-upload = blobdir.scripts.upload:main',
        ],
    }
)
