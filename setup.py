#!/usr/bin/env python3

# python setup.py sdist --format=zip,gztar

import importlib.util
import sys

from setuptools import setup

if sys.version_info[:3] < (3, 10, 0):
    sys.exit("Error: vhcwallet requires Python version >= 3.10.0...")

with open('contrib/requirements/requirements.txt') as f:
    requirements = f.read().splitlines()

with open('contrib/requirements/requirements-test.txt') as f:
    requirements_test = f.read().splitlines()

version_spec = importlib.util.spec_from_file_location('version', 'vhcwallet/version.py')
assert version_spec is not None and version_spec.loader is not None
version = importlib.util.module_from_spec(version_spec)
version_spec.loader.exec_module(version)

setup(
    name="vhcwallet",
    version=version.PACKAGE_VERSION,
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        'test': requirements_test,
    },
    packages=[
        'vhcwallet',
    ],
    description="Stake-capable wallet daemon JSON-RPC command engine",
    author="The vhcwallet developers",
    license="MIT Licence",
    long_description="""JSON-RPC command engine of a stake-capable wallet daemon"""
)
