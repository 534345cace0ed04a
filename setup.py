#!/usr/bin/env python3

import setuptools

import forkrun
long_description = forkrun.__doc__

setuptools.setup(
    name='forkrun',
    version='0.1.0',
    author='Mihail Georgiev',
    author_email='misho88@gmail.com',
    description='forkrun - fork a child, wire up its streams and know whether it launched',
    long_description=long_description,
    long_description_content_type='text/plain',
    packages=setuptools.find_packages(exclude=['tests']),
    python_requires='>=3.10',
    extras_require={
        'test': ['pytest'],
    },
)
