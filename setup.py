#!/usr/bin/env python3
import os
import re
from setuptools import setup, find_packages

here = os.path.abspath(os.path.dirname(__file__))


## Version ###################################################################

def _appver():
    with open(os.path.join(here, 'gpgmime', 'config', 'defaults.py')) as fd:
        return re.search(r'^APPVER = "([^"]+)"', fd.read(), re.M).group(1)


## "Main" ####################################################################

setup(
    name='gpgmime',
    version=_appver(),
    description='PGP/MIME signing, encryption, verification and '
                'decryption of e-mail using GnuPG',
    license='AGPLv3+',
    packages=find_packages(include=['gpgmime', 'gpgmime.*']),
    package_data={'gpgmime': ['templates/*.txt']},
    python_requires='>=3.6',
    install_requires=['Jinja2'],
    extras_require={'test': ['mock', 'pytest']},
    entry_points={
        'console_scripts': ['gpgmime = gpgmime.__main__:main']},
)
