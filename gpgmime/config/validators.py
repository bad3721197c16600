import os

from gpgmime.i18n import gettext as _
from gpgmime.util import truthy


def BoolCheck(value):
    """
    Convert common yes/no strings into boolean values.

    >>> BoolCheck('yes')
    True
    >>> BoolCheck('no')
    False

    >>> BoolCheck('on')
    True
    >>> BoolCheck('off')
    False

    >>> BoolCheck('wiggle')
    Traceback (most recent call last):
        ...
    ValueError: Invalid boolean: wiggle
    """
    bool_val = truthy(value, default=None)
    if bool_val is None:
        raise ValueError(_('Invalid boolean: %s') % value)
    return bool_val


def PathCheck(path):
    """
    Verify that a string is a valid path, make it absolute.

    >>> PathCheck('/etc/../')
    '/'
    """
    if isinstance(path, bytes):
        path = path.decode('utf-8')
    path = os.path.expanduser(path)
    return os.path.abspath(path)


def FileCheck(path=None):
    """
    Verify that a string is a valid path to a file, make it absolute.

    >>> FileCheck('/')
    Traceback (most recent call last):
        ...
    ValueError: Not a file: /
    >>> FileCheck('') is None
    True
    """
    if path in (None, 'None', 'none', ''):
        return None
    path = PathCheck(path)
    if not os.path.isfile(path):
        raise ValueError(_('Not a file: %s') % path)
    return path


def DirCheck(path=None):
    """
    Verify that a string is a valid path to a directory, make it absolute.

    >>> DirCheck('/tmp/../')
    '/'
    """
    if path in (None, 'None', 'none', ''):
        return None
    path = PathCheck(path)
    if not os.path.isdir(path):
        raise ValueError(_('Not a directory: %s') % path)
    return path

