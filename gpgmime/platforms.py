"""
This module tries to centralize the platform-specific code in use by
gpgmime. If you find yourself checking which platform the app runs on,
adding a function here instead is probably The Right Thing.
"""
import os
import shutil
import sys


# This is a cache of discovered binaries and their paths.
BINARIES = {}

# These are the binaries we want, and the default name we search for.
BINARIES_WANTED = {
    'GnuPG': 'gpg'}

if sys.platform.startswith('win'):
    BINARIES_WANTED['GnuPG'] = 'gpg.exe'


def DetectBinaries(which=None, use_cache=True, preferred={}, _raise=None):
    """
    Locate the binaries we depend on. A preferred path (usually from the
    config) wins, then the GPGMIME_<NAME> environment variable, then the
    search path. Missing binaries are simply absent from the result.
    """
    global BINARIES
    if which and use_cache and which in BINARIES:
        return BINARIES[which]

    for binary, default in BINARIES_WANTED.items():
        if (which is not None) and (binary != which):
            continue
        candidate = (preferred.get(binary) or
                     os.getenv('GPGMIME_%s' % binary.upper(), '') or
                     default)
        path = shutil.which(candidate)
        if path:
            BINARIES[binary] = path
        elif binary in BINARIES:
            del BINARIES[binary]

    if which:
        if _raise not in (None, False) and not BINARIES.get(which):
            raise _raise('%s not found' % which)
        return BINARIES.get(which)

    return BINARIES


def GetDefaultGnuPGCommand(preferred=None, _raise=None):
    return DetectBinaries(which='GnuPG',
                          use_cache=not preferred,
                          preferred={'GnuPG': preferred} if preferred else {},
                          _raise=_raise)


def WindowsPopenSemantics():
    return sys.platform.startswith('win')


def TerminalSupportsAnsiColors():
    """
    Windows doesn't like ANSI colors. Also, we want a TTY.
    """
    return (sys.stderr.isatty() and sys.platform[:3] != "win")
