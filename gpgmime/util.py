import os
import tempfile
import threading

from gpgmime.i18n import gettext as _


class UsageError(Exception):
    pass


def truthy(txt, default=False, special=None):
    """
    Interpret common yes/no strings (and numbers) as booleans.

    >>> truthy('yes'), truthy('Off'), truthy('0.0'), truthy('wiggle')
    (True, False, False, False)
    """
    try:
        # Floats are fun! :-P
        return (abs(float(txt)) >= 0.00001)
    except (ValueError, TypeError):
        pass

    txt = str(txt).lower()
    if special is not None and txt in special:
        return special[txt]
    elif txt in ('n', 'no', 'false', 'off'):
        return False
    elif txt in ('y', 'yes', 'true', 'on'):
        return True
    elif txt in (_('false'), _('no'), _('off')):
        return False
    elif txt in (_('true'), _('yes'), _('on')):
        return True
    else:
        return default


# Windows sometimes won't let us delete files right away because it
# thinks they are still open. Any failed removal just gets queued up
# and retried on the next call.
PENDING_REMOVAL = []
PENDING_REMOVAL_LOCK = threading.Lock()

def safe_remove(filename=None):
    with PENDING_REMOVAL_LOCK:
        if filename:
            PENDING_REMOVAL.append(filename)
        for fn in PENDING_REMOVAL[:]:
            try:
                os.remove(fn)
                PENDING_REMOVAL.remove(fn)
            except FileNotFoundError:
                PENDING_REMOVAL.remove(fn)
            except (OSError, IOError):
                pass
        return bool(filename and filename not in PENDING_REMOVAL)


class TempFile(object):
    """
    A named scratch file which exists for the duration of a with-block.

    The file is created (and optionally filled with `data`) on entry and
    closed, so external programs may open it by name. It is removed on
    exit, whether or not the block raised.
    """
    def __init__(self, prefix, data=None, tempdir=None):
        self.prefix = prefix
        self.data = data
        self.tempdir = tempdir
        self.name = None

    def __enter__(self):
        fd, self.name = tempfile.mkstemp(prefix='gpgmime.%s.' % self.prefix,
                                         dir=self.tempdir)
        with os.fdopen(fd, 'wb') as fh:
            if self.data is not None:
                data = self.data
                if isinstance(data, str):
                    data = data.encode('utf-8')
                fh.write(data)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        safe_remove(self.name)
        return False

    def read(self):
        with open(self.name, 'rb') as fd:
            return fd.read()

    def open(self, mode='wb'):
        return open(self.name, mode)
