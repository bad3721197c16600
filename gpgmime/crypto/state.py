#. Common crypto state and structure
from gpgmime.i18n import gettext as _


class CryptoError(Exception):
    """Base class for everything that can go wrong running crypto"""
    pass


class BinaryUnavailable(CryptoError):
    """No OpenPGP executable could be located"""
    def __init__(self, message=None):
        CryptoError.__init__(self, message or _("Can't find gpg binary in path."))


class CommandFailure(CryptoError):
    """The OpenPGP tool ran, but exited unsuccessfully"""
    def __init__(self, message, output=''):
        CryptoError.__init__(self, message)
        self.output = output

    lines = property(lambda self: self.output.splitlines())


# A notice is what we tell the user about a cryptographic operation on a
# message: whether a signature checks out, whether decryption worked, and
# what GnuPG actually said about it, verbatim.
class CryptoNotice(dict):
    """
    The status, description and diagnostic lines of a crypto operation.

    >>> n = CryptoNotice('valid', 'Good signature', ['gpg: ok'])
    >>> n.status, n.description, n.lines
    ('valid', 'Good signature', ['gpg: ok'])
    >>> n['status'] = 'bogus'
    Traceback (most recent call last):
        ...
    ValueError: Invalid value for status: bogus
    >>> n['colour'] = 'blue'
    Traceback (most recent call last):
        ...
    KeyError: 'Invalid key: colour'
    """
    KEYS = ["status", "description", "lines"]
    STATUSES = ["valid", "invalid", "unknown"]

    def __init__(self, status="unknown", description="", lines=None):
        dict.__init__(self)
        self["status"] = status
        self["description"] = description
        self["lines"] = list(lines or [])

    status = property(lambda self: self["status"])
    description = property(lambda self: self["description"])
    lines = property(lambda self: self["lines"])

    def __setitem__(self, item, value):
        if item not in self.KEYS:
            raise KeyError('Invalid key: %s' % item)
        if item == "status" and value not in self.STATUSES:
            raise ValueError('Invalid value for %s: %s' % (item, value))
        dict.__setitem__(self, item, value)

    def update(self, *args, **kwargs):
        for k, v in dict(*args, **kwargs).items():
            self[k] = v


class CryptoResult(object):
    """
    The outcome of one crypto operation. Exactly one of these is returned
    from every operation, whether it worked or not:

      * sign/encrypt/sign_and_encrypt set `envelope` (the new message)
      * verify sets `notice`
      * decrypt sets `notice` (the display notice), `signature` (a signature
        notice, if GnuPG said anything about one) and `message`
      * any failure sets `error` to a CryptoError; verify and decrypt also
        describe the failure in `notice`
    """
    def __init__(self, operation,
                 envelope=None, notice=None, signature=None, message=None,
                 error=None):
        self.operation = operation
        self.envelope = envelope
        self.notice = notice
        self.signature = signature
        self.message = message
        self.error = error

    ok = property(lambda self: self.error is None)

    def raise_for_error(self):
        if self.error is not None:
            raise self.error
        return self

    def notices(self):
        return [n for n in (self.notice, self.signature) if n is not None]

    def __repr__(self):
        return '<CryptoResult(%s) ok=%s%s>' % (
            self.operation, self.ok,
            (' status=%s' % self.notice.status) if self.notice else '')
