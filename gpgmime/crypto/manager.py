# The CryptoManager signs, encrypts, verifies and decrypts e-mail messages
# by running GnuPG on their serialized payloads, and builds or parses the
# PGP/MIME structures around the results.
import collections
import threading
from shlex import quote

from gpgmime.i18n import gettext
from gpgmime.crypto.gpgi import GnuPG, GnuPGOutputClassifier
from gpgmime.crypto.mime import FormattedPayload, MessageAsBytes, PartBytes
from gpgmime.crypto.mime import SignablePart
from gpgmime.crypto.mime import MimeSigningWrapper, MimeEncryptingWrapper
from gpgmime.crypto.mime import ParseDecrypted, DecryptedNotice
from gpgmime.crypto.mime import DecryptionFailedNotice
from gpgmime.crypto.state import CryptoResult, CryptoError
from gpgmime.crypto.state import BinaryUnavailable, CommandFailure
from gpgmime.ui import Session, SilentInteraction


_ = lambda s: s

# Operations offered to the user when sending a message, in display order.
OUTGOING_MESSAGE_OPERATIONS = collections.OrderedDict([
    ('sign', _('Sign')),
    ('sign_and_encrypt', _('Sign and encrypt')),
    ('encrypt', _('Encrypt only'))])

CRYPTO_OPERATIONS = ('sign', 'encrypt', 'sign_and_encrypt',
                     'verify', 'decrypt')

COMMAND_FAILED = _('GPG command failed. See log for details.')


class CryptoManager(object):
    """
    Owns everything needed to run crypto operations: the GnuPG command
    line, the classifier for its output, the parser for decrypted
    messages and a lock, held for the whole of each operation, so only
    one runs at a time.

    Create one of these and pass it to whatever needs crypto.
    """
    def __init__(self, config=None, session=None, host=None,
                 classifier=None, parser=None, plugins=None):
        if session is None:
            session = Session(config)
            session.ui = SilentInteraction(config)
        self.session = session
        self.config = config or session.config
        self.classifier = classifier or GnuPGOutputClassifier()
        self.parser = parser
        self._lock = threading.RLock()

        self.gnupg = GnuPG(self.config, session=session, host=host,
                           plugins=plugins)
        if self.gnupg.is_available():
            session.ui.debug('crypto: detected gpg binary in %s'
                             % self.gnupg.gpgbinary)
        else:
            session.ui.debug('crypto: no gpg binary detected')

    def have_crypto(self):
        return self.gnupg.is_available()

    def _interactive(self):
        if self.config:
            return bool(self.config.prefs.gpg_interactive)
        return True

    def _failed(self, operation, output):
        self.session.ui.error('Error while running gpg (%s): %s'
                              % (operation, output))
        return CommandFailure(gettext(COMMAND_FAILED), output)

    ##[ Outgoing messages ]###################################################

    def sign(self, from_, to, payload):
        """
        Make a detached signature for the payload, keyed to `from_`, and
        return a multipart/signed envelope holding both.
        """
        with self._lock:
            if not self.have_crypto():
                return CryptoResult('sign', error=BinaryUnavailable())

            payload = SignablePart(payload)
            gpg = self.gnupg
            with gpg.temp_file('payload', FormattedPayload(payload)) as pf:
                with gpg.temp_file('signature') as sf:
                    output, ok = gpg.run_gpg(
                        '--output %s --yes --armor --detach-sign --textmode '
                        '--local-user %s %s' % (quote(sf.name), quote(from_),
                                                quote(pf.name)),
                        interactive=self._interactive())
                    if not ok:
                        return CryptoResult('sign',
                                            error=self._failed('sign', output))
                    signature = sf.read()

            envelope = MimeSigningWrapper().wrap(payload, signature)
            return CryptoResult('sign', envelope=envelope)

    def encrypt(self, from_, to, payload, sign=False):
        """
        Encrypt the payload to every recipient in `to` and to `from_`
        (so the sender can read their own mail), optionally signing too.
        Returns a multipart/encrypted envelope.
        """
        operation = 'sign_and_encrypt' if sign else 'encrypt'
        with self._lock:
            if not self.have_crypto():
                return CryptoResult(operation, error=BinaryUnavailable())

            recipient_opts = ' '.join('--recipient %s' % quote('<%s>' % r)
                                      for r in (list(to) + [from_]))
            sign_opts = ('--sign --local-user %s' % quote(from_)
                         if sign else '')

            gpg = self.gnupg
            with gpg.temp_file('payload', FormattedPayload(payload)) as pf:
                with gpg.temp_file('encrypted') as ef:
                    output, ok = gpg.run_gpg(
                        '--output %s --yes --armor --encrypt --textmode '
                        '%s %s %s' % (quote(ef.name), sign_opts,
                                      recipient_opts, quote(pf.name)),
                        interactive=self._interactive())
                    if not ok:
                        return CryptoResult(
                            operation, error=self._failed(operation, output))
                    ciphertext = ef.read()

            envelope = MimeEncryptingWrapper().wrap(ciphertext)
            return CryptoResult(operation, envelope=envelope)

    def sign_and_encrypt(self, from_, to, payload):
        return self.encrypt(from_, to, payload, sign=True)

    ##[ Incoming messages ]###################################################

    def verify(self, payload, signature):
        """
        Check a detached signature (a MIME part) against the payload part
        it signs. The result always carries a notice; `error` is set as
        well if GnuPG could not be run or reported failure.
        """
        with self._lock:
            if not self.have_crypto():
                return CryptoResult(
                    'verify',
                    notice=self.classifier.unavailable_notice(),
                    error=BinaryUnavailable())

            gpg = self.gnupg
            with gpg.temp_file('payload', FormattedPayload(payload)) as pf:
                with gpg.temp_file('signature', PartBytes(signature)) as sf:
                    output, ok = gpg.run_gpg(
                        '--verify %s %s' % (quote(sf.name), quote(pf.name)))

            notice = self.classifier.verify_notice(output, ok)
            error = None if ok else CommandFailure(
                gettext(COMMAND_FAILED), output)
            return CryptoResult('verify', notice=notice, error=error)

    def decrypt(self, payload):
        """
        Decrypt a message (usually the ciphertext part of a
        multipart/encrypted envelope) and parse the result as MIME.
        """
        with self._lock:
            if not self.have_crypto():
                return CryptoResult(
                    'decrypt',
                    notice=self.classifier.unavailable_notice(),
                    error=BinaryUnavailable())

            gpg = self.gnupg
            with gpg.temp_file('payload', MessageAsBytes(payload)) as pf:
                with gpg.temp_file('output') as of:
                    output, ok = gpg.run_gpg(
                        '--output %s --yes --decrypt %s' % (quote(of.name),
                                                            quote(pf.name)),
                        interactive=self._interactive())
                    if not ok:
                        return CryptoResult(
                            'decrypt',
                            notice=DecryptionFailedNotice(output),
                            error=self._failed('decrypt', output))
                    decrypted = of.read()

            signature = self.classifier.signature_notice(output)
            message = ParseDecrypted(decrypted, parser=self.parser)
            return CryptoResult('decrypt',
                                notice=DecryptedNotice(),
                                signature=signature,
                                message=message)

    ##[ Dispatch ]############################################################

    def run_operation(self, name, *args, **kwargs):
        if name not in CRYPTO_OPERATIONS:
            raise CryptoError(gettext('Unknown crypto operation: %s') % name)
        return getattr(self, name)(*args, **kwargs)
