# These are methods to do with MIME and crypto, implementing PGP/MIME.
import copy
import io
import re
import email.parser
import email.policy

from email.generator import BytesGenerator
from email.mime.multipart import MIMEMultipart
from email.mime.base import MIMEBase

from gpgmime.crypto.state import CryptoNotice
from gpgmime.i18n import gettext as _


##[ Common utilities ]#########################################################

def FormatPayload(text):
    r"""
    Prepare serialized message text for signing or encryption: every bare
    LF becomes CRLF and any MIME-Version header line is dropped, as the
    outer envelope carries that. Bytes are handled as well as text; 8-bit
    content passes through untouched.

    >>> FormatPayload('MIME-Version: 1.0\nContent-Type: text/plain\n\nHi\n')
    'Content-Type: text/plain\r\n\r\nHi\r\n'
    >>> FormatPayload(FormatPayload('a\r\nb\n'))
    'a\r\nb\r\n'
    >>> FormatPayload(b'MIME-Version: 1.0\nX: Gr\xc3\xbc\xc3\x9fe\n')
    b'X: Gr\xc3\xbc\xc3\x9fe\r\n'
    """
    if isinstance(text, bytes):
        return FormatPayload(text.decode('utf-8', 'surrogateescape')
                             ).encode('utf-8', 'surrogateescape')
    text = re.sub(r'(?<!\r)\n', '\r\n', text)
    return re.sub(r'^MIME-Version:[^\n]*(?:\n|\Z)', '', text, flags=re.M)


def MessageAsBytes(part, unixfrom=False):
    """
    Serialize a message or part byte-for-byte the way it appears inside
    an envelope written with Message.as_bytes(): 8-bit bodies are kept
    as they are, no From-mangling.
    """
    buf = io.BytesIO()
    BytesGenerator(buf, mangle_from_=False,
                   policy=email.policy.compat32).flatten(part,
                                                         unixfrom=unixfrom)
    return buf.getvalue()


def FormattedPayload(part):
    return FormatPayload(MessageAsBytes(part))


def SignablePart(part):
    """
    Copy a part for signing, without the MIME-Version headers on it or its
    subparts. FormatPayload leaves those out of the signed text, so they
    must not appear on the wire either.
    """
    part = copy.deepcopy(part)
    for p in part.walk():
        del p['MIME-Version']
    return part


def PartBytes(part):
    """
    The raw content of a part, transfer-encoding removed. Signatures are
    usually plain armored text, but some mailers base64 them.
    """
    data = part.get_payload(decode=True)
    if data is None:
        data = MessageAsBytes(part)
    return data


def _as_text(data):
    if isinstance(data, bytes):
        return data.decode('utf-8', 'replace')
    return data


##[ Methods for encrypting and signing ]#######################################

class MimeWrapper:
    CONTAINER_TYPE = 'multipart/mixed'
    CONTAINER_PARAMS = ()

    def __init__(self):
        maintype, subtype = self.CONTAINER_TYPE.split('/')
        self.container = MIMEMultipart(subtype)
        for pname, pval in self.CONTAINER_PARAMS:
            self.container.set_param(pname, pval)

    def new_part(self, ctype, **params):
        maintype, subtype = ctype.split('/')
        part = MIMEBase(maintype, subtype, **params)
        del part['MIME-Version']
        return part

    def attach(self, part):
        self.container.attach(part)
        return part

    def wrap(self, *args, **kwargs):
        raise NotImplementedError()


class MimeSigningWrapper(MimeWrapper):
    """
    Builds an RFC 3156 multipart/signed envelope: the signed payload
    followed by its detached, armored signature.
    """
    CONTAINER_TYPE = 'multipart/signed'
    CONTAINER_PARAMS = (('protocol', 'application/pgp-signature'),
                        ('micalg', 'pgp-sha1'))
    SIGNATURE_TYPE = 'application/pgp-signature'
    SIGNATURE_NAME = 'signature.asc'

    def wrap(self, payload, signature):
        self.attach(payload)

        sig = self.new_part(self.SIGNATURE_TYPE, name=self.SIGNATURE_NAME)
        sig.add_header('Content-Disposition', 'attachment',
                       filename=self.SIGNATURE_NAME)
        sig.set_payload(_as_text(signature))
        self.attach(sig)

        return self.container


class MimeEncryptingWrapper(MimeWrapper):
    """
    Builds an RFC 3156 multipart/encrypted envelope: the version control
    part followed by the armored ciphertext.
    """
    CONTAINER_TYPE = 'multipart/encrypted'
    CONTAINER_PARAMS = (('protocol', 'application/pgp-encrypted'), )
    ENCRYPTION_TYPE = 'application/pgp-encrypted'
    ENCRYPTION_VERSION = '1'
    CIPHERTEXT_NAME = 'msg.asc'

    def wrap(self, ciphertext):
        control = self.new_part(self.ENCRYPTION_TYPE)
        control.add_header('Content-Disposition', 'attachment')
        control.set_payload('Version: %s\n' % self.ENCRYPTION_VERSION)
        self.attach(control)

        data = self.new_part('application/octet-stream')
        data.add_header('Content-Disposition', 'inline',
                        filename=self.CIPHERTEXT_NAME)
        data.set_payload(_as_text(ciphertext))
        self.attach(data)

        return self.container


##[ Methods for decrypting ]###################################################

def DefaultParser():
    return email.parser.BytesParser().parsebytes


def ParseDecrypted(data, parser=None):
    """
    Parse decrypted bytes as a MIME message.

    Some mailers encrypt a multipart body without a MIME-Version header,
    which strict parsers then refuse to treat as multipart. If the result
    claims to be multipart/* but did not parse as such, we add the header
    and try once more.
    """
    parse = parser or DefaultParser()
    msg = parse(data)
    if (msg.get_content_type().startswith('multipart/')
            and not msg.is_multipart()):
        msg = parse(b'MIME-Version: 1.0\n' + data)
    return msg


def DecryptedNotice():
    return CryptoNotice('valid',
                        _('This message has been decrypted for display'),
                        [])


def DecryptionFailedNotice(output):
    return CryptoNotice('invalid',
                        _('This message could not be decrypted'),
                        output.splitlines())
