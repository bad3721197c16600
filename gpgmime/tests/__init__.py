import contextlib
import io
import shlex
import sys
import unittest

import mock

from gpgmime.config.manager import ConfigManager
from gpgmime.crypto.manager import CryptoManager
from gpgmime.plugins import PluginManager
from gpgmime.ui import Session, CapturingUserInteraction


FAKE_GPG = '/usr/bin/gpg'

PLAIN_MESSAGE = (
    'MIME-Version: 1.0\n'
    'Content-Type: text/plain; charset="us-ascii"\n'
    'Content-Transfer-Encoding: 7bit\n'
    '\n'
    'Hello world!\n'
    'From the other side.\n')

ARMORED_SIGNATURE = (
    '-----BEGIN PGP SIGNATURE-----\n'
    '\n'
    'iQEzBAEBCAAdFiEEfakefakefakefakefakefakefakefakeFAKE\n'
    '=fake\n'
    '-----END PGP SIGNATURE-----\n')

ARMORED_MESSAGE = (
    '-----BEGIN PGP MESSAGE-----\n'
    '\n'
    'hQEMA1fakefakefakefakefakefakefakefakefakefakeFAKE\n'
    '=fake\n'
    '-----END PGP MESSAGE-----\n')


@contextlib.contextmanager
def capture():
    oldout, olderr = sys.stdout, sys.stderr
    try:
        out = [io.StringIO(), io.StringIO()]
        sys.stdout, sys.stderr = out
        yield out
    finally:
        sys.stdout, sys.stderr = oldout, olderr
        out[0] = out[0].getvalue()
        out[1] = out[1].getvalue()


def parse_args(args):
    """
    Split a GnuPG argument string into (options, files): a dict of the
    --option values we care about and the remaining positional args.
    """
    argv = shlex.split(args)
    opts, files = {}, []
    takes_value = ('--output', '--local-user', '--recipient', '--homedir')
    i = 0
    while i < len(argv):
        if argv[i] in takes_value:
            opts.setdefault(argv[i], []).append(argv[i + 1])
            i += 2
        elif argv[i].startswith('--'):
            opts.setdefault(argv[i], []).append(True)
            i += 1
        else:
            files.append(argv[i])
            i += 1
    return opts, files


class FakeGnuPG(object):
    """
    Stands in for GnuPG.run_gpg: records each call, writes `data` to the
    --output file (if any) and returns the canned output and status.
    """
    def __init__(self, output='', success=True, data=b''):
        self.output = output
        self.success = success
        self.data = data
        self.calls = []
        self.inputs = []

    def __call__(self, args, interactive=False):
        opts, files = parse_args(args)
        self.calls.append((args, interactive))
        for fn in files:
            with open(fn, 'rb') as fd:
                self.inputs.append(fd.read())
        if self.success and '--output' in opts:
            with open(opts['--output'][0], 'wb') as fd:
                fd.write(self.data)
        return self.output, self.success

    @property
    def last_args(self):
        return self.calls[-1][0]


class GpgMimeUnittest(unittest.TestCase):
    """
    Sets up a config, a capturing session, a private plugin manager and
    a CryptoManager which believes GnuPG lives at FAKE_GPG.
    """
    def setUp(self):
        self.config = ConfigManager()
        self.session = Session(self.config)
        self.session.ui = CapturingUserInteraction(self.config)
        self.plugins = PluginManager()
        self.crypto = self.make_manager()

    def make_manager(self, binary=FAKE_GPG, **kwargs):
        with mock.patch('gpgmime.crypto.gpgi.GetDefaultGnuPGCommand',
                        return_value=binary):
            return CryptoManager(self.config, session=self.session,
                                 plugins=self.plugins, **kwargs)

    def fake_gpg(self, crypto=None, **kwargs):
        fake = FakeGnuPG(**kwargs)
        patcher = mock.patch.object((crypto or self.crypto).gnupg, 'run_gpg',
                                    side_effect=fake)
        patcher.start()
        self.addCleanup(patcher.stop)
        return fake

    def logged(self, level=None):
        return [m for l, m in self.session.ui.log_buffer
                if level is None or l == level]


def gpg_binary():
    from gpgmime.platforms import DetectBinaries
    return DetectBinaries(which='GnuPG', use_cache=False)