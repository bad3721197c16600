#coding:utf-8
import re
import shlex

import gpgmime.plugins
from gpgmime.i18n import gettext
from gpgmime.crypto.state import CryptoNotice
from gpgmime.platforms import GetDefaultGnuPGCommand
from gpgmime.safe_popen import Popen, PIPE, DEVNULL
from gpgmime.util import TempFile


_ = lambda s: s

GPG_ARGS_HOOK = 'gpg-args'
GPG_ARGS_HELP = _("""\
Runs before gpg is executed, allowing you to modify the arguments (most
likely you would want to add something to certain commands, like
--trust-model always to signing/encrypting a message, but who knows).
Variables:
  args: arguments for running GPG
Return value: the arguments for running GPG""")

DEBUG_GNUPG = False


def RegisterHooks(pm):
    if GPG_ARGS_HOOK not in pm.hook_help():
        pm.register_hook(GPG_ARGS_HOOK, gettext(GPG_ARGS_HELP))


RegisterHooks(gpgmime.plugins._default_pm)


class GnuPGOutputClassifier:
    """
    Sort GnuPG's free-text chatter into valid, invalid or unknown.

    This only understands GnuPG's English messages; anything it does not
    recognize is reported as unknown, never as an error.

    >>> c = GnuPGOutputClassifier()
    >>> c.verify_notice('gpg: Good signature from "Bob"', True).status
    'valid'
    >>> c.verify_notice('gpg: BAD signature from "Bob"', False).status
    'invalid'
    >>> c.verify_notice('', True).status
    'unknown'
    >>> c.signature_notice('gpg: encrypted with RSA key') is None
    True
    """
    VERIFY_RE = re.compile(r'^gpg: (.* signature from .*)$', re.M)
    GOOD_SIGNATURE_RE = re.compile(r'^gpg: (Good signature from .*)$',
                                   re.I | re.M)
    BAD_SIGNATURE_RE = re.compile(r'^gpg: (Bad signature from .*)$',
                                  re.I | re.M)

    UNKNOWN_VALIDITY = _("Unable to determine validity of cryptographic "
                         "signature")

    def lines(self, output):
        return (output or '').splitlines()

    def verify_notice(self, output, success):
        output = output or ''
        m = self.VERIFY_RE.search(output)
        if m:
            return CryptoNotice('valid' if success else 'invalid',
                                m.group(1), self.lines(output))
        return CryptoNotice("unknown", gettext(self.UNKNOWN_VALIDITY),
                            self.lines(output))

    def signature_notice(self, output):
        output = output or ''
        m = self.GOOD_SIGNATURE_RE.search(output)
        if m:
            return CryptoNotice('valid', m.group(1), self.lines(output))
        m = self.BAD_SIGNATURE_RE.search(output)
        if m:
            return CryptoNotice('invalid', m.group(1), self.lines(output))
        return None

    def unavailable_notice(self):
        msg = gettext(_("Can't find gpg binary in path."))
        return CryptoNotice('unknown', msg, [msg])


class GnuPG:
    """
    Run the GnuPG command line tool, either in batch mode (capturing its
    output) or interactively in the foreground of a terminal host, so it
    can prompt the user for passphrases.
    """
    FIXED_ARGS = ['--quiet', '--batch', '--no-verbose', '--logger-fd', '1']

    def __init__(self, config=None, session=None, host=None, plugins=None,
                 debug=False):
        self.session = session
        self.config = config or (session and session.config) or None
        self.host = host
        self.plugins = plugins or gpgmime.plugins._default_pm
        RegisterHooks(self.plugins)
        if self.config:
            debug = debug or self.config.debug_flag('gnupg')
            self.homedir = self.config.sys.gpg_home
            self.use_agent = self.config.prefs.gpg_use_agent
            self.tempdir = self.config.tempfile_dir()
            preferred = self.config.sys.gpg_binary
        else:
            self.homedir = None
            self.use_agent = True
            self.tempdir = None
            preferred = None
        self.gpgbinary = GetDefaultGnuPGCommand(preferred=preferred)
        self.prefix = self.command_prefix()
        self.debug = (self._debug_all if (debug or DEBUG_GNUPG)
                      else self._debug_none)

    def _debug_all(self, msg):
        if self.session:
            self.session.ui.debug(msg.rstrip())
        else:
            print('%s' % str(msg).rstrip())

    def _debug_none(self, msg):
        pass

    def is_available(self):
        return self.prefix is not None

    def command_prefix(self):
        """Returns the fixed start of every command line, or None."""
        if not self.gpgbinary:
            return None
        args = [self.gpgbinary] + self.FIXED_ARGS
        if self.use_agent:
            args.append('--use-agent')
        if self.homedir:
            args.extend(['--homedir', self.homedir])
        return args

    def build_argv(self, args):
        rv = self.plugins.run_hook(GPG_ARGS_HOOK,
                                   ui=(self.session and self.session.ui),
                                   args=args)
        if rv is not None:
            args = rv
        return self.prefix + shlex.split(args)

    def run_gpg(self, args, interactive=False):
        """
        Run GnuPG with an argument string (shell-quoted values, which the
        gpg-args hook may rewrite). Returns the tool's output text and a
        flag indicating whether it exited successfully.
        """
        argv = self.build_argv(args)
        if self.session:
            self.session.ui.debug('crypto: running: %s'
                                  % ' '.join(shlex.quote(a) for a in argv))

        host = self.host
        try:
            if interactive and host is not None:
                output, success = self._run_interactive(host, argv)
            else:
                output, success = self._run_batch(argv)
        except OSError as e:
            output, success = '%s' % e, False

        for line in output.splitlines():
            self.debug('<<OUTPUT<< %s' % line)
        self.debug('<<SUCCESS<< %s' % success)
        return output, success

    def _run_batch(self, argv):
        proc = Popen(argv, stdout=PIPE, stderr=DEVNULL)
        stdout = proc.communicate()[0]
        return (stdout.decode('utf-8', 'replace'), proc.returncode == 0)

    def _run_interactive(self, host, argv):
        with TempFile('output', tempdir=self.tempdir) as tf:
            with tf.open('wb') as fd:
                retcode = host.shell_out(argv, stdout=fd.fileno())
            try:
                output = tf.read().decode('utf-8', 'replace')
            except (IOError, OSError):
                output = gettext(_("can't read output"))
        return output, retcode == 0

    def temp_file(self, prefix, data=None):
        return TempFile(prefix, data=data, tempdir=self.tempdir)
