import copy
import getopt
import sys
import email.parser
import email.utils

import gpgmime.config.defaults
import gpgmime.plugins
from gpgmime.config.manager import ConfigManager
from gpgmime.crypto.manager import CryptoManager
from gpgmime.i18n import gettext as _
from gpgmime.i18n import ActivateTranslation
from gpgmime.ui import Session, TextInteraction, UserInteraction
from gpgmime.util import UsageError


USAGE = _("""\
Usage: gpgmime [options] <command> [message-file]

Commands:
    sign            Sign a message (multipart/signed)
    encrypt         Encrypt a message (multipart/encrypted)
    sign-encrypt    Sign and encrypt a message
    verify          Check the signature of a multipart/signed message
    decrypt         Decrypt a message and print the cleartext
    status          Show what GnuPG binary and settings would be used

Options:
    -c, --config=FILE   Read settings from FILE
    -s, --set=SETTING   Change a setting, e.g. -s prefs.gpg_use_agent=no
    -f, --from=ADDR     Sign as ADDR (default: the From: header)
    -t, --to=ADDR       Encrypt to ADDR (default: To: and Cc: headers)
    -H, --hooks=DIR     Load hook files from DIR
    -b, --batch         Never let GnuPG prompt on the terminal
    -d, --debug=FLAGS   Set debugging flags (log, gnupg)
    -h, --help          This help

The message is read from message-file, or standard input if omitted or
given as "-". Results go to standard output.
""")

COMMANDS = {
    'sign': 'sign',
    'encrypt': 'encrypt',
    'sign-encrypt': 'sign_and_encrypt',
    'sign_and_encrypt': 'sign_and_encrypt',
    'verify': 'verify',
    'decrypt': 'decrypt',
    'status': 'status'}

# Headers which stay on the outside of a signed or encrypted envelope;
# everything else (Content-*) describes the payload itself.
def _is_payload_header(hdr):
    return hdr.lower().startswith('content-')


def ReadMessage(filename):
    parser = email.parser.BytesParser()
    if filename in (None, '-'):
        return parser.parse(sys.stdin.buffer)
    with open(filename, 'rb') as fd:
        return parser.parse(fd)


def SplitMessage(msg):
    """
    Split a message into its outer (routing) headers and a payload which
    keeps only the headers describing content.
    """
    outer = [(h, v) for h, v in msg.items() if not _is_payload_header(h)]
    payload = copy.deepcopy(msg)
    for hdr in set(h for h, v in outer):
        del payload[hdr]
    return outer, payload


def Rewrap(envelope, outer):
    for hdr, val in outer:
        if hdr.lower() != 'mime-version':
            envelope[hdr] = val
    return envelope


def Addresses(msg, *headers):
    return [a for n, a in email.utils.getaddresses(
        [v for h in headers for v in msg.get_all(h, [])]) if a]


def _set_setting(session, config, setting):
    try:
        var, val = setting.split('=', 1)
        section, var = var.strip().rsplit('.', 1)
    except ValueError:
        raise UsageError(_('Invalid setting: %s') % setting)
    section = section.replace('.', '/')
    if not config.parse_config(session, '[config/%s]\n%s = %s\n'
                                        % (section, var, val),
                               source='command line'):
        raise UsageError(_('Invalid setting: %s') % setting)


def Status(session, crypto):
    gpg, config = crypto.gnupg, crypto.config
    lines = [
        'gpgmime v%s' % gpgmime.config.defaults.APPVER,
        '%s: %s' % (_('Crypto available'),
                    _('yes') if crypto.have_crypto() else _('no')),
        '%s: %s' % (_('GnuPG binary'), gpg.gpgbinary or _('(not found)')),
        '%s: %s' % (_('Command prefix'),
                    ' '.join(gpg.prefix) if gpg.prefix else '-'),
        '%s: %s' % (_('GnuPG home'), config.sys.gpg_home or '-'),
        '%s: %s' % (_('Temporary files'), config.tempfile_dir() or '-'),
        '%s: %s' % (_('Interactive'),
                    _('yes') if config.prefs.gpg_interactive else _('no')),
        '%s: %s' % (_('Hooks'), ', '.join(
            '%s (%d)' % (h, len(gpg.plugins.HOOKS[h]))
            for h in sorted(gpg.plugins.HOOKS)))]
    session.ui.display_result('\n'.join(lines))
    return 0


def RunCommand(session, crypto, command, msg, from_=None, to=None):
    operation = COMMANDS[command]
    if operation in ('sign', 'encrypt', 'sign_and_encrypt'):
        from_ = from_ or (Addresses(msg, 'from') or [None])[0]
        to = to or Addresses(msg, 'to', 'cc')
        if not from_:
            raise UsageError(_('No sender: use --from or a From: header'))
        if operation != 'sign' and not to:
            raise UsageError(_('No recipients: use --to or a To: header'))
        outer, payload = SplitMessage(msg)
        result = crypto.run_operation(operation, from_, to, payload)
        if result.ok:
            session.ui.display_result(Rewrap(result.envelope, outer))

    elif operation == 'verify':
        if (msg.get_content_type() != 'multipart/signed'
                or len(msg.get_payload()) != 2):
            raise UsageError(_('Not a multipart/signed message'))
        payload, signature = msg.get_payload()
        result = crypto.verify(payload, signature)
        session.ui.display_result(result.notice)

    elif operation == 'decrypt':
        ciphertext = msg
        if msg.get_content_type() == 'multipart/encrypted':
            if len(msg.get_payload()) != 2:
                raise UsageError(_('Not a valid multipart/encrypted message'))
            ciphertext = msg.get_payload(1)
        result = crypto.decrypt(ciphertext)
        for notice in result.notices():
            session.ui.notify(notice.description)
            for line in notice.lines:
                if line:
                    session.ui.debug(line)
        if result.message is not None:
            session.ui.display_result(result.message)

    if not result.ok:
        session.ui.error('%s' % result.error)
        return 1
    return 0


def Main(args):
    config = ConfigManager()
    session = Session(config)
    session.ui = TextInteraction(config)
    ActivateTranslation(session)

    try:
        opts, args = getopt.getopt(
            args, 'c:s:f:t:H:bd:h',
            ['config=', 'set=', 'from=', 'to=', 'hooks=', 'batch',
             'debug=', 'help'])
    except getopt.GetoptError as e:
        session.ui.error('%s' % e)
        sys.stderr.write(USAGE)
        return 2

    host = session.ui
    from_, to, hook_dirs = None, [], []
    try:
        for opt, arg in opts:
            if opt in ('-h', '--help'):
                sys.stdout.write(USAGE)
                return 0
            elif opt in ('-c', '--config'):
                if not config.load(session, arg):
                    raise UsageError(_('Errors in config file %s') % arg)
            elif opt in ('-s', '--set'):
                _set_setting(session, config, arg)
            elif opt in ('-f', '--from'):
                from_ = arg
            elif opt in ('-t', '--to'):
                to.extend(a.strip() for a in arg.split(',') if a.strip())
            elif opt in ('-H', '--hooks'):
                hook_dirs.append(arg)
            elif opt in ('-b', '--batch'):
                host = None
            elif opt in ('-d', '--debug'):
                config.sys.debug = arg

        if not config.debug_flag('log'):
            session.ui.log_level = UserInteraction.LOG_NOTIFY
        if config.sys.hook_dir:
            hook_dirs.insert(0, config.sys.hook_dir)
        for hook_dir in hook_dirs:
            gpgmime.plugins.load_hook_files(hook_dir, ui=session.ui)

        if not args or args[0] not in COMMANDS:
            raise UsageError(_('Please specify a command'))
        command, args = args[0], args[1:]
        if len(args) > 1:
            raise UsageError(_('Too many arguments'))

        crypto = CryptoManager(config, session=session, host=host)
        if command == 'status':
            return Status(session, crypto)

        msg = ReadMessage(args[0] if args else None)
        return RunCommand(session, crypto, command, msg, from_=from_, to=to)

    except UsageError as e:
        session.ui.error('%s' % e)
        sys.stderr.write(USAGE)
        return 2
    except (IOError, OSError) as e:
        session.ui.error('%s' % e)
        return 1
    except KeyboardInterrupt:
        return 130
