#
# This file contains the UserInteraction and Session classes.
#
# The Session carries the configuration and the UserInteraction object
# which everything else logs through.
#
# The UserInteraction classes log the progress of individual operations,
# render results (crypto notices, messages) as text and, in the case of
# TextInteraction, lend the terminal to foreground commands like GnuPG.
#
###############################################################################
import os
import sys
import threading

from jinja2 import Environment, FileSystemLoader

from gpgmime.i18n import gettext as _
import gpgmime.platforms
import gpgmime.safe_popen


class NoColors:
    """Dummy color constants"""
    NORMAL = ''
    BOLD = ''
    NONE = ''
    RED = ''
    YELLOW = ''
    BLUE = ''
    MAGENTA = ''
    CYAN = ''
    FORMAT = "%s%s"
    RESET = ''

    def __init__(self):
        self.lock = threading.RLock()

    def __enter__(self, *args, **kwargs):
        return self.lock.__enter__()

    def __exit__(self, *args, **kwargs):
        return self.lock.__exit__(*args, **kwargs)

    def color(self, text, color='', weight=''):
        return '%s%s%s' % (self.FORMAT % (color, weight), text, self.RESET)

    def write(self, data):
        with self:
            sys.stderr.write(data)
            sys.stderr.flush()


class ANSIColors(NoColors):
    """ANSI color constants"""
    NORMAL = ''
    BOLD = ';1'
    NONE = '0'
    RED = "31"
    YELLOW = "33"
    BLUE = "34"
    MAGENTA = '35'
    CYAN = '36'
    RESET = "\x1B[0m"
    FORMAT = "\x1B[%s%sm"


class UserInteraction:
    """Log the progress and performance of individual operations"""
    MAX_BUFFER_LEN = 250

    LOG_URGENT = 0
    LOG_RESULT = 5
    LOG_ERROR = 10
    LOG_NOTIFY = 20
    LOG_WARNING = 30
    LOG_PROGRESS = 40
    LOG_DEBUG = 50
    LOG_ALL = 99

    LOG_PREFIX = ''

    def __init__(self, config, log_prefix=None):
        self.log_buffer = []
        self.log_buffering = 0
        self.log_level = self.LOG_ALL
        self.log_prefix = log_prefix or self.LOG_PREFIX
        self.interactive = False
        self.term = NoColors()
        self.config = config

    # Logging

    def _fmt_log(self, text, level=LOG_URGENT):
        c, w, clip = self.term.NONE, self.term.NORMAL, 1024
        if level == self.LOG_URGENT:
            c, w = self.term.RED, self.term.BOLD
        elif level == self.LOG_ERROR:
            c = self.term.RED
        elif level == self.LOG_WARNING:
            c = self.term.YELLOW
        elif level == self.LOG_NOTIFY:
            c = self.term.CYAN
        elif level == self.LOG_DEBUG:
            c = self.term.MAGENTA
        elif level == self.LOG_PROGRESS:
            c, clip = self.term.BLUE, 78
        return self.term.color(text[-clip:], color=c, weight=w) + '\n'

    def _display_log(self, text, level=LOG_URGENT):
        if not text:
            return
        if not text.startswith(self.log_prefix):
            text = '%slog(%s): %s' % (self.log_prefix, level, text)
        self.term.write(self._fmt_log(text, level=level))

    def _debug_log(self, text, level):
        sys_config = getattr(self.config, 'sys', None)
        if text and sys_config and 'log' in (sys_config.debug or ''):
            if not text.startswith(self.log_prefix):
                text = '%slog(%s): %s' % (self.log_prefix, level, text)
            self.term.write(self._fmt_log(text, level=level))

    def flush_log(self):
        try:
            while len(self.log_buffer) > 0:
                level, message = self.log_buffer.pop(0)
                if level <= self.log_level:
                    self._display_log(message, level)
        except IndexError:
            pass

    def block(self):
        with self.term:
            self.log_buffering += 1

    def unblock(self, force=False):
        with self.term:
            if self.log_buffering <= 1 or force:
                self.log_buffering = 0
                self.flush_log()
            else:
                self.log_buffering -= 1

    def log(self, level, message):
        if self.log_buffering:
            self.log_buffer.append((level, message))
            while len(self.log_buffer) > self.MAX_BUFFER_LEN:
                self.log_buffer[0:(self.MAX_BUFFER_LEN // 10)] = []
        elif level <= self.log_level:
            self._display_log(message, level)

    error = lambda self, msg: self.log(self.LOG_ERROR, msg)
    notify = lambda self, msg: self.log(self.LOG_NOTIFY, msg)
    warning = lambda self, msg: self.log(self.LOG_WARNING, msg)
    progress = lambda self, msg: self.log(self.LOG_PROGRESS, msg)
    debug = lambda self, msg: self.log(self.LOG_DEBUG, msg)

    # Rendering

    def _display_result(self, result):
        sys.stdout.write(result)
        sys.stdout.flush()

    def display_result(self, result):
        """Render a notice, a message or plain text for display."""
        if hasattr(result, 'as_bytes'):
            text = result.as_bytes().decode('utf-8', 'replace')
        elif isinstance(result, dict) and 'status' in result:
            text = RenderNotice(result)
        else:
            text = '%s' % (result, )
        if text and not text.endswith('\n'):
            text += '\n'
        return self._display_result(text)


class SilentInteraction(UserInteraction):
    LOG_PREFIX = 'silent/'

    def _display_log(self, text, level=UserInteraction.LOG_URGENT):
        self._debug_log(text, level)

    def _display_result(self, result):
        return result


class CapturingUserInteraction(UserInteraction):
    """
    Records everything logged or displayed, for the test suite.

    >>> ui = CapturingUserInteraction(None)
    >>> ui.warning('careful')
    >>> ui.log_buffer
    [(30, 'careful')]
    """
    def __init__(self, config):
        UserInteraction.__init__(self, config)
        self.captured = ''

    def log(self, level, message):
        self.log_buffer.append((level, message))

    def _display_result(self, result):
        self.captured = '%s' % (result, )
        return result


class TextInteraction(UserInteraction):
    """
    The interactive terminal UI. Besides logging to stderr, this can lend
    the terminal to a foreground command (so GnuPG's pinentry can ask for
    a passphrase), keeping our own log output out of the way meanwhile.
    """
    def __init__(self, config, log_prefix=None):
        UserInteraction.__init__(self, config, log_prefix=log_prefix)
        self.interactive = True
        if gpgmime.platforms.TerminalSupportsAnsiColors():
            self.term = ANSIColors()

    def shell_out(self, argv, stdout=None):
        """
        Run a command in the foreground with the display suspended. Returns
        the exit code; standard error is discarded, standard output goes
        to `stdout` (a file descriptor or file) if given.
        """
        with self.term:
            try:
                self.block()
                proc = gpgmime.safe_popen.Popen(
                    argv,
                    stdout=stdout,
                    stderr=gpgmime.safe_popen.DEVNULL,
                    foreground=True)
                return proc.wait()
            finally:
                self.unblock()


JINJA_ENV = None


def _jinja_env():
    global JINJA_ENV
    if JINJA_ENV is None:
        tpl_dir = os.path.join(os.path.dirname(__file__), 'templates')
        JINJA_ENV = Environment(loader=FileSystemLoader(tpl_dir),
                                trim_blocks=True,
                                autoescape=False)
        JINJA_ENV.globals['_'] = _
    return JINJA_ENV


def RenderNotice(notice, template='notice.txt'):
    """
    Render a crypto notice as text, the status followed by the description
    and then the tool's diagnostic lines, indented.

    >>> print(RenderNotice({'status': 'valid', 'description': 'Good',
    ...                     'lines': ['gpg: Good signature from "Bob"']}))
    [Valid] Good
        gpg: Good signature from "Bob"
    <BLANKLINE>
    """
    labels = {
        'valid': _('Valid'),
        'invalid': _('Invalid'),
        'unknown': _('Unknown')}
    tpl = _jinja_env().get_template(template)
    return tpl.render(notice=notice, labels=labels)


class Session(object):

    def __init__(self, config):
        self.config = config
        self.ui = UserInteraction(config)

    def set_interactive(self, val):
        self.ui.interactive = val

    interactive = property(lambda s: s.ui.interactive,
                           lambda s, v: s.set_interactive(v))
