import configparser
import threading

from gpgmime.i18n import gettext as _
from gpgmime.config.base import ConfigDict
from gpgmime.config.defaults import CONFIG_RULES


class ConfigManager(ConfigDict):
    """
    This class holds the live gpgmime configuration: the GnuPG binary and
    home directory overrides, temporary file location, debug flags and
    user preferences.

    >>> cfg = ConfigManager()
    >>> cfg.prefs.gpg_use_agent, cfg.sys.gpg_binary
    (True, None)
    >>> cfg.debug_flag('gnupg')
    False
    >>> cfg.sys.debug = 'gnupg http'
    >>> cfg.debug_flag('gnupg')
    True
    """
    _NAME = 'config'
    _RULES = CONFIG_RULES

    def __init__(self, *args, **kwargs):
        ConfigDict.__init__(self, *args, **kwargs)
        self._lock = threading.RLock()
        self._filename = None

    def parse_config(self, session, data, source='internal'):
        """
        Parse a config file fragment. Invalid data will be ignored, but will
        generate warnings in the session UI. Returns True on a clean parse,
        False if any of the settings were bogus.

        >>> from gpgmime.ui import Session, CapturingUserInteraction
        >>> session = Session(None)
        >>> session.ui = CapturingUserInteraction(None)
        >>> cfg = ConfigManager()
        >>> cfg.parse_config(session, '[config/prefs]\\n'
        ...                           'gpg_use_agent = no ; comment\\n')
        True
        >>> cfg.prefs.gpg_use_agent
        False

        >>> cfg.parse_config(session, '[config/bogus]\\nblabla = bla\\n')
        False
        >>> [l[1] for l in session.ui.log_buffer if 'bogus' in l[1]][0]
        'Invalid (internal): section config/bogus does not exist'

        >>> cfg.parse_config(session, '[config/sys]\\ndebug = gnupg\\n'
        ...                                          'bogus_variable = 456\\n')
        False
        >>> cfg.sys.debug
        'gnupg'
        """
        parser = configparser.RawConfigParser(
            inline_comment_prefixes=(';',), interpolation=None)
        parser.optionxform = str
        parser.read_string(data, source=source)

        all_okay = True
        with self._lock:
            for section in parser.sections():
                okay = True
                cfgpath = section.split(':')[0].split('/')[1:]
                cfg = self
                for part in cfgpath:
                    if isinstance(cfg, ConfigDict) and part in cfg.keys():
                        cfg = cfg[part]
                    else:
                        if session:
                            msg = _('Invalid (%s): section %s does not '
                                    'exist') % (source, section)
                            session.ui.warning(msg)
                        all_okay = okay = False
                        break
                items = sorted(parser.items(section)) if okay else []
                for var, val in items:
                    try:
                        cfg[var] = val
                    except (ValueError, KeyError, IndexError):
                        if session:
                            msg = _('Invalid (%s): section %s, variable %s=%s'
                                    ) % (source, section, var, val)
                            session.ui.warning(msg)
                        all_okay = okay = False
        return all_okay

    def load(self, session, filename=None):
        """
        Load settings from a file. A missing file is not an error, we
        just keep the defaults.
        """
        filename = filename or self._filename
        if not filename:
            return True
        self._filename = filename
        try:
            with open(filename, 'r') as fd:
                data = fd.read()
        except (IOError, OSError):
            if session:
                session.ui.debug(_('No config file at %s') % filename)
            return True
        return self.parse_config(session, data, source=filename)

    def debug_flag(self, flag):
        return flag in (self.sys.debug or '').replace(',', ' ').split()

    def tempfile_dir(self):
        return self.sys.tempdir or None
