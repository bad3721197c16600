from gpgmime.i18n import gettext as _

import gpgmime.config.validators as validators


class ConfigValueError(ValueError):
    pass


class InvalidKeyError(ValueError):
    pass


class ConfigDict(dict):
    """
    A sanity-checking dictionary of program settings.

    Every setting is described by a rule: a human readable comment, a
    check which converts and validates assigned values, and a default.
    A section is a rule with False as the check and a dictionary of
    further rules as the default. Sections can be updated from a dict,
    but never replaced.

    >>> cfg = ConfigDict(_rules={
    ...     'retries': ('How often to retry', 'int', 3),
    ...     'gpg': ('GnuPG settings', False, {
    ...         'agent': ('Use the agent', bool, True)})})
    >>> sorted(cfg.keys())
    ['gpg', 'retries']

    >>> cfg.retries = '5'
    >>> cfg['RETRIES']
    5
    >>> cfg['gpg'] = {'agent': 'off'}
    >>> cfg.gpg.agent
    False

    >>> cfg['evil'] = 123
    Traceback (most recent call last):
        ...
    gpgmime.config.base.InvalidKeyError: Invalid key for config: evil
    >>> cfg.retries = 'many'
    Traceback (most recent call last):
        ...
    ValueError: Invalid value for config/retries: many
    """
    RULE_CHECK_MAP = {
        bool: validators.BoolCheck,
        'bool': validators.BoolCheck,
        'dir': validators.DirCheck,
        'file': validators.FileCheck,
        'int': int,
        'str': str,
    }
    _NAME = 'config'
    _RULES = None

    def __init__(self, _rules=None, _name=None):
        dict.__init__(self)
        self._name = _name or self._NAME
        self._checks = {}
        for key, rule in (_rules or self._RULES or {}).items():
            self.add_rule(key, rule)

    def add_rule(self, key, rule):
        try:
            comment, check, default = rule
        except (TypeError, ValueError):
            raise TypeError('add_rule(%s, %s): Bad rule.' % (key, rule))
        check = self.RULE_CHECK_MAP.get(check, check)

        if check is False:
            if not isinstance(default, dict):
                raise TypeError('add_rule(%s, %s): Sections need rules.'
                                % (key, rule))
            default = ConfigDict(_rules=default,
                                 _name='%s/%s' % (self._name, key))
        elif not callable(check):
            raise TypeError('add_rule(%s, %s): Unknown check.' % (key, rule))

        self._checks[key] = check
        dict.__setitem__(self, key, default)

    def _check(self, key):
        key = key.lower()
        if key not in self._checks:
            raise InvalidKeyError(_('Invalid key for %s: %s'
                                    ) % (self._name, key))
        return key, self._checks[key]

    def __getitem__(self, key):
        return dict.__getitem__(self, self._check(key)[0])

    def __setitem__(self, key, value):
        key, checker = self._check(key)
        if checker is False:
            if isinstance(value, dict):
                return self[key].update(value)
            raise ConfigValueError(_('Modifying %s/%s is not allowed'
                                     ) % (self._name, key))
        try:
            value = checker() if value is None else checker(value)
        except ConfigValueError:
            raise
        except (ValueError, TypeError):
            raise ValueError(_('Invalid value for %s/%s: %s'
                               ) % (self._name, key, value))
        dict.__setitem__(self, key, value)

    def __getattr__(self, attr):
        if attr.startswith('_'):
            raise AttributeError(attr)
        try:
            return self[attr]
        except InvalidKeyError:
            raise AttributeError(attr)

    def __setattr__(self, attr, value):
        if attr.startswith('_'):
            return dict.__setattr__(self, attr, value)
        self[attr] = value

    def update(self, *args, **kwargs):
        """Reimplement update, so it goes through our sanity checks."""
        for key, val in dict(*args, **kwargs).items():
            self[key] = val
