# Plugins and hooks!
#
# Hooks let the user alter what gpgmime does at well defined points, by
# registering plain Python callables (or dropping hook files into a
# directory, see PluginManager.load_hook_files). Each hook is invoked with
# keyword arguments; a handler returning None leaves things as they were.
import importlib.util
import os
import traceback

from gpgmime.i18n import gettext as _


class PluginError(Exception):
    pass


class PluginManager(object):
    """
    Keeps track of the hooks we know about and their handlers.

    >>> pm = PluginManager()
    >>> pm.register_hook('shout', 'Variables: text. Return value: text')
    >>> pm.add_hook('shout', lambda text: text.upper())
    >>> pm.run_hook('shout', text='hello')
    'HELLO'
    >>> pm.run_hook('whisper', text='hello')
    Traceback (most recent call last):
        ...
    gpgmime.plugins.PluginError: No such hook: whisper
    """
    def __init__(self):
        self.HOOK_HELP = {}
        self.HOOKS = {}

    ##[ Hook registration ]###################################################

    def register_hook(self, name, description):
        if name in self.HOOK_HELP:
            raise PluginError(_('Already registered: %s') % name)
        self.HOOK_HELP[name] = description
        self.HOOKS[name] = []

    def hook_help(self, name=None):
        if name is not None:
            return self.HOOK_HELP[name]
        return dict(self.HOOK_HELP)

    def add_hook(self, name, handler):
        if name not in self.HOOKS:
            raise PluginError(_('No such hook: %s') % name)
        if not callable(handler):
            raise PluginError(_('Hook handlers must be callable'))
        self.HOOKS[name].append(handler)
        return handler

    def remove_hook(self, name, handler):
        self.HOOKS.get(name, []).remove(handler)

    def enabled(self, name):
        return bool(self.HOOKS.get(name))

    ##[ Running hooks ]#######################################################

    def run_hook(self, name, ui=None, **kwargs):
        """
        Run every handler registered for a hook, in order. Returns the last
        non-None value a handler returned, or None if none did.

        A handler which raises is reported through `ui` (if given) and
        otherwise ignored, so a broken hook never takes gpgmime down.
        """
        if name not in self.HOOKS:
            raise PluginError(_('No such hook: %s') % name)
        rv = None
        for handler in self.HOOKS[name][:]:
            try:
                result = handler(**kwargs)
            except Exception as e:
                if ui is not None:
                    ui.error(_('Hook %s failed: %s') % (name, e))
                    ui.debug(traceback.format_exc())
                continue
            if result is not None:
                rv = result
        return rv

    ##[ Hook files ]##########################################################

    def load_hook_files(self, path, ui=None):
        """
        Load handlers from a directory of hook files. A file named after a
        hook (e.g. gpg-args.py) must define a function named `hook`, which
        will be registered as a handler. Returns the names loaded.
        """
        loaded = []
        if not path or not os.path.isdir(path):
            return loaded
        for name in sorted(self.HOOKS.keys()):
            full_path = os.path.join(path, '%s.py' % name)
            if not os.path.isfile(full_path):
                continue
            mod_name = 'gpgmime.hooks.%s' % name.replace('-', '_')
            try:
                spec = importlib.util.spec_from_file_location(mod_name,
                                                              full_path)
                module = importlib.util.module_from_spec(spec)
                spec.loader.exec_module(module)
                self.add_hook(name, module.hook)
                loaded.append(name)
            except Exception as e:
                if ui is not None:
                    ui.error(_('Failed to load hook %s: %s') % (full_path, e))
                    ui.debug(traceback.format_exc())
        return loaded


##[ Default plugin manager ]#################################################

_default_pm = PluginManager()

register_hook = _default_pm.register_hook
hook_help = _default_pm.hook_help
add_hook = _default_pm.add_hook
remove_hook = _default_pm.remove_hook
run_hook = _default_pm.run_hook
load_hook_files = _default_pm.load_hook_files
