import os
import threading
from gettext import translation, NullTranslations


ACTIVE_TRANSLATION = None

FORMAT_CHECKED = {}
FORMAT_CHECKED_LOCK = threading.Lock()


# Translators occasionally break our format strings; if a translation
# does not carry the same number of % markers as the original, we fall
# back to the original rather than crash at formatting time.
def _fmt_safe(translated, original):
    with FORMAT_CHECKED_LOCK:
        if translated in FORMAT_CHECKED:
            return FORMAT_CHECKED[translated]
        if (translated.count('%') == original.count('%')):
            FORMAT_CHECKED[translated] = translated
        else:
            FORMAT_CHECKED[translated] = original
        return FORMAT_CHECKED[translated]


def gettext(string):
    if not ACTIVE_TRANSLATION:
        return string
    return _fmt_safe(ACTIVE_TRANSLATION.gettext(string), string)


def ngettext(string1, string2, n):
    default = string1 if (n == 1) else string2
    if not ACTIVE_TRANSLATION:
        return default
    return _fmt_safe(ACTIVE_TRANSLATION.ngettext(string1, string2, n),
                     default)


class i18n_disabler:
    def __init__(self):
        self.stack = []

    def __enter__(self):
        global ACTIVE_TRANSLATION
        self.stack.append(ACTIVE_TRANSLATION)
        ACTIVE_TRANSLATION = None

    def __exit__(self, *args, **kwargs):
        global ACTIVE_TRANSLATION
        ACTIVE_TRANSLATION = self.stack.pop(-1)


i18n_disabled = i18n_disabler()


def ActivateTranslation(session, language=None, localedir=None):
    """
    Load the gettext catalog for the given language (or $LANG), falling
    back to untranslated strings. Returns the active translation object.
    """
    global ACTIVE_TRANSLATION

    if not language:
        language = os.getenv('LANG', None)
    if not localedir:
        localedir = os.path.join(os.path.dirname(__file__), 'locale')

    trans = None
    if language:
        try:
            trans = translation("gpgmime", localedir, [language])
        except IOError:
            if session and language[:2] not in ('en', 'C'):
                session.ui.debug('Failed to load language %s' % language)

    if not trans:
        trans = translation("gpgmime", localedir, fallback=True)
        if (session and language and language[:2] not in ('en', 'C', '')
                and isinstance(trans, NullTranslations)):
            session.ui.debug('Failed to configure i18n (%s). '
                             'Using fallback.' % language)

    with FORMAT_CHECKED_LOCK:
        FORMAT_CHECKED.clear()
    ACTIVE_TRANSLATION = trans
    return trans
