APPVER = "0.9.0"
ABOUT = """\
gpgmime                  OpenPGP signing and encryption of e-mail
 v%8.0008s         using GnuPG and RFC 3156 PGP/MIME
""" % APPVER
#############################################################################

_ = lambda string: string


CONFIG_RULES = {
    'version': (_('gpgmime program version'), str, APPVER),
    'sys': (_('Technical system settings'), False, {
        'debug':         (_('Debugging flags'), str,                      ''),
        'gpg_home':      (_('Override the home directory of GnuPG'),
                          'dir', None),
        'gpg_binary':    (_('Override the default GPG binary path'),
                          'file', None),
        'tempdir':        (_('Location of temporary files'), 'dir',      None),
        'hook_dir':       (_('Directory of hook files'), 'dir',        None),
    }),
    'prefs': (_("User preferences"), False, {
        'gpg_use_agent':   (_('Use the local GnuPG agent'), bool,        True),
        'gpg_interactive': (_('Let GnuPG prompt on the terminal'),
                                                                   bool, True),
    }),
}
