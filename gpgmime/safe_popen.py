#
# This module implements a safer version of Popen, to avoid deadlocks and
# leaks caused by file descriptors being shared between processes and
# threads, and to keep terminal signals aimed at us from reaching GnuPG.
#
# The subprocess.Popen semantics are changed in the following ways:
#
#   * close_fds=True is mandatory on all Unix operating systems
#   * keep_open=[] can be passed to explicitly keep other FDs open
#   * the child gets its own process group on Unix (os.setpgrp)
#   * stdin, stdout and stderr default to os.devnull, not our own
#
# On Windows, preexec_fn is unavailable, so instead we do the following:
#
#   * close_fds=False when any standard handle is redirected
#   * creationflags=CREATE_NEW_PROCESS_GROUP is set
#
# Interactive children (those which must talk to the user's terminal,
# e.g. for pinentry) pass foreground=True: they keep our process group
# and inherit any standard handle that was not explicitly redirected.
#
import os
import subprocess
import threading

import gpgmime.platforms


Unsafe_Popen = subprocess.Popen
PIPE = subprocess.PIPE
DEVNULL = subprocess.DEVNULL

SERIALIZE_POPEN_STRICT = True
SERIALIZE_POPEN_ALWAYS = False
SERIALIZE_POPEN_LOCK = threading.Lock()


class Safe_Popen(Unsafe_Popen):
    def __init__(self, args, bufsize=-1,
                             executable=None,
                             stdin=None,
                             stdout=None,
                             stderr=None,
                             preexec_fn=None,
                             close_fds=None,
                             shell=False,
                             cwd=None,
                             env=None,
                             universal_newlines=False,
                             startupinfo=None,
                             creationflags=None,
                             keep_open=None,
                             foreground=False,
                             long_running=False):

        # Raise assertions if people try to explicitly use the API in
        # an unsafe way. These all have different meanings on different
        # platforms, so we don't allow the programmer to configure them
        # at all.
        if SERIALIZE_POPEN_STRICT:
            if not ((preexec_fn is None) and
                    (close_fds is None) and
                    (startupinfo is None) and
                    (creationflags is None) and
                    (not shell)):
                raise AssertionError("Unsafe use of Popen API!")

        if not foreground:
            if stdin is None:
                stdin = DEVNULL
            if stdout is None:
                stdout = DEVNULL
            if stderr is None:
                stderr = DEVNULL

        self._SAFE_POPEN_hold_lock = SERIALIZE_POPEN_ALWAYS

        # The goal of the following sections is to achieve two things:
        #
        #    1. Prevent file descriptor leaks from causing deadlocks
        #    2. Prevent signals from propagating
        #
        if gpgmime.platforms.WindowsPopenSemantics():
            startupinfo = subprocess.STARTUPINFO()
            startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
            creationflags = 0 if foreground else (
                subprocess.CREATE_NEW_PROCESS_GROUP)  # 2.
            close_fds = not (stdin is not None or
                             stdout is not None or
                             stderr is not None or
                             keep_open)  # 1.
            pass_fds = ()
        else:
            creationflags = 0
            close_fds = True  # 1.
            pass_fds = tuple((fd.fileno() if hasattr(fd, 'fileno') else fd)
                             for fd in (keep_open or []))

            def pre_exec_magic():
                try:
                    os.setpgrp()  # 2.
                except (OSError, NameError):
                    pass

            if not foreground:
                preexec_fn = pre_exec_magic

        if self._SAFE_POPEN_hold_lock:
            SERIALIZE_POPEN_LOCK.acquire()
        try:
            Unsafe_Popen.__init__(self, args,
                                  bufsize=bufsize,
                                  executable=executable,
                                  stdin=stdin,
                                  stdout=stdout,
                                  stderr=stderr,
                                  preexec_fn=preexec_fn,
                                  close_fds=close_fds,
                                  pass_fds=pass_fds,
                                  shell=False,
                                  cwd=cwd,
                                  env=env,
                                  universal_newlines=universal_newlines,
                                  startupinfo=startupinfo,
                                  creationflags=creationflags)
        except Exception:
            self._SAFE_POPEN_unlock()
            raise

        if long_running:
            self._SAFE_POPEN_unlock()

    def _SAFE_POPEN_unlock(self):
        if self._SAFE_POPEN_hold_lock:
            self._SAFE_POPEN_hold_lock = False
            try:
                SERIALIZE_POPEN_LOCK.release()
            except RuntimeError:
                pass

    def communicate(self, *args, **kwargs):
        rv = Unsafe_Popen.communicate(self, *args, **kwargs)
        self._SAFE_POPEN_unlock()
        return rv

    def wait(self, *args, **kwargs):
        rv = Unsafe_Popen.wait(self, *args, **kwargs)
        self._SAFE_POPEN_unlock()
        return rv


Popen = Safe_Popen
