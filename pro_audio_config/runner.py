# pro_audio_config/runner.py
"""
Thin seam between the engine and the host's processes.

Probing, listing and the privileged apply all go through a runner object
with a single run() method, so tests can substitute a recording fake and
never start a real audio tool or an elevation prompt.
"""
import os
import shutil
import subprocess

from .compat import EXIT_COMMAND_NOT_FOUND
from .logging_setup import _dbg

SBIN_DIRS = ("/usr/local/sbin", "/usr/sbin", "/sbin")


class CommandResult:
    __slots__ = ("argv", "returncode", "stdout", "stderr", "timed_out")

    def __init__(self, argv, returncode, stdout="", stderr="", timed_out=False):
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        self.timed_out = timed_out

    @property
    def ok(self):
        return not self.timed_out and self.returncode == 0

    def __repr__(self):
        return (f"CommandResult(argv={self.argv!r}, returncode={self.returncode!r}, "
                f"timed_out={self.timed_out!r})")


class SubprocessRunner:
    """
    Run argv lists with subprocess.run, never raising for the usual
    failure modes:
    - binary missing       -> returncode 127, message in stderr
    - timeout              -> timed_out=True, returncode None
    - other spawn OSError  -> returncode 126 (sh convention), message in stderr
    """

    def run(self, argv, timeout=None, input=None, env=None):
        """
        env: extra variables layered over the current environment
        (probes pass LC_ALL=C so labels are not translated).
        """
        _dbg(f"run: {argv!r} timeout={timeout}")
        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)
        try:
            p = subprocess.run(
                list(argv),
                input=input,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=full_env,
            )
        except subprocess.TimeoutExpired as e:
            _dbg(f"run: timeout after {timeout}s: {argv[0]}")
            return CommandResult(argv, None, _text(e.stdout), _text(e.stderr), timed_out=True)
        except FileNotFoundError:
            return CommandResult(argv, EXIT_COMMAND_NOT_FOUND, "", f"command not found: {argv[0]}")
        except OSError as e:
            return CommandResult(argv, 126, "", f"{argv[0]}: {e}")
        return CommandResult(argv, p.returncode, p.stdout, p.stderr)


def _text(value):
    # TimeoutExpired carries bytes even in text mode on some Python versions.
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class CommandAvailability:
    """
    Answers "is this binary installed?" fresh on every call.

    No cache: an audio stack can be installed or
    removed between two probes of a long-running GUI.

    The default search path appends the sbin directories, since tools such
    as runuser live there and the privileged script will find them even if
    the desktop user's PATH does not list them.
    """

    def __init__(self, path=None):
        if path is None:
            path = os.pathsep.join([os.environ.get("PATH", os.defpath)] + list(SBIN_DIRS))
        self.path = path

    def available(self, name):
        return shutil.which(name, path=self.path) is not None

    def missing(self, names):
        return [n for n in names if not self.available(n)]
