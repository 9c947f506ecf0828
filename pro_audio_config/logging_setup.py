# pro_audio_config/logging_setup.py
#
# Append-only breadcrumb log shared by the CLI and any embedding front end.
#
# - Nothing touches the filesystem at import time; the file is created by the
#   first _log()/_dbg() call.
# - Location: $PRO_AUDIO_CONFIG_LOG_DIR, else $XDG_STATE_HOME/pro-audio-config,
#   else a directory under the system temp dir when neither is writable.
# - Logging never raises into the caller.
import atexit
import datetime
import faulthandler
import os
import sys
import tempfile
import threading
import traceback

LOG_NAME = "pro-audio-config.log"

_DEBUG = os.environ.get("PRO_AUDIO_CONFIG_DEBUG", "0") not in ("", "0")

_LOG_PATH = None
_STARTED = False
_HOOKS_INSTALLED = False
_FAULT_FILE = None
_WRITE_LOCK = threading.Lock()


def set_debug(on: bool = True):
    global _DEBUG
    _DEBUG = bool(on)
    _log(f"DEBUG {'enabled' if _DEBUG else 'disabled'}")


def _writable_dir(path):
    try:
        os.makedirs(path, exist_ok=True)
    except OSError:
        return False
    return os.access(path, os.W_OK)


def _log_path():
    """Where the log lives; resolved once, never creates the file itself."""
    global _LOG_PATH
    if _LOG_PATH is None:
        base = os.environ.get("PRO_AUDIO_CONFIG_LOG_DIR")
        if not base:
            state = os.environ.get("XDG_STATE_HOME") or os.path.join(os.path.expanduser("~"), ".local", "state")
            base = os.path.join(state, "pro-audio-config")
        if not _writable_dir(base):
            base = os.path.join(tempfile.gettempdir(), "pro-audio-config")
            if not _writable_dir(base):
                base = tempfile.gettempdir()
        _LOG_PATH = os.path.join(base, LOG_NAME)
    return _LOG_PATH


def _stamp():
    return datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _write(line: str):
    global _STARTED
    with _WRITE_LOCK:
        with open(_log_path(), "a", encoding="utf-8", errors="replace") as f:
            if not _STARTED:
                _STARTED = True
                f.write(f"[{_stamp()}] logging to: {_LOG_PATH} (pid={os.getpid()})\n")
            f.write(line)


def _log(msg: str):
    try:
        _write(f"[{_stamp()}] {msg}\n")
    except OSError:
        pass


def _log_exc(prefix: str, exc_info=None):
    exc_info = exc_info or sys.exc_info()
    _log(prefix + "\n" + "".join(traceback.format_exception(*exc_info)))


def _dbg(msg: str):
    if _DEBUG:
        try:
            _write(f"[{_stamp()}] [DBG pid={os.getpid()} tid={threading.get_ident()}] {msg}\n")
        except OSError:
            pass


def _excepthook(exc_type, exc_value, exc_tb):
    _log_exc("UNCAUGHT EXCEPTION", (exc_type, exc_value, exc_tb))
    sys.__excepthook__(exc_type, exc_value, exc_tb)


def _close_fault_file():
    global _FAULT_FILE
    if _FAULT_FILE is not None and not _FAULT_FILE.closed:
        faulthandler.disable()
        _FAULT_FILE.close()
    _FAULT_FILE = None


def init_logging_runtime():
    """
    Process-wide crash breadcrumbs, installed by cli.main() only.

    An embedding front end keeps its own sys.excepthook. Installs the
    excepthook, routes faulthandler into the log file and leaves an atexit
    line so a silent exit can be told apart from a crash.
    """
    global _HOOKS_INSTALLED, _FAULT_FILE
    if _HOOKS_INSTALLED:
        return
    _HOOKS_INSTALLED = True
    sys.excepthook = _excepthook
    try:
        _FAULT_FILE = open(_log_path(), "a", buffering=1)
        faulthandler.enable(file=_FAULT_FILE, all_threads=True)
    except OSError:
        _FAULT_FILE = None
    atexit.register(_close_fault_file)
    atexit.register(_log, "atexit: process exiting normally")
