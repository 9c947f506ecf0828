# pro_audio_config/compat.py
"""
Platform constants and small host checks shared by the engine.

Everything here is import-safe on any POSIX host: no subprocesses are started
and no audio stack needs to be installed for this module to load.
"""
import enum
import os


class BackendKind(enum.Enum):
    """
    Audio backends we know how to drive, in probe-priority order.

    The enum order IS the priority order: PipeWire first (it usually also
    answers pactl through pipewire-pulse), then a real PulseAudio daemon,
    then raw ALSA.
    """
    PIPEWIRE = "pipewire"
    PULSE = "pulse"
    ALSA = "alsa"


PROBE_ORDER = tuple(BackendKind)

# Device-id namespaces accepted in "<backend>:<identifier>" strings.
DEVICE_ID_DEFAULT = "default"
DEVICE_ID_PREFIXES = {
    "pipewire": BackendKind.PIPEWIRE,
    "pulse": BackendKind.PULSE,
    "alsa": BackendKind.ALSA,
}

# Validation ranges (inclusive).
SAMPLE_RATE_MIN = 8000
SAMPLE_RATE_MAX = 384000
BIT_DEPTHS = (16, 24, 32)
BUFFER_SIZE_MIN = 64
BUFFER_SIZE_MAX = 8192

# Field-level fallbacks used when a backend's output cannot be parsed.
DEFAULT_SAMPLE_RATE = 44100
DEFAULT_BIT_DEPTH = 16
DEFAULT_BUFFER_SIZE = 256

# Backend state words that leak into device descriptions (pactl short lists,
# wpctl status). Matched exactly and case-sensitively.
STATUS_TOKENS = ("SUSPENDED", "RUNNING", "IDLE")

# Sample-format codes by bit depth; anything else maps to FORMAT_FALLBACK.
SAMPLE_FORMATS = {
    16: "S16LE",
    24: "S24LE",
    32: "S32LE",
}
FORMAT_FALLBACK = "S24LE"

# pkexec exit statuses (see pkexec(1)): 126 = dialog dismissed,
# 127 = not authorized / authorization could not be obtained.
PKEXEC_DISMISSED = 126
PKEXEC_NOT_AUTHORIZED = 127

# Exit status reported when nothing could be executed at all
# (empty command sequence, missing binary). Same convention as sh(1).
EXIT_COMMAND_NOT_FOUND = 127

# Marker written into every drop-in file we generate.
GENERATED_MARKER = "# Generated by pro-audio-config. Manual edits will be overwritten."


def is_admin():
    try:
        return os.geteuid() == 0
    except Exception:
        return False


def split_device_id(device_id):
    """
    Split a device id into (BackendKind or None, identifier).

    This is the only place the "<backend>:<identifier>" grammar is parsed.
    An empty identifier means "whatever the backend already uses".
    Examples:
      "pipewire:123"  -> (BackendKind.PIPEWIRE, "123")
      "alsa:hw:1,0"   -> (BackendKind.ALSA, "hw:1,0")
      "default"       -> (None, "")
      "pulse:default" -> (BackendKind.PULSE, "")
      "pulse"         -> (BackendKind.PULSE, "")
    """
    text = (device_id or "").strip()
    if not text or text == DEVICE_ID_DEFAULT:
        return None, ""
    prefix, _, ident = text.partition(":")
    kind = DEVICE_ID_PREFIXES.get(prefix.lower())
    if kind is None:
        return None, text
    if ident == DEVICE_ID_DEFAULT:
        ident = ""
    return kind, ident


def session_user():
    """
    Identify the desktop user whose audio session should receive runtime
    commands once we are running as root.

    Returns (user_name, uid) or None when we cannot tell (e.g. not elevated
    through pkexec/sudo and already root).
    """
    import pwd
    uid = None
    for var in ("PKEXEC_UID", "SUDO_UID"):
        raw = os.environ.get(var)
        if raw and raw.isdigit():
            uid = int(raw)
            break
    if uid is None:
        try:
            uid = os.getuid()
        except Exception:
            return None
    if uid == 0:
        return None
    try:
        return pwd.getpwuid(uid).pw_name, uid
    except KeyError:
        return None
