# pro_audio_config/config.py
import os
import configparser

from .compat import BackendKind, PROBE_ORDER
from .logging_setup import _dbg

CONFIG_NAME = "pro-audio-config.ini"

DEFAULT_AUTH_TIMEOUT = 120.0
DEFAULT_PROBE_TIMEOUT = 5.0
ELEVATION_METHODS = ("pkexec", "none")

# Names accepted in [backends] order; "pulseaudio" is what people type.
_BACKEND_NAMES = {
    "pipewire": BackendKind.PIPEWIRE,
    "pulse": BackendKind.PULSE,
    "pulseaudio": BackendKind.PULSE,
    "alsa": BackendKind.ALSA,
}


class Config:
    """
    Engine settings read from the INI file.

    auth_timeout:     seconds to wait for the elevated script (None = unbounded)
    probe_timeout:    seconds per probe/listing command
    elevation:        "pkexec", or "none" to refuse anything that needs root
    order:            backends to probe, highest priority first
    restart_services: restart the PipeWire user services after writing config
    """

    def __init__(self, auth_timeout=DEFAULT_AUTH_TIMEOUT, probe_timeout=DEFAULT_PROBE_TIMEOUT,
                 elevation="pkexec", order=PROBE_ORDER, restart_services=False, path=None):
        self.auth_timeout = auth_timeout
        self.probe_timeout = probe_timeout
        self.elevation = elevation
        self.order = tuple(order)
        self.restart_services = restart_services
        self.path = path

    def __repr__(self):
        return (f"Config(auth_timeout={self.auth_timeout!r}, probe_timeout={self.probe_timeout!r}, "
                f"elevation={self.elevation!r}, order={[k.value for k in self.order]!r}, "
                f"restart_services={self.restart_services!r}, path={self.path!r})")


def _config_default_path():
    env = os.environ.get("PRO_AUDIO_CONFIG_INI")
    if env:
        return env
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, "pro-audio-config", CONFIG_NAME)


def _parse_order(text):
    order = []
    for name in text.replace(";", ",").split(","):
        kind = _BACKEND_NAMES.get(name.strip().lower())
        if kind is not None and kind not in order:
            order.append(kind)
    return tuple(order)


def _float_or(cfg, section, key, default, minimum=0.0):
    try:
        value = cfg.getfloat(section, key, fallback=default)
    except ValueError:
        return default
    return value if value >= minimum else default


def load_config(ini_path=None):
    """
    Load the INI config. Returns a Config; a missing file, an unreadable file
    or a bad value falls back to the defaults for the affected keys.
    """
    path = ini_path or _config_default_path()
    cfg = configparser.ConfigParser(inline_comment_prefixes=(";", "#"))
    conf = Config(path=path)
    try:
        if not os.path.exists(path):
            return conf
        cfg.read(path, encoding="utf-8")
    except (OSError, configparser.Error) as e:
        _dbg(f"config: ignoring {path}: {e}")
        return conf

    auth = _float_or(cfg, "execution", "auth_timeout", DEFAULT_AUTH_TIMEOUT)
    conf.auth_timeout = auth if auth > 0 else None
    conf.probe_timeout = _float_or(cfg, "execution", "probe_timeout", DEFAULT_PROBE_TIMEOUT, minimum=0.1)

    elevation = cfg.get("execution", "elevation", fallback="pkexec").strip().lower()
    conf.elevation = elevation if elevation in ELEVATION_METHODS else "pkexec"

    raw_order = cfg.get("backends", "order", fallback="")
    if raw_order.strip():
        order = _parse_order(raw_order)
        if order:
            conf.order = order
    try:
        conf.restart_services = cfg.getboolean("backends", "restart_services", fallback=False)
    except ValueError:
        conf.restart_services = False

    _dbg(f"config: {conf!r}")
    return conf
