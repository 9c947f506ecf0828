# pro_audio_config/__init__.py

# Public engine surface for front ends (the GUI, scripts, tests). The CLI's
# `main` is re-exported as well so the dispatcher can be embedded/invoked
# programmatically without relying on __main__.py.
from .apply import ApplyOutcome, ApplyStatus, apply_audio_settings_with_auth_blocking, verify
from .cli import main
from .compat import BackendKind
from .devices import (
    clean_device_description,
    detect_all_audio_devices,
    detect_audio_device,
    detect_current_audio_settings,
    detect_current_settings_report,
)
from .errors import (
    ApplyError,
    ApplyTimeoutError,
    AudioConfigError,
    DetectError,
    ExecutionFailedError,
    InvalidSettingsError,
    NoBackendError,
    PrivilegeDeniedError,
    ValidationError,
)
from .settings import AudioSettings, DetectedSettings, DeviceDescriptor, validate

__version__ = "1.0.0"

__all__ = [
    "ApplyError",
    "ApplyOutcome",
    "ApplyStatus",
    "ApplyTimeoutError",
    "AudioConfigError",
    "AudioSettings",
    "BackendKind",
    "DetectError",
    "DetectedSettings",
    "DeviceDescriptor",
    "ExecutionFailedError",
    "InvalidSettingsError",
    "NoBackendError",
    "PrivilegeDeniedError",
    "ValidationError",
    "apply_audio_settings_with_auth_blocking",
    "clean_device_description",
    "detect_all_audio_devices",
    "detect_audio_device",
    "detect_current_audio_settings",
    "detect_current_settings_report",
    "main",
    "validate",
    "verify",
]
