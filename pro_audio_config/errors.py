# pro_audio_config/errors.py
"""
Exception taxonomy for detection and application.

Every failure the engine reports derives from AudioConfigError so front ends
can catch one type and still render each kind with its own message.
"""


class AudioConfigError(Exception):
    pass


class ValidationError(AudioConfigError, ValueError):
    """A settings field is outside its allowed range or set."""

    def __init__(self, field, value, reason=""):
        self.field = field
        self.value = value
        self.reason = reason
        msg = f"invalid {field}: {value!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class DetectError(AudioConfigError):
    pass


class NoBackendError(DetectError):
    def __init__(self, message="no audio backend responded (tried PipeWire, PulseAudio, ALSA)"):
        super().__init__(message)


class ApplyError(AudioConfigError):
    pass


class InvalidSettingsError(ApplyError):
    def __init__(self, validation_error):
        self.validation_error = validation_error
        self.field = getattr(validation_error, "field", None)
        super().__init__(f"refusing to apply: {validation_error}")


class PrivilegeDeniedError(ApplyError):
    def __init__(self, message="authorization was denied or no elevation mechanism is available"):
        super().__init__(message)


class ExecutionFailedError(ApplyError):
    def __init__(self, exit_code, stderr=""):
        self.exit_code = exit_code
        self.stderr = stderr or ""
        msg = f"command sequence failed with exit code {exit_code}"
        tail = self.stderr.strip().splitlines()[-1:] if self.stderr else []
        if tail:
            msg += f": {tail[0]}"
        super().__init__(msg)


class ApplyTimeoutError(ApplyError):
    def __init__(self, timeout):
        self.timeout = timeout
        super().__init__(f"authorization/execution did not finish within {timeout:g}s")
