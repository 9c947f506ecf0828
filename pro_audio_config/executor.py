# pro_audio_config/executor.py
#
# The privileged half of an apply: validate, pick the backend, render the
# command sequence into one sh script, cross the elevation gate once, and run
# the script to completion (blocking, with a bound).
#
# Two seams keep this testable without a polkit agent:
# - runner: anything with run(argv, timeout=...) -> CommandResult
# - gate:   decides whether elevation is possible (authorize), how to elevate
#           (wrap), and how a denial looks in the result (denied)
#
# A denial detected by authorize() means the runner is never called.
#
# Exit status conventions (pkexec(1)):
#   126  the authentication dialog was dismissed
#   127  not authorized (or pkexec could not obtain authorization)
# Because sh uses 127 for "command not found" as well, every binary the script
# needs is checked BEFORE elevation, so a 127 coming back through pkexec is
# read as a denial.
from .compat import (
    EXIT_COMMAND_NOT_FOUND,
    PKEXEC_DISMISSED,
    PKEXEC_NOT_AUTHORIZED,
    is_admin,
    session_user,
    split_device_id,
)
from .cmdline_fmt import format_cmd_for_display, format_command_for_display
from .config import DEFAULT_AUTH_TIMEOUT, load_config
from .errors import (
    ApplyTimeoutError,
    ExecutionFailedError,
    InvalidSettingsError,
    PrivilegeDeniedError,
    ValidationError,
)
from .logging_setup import _dbg, _log
from .runner import CommandAvailability, SubprocessRunner
from .script import generate, render_script, required_commands


def _is_pkexec_cancel(msg):
    if not msg:
        return False
    lower = msg.lower()
    if "authentication cancelled" in lower or "authentication canceled" in lower:
        return True
    if "authorization cancelled" in lower or "authorization canceled" in lower:
        return True
    if "not authorized" in lower and "incident has been reported" in lower:
        return True
    if "request dismissed" in lower:
        return True
    return False


class PkexecGate:
    name = "pkexec"

    def __init__(self, availability=None):
        self.availability = availability or CommandAvailability()

    def authorize(self):
        if not self.availability.available("pkexec"):
            raise PrivilegeDeniedError("pkexec not found; install polkit or run as root")

    def wrap(self, argv):
        return ["pkexec"] + list(argv)

    def denied(self, result):
        if result.returncode in (PKEXEC_DISMISSED, PKEXEC_NOT_AUTHORIZED):
            return True
        return _is_pkexec_cancel(result.stderr)


class RootGate:
    """Already root: nothing to cross."""
    name = "root"

    def authorize(self):
        return None

    def wrap(self, argv):
        return list(argv)

    def denied(self, result):
        return False


class DisabledGate:
    """[execution] elevation = none and not root."""
    name = "none"

    def authorize(self):
        raise PrivilegeDeniedError("elevation is disabled in the configuration and we are not root")

    def wrap(self, argv):
        return list(argv)

    def denied(self, result):
        return False


def default_gate(elevation="pkexec", availability=None):
    if is_admin():
        return RootGate()
    if elevation == "none":
        return DisabledGate()
    return PkexecGate(availability)


def _default_prober(availability, order, timeout):
    from .devices import probe

    def prober():
        return probe(availability=availability, order=order, timeout=timeout)
    return prober


class PrivilegedExecutor:
    """
    Apply AudioSettings to the host behind one elevation prompt.

    timeout: seconds to wait for the elevated script, including the time the
    user spends in the polkit dialog. None disables the bound.
    """

    def __init__(self, runner=None, gate=None, availability=None, timeout=DEFAULT_AUTH_TIMEOUT,
                 config=None, prober=None, session_provider=session_user):
        self.config = config or load_config()
        self.runner = runner or SubprocessRunner()
        self.availability = availability or CommandAvailability()
        self.gate = gate or default_gate(self.config.elevation, self.availability)
        self.timeout = timeout
        self.prober = prober or _default_prober(self.availability, self.config.order,
                                                self.config.probe_timeout)
        self.session_provider = session_provider

    @classmethod
    def from_config(cls, config, **kwargs):
        kwargs.setdefault("timeout", config.auth_timeout)
        return cls(config=config, **kwargs)

    def resolve_backend(self, target, backend=None):
        """Explicit backend, else the one that answers a probe, else the device-id prefix."""
        if backend is not None:
            return backend
        found = self.prober()
        if found is not None:
            return found[0]
        kind, _ident = split_device_id(target.device_id)
        if kind is not None:
            _log(f"apply: no backend answered; using device id prefix ({kind.value})")
        return kind

    def apply_with_auth_blocking(self, target, backend=None):
        """
        Returns None on success; raises an ApplyError subclass otherwise.
        """
        try:
            target.validate()
        except ValidationError as e:
            _log(f"apply: rejected: {e}")
            raise InvalidSettingsError(e) from e

        kind = self.resolve_backend(target, backend)
        sequence = generate(target, kind, restart_services=self.config.restart_services)
        if not sequence:
            _log("apply: no audio backend to apply to")
            raise ExecutionFailedError(EXIT_COMMAND_NOT_FOUND, "no audio backend available to apply settings")

        session = self.session_provider()
        missing = self.availability.missing(["sh"] + required_commands(sequence, session))
        if missing:
            _log(f"apply: missing commands: {', '.join(missing)}")
            raise ExecutionFailedError(EXIT_COMMAND_NOT_FOUND, "missing commands: " + ", ".join(missing))

        try:
            script = render_script(sequence, session)
        except ValueError as e:
            raise ExecutionFailedError(EXIT_COMMAND_NOT_FOUND, str(e)) from e

        _log(f"apply: {target} via {kind.value} ({len(sequence)} step(s), gate={self.gate.name})")
        for cmd in sequence:
            _log("apply:   " + format_command_for_display(cmd))

        self.gate.authorize()

        argv = self.gate.wrap(["sh", "-c", script])
        _dbg("apply: exec " + format_cmd_for_display(argv[:-1] + ["<script>"]))
        try:
            res = self.runner.run(argv, timeout=self.timeout)
        except OSError as e:
            _log(f"apply: spawn failed: {e}")
            raise ExecutionFailedError(126, str(e)) from e

        if res.timed_out:
            _log(f"apply: timed out after {self.timeout}s")
            raise ApplyTimeoutError(self.timeout)
        if res.returncode == 0:
            _log("apply: command sequence completed")
            return None
        if self.gate.denied(res):
            _log(f"apply: authorization denied (exit {res.returncode})")
            raise PrivilegeDeniedError()
        _log(f"apply: failed with exit {res.returncode}: {res.stderr.strip()[:500]}")
        raise ExecutionFailedError(res.returncode, res.stderr)
