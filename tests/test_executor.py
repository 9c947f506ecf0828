import pytest

from pro_audio_config.compat import BackendKind
from pro_audio_config.errors import (
    ApplyError,
    ApplyTimeoutError,
    ExecutionFailedError,
    InvalidSettingsError,
    PrivilegeDeniedError,
)
from pro_audio_config.executor import DisabledGate, PkexecGate, PrivilegedExecutor, RootGate, default_gate
from pro_audio_config.settings import AudioSettings

from fakes import FakeAvailability, FakeGate, FakeRunner, RaisingRunner, fail, ok, timed_out

TARGET = AudioSettings(48000, 24, 512, "pipewire:47")


def _executor(runner=None, gate=None, availability=None, config=None, prober=None, timeout=120):
    return PrivilegedExecutor(
        runner=runner if runner is not None else FakeRunner(default=ok()),
        gate=gate if gate is not None else FakeGate(),
        availability=availability or FakeAvailability(),
        timeout=timeout,
        config=config,
        prober=prober or (lambda: None),
        session_provider=lambda: ("alice", 1000),
    )


def test_invalid_settings_never_touch_the_system(config):
    runner = FakeRunner(default=ok())
    gate = FakeGate()
    ex = _executor(runner=runner, gate=gate, config=config)
    with pytest.raises(InvalidSettingsError) as ei:
        ex.apply_with_auth_blocking(AudioSettings(48000, 24, 10000, "default"), BackendKind.PIPEWIRE)
    assert ei.value.field == "buffer_size"
    assert runner.calls == []
    assert gate.authorized == 0


def test_denied_authorization_short_circuits(config):
    runner = FakeRunner(default=ok())
    ex = _executor(runner=runner, gate=FakeGate(deny=True), config=config)
    with pytest.raises(PrivilegeDeniedError):
        ex.apply_with_auth_blocking(TARGET, BackendKind.PIPEWIRE)
    assert len(runner.calls) == 0


def test_pkexec_missing_is_a_denial(config):
    availability = FakeAvailability({"sh", "mkdir", "tee", "pw-metadata", "wpctl", "runuser"})
    runner = FakeRunner(default=ok())
    ex = _executor(runner=runner, gate=PkexecGate(availability), availability=availability, config=config)
    with pytest.raises(PrivilegeDeniedError):
        ex.apply_with_auth_blocking(TARGET, BackendKind.PIPEWIRE)
    assert runner.calls == []


def test_disabled_elevation_is_a_denial(config):
    runner = FakeRunner(default=ok())
    with pytest.raises(PrivilegeDeniedError):
        _executor(runner=runner, gate=DisabledGate(), config=config).apply_with_auth_blocking(
            TARGET, BackendKind.PIPEWIRE)
    assert runner.calls == []


def test_success_runs_one_script_behind_the_gate(config):
    runner = FakeRunner(default=ok())
    gate = PkexecGate(FakeAvailability())
    assert _executor(runner=runner, gate=gate, config=config, timeout=30).apply_with_auth_blocking(
        TARGET, BackendKind.PIPEWIRE) is None
    assert len(runner.calls) == 1
    argv, timeout, _env = runner.calls[0]
    assert argv[:3] == ["pkexec", "sh", "-c"]
    assert "clock.force-rate 48000" in argv[3]
    assert "runuser -u alice" in argv[3]
    assert timeout == 30


def test_root_gate_does_not_wrap(config):
    runner = FakeRunner(default=ok())
    _executor(runner=runner, gate=RootGate(), config=config).apply_with_auth_blocking(TARGET, BackendKind.ALSA)
    argv = runner.calls[0][0]
    assert argv[:2] == ["sh", "-c"]
    assert "/etc/asound.conf" in argv[2]


@pytest.mark.parametrize("result", [
    fail(126, ""),
    fail(127, ""),
    fail(1, "Error executing command as another user: Not authorized\n\n"
            "This incident has been reported.\n"),
])
def test_pkexec_denials(config, result):
    runner = FakeRunner(default=result)
    ex = _executor(runner=runner, gate=PkexecGate(FakeAvailability()), config=config)
    with pytest.raises(PrivilegeDeniedError):
        ex.apply_with_auth_blocking(TARGET, BackendKind.PIPEWIRE)


def test_script_failure_reports_exit_code(config):
    runner = FakeRunner(default=fail(1, "tee: /etc/pipewire/pipewire.conf.d/x.conf: Read-only file system\n"))
    ex = _executor(runner=runner, gate=PkexecGate(FakeAvailability()), config=config)
    with pytest.raises(ExecutionFailedError) as ei:
        ex.apply_with_auth_blocking(TARGET, BackendKind.PIPEWIRE)
    assert ei.value.exit_code == 1
    assert "Read-only file system" in ei.value.stderr
    assert "Read-only file system" in str(ei.value)


def test_timeout(config):
    ex = _executor(runner=FakeRunner(default=timed_out()), config=config, timeout=7)
    with pytest.raises(ApplyTimeoutError) as ei:
        ex.apply_with_auth_blocking(TARGET, BackendKind.PIPEWIRE)
    assert ei.value.timeout == 7


def test_missing_commands_fail_before_any_prompt(config):
    runner = FakeRunner(default=ok())
    gate = FakeGate()
    availability = FakeAvailability({"sh", "mkdir", "tee", "runuser"})
    ex = _executor(runner=runner, gate=gate, availability=availability, config=config)
    with pytest.raises(ExecutionFailedError) as ei:
        ex.apply_with_auth_blocking(TARGET, BackendKind.PIPEWIRE)
    assert ei.value.exit_code == 127
    assert "pw-metadata" in ei.value.stderr
    assert gate.authorized == 0
    assert runner.calls == []


def test_no_backend_anywhere(config):
    runner = FakeRunner(default=ok())
    ex = _executor(runner=runner, config=config)
    with pytest.raises(ExecutionFailedError) as ei:
        ex.apply_with_auth_blocking(AudioSettings(48000, 24, 512, "default"))
    assert ei.value.exit_code == 127
    assert runner.calls == []


def test_backend_resolution_order(config):
    ex = _executor(config=config, prober=lambda: (BackendKind.PULSE, "raw"))
    target = AudioSettings(48000, 24, 512, "alsa:hw:1,0")
    assert ex.resolve_backend(target, BackendKind.PIPEWIRE) is BackendKind.PIPEWIRE
    assert ex.resolve_backend(target) is BackendKind.PULSE
    assert _executor(config=config).resolve_backend(target) is BackendKind.ALSA


def test_device_prefix_used_when_probe_finds_nothing(config):
    runner = FakeRunner(default=ok())
    _executor(runner=runner, config=config).apply_with_auth_blocking(AudioSettings(48000, 24, 512, "alsa:hw:1,0"))
    script = runner.calls[0][0][-1]
    assert 'pcm "hw:1,0"' in script


def test_spawn_error_is_execution_failure(config):
    ex = _executor(runner=RaisingRunner(PermissionError("denied")), config=config)
    with pytest.raises(ExecutionFailedError) as ei:
        ex.apply_with_auth_blocking(TARGET, BackendKind.PIPEWIRE)
    assert ei.value.exit_code == 126


def test_restart_services_from_config(config):
    config.restart_services = True
    runner = FakeRunner(default=ok())
    _executor(runner=runner, config=config).apply_with_auth_blocking(TARGET, BackendKind.PIPEWIRE)
    assert "restart wireplumber.service pipewire.service" in runner.calls[0][0][-1]


def test_every_failure_is_an_apply_error(config):
    for runner in (FakeRunner(default=fail(3)), FakeRunner(default=timed_out()), RaisingRunner(OSError("x"))):
        with pytest.raises(ApplyError):
            _executor(runner=runner, config=config).apply_with_auth_blocking(TARGET, BackendKind.PULSE)


def test_default_gate(monkeypatch):
    monkeypatch.setattr("pro_audio_config.executor.is_admin", lambda: True)
    assert isinstance(default_gate(), RootGate)
    monkeypatch.setattr("pro_audio_config.executor.is_admin", lambda: False)
    assert isinstance(default_gate(), PkexecGate)
    assert isinstance(default_gate("none"), DisabledGate)
