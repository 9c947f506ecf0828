import threading

import pytest

from pro_audio_config.apply import (
    ApplyOutcome,
    ApplyStatus,
    apply_audio_settings_with_auth_blocking,
    detector_from_config,
    device_ids_match,
    verify,
)
from pro_audio_config.compat import BackendKind
from pro_audio_config.errors import ApplyError, NoBackendError, PrivilegeDeniedError
from pro_audio_config.executor import PrivilegedExecutor
from pro_audio_config.settings import AudioSettings, DetectedSettings

from fakes import FakeAvailability, FakeRunner, runner_for
import host_outputs as out

TARGET = AudioSettings(48000, 24, 512, "pipewire:47")


class RecordingExecutor:
    def __init__(self, exc=None):
        self.exc = exc
        self.applied = []

    def apply_with_auth_blocking(self, target, backend=None):
        self.applied.append(target)
        if self.exc:
            raise self.exc


def _detector(result):
    calls = []

    def detect():
        calls.append(1)
        if isinstance(result, Exception):
            raise result
        return result
    detect.calls = calls
    return detect


def test_exact_match_is_verified():
    ex = RecordingExecutor()
    outcome = apply_audio_settings_with_auth_blocking(TARGET, executor=ex, detector=_detector(TARGET.clone()))
    assert ex.applied == [TARGET]
    assert outcome.status is ApplyStatus.VERIFIED
    assert outcome.verified
    assert outcome.mismatched == ()


def test_differing_buffer_is_applied_unverified():
    detected = AudioSettings(48000, 24, 1024, "pipewire:47")
    outcome = apply_audio_settings_with_auth_blocking(TARGET, executor=RecordingExecutor(),
                                                      detector=_detector(detected))
    assert outcome.status is ApplyStatus.APPLIED_UNVERIFIED
    assert outcome.detected == detected
    assert outcome.detected.buffer_size == 1024
    assert outcome.mismatched == ("buffer_size",)


def test_detection_failure_is_applied_unverified():
    outcome = apply_audio_settings_with_auth_blocking(TARGET, executor=RecordingExecutor(),
                                                      detector=_detector(NoBackendError()))
    assert outcome.status is ApplyStatus.APPLIED_UNVERIFIED
    assert outcome.detected is None


def test_detector_report_is_unwrapped():
    report = DetectedSettings(TARGET.clone(), BackendKind.PIPEWIRE, frozenset())
    outcome = apply_audio_settings_with_auth_blocking(TARGET, executor=RecordingExecutor(),
                                                      detector=_detector(report))
    assert outcome.verified


def test_apply_errors_propagate_and_skip_verification():
    detect = _detector(TARGET)
    with pytest.raises(PrivilegeDeniedError):
        apply_audio_settings_with_auth_blocking(TARGET, executor=RecordingExecutor(PrivilegeDeniedError()),
                                                detector=detect)
    assert detect.calls == []


def test_host_without_audio_commands_raises_apply_error(config):
    runner = FakeRunner()
    executor = PrivilegedExecutor(runner=runner, availability=FakeAvailability(set()), config=config,
                                  prober=lambda: None, session_provider=lambda: None)
    with pytest.raises(ApplyError):
        apply_audio_settings_with_auth_blocking(AudioSettings(48000, 24, 512, "default"),
                                                executor=executor, detector=_detector(NoBackendError()))
    with pytest.raises(ApplyError):
        apply_audio_settings_with_auth_blocking(TARGET, executor=executor, detector=_detector(NoBackendError()))
    assert runner.calls == []


@pytest.mark.parametrize("requested,detected,match", [
    ("default", "pipewire:47", True),
    ("pipewire:47", "pipewire:47", True),
    ("pipewire:47", "pipewire:48", False),
    ("alsa:hw:1", "alsa:hw:1,0", True),
    ("alsa:hw:1,1", "alsa:hw:1,0", False),
    ("pulse:1", "pipewire:1", False),
    ("alsa:default", "alsa:hw:0,0", True),
    ("pulse:default", "pulse:3", True),
    ("pulse:default", "pipewire:47", False),
])
def test_device_ids_match(requested, detected, match):
    assert device_ids_match(requested, detected) is match


def test_verify_reports_fields_in_order():
    detected = AudioSettings(44100, 16, 512, "pipewire:48")
    outcome = verify(TARGET, detected)
    assert outcome.mismatched == ("sample_rate", "bit_depth", "device_id")


def test_outcome_to_dict():
    outcome = ApplyOutcome(ApplyStatus.APPLIED_UNVERIFIED, TARGET, None, ())
    d = outcome.to_dict()
    assert d["status"] == "applied-unverified"
    assert d["requested"]["sample_rate"] == 48000
    assert d["detected"] is None


def test_applies_are_serialized():
    active = []
    overlap = []

    class SlowExecutor:
        def apply_with_auth_blocking(self, target, backend=None):
            active.append(1)
            if len(active) > 1:
                overlap.append(1)
            threading.Event().wait(0.05)
            active.pop()

    threads = [
        threading.Thread(target=apply_audio_settings_with_auth_blocking,
                         args=(TARGET,), kwargs={"executor": SlowExecutor(), "detector": _detector(TARGET)})
        for _ in range(3)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert overlap == []


def test_match_on_defaulted_field_is_unconfirmed():
    target = AudioSettings(44100, 16, 256, "pulse:0")
    report = DetectedSettings(target.clone(), BackendKind.PULSE, frozenset({"buffer_size"}))
    outcome = apply_audio_settings_with_auth_blocking(target, executor=RecordingExecutor(),
                                                      detector=_detector(report))
    assert outcome.status is ApplyStatus.APPLIED_UNVERIFIED
    assert outcome.mismatched == ()
    assert outcome.unconfirmed == ("buffer_size",)
    assert outcome.to_dict()["unconfirmed"] == ["buffer_size"]


def test_mismatch_on_defaulted_field_is_not_listed_twice():
    detected = AudioSettings(44100, 16, 256, "pulse:0")
    outcome = verify(AudioSettings(44100, 16, 512, "pulse:0"), detected, frozenset({"buffer_size"}))
    assert outcome.mismatched == ("buffer_size",)
    assert outcome.unconfirmed == ()


def test_configured_detector_reports_guessed_fields(monkeypatch, config):
    from pro_audio_config import devices

    monkeypatch.setattr(devices, "SubprocessRunner", lambda: runner_for(out.pulse_host()))
    monkeypatch.setattr(devices, "CommandAvailability", FakeAvailability)
    outcome = apply_audio_settings_with_auth_blocking(AudioSettings(44100, 16, 256, "pulse:0"),
                                                      executor=RecordingExecutor(),
                                                      detector=detector_from_config(config))
    assert not outcome.verified
    assert outcome.unconfirmed == ("buffer_size",)


def test_backend_default_device_verifies_against_detected_device():
    detected = AudioSettings(48000, 16, 256, "alsa:hw:0,0")
    outcome = verify(AudioSettings(48000, 16, 256, "alsa:default"), detected)
    assert outcome.verified
