import pytest

from pro_audio_config.backends import (
    AlsaBackend,
    _asound_conf,
    alsa_format_name,
    bits_from_format,
    get_backend,
    parse_rate,
    split_sections,
)
from pro_audio_config.compat import BackendKind
from pro_audio_config.devices import detect_current_settings_report
from pro_audio_config.settings import AudioSettings

from fakes import FakeAvailability, fail, runner_for
import host_outputs as out


def _report(outputs, order=None):
    return detect_current_settings_report(runner=runner_for(outputs), availability=FakeAvailability(),
                                          order=order)


@pytest.mark.parametrize("token,bits", [
    ("s16le", 16),
    ("S16_LE", 16),
    ("S24LE", 24),
    ("S24_3LE", 24),
    ("s24-32le", 24),
    ("s24le 2ch 96000Hz", 24),
    ("S32_LE", 32),
    ("float32le", 32),
    ("F32LE", 32),
    ("mono", None),
    ("", None),
])
def test_bits_from_format(token, bits):
    assert bits_from_format(token) == bits


def test_parse_rate():
    assert parse_rate("s16le 2ch 44100Hz") == 44100
    assert parse_rate("rate 192000 Hz") == 192000
    assert parse_rate("no rate here") is None


def test_alsa_format_name():
    assert alsa_format_name("S24LE") == "S24_LE"
    assert alsa_format_name("S16LE") == "S16_LE"


def test_split_sections():
    raw = "primary\n### wpctl inspect x\nline a\nline b\n"
    sections = split_sections(raw)
    assert sections[""] == "primary"
    assert sections["wpctl inspect x"] == "line a\nline b"


def test_pipewire_current_settings():
    report = _report(out.pipewire_host())
    assert report.backend is BackendKind.PIPEWIRE
    assert report.settings == AudioSettings(48000, 24, 1024, "pipewire:47")
    assert report.defaulted == frozenset()


def test_pipewire_forced_values_win():
    report = _report(out.pipewire_host(metadata=out.PW_METADATA_FORCED))
    assert report.settings.sample_rate == 96000
    assert report.settings.buffer_size == 256


def test_pipewire_without_default_node_falls_back_per_field():
    outputs = out.pipewire_host()
    outputs["wpctl inspect @DEFAULT_AUDIO_SINK@"] = fail(1, "Object not found")
    report = _report(outputs)
    assert report.backend is BackendKind.PIPEWIRE
    assert report.settings == AudioSettings(48000, 16, 1024, "default")
    assert report.defaulted == {"bit_depth", "device_id"}
    assert report.was_defaulted("device_id")
    assert not report.was_defaulted("sample_rate")


def test_pulse_current_settings():
    report = _report(out.pulse_host())
    assert report.backend is BackendKind.PULSE
    assert report.settings == AudioSettings(44100, 16, 256, "pulse:0")
    # pactl has no notion of a buffer size
    assert report.defaulted == {"buffer_size"}


def test_pulse_uses_default_sink_row():
    info = out.PACTL_INFO.replace("Default Sink: alsa_output.pci-0000_00_1f.3.analog-stereo",
                                  "Default Sink: alsa_output.usb-Focusrite_Scarlett_2i2-00.analog-stereo")
    report = _report(out.pulse_host(**{"pactl info": info}))
    assert report.settings.device_id == "pulse:1"


def test_pulse_without_default_format_uses_sink_row():
    info = out.PACTL_INFO.replace("Default Sample Specification: s16le 2ch 44100Hz\n", "")
    report = _report(out.pulse_host(**{"pactl info": info}))
    assert report.settings.sample_rate == 48000
    assert report.settings.bit_depth == 32


def test_alsa_live_hw_params():
    report = _report(out.alsa_host())
    assert report.backend is BackendKind.ALSA
    assert report.settings == AudioSettings(48000, 32, 512, "alsa:hw:0,0")
    assert report.defaulted == frozenset()


def test_alsa_closed_device_falls_back_to_generated_config():
    conf = _asound_conf("1", "0", 96000, "S24_LE", 256)
    report = _report(out.alsa_host(**{"cat /etc/asound.conf": conf}))
    assert report.settings == AudioSettings(96000, 24, 256, "alsa:hw:1,0")


def test_alsa_foreign_config_is_ignored():
    foreign = 'pcm.!default { type hw card 1 }\n'
    report = _report(out.alsa_host(**{"cat /etc/asound.conf": foreign}))
    assert report.settings.device_id == "alsa:hw:0,0"


def test_alsa_nothing_open_defaults():
    outputs = out.alsa_host(**{"cat /proc/asound/card0/pcm0p/sub0/hw_params": out.HW_PARAMS_CLOSED})
    report = _report(outputs)
    assert report.settings == AudioSettings(44100, 16, 256, "alsa:hw:0,0")
    assert report.defaulted == {"sample_rate", "bit_depth", "buffer_size"}


def test_alsa_followups_cover_every_card():
    cmds = AlsaBackend().followup_commands(out.APLAY_L)
    assert ("cat", "/etc/asound.conf") in cmds
    assert ("cat", "/proc/asound/card1/pcm0p/sub0/hw_params") in cmds
    assert len(cmds) == 4


def test_describe_per_backend():
    raw = ("x\n### wpctl inspect @DEFAULT_AUDIO_SINK@\n" + out.WPCTL_INSPECT)
    assert get_backend(BackendKind.PIPEWIRE).describe(raw) == "Built-in Audio Analog Stereo"

    raw = out.PACTL_INFO + "### pactl list sinks short\n" + out.PACTL_SINKS
    assert get_backend(BackendKind.PULSE).describe(raw) == "module-alsa-card.c s32le 2ch 48000Hz SUSPENDED"

    assert get_backend(BackendKind.ALSA).describe(out.APLAY_L) == "HDA Intel PCH - ALC892 Analog"
