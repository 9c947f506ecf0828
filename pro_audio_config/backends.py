# pro_audio_config/backends.py
#
# One object per audio backend. Each knows:
#   - which status command proves the backend is alive (status_command/accepts)
#   - which extra introspection commands enrich the raw text (followup_commands)
#   - how to read settings and a description out of that raw text (parse/describe)
#   - how to enumerate its devices (list_devices)
#   - which native commands apply a target setting (build_commands)
#
# Dispatch happens on compat.BackendKind via get_backend(); nothing outside this
# module matches on tool names or output formats.
#
# Raw text layout (assembled by devices.probe()):
#   <primary command stdout>
#   ### <followup argv joined by spaces>
#   <followup stdout>
#   ...
# Followups that fail are simply absent; parsers treat every section as optional.
import math
import re

from .compat import (
    BackendKind,
    DEFAULT_BIT_DEPTH,
    DEFAULT_BUFFER_SIZE,
    DEFAULT_SAMPLE_RATE,
    DEVICE_ID_DEFAULT,
    GENERATED_MARKER,
    split_device_id,
)
from .script import Command, format_for_bit_depth
from .settings import AudioSettings, DeviceDescriptor

SECTION_PREFIX = "### "

PIPEWIRE_DROPIN_DIR = "/etc/pipewire/pipewire.conf.d"
PIPEWIRE_DROPIN = PIPEWIRE_DROPIN_DIR + "/99-pro-audio-config.conf"
WIREPLUMBER_DROPIN_DIR = "/etc/wireplumber/wireplumber.conf.d"
WIREPLUMBER_DROPIN = WIREPLUMBER_DROPIN_DIR + "/99-pro-audio-config.conf"
PULSE_DROPIN_DIR = "/etc/pulse/daemon.conf.d"
PULSE_DROPIN = PULSE_DROPIN_DIR + "/99-pro-audio-config.conf"
ASOUND_CONF = "/etc/asound.conf"

# Generic patterns, used after the backend-specific ones come up empty.
_RATE_RE = re.compile(r"\b(\d{4,6})\s*[Hh]z\b")
_FORMAT_RE = re.compile(
    r"\b(?:[SU](16|24|32)(?:[_-]?(?:32|3))?(?:[_-]?[LB]E)?|F(?:LOAT)?(32)(?:[_-]?[LB]E)?)\b",
    re.IGNORECASE,
)

# key = "value" property lines (wpctl inspect, pw-cli ls); wpctl marks some with '*'.
_PROP_RE = re.compile(r'^\s*\*?\s*([A-Za-z0-9_.\-]+)\s*=\s*"?(.*?)"?\s*$')
# update: id:0 key:'clock.rate' value:'48000' type:''
_META_RE = re.compile(r"key:'([^']+)'\s+value:'([^']*)'")
_NODE_ID_RE = re.compile(r"^\s*id\s+(\d+),", re.MULTILINE)
_NODE_SPLIT_RE = re.compile(r"^\s*id\s+(\d+),[^\n]*$", re.MULTILINE)
# card 0: PCH [HDA Intel PCH], device 0: ALC892 Analog [ALC892 Analog]
_ALSA_CARD_RE = re.compile(
    r"^card\s+(\d+):\s*(\S+)\s*\[([^\]]*)\],\s*device\s+(\d+):\s*([^\[\n]*?)\s*\[([^\]]*)\]",
    re.MULTILINE,
)


# ---- shared parsing helpers ---------------------------------------------------

def _positive_int(value):
    try:
        n = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return n if n > 0 else None


def parse_rate(text):
    """First `<digits>Hz` token in text, or None."""
    m = _RATE_RE.search(text or "")
    return int(m.group(1)) if m else None


def bits_from_format(text):
    """
    Bit depth from the first sample-format token in text, or None.

    Understands pactl (s16le, s24-32le), PipeWire (S24LE) and ALSA (S24_3LE,
    S32_LE) spellings; float formats count as 32.
    """
    m = _FORMAT_RE.search(text or "")
    if not m:
        return None
    return int(m.group(1) or m.group(2))


def split_sections(raw):
    """{"": primary text, "<followup argv>": text, ...}"""
    sections = {}
    key = ""
    buf = []
    for line in (raw or "").splitlines():
        if line.startswith(SECTION_PREFIX):
            sections[key] = "\n".join(buf)
            key = line[len(SECTION_PREFIX):].strip()
            buf = []
        else:
            buf.append(line)
    sections[key] = "\n".join(buf)
    return sections


def section_header(argv):
    return SECTION_PREFIX + " ".join(argv)


def _props(text):
    props = {}
    for line in (text or "").splitlines():
        m = _PROP_RE.match(line)
        if m:
            props.setdefault(m.group(1), m.group(2))
    return props


def _finish(rate, bits, frames, device_id):
    """Fill unparsed fields with fallbacks and remember which ones were filled."""
    defaulted = set()
    if rate is None:
        rate = DEFAULT_SAMPLE_RATE
        defaulted.add("sample_rate")
    if bits is None:
        bits = DEFAULT_BIT_DEPTH
        defaulted.add("bit_depth")
    if frames is None:
        frames = DEFAULT_BUFFER_SIZE
        defaulted.add("buffer_size")
    if not device_id:
        device_id = DEVICE_ID_DEFAULT
        defaulted.add("device_id")
    return AudioSettings(rate, bits, frames, device_id), frozenset(defaulted)


class Backend:
    kind = None
    label = ""
    status_command = ()

    def accepts(self, stdout):
        return bool(stdout.strip())

    def followup_commands(self, primary_stdout):
        return []

    def parse(self, raw):
        """(AudioSettings, frozenset of defaulted field names)"""
        raise NotImplementedError

    def describe(self, raw):
        return ""

    def list_devices(self, run, raw):
        """
        run: callable(argv) -> runner.CommandResult, already bound to the
        probe timeout and environment.
        """
        return []

    def build_commands(self, target, restart_services=False):
        return []


# ---- PipeWire -----------------------------------------------------------------

class PipeWireBackend(Backend):
    kind = BackendKind.PIPEWIRE
    label = "PipeWire"
    status_command = ("pw-metadata", "-n", "settings")
    inspect_command = ("wpctl", "inspect", "@DEFAULT_AUDIO_SINK@")
    list_command = ("pw-cli", "ls", "Node")

    def accepts(self, stdout):
        return _META_RE.search(stdout) is not None

    def followup_commands(self, primary_stdout):
        return [self.inspect_command]

    @staticmethod
    def _metadata(text):
        return {k: v for k, v in _META_RE.findall(text or "")}

    def _inspect(self, raw):
        return split_sections(raw).get(" ".join(self.inspect_command), "")

    def parse(self, raw):
        sections = split_sections(raw)
        meta = self._metadata(sections.get("", ""))
        inspect = sections.get(" ".join(self.inspect_command), "")
        props = _props(inspect)

        # force-* are 0 unless something pinned them; a pin wins over the default.
        rate = _positive_int(meta.get("clock.force-rate")) or _positive_int(meta.get("clock.rate"))
        if rate is None:
            rate = _positive_int(props.get("audio.rate")) or parse_rate(raw)

        bits = bits_from_format(props.get("audio.format", "")) or bits_from_format(raw)

        frames = (_positive_int(meta.get("clock.force-quantum"))
                  or _positive_int(meta.get("clock.quantum")))

        m = _NODE_ID_RE.search(inspect)
        device_id = f"pipewire:{m.group(1)}" if m else None
        return _finish(rate, bits, frames, device_id)

    def describe(self, raw):
        props = _props(self._inspect(raw))
        for key in ("node.description", "node.nick", "node.name"):
            if props.get(key):
                return props[key]
        rate = _positive_int(self._metadata(raw).get("clock.rate"))
        return f"PipeWire {rate}Hz" if rate else ""

    def list_devices(self, run, raw):
        res = run(self.list_command)
        if not res.ok:
            return []
        m = _NODE_ID_RE.search(self._inspect(raw))
        default_id = m.group(1) if m else None

        out = []
        parts = _NODE_SPLIT_RE.split(res.stdout)
        # parts = [preamble, id1, body1, id2, body2, ...]
        for node_id, body in zip(parts[1::2], parts[2::2]):
            props = _props(body)
            media = props.get("media.class", "")
            if media == "Audio/Sink":
                direction = "playback"
            elif media == "Audio/Source":
                direction = "capture"
            else:
                continue
            desc = props.get("node.description") or props.get("node.nick") or props.get("node.name") or f"node {node_id}"
            out.append(DeviceDescriptor(f"pipewire:{node_id}", desc, self.kind, direction, node_id == default_id))
        return out

    def build_commands(self, target, restart_services=False):
        rate = target.sample_rate
        frames = target.buffer_size
        fmt = format_for_bit_depth(target.bit_depth)

        cmds = [
            Command(["mkdir", "-p", PIPEWIRE_DROPIN_DIR], "ensure PipeWire drop-in directory"),
            Command(["tee", PIPEWIRE_DROPIN], "default clock rate and quantum",
                    input=_pipewire_conf(rate, frames)),
            Command(["mkdir", "-p", WIREPLUMBER_DROPIN_DIR], "ensure WirePlumber drop-in directory"),
            Command(["tee", WIREPLUMBER_DROPIN], f"ALSA node format {fmt}",
                    input=_wireplumber_conf(fmt, rate)),
        ]
        if restart_services:
            cmds.append(Command(["systemctl", "--user", "restart", "wireplumber.service", "pipewire.service"],
                                "restart PipeWire session", as_user=True))
            # pw-metadata needs the restarted daemon to accept connections
            cmds.append(Command(["sleep", "1"], "wait for PipeWire"))
        cmds += [
            Command(["pw-metadata", "-n", "settings", "0", "clock.force-rate", str(rate)],
                    "set sample rate", as_user=True),
            Command(["pw-metadata", "-n", "settings", "0", "clock.force-quantum", str(frames)],
                    "set quantum", as_user=True),
        ]
        kind, ident = split_device_id(target.device_id)
        if kind is BackendKind.PIPEWIRE and ident.isdigit():
            cmds.append(Command(["wpctl", "set-default", ident], "set default node", as_user=True))
        return cmds


def _pipewire_conf(rate, frames):
    return (
        f"{GENERATED_MARKER}\n"
        "context.properties = {\n"
        f"    default.clock.rate = {rate}\n"
        f"    default.clock.allowed-rates = [ {rate} ]\n"
        f"    default.clock.quantum = {frames}\n"
        f"    default.clock.min-quantum = {frames}\n"
        "}\n"
    )


def _wireplumber_conf(fmt, rate):
    return (
        f"{GENERATED_MARKER}\n"
        "monitor.alsa.rules = [\n"
        "  {\n"
        "    matches = [\n"
        '      { node.name = "~alsa_output.*" }\n'
        "    ]\n"
        "    actions = {\n"
        "      update-props = {\n"
        f'        audio.format = "{fmt}"\n'
        f"        audio.rate = {rate}\n"
        "      }\n"
        "    }\n"
        "  }\n"
        "]\n"
    )


# ---- PulseAudio ---------------------------------------------------------------

def _pulse_rows(text):
    """
    Rows of `pactl list <sinks|sources> short`:
      index, name, driver, sample spec, state   (tab separated)
    """
    rows = []
    for line in (text or "").splitlines():
        cols = [c.strip() for c in line.split("\t")]
        if len(cols) >= 2 and cols[0].isdigit():
            rows.append(cols)
    return rows


def _colon_fields(text):
    fields = {}
    for line in (text or "").splitlines():
        key, sep, value = line.partition(":")
        if sep and key and not key.startswith(" "):
            fields.setdefault(key.strip(), value.strip())
    return fields


class PulseBackend(Backend):
    kind = BackendKind.PULSE
    label = "PulseAudio"
    status_command = ("pactl", "info")
    sinks_command = ("pactl", "list", "sinks", "short")
    sources_command = ("pactl", "list", "sources", "short")

    def followup_commands(self, primary_stdout):
        return [self.sinks_command]

    def _default_sink_row(self, raw):
        sections = split_sections(raw)
        info = _colon_fields(sections.get("", ""))
        default = info.get("Default Sink")
        rows = _pulse_rows(sections.get(" ".join(self.sinks_command), ""))
        for row in rows:
            if row[1] == default:
                return row
        # No default reported (or a stale one): the first sink is what plays.
        return rows[0] if rows else None

    def parse(self, raw):
        info = _colon_fields(split_sections(raw).get("", ""))
        spec = info.get("Default Sample Specification", "")
        row = self._default_sink_row(raw)
        row_spec = row[3] if row and len(row) > 3 else ""

        rate = parse_rate(spec) or parse_rate(row_spec) or parse_rate(raw)
        bits = bits_from_format(spec) or bits_from_format(row_spec) or bits_from_format(raw)
        # PulseAudio does not expose its fragment size through pactl.
        frames = None
        device_id = f"pulse:{row[0]}" if row else None
        return _finish(rate, bits, frames, device_id)

    def describe(self, raw):
        row = self._default_sink_row(raw)
        if row:
            # driver, sample spec, state: "PipeWire s32le 4ch 192000Hz SUSPENDED"
            return " ".join(c for c in row[2:] if c) or row[1]
        return _colon_fields(split_sections(raw).get("", "")).get("Default Sink", "")

    def list_devices(self, run, raw):
        info = _colon_fields(split_sections(raw).get("", ""))
        out = []
        for argv, direction, default in (
            (self.sinks_command, "playback", info.get("Default Sink")),
            (self.sources_command, "capture", info.get("Default Source")),
        ):
            res = run(argv)
            if not res.ok:
                continue
            for row in _pulse_rows(res.stdout):
                name = row[1]
                if direction == "capture" and name.endswith(".monitor"):
                    continue
                desc = " ".join(c for c in [name] + row[3:] if c)
                out.append(DeviceDescriptor(f"pulse:{row[0]}", desc, self.kind, direction, name == default))
        return out

    def build_commands(self, target, restart_services=False):
        rate = target.sample_rate
        fmt = format_for_bit_depth(target.bit_depth).lower()
        frag_ms = max(1, math.ceil(target.buffer_size * 1000 / max(1, rate)))

        cmds = [
            Command(["mkdir", "-p", PULSE_DROPIN_DIR], "ensure PulseAudio drop-in directory"),
            Command(["tee", PULSE_DROPIN], "daemon sample format, rate and fragment size",
                    input=_pulse_conf(fmt, rate, frag_ms)),
        ]
        kind, ident = split_device_id(target.device_id)
        if kind is BackendKind.PULSE and ident:
            cmds.append(Command(["pactl", "set-default-sink", ident], "set default sink", as_user=True))
        # daemon.conf is only read at startup
        cmds.append(Command(["systemctl", "--user", "restart", "pulseaudio.service"],
                            "reload PulseAudio daemon", as_user=True))
        return cmds


def _pulse_conf(fmt, rate, frag_ms):
    return (
        f"{GENERATED_MARKER}\n"
        f"default-sample-format = {fmt}\n"
        f"default-sample-rate = {rate}\n"
        f"alternate-sample-rate = {rate}\n"
        "default-fragments = 2\n"
        f"default-fragment-size-msec = {frag_ms}\n"
    )


# ---- ALSA ---------------------------------------------------------------------

def _alsa_cards(text):
    """[(card, card_id, card_name, device, device_name), ...] from aplay/arecord -l."""
    return [
        (m.group(1), m.group(2), m.group(3).strip(), m.group(4), (m.group(6) or m.group(5)).strip())
        for m in _ALSA_CARD_RE.finditer(text or "")
    ]


def _hw_params_path(card, device):
    return f"/proc/asound/card{card}/pcm{device}p/sub0/hw_params"


def _split_hw(ident):
    """'hw:1,0' -> ('1', '0'); 'hw:PCH' -> ('PCH', '0'); anything else -> None"""
    if not ident or not ident.startswith("hw:"):
        return None
    card, _, device = ident[3:].partition(",")
    if not card:
        return None
    return card, (device or "0")


def alsa_format_name(fmt):
    """S24LE -> S24_LE (ALSA spells the endianness as a separate word)."""
    return fmt[:-2] + "_" + fmt[-2:]


class AlsaBackend(Backend):
    kind = BackendKind.ALSA
    label = "ALSA"
    status_command = ("aplay", "-l")
    capture_command = ("arecord", "-l")
    asound_command = ("cat", ASOUND_CONF)

    def accepts(self, stdout):
        return _ALSA_CARD_RE.search(stdout) is not None

    def followup_commands(self, primary_stdout):
        cmds = [self.asound_command]
        for card, _cid, _cname, device, _dname in _alsa_cards(primary_stdout):
            cmds.append(("cat", _hw_params_path(card, device)))
        return cmds

    def _generated_conf(self, sections):
        conf = sections.get(" ".join(self.asound_command), "")
        return conf if GENERATED_MARKER in conf else ""

    def _selected(self, sections):
        """The card row our default PCM points at, else the first card."""
        cards = _alsa_cards(sections.get("", ""))
        if not cards:
            return None
        m = re.search(r'pcm\s+"(hw:[^"]+)"', self._generated_conf(sections))
        hw = _split_hw(m.group(1)) if m else None
        if hw:
            for row in cards:
                if hw[0] in (row[0], row[1]) and hw[1] == row[3]:
                    return row
        return cards[0]

    def parse(self, raw):
        sections = split_sections(raw)
        row = self._selected(sections)
        conf = self._generated_conf(sections)
        hw_text = sections.get("cat " + _hw_params_path(row[0], row[3]), "") if row else ""

        def field(pattern, *texts):
            for text in texts:
                m = re.search(pattern, text or "", re.MULTILINE)
                if m:
                    return m.group(1)
            return None

        # Live hw_params only exist while the PCM is open; otherwise fall back
        # to what our generated asound.conf asks for.
        rate = _positive_int(field(r"^rate:\s*(\d+)", hw_text)) \
            or _positive_int(field(r"^\s*rate\s+(\d+)", conf)) \
            or parse_rate(raw)
        bits = bits_from_format(field(r"^format:\s*(\S+)", hw_text) or "") \
            or bits_from_format(field(r"^\s*format\s+(\S+)", conf) or "")
        frames = _positive_int(field(r"^period_size:\s*(\d+)", hw_text)) \
            or _positive_int(field(r"^\s*period_size\s+(\d+)", conf))
        device_id = f"alsa:hw:{row[0]},{row[3]}" if row else None
        return _finish(rate, bits, frames, device_id)

    def describe(self, raw):
        row = self._selected(split_sections(raw))
        if not row:
            return ""
        return f"{row[2] or row[1]} - {row[4]}" if row[4] else (row[2] or row[1])

    def list_devices(self, run, raw):
        sections = split_sections(raw)
        selected = self._selected(sections)
        out = []
        for row in _alsa_cards(sections.get("", "")):
            desc = f"{row[2] or row[1]} - {row[4]}" if row[4] else (row[2] or row[1])
            out.append(DeviceDescriptor(f"alsa:hw:{row[0]},{row[3]}", desc, self.kind, "playback",
                                        row == selected))
        res = run(self.capture_command)
        if res.ok:
            for row in _alsa_cards(res.stdout):
                desc = f"{row[2] or row[1]} - {row[4]}" if row[4] else (row[2] or row[1])
                out.append(DeviceDescriptor(f"alsa:hw:{row[0]},{row[3]}", desc, self.kind, "capture"))
        return out

    def build_commands(self, target, restart_services=False):
        kind, ident = split_device_id(target.device_id)
        hw = _split_hw(ident) if kind is BackendKind.ALSA else None
        card, device = hw or ("0", "0")
        fmt = alsa_format_name(format_for_bit_depth(target.bit_depth))
        conf = _asound_conf(card, device, target.sample_rate, fmt, target.buffer_size)
        return [Command(["tee", ASOUND_CONF], f"default PCM on hw:{card},{device}", input=conf)]


def _asound_conf(card, device, rate, fmt, period):
    return (
        f"{GENERATED_MARKER}\n"
        "pcm.!default {\n"
        "    type plug\n"
        '    slave.pcm "pro_audio_dmix"\n'
        "}\n"
        "ctl.!default {\n"
        "    type hw\n"
        f"    card {card}\n"
        "}\n"
        "pcm.pro_audio_dmix {\n"
        "    type dmix\n"
        "    ipc_key 4242\n"
        "    ipc_perm 0666\n"
        "    slave {\n"
        f'        pcm "hw:{card},{device}"\n'
        f"        rate {rate}\n"
        f"        format {fmt}\n"
        f"        period_size {period}\n"
        f"        buffer_size {period * 4}\n"
        "    }\n"
        "}\n"
    )


_BACKENDS = {b.kind: b for b in (PipeWireBackend(), PulseBackend(), AlsaBackend())}


def get_backend(kind):
    return _BACKENDS.get(kind)


def backends_in_order(order=None):
    """Backend objects in probe order; `order` is a sequence of BackendKind."""
    kinds = order if order is not None else tuple(BackendKind)
    return [_BACKENDS[k] for k in kinds if k in _BACKENDS]
