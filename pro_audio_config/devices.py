# pro_audio_config/devices.py
#
# Read side of the engine: which backend is active, what it is currently
# running at, and which devices it offers.
#
# Responsibilities:
# - probe(): ask each backend's status command in priority order; the first one
#   that answers wins, then its followup commands are run best-effort.
# - clean_device_description(): strip backend state words from display text.
# - detect_*(): turn the probe's raw text into AudioSettings / descriptions /
#   DeviceDescriptor lists via the backend objects in backends.py.
#
# Failure policy:
# - A single backend failing to answer (missing binary, non-zero exit, timeout,
#   empty output) is normal on a desktop and only logged at debug level.
# - Only "nothing answered at all" surfaces, as NoBackendError.
# - Unparseable fields never fail detection; they fall back to defaults and are
#   reported in DetectedSettings.defaulted.
import dataclasses

from .backends import backends_in_order, get_backend, section_header
from .compat import STATUS_TOKENS
from .config import DEFAULT_PROBE_TIMEOUT
from .errors import NoBackendError
from .logging_setup import _dbg, _log
from .runner import CommandAvailability, SubprocessRunner
from .settings import DetectedSettings


# Probe output is parsed by label ("Default Sink:", "rate:"); keep it untranslated.
PROBE_ENV = {"LC_ALL": "C"}


def _bind_run(runner, timeout):
    def run(argv):
        return runner.run(list(argv), timeout=timeout, env=PROBE_ENV)
    return run


def probe(runner=None, availability=None, order=None, timeout=DEFAULT_PROBE_TIMEOUT):
    """
    Find the active backend.

    Returns (BackendKind, raw_text) or None when no backend answered.
    `order` is a sequence of BackendKind (from config); backends left out are
    never tried.
    """
    runner = runner or SubprocessRunner()
    availability = availability or CommandAvailability()
    run = _bind_run(runner, timeout)

    for backend in backends_in_order(order):
        argv = backend.status_command
        if not availability.available(argv[0]):
            _dbg(f"probe: {backend.label}: {argv[0]} not installed")
            continue
        res = run(argv)
        if res.timed_out:
            _dbg(f"probe: {backend.label}: {argv[0]} timed out after {timeout}s")
            continue
        if res.returncode != 0:
            _dbg(f"probe: {backend.label}: {argv[0]} exited {res.returncode}: {res.stderr.strip()[:200]}")
            continue
        if not backend.accepts(res.stdout):
            _dbg(f"probe: {backend.label}: unrecognized output from {argv[0]}")
            continue

        parts = [res.stdout.rstrip("\n")]
        for extra in backend.followup_commands(res.stdout):
            if not availability.available(extra[0]):
                _dbg(f"probe: {backend.label}: followup {extra[0]} not installed")
                continue
            fres = run(extra)
            if not fres.ok:
                _dbg(f"probe: {backend.label}: followup {' '.join(extra)} failed ({fres.returncode})")
                continue
            parts.append(section_header(extra))
            parts.append(fres.stdout.rstrip("\n"))

        _dbg(f"probe: active backend {backend.label}")
        return backend.kind, "\n".join(parts) + "\n"

    _dbg("probe: no backend answered")
    return None


def clean_device_description(raw):
    """
    Remove backend state words (SUSPENDED/RUNNING/IDLE) and trailing dashes.

    "PipeWire s32le 4ch 192000Hz SUSPENDED" -> "PipeWire s32le 4ch 192000Hz"
    "ALSA Device - IDLE"                    -> "ALSA Device"

    Only the ends are trimmed; spacing inside the description is kept.
    """
    text = raw or ""
    # removing one token can splice another together ("RUNRUNNINGNING")
    while any(t in text for t in STATUS_TOKENS):
        for token in STATUS_TOKENS:
            text = text.replace(token, "")
    text = text.strip()
    while text.endswith("-"):
        text = text[:-1].rstrip()
    return text


def _probe_or_raise(runner, availability, order, timeout):
    found = probe(runner=runner, availability=availability, order=order, timeout=timeout)
    if found is None:
        raise NoBackendError("no audio backend responded (tried: "
                             + ", ".join(b.label for b in backends_in_order(order)) + ")")
    return found


def detect_current_settings_report(runner=None, availability=None, order=None,
                                   timeout=DEFAULT_PROBE_TIMEOUT):
    """Current settings of the active backend plus which fields were guessed."""
    kind, raw = _probe_or_raise(runner, availability, order, timeout)
    settings, defaulted = get_backend(kind).parse(raw)
    if defaulted:
        _log(f"detect: {kind.value}: fields not reported, using defaults: {', '.join(sorted(defaulted))}")
    _dbg(f"detect: {kind.value}: {settings}")
    return DetectedSettings(settings, kind, defaulted)


def detect_current_audio_settings(runner=None, availability=None, order=None,
                                  timeout=DEFAULT_PROBE_TIMEOUT):
    return detect_current_settings_report(runner, availability, order, timeout).settings


def detect_audio_device(runner=None, availability=None, order=None, timeout=DEFAULT_PROBE_TIMEOUT):
    kind, raw = _probe_or_raise(runner, availability, order, timeout)
    desc = clean_device_description(get_backend(kind).describe(raw))
    if not desc:
        raise NoBackendError(f"{kind.value} answered but reported no device description")
    return desc


def detect_all_audio_devices(runner=None, availability=None, order=None, timeout=DEFAULT_PROBE_TIMEOUT):
    """
    Devices of the active backend, descriptions already cleaned.

    Listing commands that fail only shorten the list; an empty list is a valid
    answer.
    """
    runner = runner or SubprocessRunner()
    kind, raw = _probe_or_raise(runner, availability, order, timeout)
    found = get_backend(kind).list_devices(_bind_run(runner, timeout), raw)
    out = []
    for d in found:
        out.append(dataclasses.replace(d, description=clean_device_description(d.description) or d.device_id))
    _dbg(f"list: {kind.value}: {len(out)} device(s)")
    return out
