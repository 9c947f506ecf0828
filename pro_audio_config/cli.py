# pro_audio_config/cli.py
import sys
import argparse
import json

from .apply import apply_audio_settings_with_auth_blocking, detector_from_config
from .cmdline_fmt import CLI_PROG, format_apply_cmd_for_display
from .compat import BackendKind, session_user, split_device_id
from .config import load_config
from .devices import (
    detect_all_audio_devices,
    detect_audio_device,
    detect_current_settings_report,
    probe,
)
from .errors import (
    ApplyTimeoutError,
    AudioConfigError,
    ExecutionFailedError,
    InvalidSettingsError,
    NoBackendError,
    PrivilegeDeniedError,
    ValidationError,
)
from .executor import PrivilegedExecutor
from .logging_setup import _log, _log_exc, _log_path, init_logging_runtime, set_debug
from .script import generate, render_script
from .settings import AudioSettings

EXIT_OK = 0
EXIT_EXEC_FAILED = 1
EXIT_INVALID = 2
EXIT_NO_BACKEND = 3
EXIT_DENIED = 4
EXIT_TIMEOUT = 5
EXIT_UNVERIFIED = 6
EXIT_INTERRUPTED = 130


def _exit_code_for(exc):
    if isinstance(exc, (InvalidSettingsError, ValidationError)):
        return EXIT_INVALID
    if isinstance(exc, NoBackendError):
        return EXIT_NO_BACKEND
    if isinstance(exc, PrivilegeDeniedError):
        return EXIT_DENIED
    if isinstance(exc, ApplyTimeoutError):
        return EXIT_TIMEOUT
    return EXIT_EXEC_FAILED


def _fail(exc):
    print(f"ERROR: {exc}", file=sys.stderr)
    return _exit_code_for(exc)


def _target_from_args(args):
    return AudioSettings(args.rate, args.bits, args.buffer, args.device)


def cmd_detect(args):
    conf = args.conf
    try:
        report = detect_current_settings_report(order=conf.order, timeout=conf.probe_timeout)
    except AudioConfigError as e:
        return _fail(e)
    s = report.settings
    if args.json:
        print(json.dumps({
            "backend": report.backend.value,
            "settings": s.to_dict(),
            "defaulted": sorted(report.defaulted),
            "applyCommand": format_apply_cmd_for_display(s),
        }, indent=2))
        return EXIT_OK

    def mark(field):
        return "  (not reported, default)" if report.was_defaulted(field) else ""

    print(f"Backend:      {report.backend.value}")
    print(f"Sample rate:  {s.sample_rate} Hz{mark('sample_rate')}")
    print(f"Bit depth:    {s.bit_depth} bit{mark('bit_depth')}")
    print(f"Buffer size:  {s.buffer_size} frames{mark('buffer_size')}")
    print(f"Device:       {s.device_id}{mark('device_id')}")
    return EXIT_OK


def cmd_device(args):
    conf = args.conf
    try:
        print(detect_audio_device(order=conf.order, timeout=conf.probe_timeout))
    except AudioConfigError as e:
        return _fail(e)
    return EXIT_OK


def cmd_list(args):
    conf = args.conf
    try:
        devices = detect_all_audio_devices(order=conf.order, timeout=conf.probe_timeout)
    except AudioConfigError as e:
        return _fail(e)
    if args.json:
        print(json.dumps({"devices": [d.to_dict() for d in devices]}, indent=2))
        return EXIT_OK

    for direction, title in (("playback", "--- Playback ---"), ("capture", "--- Capture ---")):
        rows = [d for d in devices if d.direction == direction]
        if not rows:
            continue
        print(title)
        for d in rows:
            flag = "*" if d.is_default else " "
            print(f"{flag} {d.device_id:<20} {d.description}")
        print()
    if not devices:
        print("(no devices reported)")
    return EXIT_OK


def _backend_for_script(args):
    if args.backend:
        return BackendKind(args.backend)
    conf = args.conf
    found = probe(order=conf.order, timeout=conf.probe_timeout)
    if found is not None:
        return found[0]
    kind, _ident = split_device_id(args.device)
    return kind


def cmd_script(args):
    target = _target_from_args(args)
    try:
        target.validate()
    except ValidationError as e:
        return _fail(e)
    kind = _backend_for_script(args)
    if kind is None:
        return _fail(NoBackendError("no audio backend responded; pass --backend"))
    sequence = generate(target, kind, restart_services=args.conf.restart_services)
    session = session_user()
    try:
        sys.stdout.write(render_script(sequence, session))
    except ValueError as e:
        return _fail(ExecutionFailedError(EXIT_EXEC_FAILED, str(e)))
    return EXIT_OK


def cmd_apply(args):
    conf = args.conf
    target = _target_from_args(args)
    executor = PrivilegedExecutor.from_config(conf)
    try:
        outcome = apply_audio_settings_with_auth_blocking(target, executor=executor,
                                                          detector=detector_from_config(conf))
    except AudioConfigError as e:
        return _fail(e)

    if args.json:
        print(json.dumps(outcome.to_dict(), indent=2))
    elif outcome.verified:
        print(f"Applied and verified: {target}")
    elif outcome.detected is None:
        print(f"Applied: {target}")
        print("Could not read the settings back to verify them.")
    else:
        print(f"Applied: {target}")
        print(f"Backend now reports: {outcome.detected}")
        if outcome.mismatched:
            print(f"Differs in: {', '.join(outcome.mismatched)}")
        if outcome.unconfirmed:
            print(f"Not reported by the backend: {', '.join(outcome.unconfirmed)}")
    return EXIT_OK if outcome.verified else EXIT_UNVERIFIED


def _add_target_args(p):
    p.add_argument("--rate", type=int, required=True, help="Sample rate in Hz (8000-384000)")
    p.add_argument("--bits", type=int, required=True, choices=[16, 24, 32], help="Bit depth")
    p.add_argument("--buffer", type=int, required=True, help="Buffer size in frames (64-8192)")
    p.add_argument("--device", default="default",
                   help="Device id, e.g. pipewire:47, pulse:1, alsa:hw:0,0 (default: default)")


def build_parser():
    p = argparse.ArgumentParser(prog=CLI_PROG, description="Detect and apply Linux audio output settings "
                                                           "(PipeWire, PulseAudio, ALSA)")
    p.add_argument("--config", help="Path to pro-audio-config.ini")
    p.add_argument("--debug", action="store_true", help="Write debug breadcrumbs to the log file")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_det = sub.add_parser("detect", help="Show the active backend and its current settings")
    p_det.add_argument("--json", action="store_true")
    p_det.set_defaults(func=cmd_detect)

    p_dev = sub.add_parser("device", help="Show the active output device")
    p_dev.set_defaults(func=cmd_device)

    p_list = sub.add_parser("list", help="List devices of the active backend")
    p_list.add_argument("--json", action="store_true")
    p_list.set_defaults(func=cmd_list)

    p_sc = sub.add_parser("script", help="Print the script 'apply' would run (no elevation)")
    _add_target_args(p_sc)
    p_sc.add_argument("--backend", choices=[k.value for k in BackendKind],
                      help="Generate for this backend instead of probing")
    p_sc.set_defaults(func=cmd_script)

    p_ap = sub.add_parser("apply", help="Apply settings (asks for authorization), then verify")
    _add_target_args(p_ap)
    p_ap.add_argument("--json", action="store_true")
    p_ap.set_defaults(func=cmd_apply)

    return p


def main(argv=None):
    init_logging_runtime()

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.debug:
        set_debug(True)
    args.conf = load_config(args.config)
    _log(f"cli: {args.cmd} (log: {_log_path()})")

    try:
        rc = args.func(args)
    except KeyboardInterrupt:
        rc = EXIT_INTERRUPTED
    except AudioConfigError as e:
        _log_exc(f"cli: {args.cmd} failed")
        rc = _fail(e)
    return rc
