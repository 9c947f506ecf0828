# pro_audio_config/apply.py
"""
Apply a settings change end to end and say how sure we are that it took.

Verification is read-after-write and best effort: the backend is probed again
after the elevated script finished and every field is compared. Nothing stops
another program from changing the audio configuration in between, so a
mismatch is reported, never treated as a failure of the apply itself.
"""
import enum
import threading
from dataclasses import dataclass

from .compat import BackendKind, split_device_id
from .config import load_config
from .errors import DetectError
from .executor import PrivilegedExecutor
from .logging_setup import _log
from .settings import FIELDS, diff_fields

# One apply at a time per process; two interleaved scripts would race on the
# same drop-in files.
_APPLY_LOCK = threading.Lock()


class ApplyStatus(enum.Enum):
    VERIFIED = "verified"
    APPLIED_UNVERIFIED = "applied-unverified"


@dataclass(frozen=True)
class ApplyOutcome:
    status: ApplyStatus
    requested: object               # AudioSettings
    detected: object = None         # AudioSettings or None when detection failed
    mismatched: tuple = ()
    unconfirmed: tuple = ()         # matched, but only because the backend fell back to a default

    @property
    def verified(self):
        return self.status is ApplyStatus.VERIFIED

    def to_dict(self):
        return {
            "status": self.status.value,
            "requested": self.requested.to_dict(),
            "detected": self.detected.to_dict() if self.detected is not None else None,
            "mismatched": list(self.mismatched),
            "unconfirmed": list(self.unconfirmed),
        }


def _normalize_device(device_id):
    kind, ident = split_device_id(device_id)
    if kind is BackendKind.ALSA and ident.startswith("hw:") and "," not in ident:
        # hw:1 and hw:1,0 address the same PCM
        ident += ",0"
    return kind, ident


def device_ids_match(requested, detected):
    """
    "default" (bare or behind a backend prefix) asks for no particular
    device, so any detected device of that backend satisfies it; otherwise
    the ids must name the same device.
    """
    kind, ident = _normalize_device(requested)
    got_kind, got_ident = _normalize_device(detected)
    if not ident:
        return kind is None or kind is got_kind
    return (kind, ident) == (got_kind, got_ident)


def verify(requested, detected, defaulted=()):
    """
    Compare requested against detected field by field -> ApplyOutcome.

    Fields in `defaulted` were never read from the backend; a match on one of
    them proves nothing and leaves the outcome unverified.
    """
    if detected is None:
        return ApplyOutcome(ApplyStatus.APPLIED_UNVERIFIED, requested, None, ())
    mismatched = tuple(f for f in diff_fields(requested, detected)
                       if f != "device_id" or not device_ids_match(requested.device_id, detected.device_id))
    unconfirmed = tuple(f for f in FIELDS if f in defaulted and f not in mismatched)
    if mismatched or unconfirmed:
        status = ApplyStatus.APPLIED_UNVERIFIED
    else:
        status = ApplyStatus.VERIFIED
    return ApplyOutcome(status, requested, detected, mismatched, unconfirmed)


def detector_from_config(config):
    from .devices import detect_current_settings_report

    def detector():
        return detect_current_settings_report(order=config.order, timeout=config.probe_timeout)
    return detector


def apply_audio_settings_with_auth_blocking(target, executor=None, detector=None):
    """
    Validate, apply behind one elevation prompt, then verify.

    Returns an ApplyOutcome; raises an ApplyError subclass when the settings
    were not applied at all. Blocks until the elevated script finishes or the
    configured timeout expires.
    """
    if executor is None or detector is None:
        config = load_config()
        executor = executor or PrivilegedExecutor.from_config(config)
        detector = detector or detector_from_config(config)

    with _APPLY_LOCK:
        executor.apply_with_auth_blocking(target)
        try:
            detected = detector()
        except DetectError as e:
            _log(f"verify: could not re-detect settings: {e}")
            detected = None
        # detectors may hand back a DetectedSettings report or plain AudioSettings
        outcome = verify(target, getattr(detected, "settings", detected),
                         getattr(detected, "defaulted", ()))

    if outcome.verified:
        _log(f"verify: {target} confirmed")
    elif outcome.detected is None:
        _log("verify: applied, backend state unknown")
    elif outcome.mismatched:
        _log(f"verify: applied but backend reports {outcome.detected} "
             f"(differs in {', '.join(outcome.mismatched)})")
    else:
        _log(f"verify: applied; backend does not report {', '.join(outcome.unconfirmed)}")
    return outcome
