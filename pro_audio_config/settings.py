# pro_audio_config/settings.py
"""
The settings value object handed between front ends and the engine.

AudioSettings is a plain value: construction accepts anything (front ends
build it straight from combo-box text), and validate() is the one gate that
decides whether a value may be applied to the host.
"""
import copy
from dataclasses import asdict, dataclass

from .compat import (
    BIT_DEPTHS,
    BUFFER_SIZE_MAX,
    BUFFER_SIZE_MIN,
    SAMPLE_RATE_MAX,
    SAMPLE_RATE_MIN,
)
from .errors import ValidationError

FIELDS = ("sample_rate", "bit_depth", "buffer_size", "device_id")


@dataclass
class AudioSettings:
    sample_rate: int
    bit_depth: int
    buffer_size: int
    device_id: str

    def __str__(self):
        return f"{self.sample_rate} Hz / {self.bit_depth} bit / {self.buffer_size} samples / {self.device_id}"

    def clone(self):
        return copy.copy(self)

    def to_dict(self):
        return asdict(self)

    def validate(self):
        """
        Raise ValidationError for the first out-of-range field.

        Fields are checked in declaration order, each on its own, so the
        error always names exactly one field.
        """
        if not _is_int(self.sample_rate) or not SAMPLE_RATE_MIN <= self.sample_rate <= SAMPLE_RATE_MAX:
            raise ValidationError("sample_rate", self.sample_rate,
                                  f"expected {SAMPLE_RATE_MIN}..{SAMPLE_RATE_MAX} Hz")
        if not _is_int(self.bit_depth) or self.bit_depth not in BIT_DEPTHS:
            raise ValidationError("bit_depth", self.bit_depth,
                                  "expected one of " + ", ".join(str(b) for b in BIT_DEPTHS))
        if not _is_int(self.buffer_size) or not BUFFER_SIZE_MIN <= self.buffer_size <= BUFFER_SIZE_MAX:
            raise ValidationError("buffer_size", self.buffer_size,
                                  f"expected {BUFFER_SIZE_MIN}..{BUFFER_SIZE_MAX} frames")
        if not isinstance(self.device_id, str) or not self.device_id.strip():
            raise ValidationError("device_id", self.device_id, "must not be empty")

    def is_valid(self):
        try:
            self.validate()
        except ValidationError:
            return False
        return True


@dataclass(frozen=True)
class DeviceDescriptor:
    """One playback or capture device of the active backend."""
    device_id: str
    description: str
    backend: object        # compat.BackendKind
    direction: str = "playback"
    is_default: bool = False

    def to_dict(self):
        return {
            "id": self.device_id,
            "description": self.description,
            "backend": getattr(self.backend, "value", self.backend),
            "direction": self.direction,
            "isDefault": self.is_default,
        }


@dataclass(frozen=True)
class DetectedSettings:
    """
    Detection result with per-field provenance.

    `defaulted` names the fields that could not be read from the backend and
    were filled with fallbacks, so callers can tell "detected" from "guessed".
    """
    settings: AudioSettings
    backend: object        # compat.BackendKind
    defaulted: frozenset = frozenset()

    def was_defaulted(self, field):
        return field in self.defaulted


def _is_int(value):
    # bool is an int subclass; True is not a sample rate.
    return isinstance(value, int) and not isinstance(value, bool)


def validate(settings):
    settings.validate()


def diff_fields(expected, actual):
    """Names of the fields that differ between two AudioSettings, in FIELDS order."""
    return tuple(f for f in FIELDS if getattr(expected, f) != getattr(actual, f))
