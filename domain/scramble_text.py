"""Domain types and parameter validation for scramble-reveal animations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import re
from typing import Callable, Mapping, Sequence, Tuple

INVALID_CONFIG_CODE = "scramble_reveal.input.invalid_config"
CORRECTED_VALUE_CODE = "scramble_reveal.input.corrected_value"
UNKNOWN_SETTING_CODE = "scramble_reveal.input.unknown_setting"

WORD_SETTING = "word"
CYCLES_SETTING = "cycles_per_letter"
INTERVAL_SETTING = "cycle_interval_ms"
SPACING_SETTING = "letter_spacing_px"

INTER_LETTER_DELAY_MS = 150
BLANK_CHARACTER = " "
FALLBACK_SYMBOLS = ("*", "#", "$", "%", "§", "Ω", "∑", "∆", "!", "?")
DEFAULT_EXPORT_FILE_NAME = "letter-animation-1080p.webm"
EXPORT_MIME_TYPE = "video/webm;codecs=vp9"
PLACEHOLDER_MESSAGE = "Please enter a word and try again"
LEADING_INTEGER_PATTERN = re.compile(r"^\s*([+-]?\d+)")
LOGGER = logging.getLogger("scramble_reveal")

GlyphLookup = Callable[[str], Sequence[str]]


class ScrambleValidationError(ValueError):
    """Validation error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class ParameterBounds:
    """Inclusive bounds and fallback for a numeric animation parameter."""

    name: str
    minimum: int
    maximum: int
    default: int

    def __post_init__(self) -> None:
        if self.minimum > self.maximum:
            raise ScrambleValidationError(
                INVALID_CONFIG_CODE, f"{self.name}: minimum exceeds maximum"
            )
        if not self.minimum <= self.default <= self.maximum:
            raise ScrambleValidationError(
                INVALID_CONFIG_CODE, f"{self.name}: default outside bounds"
            )


CYCLES_BOUNDS = ParameterBounds(CYCLES_SETTING, minimum=5, maximum=50, default=12)
INTERVAL_BOUNDS = ParameterBounds(INTERVAL_SETTING, minimum=20, maximum=200, default=75)
SPACING_BOUNDS = ParameterBounds(SPACING_SETTING, minimum=0, maximum=50, default=15)


class RecordingState(str, Enum):
    """Lifecycle states of a recording session."""

    IDLE = "idle"
    RECORDING = "recording"
    STOPPING = "stopping"


@dataclass(frozen=True)
class AnimationRequest:
    """Word plus the effective timing of one scramble-reveal run."""

    word: str
    letter_spacing_px: int = SPACING_BOUNDS.default
    cycles_per_letter: int = CYCLES_BOUNDS.default
    cycle_interval_ms: int = INTERVAL_BOUNDS.default
    inter_letter_delay_ms: int = INTER_LETTER_DELAY_MS

    @property
    def letters(self) -> Tuple[str, ...]:
        return tuple(self.word)


@dataclass
class LetterCell:
    """Mutable visual state of one letter of the animated word."""

    target_char: str
    displayed_char: str = BLANK_CHARACTER
    cycle_count: int = 0
    settled: bool = False
    opacity: float = 1.0
    scale: float = 1.0


@dataclass(frozen=True)
class ExportableVideo:
    """Finalized encoded stream produced when a recording session ends."""

    chunks: Tuple[bytes, ...]
    mime_type: str
    file_name: str
    frame_count: int
    duration_ms: float

    @property
    def size_bytes(self) -> int:
        return sum(len(chunk) for chunk in self.chunks)

    def to_bytes(self) -> bytes:
        """Join the encoded chunks into one playable stream."""
        return b"".join(self.chunks)

    def write_to(self, file_path: str) -> str:
        """Write the stream to disk and return the path written."""
        with open(file_path, "wb") as file_handle:
            for chunk in self.chunks:
                file_handle.write(chunk)
        return file_path


@dataclass
class RecordingSession:
    """State of the single capture session owned by the pipeline."""

    max_duration_ms: int
    state: RecordingState = RecordingState.IDLE
    started_at: float = 0.0
    chunks: list[bytes] = field(default_factory=list)
    rendered_frames: int = 0
    placeholder: bool = False

    def reset(self, started_at: float) -> None:
        self.state = RecordingState.RECORDING
        self.started_at = started_at
        self.chunks = []
        self.rendered_frames = 0
        self.placeholder = False

    def elapsed_ms(self, now: float) -> float:
        return (now - self.started_at) * 1000.0


def parse_integer(raw_value: object) -> int | None:
    """Parse a form-style value into an int, or None when non-numeric."""
    if isinstance(raw_value, bool):
        return None
    if isinstance(raw_value, int):
        return raw_value
    if isinstance(raw_value, float):
        if raw_value != raw_value or raw_value in (float("inf"), float("-inf")):
            return None
        return int(raw_value)
    if isinstance(raw_value, str):
        match = LEADING_INTEGER_PATTERN.match(raw_value)
        if not match:
            return None
        return int(match.group(1))
    return None


def clamp_parameter(raw_value: object, bounds: ParameterBounds) -> Tuple[int, bool]:
    """Return the effective value and whether it had to be corrected.

    Anything non-numeric or outside the bounds falls back to the default;
    the value is never pulled to the nearest bound.
    """
    parsed = parse_integer(raw_value)
    if parsed is None or parsed < bounds.minimum or parsed > bounds.maximum:
        return bounds.default, True
    return parsed, False


class ControlSettings:
    """Caller-visible configuration store holding raw form values."""

    def __init__(self, values: Mapping[str, object] | None = None) -> None:
        self._values: dict[str, object] = {
            WORD_SETTING: "",
            CYCLES_SETTING: CYCLES_BOUNDS.default,
            INTERVAL_SETTING: INTERVAL_BOUNDS.default,
            SPACING_SETTING: SPACING_BOUNDS.default,
        }
        for name, value in (values or {}).items():
            self.set(name, value)

    def get(self, name: str) -> object:
        self._require_known(name)
        return self._values[name]

    def set(self, name: str, value: object) -> None:
        self._require_known(name)
        self._values[name] = value

    def snapshot(self) -> dict[str, object]:
        return dict(self._values)

    @property
    def word(self) -> str:
        value = self._values[WORD_SETTING]
        return value if isinstance(value, str) else ""

    def effective_value(self, bounds: ParameterBounds) -> int:
        """Clamp a numeric setting and echo any correction back into the store."""
        raw_value = self._values[bounds.name]
        value, corrected = clamp_parameter(raw_value, bounds)
        if corrected:
            LOGGER.warning(
                "%s: %s=%r outside %d-%d, using %d",
                CORRECTED_VALUE_CODE,
                bounds.name,
                raw_value,
                bounds.minimum,
                bounds.maximum,
                value,
            )
            self._values[bounds.name] = value
        return value

    def _require_known(self, name: str) -> None:
        if name not in self._values:
            raise ScrambleValidationError(
                UNKNOWN_SETTING_CODE, f"unknown setting: {name!r}"
            )


def build_animation_request(
    word: str, settings: ControlSettings
) -> AnimationRequest:
    """Build a request from the store, correcting invalid timing in place."""
    return AnimationRequest(
        word=word,
        letter_spacing_px=settings.effective_value(SPACING_BOUNDS),
        cycles_per_letter=settings.effective_value(CYCLES_BOUNDS),
        cycle_interval_ms=settings.effective_value(INTERVAL_BOUNDS),
    )


def build_cycling_pool(target_char: str, lookup: GlyphLookup) -> Tuple[str, ...]:
    """Build the decoy pool for a target letter."""
    candidates = tuple(lookup(target_char.upper()) or ()) or FALLBACK_SYMBOLS
    filtered = tuple(glyph for glyph in candidates if glyph != target_char)
    return filtered or candidates


@dataclass(frozen=True)
class CaptureConfig:
    """Validated configuration for the capture surface and encoder."""

    output_video_file: str = DEFAULT_EXPORT_FILE_NAME
    width: int = 1920
    height: int = 1080
    fps: int = 30
    max_duration_ms: int = 10000
    placeholder_grace_ms: int = 2000
    background_rgba: Tuple[int, int, int, int] = (0, 0, 0, 255)
    text_rgba: Tuple[int, int, int, int] = (255, 255, 255, 255)
    font_file: str | None = None
    font_size: int = 120
    placeholder_font_size: int = 48

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ScrambleValidationError(
                INVALID_CONFIG_CODE, "width and height must be positive"
            )
        if self.width % 2 or self.height % 2:
            raise ScrambleValidationError(
                INVALID_CONFIG_CODE, "width and height must be even for VP9 output"
            )
        if self.fps <= 0:
            raise ScrambleValidationError(INVALID_CONFIG_CODE, "fps must be positive")
        if self.max_duration_ms <= 0:
            raise ScrambleValidationError(
                INVALID_CONFIG_CODE, "max_duration_ms must be positive"
            )
        if self.placeholder_grace_ms <= 0:
            raise ScrambleValidationError(
                INVALID_CONFIG_CODE, "placeholder_grace_ms must be positive"
            )
        if not self.output_video_file.lower().endswith(".webm"):
            raise ScrambleValidationError(
                INVALID_CONFIG_CODE, "output_video_file must end with .webm"
            )
        for color_value in (self.background_rgba, self.text_rgba):
            if len(color_value) != 4:
                raise ScrambleValidationError(INVALID_CONFIG_CODE, "rgba color is invalid")
            for channel in color_value:
                if channel < 0 or channel > 255:
                    raise ScrambleValidationError(
                        INVALID_CONFIG_CODE, "rgba channel out of range"
                    )
        if self.font_file is not None and not self.font_file.strip():
            raise ScrambleValidationError(
                INVALID_CONFIG_CODE, "font_file must be non-empty"
            )
        if self.font_size <= 0 or self.placeholder_font_size <= 0:
            raise ScrambleValidationError(
                INVALID_CONFIG_CODE, "font sizes must be positive"
            )

    @property
    def frame_interval_seconds(self) -> float:
        return 1.0 / self.fps
