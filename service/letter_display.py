"""In-memory letter display shared by the engine (writer) and capture (reader)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, Tuple

from domain.scramble_text import BLANK_CHARACTER, LetterCell

DEFAULT_FONT_SIZE = 120
LETTER_WIDTH_RATIO = 0.8
LETTER_HEIGHT_RATIO = 1.2


class LetterSink(Protocol):
    """Write capability the engine uses to mutate visible letters."""

    def reset(self, letters: Sequence[str], letter_spacing_px: int) -> None: ...

    def set_displayed_char(self, index: int, character: str) -> None: ...

    def set_opacity(self, index: int, opacity: float) -> None: ...

    def set_scale(self, index: int, scale: float) -> None: ...

    def mark_settled(self, index: int) -> None: ...


class LetterSource(Protocol):
    """Read-only capability the capture pipeline samples from."""

    @property
    def letter_count(self) -> int: ...

    @property
    def letter_spacing_px(self) -> int: ...

    @property
    def metrics(self) -> "LetterMetrics": ...

    def get_displayed_char(self, index: int) -> str: ...

    def get_opacity(self, index: int) -> float: ...

    def get_scale(self, index: int) -> float: ...

    def get_bounding_box(self) -> Tuple[int, int]: ...


@dataclass(frozen=True)
class LetterMetrics:
    """Fixed per-letter box size used for layout and capture."""

    font_size: int
    letter_width: int
    letter_height: int


def compute_letter_metrics(font_size: int) -> LetterMetrics:
    """Derive a stable letter box from the font size."""
    return LetterMetrics(
        font_size=font_size,
        letter_width=max(1, int(round(font_size * LETTER_WIDTH_RATIO))),
        letter_height=max(1, int(round(font_size * LETTER_HEIGHT_RATIO))),
    )


class LetterDisplay:
    """Holds one LetterCell per character, replaced wholesale on reset."""

    def __init__(self, metrics: LetterMetrics | None = None) -> None:
        self._metrics = metrics or compute_letter_metrics(DEFAULT_FONT_SIZE)
        self._cells: list[LetterCell] = []
        self._letter_spacing_px = 0

    @property
    def metrics(self) -> LetterMetrics:
        return self._metrics

    @property
    def letter_count(self) -> int:
        return len(self._cells)

    @property
    def letter_spacing_px(self) -> int:
        return self._letter_spacing_px

    @property
    def cells(self) -> Tuple[LetterCell, ...]:
        return tuple(self._cells)

    def reset(self, letters: Sequence[str], letter_spacing_px: int) -> None:
        self._letter_spacing_px = letter_spacing_px
        self._cells = [LetterCell(target_char=letter) for letter in letters]

    def set_displayed_char(self, index: int, character: str) -> None:
        cell = self._cells[index]
        cell.displayed_char = character
        if not cell.settled:
            cell.cycle_count += 1

    def set_opacity(self, index: int, opacity: float) -> None:
        self._cells[index].opacity = min(1.0, max(0.0, opacity))

    def set_scale(self, index: int, scale: float) -> None:
        self._cells[index].scale = max(0.0, scale)

    def mark_settled(self, index: int) -> None:
        self._cells[index].settled = True

    def get_displayed_char(self, index: int) -> str:
        return self._cells[index].displayed_char or BLANK_CHARACTER

    def get_opacity(self, index: int) -> float:
        return self._cells[index].opacity

    def get_scale(self, index: int) -> float:
        return self._cells[index].scale

    def get_bounding_box(self) -> Tuple[int, int]:
        """Return (width, height) of the laid-out letters."""
        count = len(self._cells)
        if count == 0:
            return (0, 0)
        width = (
            count * self._metrics.letter_width
            + (count - 1) * self._letter_spacing_px
        )
        return (width, self._metrics.letter_height)
