"""Timing and ordering tests for the scramble-reveal engine."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Sequence

import pytest

from domain.scramble_text import (
    CYCLES_SETTING,
    INTERVAL_SETTING,
    SPACING_SETTING,
    WORD_SETTING,
    AnimationRequest,
    ControlSettings,
)
from service.letter_display import LetterDisplay
from service.scramble_engine import (
    SCRAMBLE_OPACITY,
    SETTLED_OPACITY,
    ScrambleRevealEngine,
    choose_initial_char,
    choose_next_char,
)

TIMING_TOLERANCE_SECONDS = 0.01


@dataclass(frozen=True)
class CharEvent:
    """One displayed-character change seen by the sink."""

    index: int
    character: str
    settled: bool
    at: float
    animating: bool


class RecordingDisplay(LetterDisplay):
    """LetterDisplay that logs every displayed-character change."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[CharEvent] = []
        self.resets: list[tuple[tuple[str, ...], int]] = []
        self.engine: ScrambleRevealEngine | None = None

    def reset(self, letters: Sequence[str], letter_spacing_px: int) -> None:
        self.resets.append((tuple(letters), letter_spacing_px))
        super().reset(letters, letter_spacing_px)

    def set_displayed_char(self, index: int, character: str) -> None:
        super().set_displayed_char(index, character)
        self.events.append(
            CharEvent(
                index=index,
                character=character,
                settled=self.cells[index].settled,
                at=asyncio.get_running_loop().time(),
                animating=self.engine.is_animating if self.engine else False,
            )
        )

    def scramble_events(self, index: int) -> list[CharEvent]:
        return [e for e in self.events if e.index == index and not e.settled]

    def settle_event(self, index: int) -> CharEvent:
        settled = [e for e in self.events if e.index == index and e.settled]
        assert len(settled) == 1
        return settled[0]


class ScriptedRandom(random.Random):
    """Random whose choice() replays a fixed script."""

    def __init__(self, picks: Sequence[str]) -> None:
        super().__init__(0)
        self.picks = list(picks)
        self.calls = 0

    def choice(self, seq):  # type: ignore[override]
        self.calls += 1
        value = self.picks.pop(0)
        assert value in seq
        return value


def build_engine(
    seed: int = 7, lookup=None
) -> tuple[ScrambleRevealEngine, RecordingDisplay]:
    display = RecordingDisplay()
    if lookup is None:
        engine = ScrambleRevealEngine(display, rng=random.Random(seed))
    else:
        engine = ScrambleRevealEngine(display, lookup=lookup, rng=random.Random(seed))
    display.engine = engine
    return engine, display


def test_choose_next_char_redraws_until_different() -> None:
    """A repeat draw is retried while the pool allows a different symbol."""
    rng = ScriptedRandom(["a", "a", "b"])
    assert choose_next_char(("a", "b"), "a", rng) == "b"
    assert rng.calls == 3


def test_choose_next_char_accepts_after_bounded_attempts() -> None:
    """After len(pool) redraws the last draw is accepted even if repeated."""
    rng = ScriptedRandom(["a", "a", "a"])
    assert choose_next_char(("a", "b"), "a", rng) == "a"
    assert rng.calls == 3


def test_choose_next_char_single_symbol_skips_retry() -> None:
    """Single-symbol pools accept repeats without retrying."""
    rng = ScriptedRandom(["?"])
    assert choose_next_char(("?",), "?", rng) == "?"
    assert rng.calls == 1


def test_choose_initial_char_avoids_target() -> None:
    """The first decoy differs from the target when possible."""
    for seed in range(50):
        assert choose_initial_char(("x", "y"), "x", random.Random(seed)) == "y"
    assert choose_initial_char(("x",), "x", random.Random(0)) == "x"


@pytest.mark.asyncio
async def test_two_letter_word_settles_sequentially() -> None:
    """'AB' with 5 cycles at 20ms: 5 changes per letter, strictly in order."""
    engine, display = build_engine()
    request = AnimationRequest(
        word="AB", letter_spacing_px=10, cycles_per_letter=5, cycle_interval_ms=20
    )
    loop = asyncio.get_running_loop()

    started = loop.time()
    result = await engine.animate(request)
    elapsed = loop.time() - started

    assert result is True
    assert display.resets == [(("A", "B"), 10)]
    assert len(display.cells) == 2
    for index, target in enumerate("AB"):
        scrambles = display.scramble_events(index)
        assert len(scrambles) == 5
        assert all(event.character != target for event in scrambles)
        assert display.settle_event(index).character == target
        assert display.cells[index].displayed_char == target
        assert display.cells[index].settled is True
        assert display.cells[index].cycle_count == 5
        assert display.cells[index].opacity == SETTLED_OPACITY

    first_settled = display.settle_event(0).at
    second_started = display.scramble_events(1)[0].at
    assert second_started - first_settled >= 0.150 - TIMING_TOLERANCE_SECONDS
    assert elapsed >= 0.150 + 5 * 0.020 * 2 - TIMING_TOLERANCE_SECONDS
    assert all(event.animating for event in display.events)
    assert engine.is_animating is False


@pytest.mark.asyncio
async def test_letters_never_settle_out_of_order() -> None:
    """Cell i+1 never changes before cell i has settled."""
    engine, display = build_engine(seed=3)
    request = AnimationRequest(word="WORD", cycles_per_letter=5, cycle_interval_ms=20)

    await engine.animate(request)

    indexes = [event.index for event in display.events]
    assert indexes == sorted(indexes)
    for index in range(1, 4):
        assert display.scramble_events(index)[0].at >= display.settle_event(index - 1).at


@pytest.mark.asyncio
async def test_scramble_never_repeats_consecutively_for_large_pools() -> None:
    """Consecutive scramble values differ for letters with large pools."""
    engine, display = build_engine(seed=11)
    request = AnimationRequest(word="AEO", cycles_per_letter=20, cycle_interval_ms=20)

    await engine.animate(request)

    for index in range(3):
        characters = [event.character for event in display.scramble_events(index)]
        assert len(characters) == 20
        for previous, current in zip(characters, characters[1:]):
            assert previous != current


@pytest.mark.asyncio
async def test_single_symbol_pool_accepts_repeats() -> None:
    """A single viable symbol is repeated rather than retried forever."""
    engine, display = build_engine(lookup=lambda letter: ("Ж",))
    request = AnimationRequest(word="x", cycles_per_letter=5, cycle_interval_ms=20)

    await engine.animate(request)

    assert [event.character for event in display.scramble_events(0)] == ["Ж"] * 5
    assert display.cells[0].displayed_char == "x"


@pytest.mark.asyncio
async def test_settled_letter_stays_unchanged() -> None:
    """No further changes happen to a settled cell."""
    engine, display = build_engine()
    request = AnimationRequest(word="Q", cycles_per_letter=5, cycle_interval_ms=20)

    await engine.animate(request)
    event_count = len(display.events)
    await asyncio.sleep(0.1)

    assert len(display.events) == event_count
    assert display.cells[0].displayed_char == "Q"


@pytest.mark.asyncio
async def test_scrambling_letters_are_dimmed_until_settled() -> None:
    """Letters show reduced opacity while scrambling."""
    engine, display = build_engine()
    request = AnimationRequest(word="HI", cycles_per_letter=10, cycle_interval_ms=20)

    task = engine.trigger(request)
    assert task is not None
    await asyncio.sleep(0.05)

    assert display.cells[0].settled is False
    assert display.cells[0].opacity == SCRAMBLE_OPACITY
    assert display.cells[1].displayed_char == " "
    await task
    assert [cell.opacity for cell in display.cells] == [SETTLED_OPACITY] * 2


@pytest.mark.asyncio
async def test_empty_word_completes_in_one_turn() -> None:
    """An empty word creates no cells and never suspends."""
    engine, display = build_engine()

    task = engine.trigger(AnimationRequest(word=""))
    assert task is not None
    assert engine.is_animating is True
    await asyncio.sleep(0)

    assert task.done()
    assert task.result() is True
    assert engine.is_animating is False
    assert display.letter_count == 0
    assert display.resets == [((), 15)]


@pytest.mark.asyncio
async def test_retrigger_while_animating_is_ignored() -> None:
    """A second trigger or animate call during a run is a no-op."""
    engine, display = build_engine()
    first = AnimationRequest(word="AB", cycles_per_letter=5, cycle_interval_ms=20)
    second = AnimationRequest(word="XYZ", cycles_per_letter=5, cycle_interval_ms=20)

    task = engine.trigger(first)
    assert engine.trigger(second) is None
    assert await engine.animate(second) is False
    await task

    assert display.resets == [(("A", "B"), 15)]
    assert engine.is_animating is False


@pytest.mark.asyncio
async def test_start_animation_reads_and_corrects_settings() -> None:
    """The Animate action trims the word and clamps timing into the store."""
    engine, display = build_engine()
    settings = ControlSettings(
        {
            WORD_SETTING: "  Hi ",
            CYCLES_SETTING: "2",
            INTERVAL_SETTING: "20",
            SPACING_SETTING: "99",
        }
    )

    task = engine.start_animation(settings)
    assert task is not None
    assert engine.start_animation(settings) is None
    await task

    assert display.resets == [(("H", "i"), 15)]
    assert settings.get(CYCLES_SETTING) == 12
    assert settings.get(SPACING_SETTING) == 15
    assert len(display.scramble_events(0)) == 12


@pytest.mark.asyncio
async def test_start_animation_ignores_blank_word() -> None:
    """Blank input does not start a run."""
    engine, display = build_engine()

    assert engine.start_animation(ControlSettings({WORD_SETTING: "   "})) is None
    assert engine.is_animating is False
    assert display.resets == []


@pytest.mark.asyncio
async def test_flag_cleared_when_sink_fails() -> None:
    """A failing sink propagates its error and releases the engine."""

    class BrokenDisplay(LetterDisplay):
        def set_displayed_char(self, index: int, character: str) -> None:
            raise RuntimeError("display gone")

    engine = ScrambleRevealEngine(BrokenDisplay(), rng=random.Random(0))

    with pytest.raises(RuntimeError):
        await engine.animate(AnimationRequest(word="A"))
    assert engine.is_animating is False


@pytest.mark.asyncio
async def test_wait_until_idle_waits_for_background_run() -> None:
    """wait_until_idle resolves once the triggered run has settled."""
    engine, display = build_engine()
    engine.trigger(AnimationRequest(word="AB", cycles_per_letter=5, cycle_interval_ms=20))

    await engine.wait_until_idle()

    assert engine.is_animating is False
    assert [cell.displayed_char for cell in display.cells] == ["A", "B"]
