"""Scramble-reveal engine: sequences per-letter scrambling on the event loop."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Sequence

from domain.glyph_mappings import lookup_language_glyphs
from domain.scramble_text import (
    AnimationRequest,
    ControlSettings,
    GlyphLookup,
    build_animation_request,
    build_cycling_pool,
)
from service.letter_display import LetterSink

SCRAMBLE_OPACITY = 0.6
SCRAMBLE_SCALE = 0.85
SETTLED_OPACITY = 1.0
SETTLED_SCALE = 1.0
REJECTED_CODE = "scramble_reveal.engine.already_animating"
EMPTY_WORD_CODE = "scramble_reveal.engine.empty_word"
LOGGER = logging.getLogger("scramble_reveal.engine")


def choose_initial_char(
    pool: Sequence[str], target_char: str, rng: random.Random
) -> str:
    """Pick the first decoy, avoiding the target whenever the pool allows it."""
    candidates = [glyph for glyph in pool if glyph != target_char]
    if candidates:
        return rng.choice(candidates)
    return rng.choice(list(pool))


def choose_next_char(
    pool: Sequence[str], current_char: str, rng: random.Random
) -> str:
    """Draw a decoy, redrawing at most len(pool) times to avoid a repeat."""
    next_char = rng.choice(pool)
    if len(pool) > 1:
        attempts = 0
        while next_char == current_char and attempts < len(pool):
            next_char = rng.choice(pool)
            attempts += 1
    return next_char


class ScrambleRevealEngine:
    """Animates one word at a time into a LetterSink."""

    def __init__(
        self,
        sink: LetterSink,
        lookup: GlyphLookup = lookup_language_glyphs,
        rng: random.Random | None = None,
    ) -> None:
        self._sink = sink
        self._lookup = lookup
        self._rng = rng or random.Random()
        self._in_flight = False
        self._task: asyncio.Task[bool] | None = None

    @property
    def is_animating(self) -> bool:
        return self._in_flight

    def start_animation(self, settings: ControlSettings) -> asyncio.Task[bool] | None:
        """Animate the configured word unless it is blank or a run is in flight."""
        word = settings.word.strip()
        if not word:
            LOGGER.debug("%s: nothing to animate", EMPTY_WORD_CODE)
            return None
        if self._in_flight:
            LOGGER.debug("%s: ignored start for %r", REJECTED_CODE, word)
            return None
        return self.trigger(build_animation_request(word, settings))

    def trigger(self, request: AnimationRequest) -> asyncio.Task[bool] | None:
        """Run a request in the background; None when one is already running."""
        if self._in_flight:
            LOGGER.debug("%s: ignored trigger for %r", REJECTED_CODE, request.word)
            return None
        self._in_flight = True
        self._task = asyncio.get_running_loop().create_task(
            self._run_claimed(request), name="scramble-reveal"
        )
        return self._task

    async def wait_until_idle(self) -> None:
        """Wait for a background run started by trigger() to finish."""
        if self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    async def animate(self, request: AnimationRequest) -> bool:
        """Animate a word to completion; returns False when rejected."""
        if self._in_flight:
            LOGGER.debug("%s: ignored animate for %r", REJECTED_CODE, request.word)
            return False
        self._in_flight = True
        return await self._run_claimed(request)

    async def _run_claimed(self, request: AnimationRequest) -> bool:
        try:
            letters = request.letters
            self._sink.reset(letters, request.letter_spacing_px)
            LOGGER.info(
                "scramble_reveal.engine.start: %r (%d cycles @ %dms, spacing %dpx)",
                request.word,
                request.cycles_per_letter,
                request.cycle_interval_ms,
                request.letter_spacing_px,
            )
            for index, target_char in enumerate(letters):
                if index > 0:
                    await asyncio.sleep(request.inter_letter_delay_ms / 1000.0)
                await self._settle_letter(index, target_char, request)
            return True
        finally:
            self._in_flight = False

    async def _settle_letter(
        self, index: int, target_char: str, request: AnimationRequest
    ) -> None:
        pool = build_cycling_pool(target_char, self._lookup)
        self._sink.set_opacity(index, SCRAMBLE_OPACITY)
        self._sink.set_scale(index, SCRAMBLE_SCALE)
        current_char = choose_initial_char(pool, target_char, self._rng)
        self._sink.set_displayed_char(index, current_char)

        interval_seconds = request.cycle_interval_ms / 1000.0
        for tick in range(1, request.cycles_per_letter + 1):
            await asyncio.sleep(interval_seconds)
            if tick >= request.cycles_per_letter:
                break
            current_char = choose_next_char(pool, current_char, self._rng)
            self._sink.set_displayed_char(index, current_char)

        self._sink.mark_settled(index)
        self._sink.set_displayed_char(index, target_char)
        self._sink.set_opacity(index, SETTLED_OPACITY)
        self._sink.set_scale(index, SETTLED_SCALE)
