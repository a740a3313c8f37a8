#!/usr/bin/env -S uv run
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "pillow>=10.1"
# ]
# ///
"""Record a scramble-reveal word animation into a WebM (VP9) file."""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
import re
import sys
from dataclasses import dataclass
from typing import Callable, Sequence, Tuple

from domain.scramble_text import (
    CYCLES_SETTING,
    DEFAULT_EXPORT_FILE_NAME,
    INTERVAL_SETTING,
    INVALID_CONFIG_CODE,
    SPACING_SETTING,
    WORD_SETTING,
    CaptureConfig,
    ControlSettings,
    ExportableVideo,
    ScrambleValidationError,
)
from service.capture_pipeline import CapturePipeline
from service.letter_display import LetterDisplay, compute_letter_metrics
from service.scramble_engine import ScrambleRevealEngine
from service.webm_encoder import (
    CapturePipelineError,
    FfmpegWebmEncoder,
    StreamEncoder,
)

DEFAULT_HOLD_MS = 1000
LOGGER = logging.getLogger("scramble_reveal")


@dataclass(frozen=True)
class DriverRequest:
    """Parsed CLI request and runtime options."""

    config: CaptureConfig
    settings: ControlSettings
    seed: int | None
    hold_ms: int


def configure_logging() -> None:
    """Configure logging for CLI output."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")


def parse_hex_color_to_rgba(color_value: str) -> Tuple[int, int, int, int]:
    """Parse a #RRGGBB token into an opaque RGBA tuple."""
    match_value = re.fullmatch(r"#([0-9a-fA-F]{6})", color_value.strip())
    if not match_value:
        raise ScrambleValidationError(
            INVALID_CONFIG_CODE, f"invalid color value: {color_value!r}"
        )
    rgb_hex = match_value.group(1)
    return (
        int(rgb_hex[0:2], 16),
        int(rgb_hex[2:4], 16),
        int(rgb_hex[4:6], 16),
        255,
    )


def parse_args(argv: Sequence[str]) -> DriverRequest:
    """Parse CLI arguments into a DriverRequest."""
    parser = argparse.ArgumentParser(prog="render_scramble_video.py", add_help=True)
    parser.add_argument("--word", default="")
    parser.add_argument("--cycles", default="12", help="cycles per letter (5-50)")
    parser.add_argument("--interval-ms", default="75", help="cycle interval (20-200)")
    parser.add_argument("--spacing", default="15", help="letter spacing px (0-50)")
    parser.add_argument("--output-video-file", default=DEFAULT_EXPORT_FILE_NAME)
    parser.add_argument("--width", type=int, default=1920)
    parser.add_argument("--height", type=int, default=1080)
    parser.add_argument("--fps", type=int, default=30)
    parser.add_argument("--max-duration-ms", type=int, default=10000)
    parser.add_argument("--hold-ms", type=int, default=DEFAULT_HOLD_MS)
    parser.add_argument("--background", default="#000000")
    parser.add_argument("--color", default="#FFFFFF")
    parser.add_argument("--font-file", default=None)
    parser.add_argument("--font-size", type=int, default=120)
    parser.add_argument("--seed", type=int, default=None)

    parsed = parser.parse_args(argv)
    if parsed.hold_ms < 0:
        raise ScrambleValidationError(INVALID_CONFIG_CODE, "hold-ms must be non-negative")

    config = CaptureConfig(
        output_video_file=parsed.output_video_file,
        width=parsed.width,
        height=parsed.height,
        fps=parsed.fps,
        max_duration_ms=parsed.max_duration_ms,
        background_rgba=parse_hex_color_to_rgba(parsed.background),
        text_rgba=parse_hex_color_to_rgba(parsed.color),
        font_file=parsed.font_file,
        font_size=parsed.font_size,
    )
    settings = ControlSettings(
        {
            WORD_SETTING: parsed.word,
            CYCLES_SETTING: parsed.cycles,
            INTERVAL_SETTING: parsed.interval_ms,
            SPACING_SETTING: parsed.spacing,
        }
    )
    return DriverRequest(
        config=config, settings=settings, seed=parsed.seed, hold_ms=parsed.hold_ms
    )


async def record_animation(
    request: DriverRequest,
    encoder_factory: Callable[[], StreamEncoder] = FfmpegWebmEncoder,
) -> ExportableVideo | None:
    """Record one animation of the configured word and return its export."""
    display = LetterDisplay(compute_letter_metrics(request.config.font_size))
    engine = ScrambleRevealEngine(display, rng=random.Random(request.seed))
    pipeline = CapturePipeline(
        request.config,
        display,
        engine,
        request.settings,
        encoder_factory=encoder_factory,
    )

    await pipeline.start_session()
    if pipeline.session.placeholder:
        return await pipeline.wait_for_export()

    animation = asyncio.ensure_future(engine.wait_until_idle())
    export = asyncio.ensure_future(pipeline.wait_for_export())
    done, _ = await asyncio.wait(
        {animation, export}, return_when=asyncio.FIRST_COMPLETED
    )
    if export in done:
        # Session ended (duration limit or failure) before the word settled.
        animation.cancel()
        return export.result()

    animation.result()
    if pipeline.is_recording and request.hold_ms:
        await asyncio.sleep(request.hold_ms / 1000.0)
    _, video = await asyncio.gather(pipeline.stop_session(), export)
    return video


def main() -> int:
    """CLI entrypoint."""
    configure_logging()

    try:
        request = parse_args(sys.argv[1:])
        video = asyncio.run(record_animation(request))
        if video is None:
            raise CapturePipelineError(
                "scramble_reveal.capture.no_export", "recording produced no export"
            )
        video.write_to(request.config.output_video_file)
        LOGGER.info(
            "scramble_reveal.export.written: %s (%d frames, %d bytes)",
            request.config.output_video_file,
            video.frame_count,
            video.size_bytes,
        )
        return 0
    except ScrambleValidationError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except CapturePipelineError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except Exception as exc:
        LOGGER.error("scramble_reveal.unhandled_error: %s", str(exc).strip())
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
