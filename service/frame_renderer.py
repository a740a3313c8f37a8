"""Draw the live letter display onto an RGBA capture surface."""

from __future__ import annotations

from typing import Tuple

from PIL import Image, ImageDraw, ImageFont

from domain.scramble_text import (
    INVALID_CONFIG_CODE,
    PLACEHOLDER_MESSAGE,
    CaptureConfig,
    ScrambleValidationError,
)
from service.letter_display import LetterSource

MIN_GLYPH_SIZE = 1


def load_font(
    font_file: str | None, font_size: int
) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load the configured font file, or Pillow's bundled default."""
    if font_file is None:
        return ImageFont.load_default(size=font_size)
    try:
        return ImageFont.truetype(
            font_file, size=font_size, layout_engine=ImageFont.Layout.BASIC
        )
    except Exception as exc:
        raise ScrambleValidationError(
            INVALID_CONFIG_CODE, f"failed to load font {font_file} at size {font_size}"
        ) from exc


def scale_rgba(
    color_rgba: Tuple[int, int, int, int], opacity: float
) -> Tuple[int, int, int, int]:
    """Multiply the alpha channel by an opacity in [0, 1]."""
    red_value, green_value, blue_value, alpha_value = color_rgba
    clamped = min(1.0, max(0.0, opacity))
    return (red_value, green_value, blue_value, int(round(alpha_value * clamped)))


def compute_origin(
    surface_size: Tuple[int, int], bounding_box: Tuple[int, int]
) -> Tuple[float, float]:
    """Return the translation that centers the bounding box on the surface."""
    surface_width, surface_height = surface_size
    box_width, box_height = bounding_box
    return (
        surface_width / 2.0 - box_width / 2.0,
        surface_height / 2.0 - box_height / 2.0,
    )


def compute_letter_center(
    origin: Tuple[float, float],
    index: int,
    letter_width: int,
    letter_height: int,
    letter_spacing_px: int,
) -> Tuple[float, float]:
    """Center point of the index-th letter box relative to the surface."""
    origin_x, origin_y = origin
    left = origin_x + index * (letter_width + letter_spacing_px)
    return (left + letter_width / 2.0, origin_y + letter_height / 2.0)


class FrameRenderer:
    """Renders letter cells, honoring opacity and scale, into RGBA frames."""

    def __init__(self, config: CaptureConfig) -> None:
        self._config = config
        self._font_cache: dict[int, ImageFont.FreeTypeFont | ImageFont.ImageFont] = {}
        self._placeholder_frame: Image.Image | None = None
        self._font(config.font_size)
        self._font(config.placeholder_font_size)

    @property
    def size(self) -> Tuple[int, int]:
        return (self._config.width, self._config.height)

    def _font(self, font_size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
        cached = self._font_cache.get(font_size)
        if cached is not None:
            return cached
        font = load_font(self._config.font_file, font_size)
        self._font_cache[font_size] = font
        return font

    def blank_frame(self) -> Image.Image:
        return Image.new("RGBA", self.size, color=self._config.background_rgba)

    def render(self, source: LetterSource) -> Image.Image:
        """Render the current display state as one frame."""
        frame_image = self.blank_frame()
        count = source.letter_count
        if count == 0:
            return frame_image

        metrics = source.metrics
        origin = compute_origin(self.size, source.get_bounding_box())
        draw_context = ImageDraw.Draw(frame_image)
        for index in range(count):
            opacity = source.get_opacity(index)
            character = source.get_displayed_char(index)
            if opacity <= 0.0 or not character.strip():
                continue
            glyph_size = max(
                MIN_GLYPH_SIZE, int(round(metrics.font_size * source.get_scale(index)))
            )
            center_x, center_y = compute_letter_center(
                origin,
                index,
                metrics.letter_width,
                metrics.letter_height,
                source.letter_spacing_px,
            )
            sprite = self._render_glyph(
                character,
                self._font(glyph_size),
                scale_rgba(self._config.text_rgba, opacity),
                draw_context,
            )
            paste_x = int(round(center_x - sprite.width / 2.0))
            paste_y = int(round(center_y - sprite.height / 2.0))
            frame_image.paste(sprite, (paste_x, paste_y), sprite)
        return frame_image

    def render_placeholder(self) -> Image.Image:
        """Frame shown while recording without a configured word."""
        if self._placeholder_frame is None:
            frame_image = self.blank_frame()
            draw_context = ImageDraw.Draw(frame_image)
            draw_context.text(
                (self._config.width / 2.0, self._config.height / 2.0),
                PLACEHOLDER_MESSAGE,
                font=self._font(self._config.placeholder_font_size),
                fill=self._config.text_rgba,
                anchor="mm",
            )
            self._placeholder_frame = frame_image
        return self._placeholder_frame.copy()

    @staticmethod
    def _render_glyph(
        character: str,
        font: ImageFont.FreeTypeFont | ImageFont.ImageFont,
        fill_rgba: Tuple[int, int, int, int],
        draw_context: ImageDraw.ImageDraw,
    ) -> Image.Image:
        left, top, right, bottom = draw_context.textbbox(
            (0, 0), character, font=font, anchor="la"
        )
        sprite = Image.new(
            "RGBA",
            (max(MIN_GLYPH_SIZE, right - left), max(MIN_GLYPH_SIZE, bottom - top)),
            (0, 0, 0, 0),
        )
        ImageDraw.Draw(sprite).text(
            (-left, -top), character, font=font, fill=fill_rgba, anchor="la"
        )
        return sprite
