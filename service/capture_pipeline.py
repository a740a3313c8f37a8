"""Capture pipeline: samples the letter display into an encoded video session."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable

from domain.scramble_text import (
    EXPORT_MIME_TYPE,
    CaptureConfig,
    ControlSettings,
    ExportableVideo,
    RecordingSession,
    RecordingState,
    build_animation_request,
)
from service.frame_renderer import FrameRenderer
from service.letter_display import LetterSource
from service.scramble_engine import ScrambleRevealEngine
from service.webm_encoder import CapturePipelineError, FfmpegWebmEncoder, StreamEncoder

IGNORED_CODE = "scramble_reveal.capture.ignored"
RENDER_FAILED_CODE = "scramble_reveal.capture.render_failed"
STOP_REASON_EXPLICIT = "explicit"
STOP_REASON_DURATION = "max_duration"
STOP_REASON_PLACEHOLDER = "placeholder_grace"
STOP_REASON_ENCODER = "encoder_failed"
STOP_REASON_RENDER = "render_failed"
LOGGER = logging.getLogger("scramble_reveal.capture")


class CapturePipeline:
    """Owns the single recording session and its self-rescheduling render loop.

    State machine: Idle -> Recording -> Stopping -> Idle (export ready).
    Starting outside Idle and stopping in Idle are no-ops.
    """

    def __init__(
        self,
        config: CaptureConfig,
        source: LetterSource,
        engine: ScrambleRevealEngine,
        settings: ControlSettings,
        encoder_factory: Callable[[], StreamEncoder] = FfmpegWebmEncoder,
        on_export_ready: Callable[[ExportableVideo], None] | None = None,
    ) -> None:
        self._config = config
        self._source = source
        self._engine = engine
        self._settings = settings
        self._encoder_factory = encoder_factory
        self._on_export_ready = on_export_ready
        self._renderer = FrameRenderer(config)
        self._session = RecordingSession(max_duration_ms=config.max_duration_ms)
        self._encoder: StreamEncoder | None = None
        self._starting = False
        self._frame_handle: asyncio.TimerHandle | None = None
        self._grace_handle: asyncio.TimerHandle | None = None
        self._finalize_task: asyncio.Task[None] | None = None
        self._export_future: asyncio.Future[ExportableVideo] | None = None
        self._stopped_elapsed_ms = 0.0
        self.last_export: ExportableVideo | None = None

    @property
    def is_recording(self) -> bool:
        return self._session.state == RecordingState.RECORDING

    @property
    def state(self) -> RecordingState:
        return self._session.state

    @property
    def session(self) -> RecordingSession:
        return self._session

    @property
    def render_loop_armed(self) -> bool:
        return self._frame_handle is not None

    async def start_session(self) -> bool:
        """Begin recording; raises CapturePipelineError when capture is unavailable."""
        if self._session.state != RecordingState.IDLE or self._starting:
            LOGGER.debug("%s: start while %s", IGNORED_CODE, self._session.state.value)
            return False

        self._starting = True
        try:
            encoder = self._encoder_factory()
            await encoder.open(self._config.width, self._config.height, self._config.fps)
        finally:
            self._starting = False

        loop = asyncio.get_running_loop()
        self._encoder = encoder
        self._session.reset(loop.time())
        self._export_future = loop.create_future()
        LOGGER.info(
            "scramble_reveal.capture.start: %dx%d @ %dfps, limit %dms",
            self._config.width,
            self._config.height,
            self._config.fps,
            self._session.max_duration_ms,
        )

        if not self._engine.is_animating:
            word = self._settings.word.strip()
            if word:
                self._engine.trigger(build_animation_request(word, self._settings))
            else:
                LOGGER.warning(
                    "scramble_reveal.capture.no_word: recording placeholder for %dms",
                    self._config.placeholder_grace_ms,
                )
                self._session.placeholder = True
                self._grace_handle = loop.call_later(
                    self._config.placeholder_grace_ms / 1000.0,
                    self._begin_stop,
                    STOP_REASON_PLACEHOLDER,
                )

        self._render_step()
        return True

    async def stop_session(self) -> ExportableVideo | None:
        """Stop recording and return the export; None when already idle."""
        if self._session.state == RecordingState.IDLE:
            LOGGER.debug("%s: stop while idle", IGNORED_CODE)
            return None
        self._begin_stop(STOP_REASON_EXPLICIT)
        return await self.wait_for_export()

    async def toggle_recording(self) -> ExportableVideo | None:
        """Record-button action: start when idle, otherwise stop."""
        if self._session.state == RecordingState.IDLE:
            await self.start_session()
            return None
        return await self.stop_session()

    async def wait_for_export(self) -> ExportableVideo | None:
        """Wait for the current (or most recent) session to finish exporting."""
        if self._export_future is None:
            return None
        return await asyncio.shield(self._export_future)

    def _render_step(self) -> None:
        self._frame_handle = None
        if self._session.state != RecordingState.RECORDING or self._encoder is None:
            return

        try:
            if self._session.placeholder and self._source.letter_count == 0:
                frame_image = self._renderer.render_placeholder()
            else:
                frame_image = self._renderer.render(self._source)
        except Exception as exc:
            LOGGER.error("%s: %s", RENDER_FAILED_CODE, str(exc).strip())
            self._begin_stop(STOP_REASON_RENDER)
            return

        try:
            if self._encoder.write_frame(frame_image):
                self._session.rendered_frames += 1
        except CapturePipelineError as exc:
            LOGGER.error("%s: %s", exc.code, str(exc).strip())
            self._begin_stop(STOP_REASON_ENCODER)
            return

        loop = asyncio.get_running_loop()
        if self._session.elapsed_ms(loop.time()) > self._session.max_duration_ms:
            self._begin_stop(STOP_REASON_DURATION)
            return
        self._frame_handle = loop.call_later(
            self._config.frame_interval_seconds, self._render_step
        )

    def _begin_stop(self, reason: str) -> None:
        if self._session.state != RecordingState.RECORDING:
            return
        loop = asyncio.get_running_loop()
        self._session.state = RecordingState.STOPPING
        self._stopped_elapsed_ms = self._session.elapsed_ms(loop.time())
        self._cancel_handles()
        LOGGER.info(
            "scramble_reveal.capture.stop: %s after %.0fms, %d frames",
            reason,
            self._stopped_elapsed_ms,
            self._session.rendered_frames,
        )
        self._finalize_task = loop.create_task(
            self._finalize(), name="capture-finalize"
        )

    def _cancel_handles(self) -> None:
        if self._frame_handle is not None:
            self._frame_handle.cancel()
            self._frame_handle = None
        if self._grace_handle is not None:
            self._grace_handle.cancel()
            self._grace_handle = None

    async def _finalize(self) -> None:
        export_future = self._export_future
        encoder = self._encoder
        self._encoder = None
        try:
            chunks = await encoder.close() if encoder is not None else ()
        except CapturePipelineError as exc:
            LOGGER.error("%s: %s", exc.code, str(exc).strip())
            self._session.state = RecordingState.IDLE
            if export_future is not None and not export_future.done():
                export_future.set_exception(exc)
                # Already logged; awaiting callers still receive it.
                export_future.exception()
            return

        self._session.chunks = list(chunks)
        video = ExportableVideo(
            chunks=tuple(self._session.chunks),
            mime_type=EXPORT_MIME_TYPE,
            file_name=os.path.basename(self._config.output_video_file),
            frame_count=self._session.rendered_frames,
            duration_ms=self._stopped_elapsed_ms,
        )
        self.last_export = video
        self._session.state = RecordingState.IDLE
        LOGGER.info(
            "scramble_reveal.capture.export_ready: %s (%d bytes)",
            video.file_name,
            video.size_bytes,
        )
        if export_future is not None and not export_future.done():
            export_future.set_result(video)
        if self._on_export_ready is not None:
            self._on_export_ready(video)
