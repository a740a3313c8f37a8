"""Stream RGBA frames through ffmpeg into WebM/VP9 chunks."""

from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
from typing import Protocol, Tuple

from PIL import Image

FFMPEG_NOT_FOUND_CODE = "scramble_reveal.capture.ffmpeg_not_found"
FFMPEG_EXEC_CODE = "scramble_reveal.capture.ffmpeg_exec_error"
FFMPEG_UNSUPPORTED_CODE = "scramble_reveal.capture.ffmpeg_unsupported"
FFMPEG_PROCESS_CODE = "scramble_reveal.capture.ffmpeg_process_failed"
VP9_ENCODER = "libvpx-vp9"
WEBM_MUXER = "webm"
VP9_PIXEL_FORMAT = "yuv420p"
VP9_CRF = "32"
VP9_DEADLINE = "realtime"
VP9_CPU_USED = "8"
READ_CHUNK_BYTES = 64 * 1024
MAX_PENDING_FRAMES = 8
LOGGER = logging.getLogger("scramble_reveal.capture")


class CapturePipelineError(RuntimeError):
    """Runtime error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class StreamEncoder(Protocol):
    """Capture surface handle: accepts frames and yields encoded chunks."""

    async def open(self, width: int, height: int, fps: int) -> None: ...

    def write_frame(self, frame_image: Image.Image) -> bool: ...

    async def close(self) -> Tuple[bytes, ...]: ...


def validate_ffmpeg_capabilities() -> str:
    """Ensure ffmpeg can encode VP9 into WebM and return its path."""
    ffmpeg_path = shutil.which("ffmpeg")
    if not ffmpeg_path:
        raise CapturePipelineError(FFMPEG_NOT_FOUND_CODE, "ffmpeg not on PATH")
    try:
        encoders_result = subprocess.run(
            [ffmpeg_path, "-hide_banner", "-encoders"],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=True,
        )
        muxers_result = subprocess.run(
            [ffmpeg_path, "-hide_banner", "-muxers"],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=True,
        )
    except Exception as exc:
        raise CapturePipelineError(
            FFMPEG_EXEC_CODE, "ffmpeg exists but could not be executed"
        ) from exc

    if VP9_ENCODER not in encoders_result.stdout:
        raise CapturePipelineError(
            FFMPEG_UNSUPPORTED_CODE, f"ffmpeg does not support {VP9_ENCODER} encoder"
        )
    if not any(
        WEBM_MUXER in line.split()[1:3] for line in muxers_result.stdout.splitlines()
    ):
        raise CapturePipelineError(
            FFMPEG_UNSUPPORTED_CODE, f"ffmpeg does not support {WEBM_MUXER} muxer"
        )
    return ffmpeg_path


def build_ffmpeg_command(ffmpeg_path: str, width: int, height: int, fps: int) -> list[str]:
    """Raw RGBA frames stamped with wall-clock time in, constant-rate VP9 WebM out."""
    return [
        ffmpeg_path,
        "-hide_banner",
        "-loglevel",
        "error",
        "-f",
        "rawvideo",
        "-pix_fmt",
        "rgba",
        "-s",
        f"{width}x{height}",
        "-use_wallclock_as_timestamps",
        "1",
        "-i",
        "-",
        "-an",
        "-c:v",
        VP9_ENCODER,
        "-b:v",
        "0",
        "-crf",
        VP9_CRF,
        "-deadline",
        VP9_DEADLINE,
        "-cpu-used",
        VP9_CPU_USED,
        "-row-mt",
        "1",
        "-pix_fmt",
        VP9_PIXEL_FORMAT,
        "-fps_mode",
        "cfr",
        "-r",
        str(fps),
        "-f",
        WEBM_MUXER,
        "-",
    ]


class FfmpegWebmEncoder:
    """Feeds frames to an ffmpeg subprocess and collects its stdout as chunks."""

    def __init__(self) -> None:
        self._process: asyncio.subprocess.Process | None = None
        self._chunks: list[bytes] = []
        self._stdout_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[bytes] | None = None
        self._frame_bytes = 0
        self.dropped_frames = 0

    async def open(self, width: int, height: int, fps: int) -> None:
        ffmpeg_path = await asyncio.to_thread(validate_ffmpeg_capabilities)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *build_ffmpeg_command(ffmpeg_path, width, height, fps),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise CapturePipelineError(
                FFMPEG_EXEC_CODE, f"failed to start ffmpeg: {exc}"
            ) from exc
        self._frame_bytes = width * height * 4
        self._chunks = []
        self.dropped_frames = 0
        self._stdout_task = asyncio.create_task(
            self._collect_stdout(), name="webm-encoder-stdout"
        )
        self._stderr_task = asyncio.create_task(
            self._process.stderr.read(), name="webm-encoder-stderr"
        )

    def write_frame(self, frame_image: Image.Image) -> bool:
        """Queue a frame; returns False when it was dropped under backpressure."""
        process = self._require_process()
        if process.returncode is not None or process.stdin.is_closing():
            raise CapturePipelineError(
                FFMPEG_PROCESS_CODE,
                f"ffmpeg exited early with code {process.returncode}",
            )
        pending_bytes = process.stdin.transport.get_write_buffer_size()
        if pending_bytes > self._frame_bytes * MAX_PENDING_FRAMES:
            self.dropped_frames += 1
            return False
        process.stdin.write(frame_image.tobytes())
        return True

    async def close(self) -> Tuple[bytes, ...]:
        process = self._require_process()
        try:
            process.stdin.close()
            await process.stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError) as exc:
            LOGGER.warning("%s: stdin closed abruptly (%s)", FFMPEG_PROCESS_CODE, exc)
        return_code = await process.wait()
        if self._stdout_task is not None:
            await self._stdout_task
        stderr_bytes = await self._stderr_task if self._stderr_task is not None else b""
        if self.dropped_frames:
            LOGGER.info(
                "scramble_reveal.capture.dropped_frames: %d", self.dropped_frames
            )
        if return_code != 0:
            stderr_text = stderr_bytes.decode("utf-8", errors="replace").strip()
            raise CapturePipelineError(
                FFMPEG_PROCESS_CODE,
                f"ffmpeg failed with exit code {return_code}. {stderr_text}",
            )
        return tuple(self._chunks)

    async def _collect_stdout(self) -> None:
        process = self._require_process()
        while True:
            chunk = await process.stdout.read(READ_CHUNK_BYTES)
            if not chunk:
                break
            self._chunks.append(chunk)

    def _require_process(self) -> asyncio.subprocess.Process:
        if self._process is None:
            raise CapturePipelineError(FFMPEG_PROCESS_CODE, "ffmpeg is not running")
        return self._process
