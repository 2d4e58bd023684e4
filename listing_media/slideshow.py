"""Slideshow video synthesis through the ``ffmpeg`` executable."""

from __future__ import annotations

import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from PIL import Image, ImageOps

from .exceptions import InsufficientInputError, TransformError
from .utils import encode_image, ensure_rgb, open_image, parse_color

FRAME_QUALITY = 92


@dataclass(frozen=True, slots=True)
class SlideshowOptions:
    duration: float = 3.0
    fade: float = 1.0
    fps: int = 25
    width: int = 1280
    height: int = 720
    background_color: str = "#000000"
    ffmpeg_binary: str = "ffmpeg"
    timeout: float | None = 300.0


def expected_duration(count: int, options: SlideshowOptions) -> float:
    """Length in seconds of a slideshow built from ``count`` frames."""

    if count < 1:
        return 0.0
    return count * options.duration - (count - 1) * options.fade


def build_ffmpeg_command(frames: Sequence[Path], output: Path, options: SlideshowOptions) -> List[str]:
    """Build the ffmpeg invocation that cross-fades ``frames`` into ``output``.

    Every frame is looped for ``duration`` seconds. Consecutive frames are
    joined with an ``xfade`` whose offset is ``k * (duration - fade)`` for the
    k-th transition; a zero fade falls back to a plain concat.
    """

    command: List[str] = [options.ffmpeg_binary, "-hide_banner", "-loglevel", "error", "-y"]
    for frame in frames:
        command += ["-loop", "1", "-framerate", str(options.fps), "-t", _fmt(options.duration), "-i", str(frame)]

    filters = [f"[{index}:v]format=yuv420p,setsar=1[v{index}]" for index in range(len(frames))]
    last = "v0"
    if len(frames) > 1 and options.fade > 0:
        for index in range(1, len(frames)):
            offset = index * (options.duration - options.fade)
            label = f"x{index}"
            filters.append(
                f"[{last}][v{index}]xfade=transition=fade:duration={_fmt(options.fade)}:offset={_fmt(offset)}[{label}]"
            )
            last = label
    elif len(frames) > 1:
        inputs = "".join(f"[v{index}]" for index in range(len(frames)))
        filters.append(f"{inputs}concat=n={len(frames)}:v=1:a=0[joined]")
        last = "joined"

    command += [
        "-filter_complex",
        ";".join(filters),
        "-map",
        f"[{last}]",
        "-c:v",
        "libx264",
        "-pix_fmt",
        "yuv420p",
        "-r",
        str(options.fps),
        "-movflags",
        "+faststart",
        str(output),
    ]
    return command


def create_slideshow(images: Sequence[bytes], options: SlideshowOptions | None = None) -> bytes:
    """Render ``images`` into an H.264 MP4 slideshow and return its bytes.

    Frames and the encoded video live in a scratch directory that is removed
    whether encoding succeeds or fails.
    """

    options = options or SlideshowOptions()
    if not images:
        raise InsufficientInputError("At least 1 image is required to create a slideshow")
    if options.duration <= 0 or options.fade < 0 or options.fade >= options.duration:
        raise TransformError("Fade must be non-negative and shorter than the frame duration")

    with tempfile.TemporaryDirectory(prefix="slideshow_") as scratch:
        scratch_dir = Path(scratch)
        frames: List[Path] = []
        for index, data in enumerate(images):
            frame_path = scratch_dir / f"frame_{index:03d}.jpg"
            frame_path.write_bytes(_render_frame(data, options))
            frames.append(frame_path)

        output = scratch_dir / "slideshow.mp4"
        command = build_ffmpeg_command(frames, output, options)
        try:
            subprocess.run(command, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=options.timeout)
        except FileNotFoundError as exc:
            raise TransformError(f"ffmpeg executable '{options.ffmpeg_binary}' not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise TransformError(f"ffmpeg timed out after {options.timeout} seconds") from exc
        except subprocess.CalledProcessError as exc:
            err = exc.stderr.decode("utf-8", errors="ignore") if exc.stderr else str(exc)
            raise TransformError(f"ffmpeg failed: {err[-2000:]}") from exc
        return output.read_bytes()


def _render_frame(data: bytes, options: SlideshowOptions) -> bytes:
    """Letterbox one image into the video frame size."""

    source = open_image(data)
    try:
        background = parse_color(options.background_color)
        frame = ImageOps.pad(
            ensure_rgb(source),
            (options.width, options.height),
            method=Image.LANCZOS,
            color=background,
            centering=(0.5, 0.5),
        )
    except (OSError, ValueError) as exc:
        raise TransformError(f"Failed to prepare slideshow frame: {exc}") from exc
    return encode_image(frame, "JPEG", quality=FRAME_QUALITY)


def _fmt(value: float) -> str:
    return f"{value:g}"
