from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import Callable

import pytest

from listing_media import InsufficientInputError, SlideshowOptions, TransformError, create_slideshow, expected_duration
from listing_media.slideshow import build_ffmpeg_command


def test_expected_duration_subtracts_overlapping_fades() -> None:
    options = SlideshowOptions(duration=3, fade=1)

    assert expected_duration(3, options) == 7
    assert expected_duration(1, options) == 3
    assert expected_duration(0, options) == 0


def test_ffmpeg_command_offsets_each_crossfade(tmp_path: Path) -> None:
    frames = [tmp_path / f"frame_{index}.jpg" for index in range(3)]
    options = SlideshowOptions(duration=3, fade=1, fps=30)

    command = build_ffmpeg_command(frames, tmp_path / "out.mp4", options)

    graph = command[command.index("-filter_complex") + 1]
    assert "xfade=transition=fade:duration=1:offset=2" in graph
    assert "xfade=transition=fade:duration=1:offset=4" in graph
    assert command[command.index("-map") + 1] == "[x2]"
    assert command.count("-loop") == 3
    assert command[-1] == str(tmp_path / "out.mp4")


def test_ffmpeg_command_without_fade_concatenates(tmp_path: Path) -> None:
    frames = [tmp_path / "a.jpg", tmp_path / "b.jpg"]

    command = build_ffmpeg_command(frames, tmp_path / "out.mp4", SlideshowOptions(fade=0))

    graph = command[command.index("-filter_complex") + 1]
    assert "concat=n=2:v=1:a=0" in graph
    assert "xfade" not in graph


def test_slideshow_requires_an_image() -> None:
    with pytest.raises(InsufficientInputError):
        create_slideshow([])


@pytest.mark.parametrize("duration,fade", [(3, 3), (2, 5), (3, -1), (0, 0)])
def test_slideshow_rejects_invalid_timing(make_image: Callable[..., bytes], duration: float, fade: float) -> None:
    with pytest.raises(TransformError):
        create_slideshow([make_image()], SlideshowOptions(duration=duration, fade=fade))


def test_slideshow_missing_binary_cleans_scratch_space(
    make_image: Callable[..., bytes], tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    options = SlideshowOptions(ffmpeg_binary="ffmpeg-binary-that-does-not-exist")

    with pytest.raises(TransformError, match="not found"):
        create_slideshow([make_image(), make_image()], options)

    assert list(tmp_path.iterdir()) == []


@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg is not installed")
def test_slideshow_renders_mp4(make_image: Callable[..., bytes]) -> None:
    images = [make_image(color=(255, 0, 0)), make_image(color=(0, 255, 0), size=(48, 64))]
    options = SlideshowOptions(duration=1, fade=0.5, fps=10, width=160, height=90)

    video = create_slideshow(images, options)

    assert video[4:8] == b"ftyp"
