"""Typed per-user pipeline settings.

Settings arrive as camelCase JSON (``fontSize``, ``autoUpload``) and are
validated once here; everything downstream trusts them.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from listing_media import CollageOptions, SlideshowOptions, WatermarkOptions

from listing_pipeline.core.config import MAX_FILE_SIZE

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


class SettingsModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class WatermarkSettings(SettingsModel):
    enabled: bool = True
    text: str = "DigiGoods"
    opacity: float = Field(0.2, ge=0, le=1)
    font_size: int = Field(40, ge=8, le=100)
    color: str = Field("#FFFFFF", pattern=HEX_COLOR)
    angle: float = Field(-30.0, ge=-180, le=180)
    spacing: int = Field(120, ge=0, le=1000)

    def to_options(self) -> WatermarkOptions:
        return WatermarkOptions(
            text=self.text,
            opacity=self.opacity,
            color=self.color,
            font_size=self.font_size,
            angle=self.angle,
            spacing=self.spacing,
        )


class CollageDimensions(SettingsModel):
    width: int = Field(2000, ge=500, le=4000)
    height: int = Field(2000, ge=500, le=4000)


class CollageSettings(SettingsModel):
    enabled: bool = True
    # "grid", "mosaic" and "featured" are older names for the square layout.
    layout: Literal["auto", "square", "grid", "mosaic", "featured", "horizontal", "vertical"] = "auto"
    dimensions: CollageDimensions = Field(default_factory=CollageDimensions)
    spacing: int = Field(10, ge=0, le=50)
    background_color: str = Field("#FFFFFF", pattern=HEX_COLOR)

    def to_options(self) -> CollageOptions:
        return CollageOptions(
            layout=self.layout,
            width=self.dimensions.width,
            height=self.dimensions.height,
            spacing=self.spacing,
            background_color=self.background_color,
        )


class SlideshowSettings(SettingsModel):
    enabled: bool = True
    duration: float = Field(3.0, gt=0, le=30)
    fade: float = Field(1.0, ge=0, le=10)
    fps: int = Field(25, ge=1, le=60)
    width: int = Field(1280, ge=160, le=3840, multiple_of=2)
    height: int = Field(720, ge=120, le=2160, multiple_of=2)
    background_color: str = Field("#000000", pattern=HEX_COLOR)

    @model_validator(mode="after")
    def _fade_shorter_than_duration(self) -> "SlideshowSettings":
        if self.fade >= self.duration:
            raise ValueError("Slideshow fade must be shorter than the frame duration")
        return self

    def to_options(self, ffmpeg_binary: str = "ffmpeg", timeout: Optional[float] = None) -> SlideshowOptions:
        return SlideshowOptions(
            duration=self.duration,
            fade=self.fade,
            fps=self.fps,
            width=self.width,
            height=self.height,
            background_color=self.background_color,
            ffmpeg_binary=ffmpeg_binary,
            timeout=timeout,
        )


class GoogleDriveSettings(SettingsModel):
    folder_id: Optional[str] = None
    folder_name: str = "Etsy Listings"
    auto_upload: bool = True


class EtsySettings(SettingsModel):
    shop_id: Optional[str] = None
    default_category: Optional[int] = None
    auto_draft: bool = True
    who_made: Literal["i_did", "someone_else", "collective"] = "i_did"
    when_made: str = "2020_2024"


class ProcessingSettings(SettingsModel):
    image_quality: int = Field(90, ge=10, le=100)
    max_image_size: int = Field(MAX_FILE_SIZE, ge=1024 * 1024, le=50 * 1024 * 1024)
    allowed_formats: List[str] = Field(default_factory=lambda: ["jpeg", "jpg", "png", "webp"])


class UserSettings(SettingsModel):
    watermark: WatermarkSettings = Field(default_factory=WatermarkSettings)
    collage: CollageSettings = Field(default_factory=CollageSettings)
    slideshow: SlideshowSettings = Field(default_factory=SlideshowSettings)
    google_drive: GoogleDriveSettings = Field(default_factory=GoogleDriveSettings)
    etsy: EtsySettings = Field(default_factory=EtsySettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
