from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from listing_media import (
    ArchiveError,
    ArchiveItem,
    SlideshowOptions,
    TransformError,
    calculate_grid_layout,
    create_collage,
    create_slideshow,
    expected_duration,
    pack,
    watermark,
)
from listing_media.utils import normalize_file_name

from listing_pipeline.core.config import Settings, get_settings
from listing_pipeline.core.exceptions import CollaboratorError
from listing_pipeline.models import (
    AuthContext,
    Degraded,
    Failed,
    Fatal,
    ImageItem,
    JobStatus,
    SkipReason,
    Skipped,
    StageOutcome,
    StepName,
    StepRecord,
    StepStatus,
    SubmissionOptions,
    Success,
    outcome_record,
)
from listing_pipeline.services.ledger import JobLedger
from listing_pipeline.services.metadata import ListingMetadata, MetadataGenerator
from listing_pipeline.services.publishers import (
    DraftListing,
    DriveFile,
    ListingAsset,
    ListingDraft,
    MarketplacePublisher,
    StoragePublisher,
)
from listing_pipeline.services.settings_service import SettingsService
from listing_pipeline.services.utils import dedupe_name
from listing_pipeline.services.validation import validate_batch
from listing_pipeline.user_settings import UserSettings

logger = logging.getLogger(__name__)

SlideshowBuilder = Callable[[Sequence[bytes], SlideshowOptions], bytes]
StorageFactory = Callable[[AuthContext, UserSettings], StoragePublisher]
MarketplaceFactory = Callable[[AuthContext, UserSettings], MarketplacePublisher]

# An exception escaping one of these stages ends the job; anywhere else it is
# recorded as a failed step and the sequence continues.
FATAL_STAGES = {StepName.VALIDATION, StepName.WATERMARKING, StepName.PACKAGING}


@dataclass
class PipelineContext:
    """Everything one job produces, handed from stage to stage."""

    job_id: str
    batch: Tuple[ImageItem, ...]
    options: SubmissionOptions
    auth: AuthContext
    started: float = field(default_factory=time.monotonic)
    valid_images: List[ImageItem] = field(default_factory=list)
    settings: UserSettings = field(default_factory=UserSettings)
    watermarked: List[ListingAsset] = field(default_factory=list)
    listing_images: List[ListingAsset] = field(default_factory=list)
    video: Optional[bytes] = None
    collage: Optional[bytes] = None
    archive: Optional[bytes] = None
    drive_file: Optional[DriveFile] = None
    drive_link: Optional[str] = None
    metadata: Optional[ListingMetadata] = None
    listing: Optional[DraftListing] = None
    summary: Optional[dict] = None
    halted: bool = False

    @property
    def archive_name(self) -> str:
        return f"listing_{self.job_id}"

    @property
    def image_buffers(self) -> List[bytes]:
        return [item.content for item in self.valid_images]


class PipelineOrchestrator:
    """Runs the fixed listing stages for each submitted batch.

    ``submit`` returns as soon as the job is registered; the stages run in a
    background task and every outcome is appended to the ledger, which is the
    only way callers learn how a job went.
    """

    def __init__(
        self,
        ledger: JobLedger,
        settings_service: SettingsService,
        metadata_generator: Optional[MetadataGenerator] = None,
        storage_factory: Optional[StorageFactory] = None,
        marketplace_factory: Optional[MarketplaceFactory] = None,
        slideshow_builder: SlideshowBuilder = create_slideshow,
        config: Optional[Settings] = None,
    ) -> None:
        self.ledger = ledger
        self.settings_service = settings_service
        self.metadata_generator = metadata_generator
        self.storage_factory = storage_factory
        self.marketplace_factory = marketplace_factory
        self.slideshow_builder = slideshow_builder
        self.config = config or get_settings()
        self._tasks: Dict[str, asyncio.Task[None]] = {}

    async def submit(
        self,
        batch: Sequence[ImageItem],
        options: Optional[SubmissionOptions] = None,
        auth: Optional[AuthContext] = None,
    ) -> str:
        job_id = uuid4().hex
        await self.ledger.register(job_id)
        task = asyncio.create_task(
            self._run_job(job_id, tuple(batch), options or SubmissionOptions(), auth or AuthContext()),
            name=f"listing-job-{job_id}",
        )
        self._tasks[job_id] = task
        task.add_done_callback(lambda _task, job_id=job_id: self._tasks.pop(job_id, None))
        logger.info("Job %s submitted with %d file(s)", job_id, len(batch))
        return job_id

    async def get_status(self, job_id: str) -> JobStatus:
        return await self.ledger.get(job_id)

    async def join(self, job_id: str) -> None:
        """Wait for a submitted job's background task, if it is still running."""
        task = self._tasks.get(job_id)
        if task is not None:
            await task

    @property
    def running_jobs(self) -> int:
        return len(self._tasks)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task

    async def _run_job(
        self, job_id: str, batch: Tuple[ImageItem, ...], options: SubmissionOptions, auth: AuthContext
    ) -> None:
        try:
            await self.run_pipeline(job_id, batch, options, auth)
        except asyncio.CancelledError:
            logger.warning("Job %s cancelled", job_id)
            raise
        except Exception as exc:
            logger.exception("Job %s crashed", job_id)
            await self.ledger.append(
                job_id, StepRecord(StepName.ERROR, StepStatus.FAILED, _now(), {"error": str(exc)})
            )

    async def run_pipeline(
        self,
        job_id: str,
        batch: Sequence[ImageItem],
        options: Optional[SubmissionOptions] = None,
        auth: Optional[AuthContext] = None,
    ) -> PipelineContext:
        context = PipelineContext(
            job_id=job_id,
            batch=tuple(batch),
            options=options or SubmissionOptions(),
            auth=auth or AuthContext(),
        )
        for step, stage in self._stages():
            await self.ledger.mark_started(job_id, step)
            try:
                outcome = await stage(context)
            except Exception as exc:
                logger.exception("Job %s: stage %s raised", job_id, step.value)
                message = f"{exc.__class__.__name__}: {exc}"
                outcome = Fatal(message) if step in FATAL_STAGES else Failed(message)

            record = outcome_record(step, outcome, _now())
            await self.ledger.append(job_id, record)
            logger.info("Job %s: %s %s", job_id, step.value, record.status.value)

            if isinstance(outcome, Fatal):
                context.halted = True
                await self.ledger.append(
                    job_id,
                    StepRecord(StepName.ERROR, StepStatus.FAILED, _now(), {"error": outcome.error, "stage": step.value}),
                )
                logger.error("Job %s halted at %s: %s", job_id, step.value, outcome.error)
                break
        return context

    def _stages(self) -> Tuple[Tuple[StepName, Callable[[PipelineContext], Awaitable[StageOutcome]]], ...]:
        return (
            (StepName.VALIDATION, self._validate),
            (StepName.SETTINGS, self._load_settings),
            (StepName.WATERMARKING, self._watermark),
            (StepName.VIDEO_CREATE, self._create_video),
            (StepName.COLLAGE, self._create_collage),
            (StepName.PACKAGING, self._package),
            (StepName.DRIVE_UPLOAD, self._upload_to_drive),
            (StepName.AI_METADATA, self._generate_metadata),
            (StepName.ETSY_LISTING, self._create_listing),
            (StepName.FINALIZATION, self._finalize),
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _validate(self, context: PipelineContext) -> StageOutcome:
        valid, errors = await asyncio.to_thread(
            validate_batch, context.batch, self.config.max_file_size, self.config.allowed_media_types
        )
        context.valid_images = valid
        payload = {"fileCount": len(context.batch), "validFileCount": len(valid)}
        warnings = [error.to_dict() for error in errors]
        for error in errors:
            logger.warning("Job %s: dropped %s: %s", context.job_id, error.filename, error)

        if not valid:
            return Fatal("No valid images to process", {**payload, "warnings": warnings})
        if warnings:
            return Degraded(payload, warnings)
        return Success(payload)

    async def _load_settings(self, context: PipelineContext) -> StageOutcome:
        identity = context.auth.user_id
        try:
            context.settings = await self.settings_service.load_settings(identity)
        except Exception as exc:
            logger.warning("Job %s: falling back to default settings: %s", context.job_id, exc)
            context.settings = self.settings_service.default_settings()
            return Degraded({"identity": identity, "usedDefaults": True}, [str(exc)])
        return Success({"identity": identity})

    async def _watermark(self, context: PipelineContext) -> StageOutcome:
        settings = context.settings.watermark
        if not settings.enabled:
            context.listing_images = [
                ListingAsset(item.content, item.name, item.media_type) for item in context.valid_images
            ]
            return Skipped(SkipReason.DISABLED)

        options = settings.to_options()
        names: List[str] = []
        errors = []
        for index, item in enumerate(context.valid_images):
            try:
                content = await asyncio.to_thread(watermark, item.content, options)
            except TransformError as exc:
                logger.warning("Job %s: failed to watermark %s: %s", context.job_id, item.name, exc)
                errors.append({"index": index, "filename": item.name, "error": str(exc)})
                continue
            filename = dedupe_name(names, f"{normalize_file_name(item.name)}_watermarked.jpg")
            names.append(filename)
            context.watermarked.append(ListingAsset(content, filename, "image/jpeg"))

        context.listing_images = list(context.watermarked)
        payload = {"processedCount": len(context.watermarked)}
        if errors and not context.watermarked:
            return Failed("All images failed watermarking", {**payload, "errors": errors})
        if errors:
            return Degraded(payload, errors)
        return Success(payload)

    async def _create_video(self, context: PipelineContext) -> StageOutcome:
        count = len(context.valid_images)
        if count < 2:
            return Skipped(SkipReason.INSUFFICIENT_IMAGES, {"imageCount": count})
        settings = context.settings.slideshow
        if not settings.enabled:
            return Skipped(SkipReason.DISABLED)

        options = settings.to_options(self.config.ffmpeg_binary, self.config.slideshow_timeout)
        try:
            context.video = await asyncio.to_thread(self.slideshow_builder, context.image_buffers, options)
        except TransformError as exc:
            logger.warning("Job %s: slideshow failed: %s", context.job_id, exc)
            return Failed(str(exc))
        return Success({"videoSize": len(context.video), "duration": expected_duration(count, options)})

    async def _create_collage(self, context: PipelineContext) -> StageOutcome:
        count = len(context.valid_images)
        if count < 2:
            return Skipped(SkipReason.INSUFFICIENT_IMAGES, {"imageCount": count})
        settings = context.settings.collage
        if not settings.enabled:
            return Skipped(SkipReason.DISABLED)

        options = settings.to_options()
        try:
            context.collage = await asyncio.to_thread(create_collage, context.image_buffers, options)
        except TransformError as exc:
            logger.warning("Job %s: collage failed: %s", context.job_id, exc)
            return Failed(str(exc))
        rows, cols = calculate_grid_layout(count, options.layout)
        return Success({"collageSize": len(context.collage), "rows": rows, "cols": cols})

    async def _package(self, context: PipelineContext) -> StageOutcome:
        items = [ArchiveItem(item.content, item.name) for item in context.valid_images]
        try:
            context.archive = await asyncio.to_thread(pack, items)
        except ArchiveError as exc:
            return Fatal(f"Archive creation failed: {exc}")
        return Success({"zipSize": len(context.archive), "fileCount": len(items)})

    async def _upload_to_drive(self, context: PipelineContext) -> StageOutcome:
        if not context.settings.google_drive.auto_upload:
            return Skipped(SkipReason.DISABLED)
        if not context.auth.has_google or self.storage_factory is None:
            return Skipped(SkipReason.NOT_AUTHENTICATED)

        try:
            publisher = self.storage_factory(context.auth, context.settings)
            context.drive_file = await publisher.upload_archive(context.archive, f"{context.archive_name}.zip")
        except CollaboratorError as exc:
            logger.warning("Job %s: drive upload failed: %s", context.job_id, exc)
            return Failed(str(exc))

        try:
            context.drive_link = await publisher.create_shareable_link(context.drive_file.id)
        except CollaboratorError as exc:
            logger.warning("Job %s: drive share link failed: %s", context.job_id, exc)
            return Failed(str(exc), {"fileId": context.drive_file.id})
        return Success({"fileId": context.drive_file.id, "link": context.drive_link})

    async def _generate_metadata(self, context: PipelineContext) -> StageOutcome:
        if self.metadata_generator is None:
            context.metadata = ListingMetadata.fallback_metadata()
            return Failed("Metadata generator is not configured", {"fallback": True})

        try:
            context.metadata = await self.metadata_generator.generate(context.image_buffers)
        except Exception as exc:
            logger.warning("Job %s: metadata generation failed: %s", context.job_id, exc)
            context.metadata = ListingMetadata.fallback_metadata()
            return Failed(str(exc), {"fallback": True})

        return Success(
            {
                "titleLength": len(context.metadata.title),
                "tagCount": len(context.metadata.tags),
                "descriptionLength": len(context.metadata.description),
            }
        )

    async def _create_listing(self, context: PipelineContext) -> StageOutcome:
        settings = context.settings.etsy
        if not settings.auto_draft:
            return Skipped(SkipReason.DISABLED)
        if not context.auth.has_etsy or self.marketplace_factory is None:
            return Skipped(SkipReason.NOT_AUTHENTICATED)

        metadata = context.metadata or ListingMetadata.fallback_metadata()
        draft = ListingDraft(
            title=metadata.title,
            description=metadata.description,
            tags=list(metadata.tags),
            price=context.options.price,
            quantity=context.options.quantity,
            who_made=settings.who_made,
            when_made=settings.when_made,
            taxonomy_id=settings.default_category,
        )
        try:
            publisher = self.marketplace_factory(context.auth, context.settings)
            listing = await publisher.create_draft_listing(draft)
        except CollaboratorError as exc:
            logger.warning("Job %s: draft listing failed: %s", context.job_id, exc)
            return Failed(str(exc))
        context.listing = listing

        # Each upload stands alone: a failure is noted and the next one still runs.
        warnings = []
        images = list(context.listing_images)
        if context.collage:
            images.append(ListingAsset(context.collage, "collage.jpg", "image/jpeg"))
        for rank, asset in enumerate(images, start=1):
            try:
                listing.uploaded_images.append(await publisher.upload_image(listing.listing_id, asset, rank))
            except CollaboratorError as exc:
                warnings.append({"asset": asset.filename, "error": str(exc)})

        if context.video:
            video = ListingAsset(context.video, "slideshow.mp4", "video/mp4")
            try:
                listing.uploaded_video = await publisher.upload_video(listing.listing_id, video)
            except CollaboratorError as exc:
                warnings.append({"asset": video.filename, "error": str(exc)})

        if context.archive:
            archive = ListingAsset(context.archive, f"Listing_Images_{context.job_id}.zip", "application/zip")
            try:
                listing.uploaded_digital_files.append(await publisher.upload_digital_file(listing.listing_id, archive))
            except CollaboratorError as exc:
                warnings.append({"asset": archive.filename, "error": str(exc)})

        for warning in warnings:
            logger.warning("Job %s: upload of %s failed: %s", context.job_id, warning["asset"], warning["error"])
        payload = {
            "listingId": listing.listing_id,
            "editUrl": listing.edit_url,
            "uploadedImages": len(listing.uploaded_images),
            "videoUploaded": listing.uploaded_video is not None,
            "digitalFilesUploaded": len(listing.uploaded_digital_files),
        }
        if warnings:
            return Degraded(payload, warnings)
        return Success(payload)

    async def _finalize(self, context: PipelineContext) -> StageOutcome:
        status = await self.ledger.get(context.job_id)
        failed_steps = [record.step.value for record in status.steps if record.status == StepStatus.FAILED]
        context.summary = {
            "totalProcessingTime": int((time.monotonic() - context.started) * 1000),
            "failedSteps": failed_steps,
            "results": {
                "processedImages": len(context.watermarked),
                "videoCreated": context.video is not None,
                "collageCreated": context.collage is not None,
                "archiveSize": len(context.archive) if context.archive else 0,
                "driveLink": context.drive_link,
                "metadata": context.metadata.to_dict() if context.metadata else None,
                "etsyListing": context.listing.to_dict() if context.listing else None,
            },
        }
        return Success(context.summary)


def _now() -> datetime:
    return datetime.now(timezone.utc)
