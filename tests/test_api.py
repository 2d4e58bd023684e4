from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator, Callable

import httpx
import pytest

from fakes import FakeEtsy, FakeMetadataGenerator, FakeSettingsService, fake_slideshow
from listing_pipeline.core.config import Settings, get_settings
from listing_pipeline.dependencies import get_orchestrator
from listing_pipeline.main import app
from listing_pipeline.services.ledger import JobLedger
from listing_pipeline.services.orchestrator import PipelineOrchestrator
from listing_pipeline.user_settings import UserSettings


@pytest.fixture
def etsy() -> FakeEtsy:
    return FakeEtsy()


@pytest.fixture
def orchestrator(tmp_path: Path, etsy: FakeEtsy) -> PipelineOrchestrator:
    config = Settings(settings_dir=tmp_path, max_upload_files=3)
    user_settings = UserSettings.model_validate({"collage": {"dimensions": {"width": 500, "height": 500}}})
    return PipelineOrchestrator(
        JobLedger(),
        FakeSettingsService(user_settings),
        metadata_generator=FakeMetadataGenerator(),
        marketplace_factory=lambda auth, settings: etsy,
        slideshow_builder=fake_slideshow,
        config=config,
    )


@pytest.fixture
async def client(orchestrator: PipelineOrchestrator) -> AsyncIterator[httpx.AsyncClient]:
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_settings] = lambda: orchestrator.config
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


def _files(make_image: Callable[..., bytes], count: int) -> list:
    return [("files", (f"photo-{index}.jpg", make_image(), "image/jpeg")) for index in range(count)]


async def test_upload_accepts_job_and_reports_progress(
    client: httpx.AsyncClient,
    orchestrator: PipelineOrchestrator,
    etsy: FakeEtsy,
    make_image: Callable[..., bytes],
) -> None:
    response = await client.post(
        "/api/v1/upload",
        files=_files(make_image, 2),
        data={"price": "15.5", "quantity": "2"},
        headers={"X-User-Id": "seller", "X-Etsy-Access-Token": "token", "X-Etsy-Shop-Id": "shop"},
    )

    assert response.status_code == 202
    body = response.json()
    assert body["fileCount"] == 2
    assert body["estimatedTime"] == "2-5 minutes"
    assert body["statusUrl"].endswith(f"/api/v1/status/{body['jobId']}")

    await orchestrator.join(body["jobId"])
    status_response = await client.get(f"/api/v1/status/{body['jobId']}")

    assert status_response.status_code == 200
    job = status_response.json()
    assert job["id"] == body["jobId"]
    assert job["currentStep"] == "finalization"
    assert [step["step"] for step in job["steps"]][:3] == ["validation", "settings", "watermarking"]
    drive = next(step for step in job["steps"] if step["step"] == "drive_upload")
    assert drive["status"] == "skipped"
    assert drive["reason"] == "not_authenticated"
    assert job["steps"][-1]["results"]["etsyListing"]["listing_id"] == "555"
    assert etsy.drafts[0].price == 15.5
    assert etsy.drafts[0].quantity == 2


async def test_status_of_unknown_job_is_404(client: httpx.AsyncClient) -> None:
    response = await client.get("/api/v1/status/unknown-job")

    assert response.status_code == 404
    assert response.json()["detail"] == "Job not found"


async def test_upload_without_files_is_rejected(client: httpx.AsyncClient) -> None:
    response = await client.post("/api/v1/upload", data={"price": "10"})

    assert response.status_code == 400
    assert response.json()["detail"] == "No files provided"


async def test_upload_with_too_many_files_is_rejected(
    client: httpx.AsyncClient, orchestrator: PipelineOrchestrator, make_image: Callable[..., bytes]
) -> None:
    response = await client.post("/api/v1/upload", files=_files(make_image, 4))

    assert response.status_code == 400
    assert "Too many files" in response.json()["detail"]
    assert orchestrator.running_jobs == 0


async def test_health(client: httpx.AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["services"]["imageProcessing"] == "available"
