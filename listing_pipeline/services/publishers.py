"""Remote asset publishers: Google Drive for archives, Etsy for draft listings."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence
from uuid import uuid4

import httpx

from listing_pipeline.core.exceptions import CollaboratorError
from listing_pipeline.services.http import read_json, send_request

logger = logging.getLogger(__name__)

DRIVE_SERVICE = "google_drive"
ETSY_SERVICE = "etsy"

DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_FOLDER_MIME = "application/vnd.google-apps.folder"
ETSY_API_URL = "https://openapi.etsy.com/v3/application"
ETSY_EDIT_URL = "https://www.etsy.com/your/shops/me/listing-editor/edit/{listing_id}"

MAX_TITLE_LENGTH = 140
MAX_TAGS = 13
MAX_TAG_LENGTH = 20


@dataclass(frozen=True)
class DriveFile:
    id: str
    link: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class ListingAsset:
    content: bytes
    filename: str
    mime_type: str


@dataclass
class ListingDraft:
    title: str
    description: str
    tags: List[str]
    price: float
    quantity: int = 1
    who_made: str = "i_did"
    when_made: str = "2020_2024"
    taxonomy_id: Optional[int] = None


@dataclass
class DraftListing:
    listing_id: str
    edit_url: str
    state: str = "draft"
    url: Optional[str] = None
    uploaded_images: List[Dict[str, Any]] = field(default_factory=list)
    uploaded_video: Optional[Dict[str, Any]] = None
    uploaded_digital_files: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "listing_id": self.listing_id,
            "edit_url": self.edit_url,
            "state": self.state,
            "url": self.url,
            "uploaded_images": list(self.uploaded_images),
            "uploaded_video": self.uploaded_video,
            "uploaded_digital_files": list(self.uploaded_digital_files),
        }


class StoragePublisher(Protocol):
    async def upload_archive(self, buffer: bytes, name: str) -> DriveFile:
        ...

    async def create_shareable_link(self, file_id: str) -> str:
        ...


class MarketplacePublisher(Protocol):
    async def create_draft_listing(self, draft: ListingDraft) -> DraftListing:
        ...

    async def upload_image(self, listing_id: str, asset: ListingAsset, rank: int = 1) -> Dict[str, Any]:
        ...

    async def upload_video(self, listing_id: str, asset: ListingAsset) -> Dict[str, Any]:
        ...

    async def upload_digital_file(self, listing_id: str, asset: ListingAsset) -> Dict[str, Any]:
        ...


class GoogleDrivePublisher:
    """Uploads archives to Google Drive with a user's OAuth access token.

    Archives go into ``folder_id`` when given. Otherwise a folder called
    ``folder_name`` is looked up, and created when missing, on first upload.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        access_token: str,
        folder_id: Optional[str] = None,
        folder_name: Optional[str] = None,
    ) -> None:
        if not access_token:
            raise CollaboratorError(DRIVE_SERVICE, "access token is required")
        self._client = client
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self.folder_id = folder_id
        self.folder_name = folder_name

    async def create_or_get_folder(self, folder_name: str) -> str:
        escaped = folder_name.replace("\\", "\\\\").replace("'", "\\'")
        response = await send_request(
            self._client,
            DRIVE_SERVICE,
            "GET",
            DRIVE_FILES_URL,
            params={
                "q": f"name='{escaped}' and mimeType='{DRIVE_FOLDER_MIME}' and trashed=false",
                "fields": "files(id,name)",
            },
            headers=self._headers,
        )
        files = read_json(response, DRIVE_SERVICE).get("files") or []
        if files:
            return files[0]["id"]

        response = await send_request(
            self._client,
            DRIVE_SERVICE,
            "POST",
            DRIVE_FILES_URL,
            params={"fields": "id"},
            headers=self._headers,
            json={"name": folder_name, "mimeType": DRIVE_FOLDER_MIME},
        )
        folder_id = read_json(response, DRIVE_SERVICE).get("id")
        if not folder_id:
            raise CollaboratorError(DRIVE_SERVICE, f"could not create folder '{folder_name}'")
        logger.info("Created Google Drive folder %s (%s)", folder_name, folder_id)
        return folder_id

    async def upload_archive(self, buffer: bytes, name: str) -> DriveFile:
        if not buffer:
            raise CollaboratorError(DRIVE_SERVICE, "archive buffer is empty")
        if not name:
            raise CollaboratorError(DRIVE_SERVICE, "archive name is required")
        if not self.folder_id and self.folder_name:
            self.folder_id = await self.create_or_get_folder(self.folder_name)

        metadata: Dict[str, Any] = {"name": name, "mimeType": "application/zip"}
        if self.folder_id:
            metadata["parents"] = [self.folder_id]
        boundary = f"listing-{uuid4().hex}"
        body = _multipart_related(boundary, metadata, buffer, "application/zip")

        response = await send_request(
            self._client,
            DRIVE_SERVICE,
            "POST",
            DRIVE_UPLOAD_URL,
            params={"uploadType": "multipart", "fields": "id,name,size,webViewLink"},
            headers={**self._headers, "Content-Type": f"multipart/related; boundary={boundary}"},
            content=body,
        )
        data = read_json(response, DRIVE_SERVICE)
        if not data.get("id"):
            raise CollaboratorError(DRIVE_SERVICE, "upload response did not include a file id")
        logger.info("Uploaded %s to Google Drive as %s", name, data["id"])
        return DriveFile(id=data["id"], link=data.get("webViewLink"), name=data.get("name"))

    async def create_shareable_link(self, file_id: str) -> str:
        await send_request(
            self._client,
            DRIVE_SERVICE,
            "POST",
            f"{DRIVE_FILES_URL}/{file_id}/permissions",
            headers=self._headers,
            json={"role": "reader", "type": "anyone"},
        )
        response = await send_request(
            self._client,
            DRIVE_SERVICE,
            "GET",
            f"{DRIVE_FILES_URL}/{file_id}",
            params={"fields": "webViewLink"},
            headers=self._headers,
        )
        link = read_json(response, DRIVE_SERVICE).get("webViewLink")
        if not link:
            raise CollaboratorError(DRIVE_SERVICE, f"no shareable link returned for {file_id}")
        return link


class EtsyPublisher:
    """Creates draft listings and attaches assets through the Etsy Open API v3."""

    def __init__(self, client: httpx.AsyncClient, api_key: str, access_token: str, shop_id: str) -> None:
        if not api_key:
            raise CollaboratorError(ETSY_SERVICE, "API key is not configured")
        if not access_token or not shop_id:
            raise CollaboratorError(ETSY_SERVICE, "access token and shop id are required")
        self._client = client
        self._headers = {"x-api-key": api_key, "Authorization": f"Bearer {access_token}"}
        self.shop_id = shop_id

    async def create_draft_listing(self, draft: ListingDraft) -> DraftListing:
        form: Dict[str, Any] = {
            "quantity": str(draft.quantity),
            "title": clean_title(draft.title),
            "description": draft.description,
            "price": f"{draft.price:.2f}",
            "who_made": draft.who_made,
            "when_made": draft.when_made,
            "taxonomy_id": str(draft.taxonomy_id or 1),
            "tags": ",".join(clean_tags(draft.tags)),
            "state": "draft",
        }
        response = await send_request(
            self._client,
            ETSY_SERVICE,
            "POST",
            f"{ETSY_API_URL}/shops/{self.shop_id}/listings",
            headers=self._headers,
            data=form,
        )
        data = read_json(response, ETSY_SERVICE)
        listing_id = data.get("listing_id")
        if listing_id is None:
            raise CollaboratorError(ETSY_SERVICE, "listing response did not include a listing id")
        listing_id = str(listing_id)
        logger.info("Created Etsy draft listing %s", listing_id)
        return DraftListing(
            listing_id=listing_id,
            edit_url=ETSY_EDIT_URL.format(listing_id=listing_id),
            state=data.get("state", "draft"),
            url=data.get("url"),
        )

    async def upload_image(self, listing_id: str, asset: ListingAsset, rank: int = 1) -> Dict[str, Any]:
        data = await self._upload(listing_id, "images", "image", asset, {"rank": str(rank)})
        return {"listing_image_id": data.get("listing_image_id"), "url": data.get("url_570xN"), "rank": rank}

    async def upload_video(self, listing_id: str, asset: ListingAsset) -> Dict[str, Any]:
        data = await self._upload(listing_id, "videos", "video", asset, {"name": asset.filename})
        return {"video_id": data.get("video_id"), "url": data.get("video_url")}

    async def upload_digital_file(self, listing_id: str, asset: ListingAsset) -> Dict[str, Any]:
        data = await self._upload(listing_id, "files", "file", asset, {"name": asset.filename})
        return {"listing_file_id": data.get("listing_file_id"), "filename": data.get("filename", asset.filename)}

    async def _upload(
        self, listing_id: str, resource: str, field_name: str, asset: ListingAsset, form: Dict[str, str]
    ) -> Dict[str, Any]:
        if not asset.content:
            raise CollaboratorError(ETSY_SERVICE, f"{asset.filename} is empty")
        response = await send_request(
            self._client,
            ETSY_SERVICE,
            "POST",
            f"{ETSY_API_URL}/shops/{self.shop_id}/listings/{listing_id}/{resource}",
            headers=self._headers,
            data=form,
            files={field_name: (asset.filename, asset.content, asset.mime_type)},
        )
        return read_json(response, ETSY_SERVICE)


def clean_title(title: str) -> str:
    title = " ".join(title.split())
    if len(title) > MAX_TITLE_LENGTH:
        title = title[: MAX_TITLE_LENGTH - 3] + "..."
    return title


def clean_tags(tags: Sequence[str]) -> List[str]:
    """Lowercase, de-duplicate and trim tags to the marketplace limits."""
    cleaned: List[str] = []
    for tag in tags:
        tag = " ".join(str(tag).split()).lower()
        if tag and len(tag) <= MAX_TAG_LENGTH and tag not in cleaned:
            cleaned.append(tag)
    return cleaned[:MAX_TAGS]


def _multipart_related(boundary: str, metadata: Dict[str, Any], payload: bytes, mime_type: str) -> bytes:
    parts = [
        f"--{boundary}\r\n".encode(),
        b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
        json.dumps(metadata).encode("utf-8"),
        f"\r\n--{boundary}\r\n".encode(),
        f"Content-Type: {mime_type}\r\n\r\n".encode(),
        payload,
        f"\r\n--{boundary}--\r\n".encode(),
    ]
    return b"".join(parts)
