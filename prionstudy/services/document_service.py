import logging
import os
from typing import Optional
import aiofiles
from prionstudy.config import get_settings
from prionstudy.exceptions import (
    ConfigurationError,
    NotFoundError,
    RemoteAPIError,
    TokenRefreshError,
    ValidationError,
)
from prionstudy.services.dropbox_client import DropboxClient, dropbox_client

logger = logging.getLogger(__name__)

settings = get_settings()

DOC_TYPES = ("CI", "FAMILY")
ALLOWED_EXTENSIONS = (".pdf", ".jpg", ".jpeg", ".png", ".doc", ".docx")


class DocumentService:
    """Per-record attachments (CI and family tree documents) kept in Dropbox."""

    def __init__(self, client: DropboxClient, root: Optional[str] = None):
        self.client = client
        self.root = (root or settings.dropbox_documents_root).rstrip("/")

    def folder_for(self, doc_type: str) -> str:
        return f"{self.root}/{self._check_doc_type(doc_type)}"

    def search_folders(self, doc_type: str) -> list[str]:
        folders = [self.folder_for(doc_type)]
        # CI documents were stored directly under the root before the per-type folders existed
        if doc_type == "CI":
            folders.append(self.root)
        return folders

    @staticmethod
    def _check_doc_type(doc_type: str) -> str:
        if doc_type not in DOC_TYPES:
            raise ValidationError(f"Invalid docType '{doc_type}' (use: {' | '.join(DOC_TYPES)})")
        return doc_type

    def _require_client(self) -> None:
        if not self.client.configured:
            raise ConfigurationError(
                "Dropbox not configured",
                {"needsAction": "Set DROPBOX_APP_KEY, DROPBOX_APP_SECRET and DROPBOX_REFRESH_TOKEN"},
            )

    async def upload(self, local_path: str, key: str, doc_type: str = "CI") -> dict:
        self._require_client()
        ext = os.path.splitext(local_path)[1].lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(f"File type '{ext}' not allowed")

        async with aiofiles.open(local_path, "rb") as f:
            content = await f.read()

        dropbox_path = f"{self.folder_for(doc_type)}/{key}{ext}"
        result = await self.client.upload(dropbox_path, content, mode="overwrite")
        logger.info("Uploaded document to Dropbox: %s", result.get("path_display", dropbox_path))

        path_display = result.get("path_display", dropbox_path)
        return {
            "success": True,
            "dropboxPath": path_display,
            "shareUrl": await self.client.share_url(path_display),
            "size": result.get("size"),
        }

    async def _find(self, key: str, doc_type: str) -> Optional[dict]:
        for folder in self.search_folders(doc_type):
            try:
                entries = await self.client.list_folder(folder)
            except RemoteAPIError as e:
                if e.status == 409:
                    continue
                raise
            for entry in entries:
                if entry.get(".tag", "file") != "file":
                    continue
                if os.path.splitext(entry["name"])[0] == key:
                    logger.debug("Found %s in %s", entry["name"], folder)
                    return entry
        return None

    async def exists(self, key: str, doc_type: str = "CI") -> dict:
        self._check_doc_type(doc_type)
        if not self.client.configured:
            return {"exists": False}

        entry = await self._find(key, doc_type)
        if not entry:
            return {"exists": False}
        return {
            "exists": True,
            "filename": entry["name"],
            "shareUrl": await self.client.share_url(entry["path_display"]),
            "dropboxPath": entry["path_display"],
        }

    async def delete(self, key: str, doc_type: str = "CI") -> dict:
        self._require_client()
        self._check_doc_type(doc_type)
        entry = await self._find(key, doc_type)
        if not entry:
            raise NotFoundError(f"Document {key} not found in Dropbox")

        await self.client.delete(entry["path_display"])
        logger.info("Deleted document from Dropbox: %s", entry["path_display"])
        return {
            "success": True,
            "message": "File deleted from Dropbox",
            "path": entry["path_display"],
        }

    async def ensure_folder(self, doc_type: str = "CI") -> bool:
        """Create every missing level of the document folder."""
        if not self.client.configured:
            return False
        current = ""
        try:
            for part in [p for p in self.folder_for(doc_type).split("/") if p]:
                current += f"/{part}"
                try:
                    await self.client.get_metadata(current)
                except RemoteAPIError as e:
                    if e.status != 409:
                        raise
                    await self.client.create_folder(current)
                    logger.info("Created Dropbox folder %s", current)
        except (RemoteAPIError, TokenRefreshError) as e:
            logger.error("Error preparing Dropbox folder %s: %s", current, e.message)
            return False
        return True


document_service = DocumentService(dropbox_client)
