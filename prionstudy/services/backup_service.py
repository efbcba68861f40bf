"""
Three-layer backups for the consent database.

1. Local snapshot of the SQLite file in {data_dir}/backups (pruned by retention)
2. CSV export of every consent response to Dropbox
3. Full copy of the database file to Dropbox

Every public method returns a {"success": bool, ...} dict and never raises,
so a failing layer is reported next to the layers that worked.
"""
import asyncio
import csv
import io
import logging
import os
import shutil
import time
from datetime import datetime, timezone
from typing import Callable, Optional
import aiofiles
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from prionstudy.config import Settings, get_settings
from prionstudy.database import async_session
from prionstudy.exceptions import ConfigurationError, PrionStudyError, RemoteAPIError, TokenRefreshError
from prionstudy.models.consent import ConsentResponse
from prionstudy.services.csv_service import missing_headers, parse_csv
from prionstudy.services.dropbox_client import DropboxClient, dropbox_client

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ["participant_id", "response", "ts_utc", "ip", "user_agent"]
PARTICIPANT_HEADERS = ("id", "name", "email", "lang")
DAY_SECONDS = 24 * 60 * 60

NOT_CONFIGURED = {
    "success": False,
    "error": "Dropbox not configured",
    "needsAction": "Set DROPBOX_REFRESH_TOKEN, DROPBOX_APP_KEY and DROPBOX_APP_SECRET",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _failure(error: Exception) -> dict:
    result = {"success": False, "error": getattr(error, "message", str(error))}
    if isinstance(error, PrionStudyError):
        result.update(error.details)
    return result


class BackupService:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[DropboxClient] = None,
        session_factory: Optional[async_sessionmaker] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or get_settings()
        self.client = client or dropbox_client
        self.session_factory = session_factory or async_session
        self._clock = clock

    @property
    def backup_root(self) -> str:
        return self.settings.dropbox_backup_root.rstrip("/")

    async def _checkpoint(self) -> None:
        """Fold the WAL into the main file so a plain file copy is complete."""
        try:
            async with self.session_factory() as db:
                await db.execute(text("PRAGMA wal_checkpoint(TRUNCATE)"))
        except SQLAlchemyError as e:
            logger.warning("WAL checkpoint before backup failed: %s", e)

    # -- Layer 1: local snapshots -------------------------------------------

    async def create_local_backup(self) -> dict:
        try:
            await self._checkpoint()
            os.makedirs(self.settings.backup_dir, exist_ok=True)
            stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d")
            filename = f"data_{stamp}.db"
            path = os.path.join(self.settings.backup_dir, filename)

            await asyncio.to_thread(shutil.copyfile, self.settings.database_path, path)

            logger.info("Local backup created: %s", path)
            return {
                "success": True,
                "path": path,
                "fileName": filename,
                "size": os.path.getsize(path),
                "timestamp": _now_iso(),
            }
        except OSError as e:
            logger.error("Error creating local backup: %s", e)
            return {"success": False, "error": str(e)}

    async def clean_old_backups(self, retention_days: Optional[int] = None) -> dict:
        if retention_days is None:
            retention_days = self.settings.backup_retention_days
        try:
            os.makedirs(self.settings.backup_dir, exist_ok=True)
            now = self._clock()
            max_age = retention_days * DAY_SECONDS
            deleted = kept = 0

            for name in sorted(os.listdir(self.settings.backup_dir)):
                if not (name.startswith("data_") and name.endswith(".db")):
                    continue
                path = os.path.join(self.settings.backup_dir, name)
                if now - os.stat(path).st_mtime > max_age:
                    os.remove(path)
                    deleted += 1
                else:
                    kept += 1

            logger.info("Backup cleanup: %d deleted, %d kept (retention %d days)", deleted, kept, retention_days)
            return {"success": True, "deleted": deleted, "kept": kept, "retentionDays": retention_days}
        except OSError as e:
            logger.error("Error cleaning old backups: %s", e)
            return {"success": False, "error": str(e)}

    def list_local_backups(self) -> list[dict]:
        if not os.path.isdir(self.settings.backup_dir):
            return []
        backups = []
        for name in sorted(os.listdir(self.settings.backup_dir), reverse=True):
            if name.startswith("data_") and name.endswith(".db"):
                stat = os.stat(os.path.join(self.settings.backup_dir, name))
                backups.append({
                    "name": name,
                    "size": stat.st_size,
                    "modified": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
                })
        return backups

    # -- Layer 2: CSV export --------------------------------------------------

    async def build_responses_csv(self) -> tuple[str, int]:
        async with self.session_factory() as db:
            result = await db.execute(select(ConsentResponse).order_by(ConsentResponse.participant_id))
            rows = result.scalars().all()

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(EXPORT_COLUMNS)
        for row in rows:
            writer.writerow([getattr(row, col) or "" for col in EXPORT_COLUMNS])
        return "\ufeff" + buffer.getvalue(), len(rows)

    async def export_csv_to_dropbox(self) -> dict:
        if not self.client.configured:
            return dict(NOT_CONFIGURED)
        try:
            content, count = await self.build_responses_csv()
            stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d")
            result = await self.client.upload(
                f"{self.backup_root}/csv/responses_{stamp}.csv",
                content.encode("utf-8"),
                mode="add",
                autorename=True,
            )
            logger.info("CSV export uploaded: %s (%d records)", result.get("path_display"), count)
            return {
                "success": True,
                "dropboxPath": result.get("path_display"),
                "size": result.get("size"),
                "recordCount": count,
                "timestamp": _now_iso(),
            }
        except (ConfigurationError, TokenRefreshError, RemoteAPIError) as e:
            logger.error("Error exporting CSV to Dropbox: %s", e.message)
            return _failure(e)

    # -- Layer 3: database upload ---------------------------------------------

    async def backup_database_to_dropbox(self) -> dict:
        if not self.client.configured:
            return dict(NOT_CONFIGURED)
        try:
            await self._checkpoint()
            async with aiofiles.open(self.settings.database_path, "rb") as f:
                content = await f.read()
            stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
            result = await self.client.upload(
                f"{self.backup_root}/database/data_{stamp}.db",
                content,
                mode="add",
                autorename=True,
            )
            logger.info("Database uploaded to Dropbox: %s", result.get("path_display"))
            return {
                "success": True,
                "dropboxPath": result.get("path_display"),
                "size": result.get("size"),
                "timestamp": _now_iso(),
            }
        except OSError as e:
            logger.error("Error reading database for Dropbox backup: %s", e)
            return {"success": False, "error": str(e)}
        except (ConfigurationError, TokenRefreshError, RemoteAPIError) as e:
            logger.error("Error backing up database to Dropbox: %s", e.message)
            return _failure(e)

    async def list_dropbox_backups(self, folder: str = "database") -> dict:
        if folder not in ("csv", "database"):
            return {"success": False, "error": "folder must be 'csv' or 'database'"}
        if not self.client.configured:
            return dict(NOT_CONFIGURED)
        try:
            entries = await self.client.list_folder(f"{self.backup_root}/{folder}")
        except (ConfigurationError, TokenRefreshError, RemoteAPIError) as e:
            logger.error("Error listing Dropbox backups: %s", e.message)
            return _failure(e)

        files = [
            {
                "name": entry["name"],
                "path": entry.get("path_display"),
                "size": entry.get("size"),
                "modified": entry.get("client_modified"),
            }
            for entry in entries
            if entry.get(".tag", "file") == "file"
        ]
        return {"success": True, "files": files, "count": len(files)}

    # -- Orchestration --------------------------------------------------------

    async def full_backup(self) -> dict:
        """Runs every layer in order; remote layers only when Dropbox is configured."""
        results = {"timestamp": _now_iso(), "layers": {}}

        logger.info("Backup layer 1: local snapshot")
        results["layers"]["local"] = await self.create_local_backup()

        if self.client.configured:
            logger.info("Backup layer 2: CSV export to Dropbox")
            results["layers"]["csvDropbox"] = await self.export_csv_to_dropbox()
            logger.info("Backup layer 3: database upload to Dropbox")
            results["layers"]["databaseDropbox"] = await self.backup_database_to_dropbox()
        else:
            logger.warning("Dropbox not configured, skipping remote backup layers")

        results["cleanup"] = await self.clean_old_backups()
        results["success"] = all(layer.get("success") for layer in results["layers"].values())
        return results

    # -- Token management -----------------------------------------------------

    def check_config(self) -> dict:
        configured = self.settings.dropbox_configured
        return {
            "configured": configured,
            "hasRefreshToken": bool(self.settings.dropbox_refresh_token),
            "hasAppKey": bool(self.settings.dropbox_app_key),
            "hasAppSecret": bool(self.settings.dropbox_app_secret),
            "message": (
                "Dropbox configured with refresh token"
                if configured
                else "Dropbox not configured. DROPBOX_REFRESH_TOKEN, DROPBOX_APP_KEY and DROPBOX_APP_SECRET are required"
            ),
        }

    async def validate_token(self) -> dict:
        if not self.client.configured:
            return {
                "valid": False,
                "error": "Dropbox not configured",
                "needsAction": NOT_CONFIGURED["needsAction"],
            }
        try:
            account = await self.client.current_account()
        except TokenRefreshError as e:
            return {
                "valid": False,
                "error": e.message,
                "errorCode": e.status or "unknown",
                "needsAction": "Regenerate the refresh token at https://www.dropbox.com/developers/apps "
                               "and update DROPBOX_REFRESH_TOKEN",
            }
        except RemoteAPIError as e:
            needs_action = "Check the Dropbox credentials"
            error = e.summary or e.message
            if e.status == 401:
                error = "Token expired, revoked or invalid"
                needs_action = "Regenerate the refresh token at https://www.dropbox.com/developers/apps"
            elif e.status == 429:
                error = "Rate limit exceeded"
                needs_action = "Wait a few minutes and try again"
            return {"valid": False, "error": error, "errorCode": e.status or "unknown", "needsAction": needs_action}

        return {
            "valid": True,
            "message": "Dropbox token valid",
            "account": {
                "name": account.get("name", {}).get("display_name"),
                "email": account.get("email"),
                "accountId": account.get("account_id"),
            },
        }

    async def force_token_refresh(self) -> dict:
        try:
            await self.client.tokens.force_refresh()
        except (ConfigurationError, TokenRefreshError) as e:
            return _failure(e)
        return {
            "success": True,
            "message": "Token refreshed",
            "expiresAt": self.client.tokens.status()["expiresAt"],
        }

    # -- Participant import ---------------------------------------------------

    async def import_participants_from_dropbox(self) -> dict:
        """Downloads participants.csv and checks it carries the minimum columns."""
        if not self.client.configured:
            return dict(NOT_CONFIGURED)

        remote_path = f"{self.settings.dropbox_csv_folder.rstrip('/')}/participants.csv"
        try:
            content = await self.client.download(remote_path)
        except RemoteAPIError as e:
            if e.is_not_found:
                return {"success": False, "error": f"File not found in Dropbox. Upload participants.csv to {remote_path}"}
            return _failure(e)
        except (ConfigurationError, TokenRefreshError) as e:
            return _failure(e)

        local_path = os.path.join(self.settings.data_dir, "participants.csv")
        async with aiofiles.open(local_path, "wb") as f:
            await f.write(content)

        rows = parse_csv(content.decode("utf-8-sig", errors="replace"))
        if not rows:
            return {"success": False, "error": "The CSV file is empty or has no data rows"}
        missing = missing_headers(rows, PARTICIPANT_HEADERS)
        if missing:
            return {"success": False, "error": f"Missing required columns: {', '.join(missing)}"}

        fields = list(rows[0].keys())
        return {
            "success": True,
            "message": "Participants imported",
            "localPath": local_path,
            "dropboxPath": remote_path,
            "participantCount": len(rows),
            "totalFields": len(fields),
            "fields": fields,
            "size": len(content),
            "timestamp": _now_iso(),
        }


backup_service = BackupService()
