import logging
import os
import shutil
import aiofiles
from prionstudy.config import get_settings
from prionstudy.exceptions import ConfigurationError, RemoteAPIError, TokenRefreshError
from prionstudy.services.dropbox_client import DropboxClient, dropbox_client

logger = logging.getLogger(__name__)

settings = get_settings()

SYNCED_FILES = (
    "credentials.csv",
    "1_individuals.csv",
    "2_individuals.csv",
    "3_individuals.csv",
    "4_individuals.csv",
    "5_individuals.csv",
    "6_individuals.csv",
)


async def sync_csv_from_dropbox(client: DropboxClient = dropbox_client, data_dir: str = None) -> dict:
    """
    Pull the credential and patient CSV files from Dropbox into the data directory.

    A file missing in Dropbox falls back to its local `.example.csv` copy when
    no local file exists yet. Returns counts; never raises.
    """
    data_dir = data_dir or settings.data_dir
    if not client.configured:
        logger.warning("Dropbox not configured for CSV sync, using local files")
        return {"success": False, "downloaded": 0, "error": "Dropbox not configured"}

    os.makedirs(data_dir, exist_ok=True)
    folder = settings.dropbox_csv_folder.rstrip("/")
    downloaded = 0
    for filename in SYNCED_FILES:
        local_path = os.path.join(data_dir, filename)
        try:
            content = await client.download(f"{folder}/{filename}")
        except RemoteAPIError as e:
            if e.is_not_found:
                logger.warning("%s not found in Dropbox", filename)
                example = os.path.join(data_dir, filename.replace(".csv", ".example.csv"))
                if os.path.exists(example) and not os.path.exists(local_path):
                    shutil.copyfile(example, local_path)
                    logger.info("Using example file for %s", filename)
            else:
                logger.error("Error downloading %s: %s", filename, e.message)
            continue
        except (ConfigurationError, TokenRefreshError) as e:
            logger.error("CSV sync aborted: %s", e.message)
            return {"success": False, "downloaded": downloaded, "error": e.message}

        async with aiofiles.open(local_path, "wb") as f:
            await f.write(content)
        downloaded += 1

    logger.info("CSV sync complete: downloaded %d/%d files", downloaded, len(SYNCED_FILES))
    return {"success": True, "downloaded": downloaded, "total": len(SYNCED_FILES)}
