from fastapi import APIRouter, Depends, Query
from prionstudy.auth import require_admin_token
from prionstudy.services.backup_service import backup_service
from prionstudy.services.scheduler import backup_scheduler

router = APIRouter(dependencies=[Depends(require_admin_token)])


@router.get("/status")
async def backup_status():
    return {
        "success": True,
        "dropbox": backup_service.check_config(),
        "token": backup_service.client.tokens.status(),
        "localBackups": backup_service.list_local_backups(),
        "retentionDays": backup_service.settings.backup_retention_days,
        "scheduler": backup_scheduler.status(),
    }


@router.post("/local")
async def backup_local():
    return await backup_service.create_local_backup()


@router.post("/csv-dropbox")
async def backup_csv_dropbox():
    return await backup_service.export_csv_to_dropbox()


@router.post("/db-dropbox")
async def backup_db_dropbox():
    return await backup_service.backup_database_to_dropbox()


@router.post("/full")
async def backup_full():
    return await backup_service.full_backup()


@router.post("/cleanup")
async def backup_cleanup(retention_days: int = Query(None, ge=0)):
    return await backup_service.clean_old_backups(retention_days)


@router.get("/list-dropbox")
async def list_dropbox(folder: str = Query("database")):
    return await backup_service.list_dropbox_backups(folder)


@router.get("/validate-token")
async def validate_token():
    return await backup_service.validate_token()


@router.post("/refresh-token")
async def refresh_token():
    return await backup_service.force_token_refresh()


@router.post("/import-participants")
async def import_participants():
    return await backup_service.import_participants_from_dropbox()
