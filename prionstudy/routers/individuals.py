from fastapi import APIRouter, Depends, Query
from prionstudy.auth import UserPrincipal, get_current_user, require_admin
from prionstudy.exceptions import NotFoundError, ValidationError
from prionstudy.services.csv_service import search_individuals, sort_individuals
from prionstudy.services.record_store import record_store

router = APIRouter()


@router.get("/individuals")
async def list_individuals(
    search: str = Query("", description="Case-insensitive match across every field"),
    sortBy: str = Query(""),
    sortDir: str = Query("asc"),
    current_user: UserPrincipal = Depends(get_current_user),
):
    if sortDir not in ("asc", "desc"):
        raise ValidationError("sortDir must be 'asc' or 'desc'")

    results = record_store.records_for(current_user.as_record())
    if search:
        results = search_individuals(results, search)
    if sortBy:
        results = sort_individuals(results, sortBy, sortDir)

    return {"success": True, "data": results, "total": len(results)}


@router.get("/individuals/{record_id}")
async def get_individual(record_id: str, current_user: UserPrincipal = Depends(get_current_user)):
    record = record_store.find(current_user.as_record(), record_id)
    if not record:
        raise NotFoundError("Individual not found")
    return {"success": True, "data": record}


@router.post("/reload")
async def reload_records(current_user: UserPrincipal = Depends(require_admin)):
    await record_store.reload()
    return {
        "success": True,
        "individuals": record_store.individual_count,
        "credentials": len(record_store.credentials),
    }
